"""Error-tolerant parser for JSON with comments (JSONC).

Accepts strict JSON plus ``//`` line comments, ``/* */`` block comments and
trailing commas in objects and arrays. Syntax errors never raise: the parser
records a ``ParseDiagnostic``, skips ahead to a token it can resynchronise
on (a comma or the enclosing closing bracket) and keeps building the tree,
so a half-typed edit still yields a usable outline for the rest of the
document.

All offsets refer to the text passed in; nothing is normalised first.

Example:
    result = parse('{"user": {"name": "Al"}, // note\\n}')
    result.tree.root.type      # NodeType.OBJECT
    result.diagnostics         # []
"""

import re
from enum import Enum
from typing import Any, List, Optional, Tuple

from .models import (
    ArrayNode,
    BooleanNode,
    DocumentTree,
    Node,
    NullNode,
    NumberNode,
    ObjectNode,
    ParseDiagnostic,
    ParseErrorCode,
    ParseResult,
    PropertyNode,
    StringNode,
)


class Token(Enum):
    OPEN_BRACE = "{"
    CLOSE_BRACE = "}"
    OPEN_BRACKET = "["
    CLOSE_BRACKET = "]"
    COMMA = ","
    COLON = ":"
    STRING = "string"
    NUMBER = "number"
    TRUE = "true"
    FALSE = "false"
    NULL = "null"
    LINE_COMMENT = "line-comment"
    BLOCK_COMMENT = "block-comment"
    TRIVIA = "trivia"
    UNKNOWN = "unknown"
    EOF = "eof"


_PUNCTUATION = {
    "{": Token.OPEN_BRACE,
    "}": Token.CLOSE_BRACE,
    "[": Token.OPEN_BRACKET,
    "]": Token.CLOSE_BRACKET,
    ",": Token.COMMA,
    ":": Token.COLON,
}
_KEYWORDS = {"true": Token.TRUE, "false": Token.FALSE, "null": Token.NULL}

_WHITESPACE_RE = re.compile(r"[ \t\r\n\f\v\u00a0\ufeff\u2028\u2029]+")
# Lenient number shape; anything it accepts but _STRICT_NUMBER_RE rejects
# is still a NUMBER token, reported as InvalidNumberFormat.
_NUMBER_RE = re.compile(r"-?\d*(?:\.\d*)?(?:[eE][+-]?\d*)?")
_STRICT_NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?\Z")
_WORD_RE = re.compile(r"[A-Za-z_$][\w$]*")
_STRING_CHUNK_RE = re.compile(r'[^"\\\x00-\x1f]+')
_HEX4_RE = re.compile(r"[0-9a-fA-F]{4}")

# Objects and arrays nested deeper than this are kept as empty nodes.
MAX_NESTING_DEPTH = 128

_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


class Scanner:
    """Splits JSONC text into tokens, one ``scan()`` call at a time.

    After each call, ``token``, ``token_offset``, ``pos`` (the token end),
    ``value`` (decoded string or number) and ``error`` describe the token.
    """

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.token = Token.EOF
        self.token_offset = 0
        self.value: Any = None
        self.error: Optional[ParseErrorCode] = None

    @property
    def token_length(self) -> int:
        return self.pos - self.token_offset

    def scan(self) -> Token:
        text = self.text
        self.value = None
        self.error = None
        self.token_offset = self.pos

        if self.pos >= len(text):
            self.token = Token.EOF
            return self.token

        ch = text[self.pos]

        m = _WHITESPACE_RE.match(text, self.pos)
        if m:
            self.pos = m.end()
            self.token = Token.TRIVIA
            return self.token

        if ch in _PUNCTUATION:
            self.pos += 1
            self.token = _PUNCTUATION[ch]
            return self.token

        if ch == '"':
            self._scan_string()
            self.token = Token.STRING
            return self.token

        if ch == "/":
            nxt = text[self.pos + 1:self.pos + 2]
            if nxt == "/":
                end = text.find("\n", self.pos)
                self.pos = len(text) if end == -1 else end
                self.token = Token.LINE_COMMENT
                return self.token
            if nxt == "*":
                end = text.find("*/", self.pos + 2)
                if end == -1:
                    self.pos = len(text)
                    self.error = ParseErrorCode.UNEXPECTED_END_OF_COMMENT
                else:
                    self.pos = end + 2
                self.token = Token.BLOCK_COMMENT
                return self.token

        if ch == "-" or ch.isdigit():
            m = _NUMBER_RE.match(text, self.pos)
            raw = m.group(0) if m and m.group(0) else ch
            self.pos += len(raw)
            self.value = self._number_value(raw)
            self.token = Token.NUMBER
            return self.token

        m = _WORD_RE.match(text, self.pos)
        if m:
            self.pos = m.end()
            self.token = _KEYWORDS.get(m.group(0), Token.UNKNOWN)
            return self.token

        self.pos += 1
        self.token = Token.UNKNOWN
        return self.token

    def _number_value(self, raw: str) -> Any:
        if not _STRICT_NUMBER_RE.match(raw):
            self.error = ParseErrorCode.INVALID_NUMBER_FORMAT
        try:
            if any(c in raw for c in ".eE"):
                return float(raw)
            return int(raw)
        except ValueError:
            return 0

    def _scan_string(self) -> None:
        text = self.text
        pos = self.pos + 1
        parts: List[str] = []
        while True:
            if pos >= len(text):
                self.error = ParseErrorCode.UNEXPECTED_END_OF_STRING
                break
            m = _STRING_CHUNK_RE.match(text, pos)
            if m:
                parts.append(m.group(0))
                pos = m.end()
                continue
            ch = text[pos]
            if ch == '"':
                pos += 1
                break
            if ch == "\\":
                pos = self._scan_escape(pos + 1, parts)
                continue
            if ch in "\r\n":
                # Strings never span lines; stop here so the rest of the
                # document still tokenises normally.
                self.error = ParseErrorCode.UNEXPECTED_END_OF_STRING
                break
            self.error = ParseErrorCode.INVALID_CHARACTER
            parts.append(ch)
            pos += 1
        self.pos = pos
        self.value = "".join(parts)

    def _scan_escape(self, pos: int, parts: List[str]) -> int:
        text = self.text
        if pos >= len(text):
            self.error = ParseErrorCode.UNEXPECTED_END_OF_STRING
            return pos
        ch = text[pos]
        if ch in _ESCAPES:
            parts.append(_ESCAPES[ch])
            return pos + 1
        if ch == "u":
            m = _HEX4_RE.match(text, pos + 1)
            if not m:
                self.error = ParseErrorCode.INVALID_UNICODE
                return pos + 1
            code = int(m.group(0), 16)
            pos = m.end()
            # Combine a UTF-16 surrogate pair into one code point.
            if 0xD800 <= code <= 0xDBFF and text.startswith("\\u", pos):
                low = _HEX4_RE.match(text, pos + 2)
                if low and 0xDC00 <= int(low.group(0), 16) <= 0xDFFF:
                    code = 0x10000 + ((code - 0xD800) << 10) + (int(low.group(0), 16) - 0xDC00)
                    pos = low.end()
            parts.append(chr(code))
            return pos
        self.error = ParseErrorCode.INVALID_ESCAPE_CHARACTER
        parts.append(ch)
        return pos + 1


class _TreeBuilder:
    """Recursive-descent parser that fills a DocumentTree arena.

    Nesting is capped at ``MAX_NESTING_DEPTH``; a deeper composite becomes an
    empty node spanning its source text, with a NestingTooDeep diagnostic.
    """

    def __init__(self, text: str, allow_trailing_comma: bool, allow_comments: bool):
        self.scanner = Scanner(text)
        self.tree = DocumentTree(text=text)
        self.diagnostics: List[ParseDiagnostic] = []
        self.allow_trailing_comma = allow_trailing_comma
        self.allow_comments = allow_comments
        self._next_id = 0
        self._depth = 0
        # End offset of the last significant token consumed.
        self._last_end = 0

    # -- token stream ------------------------------------------------------

    @property
    def token(self) -> Token:
        return self.scanner.token

    def _report(self, code: ParseErrorCode, offset: Optional[int] = None, length: Optional[int] = None) -> None:
        s = self.scanner
        self.diagnostics.append(ParseDiagnostic(
            code=code,
            offset=s.token_offset if offset is None else offset,
            length=s.token_length if length is None else length,
        ))

    def _advance(self) -> Token:
        """Consume the current token and move to the next significant one."""
        s = self.scanner
        if s.token not in (Token.TRIVIA, Token.LINE_COMMENT, Token.BLOCK_COMMENT):
            self._last_end = s.pos
        while True:
            token = s.scan()
            if s.error is not None:
                self._report(s.error)
            if token in (Token.LINE_COMMENT, Token.BLOCK_COMMENT):
                if not self.allow_comments:
                    self._report(ParseErrorCode.INVALID_COMMENT_TOKEN)
                continue
            if token == Token.TRIVIA:
                continue
            if token == Token.UNKNOWN:
                self._report(ParseErrorCode.INVALID_SYMBOL)
                continue
            return token

    def _recover(
        self,
        code: ParseErrorCode,
        skip_until_after: Tuple[Token, ...] = (),
        skip_until: Tuple[Token, ...] = (),
    ) -> None:
        """Report ``code`` and skip tokens until a resynchronisation point."""
        self._report(code)
        if not skip_until_after and not skip_until:
            return
        token = self.token
        while token != Token.EOF:
            if token in skip_until_after:
                self._advance()
                return
            if token in skip_until:
                return
            token = self._advance()

    def _skip_nested(self, close_code: ParseErrorCode) -> None:
        """Consume the composite at the current token without building nodes."""
        self._report(ParseErrorCode.NESTING_TOO_DEEP)
        depth = 0
        token = self.token
        while token != Token.EOF:
            if token in (Token.OPEN_BRACE, Token.OPEN_BRACKET):
                depth += 1
            elif token in (Token.CLOSE_BRACE, Token.CLOSE_BRACKET):
                depth -= 1
                if depth == 0:
                    self._advance()
                    return
            token = self._advance()
        self._report(close_code)

    # -- node construction -------------------------------------------------

    def _add(self, node_cls, parent: Optional[int], **kwargs) -> Node:
        node = node_cls(
            id=self._next_id,
            offset=self.scanner.token_offset,
            length=self.scanner.token_length,
            parent=parent,
            **kwargs,
        )
        self._next_id += 1
        self.tree.nodes[node.id] = node
        return node

    def _finish(self, node: Node) -> None:
        node.length = max(self._last_end - node.offset, 0)

    # -- grammar -----------------------------------------------------------

    def parse(self) -> ParseResult:
        self._advance()
        if self.token == Token.EOF:
            self._report(ParseErrorCode.VALUE_EXPECTED)
        else:
            root = self._parse_value(None)
            if root is None:
                self._recover(ParseErrorCode.VALUE_EXPECTED)
            else:
                self.tree.root_id = root.id
                if self.token != Token.EOF:
                    self._report(ParseErrorCode.END_OF_FILE_EXPECTED)
        return ParseResult(tree=self.tree, diagnostics=self.diagnostics)

    def _parse_value(self, parent: Optional[int]) -> Optional[Node]:
        token = self.token
        s = self.scanner
        if token == Token.OPEN_BRACE:
            return self._parse_object(parent)
        if token == Token.OPEN_BRACKET:
            return self._parse_array(parent)
        if token == Token.STRING:
            node = self._add(StringNode, parent, value=s.value)
        elif token == Token.NUMBER:
            node = self._add(NumberNode, parent, value=s.value)
        elif token == Token.TRUE:
            node = self._add(BooleanNode, parent, value=True)
        elif token == Token.FALSE:
            node = self._add(BooleanNode, parent, value=False)
        elif token == Token.NULL:
            node = self._add(NullNode, parent)
        else:
            return None
        self._advance()
        return node

    def _parse_object(self, parent: Optional[int]) -> ObjectNode:
        node = self._add(ObjectNode, parent)
        if self._depth >= MAX_NESTING_DEPTH:
            self._skip_nested(ParseErrorCode.CLOSE_BRACE_EXPECTED)
            self._finish(node)
            return node
        self._depth += 1
        self._advance()  # consume '{'
        needs_comma = False
        while self.token not in (Token.CLOSE_BRACE, Token.EOF):
            if self.token == Token.COMMA:
                if not needs_comma:
                    self._recover(ParseErrorCode.PROPERTY_NAME_EXPECTED)
                self._advance()  # consume ','
                if self.token == Token.CLOSE_BRACE and self.allow_trailing_comma:
                    break
            elif needs_comma:
                self._recover(ParseErrorCode.COMMA_EXPECTED)
            prop = self._parse_property(node.id)
            if prop is not None:
                node.children.append(prop.id)
            needs_comma = True
        if self.token == Token.CLOSE_BRACE:
            self._advance()
        else:
            self._report(ParseErrorCode.CLOSE_BRACE_EXPECTED)
        self._depth -= 1
        self._finish(node)
        return node

    def _parse_property(self, parent: int) -> Optional[PropertyNode]:
        if self.token != Token.STRING:
            self._recover(
                ParseErrorCode.PROPERTY_NAME_EXPECTED,
                skip_until=(Token.CLOSE_BRACE, Token.COMMA),
            )
            return None
        prop = self._add(PropertyNode, parent)
        key = self._add(StringNode, prop.id, value=self.scanner.value)
        prop.key = key.id
        self._advance()  # consume key
        if self.token == Token.COLON:
            self._advance()  # consume ':'
            value = self._parse_value(prop.id)
            if value is None:
                self._recover(
                    ParseErrorCode.VALUE_EXPECTED,
                    skip_until=(Token.CLOSE_BRACE, Token.COMMA),
                )
            else:
                prop.value = value.id
        else:
            self._recover(
                ParseErrorCode.COLON_EXPECTED,
                skip_until=(Token.CLOSE_BRACE, Token.COMMA),
            )
        self._finish(prop)
        return prop

    def _parse_array(self, parent: Optional[int]) -> ArrayNode:
        node = self._add(ArrayNode, parent)
        if self._depth >= MAX_NESTING_DEPTH:
            self._skip_nested(ParseErrorCode.CLOSE_BRACKET_EXPECTED)
            self._finish(node)
            return node
        self._depth += 1
        self._advance()  # consume '['
        needs_comma = False
        while self.token not in (Token.CLOSE_BRACKET, Token.EOF):
            if self.token == Token.COMMA:
                if not needs_comma:
                    self._recover(ParseErrorCode.VALUE_EXPECTED)
                self._advance()  # consume ','
                if self.token == Token.CLOSE_BRACKET and self.allow_trailing_comma:
                    break
            elif needs_comma:
                self._recover(ParseErrorCode.COMMA_EXPECTED)
            element = self._parse_value(node.id)
            if element is None:
                self._recover(
                    ParseErrorCode.VALUE_EXPECTED,
                    skip_until=(Token.CLOSE_BRACKET, Token.COMMA),
                )
            else:
                node.children.append(element.id)
            needs_comma = True
        if self.token == Token.CLOSE_BRACKET:
            self._advance()
        else:
            self._report(ParseErrorCode.CLOSE_BRACKET_EXPECTED)
        self._depth -= 1
        self._finish(node)
        return node


def parse(
    text: str,
    *,
    allow_trailing_comma: bool = True,
    allow_comments: bool = True,
    version: Optional[int] = None,
) -> ParseResult:
    """Parse JSONC text into a DocumentTree plus diagnostics.

    Args:
        text: Document text. Offsets in the result index into this string.
        allow_trailing_comma: Accept ``[1, 2,]`` and ``{"a": 1,}``.
        allow_comments: Accept ``//`` and ``/* */`` comments.
        version: Document version to stamp on the tree.

    Returns:
        ParseResult with the (possibly partial) tree and any diagnostics.
    """
    builder = _TreeBuilder(text, allow_trailing_comma, allow_comments)
    result = builder.parse()
    result.tree.version = version
    return result


def node_value(tree: DocumentTree, node: Optional[Node] = None) -> Any:
    """Convert a subtree (the whole tree by default) into Python values.

    Later duplicate keys overwrite earlier ones, matching ``json.loads``.
    Properties missing a value are skipped.
    """
    if node is None:
        node = tree.root
        if node is None:
            return None
    if isinstance(node, ObjectNode):
        result = {}
        for prop_id in node.children:
            prop = tree.get(prop_id)
            value = tree.value_of(prop)
            if value is not None:
                result[tree.property_key(prop)] = node_value(tree, value)
        return result
    if isinstance(node, ArrayNode):
        return [node_value(tree, tree.get(i)) for i in node.children]
    if isinstance(node, PropertyNode):
        value = tree.value_of(node)
        return node_value(tree, value) if value is not None else None
    return node.value
