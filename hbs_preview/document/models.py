"""Data model for parsed JSON-with-comments documents.

A parse produces a ``DocumentTree``: an arena of nodes keyed by integer id.
Parent and child links are ids, never object references, and ids are only
meaningful within the tree that produced them. After the text changes the
tree is rebuilt and nodes are found again by path (see ``paths.py``).

Each JSON value kind has its own node class carrying only the fields that
kind needs: composites carry child ids, scalars carry a value, and a
property carries the ids of its key and value nodes.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, Iterator, List, Optional, Union


class NodeType(Enum):
    """Kind of a document tree node."""
    OBJECT = "object"
    ARRAY = "array"
    PROPERTY = "property"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"


SCALAR_TYPES = frozenset({NodeType.STRING, NodeType.NUMBER, NodeType.BOOLEAN, NodeType.NULL})
COMPOSITE_TYPES = frozenset({NodeType.OBJECT, NodeType.ARRAY})


@dataclass
class Node:
    """Common fields of every node.

    Attributes:
        id: Arena key, unique within one tree.
        offset: Start index of the node in the parsed text.
        length: Number of characters the node spans.
        parent: Id of the parent node (None for the root).
    """

    id: int
    offset: int
    length: int
    parent: Optional[int] = None

    type: ClassVar[NodeType]

    @property
    def end(self) -> int:
        return self.offset + self.length

    @property
    def child_ids(self) -> List[int]:
        return []

    @property
    def is_scalar(self) -> bool:
        return self.type in SCALAR_TYPES

    @property
    def is_composite(self) -> bool:
        return self.type in COMPOSITE_TYPES

    def contains(self, offset: int, include_right_bound: bool = False) -> bool:
        if include_right_bound:
            return self.offset <= offset <= self.end
        return self.offset <= offset < self.end


@dataclass
class ObjectNode(Node):
    """``{...}``; children are PropertyNode ids in source order."""
    children: List[int] = field(default_factory=list)
    type: ClassVar[NodeType] = NodeType.OBJECT

    @property
    def child_ids(self) -> List[int]:
        return self.children


@dataclass
class ArrayNode(Node):
    """``[...]``; children are element ids in source order."""
    children: List[int] = field(default_factory=list)
    type: ClassVar[NodeType] = NodeType.ARRAY

    @property
    def child_ids(self) -> List[int]:
        return self.children


@dataclass
class PropertyNode(Node):
    """A ``"key": value`` member of an object.

    ``value`` is None when error recovery produced a key without a value.
    """
    key: Optional[int] = None
    value: Optional[int] = None
    type: ClassVar[NodeType] = NodeType.PROPERTY

    @property
    def child_ids(self) -> List[int]:
        return [i for i in (self.key, self.value) if i is not None]


@dataclass
class StringNode(Node):
    value: str = ""
    type: ClassVar[NodeType] = NodeType.STRING


@dataclass
class NumberNode(Node):
    value: Union[int, float] = 0
    type: ClassVar[NodeType] = NodeType.NUMBER


@dataclass
class BooleanNode(Node):
    value: bool = False
    type: ClassVar[NodeType] = NodeType.BOOLEAN


@dataclass
class NullNode(Node):
    type: ClassVar[NodeType] = NodeType.NULL

    @property
    def value(self) -> None:
        return None


ScalarNode = Union[StringNode, NumberNode, BooleanNode, NullNode]


class ParseErrorCode(Enum):
    """Syntax problems reported by the parser."""
    INVALID_SYMBOL = "InvalidSymbol"
    INVALID_NUMBER_FORMAT = "InvalidNumberFormat"
    PROPERTY_NAME_EXPECTED = "PropertyNameExpected"
    VALUE_EXPECTED = "ValueExpected"
    COLON_EXPECTED = "ColonExpected"
    COMMA_EXPECTED = "CommaExpected"
    CLOSE_BRACE_EXPECTED = "CloseBraceExpected"
    CLOSE_BRACKET_EXPECTED = "CloseBracketExpected"
    END_OF_FILE_EXPECTED = "EndOfFileExpected"
    INVALID_COMMENT_TOKEN = "InvalidCommentToken"
    UNEXPECTED_END_OF_COMMENT = "UnexpectedEndOfComment"
    UNEXPECTED_END_OF_STRING = "UnexpectedEndOfString"
    INVALID_UNICODE = "InvalidUnicode"
    INVALID_ESCAPE_CHARACTER = "InvalidEscapeCharacter"
    INVALID_CHARACTER = "InvalidCharacter"
    NESTING_TOO_DEEP = "NestingTooDeep"
    UNREADABLE_DOCUMENT = "UnreadableDocument"


_ERROR_MESSAGES = {
    ParseErrorCode.INVALID_SYMBOL: "Invalid symbol",
    ParseErrorCode.INVALID_NUMBER_FORMAT: "Invalid number format",
    ParseErrorCode.PROPERTY_NAME_EXPECTED: "Property name expected",
    ParseErrorCode.VALUE_EXPECTED: "Value expected",
    ParseErrorCode.COLON_EXPECTED: "Colon expected",
    ParseErrorCode.COMMA_EXPECTED: "Comma expected",
    ParseErrorCode.CLOSE_BRACE_EXPECTED: "Closing brace expected",
    ParseErrorCode.CLOSE_BRACKET_EXPECTED: "Closing bracket expected",
    ParseErrorCode.END_OF_FILE_EXPECTED: "End of file expected",
    ParseErrorCode.INVALID_COMMENT_TOKEN: "Comments are not permitted",
    ParseErrorCode.UNEXPECTED_END_OF_COMMENT: "Unterminated block comment",
    ParseErrorCode.UNEXPECTED_END_OF_STRING: "Unterminated string",
    ParseErrorCode.INVALID_UNICODE: "Invalid unicode escape sequence",
    ParseErrorCode.INVALID_ESCAPE_CHARACTER: "Invalid escape character",
    ParseErrorCode.INVALID_CHARACTER: "Invalid character in string",
    ParseErrorCode.NESTING_TOO_DEEP: "Nesting too deep",
    ParseErrorCode.UNREADABLE_DOCUMENT: "Document could not be read",
}


@dataclass
class ParseDiagnostic:
    """A recoverable syntax problem found while parsing."""
    code: ParseErrorCode
    offset: int
    length: int

    @property
    def message(self) -> str:
        return _ERROR_MESSAGES[self.code]

    def format(self, text: Optional[str] = None) -> str:
        """Human-readable form, with line:column when the text is given."""
        if text is None:
            return f"{self.message} at offset {self.offset}"
        line = text.count("\n", 0, self.offset) + 1
        column = self.offset - (text.rfind("\n", 0, self.offset) + 1) + 1
        return f"{self.message} at {line}:{column}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "code": self.code.value,
            "message": self.message,
            "offset": self.offset,
            "length": self.length,
        }


@dataclass
class DocumentTree:
    """Arena of nodes produced by one parse of one document text.

    Attributes:
        text: The exact text that was parsed; all offsets index into it.
        nodes: Node arena keyed by id.
        root_id: Id of the root value, None for empty or unparseable text.
        version: Version of the source document the text came from.
    """

    text: str
    nodes: Dict[int, Node] = field(default_factory=dict)
    root_id: Optional[int] = None
    version: Optional[int] = None

    @property
    def root(self) -> Optional[Node]:
        if self.root_id is None:
            return None
        return self.nodes[self.root_id]

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def get(self, node_id: int) -> Node:
        return self.nodes[node_id]

    def parent_of(self, node: Node) -> Optional[Node]:
        if node.parent is None:
            return None
        return self.nodes[node.parent]

    def children_of(self, node: Node) -> List[Node]:
        return [self.nodes[i] for i in node.child_ids]

    def property_key(self, prop: PropertyNode) -> str:
        """Key string of a property ("" when the key is missing)."""
        if prop.key is None:
            return ""
        key = self.nodes[prop.key]
        return key.value if isinstance(key, StringNode) else ""

    def value_of(self, prop: PropertyNode) -> Optional[Node]:
        if prop.value is None:
            return None
        return self.nodes[prop.value]

    def source(self, node: Node) -> str:
        """Original source text spanned by ``node``."""
        return self.text[node.offset:node.end]

    def walk(self, start: Optional[Node] = None) -> Iterator[Node]:
        """Yield nodes depth-first in source order, starting at ``start``."""
        first = start if start is not None else self.root
        if first is None:
            return
        stack = [first]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(self.nodes[i] for i in reversed(node.child_ids))


@dataclass
class ParseResult:
    """A tree plus the diagnostics collected while building it."""
    tree: DocumentTree
    diagnostics: List[ParseDiagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.diagnostics
