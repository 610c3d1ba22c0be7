"""Infer a data schema from Handlebars template source.

Templates are scanned textually, tag by tag; nothing is compiled. A stack of
block frames tracks which part of the schema the current template context
refers to, so ``{{#each items}}{{name}}{{/each}}`` records ``name`` under
the element schema of ``items`` rather than at the top level.

Merge policy when the same path is seen more than once:

- a leaf becomes an object when a field of it is referenced;
- a leaf becomes an array when it is iterated (a warning is recorded if it
  was also output directly, since a value cannot be both);
- a bare section ``{{#user}}`` over a new value records its body under the
  element schema and marks the array as a section, so the same fields are
  also matched directly under ``user``; over a known object it acts like
  ``with``, and ``each`` turns a section into a plain array;
- an object that is iterated, or an array whose fields are referenced,
  keeps its first classification and a warning is recorded. The block body
  that caused the conflict is then scanned without a context, so its
  relative references are dropped.

Extraction never raises. Malformed or unbalanced tags are skipped and an
unexpected failure yields an empty schema with a warning.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .models import (
    WILDCARD,
    ArraySchema,
    LeafSchema,
    ObjectSchema,
    Schema,
    SchemaNode,
    join_path,
)

logger = logging.getLogger(__name__)

# Comments first so "}}" inside {{!-- --}} does not end the tag early.
_TAG_RE = re.compile(
    r"\{\{~?!--.*?--~?\}\}"
    r"|\{\{~?!.*?\}\}"
    r"|\{\{\{~?(.*?)~?\}\}\}"
    r"|\{\{(.*?)\}\}",
    re.DOTALL,
)

_TOKEN_RE = re.compile(
    r'"[^"]*"'
    r"|'[^']*'"
    r"|[()]"
    r"|\|[^|]*\|"
    r"|[^\s()=|\[]+="
    r"|(?:\[[^\]]*\]|[^\s()|\[])+"
)

_LITERAL_RE = re.compile(
    r"""^(?:"[^"]*"|'[^']*'|-?\d+(?:\.\d+)?|true|false|null|undefined)$"""
)

_SEGMENT_RE = re.compile(r"\[([^\]]*)\]|([^./\[\]]+)")

# Block helpers that take no path when used bare ({{#each}} alone is
# malformed, not a section over a field named "each").
_BUILTIN_HELPERS = frozenset({"each", "with", "if", "unless", "lookup", "log"})


def _tokenize(expression: str) -> List[str]:
    return _TOKEN_RE.findall(expression)


def _split_segments(path: str) -> List[str]:
    return [bracketed or plain for bracketed, plain in _SEGMENT_RE.findall(path)]


def _parse_arguments(tokens: List[str]) -> Tuple[List[Optional[str]], List[str], List[str]]:
    """Split the tokens following a helper name.

    Returns:
        (positional, nested, block_params). ``positional`` holds the
        top-level positional arguments, with None where the argument is a
        subexpression. ``nested`` holds references found in hash values and
        subexpression arguments. ``block_params`` are the names from
        ``as |a b|``.
    """
    positional: List[Optional[str]] = []
    nested: List[str] = []
    block_params: List[str] = []
    depth = 0
    expect_helper = False
    pending_hash = False
    for i, token in enumerate(tokens):
        if token == "(":
            if depth == 0 and not pending_hash:
                positional.append(None)
            pending_hash = False
            depth += 1
            expect_helper = True
        elif token == ")":
            depth = max(depth - 1, 0)
        elif token.startswith("|") and token.endswith("|") and len(token) > 1:
            if depth == 0:
                block_params = token[1:-1].split()
        elif token == "as" and depth == 0 and i + 1 < len(tokens) and tokens[i + 1].startswith("|"):
            continue
        elif token.endswith("="):
            pending_hash = depth == 0
        elif expect_helper:
            expect_helper = False
        elif depth > 0 or pending_hash:
            nested.append(token)
            pending_hash = False
        else:
            positional.append(token)
    return positional, nested, block_params


# (schema node, canonical path) of something a reference resolved to.
_Target = Tuple[SchemaNode, str]


@dataclass
class _Frame:
    """One open block.

    ``new_context`` frames (each, with, sections) change what ``this``
    means; ``context`` None marks a body whose context could not be
    determined. Other frames (if, unless, custom helpers) only exist so
    their closing tag can be matched.
    """
    name: str
    context: Optional[ObjectSchema] = None
    path: str = ""
    new_context: bool = False
    aliases: Dict[str, Optional[_Target]] = field(default_factory=dict)


class _SchemaBuilder:
    """Accumulates references from one concatenated template corpus."""

    def __init__(self):
        self.root = ObjectSchema()
        self.warnings: List[str] = []
        self._stack: List[_Frame] = [_Frame(name="", context=self.root, new_context=True)]

    def build(self) -> Schema:
        return Schema(root=self.root, warnings=list(self.warnings))

    def _warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)
            logger.warning("Schema: %s", message)

    # ------------------------------------------------------------------
    # Tag dispatch
    # ------------------------------------------------------------------

    def scan(self, text: str) -> None:
        for match in _TAG_RE.finditer(text):
            triple, body = match.group(1), match.group(2)
            if triple is not None:
                self._mustache(triple.strip())
            elif body is not None:
                self._tag(body.strip().strip("~").strip())
        if len(self._stack) > 1:
            logger.debug(
                "Unclosed blocks at end of templates: %s",
                ", ".join(f.name for f in self._stack[1:]),
            )

    def _tag(self, content: str) -> None:
        if not content:
            return
        lead = content[0]
        if lead in "!>":
            return
        if lead == "#":
            rest = content[1:].strip()
            if rest[:1] in (">", "*"):
                # Partial block or inline partial: body renders in place.
                words = rest[1:].split()
                self._push_neutral(words[0] if words else "")
            else:
                self._open_block(rest)
        elif lead == "^":
            rest = content[1:].strip()
            if rest:
                self._inverse(rest)
            else:
                self._else("")
        elif lead == "/":
            words = content[1:].split()
            if words:
                self._close(words[0])
        elif lead == "&":
            self._mustache(content[1:].strip())
        elif content == "else" or content.startswith("else "):
            self._else(content[4:].strip())
        else:
            self._mustache(content)

    def _mustache(self, content: str) -> None:
        tokens = _tokenize(content)
        if not tokens:
            return
        if len(tokens) == 1:
            self._reference(tokens[0], "leaf")
            return
        positional, nested, _ = _parse_arguments(tokens[1:])
        for ref in [p for p in positional if p] + nested:
            self._reference(ref, "leaf")

    def _open_block(self, content: str) -> None:
        tokens = _tokenize(content)
        if not tokens:
            return
        name = tokens[0]
        positional, nested, block_params = _parse_arguments(tokens[1:])
        first = positional[0] if positional else None
        others = [p for p in positional[1:] if p] + nested

        if name == "each":
            target = self._reference(first, "array") if first else None
            self._push_element(name, target, block_params)
            for ref in others:
                self._reference(ref, "leaf")
        elif name == "with":
            target = self._reference(first, "object") if first else None
            if target is not None and not isinstance(target[0], ObjectSchema):
                target = None
            self._push_context(name, target, block_params)
            for ref in others:
                self._reference(ref, "leaf")
        elif name in ("if", "unless"):
            for ref in [p for p in positional if p] + nested:
                self._reference(ref, "leaf", optional=True)
            self._push_neutral(name)
        elif len(tokens) == 1 and name not in _BUILTIN_HELPERS:
            # {{#items}}...{{/items}}: a section iterates a list and uses an
            # object as the context.
            target = self._reference(name, "section")
            if target is not None and isinstance(target[0], ObjectSchema):
                self._push_context(name, target, [])
            else:
                self._push_element(name, target, [])
        else:
            for ref in [p for p in positional if p] + nested:
                self._reference(ref, "leaf")
            self._push_neutral(name, {param: None for param in block_params})

    def _inverse(self, content: str) -> None:
        tokens = _tokenize(content)
        if not tokens:
            return
        refs = tokens if len(tokens) == 1 else _parse_arguments(tokens[1:])[0]
        for ref in refs:
            if ref:
                self._reference(ref, "leaf", optional=True)
        self._push_neutral(tokens[0])

    def _else(self, content: str) -> None:
        top = self._stack[-1]
        if len(self._stack) > 1 and top.new_context:
            # The inverse of each/with renders in the enclosing context.
            top.new_context = False
            top.aliases = {}
        tokens = _tokenize(content)
        if not tokens:
            return
        optional = tokens[0] in ("if", "unless")
        positional, nested, _ = _parse_arguments(tokens[1:])
        for ref in [p for p in positional if p] + nested:
            self._reference(ref, "leaf", optional=optional)

    def _close(self, name: str) -> None:
        for index in range(len(self._stack) - 1, 0, -1):
            if self._stack[index].name == name:
                del self._stack[index:]
                return
        logger.debug("Ignoring unmatched closing tag {{/%s}}", name)

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def _push_neutral(self, name: str, aliases: Optional[Dict[str, Optional[_Target]]] = None) -> None:
        self._stack.append(_Frame(name=name, aliases=aliases or {}))

    def _push_context(self, name: str, target: Optional[_Target], block_params: List[str]) -> None:
        context = target[0] if target is not None else None
        path = target[1] if target is not None else ""
        aliases: Dict[str, Optional[_Target]] = {}
        if block_params:
            aliases[block_params[0]] = target
            for extra in block_params[1:]:
                aliases[extra] = None
        self._stack.append(
            _Frame(name=name, context=context, path=path, new_context=True, aliases=aliases)
        )

    def _push_element(self, name: str, target: Optional[_Target], block_params: List[str]) -> None:
        element: Optional[_Target] = None
        if target is not None and isinstance(target[0], ArraySchema):
            element = (target[0].element, join_path(target[1], WILDCARD))
        self._push_context(name, element, block_params)

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def _resolve_base(self, expression: str) -> Optional[Tuple[ObjectSchema, str, List[str]]]:
        if expression.startswith("@"):
            if expression.startswith(("@root.", "@root/")):
                return self.root, "", _split_segments(expression[6:])
            return None  # @index, @key, @first, @last, bare @root

        depth = 0
        while expression.startswith("../"):
            depth += 1
            expression = expression[3:]
        explicit = False
        if expression in ("this", "."):
            expression, explicit = "", True
        elif expression.startswith(("this.", "this/")):
            expression, explicit = expression[5:], True
        elif expression.startswith("./"):
            expression, explicit = expression[2:], True
        segments = _split_segments(expression)

        if depth == 0 and not explicit and segments:
            for frame in reversed(self._stack):
                if segments[0] in frame.aliases:
                    alias = frame.aliases[segments[0]]
                    if alias is None or not isinstance(alias[0], ObjectSchema):
                        return None
                    return alias[0], alias[1], segments[1:]

        contexts = [f for f in self._stack if f.new_context]
        if depth >= len(contexts):
            return None
        frame = contexts[-1 - depth]
        if frame.context is None:
            return None
        return frame.context, frame.path, segments

    def _reference(self, expression: str, want: str, optional: bool = False) -> Optional[_Target]:
        """Record a reference and return what it resolved to.

        ``want`` is the kind the usage implies for the final segment:
        "leaf" (output or argument), "object" (with) or "array" (each).
        """
        if _LITERAL_RE.match(expression):
            return None
        base = self._resolve_base(expression)
        if base is None:
            return None
        context, path, segments = base
        if not segments:
            return None
        return self._walk(context, path, segments, want, optional)

    def _walk(
        self,
        context: ObjectSchema,
        path: str,
        segments: List[str],
        want: str,
        optional: bool,
    ) -> Optional[_Target]:
        node: SchemaNode = context
        for index, segment in enumerate(segments):
            last = index == len(segments) - 1
            if isinstance(node, ArraySchema):
                if not segment.isdigit():
                    if segment != "length":
                        self._warn(f"'{path}' is an array; ignoring field reference '{segment}'")
                    return None
                node = node.element
                path = join_path(path, WILDCARD)
                if last and want == "array":
                    self._warn(f"nested iteration over '{path}' is not tracked")
                    return None
                continue
            if not isinstance(node, ObjectSchema):
                return None

            next_segment = None if last else segments[index + 1]
            existing = node.fields.get(segment)
            if isinstance(existing, ArraySchema) and next_segment == "length":
                existing.optional = existing.optional and optional
                return None
            if last:
                kind = want
            elif next_segment.isdigit():
                kind = "array"
            else:
                kind = "object"
            path = join_path(path, segment)
            child = self._merge_field(node, segment, kind, path, optional)
            if child is None:
                return None
            node = child
        return node, path

    def _merge_field(
        self,
        parent: ObjectSchema,
        name: str,
        kind: str,
        path: str,
        optional: bool,
    ) -> Optional[SchemaNode]:
        existing = parent.fields.get(name)
        if existing is None:
            created: SchemaNode
            if kind in ("array", "section"):
                created = ArraySchema(optional=optional, section=kind == "section")
            elif kind == "object":
                created = ObjectSchema(optional=optional)
            else:
                created = LeafSchema(optional=optional)
            parent.fields[name] = created
            return created

        if kind == "section":
            if isinstance(existing, LeafSchema):
                # A section over a scalar is a truthiness check.
                upgraded_section = ArraySchema(optional=existing.optional and optional, section=True)
                parent.fields[name] = upgraded_section
                return upgraded_section
            existing.optional = existing.optional and optional
            return existing

        if isinstance(existing, ArraySchema) and existing.section:
            if kind == "object":
                existing.optional = existing.optional and optional
                return existing.element
            if kind == "array":
                existing.section = False

        if kind == "leaf" or kind == existing.kind:
            existing.optional = existing.optional and optional
            return existing

        if isinstance(existing, LeafSchema):
            upgraded: SchemaNode
            if kind == "array":
                if not existing.optional:
                    self._warn(f"'{path}' is output as a value and also iterated; treating it as an array")
                upgraded = ArraySchema(optional=existing.optional and optional)
            else:
                upgraded = ObjectSchema(optional=existing.optional and optional)
            parent.fields[name] = upgraded
            return upgraded

        self._warn(f"'{path}' is used as both {existing.kind} and {kind}; keeping {existing.kind}")
        return None


def extract_schema(template_sources: Iterable[str]) -> Schema:
    """Build the schema referenced by a template corpus.

    Args:
        template_sources: Template and partial texts. They are scanned as one
            concatenated text, so partial bodies count as top-level context.

    Returns:
        The merged Schema. Empty (with a warning) when there is no source
        or extraction fails.
    """
    sources = [source for source in template_sources if source]
    if not sources:
        message = "no template sources found; schema is empty"
        logger.warning("Schema: %s", message)
        return Schema(warnings=[message])

    builder = _SchemaBuilder()
    try:
        builder.scan("\n".join(sources))
    except Exception as e:
        logger.exception("Schema extraction failed; using an empty schema")
        return Schema(warnings=[f"schema extraction failed: {e}"])

    schema = builder.build()
    logger.debug(
        "Extracted %d schema paths from %d template sources",
        len(schema.paths()),
        len(sources),
    )
    return schema
