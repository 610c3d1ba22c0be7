"""Typed schema inferred from template variable references.

The schema is a tree of three node kinds:

- ``ObjectSchema``: a value whose fields are referenced (``{{user.name}}``
  makes ``user`` an object with a ``name`` field).
- ``ArraySchema``: a value that is iterated (``{{#each items}}`` or the
  bare section ``{{#items}}``); its ``element`` schema holds the references
  made inside the loop body.
- ``LeafSchema``: a value that is referenced but never looked into.

``Schema.paths()`` flattens the tree into canonical dotted paths, the form
the tree pruner matches document nodes against. Array elements are written
with the ``#`` wildcard segment, so ``items.#.name`` covers the ``name`` of
every element of ``items``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Tuple, Union

# Path segment standing for "any array index".
WILDCARD = "#"

# Keys of the legacy nested-mapping form that carry metadata, not fields.
LEGACY_TYPE_KEY = "_type"
LEGACY_OPTIONAL_KEY = "_optional"
_LEGACY_META_KEYS = frozenset({LEGACY_TYPE_KEY, LEGACY_OPTIONAL_KEY})


@dataclass
class LeafSchema:
    optional: bool = False

    @property
    def kind(self) -> str:
        return "leaf"


@dataclass
class ObjectSchema:
    fields: Dict[str, "SchemaNode"] = field(default_factory=dict)
    optional: bool = False

    @property
    def kind(self) -> str:
        return "object"


@dataclass
class ArraySchema:
    """An iterated value.

    ``section`` marks a value only ever opened as a bare ``{{#name}}`` block.
    Handlebars iterates such a value when it is a list but renders the block
    once with the value as context when it is an object, so the element
    fields are also listed directly under the value.
    """
    element: ObjectSchema = field(default_factory=ObjectSchema)
    optional: bool = False
    section: bool = False

    @property
    def kind(self) -> str:
        return "array"


SchemaNode = Union[LeafSchema, ObjectSchema, ArraySchema]


def join_path(prefix: str, segment: str) -> str:
    """Append one segment to a dotted path ("" is the root path)."""
    return f"{prefix}.{segment}" if prefix else segment


def _iter_paths(node: SchemaNode, prefix: str) -> Iterator[str]:
    if isinstance(node, ArraySchema):
        element_path = join_path(prefix, WILDCARD)
        yield element_path
        yield from _iter_paths(node.element, element_path)
        if node.section:
            yield from _iter_paths(node.element, prefix)
    elif isinstance(node, ObjectSchema):
        for name, child in node.fields.items():
            child_path = join_path(prefix, name)
            yield child_path
            yield from _iter_paths(child, child_path)


@dataclass
class Schema:
    """The merged schema of a template corpus.

    Attributes:
        root: Fields referenced from the top-level template context.
        warnings: Merge conflicts and extraction problems, in the order they
            were found. They never make the schema unusable.
    """

    root: ObjectSchema = field(default_factory=ObjectSchema)
    warnings: List[str] = field(default_factory=list)

    def paths(self) -> FrozenSet[str]:
        """Canonical dotted paths of every referenced value.

        The set is prefix-closed: whenever ``a.b.c`` is present, so are
        ``a.b`` and ``a``.
        """
        return frozenset(_iter_paths(self.root, ""))

    def is_empty(self) -> bool:
        return not self.root.fields

    def get(self, path: str) -> Optional[SchemaNode]:
        """Look up the schema node at a canonical dotted path."""
        if path == "":
            return self.root
        node: SchemaNode = self.root
        for segment in path.split("."):
            if isinstance(node, ArraySchema) and node.section and segment != WILDCARD:
                child = node.element.fields.get(segment)
                if child is None:
                    return None
                node = child
            elif isinstance(node, ArraySchema):
                if segment != WILDCARD:
                    return None
                node = node.element
            elif isinstance(node, ObjectSchema):
                child = node.fields.get(segment)
                if child is None:
                    return None
                node = child
            else:
                return None
        return node

    def to_dict(self) -> Dict[str, Any]:
        """Render in the legacy nested-mapping form (for display and fixtures)."""
        return _node_to_dict(self.root)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Schema":
        """Build a schema from the legacy nested-mapping form.

        Accepted shapes for a field value:
        - a list: an array whose element schema is the first item (if any);
        - a mapping with ``_type: "array"`` or a ``#`` key: an array whose
          element schema is the ``#`` entry;
        - a mapping with other non-metadata keys: an object;
        - anything else (``"_type"``, ``{"_type": "any"}``, None): a leaf.
        ``_type`` and ``_optional`` keys are metadata and never become fields.
        """
        root = _object_from_dict(data or {})
        return cls(root=root)


def _node_from_value(value: Any) -> SchemaNode:
    if isinstance(value, list):
        element = value[0] if value and isinstance(value[0], dict) else {}
        return ArraySchema(element=_object_from_dict(element))
    if isinstance(value, dict):
        optional = bool(value.get(LEGACY_OPTIONAL_KEY, False))
        if value.get(LEGACY_TYPE_KEY) == "array" or WILDCARD in value:
            element = value.get(WILDCARD)
            element_schema = _object_from_dict(element if isinstance(element, dict) else {})
            return ArraySchema(element=element_schema, optional=optional)
        if any(k not in _LEGACY_META_KEYS for k in value):
            obj = _object_from_dict(value)
            obj.optional = optional
            return obj
        return LeafSchema(optional=optional)
    return LeafSchema()


def _object_from_dict(data: Dict[str, Any]) -> ObjectSchema:
    fields: Dict[str, SchemaNode] = {}
    for key, value in data.items():
        if key in _LEGACY_META_KEYS:
            continue
        fields[key] = _node_from_value(value)
    return ObjectSchema(fields=fields, optional=bool(data.get(LEGACY_OPTIONAL_KEY, False)))


def _node_to_dict(node: SchemaNode) -> Dict[str, Any]:
    if isinstance(node, ArraySchema):
        return {
            LEGACY_TYPE_KEY: "array",
            LEGACY_OPTIONAL_KEY: node.optional,
            WILDCARD: _node_to_dict(node.element),
        }
    result: Dict[str, Any] = {}
    if isinstance(node, ObjectSchema):
        for name, child in node.fields.items():
            result[name] = _node_to_dict(child)
        return result
    return {LEGACY_TYPE_KEY: "any", LEGACY_OPTIONAL_KEY: node.optional}


def describe(schema: Schema) -> List[Tuple[str, str]]:
    """Flatten a schema into sorted ``(path, kind)`` pairs."""
    rows: List[Tuple[str, str]] = []
    for path in sorted(schema.paths()):
        node = schema.get(path)
        rows.append((path, node.kind if node is not None else "?"))
    return rows
