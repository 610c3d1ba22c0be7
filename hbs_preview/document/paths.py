"""Paths into a DocumentTree.

Two kinds of path are used, and they must not be confused:

- **Canonical path** (``canonical_path``): dotted, with every array index
  replaced by the ``#`` wildcard. ``{"items": [{"id": 1}, {"id": 2}]}`` gives
  both ``id`` nodes the canonical path ``items.#.id``. This is what schema
  paths are compared against.
- **Locator path** (``node_path``, ``locate``, ``resolve``): a tuple of key
  strings and integer indices naming exactly one node, e.g.
  ``("items", 1, "id")``. Trees are rebuilt after every edit, so callers keep
  locator paths (or their JSON Pointer form, ``/items/1/id``) instead of node
  references and resolve them again against the newest tree.
"""

from typing import List, Optional, Tuple, Union

from ..schema.models import WILDCARD, join_path
from .models import ArrayNode, DocumentTree, Node, ObjectNode, PropertyNode

Segment = Union[str, int]
NodePath = Tuple[Segment, ...]


def _segments(tree: DocumentTree, node: Node, wildcard: bool) -> List[Segment]:
    segments: List[Segment] = []
    current = node
    while current.parent is not None:
        parent = tree.get(current.parent)
        if isinstance(parent, ArrayNode):
            segments.append(WILDCARD if wildcard else parent.children.index(current.id))
        elif isinstance(current, PropertyNode):
            segments.append(tree.property_key(current))
        # Key and value nodes add nothing: their property contributes the key.
        current = parent
    segments.reverse()
    return segments


def canonical_path(tree: DocumentTree, node: Node) -> str:
    """Dotted schema path of ``node``; the root's path is ``""``.

    A property, its key node and its value node share one canonical path.
    """
    path = ""
    for segment in _segments(tree, node, wildcard=True):
        path = join_path(path, str(segment))
    return path


def node_path(tree: DocumentTree, node: Node) -> NodePath:
    """Locator path of ``node`` (keys and concrete indices)."""
    return tuple(_segments(tree, node, wildcard=False))


def find_node_at_offset(
    tree: DocumentTree,
    offset: int,
    include_right_bound: bool = False,
) -> Optional[Node]:
    """Deepest node whose span contains ``offset``."""
    node = tree.root
    if node is None or not node.contains(offset, include_right_bound):
        return None
    while True:
        for child in tree.children_of(node):
            if child.contains(offset, include_right_bound):
                node = child
                break
        else:
            return node


def locate(tree: DocumentTree, offset: int) -> Optional[NodePath]:
    """Locator path of the node containing ``offset``, or None.

    An offset inside a property key yields the property's path, which
    ``resolve`` maps to the property's value.
    """
    node = find_node_at_offset(tree, offset)
    if node is None:
        return None
    return node_path(tree, node)


def resolve(tree: DocumentTree, path: NodePath) -> Optional[Node]:
    """Value node at a locator path, or None if the path no longer exists.

    String segments of digits address array indices and integer segments
    address object keys when the node kind calls for it, so paths parsed
    from JSON Pointers resolve too. With duplicate keys the first wins.
    """
    node = tree.root
    for segment in path:
        if node is None:
            return None
        if isinstance(node, ObjectNode):
            key = str(segment)
            for prop_id in node.children:
                prop = tree.get(prop_id)
                if tree.property_key(prop) == key:
                    node = tree.value_of(prop)
                    break
            else:
                return None
        elif isinstance(node, ArrayNode):
            if isinstance(segment, str):
                if not segment.isdigit():
                    return None
                segment = int(segment)
            if not 0 <= segment < len(node.children):
                return None
            node = tree.get(node.children[segment])
        else:
            return None
    return node


def _escape(segment: str) -> str:
    return segment.replace("~", "~0").replace("/", "~1")


def _unescape(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def to_pointer(path: NodePath) -> str:
    """JSON Pointer (RFC 6901) form of a locator path; root is ``""``."""
    return "".join("/" + _escape(str(segment)) for segment in path)


def from_pointer(pointer: str) -> NodePath:
    """Parse a JSON Pointer into a locator path of string segments."""
    if not pointer:
        return ()
    if not pointer.startswith("/"):
        raise ValueError(f"Invalid JSON Pointer: {pointer!r}")
    return tuple(_unescape(part) for part in pointer[1:].split("/"))
