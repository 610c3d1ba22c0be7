"""Restrict a DocumentTree to the values the templates reference.

A node survives when its canonical path is in the schema path set. The root
always survives, and a property is kept or dropped together with its key and
value. Pruning walks depth-first and stops at the first uncovered node, so
descendants of a removed node are never tested; because schema path sets are
prefix-closed this gives the same result as testing every node on its own
(``is_covered``).
"""

import dataclasses
from typing import AbstractSet, List, Tuple

from ..schema.models import WILDCARD, join_path
from .models import ArrayNode, DocumentTree, Node, ObjectNode, PropertyNode
from .paths import canonical_path


def prune(tree: DocumentTree, schema_paths: AbstractSet[str]) -> DocumentTree:
    """Return a new tree holding only schema-covered nodes.

    The input tree is not modified. Surviving nodes keep their ids and
    offsets, and children lists only reference surviving nodes.

    Args:
        tree: Parsed document tree.
        schema_paths: Canonical paths from ``Schema.paths()``.

    Returns:
        The pruned tree (same text and version as the input).
    """
    pruned = DocumentTree(text=tree.text, root_id=tree.root_id, version=tree.version)
    root = tree.root
    if root is None:
        return pruned

    stack: List[Tuple[Node, str]] = [(root, "")]
    while stack:
        node, path = stack.pop()
        if isinstance(node, ObjectNode):
            kept: List[int] = []
            for prop_id in node.children:
                prop = tree.get(prop_id)
                prop_path = join_path(path, tree.property_key(prop))
                if prop_path not in schema_paths:
                    continue
                kept.append(prop_id)
                pruned.nodes[prop_id] = dataclasses.replace(prop)
                if prop.key is not None:
                    pruned.nodes[prop.key] = dataclasses.replace(tree.get(prop.key))
                value = tree.value_of(prop)
                if value is not None:
                    stack.append((value, prop_path))
            pruned.nodes[node.id] = dataclasses.replace(node, children=kept)
        elif isinstance(node, ArrayNode):
            element_path = join_path(path, WILDCARD)
            if element_path in schema_paths:
                pruned.nodes[node.id] = dataclasses.replace(node, children=list(node.children))
                stack.extend((tree.get(i), element_path) for i in node.children)
            else:
                pruned.nodes[node.id] = dataclasses.replace(node, children=[])
        else:
            pruned.nodes[node.id] = dataclasses.replace(node)
    return pruned


def is_covered(tree: DocumentTree, node: Node, schema_paths: AbstractSet[str]) -> bool:
    """Test a single node against the schema, independently of its ancestors."""
    if node.parent is None:
        return True
    parent = tree.get(node.parent)
    if isinstance(parent, PropertyNode) and parent.key == node.id:
        return is_covered(tree, parent, schema_paths)
    return canonical_path(tree, node) in schema_paths
