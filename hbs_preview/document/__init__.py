"""JSONC document trees: parsing, paths and schema pruning."""

from .models import DocumentTree, Node, NodeType, ParseDiagnostic, ParseErrorCode, ParseResult
from .parser import node_value, parse
from .paths import canonical_path, from_pointer, locate, node_path, resolve, to_pointer
from .pruner import is_covered, prune

__all__ = [
    "DocumentTree",
    "Node",
    "NodeType",
    "ParseDiagnostic",
    "ParseErrorCode",
    "ParseResult",
    "canonical_path",
    "from_pointer",
    "is_covered",
    "locate",
    "node_path",
    "node_value",
    "parse",
    "prune",
    "resolve",
    "to_pointer",
]
