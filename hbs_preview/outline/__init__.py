"""Outline projection of the pruned data tree."""

from .items import CollapsibleState, IconPath, OutlineCommand, OutlineItem, OutlineState
from .provider import OutlineProvider

__all__ = [
    "CollapsibleState",
    "IconPath",
    "OutlineCommand",
    "OutlineItem",
    "OutlineProvider",
    "OutlineState",
]
