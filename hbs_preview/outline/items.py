"""Display model for outline entries."""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..document.models import NodeType

CHANGE_VALUE_COMMAND = "hbsPreview.changeValue"
OPEN_SELECTION_COMMAND = "hbsPreview.openSelection"

RESOURCES_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "resources")

# Value kinds that have an icon.
_ICON_TYPES = (NodeType.BOOLEAN, NodeType.STRING, NodeType.NUMBER)


class OutlineState(Enum):
    """Lifecycle of an OutlineProvider."""
    UNINITIALIZED = "uninitialized"
    SCHEMA_LOADING = "schema_loading"
    READY = "ready"
    REFRESHING = "refreshing"


class CollapsibleState(Enum):
    NONE = "none"
    COLLAPSED = "collapsed"
    EXPANDED = "expanded"


@dataclass(frozen=True)
class IconPath:
    light: str
    dark: str


def icon_for(node_type: NodeType) -> Optional[IconPath]:
    """Light/dark icon files for a value kind, None if it has no icon."""
    if node_type not in _ICON_TYPES:
        return None
    name = f"{node_type.value}.svg"
    return IconPath(
        light=os.path.join(RESOURCES_DIR, "light", name),
        dark=os.path.join(RESOURCES_DIR, "dark", name),
    )


@dataclass
class OutlineCommand:
    """Command invoked when an entry is activated."""
    command: str
    title: str = ""
    arguments: List[Any] = field(default_factory=list)


@dataclass
class OutlineItem:
    """Everything a tree view needs to draw one entry.

    Attributes:
        id: JSON Pointer of the entry's value in the data document.
        label: ``"{ } key"``, ``"[ ] key"`` or ``"key: <literal>"``.
        collapsible_state: Expanded for top-level composites, collapsed for
            deeper ones, none for scalars.
        icon_path: Icon files for string, number and boolean values.
        context_value: The value's node type, used to pick context actions.
        command: For scalars, the change-value command with the editable
            range as its argument.
    """
    id: str
    label: str
    collapsible_state: CollapsibleState = CollapsibleState.NONE
    icon_path: Optional[IconPath] = None
    context_value: Optional[str] = None
    command: Optional[OutlineCommand] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.id,
            "label": self.label,
            "collapsibleState": self.collapsible_state.value,
        }
        if self.icon_path:
            result["iconPath"] = {"light": self.icon_path.light, "dark": self.icon_path.dark}
        if self.context_value:
            result["contextValue"] = self.context_value
        if self.command:
            result["command"] = {
                "command": self.command.command,
                "title": self.command.title,
                "arguments": [
                    a.to_dict() if hasattr(a, "to_dict") else a for a in self.command.arguments
                ],
            }
        return result
