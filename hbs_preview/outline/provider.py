"""Outline of a data document, filtered by the template schema.

The provider owns the latest pruned tree of one data document and answers
tree-view queries about it. Entries are addressed by JSON Pointer strings
(``""`` for the root, ``/user/tags/0`` for an element), never by node
objects, because the tree is rebuilt on every change to the document.

Refresh cycle::

    document change ──> refresh() ──> parse ──> prune ──> commit

Each refresh takes a new generation number. A result is only committed if
its generation is still the latest one when it completes; anything else is
discarded. ``detach`` also bumps the generation, so a refresh that was in
flight when the document pair changed is dropped.
"""

import logging
import threading
from dataclasses import dataclass
from typing import AbstractSet, Callable, List, Optional

from ..document.models import (
    ArrayNode,
    DocumentTree,
    Node,
    ObjectNode,
    ParseDiagnostic,
    ParseErrorCode,
    PropertyNode,
    StringNode,
)
from ..document.parser import parse
from ..document.paths import from_pointer, node_path, resolve, to_pointer
from ..document.pruner import prune
from ..editor import DocumentChangeEvent, EditorSurface, TextDocument, TextRange
from ..errors import StaleEditError
from ..schema.models import Schema
from ..trace import trace
from .items import (
    CHANGE_VALUE_COMMAND,
    OPEN_SELECTION_COMMAND,
    CollapsibleState,
    OutlineCommand,
    OutlineItem,
    OutlineState,
    icon_for,
)

logger = logging.getLogger(__name__)

# Receives the current value text, returns the replacement or None to cancel.
ValuePrompt = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class RefreshTicket:
    """Inputs captured when a refresh starts."""
    generation: int
    text: str
    version: int
    schema_paths: AbstractSet[str]


class OutlineProvider:
    """Schema-filtered outline over one data document."""

    def __init__(
        self,
        editor: Optional[EditorSurface] = None,
        prompt: Optional[ValuePrompt] = None,
    ):
        self._editor = editor
        self._prompt = prompt
        self._lock = threading.Lock()
        self._state = OutlineState.UNINITIALIZED
        self._schema: Optional[Schema] = None
        self._schema_paths: AbstractSet[str] = frozenset()
        self._document: Optional[TextDocument] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._generation = 0
        self._raw_tree: Optional[DocumentTree] = None
        self._tree: Optional[DocumentTree] = None
        self._diagnostics: List[ParseDiagnostic] = []
        self._listeners: List[Callable[[], None]] = []

    @property
    def state(self) -> OutlineState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def document(self) -> Optional[TextDocument]:
        return self._document

    @property
    def schema(self) -> Optional[Schema]:
        return self._schema

    @property
    def tree(self) -> Optional[DocumentTree]:
        """The committed pruned tree."""
        return self._tree

    @property
    def diagnostics(self) -> List[ParseDiagnostic]:
        """Parse diagnostics from the latest committed refresh."""
        return list(self._diagnostics)

    # ------------------------------------------------------------------
    # Schema and document lifecycle
    # ------------------------------------------------------------------

    def begin_schema_load(self) -> None:
        with self._lock:
            if self._state == OutlineState.UNINITIALIZED:
                self._state = OutlineState.SCHEMA_LOADING

    def set_schema(self, schema: Schema) -> None:
        """Install a (re)built schema and refresh against it."""
        with self._lock:
            self._schema = schema
            self._schema_paths = schema.paths()
            if self._state in (OutlineState.UNINITIALIZED, OutlineState.SCHEMA_LOADING):
                self._state = OutlineState.READY
        logger.debug("Outline schema set: %d paths", len(self._schema_paths))
        self.refresh()

    def attach(self, document: TextDocument) -> None:
        """Show ``document`` in the outline, replacing any previous one."""
        self.detach(notify=False)
        with self._lock:
            self._document = document
        self._unsubscribe = document.on_did_change(self._on_document_changed)
        trace("outline", f"attach {document.file_name}")
        if not self.refresh():
            self._notify()

    def detach(self, notify: bool = True) -> None:
        """Drop the current document and discard in-flight refreshes."""
        with self._lock:
            self._generation += 1
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            had_document = self._document is not None
            self._document = None
            self._raw_tree = None
            self._tree = None
            self._diagnostics = []
            if self._state == OutlineState.REFRESHING:
                self._state = OutlineState.READY
        if had_document:
            trace("outline", f"detach: generation={self._generation}")
            if notify:
                self._notify()

    def _on_document_changed(self, event: DocumentChangeEvent) -> None:
        self.refresh()

    # ------------------------------------------------------------------
    # Refresh cycle
    # ------------------------------------------------------------------

    def begin_refresh(self) -> Optional[RefreshTicket]:
        """Start a refresh generation; None if there is nothing to refresh.

        Nothing is refreshed before a schema has been set or while no
        document is attached.
        """
        with self._lock:
            if self._document is None or self._state in (
                OutlineState.UNINITIALIZED,
                OutlineState.SCHEMA_LOADING,
            ):
                return None
            self._generation += 1
            self._state = OutlineState.REFRESHING
            return RefreshTicket(
                generation=self._generation,
                text=self._document.text,
                version=self._document.version,
                schema_paths=self._schema_paths,
            )

    def complete_refresh(self, ticket: RefreshTicket) -> bool:
        """Parse and prune the captured text, then commit if still current.

        A failure while building the tree keeps the previous outline and
        reports an UnreadableDocument diagnostic instead.

        Returns:
            True if the result was committed, False if a newer generation
            superseded it.
        """
        try:
            result = parse(ticket.text, version=ticket.version)
            pruned = prune(result.tree, ticket.schema_paths)
        except Exception:
            logger.exception("Failed to build outline for version %d", ticket.version)
            result = None
            pruned = None

        with self._lock:
            if ticket.generation != self._generation:
                logger.debug(
                    "Discarding stale refresh (generation %d, current %d)",
                    ticket.generation,
                    self._generation,
                )
                trace("outline", f"discard generation={ticket.generation}")
                return False
            if result is None:
                diagnostics = [ParseDiagnostic(
                    code=ParseErrorCode.UNREADABLE_DOCUMENT,
                    offset=0,
                    length=len(ticket.text),
                )]
            else:
                diagnostics = result.diagnostics
            self._diagnostics = diagnostics
            if diagnostics and self._raw_tree is not None:
                # Keep showing the last good document, pruned by the current schema.
                logger.info(
                    "Data document has %d syntax errors; keeping previous outline",
                    len(diagnostics),
                )
                self._tree = prune(self._raw_tree, ticket.schema_paths)
            elif result is not None:
                if not diagnostics:
                    self._raw_tree = result.tree
                self._tree = pruned
            self._state = OutlineState.READY
        trace(
            "outline",
            f"commit generation={ticket.generation} version={ticket.version} "
            f"nodes={len(self._tree) if self._tree is not None else 0} "
            f"diagnostics={len(diagnostics)}",
        )
        self._notify()
        return True

    def refresh(self) -> bool:
        ticket = self.begin_refresh()
        if ticket is None:
            return False
        return self.complete_refresh(ticket)

    def on_did_change(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Register a callback run after each committed refresh."""
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Outline listener failed")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _node(self, path: Optional[str]) -> Optional[Node]:
        tree = self._tree
        if tree is None:
            return None
        if path is None:
            return tree.root
        try:
            return resolve(tree, from_pointer(path))
        except ValueError:
            logger.debug("Invalid outline path %r", path)
            return None

    def children(self, path: Optional[str] = None) -> List[str]:
        """Paths of the entries below ``path`` (the root when None)."""
        tree = self._tree
        node = self._node(path)
        if tree is None or node is None:
            return []
        base = node_path(tree, node)
        if isinstance(node, ObjectNode):
            result = []
            for prop in tree.children_of(node):
                if isinstance(prop, PropertyNode) and prop.value is not None:
                    result.append(to_pointer(base + (tree.property_key(prop),)))
            return result
        if isinstance(node, ArrayNode):
            return [to_pointer(base + (index,)) for index in range(len(node.children))]
        return []

    def label(self, path: str) -> str:
        tree = self._tree
        node = self._node(path)
        if tree is None or node is None:
            return ""
        parent = tree.parent_of(node)
        if isinstance(parent, PropertyNode):
            name = tree.property_key(parent)
        elif isinstance(parent, ArrayNode):
            name = str(parent.children.index(node.id))
        else:
            name = ""
        if isinstance(node, ObjectNode):
            return f"{{ }} {name}".rstrip()
        if isinstance(node, ArrayNode):
            return f"[ ] {name}".rstrip()
        return f"{name}: {tree.source(node)}"

    def is_expandable(self, path: str) -> bool:
        node = self._node(path)
        return node is not None and node.is_composite

    def editable_range(self, path: str) -> Optional[TextRange]:
        """Range of a scalar value's text; string ranges exclude the quotes."""
        tree = self._tree
        node = self._node(path)
        if tree is None or node is None or not node.is_scalar:
            return None
        start, end = node.offset, node.end
        if isinstance(node, StringNode) and node.length >= 2:
            start, end = start + 1, end - 1
        return TextRange(start, end, tree.version)

    def get_tree_item(self, path: str) -> Optional[OutlineItem]:
        node = self._node(path)
        if node is None:
            return None
        if not node.is_composite:
            state = CollapsibleState.NONE
        elif len(from_pointer(path)) <= 1:
            state = CollapsibleState.EXPANDED
        else:
            state = CollapsibleState.COLLAPSED
        command = None
        edit_range = self.editable_range(path)
        if edit_range is not None:
            command = OutlineCommand(CHANGE_VALUE_COMMAND, "", [edit_range])
        return OutlineItem(
            id=path,
            label=self.label(path),
            collapsible_state=state,
            icon_path=icon_for(node.type),
            context_value=node.type.value,
            command=command,
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def apply_edit(self, range: TextRange, new_text: str) -> bool:
        """Replace ``range`` in the data document with ``new_text``.

        The text is inserted verbatim; it is not checked to be a valid value
        of the original type. A stale range leaves the document untouched.
        """
        document = self._document
        if document is None:
            logger.warning("No data document attached; edit ignored")
            return False
        try:
            document.apply_edit(range, new_text)
        except StaleEditError as e:
            logger.warning("Edit rejected for %s: %s", document.file_name, e)
            trace("outline", f"stale edit: {e}")
            return False
        return True

    def rename(self, path: str, new_text: str) -> bool:
        """Re-resolve ``path`` against the current tree and replace its value."""
        edit_range = self.editable_range(path)
        if edit_range is None:
            logger.warning("No editable value at %r", path)
            return False
        return self.apply_edit(edit_range, new_text)

    def edit(self, range: TextRange, prompt: Optional[ValuePrompt] = None) -> bool:
        """Ask for a new value (seeded with the current one) and apply it."""
        document = self._document
        prompt = prompt or self._prompt
        if document is None or prompt is None:
            return False
        value = prompt(document.get_text(range))
        if value is None:
            return False
        return self.apply_edit(range, value)

    def select(self, range: TextRange) -> None:
        """Reveal and select ``range`` in the data document."""
        if self._editor is None or self._document is None:
            return
        self._editor.select(self._document, range)

    def execute_command(self, command: str, *arguments) -> bool:
        if command == CHANGE_VALUE_COMMAND:
            return self.edit(*arguments)
        if command == OPEN_SELECTION_COMMAND:
            self.select(*arguments)
            return True
        raise ValueError(f"Unknown outline command: {command}")
