"""In-memory text documents and the editor surface they are shown in.

``TextDocument`` is the single source of truth for a data file's text while
it is open. Every mutation goes through ``apply_edit`` or ``set_text``,
bumps ``version`` and notifies change listeners, which is what re-triggers
parsing of the outline.

Ranges handed out by the outline carry the version they were computed
against, and ``apply_edit`` refuses a range from an older version with
``StaleEditError`` rather than splicing text into the wrong place.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Protocol, runtime_checkable

from .errors import StaleEditError

logger = logging.getLogger(__name__)

# Older snapshots are dropped once a document holds this many undo steps.
DEFAULT_UNDO_LIMIT = 100


@dataclass(frozen=True)
class Position:
    """A position in a text document (0-indexed line and character)."""
    line: int
    character: int

    def to_dict(self) -> Dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True)
class TextRange:
    """A half-open character range ``[start, end)`` in a document.

    ``version`` is the document version the offsets were computed against;
    None means "current version" and skips the staleness check.
    """
    start: int
    end: int
    version: Optional[int] = None

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end

    def to_dict(self) -> Dict[str, Optional[int]]:
        return {"start": self.start, "end": self.end, "version": self.version}


@dataclass(frozen=True)
class TextEdit:
    """Replace the text in ``range`` with ``new_text``."""
    range: TextRange
    new_text: str


@dataclass
class DocumentChangeEvent:
    """Sent to change listeners after a document's text changed.

    ``edit`` is None when the whole text was replaced (reload, undo).
    """
    document: "TextDocument"
    version: int
    edit: Optional[TextEdit] = None


ChangeListener = Callable[[DocumentChangeEvent], None]


class TextDocument:
    """Versioned text of one open file.

    Up to ``undo_limit`` earlier texts are kept for ``undo``.
    """

    def __init__(
        self,
        file_name: str,
        text: str = "",
        version: int = 1,
        undo_limit: int = DEFAULT_UNDO_LIMIT,
    ):
        self.file_name = file_name
        self._text = text
        self._version = version
        self._saved_text = text
        self._undo: Deque[str] = deque(maxlen=undo_limit)
        self._listeners: List[ChangeListener] = []
        self._lock = threading.RLock()

    @classmethod
    def open(cls, path: str) -> "TextDocument":
        """Load a document from disk (UTF-8)."""
        text = Path(path).read_text(encoding="utf-8")
        return cls(str(path), text)

    @property
    def text(self) -> str:
        return self._text

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_dirty(self) -> bool:
        return self._text != self._saved_text

    def get_text(self, range: Optional[TextRange] = None) -> str:
        if range is None:
            return self._text
        return self._text[range.start:range.end]

    def position_at(self, offset: int) -> Position:
        offset = max(0, min(offset, len(self._text)))
        line = self._text.count("\n", 0, offset)
        line_start = self._text.rfind("\n", 0, offset) + 1
        return Position(line=line, character=offset - line_start)

    def offset_at(self, position: Position) -> int:
        lines = self._text.split("\n")
        if position.line >= len(lines):
            return len(self._text)
        offset = sum(len(line) + 1 for line in lines[:position.line])
        return offset + min(position.character, len(lines[position.line]))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply_edit(self, range: TextRange, new_text: str) -> int:
        """Replace one range atomically, as a single undo step.

        Args:
            range: Range to replace; its version must match the document.
            new_text: Replacement text, inserted verbatim.

        Returns:
            The new document version.

        Raises:
            StaleEditError: If the range was computed against another
                version or lies outside the current text. The document is
                not modified.
        """
        with self._lock:
            if range.version is not None and range.version != self._version:
                raise StaleEditError(range.version, self._version)
            if not 0 <= range.start <= range.end <= len(self._text):
                raise StaleEditError(
                    range.version,
                    self._version,
                    reason=f"range {range.start}-{range.end} is outside the document",
                )
            self._undo.append(self._text)
            self._text = self._text[:range.start] + new_text + self._text[range.end:]
            self._version += 1
            event = DocumentChangeEvent(self, self._version, TextEdit(range, new_text))
        self._notify(event)
        return event.version

    def set_text(self, text: str) -> int:
        """Replace the whole text (e.g. after the file changed on disk)."""
        with self._lock:
            if text == self._text:
                return self._version
            self._undo.append(self._text)
            self._text = text
            self._version += 1
            event = DocumentChangeEvent(self, self._version)
        self._notify(event)
        return event.version

    def undo(self) -> bool:
        """Revert the last mutation. Returns False when there is none."""
        with self._lock:
            if not self._undo:
                return False
            self._text = self._undo.pop()
            self._version += 1
            event = DocumentChangeEvent(self, self._version)
        self._notify(event)
        return True

    def save(self) -> None:
        Path(self.file_name).write_text(self._text, encoding="utf-8")
        self.mark_saved()
        logger.debug("Saved %s (version %d)", self.file_name, self._version)

    def mark_saved(self) -> None:
        """Record the current text as matching the file on disk."""
        self._saved_text = self._text

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on_did_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def _notify(self, event: DocumentChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Change listener failed for %s", self.file_name)

    def __repr__(self) -> str:
        return f"TextDocument({self.file_name!r}, version={self._version})"


@runtime_checkable
class EditorSurface(Protocol):
    """What the outline and preview need from the hosting editor."""

    def active_document(self) -> Optional[TextDocument]:
        ...

    def find_document(self, file_name: str) -> Optional[TextDocument]:
        """Return the open document for a file, if it is open."""
        ...

    def show_document(self, document: TextDocument) -> None:
        ...

    def select(self, document: TextDocument, range: TextRange) -> None:
        """Reveal ``range`` in ``document`` and select it."""
        ...


@dataclass
class Selection:
    file_name: str
    range: TextRange


@dataclass
class HeadlessEditor:
    """EditorSurface kept entirely in memory (CLI and tests)."""

    documents: Dict[str, TextDocument] = field(default_factory=dict)
    active: Optional[str] = None
    selection: Optional[Selection] = None

    def active_document(self) -> Optional[TextDocument]:
        if self.active is None:
            return None
        return self.documents.get(self.active)

    def find_document(self, file_name: str) -> Optional[TextDocument]:
        return self.documents.get(str(file_name))

    def open_document(self, path: str) -> TextDocument:
        """Return the open document for ``path``, loading it if needed."""
        document = self.find_document(path)
        if document is None:
            document = TextDocument.open(path)
            self.documents[document.file_name] = document
        return document

    def add_document(self, document: TextDocument) -> TextDocument:
        self.documents[document.file_name] = document
        return document

    def close_document(self, file_name: str) -> None:
        self.documents.pop(str(file_name), None)
        if self.active == str(file_name):
            self.active = None

    def show_document(self, document: TextDocument) -> None:
        self.documents.setdefault(document.file_name, document)
        self.active = document.file_name

    def select(self, document: TextDocument, range: TextRange) -> None:
        self.show_document(document)
        self.selection = Selection(document.file_name, range)
