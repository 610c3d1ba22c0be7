"""Template, partial, helper and data file watching using watchdog.

A burst of file events (an editor's save-rename-touch dance, a ``git
checkout``) must cause one schema rebuild, not one per event. Events are
therefore collected by a debounce accumulator and delivered as a single
batch after a quiet period.

Thread-safety
-------------
The watchdog observer and the debounce timer run on their own threads.
Accumulator state is guarded by a lock and the batch callback runs outside
it, on the timer thread.
"""

import logging
import os
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .config_loader import PreviewConfig
from .trace import trace
from .workspace import is_template_file, matches_glob

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.3

# Kinds of watched file.
TEMPLATE = "template"
PARTIAL = "partial"
HELPER = "helper"
DATA = "data"


@dataclass(frozen=True)
class FileChange:
    """One file in a flushed batch.

    Attributes:
        path: Absolute path of the file.
        status: ``"created"``, ``"modified"`` or ``"deleted"``.
        kind: ``"template"``, ``"partial"``, ``"helper"`` or ``"data"``.
    """
    path: str
    status: str
    kind: str


class _ChangeAccumulator:
    """Collects file changes and flushes them after a quiet period.

    Every ``record`` restarts the timer. Only the latest status per path is
    kept, so create-then-modify within one burst is reported once.
    """

    def __init__(
        self,
        on_flush: Callable[[List[FileChange]], None],
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self._on_flush = on_flush
        self._debounce = debounce
        self._lock = threading.Lock()
        self._pending: Dict[str, FileChange] = {}
        self._timer: Optional[threading.Timer] = None

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def record(self, change: FileChange) -> None:
        with self._lock:
            previous = self._pending.get(change.path)
            if previous is not None and previous.status == "created" and change.status == "modified":
                change = previous
            self._pending[change.path] = change
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._debounce, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        """Deliver pending changes now (also called by the timer)."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if not self._pending:
                return
            changes = list(self._pending.values())
            self._pending.clear()

        try:
            self._on_flush(changes)
        except Exception:
            logger.exception("Error in template change callback")

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending.clear()


# Watchdog event types that map straight onto a FileChange status.
_EVENT_STATUS = {
    EVENT_TYPE_CREATED: "created",
    EVENT_TYPE_MODIFIED: "modified",
    EVENT_TYPE_DELETED: "deleted",
}


class _TemplateEventHandler(FileSystemEventHandler):
    """Forwards file events to a ``(path, status)`` callback.

    A move is forwarded as the source deleted and the destination created,
    so renaming a template swaps it in the schema. Directory events and
    other event types (opened, closed) are dropped.
    """

    def __init__(self, forward: Callable[[str, str], None]):
        super().__init__()
        self._forward = forward

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if event.event_type == EVENT_TYPE_MOVED:
            self._forward(event.src_path, "deleted")
            self._forward(event.dest_path, "created")
            return
        status = _EVENT_STATUS.get(event.event_type)
        if status is not None:
            self._forward(event.src_path, status)


class TemplateWatcher:
    """Watches a workspace for changes to templates, helpers and data files.

    Lifecycle:
        1. ``__init__(root, config, on_changed)`` creates the watcher.
        2. ``start()`` starts the watchdog observer.
        3. Matching events are debounced and delivered to ``on_changed``
           as one list of ``FileChange``.
        4. ``stop()`` tears down the observer and drops pending events.
    """

    def __init__(
        self,
        root: str,
        config: PreviewConfig,
        on_changed: Callable[[List[FileChange]], None],
    ):
        self.root = os.path.abspath(root)
        self._config = config
        self._observer: Optional[Observer] = None
        self._accumulator = _ChangeAccumulator(on_changed, debounce=config.debounce_seconds)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start watching; a no-op if already running or the root is missing."""
        if self._running:
            return
        if not os.path.isdir(self.root):
            logger.warning("Workspace path does not exist: %s", self.root)
            return
        self._observer = Observer()
        self._observer.schedule(_TemplateEventHandler(self._on_fs_event), self.root, recursive=True)
        self._observer.daemon = True
        self._observer.start()
        self._running = True
        logger.info("Template watcher started: %s", self.root)

    def stop(self) -> None:
        self._running = False
        self._accumulator.cancel()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=2)
            self._observer = None
            logger.info("Template watcher stopped: %s", self.root)

    def flush(self) -> None:
        """Deliver pending changes without waiting for the quiet period."""
        self._accumulator.flush()

    def classify(self, path: str) -> Optional[str]:
        """Kind of watched file ``path`` is, or None if it is not watched."""
        config = self._config
        if config.helpers_glob and matches_glob(path, self.root, config.helpers_glob):
            return HELPER
        if matches_glob(path, self.root, config.data_glob):
            return DATA
        if not is_template_file(path):
            return None
        if matches_glob(path, self.root, config.templates_glob):
            return TEMPLATE
        if matches_glob(path, self.root, config.partials_glob):
            return PARTIAL
        return None

    def _on_fs_event(self, path: str, status: str) -> None:
        if not self._running:
            return
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        kind = self.classify(path)
        if kind is None:
            return
        trace("watcher", f"{status} {kind} {path}")
        self._accumulator.record(FileChange(os.path.abspath(path), status, kind))
