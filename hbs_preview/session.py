"""One open template-set/data-file pair and everything derived from it.

A session owns its schema, its document tree and its pruned tree (through
the OutlineProvider), the renderer with its partials and helpers, and the
watcher that keeps them current. Nothing is shared between sessions.

Lifecycle:
    1. ``PreviewSession(root)`` loads the configuration.
    2. ``start()`` loads helpers, builds the schema from the template
       corpus, opens the data file and, when ``watch=True``, starts the
       template watcher.
    3. File changes arrive debounced from the watcher. A burst of template,
       partial or helper changes causes one schema rebuild; data file
       changes on disk and edits to the data document refresh the outline.
    4. ``close()`` stops the watcher and detaches the outline, discarding
       any refresh still in flight.
"""

import logging
import os
from typing import Callable, List, Optional, Set

from .config_loader import PreviewConfig, load_config
from .editor import HeadlessEditor, TextDocument
from .outline.provider import OutlineProvider, ValuePrompt
from .preview.helpers import load_helpers
from .preview.provider import PreviewContentProvider
from .preview.renderer import HandlebarsRenderer
from .schema.corpus import TemplateSource, load_corpus, partials_of
from .schema.extractor import extract_schema
from .schema.models import Schema
from .trace import trace
from .watcher import DATA, HELPER, FileChange, TemplateWatcher
from .workspace import find_data_file, find_files, read_text

logger = logging.getLogger(__name__)


class PreviewSession:
    """Schema, outline and preview for one workspace."""

    def __init__(
        self,
        root: str,
        config: Optional[PreviewConfig] = None,
        editor: Optional[HeadlessEditor] = None,
        prompt: Optional[ValuePrompt] = None,
        watch: bool = False,
    ):
        self.root = os.path.abspath(root)
        self.config = config if config is not None else load_config(self.root)
        self.editor = editor if editor is not None else HeadlessEditor()
        self.renderer = HandlebarsRenderer()
        self.outline = OutlineProvider(self.editor, prompt)
        self.preview = PreviewContentProvider(self.root, self.config, self.renderer, self.editor)
        self._watcher: Optional[TemplateWatcher] = None
        if watch:
            self._watcher = TemplateWatcher(self.root, self.config, self._on_files_changed)
        self._corpus: List[TemplateSource] = []
        self._partial_names: Set[str] = set()
        self._helper_names: Set[str] = set()
        self._data_document: Optional[TextDocument] = None
        self._unsubscribe_data: Optional[Callable[[], None]] = None
        self._closed = False

    @property
    def schema(self) -> Optional[Schema]:
        return self.outline.schema

    @property
    def corpus(self) -> List[TemplateSource]:
        return list(self._corpus)

    @property
    def data_document(self) -> Optional[TextDocument]:
        return self._data_document

    def start(self, data_file: Optional[str] = None) -> "PreviewSession":
        """Build everything and open the data file.

        Args:
            data_file: Data file to use instead of the first ``dataGlob``
                match.
        """
        self.outline.begin_schema_load()
        self.reload_helpers()
        self.rebuild_schema()
        if data_file is None:
            found = find_data_file(self.root, self.config.data_glob)
            data_file = str(found) if found is not None else None
        if data_file is not None:
            self.switch_data_document(data_file)
        if self._watcher is not None:
            self._watcher.start()
        return self

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._watcher is not None:
            self._watcher.stop()
        self._detach_data_document()
        logger.debug("Session closed: %s", self.root)

    def __enter__(self) -> "PreviewSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Templates, partials and helpers
    # ------------------------------------------------------------------

    def rebuild_schema(self) -> Schema:
        """Re-read the template corpus, re-register partials, re-extract."""
        self._corpus = load_corpus(self.root, self.config)
        self._register_partials(partials_of(self._corpus))
        schema = extract_schema(source.text for source in self._corpus)
        trace("session", f"schema rebuilt: {len(schema.paths())} paths")
        self.outline.set_schema(schema)
        return schema

    def _register_partials(self, partials: List[TemplateSource]) -> None:
        names = {source.name for source in partials}
        for stale in self._partial_names - names:
            self.renderer.unregister_partial(stale)
        for source in partials:
            self.renderer.unregister_partial(source.name)
            self.renderer.register_partial(source.name, source.text)
        self._partial_names = names

    def reload_helpers(self) -> None:
        if not self.config.helpers_glob:
            return
        paths = [str(p) for p in find_files(self.root, self.config.helpers_glob) if p.suffix == ".py"]
        helpers = load_helpers(paths)
        for stale in self._helper_names - set(helpers):
            self.renderer.unregister_helper(stale)
        for name, helper in helpers.items():
            self.renderer.register_helper(name, helper)
        self._helper_names = set(helpers)

    def _on_files_changed(self, changes: List[FileChange]) -> None:
        """Debounced batch from the watcher: at most one rebuild per burst."""
        if self._closed:
            return
        for change in changes:
            if change.kind == DATA:
                self._reload_data_document(change)
        corpus_changes = [change for change in changes if change.kind != DATA]
        if not corpus_changes:
            return
        logger.info("%d template files changed; rebuilding schema", len(corpus_changes))
        if any(change.kind == HELPER for change in corpus_changes):
            self.reload_helpers()
        self.rebuild_schema()
        self.preview.update()

    def _reload_data_document(self, change: FileChange) -> None:
        document = self._data_document
        if document is None or os.path.abspath(document.file_name) != change.path:
            return
        if change.status == "deleted":
            logger.warning("Data file was deleted: %s", change.path)
            return
        if document.is_dirty:
            logger.info("Data file changed on disk but has unsaved edits: %s", change.path)
            return
        text = read_text(change.path)
        if text is not None:
            document.set_text(text)
            document.mark_saved()

    # ------------------------------------------------------------------
    # Data document
    # ------------------------------------------------------------------

    def switch_data_document(self, path: str) -> TextDocument:
        """Make ``path`` the data document shown in the outline.

        Any refresh still running for the previous document is discarded.
        """
        self._detach_data_document()
        document = self.editor.open_document(os.path.abspath(path))
        self._data_document = document
        self.preview.pin_data_file(document.file_name)
        self._unsubscribe_data = document.on_did_change(lambda event: self.preview.update())
        self.outline.attach(document)
        logger.debug("Data document: %s", document.file_name)
        return document

    def _detach_data_document(self) -> None:
        if self._unsubscribe_data is not None:
            self._unsubscribe_data()
            self._unsubscribe_data = None
        self._data_document = None
        self.outline.detach()

    def render(self, template_file: Optional[str] = None) -> str:
        """Render ``template_file`` (or the active document) as preview HTML."""
        if template_file is not None:
            template_file = os.path.abspath(template_file)
        return self.preview.provide_content(template_file)
