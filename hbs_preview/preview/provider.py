"""Preview content for the active editor.

The preview shows one template rendered against one data file. When the
user focuses the template or the data file of the current pair, the pair is
kept; focusing any other file makes it the template and pairs it with the
first file matching ``dataGlob``.
"""

import logging
import os
from typing import Callable, List, Optional, Tuple

from ..config_loader import PreviewConfig
from ..editor import EditorSurface
from ..workspace import find_data_file, read_text
from .renderer import HandlebarsRenderer

logger = logging.getLogger(__name__)


class PreviewContentProvider:
    """Renders the active template/data pair on request."""

    def __init__(
        self,
        root: str,
        config: PreviewConfig,
        renderer: HandlebarsRenderer,
        editor: Optional[EditorSurface] = None,
    ):
        self.root = os.path.abspath(root)
        self._config = config
        self._renderer = renderer
        self._editor = editor
        self._template_file: Optional[str] = None
        self._data_file: Optional[str] = None
        self._pinned_data_file: Optional[str] = None
        self._listeners: List[Callable[[], None]] = []

    @property
    def template_file(self) -> Optional[str]:
        return self._template_file

    @property
    def data_file(self) -> Optional[str]:
        return self._data_file

    def resolve_text(self, file_name: Optional[str]) -> Optional[str]:
        """Text of an open document, else of the file on disk, else None."""
        if not file_name:
            return None
        if self._editor is not None:
            document = self._editor.find_document(file_name)
            if document is not None:
                return document.text
        if os.path.isfile(file_name):
            return read_text(file_name)
        return None

    def pin_data_file(self, file_name: Optional[str]) -> None:
        """Use ``file_name`` as the data file instead of the ``dataGlob`` match."""
        self._pinned_data_file = os.path.abspath(file_name) if file_name else None
        if self._template_file is not None:
            self._data_file = self._pinned_data_file

    def select_pair(self, active_file: str) -> Tuple[str, Optional[str]]:
        """Decide which template and data file to render for ``active_file``."""
        active_file = os.path.abspath(active_file)
        if self._template_file and active_file in (self._template_file, self._data_file):
            return self._template_file, self._data_file
        if self._pinned_data_file is not None:
            self._data_file = self._pinned_data_file
        else:
            data_path = find_data_file(self.root, self._config.data_glob)
            self._data_file = str(data_path) if data_path is not None else None
        self._template_file = active_file
        logger.debug("Preview pair: %s + %s", self._template_file, self._data_file)
        return self._template_file, self._data_file

    def provide_content(self, active_file: Optional[str] = None) -> str:
        """Rendered HTML for the active file (the editor's, if not given)."""
        if active_file is None and self._editor is not None:
            document = self._editor.active_document()
            if document is not None:
                active_file = document.file_name
        if active_file is None:
            return self._renderer.render(None, None)
        template_file, data_file = self.select_pair(active_file)
        return self._renderer.render(
            self.resolve_text(template_file),
            self.resolve_text(data_file),
        )

    def on_did_change(self, listener: Callable[[], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def update(self) -> None:
        """Tell listeners the preview content is out of date."""
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Preview listener failed")
