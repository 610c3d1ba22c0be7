"""Live preview of Handlebars templates with a schema-filtered data outline.

Templates are scanned for the data they reference; the JSON data file is then
shown as an outline restricted to those values, and scalar values can be
edited in place.

Example:
    from hbs_preview import PreviewSession

    with PreviewSession("./site") as session:
        session.start()
        for path in session.outline.children():
            print(session.outline.label(path))
"""

from .config_loader import PreviewConfig, load_config
from .editor import HeadlessEditor, TextDocument, TextRange
from .errors import ConfigValidationError, HbsPreviewError, StaleEditError
from .session import PreviewSession

__version__ = "0.3.0"

__all__ = [
    "ConfigValidationError",
    "HbsPreviewError",
    "HeadlessEditor",
    "PreviewConfig",
    "PreviewSession",
    "StaleEditError",
    "TextDocument",
    "TextRange",
    "load_config",
]
