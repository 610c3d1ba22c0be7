"""Exception types raised across hbs_preview.

Most failures are recovered at the component that detects them (a bad
template yields an empty schema, a bad data file keeps the previous outline,
a failed render becomes an inline error block). The exceptions below are the
ones that cross a component boundary before being handled.
"""

from typing import List, Optional


class HbsPreviewError(Exception):
    """Base class for hbs_preview errors."""
    pass


class ConfigValidationError(HbsPreviewError):
    """Raised when the workspace configuration is invalid."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Configuration validation failed: {'; '.join(errors)}")


class StaleEditError(HbsPreviewError):
    """An edit was computed against a document state that no longer exists.

    Raised by ``TextDocument.apply_edit`` when the range's version does not
    match the document version, or when the range falls outside the current
    text. The document is left untouched; the caller must re-resolve the
    node path and compute a fresh range.
    """

    def __init__(
        self,
        expected_version: Optional[int],
        actual_version: int,
        reason: Optional[str] = None,
    ):
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.reason = reason or "document changed since the range was computed"
        super().__init__(
            f"Stale edit rejected ({self.reason}): range version "
            f"{expected_version}, document version {actual_version}"
        )
