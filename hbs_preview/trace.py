"""Trace logging for refresh cycles and file watching.

The trace channel complements ``logging``: it appends timestamped lines to a
plain file so the sequence of refreshes, schema rebuilds and discarded
generations can be followed while an editor is attached, without
configuring log handlers in the host.

Path resolution:
- HBS_PREVIEW_TRACE_LOG set to a path: trace lines go there.
- HBS_PREVIEW_TRACE_LOG set to an empty string: tracing is disabled.
- Unset: ``hbs_preview_trace.log`` in the system temp directory.

Usage:
    from hbs_preview.trace import trace

    trace("outline", "refresh committed: generation=4")
"""

import logging
import os
import sys
import tempfile
import traceback
from datetime import datetime
from typing import Optional, Set

logger = logging.getLogger(__name__)

TRACE_ENV_VAR = "HBS_PREVIEW_TRACE_LOG"
DEFAULT_TRACE_FILENAME = "hbs_preview_trace.log"

# Directories already created, so repeated writes skip os.makedirs.
_ensured_dirs: Set[str] = set()


def resolve_trace_path(env_var: str = TRACE_ENV_VAR) -> Optional[str]:
    """Return the trace file path, or None when tracing is disabled."""
    value = os.environ.get(env_var)
    if value == "":
        return None
    if value:
        return value
    return os.path.join(tempfile.gettempdir(), DEFAULT_TRACE_FILENAME)


def _ensure_parent(path: str) -> None:
    parent = os.path.dirname(os.path.abspath(path))
    if parent not in _ensured_dirs:
        os.makedirs(parent, exist_ok=True)
        _ensured_dirs.add(parent)


def trace_write(
    component: str,
    msg: str,
    trace_path: Optional[str],
    *,
    include_traceback: bool = False,
) -> None:
    """Append one trace line to ``trace_path`` (nothing when it is None).

    With ``include_traceback``, the traceback of the exception being handled
    follows the line. A file that cannot be written is reported at DEBUG
    level on the module logger; refresh cycles never see the error.
    """
    if not trace_path:
        return
    prefix = f"[{datetime.now():%H:%M:%S.%f}"[:-3] + f"] [{component}]"
    entry = f"{prefix} {msg}\n"
    if include_traceback and sys.exc_info()[0] is not None:
        entry += f"{prefix} Traceback:\n{traceback.format_exc()}\n"
    try:
        _ensure_parent(trace_path)
        with open(trace_path, "a", encoding="utf-8") as f:
            f.write(entry)
    except OSError:
        logger.debug("Cannot write trace file %s", trace_path, exc_info=True)


def trace(component: str, msg: str, *, include_traceback: bool = False) -> None:
    """Write a trace line to the path named by HBS_PREVIEW_TRACE_LOG."""
    trace_write(component, msg, resolve_trace_path(), include_traceback=include_traceback)
