"""Workspace file lookup: glob matching and text resolution.

Globs use the usual editor conventions: ``*`` and ``?`` stay within one path
segment, ``**`` spans any number of segments (including none), and patterns
are matched against POSIX-style paths relative to the workspace root.
"""

import logging
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Pattern

logger = logging.getLogger(__name__)

TEMPLATE_EXTENSIONS = (".hbs", ".handlebars")


@lru_cache(maxsize=64)
def compile_glob(pattern: str) -> Pattern[str]:
    """Translate a workspace glob into a compiled regular expression."""
    pattern = pattern.replace("\\", "/")
    if pattern.startswith("./"):
        pattern = pattern[2:]
    parts: List[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


def to_relative(path: str, root: str) -> Optional[str]:
    """Return ``path`` relative to ``root`` with forward slashes, or None."""
    try:
        rel = os.path.relpath(os.path.abspath(path), os.path.abspath(root))
    except ValueError:
        return None  # Different drive on Windows
    if rel == ".." or rel.startswith(".." + os.sep):
        return None
    return rel.replace(os.sep, "/")


def matches_glob(path: str, root: str, pattern: str) -> bool:
    """Check whether an absolute ``path`` under ``root`` matches ``pattern``."""
    rel = to_relative(path, root)
    if rel is None:
        return False
    return bool(compile_glob(pattern).match(rel))


def find_files(root: str, pattern: str, limit: Optional[int] = None) -> List[Path]:
    """Find files under ``root`` matching ``pattern``, sorted by path.

    Hidden directories (``.git``, ``.venv`` ...) and ``node_modules`` are
    skipped.
    """
    regex = compile_glob(pattern)
    matches: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            d for d in dirnames if not d.startswith(".") and d != "node_modules"
        )
        for fname in sorted(filenames):
            full = os.path.join(dirpath, fname)
            rel = to_relative(full, root)
            if rel is not None and regex.match(rel):
                matches.append(Path(full))
                if limit is not None and len(matches) >= limit:
                    return matches
    return matches


def is_template_file(path: str) -> bool:
    return path.lower().endswith(TEMPLATE_EXTENSIONS)


def template_name(path: str) -> str:
    """Partial name for a template file: its basename without extension."""
    name = os.path.basename(path)
    for ext in TEMPLATE_EXTENSIONS:
        if name.lower().endswith(ext):
            return name[: -len(ext)]
    return name


def find_data_file(root: str, data_glob: str) -> Optional[Path]:
    """Locate the single active JSON data file (first match wins)."""
    matches = find_files(root, data_glob, limit=1)
    if not matches:
        logger.warning("No data file matches '%s' under %s", data_glob, root)
        return None
    return matches[0]


def read_text(path: str) -> Optional[str]:
    """Read a UTF-8 text file, returning None when it cannot be read."""
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Cannot read %s: %s", path, e)
        return None
