"""Loading render helpers from Python modules in the workspace.

Each file matched by ``helpersGlob`` is imported as a module. If it defines
``__all__`` those names are registered; otherwise every public function or
callable defined in the module itself (not imported into it) is.
"""

import importlib.util
import logging
import os
from types import ModuleType
from typing import Any, Callable, Dict, Iterable

logger = logging.getLogger(__name__)

_MODULE_PREFIX = "hbs_preview_helpers_"


def _import_file(path: str) -> ModuleType:
    stem = os.path.splitext(os.path.basename(path))[0]
    spec = importlib.util.spec_from_file_location(_MODULE_PREFIX + stem, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot import helpers from {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def helpers_from_module(module: ModuleType) -> Dict[str, Callable[..., Any]]:
    """Helpers exported by an imported module."""
    names = getattr(module, "__all__", None)
    if names is None:
        names = [
            name
            for name, value in vars(module).items()
            if not name.startswith("_")
            and callable(value)
            and getattr(value, "__module__", None) == module.__name__
            and not isinstance(value, type)
        ]
    helpers: Dict[str, Callable[..., Any]] = {}
    for name in names:
        value = getattr(module, name, None)
        if callable(value):
            helpers[name] = value
        else:
            logger.warning("%s: '%s' is not callable; skipped", module.__name__, name)
    return helpers


def load_helpers(paths: Iterable[str]) -> Dict[str, Callable[..., Any]]:
    """Import helper modules and collect their helpers.

    A module that fails to import is logged and skipped. When two modules
    export the same name, the later one wins.
    """
    helpers: Dict[str, Callable[..., Any]] = {}
    for path in paths:
        try:
            module = _import_file(str(path))
        except Exception as exc:
            logger.warning("Error loading helpers from '%s': %s", path, exc)
            continue
        found = helpers_from_module(module)
        logger.debug("Loaded %d helpers from %s", len(found), path)
        helpers.update(found)
    return helpers
