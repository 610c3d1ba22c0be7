"""Configuration loading and validation for hbs_preview.

Configuration lives in ``.hbs-preview.json`` at the workspace root, using the
option names of the editor settings it mirrors::

    {
        "dataGlob": "data/*.json",
        "templatesGlob": "templates/**/*",
        "partialsDirectory": "partials",
        "helpersFile": "helpers.py",
        "debounceSeconds": 0.3
    }

Environment variables override file values (see ``ENV_OVERRIDES``).
``partialsDirectory`` and ``helpersFile`` are shorthands that are normalised
into ``partialsGlob`` and ``helpersGlob``.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ConfigValidationError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".hbs-preview.json"

# Environment variable -> config key
ENV_OVERRIDES = {
    "HBS_PREVIEW_DATA_GLOB": "dataGlob",
    "HBS_PREVIEW_TEMPLATES_GLOB": "templatesGlob",
    "HBS_PREVIEW_PARTIALS_GLOB": "partialsGlob",
    "HBS_PREVIEW_HELPERS_GLOB": "helpersGlob",
    "HBS_PREVIEW_DEBOUNCE": "debounceSeconds",
}

_STRING_KEYS = (
    "dataGlob",
    "templatesGlob",
    "partialsGlob",
    "partialsDirectory",
    "helpersGlob",
    "helpersFile",
)
_KNOWN_KEYS = set(_STRING_KEYS) | {"debounceSeconds"}


@dataclass
class PreviewConfig:
    """Resolved workspace configuration.

    Attributes:
        data_glob: Locates the JSON data file (first match wins).
        templates_glob: Locates top-level templates feeding the schema.
        partials_glob: Locates partial templates (registered with the
            renderer and included in the schema corpus).
        helpers_glob: Locates Python modules exporting render helpers.
        debounce_seconds: Quiet period before a burst of template changes
            triggers one schema rebuild.
        config_path: File the configuration was read from, if any.
    """

    data_glob: str = "**/data.json"
    templates_glob: str = "templates/**/*"
    partials_glob: str = "partials/**/*"
    helpers_glob: Optional[str] = None
    debounce_seconds: float = 0.3
    config_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase file format."""
        result: Dict[str, Any] = {
            "dataGlob": self.data_glob,
            "templatesGlob": self.templates_glob,
            "partialsGlob": self.partials_glob,
            "debounceSeconds": self.debounce_seconds,
        }
        if self.helpers_glob is not None:
            result["helpersGlob"] = self.helpers_glob
        return result


def validate_config(raw: Mapping[str, Any]) -> Tuple[bool, List[str]]:
    """Validate a raw configuration mapping.

    Args:
        raw: Mapping loaded from the config file, with env overrides applied.

    Returns:
        Tuple of (is_valid, list_of_errors).
    """
    errors: List[str] = []

    for key in _STRING_KEYS:
        value = raw.get(key)
        if value is None:
            continue
        if not isinstance(value, str) or not value.strip():
            errors.append(f"'{key}' must be a non-empty string")

    if raw.get("partialsGlob") and raw.get("partialsDirectory"):
        errors.append("Specify either 'partialsGlob' or 'partialsDirectory', not both")
    if raw.get("helpersGlob") and raw.get("helpersFile"):
        errors.append("Specify either 'helpersGlob' or 'helpersFile', not both")

    debounce = raw.get("debounceSeconds")
    if debounce is not None:
        if isinstance(debounce, bool) or not isinstance(debounce, (int, float)):
            errors.append("'debounceSeconds' must be a number")
        elif debounce < 0:
            errors.append("'debounceSeconds' must not be negative")

    return len(errors) == 0, errors


def _apply_env_overrides(raw: Dict[str, Any], env: Mapping[str, str]) -> None:
    for var, key in ENV_OVERRIDES.items():
        value = env.get(var)
        if not value:
            continue
        if key == "debounceSeconds":
            try:
                raw[key] = float(value)
            except ValueError:
                raw[key] = value  # reported by validate_config
        else:
            raw[key] = value
        # An explicit glob from the environment replaces the file's shorthand.
        if key == "partialsGlob":
            raw.pop("partialsDirectory", None)
        elif key == "helpersGlob":
            raw.pop("helpersFile", None)


def load_config(
    workspace_root: str,
    path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> PreviewConfig:
    """Load the workspace configuration.

    Args:
        workspace_root: Workspace directory; globs are relative to it.
        path: Explicit config file. Defaults to ``.hbs-preview.json`` in the
            workspace root; a missing default file means "all defaults".
        env: Environment mapping for overrides (defaults to ``os.environ``).

    Returns:
        The resolved PreviewConfig.

    Raises:
        FileNotFoundError: If an explicit ``path`` does not exist.
        ConfigValidationError: If the file is not valid JSON or any option
            is invalid.
    """
    env = os.environ if env is None else env
    raw: Dict[str, Any] = {}
    config_path: Optional[Path] = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"hbs-preview config file not found: {path}")
    else:
        default_path = Path(workspace_root) / CONFIG_FILE_NAME
        if default_path.exists():
            config_path = default_path

    if config_path is not None:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigValidationError([f"{config_path}: invalid JSON ({e})"]) from e
        if not isinstance(loaded, dict):
            raise ConfigValidationError([f"{config_path}: must contain a JSON object"])
        raw.update(loaded)
        logger.debug("Loaded configuration from %s", config_path)

    unknown = sorted(set(raw) - _KNOWN_KEYS)
    if unknown:
        logger.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))

    _apply_env_overrides(raw, env)

    is_valid, errors = validate_config(raw)
    if not is_valid:
        raise ConfigValidationError(errors)

    config = PreviewConfig(config_path=str(config_path) if config_path else None)
    if raw.get("dataGlob"):
        config.data_glob = raw["dataGlob"]
    if raw.get("templatesGlob"):
        config.templates_glob = raw["templatesGlob"]
    if raw.get("partialsGlob"):
        config.partials_glob = raw["partialsGlob"]
    elif raw.get("partialsDirectory"):
        config.partials_glob = raw["partialsDirectory"].rstrip("/\\") + "/**/*"
    if raw.get("helpersGlob"):
        config.helpers_glob = raw["helpersGlob"]
    elif raw.get("helpersFile"):
        config.helpers_glob = raw["helpersFile"]
    if raw.get("debounceSeconds") is not None:
        config.debounce_seconds = float(raw["debounceSeconds"])

    return config
