"""Tests for workspace configuration loading."""

import json

import pytest

from hbs_preview.config_loader import (
    CONFIG_FILE_NAME,
    PreviewConfig,
    load_config,
    validate_config,
)
from hbs_preview.errors import ConfigValidationError


def write_config(root, data):
    path = root / CONFIG_FILE_NAME
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestValidateConfig:

    def test_valid(self):
        is_valid, errors = validate_config({"dataGlob": "*.json", "debounceSeconds": 1})
        assert is_valid
        assert errors == []

    @pytest.mark.parametrize("raw, message", [
        ({"dataGlob": ""}, "'dataGlob' must be a non-empty string"),
        ({"templatesGlob": 3}, "'templatesGlob' must be a non-empty string"),
        ({"debounceSeconds": "soon"}, "'debounceSeconds' must be a number"),
        ({"debounceSeconds": True}, "'debounceSeconds' must be a number"),
        ({"debounceSeconds": -1}, "'debounceSeconds' must not be negative"),
        ({"partialsGlob": "p/*", "partialsDirectory": "p"}, "not both"),
        ({"helpersGlob": "h/*.py", "helpersFile": "h.py"}, "not both"),
    ])
    def test_invalid(self, raw, message):
        is_valid, errors = validate_config(raw)
        assert not is_valid
        assert any(message in error for error in errors)


class TestLoadConfig:

    def test_defaults_without_file(self, tmp_path):
        config = load_config(str(tmp_path), env={})
        assert config == PreviewConfig()
        assert config.config_path is None

    def test_file_values(self, tmp_path):
        path = write_config(tmp_path, {
            "dataGlob": "data/*.json",
            "templatesGlob": "views/**/*",
            "partialsDirectory": "parts/",
            "helpersFile": "helpers.py",
            "debounceSeconds": 1,
        })
        config = load_config(str(tmp_path), env={})
        assert config.data_glob == "data/*.json"
        assert config.templates_glob == "views/**/*"
        assert config.partials_glob == "parts/**/*"
        assert config.helpers_glob == "helpers.py"
        assert config.debounce_seconds == 1.0
        assert config.config_path == str(path)

    def test_env_overrides(self, tmp_path):
        write_config(tmp_path, {"dataGlob": "a.json", "partialsDirectory": "parts"})
        env = {
            "HBS_PREVIEW_DATA_GLOB": "b.json",
            "HBS_PREVIEW_PARTIALS_GLOB": "shared/*.hbs",
            "HBS_PREVIEW_DEBOUNCE": "0.5",
        }
        config = load_config(str(tmp_path), env=env)
        assert config.data_glob == "b.json"
        assert config.partials_glob == "shared/*.hbs"
        assert config.debounce_seconds == 0.5

    def test_bad_env_debounce(self, tmp_path):
        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(str(tmp_path), env={"HBS_PREVIEW_DEBOUNCE": "later"})
        assert exc_info.value.errors == ["'debounceSeconds' must be a number"]

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path), path=str(tmp_path / "nope.json"), env={})

    def test_invalid_json(self, tmp_path):
        (tmp_path / CONFIG_FILE_NAME).write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="invalid JSON"):
            load_config(str(tmp_path), env={})

    def test_non_object(self, tmp_path):
        write_config(tmp_path, ["a"])
        with pytest.raises(ConfigValidationError, match="must contain a JSON object"):
            load_config(str(tmp_path), env={})

    def test_unknown_keys_warned(self, tmp_path, caplog):
        write_config(tmp_path, {"colour": "blue"})
        load_config(str(tmp_path), env={})
        assert "Ignoring unknown configuration keys: colour" in caplog.text

    def test_to_dict(self):
        data = PreviewConfig(helpers_glob="h/*.py").to_dict()
        assert data["helpersGlob"] == "h/*.py"
        assert data["dataGlob"] == "**/data.json"
        assert "helpersGlob" not in PreviewConfig().to_dict()
