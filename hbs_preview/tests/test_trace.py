"""Tests for the trace file channel."""

import logging
import os
import tempfile

from hbs_preview.trace import TRACE_ENV_VAR, resolve_trace_path, trace, trace_write


class TestResolveTracePath:

    def test_explicit_path(self, monkeypatch, tmp_path):
        monkeypatch.setenv(TRACE_ENV_VAR, str(tmp_path / "t.log"))
        assert resolve_trace_path() == str(tmp_path / "t.log")

    def test_empty_disables(self, monkeypatch):
        monkeypatch.setenv(TRACE_ENV_VAR, "")
        assert resolve_trace_path() is None

    def test_default_in_temp_dir(self, monkeypatch):
        monkeypatch.delenv(TRACE_ENV_VAR, raising=False)
        assert os.path.dirname(resolve_trace_path()) == tempfile.gettempdir()


class TestTraceWrite:

    def test_appends_lines(self, tmp_path):
        path = tmp_path / "nested" / "trace.log"
        trace_write("outline", "first", str(path))
        trace_write("watcher", "second", str(path))
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert lines[0].endswith("[outline] first")
        assert lines[1].endswith("[watcher] second")

    def test_disabled_writes_nothing(self, tmp_path):
        trace_write("outline", "x", None)
        assert list(tmp_path.iterdir()) == []

    def test_unwritable_path_is_logged(self, tmp_path, caplog):
        caplog.set_level(logging.DEBUG, logger="hbs_preview.trace")
        trace_write("outline", "x", str(tmp_path))  # a directory
        assert "Cannot write trace file" in caplog.text

    def test_traceback_only_while_handling(self, tmp_path):
        path = tmp_path / "trace.log"
        trace_write("session", "no error", str(path), include_traceback=True)
        assert "Traceback" not in path.read_text(encoding="utf-8")

    def test_traceback_included(self, tmp_path):
        path = tmp_path / "trace.log"
        try:
            raise ValueError("boom")
        except ValueError:
            trace_write("session", "failed", str(path), include_traceback=True)
        assert "ValueError: boom" in path.read_text(encoding="utf-8")

    def test_trace_uses_env(self, monkeypatch, tmp_path):
        path = tmp_path / "env.log"
        monkeypatch.setenv(TRACE_ENV_VAR, str(path))
        trace("session", "hello")
        assert "[session] hello" in path.read_text(encoding="utf-8")
