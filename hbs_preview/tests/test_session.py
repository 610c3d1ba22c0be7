"""Tests for PreviewSession: schema, outline and preview working together."""

import threading

import pytest

from hbs_preview.config_loader import PreviewConfig
from hbs_preview.outline.items import OutlineState
from hbs_preview.session import PreviewSession
from hbs_preview.watcher import DATA, HELPER, PARTIAL, TEMPLATE, FileChange

DATA_TEXT = '{"title": "T", "items": [{"name": "a", "secret": 1}], "site": "S", "unused": true}'


def write(root, rel, text):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path):
    write(tmp_path, "templates/page.hbs", "<h1>{{title}}</h1>{{#each items}}<li>{{name}}</li>{{/each}}{{> footer}}")
    write(tmp_path, "partials/footer.hbs", "<footer>{{site}}</footer>")
    write(tmp_path, "data.json", DATA_TEXT)
    return tmp_path


@pytest.fixture
def session(workspace):
    with PreviewSession(str(workspace), config=PreviewConfig()) as session:
        session.start()
        yield session


class TestStart:
    """Initial build of schema, outline and renderer."""

    def test_schema_from_templates_and_partials(self, session):
        assert session.schema.paths() == {"title", "items", "items.#", "items.#.name", "site"}
        assert [source.name for source in session.corpus] == ["page", "footer"]

    def test_outline_is_pruned(self, session):
        outline = session.outline
        assert outline.state == OutlineState.READY
        assert outline.children() == ["/title", "/items", "/site"]
        assert outline.children("/items/0") == ["/items/0/name"]

    def test_partials_registered(self, session):
        assert session.renderer.partials == ["footer"]

    def test_render(self, session, workspace):
        html = session.render(str(workspace / "templates" / "page.hbs"))
        assert html == "<h1>T</h1><li>a</li><footer>S</footer>"

    def test_explicit_data_file(self, workspace):
        write(workspace, "other/alt.json", '{"title": "Alt"}')
        with PreviewSession(str(workspace), config=PreviewConfig()) as session:
            session.start(data_file=str(workspace / "other" / "alt.json"))
            assert session.outline.label("/title") == 'title: "Alt"'
            html = session.render(str(workspace / "templates" / "page.hbs"))
            assert html.startswith("<h1>Alt</h1>")

    def test_no_data_file(self, tmp_path):
        write(tmp_path, "templates/page.hbs", "{{a}}")
        with PreviewSession(str(tmp_path), config=PreviewConfig()) as session:
            session.start()
            assert session.data_document is None
            assert session.outline.children() == []

    def test_empty_corpus_keeps_only_root(self, tmp_path):
        write(tmp_path, "data.json", '{"a": 1}')
        with PreviewSession(str(tmp_path), config=PreviewConfig()) as session:
            session.start()
            assert session.schema.is_empty()
            assert session.outline.tree.root is not None
            assert session.outline.children() == []

    def test_close_detaches(self, workspace):
        session = PreviewSession(str(workspace), config=PreviewConfig()).start()
        session.close()
        session.close()
        assert session.outline.document is None
        assert session.data_document is None


class TestFileChanges:
    """Batches delivered by the watcher."""

    def test_template_change_rebuilds_schema(self, session, workspace):
        path = write(workspace, "templates/page.hbs", "{{unused}}")
        session._on_files_changed([FileChange(str(path), "modified", TEMPLATE)])
        assert session.schema.paths() == {"unused", "site"}
        assert session.outline.children() == ["/site", "/unused"]

    def test_removed_partial_unregistered(self, session, workspace):
        path = workspace / "partials" / "footer.hbs"
        path.unlink()
        session._on_files_changed([FileChange(str(path), "deleted", PARTIAL)])
        assert session.renderer.partials == []
        assert "site" not in session.schema.paths()

    def test_data_file_reloaded_from_disk(self, session, workspace):
        path = write(workspace, "data.json", '{"title": "New"}')
        session._on_files_changed([FileChange(str(path), "modified", DATA)])
        assert session.data_document.text == '{"title": "New"}'
        assert not session.data_document.is_dirty
        assert session.outline.label("/title") == 'title: "New"'

    def test_dirty_data_document_not_overwritten(self, session, workspace):
        assert session.outline.rename("/title", "Edited")
        path = write(workspace, "data.json", '{"title": "Disk"}')
        session._on_files_changed([FileChange(str(path), "modified", DATA)])
        assert session.outline.label("/title") == 'title: "Edited"'

    def test_edit_refreshes_preview(self, session, workspace):
        updates = []
        session.preview.on_did_change(lambda: updates.append(1))
        session.outline.rename("/items/0/name", "b")
        assert updates
        html = session.render(str(workspace / "templates" / "page.hbs"))
        assert "<li>b</li>" in html

    def test_switch_data_document(self, session, workspace):
        old = session.data_document
        alt = write(workspace, "alt.json", '{"site": "Other"}')
        session.switch_data_document(str(alt))
        assert session.data_document is not old
        assert session.outline.children() == ["/site"]
        # Edits to the old document no longer reach the outline.
        old.set_text('{"title": "Ignored"}')
        assert session.outline.children() == ["/site"]


class TestHelpers:

    def test_helpers_loaded_and_reloaded(self, workspace):
        write(workspace, "helpers/fmt.py", "def shout(this, value):\n    return str(value).upper()\n")
        write(workspace, "templates/page.hbs", "{{shout title}}")
        write(workspace, "data.json", '{"title": "hello"}')
        config = PreviewConfig(helpers_glob="helpers/*.py")
        with PreviewSession(str(workspace), config=config) as session:
            session.start()
            assert session.renderer.helpers == ["shout"]
            page = str(workspace / "templates" / "page.hbs")
            assert session.render(page) == "HELLO"

            helper = write(workspace, "helpers/fmt.py", "def whisper(this, value):\n    return str(value).lower()\n")
            session._on_files_changed([FileChange(str(helper), "modified", HELPER)])
            assert session.renderer.helpers == ["whisper"]


class TestWatching:

    def test_template_save_updates_outline(self, workspace):
        config = PreviewConfig(debounce_seconds=0.05)
        changed = threading.Event()
        with PreviewSession(str(workspace), config=config, watch=True) as session:
            session.start()
            session.outline.on_did_change(changed.set)
            write(workspace, "templates/page.hbs", "{{unused}}")
            deadline = 10
            while deadline > 0 and "unused" not in session.schema.paths():
                changed.wait(timeout=0.5)
                changed.clear()
                deadline -= 0.5
            assert "unused" in session.schema.paths()
