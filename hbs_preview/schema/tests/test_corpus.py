"""Tests for template corpus discovery."""

from hbs_preview.config_loader import PreviewConfig
from hbs_preview.schema.corpus import load_corpus, partials_of


def write(root, rel, text):
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadCorpus:

    def test_templates_then_partials(self, tmp_path):
        write(tmp_path, "templates/page.hbs", "{{title}}")
        write(tmp_path, "templates/sub/list.handlebars", "{{#each items}}{{/each}}")
        write(tmp_path, "partials/header.hbs", "<h1>{{site}}</h1>")
        corpus = load_corpus(str(tmp_path), PreviewConfig())
        assert [(s.name, s.is_partial) for s in corpus] == [
            ("page", False), ("list", False), ("header", True),
        ]
        assert corpus[0].text == "{{title}}"

    def test_non_template_files_ignored(self, tmp_path):
        write(tmp_path, "templates/page.hbs", "x")
        write(tmp_path, "templates/notes.txt", "{{secret}}")
        write(tmp_path, "templates/data.json", "{}")
        corpus = load_corpus(str(tmp_path), PreviewConfig())
        assert [s.name for s in corpus] == ["page"]

    def test_file_in_both_globs_read_once(self, tmp_path):
        write(tmp_path, "views/a.hbs", "x")
        config = PreviewConfig(templates_glob="views/**/*", partials_glob="**/*.hbs")
        corpus = load_corpus(str(tmp_path), config)
        assert len(corpus) == 1
        assert not corpus[0].is_partial

    def test_partials_of(self, tmp_path):
        write(tmp_path, "templates/page.hbs", "x")
        write(tmp_path, "partials/footer.hbs", "y")
        corpus = load_corpus(str(tmp_path), PreviewConfig())
        assert [s.name for s in partials_of(corpus)] == ["footer"]

    def test_empty_workspace(self, tmp_path):
        assert load_corpus(str(tmp_path), PreviewConfig()) == []
