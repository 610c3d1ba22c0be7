"""Tests for the schema data model."""

import pytest

from hbs_preview.schema.models import (
    ArraySchema,
    LeafSchema,
    ObjectSchema,
    Schema,
    describe,
    join_path,
)


@pytest.fixture
def schema():
    return Schema(
        root=ObjectSchema(
            fields={
                "title": LeafSchema(),
                "user": ObjectSchema(fields={"name": LeafSchema(optional=True)}),
                "items": ArraySchema(element=ObjectSchema(fields={"id": LeafSchema()})),
            }
        )
    )


class TestPaths:

    def test_flattened_paths(self, schema):
        assert schema.paths() == {
            "title", "user", "user.name", "items", "items.#", "items.#.id",
        }

    def test_prefix_closed(self, schema):
        paths = schema.paths()
        for path in paths:
            parts = path.split(".")
            for i in range(1, len(parts)):
                assert ".".join(parts[:i]) in paths

    def test_empty(self):
        assert Schema().paths() == frozenset()
        assert Schema().is_empty()

    def test_join_path(self):
        assert join_path("", "a") == "a"
        assert join_path("a", "#") == "a.#"


class TestLookup:

    def test_get(self, schema):
        assert schema.get("") is schema.root
        assert isinstance(schema.get("items.#"), ObjectSchema)
        assert schema.get("user.name").optional
        assert schema.get("items.0") is None
        assert schema.get("title.x") is None
        assert schema.get("missing") is None

    def test_describe(self, schema):
        rows = dict(describe(schema))
        assert rows["items"] == "array"
        assert rows["user"] == "object"
        assert rows["items.#.id"] == "leaf"
        assert [path for path, _ in describe(schema)] == sorted(schema.paths())


class TestLegacyForm:
    """The nested-mapping form used by fixtures and display."""

    def test_from_dict_shapes(self):
        schema = Schema.from_dict({
            "a": "_type",
            "b": {"_type": "any", "_optional": True},
            "c": ["_type"],
            "d": [{"x": "_type"}],
            "e": {"_type": "array", "#": {"y": "_type"}},
            "f": {"g": None},
        })
        assert isinstance(schema.get("a"), LeafSchema)
        assert schema.get("b").optional
        assert isinstance(schema.get("c"), ArraySchema)
        assert schema.get("c").element.fields == {}
        assert "d.#.x" in schema.paths()
        assert "e.#.y" in schema.paths()
        assert isinstance(schema.get("f"), ObjectSchema)

    def test_round_trip_keeps_paths(self, schema):
        assert Schema.from_dict(schema.to_dict()).paths() == schema.paths()

    def test_to_dict(self, schema):
        data = schema.to_dict()
        assert data["title"] == {"_type": "any", "_optional": False}
        assert data["items"]["_type"] == "array"
        assert data["items"]["#"] == {"id": {"_type": "any", "_optional": False}}

    def test_from_none(self):
        assert Schema.from_dict(None).is_empty()
