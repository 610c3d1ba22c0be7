"""Schema inferred from template variable references."""

from .corpus import TemplateSource, load_corpus
from .extractor import extract_schema
from .models import WILDCARD, ArraySchema, LeafSchema, ObjectSchema, Schema

__all__ = [
    "ArraySchema",
    "LeafSchema",
    "ObjectSchema",
    "Schema",
    "TemplateSource",
    "WILDCARD",
    "extract_schema",
    "load_corpus",
]
