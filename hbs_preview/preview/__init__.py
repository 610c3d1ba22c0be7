"""Rendering the active template against the data file."""

from .provider import PreviewContentProvider
from .renderer import HandlebarsRenderer

__all__ = ["HandlebarsRenderer", "PreviewContentProvider"]
