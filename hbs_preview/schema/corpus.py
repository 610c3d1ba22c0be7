"""Template corpus discovery.

The corpus is every template matched by ``templatesGlob`` plus every partial
matched by ``partialsGlob``. Only ``.hbs`` and ``.handlebars`` files count;
anything else a glob happens to match is ignored.
"""

import logging
from dataclasses import dataclass
from typing import List

from ..config_loader import PreviewConfig
from ..workspace import find_files, is_template_file, read_text, template_name

logger = logging.getLogger(__name__)


@dataclass
class TemplateSource:
    """One template or partial file and its text."""
    path: str
    text: str
    is_partial: bool = False

    @property
    def name(self) -> str:
        """Partial name (basename without extension)."""
        return template_name(self.path)


def _collect(root: str, pattern: str, is_partial: bool, seen: set) -> List[TemplateSource]:
    sources: List[TemplateSource] = []
    for path in find_files(root, pattern):
        key = str(path)
        if key in seen or not is_template_file(key):
            continue
        seen.add(key)
        text = read_text(key)
        if text is None:
            continue
        sources.append(TemplateSource(path=key, text=text, is_partial=is_partial))
    return sources


def load_corpus(root: str, config: PreviewConfig) -> List[TemplateSource]:
    """Read every template and partial under ``root``.

    A file matched by both globs is read once, as a template.
    """
    seen: set = set()
    templates = _collect(root, config.templates_glob, False, seen)
    partials = _collect(root, config.partials_glob, True, seen)
    logger.debug(
        "Template corpus: %d templates, %d partials under %s",
        len(templates),
        len(partials),
        root,
    )
    return templates + partials


def partials_of(corpus: List[TemplateSource]) -> List[TemplateSource]:
    return [source for source in corpus if source.is_partial]
