"""Handlebars rendering of a template against a JSON data document.

Rendering is delegated to pybars3. This module keeps the registered helpers
and partials, parses the data document with the same JSONC parser the
outline uses, and turns any failure into an inline HTML error block so the
preview always has something to show.
"""

import html
import logging
import re
import threading
from typing import Any, Callable, Dict, List, Tuple

from pybars import Compiler

from ..document.parser import node_value, parse

logger = logging.getLogger(__name__)

NO_TEMPLATE_BODY = "<body>Select document to render</body>"

_TAG_RE = re.compile(r"\{\{(.*?)\}\}")


def error_body(error: Any) -> str:
    """Inline HTML shown in place of a preview that failed to render."""
    return (
        "<body>\n"
        "    <h2>Error occurred</h2>\n"
        f"    <pre>{html.escape(str(error))}</pre>\n"
        "</body>"
    )


def rewrite_dotted_sections(template: str) -> str:
    """Rewrite dotted section tags into helper blocks pybars3 can compile.

    pybars3 accepts dots in variables (``{{a.b}}``) and in helper arguments
    (``{{#each a.b}}``) but not in raw section names. So::

        {{#a.b}}...{{/a.b}}  ->  {{#if a.b}}...{{/if}}
        {{^a.b}}...{{/a.b}}  ->  {{#unless a.b}}...{{/unless}}

    ``if`` keeps the current context, so dotted references inside the block
    keep working. Iterating over a dotted path needs an explicit
    ``{{#each a.b}}``. Templates without dotted sections are unchanged.
    """
    out: List[str] = []
    # (replacement close tag or None, original name) per open block
    stack: List[Tuple[str, str]] = []
    last_end = 0

    for match in _TAG_RE.finditer(template):
        out.append(template[last_end:match.start()])
        content = match.group(1).strip()
        replacement = match.group(0)

        if content[:1] in ("#", "^"):
            rest = content[1:].strip()
            if "." in rest and " " not in rest and not rest.startswith((">", "*")):
                helper = "if" if content[0] == "#" else "unless"
                replacement = "{{#%s %s}}" % (helper, rest)
                stack.append(("{{/%s}}" % helper, rest))
            elif rest:
                stack.append(("", rest.split()[0]))
        elif content.startswith("/"):
            rest = content[1:].strip()
            if stack and stack[-1][1] == rest:
                close, _ = stack.pop()
                if close:
                    replacement = close

        out.append(replacement)
        last_end = match.end()

    out.append(template[last_end:])
    return "".join(out)


def parse_data(data_source: str) -> Any:
    """Parse the data document (JSON with comments) into Python values.

    Raises:
        ValueError: If the document has syntax errors.
    """
    if not data_source or not data_source.strip():
        return {}
    result = parse(data_source)
    if result.diagnostics:
        first = result.diagnostics[0]
        raise ValueError(f"Invalid data document: {first.format(data_source)}")
    return node_value(result.tree)


class HandlebarsRenderer:
    """pybars3 compiler plus the helpers and partials registered with it.

    Thread-safe: registrations may arrive from the file watcher while a
    render is running on another thread.
    """

    def __init__(self):
        self._compiler = Compiler()
        self._lock = threading.RLock()
        self._helpers: Dict[str, Callable[..., Any]] = {}
        self._partials: Dict[str, Callable[..., Any]] = {}

    @property
    def helpers(self) -> List[str]:
        return sorted(self._helpers)

    @property
    def partials(self) -> List[str]:
        return sorted(self._partials)

    def compile(self, source: str) -> Callable[..., Any]:
        with self._lock:
            return self._compiler.compile(rewrite_dotted_sections(source))

    def register_helper(self, name: str, helper: Callable[..., Any]) -> None:
        """Register a helper, called by pybars3 as ``helper(this, *args)``."""
        with self._lock:
            self._helpers[name] = helper
        logger.debug("Registered helper '%s'", name)

    def unregister_helper(self, name: str) -> None:
        with self._lock:
            self._helpers.pop(name, None)

    def register_partial(self, name: str, source: str) -> bool:
        """Compile and register a partial.

        Returns:
            False if the partial does not compile; it is then left
            unregistered and a warning is logged.
        """
        try:
            compiled = self.compile(source)
        except Exception as e:
            logger.warning("Partial '%s' does not compile: %s", name, e)
            return False
        with self._lock:
            self._partials[name] = compiled
        logger.debug("Registered partial '%s'", name)
        return True

    def unregister_partial(self, name: str) -> None:
        with self._lock:
            self._partials.pop(name, None)

    def render_data(self, template_source: str, data: Any) -> str:
        """Render with already-parsed data; errors propagate."""
        template = self.compile(template_source)
        with self._lock:
            helpers = dict(self._helpers)
            partials = dict(self._partials)
        return str(template(data, helpers=helpers, partials=partials))

    def render(self, template_source: str, data_source: str) -> str:
        """Render a template against the text of a data document.

        Returns:
            Rendered HTML, the "select document" placeholder when there is
            no template, or an inline error block if anything fails.
        """
        if not template_source:
            return NO_TEMPLATE_BODY
        try:
            data = parse_data(data_source)
            return self.render_data(template_source, data)
        except Exception as e:
            logger.warning("Render failed: %s", e)
            return error_body(e)
