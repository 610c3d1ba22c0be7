#!/usr/bin/env python3
"""hbs-preview command line.

Usage:
    # Paths the templates reference, with merge warnings
    python -m hbs_preview schema --workspace ./site

    # The data file as a schema-filtered outline
    python -m hbs_preview outline --workspace ./site --data ./site/data.json

    # Render one template against the data file
    python -m hbs_preview render templates/page.hbs --workspace ./site

    # Re-print the outline whenever templates or the data file change
    python -m hbs_preview watch --workspace ./site
"""

import argparse
import logging
import os
import sys
import threading
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from .config_loader import load_config
from .errors import ConfigValidationError
from .outline.provider import OutlineProvider
from .schema.models import describe
from .session import PreviewSession

logger = logging.getLogger(__name__)

_KIND_STYLES = {"object": "cyan", "array": "magenta", "leaf": "green"}


def build_outline_tree(outline: OutlineProvider, title: str) -> Tree:
    """Render the outline as a rich Tree, expanding every composite."""
    tree = Tree(f"[bold]{escape(title)}[/bold]")
    # Children are pushed reversed so they pop in document order.
    stack = [(tree, path) for path in reversed(outline.children())]
    while stack:
        parent, path = stack.pop()
        label = escape(outline.label(path))
        style = "bold" if outline.is_expandable(path) else ""
        branch = parent.add(f"[{style}]{label}[/{style}]" if style else label, highlight=False)
        for child in reversed(outline.children(path)):
            stack.append((branch, child))
    return tree


def _print_outline(console: Console, session: PreviewSession) -> None:
    document = session.data_document
    if document is None:
        console.print("[yellow]No data file found[/yellow]")
        return
    console.print(build_outline_tree(session.outline, os.path.relpath(document.file_name, session.root)))
    for diagnostic in session.outline.diagnostics:
        console.print(f"[yellow]{diagnostic.format(document.text)}[/yellow]")


def cmd_schema(console: Console, session: PreviewSession, args: argparse.Namespace) -> int:
    schema = session.schema
    table = Table(title=f"Schema ({len(session.corpus)} templates)")
    table.add_column("Path")
    table.add_column("Kind")
    for path, kind in describe(schema):
        table.add_row(escape(path), f"[{_KIND_STYLES.get(kind, 'white')}]{kind}[/]")
    console.print(table)
    for warning in schema.warnings:
        console.print(f"[yellow]warning:[/yellow] {escape(warning)}")
    return 0


def cmd_outline(console: Console, session: PreviewSession, args: argparse.Namespace) -> int:
    _print_outline(console, session)
    return 0


def cmd_render(console: Console, session: PreviewSession, args: argparse.Namespace) -> int:
    template = args.template
    if not os.path.exists(template):
        # Relative to the workspace rather than the current directory.
        template = os.path.join(session.root, template)
    html = session.render(template)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(html)
        console.print(f"Wrote {args.output}")
    else:
        # Plain write: rich markup must not touch rendered HTML.
        sys.stdout.write(html)
        if not html.endswith("\n"):
            sys.stdout.write("\n")
    return 0


def cmd_watch(console: Console, session: PreviewSession, args: argparse.Namespace) -> int:
    changed = threading.Event()
    session.outline.on_did_change(changed.set)
    _print_outline(console, session)
    console.print("[dim]Watching for changes (Ctrl+C to stop)...[/dim]")
    try:
        while True:
            if changed.wait(timeout=0.5):
                changed.clear()
                console.rule()
                _print_outline(console, session)
    except KeyboardInterrupt:
        console.print("[dim]Stopped[/dim]")
    return 0


COMMANDS = {
    "schema": cmd_schema,
    "outline": cmd_outline,
    "render": cmd_render,
    "watch": cmd_watch,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hbs-preview",
        description="Preview Handlebars templates against a JSON data file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Usage:", 1)[1] if __doc__ else None,
    )
    parser.add_argument(
        "--workspace", "-w",
        default=".",
        help="Workspace root; globs are relative to it (default: current directory)",
    )
    parser.add_argument(
        "--data",
        metavar="FILE",
        help="Data file to use instead of the first dataGlob match",
    )
    parser.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: <workspace>/.hbs-preview.json)",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file with HBS_PREVIEW_* overrides (default: .env)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("schema", help="Print the schema inferred from the templates")
    subparsers.add_parser("outline", help="Print the schema-filtered data outline")
    render = subparsers.add_parser("render", help="Render a template against the data file")
    render.add_argument("template", help="Template file to render")
    render.add_argument("--output", "-o", metavar="FILE", help="Write HTML here instead of stdout")
    subparsers.add_parser("watch", help="Re-print the outline on every change")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if args.env_file and os.path.exists(args.env_file):
        load_dotenv(args.env_file)

    console = Console()
    err_console = Console(stderr=True)

    try:
        config = load_config(args.workspace, path=args.config)
    except ConfigValidationError as e:
        err_console.print("[red]Invalid configuration:[/red]")
        for error in e.errors:
            err_console.print(f"  - {error}")
        return 2
    except FileNotFoundError as e:
        err_console.print(f"[red]{e}[/red]")
        return 1

    session = PreviewSession(args.workspace, config=config, watch=args.command == "watch")
    try:
        session.start(data_file=args.data)
        return COMMANDS[args.command](console, session, args)
    except OSError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        return 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
