"""Command line access to the bookmark files of the current repository."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import HauntConfig, load_config
from .features.git_integration import RepositoryLocator
from .features.picker_items import build_picker_items
from .models import Bookmark
from .persistence.codec import BookmarkCodec
from .root import RootDetector
from .store import BookmarkStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="haunt",
        description="Inspect and edit line bookmarks stored for the current repository and branch.",
    )
    parser.add_argument("--version", action="version", version=f"haunt {__version__}")
    parser.add_argument("--data-dir", help="Use this data directory instead of the configured one")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("path", help="Print the bookmark file for this repository/branch")

    p_list = sub.add_parser("list", aliases=["ls"], help="List bookmarks")
    p_list.add_argument("--json", action="store_true", dest="as_json", help="Output as JSON")

    p_show = sub.add_parser("show", help="Show one bookmark")
    p_show.add_argument("id", help="Bookmark ID (or unique prefix)")

    p_del = sub.add_parser("delete", aliases=["rm"], help="Delete a bookmark")
    p_del.add_argument("id", help="Bookmark ID (or unique prefix)")

    p_clear = sub.add_parser("clear-all", help="Delete every bookmark for this repository/branch")
    p_clear.add_argument("-y", "--yes", action="store_true", help="Don't ask for confirmation")

    return parser


def make_store(config: HauntConfig, data_dir: str | None = None) -> BookmarkStore:
    """A store wired for command line use (no editor buffers)."""
    locator = RepositoryLocator(data_dir or config.storage.data_dir or None)
    codec = BookmarkCodec(RootDetector(config.root_detection), config.storage)
    return BookmarkStore(codec, locator, config=config, confirm=_confirm)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    config = load_config(args.config)
    store = make_store(config, args.data_dir)
    console = Console()

    commands = {
        "path": cmd_path,
        "list": cmd_list,
        "ls": cmd_list,
        "show": cmd_show,
        "delete": cmd_delete,
        "rm": cmd_delete,
        "clear-all": cmd_clear_all,
    }
    fn = commands[args.command]
    try:
        return fn(store, args, console)
    except LookupError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        return 1


# ---------- Commands ----------


def cmd_path(store: BookmarkStore, args: argparse.Namespace, console: Console) -> int:
    console.print(str(store.get_storage_path()), highlight=False)
    return 0


def cmd_list(store: BookmarkStore, args: argparse.Namespace, console: Console) -> int:
    bookmarks = store.load_bookmarks()

    if args.as_json:
        console.print_json(json.dumps([b.to_dict() for b in bookmarks]))
        return 0

    if not bookmarks:
        console.print("No bookmarks found.")
        return 0

    root, _ = store.codec.root_detector.detect()
    table = Table(show_lines=False)
    table.add_column("ID")
    table.add_column("FILE")
    table.add_column("LINE", justify="right")
    table.add_column("NOTE")
    for item in build_picker_items(bookmarks, root):
        table.add_row(item.id[:8], escape(item.relpath), str(item.line), escape(item.note or ""))
    console.print(table)
    return 0


def cmd_show(store: BookmarkStore, args: argparse.Namespace, console: Console) -> int:
    store.load()
    bm = _find_bookmark(store.get_bookmarks(), args.id)
    console.print(f"Bookmark: {bm.id}", highlight=False)
    console.print(f"File: {escape(bm.file)}:{bm.line}", highlight=False)
    console.print(f"Note: {escape(bm.note or '(none)')}", highlight=False)
    return 0


def cmd_delete(store: BookmarkStore, args: argparse.Namespace, console: Console) -> int:
    store.load()
    bm = _find_bookmark(store.get_bookmarks(), args.id)
    if not store.delete_by_id(bm.id):
        return 1
    console.print(f"Deleted bookmark {bm.short_id} ({escape(bm.file)}:{bm.line})", highlight=False)
    return 0


def cmd_clear_all(store: BookmarkStore, args: argparse.Namespace, console: Console) -> int:
    store.load()
    result = store.clear_all(confirmed=True if args.yes else None)
    if not result:
        console.print("Cancelled.")
        return 1
    console.print(f"Cleared {result.value} bookmark(s).")
    return 0


# ---------- Helpers ----------


def _confirm(message: str) -> bool:
    try:
        answer = input(f"{message} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _find_bookmark(bookmarks: list[Bookmark], partial_id: str) -> Bookmark:
    """Find a bookmark by full ID or unique prefix.  Raises ``LookupError``."""
    matches = [b for b in bookmarks if b.id.startswith(partial_id)]
    if not matches:
        raise LookupError(f"No bookmark matching '{partial_id}'.")
    if len(matches) > 1:
        ids = ", ".join(m.id for m in matches)
        raise LookupError(f"Ambiguous ID '{partial_id}'. Matches: {ids}")
    return matches[0]


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
