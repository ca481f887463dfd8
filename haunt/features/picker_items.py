"""Display items shared by bookmark pickers.

Pickers (a plain selection list, fuzzy finders) all show the same rows; this
module builds them from a bookmark list without knowing which picker is used.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from ..models import Bookmark
from ..paths import normalize_home, to_relative


@dataclass(frozen=True)
class PickerItem:
    idx: int  # 1-based index in the bookmark list
    file: str  # absolute path
    relpath: str  # relative to the project root when inside it
    filename: str
    line: int
    text: str  # formatted display text
    note: str | None
    id: str


def format_item_text(relpath: str, line: int, note: str | None) -> str:
    text = f"{relpath}:{line}"
    if note:
        text += f"  {note}"
    return text


def build_picker_items(bookmarks: list[Bookmark], root: str | None = None) -> list[PickerItem]:
    """One :class:`PickerItem` per bookmark, in collection order."""
    items: list[PickerItem] = []
    for idx, bm in enumerate(bookmarks, start=1):
        relpath = to_relative(bm.file, root) if root else normalize_home(bm.file)
        items.append(
            PickerItem(
                idx=idx,
                file=bm.file,
                relpath=relpath,
                filename=os.path.basename(bm.file),
                line=bm.line,
                text=format_item_text(relpath, bm.line, bm.note),
                note=bm.note,
                id=bm.id,
            )
        )
    return items
