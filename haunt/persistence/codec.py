"""Bookmark file codec: versioned JSON documents and their migrations.

Document layout (format 2)::

    {
      "format_version": 2,
      "project": {"root": "~/proj", "root_absolute": "/home/u/proj"} | null,
      "bookmarks": [
        {"file": "src/a.py", "file_absolute": "~/proj/src/a.py",
         "line": 12, "note": "fix this", "id": "0123456789abcdef"}
      ],
      "metadata": {"created_at": "...", "last_modified": "...",
                   "haunt_version": "0.5.0", "migrated_from": "v1"}
    }

Older documents are upgraded one step at a time through :data:`MIGRATIONS`
until they reach :data:`CURRENT_FORMAT_VERSION`.  The original bytes are
written to a ``.v{N}.backup`` sidecar before the upgraded document replaces
them.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

from .. import __version__
from ..config import StoragePreferences
from ..constants import BACKUP_SUFFIX_TEMPLATE, BOOKMARK_ID_LENGTH, CURRENT_FORMAT_VERSION
from ..log import logger
from ..models import Bookmark, ErrorKind, Notifier, Result, log_notifier
from ..paths import expand_home, file_exists, normalize_home, to_absolute, to_relative
from ..root import RootDetector, RootMethod
from ._base import JsonStore


def now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def generate_bookmark_id(file: str, line: int) -> str:
    """16 hex chars derived from the location and a high-resolution timestamp."""
    key = f"{file}{line}{time.monotonic_ns()}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:BOOKMARK_ID_LENGTH]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_valid_bookmark(candidate: Any) -> bool:
    """Structural check for bookmark data from untrusted sources.  Never raises."""
    if isinstance(candidate, Bookmark):
        candidate = asdict(candidate)
    if not isinstance(candidate, Mapping):
        return False

    file = candidate.get("file")
    if not isinstance(file, str) or not file:
        return False
    line = candidate.get("line")
    if not _is_int(line) or line < 1:
        return False
    bookmark_id = candidate.get("id")
    if not isinstance(bookmark_id, str) or not bookmark_id:
        return False
    note = candidate.get("note")
    if note is not None and not isinstance(note, str):
        return False
    return True


def document_version(data: Mapping) -> Any:
    """``format_version``, else the legacy ``version`` key, else 1.

    A key holding ``null`` counts as absent.
    """
    for key in ("format_version", "version"):
        if data.get(key) is not None:
            return data[key]
    return 1


def _project_block(root: str | None, method: RootMethod | None = None) -> dict | None:
    if not root:
        return None
    block = {"root": normalize_home(root), "root_absolute": expand_home(root)}
    if method is not None:
        block["detection_method"] = method.value
    return block


def migrate_v1_to_v2(data: Mapping, root: str | None, method: RootMethod) -> dict:
    """Convert a v1 document (absolute paths only) to format 2."""
    migrated: list[dict] = []
    for bookmark in data.get("bookmarks") or []:
        if not isinstance(bookmark, Mapping):
            continue
        file = bookmark.get("file")
        migrated.append(
            {
                "file": to_relative(file, root) if root else file,
                "file_absolute": normalize_home(file),
                "line": bookmark.get("line"),
                "note": bookmark.get("note"),
                "id": bookmark.get("id"),
            }
        )

    stamp = now_iso()
    return {
        "format_version": 2,
        "project": _project_block(root, method),
        "bookmarks": migrated,
        "metadata": {
            "created_at": stamp,
            "last_modified": stamp,
            "haunt_version": __version__,
            "migrated_from": "v1",
        },
    }


# from_version -> step producing the next version
MIGRATIONS: dict[int, Callable[[Mapping, "str | None", RootMethod], dict]] = {
    1: migrate_v1_to_v2,
}


class BookmarkCodec:
    """Save, load and create bookmarks.

    Failures are reported through *notify* and returned as failing
    :class:`~haunt.models.Result` objects; nothing here raises to the caller.
    """

    def __init__(
        self,
        root_detector: RootDetector | None = None,
        config: StoragePreferences | None = None,
        *,
        notify: Notifier = log_notifier,
    ) -> None:
        self.root_detector = root_detector or RootDetector()
        self.config = config or StoragePreferences()
        self._notify = notify

    # -- creation -------------------------------------------------------------

    def create_bookmark(self, file: Any, line: Any, note: Any = None) -> Result:
        """Validate and build a new bookmark.  Does NOT add it to any store."""
        if not isinstance(file, str) or not file:
            return self._fail(ErrorKind.VALIDATION, "create_bookmark: file must be a non-empty string")
        if not _is_int(line) or line < 1:
            return self._fail(ErrorKind.VALIDATION, "create_bookmark: line must be a positive integer")
        if note is not None and not isinstance(note, str):
            return self._fail(ErrorKind.VALIDATION, "create_bookmark: note must be None or a string")

        return Result.success(
            Bookmark(id=generate_bookmark_id(file, line), file=file, line=line, note=note)
        )

    is_valid_bookmark = staticmethod(is_valid_bookmark)

    # -- save -----------------------------------------------------------------

    def to_document(self, bookmarks: list[Bookmark], root: str | None) -> dict:
        stored_bookmarks = []
        for bookmark in bookmarks:
            stored: dict[str, Any] = {}
            if self.config.use_relative_paths and root:
                stored["file"] = to_relative(bookmark.file, root)
            else:
                stored["file"] = bookmark.file
            if self.config.store_backup_paths:
                stored["file_absolute"] = normalize_home(bookmark.file)
            stored["line"] = bookmark.line
            stored["note"] = bookmark.note
            stored["id"] = bookmark.id
            stored_bookmarks.append(stored)

        stamp = now_iso()
        return {
            "format_version": CURRENT_FORMAT_VERSION,
            "project": _project_block(root),
            "bookmarks": stored_bookmarks,
            "metadata": {
                "created_at": stamp,
                "last_modified": stamp,
                "haunt_version": __version__,
            },
        }

    def save(self, bookmarks: Any, path: Path | str, *, context: str | None = None) -> Result:
        """Write *bookmarks* to *path* as a format 2 document."""
        if not isinstance(bookmarks, list) or not all(
            isinstance(b, Bookmark) for b in bookmarks
        ):
            return self._fail(ErrorKind.VALIDATION, "save_bookmarks: bookmarks must be a list of Bookmark")

        root, _ = self.root_detector.detect(context)
        document = self.to_document(bookmarks, root)

        store = JsonStore(Path(path))
        try:
            text = store.dumps(document)
        except (TypeError, ValueError) as exc:
            return self._fail(ErrorKind.DECODE, f"save_bookmarks: JSON encoding failed: {exc}")

        try:
            store.save_bytes(text.encode("utf-8"))
        except OSError as exc:
            return self._fail(ErrorKind.IO, f"save_bookmarks: failed to write file {path}: {exc}")

        logger.debug("saved %d bookmark(s) to %s", len(bookmarks), path)
        return Result.success(len(bookmarks))

    # -- load -----------------------------------------------------------------

    def load(self, path: Path | str, *, context: str | None = None) -> Result:
        """Read *path*, migrating older formats.  ``value`` is a list of bookmarks."""
        store = JsonStore(Path(path))
        if not store.exists():
            return Result.success([])

        try:
            raw, data = store.load_raw()
        except OSError as exc:
            return self._fail(ErrorKind.IO, f"load_bookmarks: failed to read file {path}: {exc}", [])
        except ValueError as exc:
            return self._fail(ErrorKind.DECODE, f"load_bookmarks: JSON decoding failed: {exc}", [])

        if not isinstance(data, dict):
            return self._fail(ErrorKind.DECODE, "load_bookmarks: invalid data structure (not an object)", [])

        version = document_version(data)
        if not _is_int(version) or (
            version != CURRENT_FORMAT_VERSION and version not in MIGRATIONS
        ):
            return self._fail(ErrorKind.DECODE, f"Unsupported format version: {version}", [])
        if version != CURRENT_FORMAT_VERSION:
            data = self._migrate(store, raw, data, version, context)

        root, _ = self.root_detector.detect(context)
        project = data.get("project")
        if isinstance(project, Mapping) and project.get("root_absolute"):
            root = str(project["root_absolute"])

        stored = data.get("bookmarks")
        if not isinstance(stored, list):
            stored = []
        return Result.success(self._resolve(stored, root))

    def _migrate(
        self,
        store: JsonStore,
        raw: bytes,
        data: dict,
        version: int,
        context: str | None,
    ) -> dict:
        original_version = version
        root, method = self.root_detector.detect(context)
        self._notify(f"Migrating bookmarks from v{version} to v{CURRENT_FORMAT_VERSION} format...", logging.INFO)
        while version != CURRENT_FORMAT_VERSION:
            data = MIGRATIONS[version](data, root, method)
            version = data["format_version"]

        backup = JsonStore(
            store.path.with_name(
                store.path.name + BACKUP_SUFFIX_TEMPLATE.format(version=original_version)
            )
        )
        try:
            backup.save_bytes(raw)
        except OSError as exc:
            self._notify(
                f"Could not write backup {backup.path}: {exc}. Original file left unchanged.",
                logging.ERROR,
            )
            return data
        self._notify(f"Old format backed up to: {backup.path}", logging.INFO)

        try:
            store.save_raw(data)
        except (OSError, TypeError, ValueError) as exc:
            self._notify(f"Failed to write migrated bookmarks to {store.path}: {exc}", logging.ERROR)
        return data

    def _resolve(self, stored_bookmarks: list, root: str | None) -> list[Bookmark]:
        bookmarks: list[Bookmark] = []
        for stored in stored_bookmarks:
            if not isinstance(stored, Mapping):
                continue
            file_path = self._resolve_file(stored, root)
            if file_path is None:
                continue

            candidate = {
                "id": stored.get("id"),
                "file": file_path,
                "line": stored.get("line"),
                "note": stored.get("note"),
            }
            if not is_valid_bookmark(candidate):
                self._notify(f"Skipping malformed bookmark record: {dict(stored)!r}", logging.WARNING)
                continue
            bookmarks.append(Bookmark.from_dict(candidate))
        return bookmarks

    def _resolve_file(self, stored: Mapping, root: str | None) -> str | None:
        stored_file = stored.get("file") if isinstance(stored.get("file"), str) else None
        backup = stored.get("file_absolute") if isinstance(stored.get("file_absolute"), str) else None

        if stored_file and root:
            candidate = to_absolute(stored_file, root)
            if file_exists(candidate):
                return candidate

        if backup:
            candidate = to_absolute(backup, None)
            if file_exists(candidate):
                return candidate
            self._notify(f"File not found, skipping bookmark: {backup}", logging.WARNING)
            return None

        if stored_file:
            candidate = to_absolute(stored_file, None)
            if file_exists(candidate):
                return candidate
        return None

    # -- helpers --------------------------------------------------------------

    def _fail(self, error: ErrorKind, message: str, value: Any = None) -> Result:
        self._notify(message, logging.ERROR)
        return Result.failure(error, message, value)
