"""The bookmark store: the authoritative in-memory collection.

:class:`BookmarkStore` owns the bookmark list, the ``bookmark id -> marker``
table and the global annotation visibility flag.  Every bookmark in a loaded
buffer holds a marker, shown or not; which annotations are rendered is kept
in a separate set.  The store talks to the outside world only through
injected collaborators:

* :class:`~haunt.persistence.BookmarkCodec`: file format and migrations
* :class:`~haunt.features.RepositoryLocator`: which file to use
* a :class:`~haunt.tracker.PositionTracker`: live markers in buffers
* a :class:`~haunt.hooks.HookRegistry`: lifecycle events
* a notifier and an optional ``confirm(message) -> bool`` callable

Stored line numbers go stale as soon as a buffer is edited above them, so
every lookup by line goes through :meth:`BookmarkStore.current_line`, which
prefers the marker position and writes it back as a cache.
"""

from __future__ import annotations

import copy
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Hashable

from .config import HauntConfig
from .features.git_integration import RepositoryLocator
from .hooks import HookEvent, HookRegistry
from .log import logger
from .models import (
    Bookmark,
    ErrorKind,
    Notifier,
    Position,
    Result,
    ToggleSummary,
    log_notifier,
)
from .persistence.codec import BookmarkCodec
from .root import RootDetector
from .tracker import MemoryTracker, PositionTracker

ConfirmFn = Callable[[str], bool]


def _norm(file: str) -> str:
    return os.path.abspath(os.path.expanduser(file))


class BookmarkStore:
    """Bookmarks for one data-directory context.

    Construct one per host session (or per test); nothing is shared between
    instances.  Call :meth:`load` to read the current repository's file.
    """

    def __init__(
        self,
        codec: BookmarkCodec | None = None,
        locator: RepositoryLocator | None = None,
        tracker: PositionTracker | None = None,
        *,
        hooks: HookRegistry | None = None,
        notify: Notifier = log_notifier,
        confirm: ConfirmFn | None = None,
        config: HauntConfig | None = None,
    ) -> None:
        self.config = config or HauntConfig()
        self._notify = notify
        self.codec = codec or BookmarkCodec(
            RootDetector(self.config.root_detection),
            self.config.storage,
            notify=notify,
        )
        self.locator = locator or RepositoryLocator(
            self.config.storage.data_dir or None, notify=notify
        )
        self.tracker: PositionTracker = tracker or MemoryTracker()
        self.hooks = hooks or HookRegistry(notify)
        self._confirm = confirm

        self._bookmarks: list[Bookmark] = []
        self._markers: dict[str, Hashable] = {}
        self._shown: set[str] = set()  # ids whose annotation is rendered
        self._restored: set[str] = set()
        self._visible = self.config.display.annotations_visible
        self._context: str | None = None  # last file seen, for root detection
        self._save_thread: threading.Thread | None = None
        self.cursor: Position | None = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_bookmarks(self) -> list[Bookmark]:
        """Deep copy of the collection, in insertion order, with live lines."""
        for bookmark in self._bookmarks:
            self.current_line(bookmark)
        return copy.deepcopy(self._bookmarks)

    def has_bookmarks(self) -> bool:
        return bool(self._bookmarks)

    def are_annotations_visible(self) -> bool:
        return self._visible

    def find_by_id(self, bookmark_id: str) -> Bookmark | None:
        bm = self._by_id(bookmark_id)
        if bm is None:
            return None
        self.current_line(bm)
        return copy.deepcopy(bm)

    def has_marker(self, bookmark_id: str) -> bool:
        """True while the bookmark's line is tracked in a loaded buffer."""
        return bookmark_id in self._markers

    def is_annotation_shown(self, bookmark_id: str) -> bool:
        return bookmark_id in self._shown

    def marker_count(self) -> int:
        return len(self._markers)

    def current_line(self, bookmark: Bookmark) -> int:
        """Live line of *bookmark*: the marker's position if it still has one.

        A marker whose lines were deleted no longer resolves; it is dropped
        and the last known line is kept.
        """
        handle = self._markers.get(bookmark.id)
        if handle is None:
            return bookmark.line
        line = self.tracker.resolve(handle)
        if line is None:
            logger.debug("marker for %s no longer resolves, dropping it", bookmark.id)
            self._markers.pop(bookmark.id, None)
            self._shown.discard(bookmark.id)
            self.tracker.detach(handle)
            return bookmark.line
        bookmark.line = line
        return line

    # ------------------------------------------------------------------
    # Annotate / toggle
    # ------------------------------------------------------------------

    def annotate(self, position: Position, note: str | None = None) -> Result:
        """Create a bookmark at *position*, or replace the note of the one there.

        *note* comes from the host's input prompt; ``None`` or ``""`` means
        the prompt was cancelled and nothing changes.
        """
        if note is None or note == "":
            return Result.failure(ErrorKind.CANCELLED, "annotation cancelled")
        if not isinstance(note, str):
            message = "annotate: note must be a string"
            self._notify(message, logging.ERROR)
            return Result.failure(ErrorKind.VALIDATION, message)

        file = self._remember(position.file)
        existing = self._find_at(file, position.line)
        if existing is not None:
            old_note = existing.note
            existing.note = note
            self._attach(existing)
            if existing.id in self._shown or self._visible:
                self._show(existing)
            self._persist()
            self.hooks.emit(
                HookEvent.UPDATE,
                {
                    "bookmark": copy.deepcopy(existing),
                    "file": file,
                    "line": existing.line,
                    "old_note": old_note,
                    "new_note": note,
                },
            )
            return Result.success(copy.deepcopy(existing))

        created = self.codec.create_bookmark(file, position.line, note)
        if not created:
            return created
        bookmark: Bookmark = created.value
        self._bookmarks.append(bookmark)
        self._attach(bookmark)
        if self._visible:
            self._show(bookmark)
        self._persist()
        self.hooks.emit(
            HookEvent.CREATE,
            {"bookmark": copy.deepcopy(bookmark), "file": file, "line": bookmark.line},
        )
        return Result.success(copy.deepcopy(bookmark))

    def toggle_annotation(self, position: Position) -> Result:
        """Show or hide the note of the bookmark under the cursor.

        ``value`` is the new visibility.  The bookmark itself is never
        created or removed here.
        """
        file = self._remember(position.file)
        bookmark = self._find_at(file, position.line)
        if bookmark is None:
            return Result.failure(ErrorKind.NOT_FOUND, "no bookmark on this line")

        if bookmark.id in self._shown:
            self._hide(bookmark)
            visible = False
        else:
            if not self._show(bookmark):
                return Result.failure(
                    ErrorKind.NOT_FOUND, f"buffer for {file} is not loaded"
                )
            visible = True

        self.hooks.emit(
            HookEvent.TOGGLE,
            {
                "bookmark": copy.deepcopy(bookmark),
                "file": file,
                "line": bookmark.line,
                "visible": visible,
            },
        )
        return Result.success(visible)

    def toggle_all_lines(self) -> Result:
        """Flip global annotation visibility.  ``value`` is a :class:`ToggleSummary`."""
        return self.set_annotations_visible(not self._visible)

    def set_annotations_visible(self, visible: bool) -> Result:
        """Show or hide every annotation in loaded buffers.

        Safe to repeat: annotations are only shown where hidden and only
        hidden where shown.  Line tracking is unaffected.
        """
        count = 0
        if visible:
            for bookmark in self._bookmarks:
                if (
                    bookmark.has_note
                    and bookmark.id not in self._shown
                    and self._show(bookmark)
                ):
                    count += 1
        else:
            for bookmark in self._bookmarks:
                if self._hide(bookmark):
                    count += 1

        self._visible = visible
        summary = ToggleSummary(visible=visible, count=count)
        self.hooks.emit(HookEvent.TOGGLE_ALL, {"visible": visible, "count": count})
        return Result.success(summary)

    # ------------------------------------------------------------------
    # Delete / clear
    # ------------------------------------------------------------------

    def delete(self, position: Position) -> Result:
        file = self._remember(position.file)
        bookmark = self._find_at(file, position.line)
        if bookmark is None:
            return Result.failure(ErrorKind.NOT_FOUND, "no bookmark on this line")
        return self._delete(bookmark)

    def delete_by_id(self, bookmark_id: str) -> Result:
        bookmark = self._by_id(bookmark_id)
        if bookmark is None:
            return Result.failure(ErrorKind.NOT_FOUND, f"no bookmark with id {bookmark_id}")
        return self._delete(bookmark)

    def clear(self, file: str) -> Result:
        """Remove every bookmark in *file*.  Succeeds even when there are none."""
        path = self._remember(file)
        removed = [bm for bm in self._bookmarks if bm.file == path]
        if removed:
            self._remove_all(removed)
            self._persist()
            for bookmark in removed:
                self._emit_deleted(bookmark)

        self.hooks.emit(
            HookEvent.CLEAR,
            {"file": path, "bookmarks": copy.deepcopy(removed), "count": len(removed)},
        )
        return Result.success(len(removed))

    def clear_all(self, confirmed: bool | None = None) -> Result:
        """Remove every bookmark, after confirmation.

        *confirmed* short-circuits the injected ``confirm`` prompt; with
        neither, nothing is cleared.
        """
        if confirmed is None:
            confirmed = bool(self._confirm and self._confirm("Clear all bookmarks?"))
        if not confirmed:
            return Result.failure(ErrorKind.CANCELLED, "clear all cancelled")

        removed = list(self._bookmarks)
        self._remove_all(removed)
        self._persist()
        for bookmark in removed:
            self._emit_deleted(bookmark)

        self.hooks.emit(
            HookEvent.CLEAR_ALL,
            {"bookmarks": copy.deepcopy(removed), "count": len(removed)},
        )
        return Result.success(len(removed))

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def next(self, position: Position) -> Result:
        """Jump to the nearest bookmark below the cursor.  No wrapping."""
        return self._navigate(position, "next")

    def prev(self, position: Position) -> Result:
        """Jump to the nearest bookmark above the cursor.  No wrapping."""
        return self._navigate(position, "prev")

    def _navigate(self, position: Position, direction: str) -> Result:
        file = self._remember(position.file)
        from_line = position.line
        candidates = [
            (self.current_line(bm), bm) for bm in self._bookmarks if bm.file == file
        ]
        if direction == "next":
            candidates = [c for c in candidates if c[0] > from_line]
            target = min(candidates, key=lambda c: c[0]) if candidates else None
        else:
            candidates = [c for c in candidates if c[0] < from_line]
            target = max(candidates, key=lambda c: c[0]) if candidates else None

        if target is None:
            message = f"No {'next' if direction == 'next' else 'previous'} bookmark"
            self._notify(message, logging.INFO)
            return Result.failure(ErrorKind.NOT_FOUND, message)

        to_line, bookmark = target
        self.cursor = Position(file=file, line=to_line)
        self.hooks.emit(
            HookEvent.NAVIGATION,
            {
                "bookmark": copy.deepcopy(bookmark),
                "file": file,
                "direction": direction,
                "from_line": from_line,
                "to_line": to_line,
            },
        )
        return Result.success(self.cursor)

    # ------------------------------------------------------------------
    # Buffers
    # ------------------------------------------------------------------

    def restore_buffer_bookmarks(self, file: str) -> Result:
        """Attach markers for a freshly loaded buffer.

        Every bookmark of the file gets a marker; notes are shown when
        annotations are globally visible.  Runs once per buffer until
        :meth:`teardown_buffer` clears the flag.  ``value`` is the list of
        bookmarks that got a marker.
        """
        path = _norm(file)
        if path in self._restored or not self.tracker.is_loaded(path):
            return Result.success([])

        restored: list[Bookmark] = []
        for bookmark in self._bookmarks:
            if bookmark.file != path or not self._attach(bookmark):
                continue
            if self._visible and bookmark.has_note:
                self._show(bookmark)
            restored.append(bookmark)
        self._restored.add(path)

        copies = copy.deepcopy(restored)
        self.hooks.emit(
            HookEvent.RESTORE, {"file": path, "bookmarks": copies, "count": len(copies)}
        )
        return Result.success(copies)

    def teardown_buffer(self, file: str) -> int:
        """Detach the markers of *file* before its buffer goes away."""
        path = _norm(file)
        count = 0
        for bookmark in self._bookmarks:
            if bookmark.file == path and self._detach(bookmark):
                count += 1
        self._restored.discard(path)
        return count

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def get_storage_path(self) -> Path:
        return self.locator.get_storage_path()

    def set_data_dir(self, data_dir: str | Path | None) -> None:
        """Point the locator elsewhere without reloading (see :meth:`change_data_dir`)."""
        self.locator.set_data_dir(data_dir)

    def change_data_dir(self, data_dir: str | Path | None) -> Result:
        """Switch data directory and replace the collection with what's stored there.

        Unsaved in-memory state is discarded; this is a context switch, not a
        merge.
        """
        old_dir = str(self.locator.data_dir)
        self.flush()
        self.locator.set_data_dir(data_dir)
        self.locator.invalidate()
        result = self.load()
        self.hooks.emit(
            HookEvent.DATA_DIR_CHANGE,
            {"new_dir": str(data_dir) if data_dir is not None else None, "old_dir": old_dir},
        )
        return result

    def load(self) -> Result:
        """Replace the collection with the stored bookmarks for this repository."""
        self._teardown_all()
        try:
            path = self.get_storage_path()
        except OSError as exc:
            message = f"could not determine storage path: {exc}"
            self._notify(message, logging.ERROR)
            self._bookmarks = []
            return Result.failure(ErrorKind.IO, message, [])

        result = self.codec.load(path, context=self._context)
        self._bookmarks = list(result.value or [])
        loaded = self.get_bookmarks()
        self.hooks.emit(HookEvent.LOAD, {"bookmarks": loaded, "count": len(loaded)})

        for file in self.tracker.loaded_files():
            self.restore_buffer_bookmarks(file)

        if not result:
            return Result.failure(result.error, result.message, loaded)  # type: ignore[arg-type]
        return Result.success(loaded)

    def load_bookmarks(self) -> list[Bookmark]:
        return self.load().value or []

    def save_bookmarks(self) -> Result:
        """Write the collection now and wait for the result."""
        snapshot = self.get_bookmarks()
        try:
            path = self.get_storage_path()
        except OSError as exc:
            message = f"could not determine storage path: {exc}"
            self._notify(message, logging.ERROR)
            return Result.failure(ErrorKind.IO, message)

        self.hooks.emit(
            HookEvent.PRE_SAVE,
            {"bookmarks": snapshot, "count": len(snapshot), "async": False},
        )
        result = self.codec.save(snapshot, path, context=self._context)
        self.hooks.emit(
            HookEvent.POST_SAVE,
            {
                "bookmarks": snapshot,
                "count": len(snapshot),
                "success": result.ok,
                "async": False,
            },
        )
        return result

    def save_bookmarks_async(self) -> None:
        """Write the collection on a background thread.

        ``on_post_save`` fires from the worker thread; a failure is reported
        through the notifier since no caller is left to check a result.
        """
        snapshot = self.get_bookmarks()
        try:
            path = self.get_storage_path()
        except OSError as exc:
            self._notify(f"background save failed: {exc}", logging.ERROR)
            return

        self.hooks.emit(
            HookEvent.PRE_SAVE,
            {"bookmarks": snapshot, "count": len(snapshot), "async": True},
        )
        # One writer at a time keeps saves in order
        self.flush()
        thread = threading.Thread(
            target=self._write_async,
            args=(snapshot, path, self._context),
            daemon=True,
        )
        self._save_thread = thread
        thread.start()

    def flush(self, timeout: float | None = None) -> None:
        """Wait for a pending background save."""
        thread = self._save_thread
        if thread is not None and thread.is_alive():
            thread.join(timeout)

    def reset(self) -> None:
        """Drop all in-memory state.  Nothing is written."""
        self.flush()
        self._teardown_all()
        self._bookmarks = []
        self._visible = self.config.display.annotations_visible
        self._context = None
        self.cursor = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _write_async(self, snapshot: list[Bookmark], path: Path, context: str | None) -> None:
        try:
            result = self.codec.save(snapshot, path, context=context)
        except Exception as exc:
            logger.debug("background save raised", exc_info=True)
            result = Result.failure(ErrorKind.IO, str(exc))
        if not result:
            self._notify(f"background save failed: {result.message}", logging.ERROR)
        self.hooks.emit(
            HookEvent.POST_SAVE,
            {
                "bookmarks": snapshot,
                "count": len(snapshot),
                "success": result.ok,
                "async": True,
            },
        )

    def _persist(self) -> None:
        if self.config.storage.async_save:
            self.save_bookmarks_async()
        else:
            self.save_bookmarks()

    def _remember(self, file: str) -> str:
        path = _norm(file)
        self._context = path
        return path

    def _by_id(self, bookmark_id: str) -> Bookmark | None:
        for bookmark in self._bookmarks:
            if bookmark.id == bookmark_id:
                return bookmark
        return None

    def _find_at(self, file: str, line: int) -> Bookmark | None:
        for bookmark in self._bookmarks:
            if bookmark.file == file and self.current_line(bookmark) == line:
                return bookmark
        return None

    def _attach(self, bookmark: Bookmark) -> bool:
        if bookmark.id in self._markers:
            return False
        handle = self.tracker.attach(bookmark.file, bookmark.line)
        if handle is None:
            return False
        self._markers[bookmark.id] = handle
        return True

    def _show(self, bookmark: Bookmark) -> bool:
        """Render the note, placing a marker first if needed."""
        self._attach(bookmark)
        handle = self._markers.get(bookmark.id)
        if handle is None:
            return False
        self.tracker.show_annotation(handle, bookmark.note or "")
        self._shown.add(bookmark.id)
        return True

    def _hide(self, bookmark: Bookmark) -> bool:
        if bookmark.id not in self._shown:
            return False
        self._shown.discard(bookmark.id)
        handle = self._markers.get(bookmark.id)
        if handle is not None:
            self.tracker.hide_annotation(handle)
        return True

    def _detach(self, bookmark: Bookmark) -> bool:
        self._hide(bookmark)
        handle = self._markers.pop(bookmark.id, None)
        if handle is None:
            return False
        line = self.tracker.resolve(handle)
        if line is not None:
            bookmark.line = line
        self.tracker.detach(handle)
        return True

    def _teardown_all(self) -> None:
        for bookmark in self._bookmarks:
            self._detach(bookmark)
        self._markers.clear()
        self._shown.clear()
        self._restored.clear()

    def _remove_all(self, removed: list[Bookmark]) -> None:
        for bookmark in removed:
            self._detach(bookmark)
        ids = {bm.id for bm in removed}
        self._bookmarks = [bm for bm in self._bookmarks if bm.id not in ids]

    def _delete(self, bookmark: Bookmark) -> Result:
        self._remove_all([bookmark])
        self._persist()
        self._emit_deleted(bookmark)
        return Result.success(copy.deepcopy(bookmark))

    def _emit_deleted(self, bookmark: Bookmark) -> None:
        self.hooks.emit(
            HookEvent.DELETE,
            {"bookmark": copy.deepcopy(bookmark), "file": bookmark.file, "line": bookmark.line},
        )
