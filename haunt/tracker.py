"""Position tracking: the live markers that follow a line through edits.

The store only needs the :class:`PositionTracker` protocol.  A host editor
implements it on top of its own marker API; :class:`MemoryTracker` is a
complete in-process implementation used by the command line and the tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Hashable, Protocol


class PositionTracker(Protocol):
    """What the store needs from the host's marker API."""

    def is_loaded(self, file: str) -> bool: ...

    def loaded_files(self) -> list[str]: ...

    def attach(self, file: str, line: int) -> Hashable | None:
        """Place a marker; ``None`` when the file's buffer isn't loaded."""
        ...

    def detach(self, handle: Hashable) -> None: ...

    def resolve(self, handle: Hashable) -> int | None:
        """Current 1-based line of the marker, ``None`` if its region is gone."""
        ...

    def show_annotation(self, handle: Hashable, text: str) -> None:
        """Render *text* next to the marker's line."""
        ...

    def hide_annotation(self, handle: Hashable) -> None:
        """Stop rendering the annotation; the marker keeps tracking its line."""
        ...


def _norm(file: str) -> str:
    return os.path.abspath(os.path.expanduser(file))


@dataclass
class _Marker:
    file: str
    line: int
    valid: bool = True
    annotation: str | None = None


class MemoryTracker:
    """Buffers and markers held in plain dicts.

    Buffers are opened with an optional line count; edits are simulated with
    :meth:`insert_lines` and :meth:`delete_lines`, which move markers the way
    an editor's extmarks move.
    """

    def __init__(self) -> None:
        self._buffers: dict[str, int | None] = {}
        self._markers: dict[int, _Marker] = {}
        self._next_handle = 1

    # -- buffers --------------------------------------------------------------

    def open_buffer(self, file: str, line_count: int | None = None) -> str:
        path = _norm(file)
        self._buffers[path] = line_count
        return path

    def close_buffer(self, file: str) -> None:
        """Unload *file*, dropping every marker it held."""
        path = _norm(file)
        self._buffers.pop(path, None)
        for handle in [h for h, m in self._markers.items() if m.file == path]:
            del self._markers[handle]

    def is_loaded(self, file: str) -> bool:
        return _norm(file) in self._buffers

    def loaded_files(self) -> list[str]:
        return list(self._buffers)

    # -- markers --------------------------------------------------------------

    def attach(self, file: str, line: int) -> int | None:
        path = _norm(file)
        if path not in self._buffers:
            return None
        line_count = self._buffers[path]
        if line < 1 or (line_count is not None and line > line_count):
            return None
        handle = self._next_handle
        self._next_handle += 1
        self._markers[handle] = _Marker(file=path, line=line)
        return handle

    def detach(self, handle: int) -> None:
        self._markers.pop(handle, None)

    def resolve(self, handle: int) -> int | None:
        marker = self._markers.get(handle)
        if marker is None or not marker.valid:
            return None
        return marker.line

    def show_annotation(self, handle: int, text: str) -> None:
        marker = self._markers.get(handle)
        if marker is not None:
            marker.annotation = text

    def hide_annotation(self, handle: int) -> None:
        marker = self._markers.get(handle)
        if marker is not None:
            marker.annotation = None

    def annotation(self, handle: int) -> str | None:
        """Text currently rendered for *handle*, ``None`` when hidden."""
        marker = self._markers.get(handle)
        return marker.annotation if marker else None

    def marker_count(self, file: str | None = None) -> int:
        if file is None:
            return len(self._markers)
        path = _norm(file)
        return sum(1 for m in self._markers.values() if m.file == path)

    def annotation_count(self, file: str | None = None) -> int:
        path = _norm(file) if file is not None else None
        return sum(
            1
            for m in self._markers.values()
            if m.annotation is not None and (path is None or m.file == path)
        )

    # -- edits ----------------------------------------------------------------

    def insert_lines(self, file: str, before_line: int, count: int = 1) -> None:
        """Insert *count* lines above *before_line*."""
        path = _norm(file)
        for marker in self._markers.values():
            if marker.file == path and marker.valid and marker.line >= before_line:
                marker.line += count
        if self._buffers.get(path) is not None:
            self._buffers[path] += count

    def delete_lines(self, file: str, start: int, count: int = 1) -> None:
        """Delete lines ``start .. start + count - 1``."""
        path = _norm(file)
        end = start + count
        for marker in self._markers.values():
            if marker.file != path or not marker.valid:
                continue
            if start <= marker.line < end:
                marker.valid = False
            elif marker.line >= end:
                marker.line -= count
        if self._buffers.get(path) is not None:
            self._buffers[path] = max(0, self._buffers[path] - count)
