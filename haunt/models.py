"""Data model shared by the codec, the store and the command line."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Generic, Optional, TypeVar

from .constants import NOTIFY_PREFIX
from .log import logger

T = TypeVar("T")

# (message, logging level) -> None
Notifier = Callable[[str, int], None]


def log_notifier(message: str, level: int = logging.INFO) -> None:
    """Default notification sink: forward to the package logger."""
    logger.log(level, "%s%s", NOTIFY_PREFIX, message)


@dataclass
class Bookmark:
    """A bookmarked line.

    ``file`` is absolute and normalized.  ``line`` is 1-based and only a cache
    once the store holds a live marker for this bookmark.
    """

    id: str
    file: str
    line: int
    note: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Bookmark":
        return cls(
            id=data["id"],
            file=data["file"],
            line=data["line"],
            note=data.get("note"),
        )

    @property
    def short_id(self) -> str:
        """First 8 chars of the ID for display."""
        return self.id[:8]

    @property
    def has_note(self) -> bool:
        return bool(self.note)


@dataclass(frozen=True)
class Position:
    """Cursor context: a file and a 1-based line."""

    file: str
    line: int


class ErrorKind(Enum):
    VALIDATION = "validation"
    IO = "io"
    DECODE = "decode"
    NOT_FOUND = "not_found"
    EXTERNAL_TOOL = "external_tool"
    CANCELLED = "cancelled"


@dataclass
class Result(Generic[T]):
    """Outcome of a store or codec operation.

    Truthy when the operation succeeded, so ``if store.delete(pos):`` reads
    naturally.  ``value`` carries the payload (a bookmark, a list, a summary).
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Any = None, message: str = "") -> "Result":
        return cls(ok=True, value=value, message=message)

    @classmethod
    def failure(cls, error: ErrorKind, message: str = "", value: Any = None) -> "Result":
        return cls(ok=False, value=value, error=error, message=message)


@dataclass(frozen=True)
class ToggleSummary:
    """Outcome of a global annotation visibility change."""

    visible: bool
    count: int
