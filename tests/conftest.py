"""Shared test fixtures for the haunt test suite."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from haunt.config import HauntConfig
from haunt.features.git_integration import RepositoryLocator
from haunt.models import Position
from haunt.persistence.codec import BookmarkCodec
from haunt.root import RootDetector
from haunt.store import BookmarkStore
from haunt.tracker import MemoryTracker


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    """Point ``~`` at a throwaway directory."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return home_dir


# -- Project tree ------------------------------------------------------------


def _write_lines(path: Path, count: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"line {i}\n" for i in range(1, count + 1)))
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project with a ``.git`` marker and two 20-line source files."""
    root = tmp_path / "proj"
    (root / ".git").mkdir(parents=True)
    _write_lines(root / "src" / "a.py", 20)
    _write_lines(root / "src" / "b.py", 20)
    return root


@pytest.fixture
def file_a(project: Path) -> str:
    return str(project / "src" / "a.py")


@pytest.fixture
def file_b(project: Path) -> str:
    return str(project / "src" / "b.py")


@pytest.fixture
def pos(file_a: str):
    """``pos(line)`` -> Position in file A; ``pos(line, file)`` for others."""

    def _pos(line: int, file: str | None = None) -> Position:
        return Position(file=file or file_a, line=line)

    return _pos


# -- Collaborators -----------------------------------------------------------


class FakeGit:
    """Stands in for ``run_git``; records every call."""

    def __init__(self, root: str | None = None, branch: str | None = "main") -> None:
        self.root = root
        self.branch = branch
        self.missing = False
        self.calls: list[tuple[str, ...]] = []

    def __call__(self, *args: str, cwd: str | None = None) -> tuple[bool, str]:
        self.calls.append(args)
        if self.missing:
            return False, "git not found"
        if args[:1] == ("rev-parse",):
            if self.root is None:
                return False, "fatal: not a git repository"
            return True, self.root
        if args[:1] == ("branch",):
            if self.branch is None:
                return False, "fatal: not a git repository"
            return True, self.branch
        return False, "unsupported"


class Notices(list):
    """Notifier that records ``(message, level)`` pairs."""

    def __call__(self, message: str, level: int = logging.INFO) -> None:
        self.append((message, level))

    def at(self, level: int) -> list[str]:
        return [m for m, lvl in self if lvl == level]


class HookLog(list):
    """Listener that records ``(event, ctx)`` pairs."""

    def listener(self, event: str):
        def _record(ctx: dict) -> None:
            self.append((event, ctx))

        return _record

    def events(self) -> list[str]:
        return [e for e, _ in self]


@pytest.fixture
def fake_git(project: Path) -> FakeGit:
    return FakeGit(root=str(project))


@pytest.fixture
def notices() -> Notices:
    return Notices()


@pytest.fixture
def tracker(file_a: str, file_b: str) -> MemoryTracker:
    t = MemoryTracker()
    t.open_buffer(file_a, line_count=20)
    t.open_buffer(file_b, line_count=20)
    return t


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def detector(project: Path) -> RootDetector:
    return RootDetector(cwd=str(project))


@pytest.fixture
def codec(detector: RootDetector, notices: Notices) -> BookmarkCodec:
    return BookmarkCodec(detector, notify=notices)


@pytest.fixture
def make_store(project, data_dir, fake_git, tracker, notices):
    """Factory for stores sharing the same project, git and data dir."""

    def _make(config: HauntConfig | None = None, **kwargs) -> BookmarkStore:
        config = config or HauntConfig()
        codec = BookmarkCodec(
            RootDetector(config.root_detection, cwd=str(project)),
            config.storage,
            notify=notices,
        )
        locator = RepositoryLocator(
            data_dir, cwd=str(project), runner=fake_git, notify=notices
        )
        return BookmarkStore(
            codec,
            locator,
            kwargs.pop("tracker", tracker),
            notify=notices,
            config=config,
            **kwargs,
        )

    return _make


@pytest.fixture
def store(make_store) -> BookmarkStore:
    return make_store()


@pytest.fixture
def make_git():
    """The :class:`FakeGit` class, for tests that need their own runner."""
    return FakeGit


@pytest.fixture
def hook_log() -> HookLog:
    return HookLog()
