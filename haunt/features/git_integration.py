"""Git helpers and the repository-scoped storage locator.

``run_git`` is a pure function.  :class:`RepositoryLocator` owns the short-lived
root/branch cache and the data directory, and reports through an injected
notifier so it never touches a UI directly.
"""

from __future__ import annotations

import hashlib
import logging
import os
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from ..constants import (
    DEFAULT_BRANCH_KEY,
    DEFAULT_DATA_DIR,
    GIT_CACHE_TTL,
    STORAGE_HASH_LENGTH,
)
from ..log import logger
from ..models import Notifier, log_notifier

GIT_NOT_FOUND = "git not found"

# (*args, cwd=...) -> (success, output)
GitRunner = Callable[..., "tuple[bool, str]"]


def run_git(*args: str, cwd: str | None = None) -> tuple[bool, str]:
    """Run a git command and return *(success, output)*."""
    try:
        result = subprocess.run(
            ["git", *args],
            capture_output=True,
            text=True,
            timeout=10,
            cwd=cwd or os.getcwd(),
        )
        return (
            result.returncode == 0,
            result.stdout.strip() or result.stderr.strip(),
        )
    except FileNotFoundError:
        return False, GIT_NOT_FOUND
    except subprocess.TimeoutExpired:
        return False, "git command timed out"
    except OSError as exc:
        return False, str(exc)


def storage_key(root: str, branch: str | None) -> str:
    """``root|branch`` with the default branch placeholder."""
    return f"{root}|{branch or DEFAULT_BRANCH_KEY}"


def hash_storage_key(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:STORAGE_HASH_LENGTH]


@dataclass(frozen=True)
class GitInfo:
    root: str | None = None
    branch: str | None = None


class RepositoryLocator:
    """Map the current repository and branch to a bookmark file.

    Parameters
    ----------
    data_dir:
        Custom data directory; ``None`` uses :data:`DEFAULT_DATA_DIR`.
    cwd:
        Directory git runs in (defaults to ``os.getcwd()`` at call time).
    runner:
        Replacement for :func:`run_git`, mainly for tests.
    clock:
        Monotonic seconds source for the cache.
    """

    def __init__(
        self,
        data_dir: str | Path | None = None,
        *,
        cwd: str | None = None,
        runner: GitRunner | None = None,
        clock: Callable[[], float] = time.monotonic,
        notify: Notifier = log_notifier,
        ttl: float = GIT_CACHE_TTL,
    ) -> None:
        self._custom_data_dir: Path | None = None
        self._cwd = cwd
        self._run = runner or run_git
        self._clock = clock
        self._notify = notify
        self._ttl = ttl
        self._cache: GitInfo | None = None
        self._cache_time = 0.0
        self._git_warning_shown = False
        self.set_data_dir(data_dir)

    # -- data directory -------------------------------------------------------

    @property
    def cwd(self) -> str:
        return self._cwd or os.getcwd()

    @property
    def data_dir(self) -> Path:
        return self._custom_data_dir or DEFAULT_DATA_DIR

    def set_data_dir(self, data_dir: str | Path | None) -> None:
        """Use *data_dir* for storage, or reset to the default with ``None``."""
        if data_dir is None or str(data_dir) == "":
            self._custom_data_dir = None
            return
        self._custom_data_dir = Path(os.path.expanduser(str(data_dir)))

    def ensure_data_dir(self) -> Path:
        data_dir = self.data_dir
        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir

    # -- git queries ----------------------------------------------------------

    def get_git_info(self) -> GitInfo:
        """Repository root and branch, cached for a few seconds."""
        now = self._clock()
        if self._cache is not None and (now - self._cache_time) < self._ttl:
            return self._cache

        info = GitInfo(root=self._git_root(), branch=self._git_branch())
        self._cache = info
        self._cache_time = now
        return info

    def invalidate(self) -> None:
        self._cache = None
        self._cache_time = 0.0

    def get_storage_path(self) -> Path:
        """``{data_dir}/{sha256(root|branch)[:12]}.json``."""
        info = self.get_git_info()
        key = storage_key(info.root or self.cwd, info.branch)
        return self.ensure_data_dir() / f"{hash_storage_key(key)}.json"

    def _git_root(self) -> str | None:
        ok, output = self._run("rev-parse", "--show-toplevel", cwd=self.cwd)
        if ok and output:
            return output.splitlines()[0]
        if output == GIT_NOT_FOUND and not self._git_warning_shown:
            self._git_warning_shown = True
            self._notify(
                "git command not found. Bookmarks will be stored per working "
                "directory instead of per repository/branch.",
                logging.WARNING,
            )
        elif not ok:
            logger.debug("git rev-parse failed in %s: %s", self.cwd, output)
        return None

    def _git_branch(self) -> str | None:
        ok, output = self._run("branch", "--show-current", cwd=self.cwd)
        if not ok or not output:
            return None
        return output.splitlines()[0] or None
