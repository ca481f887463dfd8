"""Path conversion helpers.

Every function here is stateless: it takes explicit parameters and returns a
string (or bool).  None of them raise on odd input.
"""

from __future__ import annotations

import os
import re

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def _home() -> str:
    return os.path.expanduser("~")


def normalize_home(path: str | None) -> str:
    """Replace a leading home directory with ``~``."""
    if not path:
        return ""
    home = _home().rstrip(os.sep)
    if not home:
        return path
    if path == home:
        return "~"
    if path.startswith(home + os.sep):
        return "~" + path[len(home) :]
    return path


def expand_home(path: str | None) -> str:
    """Expand a bare ``~`` or a leading ``~/`` to the home directory.

    Other users' homes (``~name/...``) are left alone.
    """
    if not path:
        return ""
    if path == "~" or path.startswith(("~/", "~\\")):
        return _home() + path[1:]
    return path


def is_absolute_like(path: str) -> bool:
    """True for ``/...``, ``~...`` and drive-letter paths."""
    return path.startswith(("/", "~")) or bool(_DRIVE_RE.match(path))


def _canonical(path: str) -> str:
    # A drive-letter path is absolute even where os.path doesn't know drives
    if _DRIVE_RE.match(path) and os.name != "nt":
        return os.path.normpath(path)
    return os.path.abspath(path)


def to_relative(absolute_path: str | None, project_root: str | None) -> str:
    """Express *absolute_path* relative to *project_root* when it lies inside it.

    Paths outside the root, and every path when no root is known, come back
    in home-normalized absolute form.
    """
    if not absolute_path:
        return ""
    if not project_root:
        return normalize_home(absolute_path)

    path = _canonical(expand_home(absolute_path))
    root = _canonical(expand_home(project_root))
    prefix = root if root.endswith(os.sep) else root + os.sep

    if path.startswith(prefix):
        return path[len(prefix) :].lstrip("/\\")

    return normalize_home(path)


def to_absolute(path: str | None, project_root: str | None) -> str:
    """Resolve a stored path (relative or absolute) to a canonical absolute path."""
    if not path:
        return ""

    if is_absolute_like(path):
        return _canonical(expand_home(path))

    if project_root:
        return os.path.abspath(os.path.join(expand_home(project_root), path))

    return os.path.abspath(path)


def file_exists(path: str | None) -> bool:
    """True when *path* (``~`` allowed) is a readable regular file."""
    if not path:
        return False
    expanded = expand_home(path)
    try:
        return os.path.isfile(expanded) and os.access(expanded, os.R_OK)
    except (OSError, ValueError):
        return False


def normalize_root(path: str | None) -> str | None:
    """Absolute, home-shortened, without trailing separator.  ``None`` for empty."""
    if not path:
        return None
    # abspath() already drops trailing separators
    return normalize_home(os.path.abspath(expand_home(path)))
