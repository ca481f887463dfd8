"""Shared constants for haunt."""

from __future__ import annotations

from pathlib import Path

# On-disk document format
CURRENT_FORMAT_VERSION = 2
BACKUP_SUFFIX_TEMPLATE = ".v{version}.backup"

# Storage location
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "haunt"
CONFIG_PATH = Path.home() / ".config" / "haunt" / "config.yaml"
DEFAULT_BRANCH_KEY = "__default__"
STORAGE_HASH_LENGTH = 12
BOOKMARK_ID_LENGTH = 16

# Seconds a git root/branch lookup stays fresh
GIT_CACHE_TTL = 5.0

DEFAULT_ROOT_MARKERS: tuple[str, ...] = (
    ".git",
    ".projectroot",
    "pyproject.toml",
    "Cargo.toml",
    "package.json",
    "go.mod",
    "Makefile",
)

NOTIFY_PREFIX = "haunt: "
