"""User configuration for haunt.

Loads settings from ~/.config/haunt/config.yaml.
Falls back to sensible defaults if the file doesn't exist or is invalid.
Creates a default file on first run so users can discover and edit it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .constants import CONFIG_PATH, DEFAULT_ROOT_MARKERS
from .log import logger

_DEFAULT_YAML = """\
# haunt configuration
# Delete this file to reset to defaults.

storage:
  use_relative_paths: true    # store paths relative to the project root
  store_backup_paths: true    # also store a ~-normalized absolute path
  data_dir: ""                # empty = ~/.local/share/haunt
  async_save: false           # write bookmark files on a background thread

root_detection:
  respect_external: true      # use the host's workspace root when it has one
  respect_lsp: true           # use the language server's root directory
  markers:
    - .git
    - .projectroot
    - pyproject.toml
    - Cargo.toml
    - package.json
    - go.mod
    - Makefile

display:
  annotations_visible: true   # show notes when a project is opened
"""


@dataclass
class StoragePreferences:
    """How bookmark files are written."""

    use_relative_paths: bool = True
    store_backup_paths: bool = True
    data_dir: str = ""  # Empty means use the default data directory
    async_save: bool = False


@dataclass
class RootDetectionPreferences:
    """Which strategies find the project root, in priority order."""

    respect_external: bool = True
    respect_lsp: bool = True
    markers: list[str] = field(default_factory=lambda: list(DEFAULT_ROOT_MARKERS))


@dataclass
class DisplayPreferences:
    annotations_visible: bool = True


@dataclass
class HauntConfig:
    """Top-level haunt configuration."""

    storage: StoragePreferences = field(default_factory=StoragePreferences)
    root_detection: RootDetectionPreferences = field(
        default_factory=RootDetectionPreferences
    )
    display: DisplayPreferences = field(default_factory=DisplayPreferences)


def load_config(path: Path | None = None) -> HauntConfig:
    """Load configuration from a YAML file.

    Falls back to defaults if the file doesn't exist or is invalid.
    Creates a default configuration file on first run.
    """
    path = path or CONFIG_PATH
    config = HauntConfig()

    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            if isinstance(data.get("storage"), dict):
                sdata = data["storage"]
                if "use_relative_paths" in sdata:
                    config.storage.use_relative_paths = bool(sdata["use_relative_paths"])
                if "store_backup_paths" in sdata:
                    config.storage.store_backup_paths = bool(sdata["store_backup_paths"])
                if "data_dir" in sdata:
                    config.storage.data_dir = str(sdata["data_dir"] or "")
                if "async_save" in sdata:
                    config.storage.async_save = bool(sdata["async_save"])
            if isinstance(data.get("root_detection"), dict):
                rdata = data["root_detection"]
                if "respect_external" in rdata:
                    config.root_detection.respect_external = bool(rdata["respect_external"])
                if "respect_lsp" in rdata:
                    config.root_detection.respect_lsp = bool(rdata["respect_lsp"])
                if isinstance(rdata.get("markers"), list):
                    config.root_detection.markers = [
                        str(m) for m in rdata["markers"] if m
                    ]
            if isinstance(data.get("display"), dict):
                ddata = data["display"]
                if "annotations_visible" in ddata:
                    config.display.annotations_visible = bool(
                        ddata["annotations_visible"]
                    )
        except (OSError, yaml.YAMLError, AttributeError, TypeError):
            logger.debug("failed to parse config %s, using defaults", path, exc_info=True)
            return HauntConfig()
    else:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(_DEFAULT_YAML, encoding="utf-8")
        except OSError:
            logger.debug("could not write default config to %s", path, exc_info=True)

    return config
