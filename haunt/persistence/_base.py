"""Base JSON file store."""

from __future__ import annotations

import json
from pathlib import Path


class JsonStore:
    """One JSON document on disk.

    Unlike a cache file, a bookmark file must report *why* it failed to
    load, so ``load_raw()`` raises and leaves the error policy to the caller.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    # -- core I/O -------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.is_file()

    def read_bytes(self) -> bytes:
        """Raw file contents, untouched.  Raises ``OSError``."""
        return self.path.read_bytes()

    def load_raw(self) -> tuple[bytes, object]:
        """Return ``(raw_bytes, parsed)``.

        Raises ``OSError`` when the file can't be read and ``ValueError``
        (``json.JSONDecodeError``, ``UnicodeDecodeError``) when it isn't JSON.
        """
        raw = self.read_bytes()
        return raw, json.loads(raw)

    @staticmethod
    def dumps(data: dict | list, *, sort_keys: bool = False) -> str:
        """Serialize *data*.  Raises ``TypeError``/``ValueError``."""
        return json.dumps(data, indent=2, ensure_ascii=False, sort_keys=sort_keys)

    def save_bytes(self, raw: bytes) -> None:
        """Write *raw* in one call, creating parents as needed."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(raw)

    def save_raw(self, data: dict | list, *, sort_keys: bool = False) -> None:
        """Write *data* as pretty-printed JSON."""
        self.save_bytes(self.dumps(data, sort_keys=sort_keys).encode("utf-8"))
