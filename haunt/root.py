"""Project root detection.

Strategies are tried in a fixed priority order and the first one that yields
a directory wins::

    custom -> external_hint -> lsp_hint -> markers -> cwd

Host-specific knowledge (the editor's workspace root, language server roots)
arrives as injected callables so this module stays host independent.
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .config import RootDetectionPreferences
from .log import logger
from .paths import expand_home, normalize_root

# context (a file path or None) -> root directory or None
RootHint = Callable[[Optional[str]], Optional[str]]


class RootMethod(str, Enum):
    CUSTOM = "custom"
    EXTERNAL_HINT = "external_hint"
    LSP_HINT = "lsp_hint"
    MARKERS = "markers"
    CWD = "cwd"


def find_marker_root(start: str | Path, markers: list[str]) -> str | None:
    """Walk up from *start* to the nearest directory containing any marker."""
    check = Path(expand_home(str(start))).absolute()
    while True:
        for marker in markers:
            if (check / marker).exists():
                return str(check)
        if check.parent == check:
            return None
        check = check.parent


class RootDetector:
    """Determine the project root for a file context.

    Parameters
    ----------
    config:
        Which optional strategies are enabled and the marker list.
    custom_fn:
        User override, called with the context before anything else.
    external_hint:
        The host's own notion of a workspace root, if it has one.
    lsp_hint:
        Root directory reported by a language server attached to the file.
    cwd:
        Working directory override (defaults to ``os.getcwd()`` at call time).
    """

    def __init__(
        self,
        config: RootDetectionPreferences | None = None,
        *,
        custom_fn: RootHint | None = None,
        external_hint: RootHint | None = None,
        lsp_hint: RootHint | None = None,
        cwd: str | None = None,
    ) -> None:
        self.config = config or RootDetectionPreferences()
        self.custom_fn = custom_fn
        self.external_hint = external_hint
        self.lsp_hint = lsp_hint
        self._cwd = cwd

    @property
    def cwd(self) -> str:
        return self._cwd or os.getcwd()

    def detect(self, context: str | None = None) -> tuple[str | None, RootMethod]:
        """Return ``(root, method)``.  Never raises; cwd always succeeds."""
        strategies: list[tuple[RootMethod, RootHint | None]] = [
            (RootMethod.CUSTOM, self.custom_fn),
        ]
        if self.config.respect_external:
            strategies.append((RootMethod.EXTERNAL_HINT, self.external_hint))
        if self.config.respect_lsp:
            strategies.append((RootMethod.LSP_HINT, self.lsp_hint))

        for method, fn in strategies:
            if fn is None:
                continue
            root = self._call_hint(method, fn, context)
            if root:
                return normalize_root(root), method

        root = self.detect_markers(context)
        if root:
            return normalize_root(root), RootMethod.MARKERS

        return normalize_root(self.cwd), RootMethod.CWD

    def detect_markers(self, context: str | None = None) -> str | None:
        if context:
            start = os.path.dirname(os.path.abspath(expand_home(context)))
        else:
            start = self.cwd
        return find_marker_root(start, self.config.markers)

    @staticmethod
    def _call_hint(method: RootMethod, fn: RootHint, context: str | None) -> str | None:
        try:
            return fn(context)
        except Exception:
            logger.debug("root strategy %s failed", method.value, exc_info=True)
            return None
