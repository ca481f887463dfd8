"""Hook registry for bookmark lifecycle events.

External code listens to events with plain callables::

    from haunt.hooks import HookEvent

    def on_create(ctx):
        print("Created bookmark:", ctx["bookmark"].id)

    store.hooks.on(HookEvent.CREATE, on_create)

Every listener receives one ``dict`` context.  A listener that raises is
reported and skipped; the operation that emitted the event and the remaining
listeners carry on.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable

from .models import Notifier, log_notifier

Listener = Callable[[dict], Any]


class HookEvent(str, Enum):
    CREATE = "on_create"
    DELETE = "on_delete"
    UPDATE = "on_update"
    NAVIGATION = "on_navigation"
    TOGGLE = "on_toggle"
    TOGGLE_ALL = "on_toggle_all"
    PRE_SAVE = "on_pre_save"
    POST_SAVE = "on_post_save"
    LOAD = "on_load"
    RESTORE = "on_restore"
    CLEAR = "on_clear"
    CLEAR_ALL = "on_clear_all"
    DATA_DIR_CHANGE = "on_data_dir_change"


def _coerce_event(event: HookEvent | str) -> HookEvent | None:
    try:
        return HookEvent(event)
    except ValueError:
        return None


class HookRegistry:
    """Per-store listener lists keyed by :class:`HookEvent`."""

    def __init__(self, notify: Notifier = log_notifier) -> None:
        self._handlers: dict[HookEvent, list[Listener]] = {}
        self._notify = notify

    def on(self, event: HookEvent | str, fn: Listener) -> bool:
        """Register *fn* for *event*.  Returns False for bad input."""
        ev = self._validate(event, fn)
        if ev is None:
            return False
        self._handlers.setdefault(ev, []).append(fn)
        return True

    def once(self, event: HookEvent | str, fn: Listener) -> bool:
        """Register *fn* to run on the next *event* only."""
        if not callable(fn):
            self._notify("hooks: must register a function", logging.ERROR)
            return False

        def wrapper(ctx: dict) -> Any:
            self.off(event, wrapper)
            return fn(ctx)

        return self.on(event, wrapper)

    def off(self, event: HookEvent | str, fn: Listener) -> bool:
        ev = _coerce_event(event)
        if ev is None:
            self._notify(f"hooks: unknown event '{event}'", logging.ERROR)
            return False
        handlers = self._handlers.get(ev)
        if not handlers or fn not in handlers:
            return False
        handlers.remove(fn)
        return True

    def emit(self, event: HookEvent | str, ctx: dict) -> tuple[int, bool]:
        """Call every listener for *event*.

        Returns ``(listeners_called, all_succeeded)``.
        """
        ev = _coerce_event(event)
        if ev is None or not self._handlers.get(ev):
            return 0, True

        total = 0
        all_succeeded = True
        # Snapshot: once() and off() may mutate the list mid-emit
        for fn in list(self._handlers[ev]):
            total += 1
            try:
                fn(ctx)
            except Exception as exc:
                all_succeeded = False
                self._notify(
                    f"hook error with event [{ev.value}]: {exc}", logging.WARNING
                )
        return total, all_succeeded

    def count(self, event: HookEvent | str) -> int:
        ev = _coerce_event(event)
        return len(self._handlers.get(ev, [])) if ev else 0

    def reset(self) -> None:
        self._handlers.clear()

    def _validate(self, event: HookEvent | str, fn: Listener) -> HookEvent | None:
        ev = _coerce_event(event)
        if ev is None:
            self._notify(f"hooks: unknown event '{event}'", logging.ERROR)
            return None
        if not callable(fn):
            self._notify("hooks: must register a function", logging.ERROR)
            return None
        return ev
