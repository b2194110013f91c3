"""App foreground/background tracking."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import StrEnum

from farmsync.monitors._listeners import ListenerSet, Unsubscribe

_logger = logging.getLogger(__name__)


class AppState(StrEnum):
    ACTIVE = "active"
    BACKGROUND = "background"
    INACTIVE = "inactive"


class AppLifecycleMonitor:
    """Reports transitions into and out of the foreground."""

    def __init__(self, initial: AppState = AppState.ACTIVE) -> None:
        self._state = AppState(initial)
        self._foreground = ListenerSet("foreground", _logger)
        self._background = ListenerSet("background", _logger)

    @property
    def state(self) -> AppState:
        return self._state

    def is_foreground(self) -> bool:
        return self._state == AppState.ACTIVE

    def on_foreground(self, callback: Callable[[], None]) -> Unsubscribe:
        return self._foreground.add(callback)

    def on_background(self, callback: Callable[[], None]) -> Unsubscribe:
        return self._background.add(callback)

    def set_state(self, state: AppState | str) -> None:
        """Record the platform app state; callbacks fire on edges only."""
        new_state = AppState(state)
        previous = self._state
        self._state = new_state
        if new_state == previous:
            return
        _logger.debug("App state %s -> %s", previous, new_state)
        if new_state == AppState.ACTIVE:
            self._foreground.notify()
        elif previous == AppState.ACTIVE:
            self._background.notify()
