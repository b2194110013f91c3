"""Callback registry shared by the monitors and the sync queue."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

Unsubscribe = Callable[[], None]


class ListenerSet:
    """Ordered set of callbacks with isolated failures.

    A callback that raises is logged and does not prevent the remaining
    callbacks from running.
    """

    def __init__(self, name: str, logger: logging.Logger | None = None) -> None:
        self._name = name
        self._logger = logger or logging.getLogger(__name__)
        self._callbacks: list[Callable[..., Any]] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def add(self, callback: Callable[..., Any]) -> Unsubscribe:
        """Register *callback*; the returned function removes it again."""
        self._callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _unsubscribe

    def notify(self, *args: Any) -> None:
        for callback in list(self._callbacks):
            try:
                callback(*args)
            except Exception:
                self._logger.error("Error in %s listener %r", self._name, callback, exc_info=True)

    def clear(self) -> None:
        self._callbacks.clear()
