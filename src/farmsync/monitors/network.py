"""Connectivity state tracking."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict

from farmsync.monitors._listeners import ListenerSet, Unsubscribe

_logger = logging.getLogger(__name__)


class ConnectivityState(BaseModel):
    """Platform connectivity report.

    Online means connected *and* the internet is reachable; a captive
    portal or a LAN without uplink counts as offline.
    """

    model_config = ConfigDict(frozen=True)

    is_connected: bool = False
    is_internet_reachable: bool = False
    connection_type: str | None = None
    is_expensive: bool = False

    @property
    def is_online(self) -> bool:
        return self.is_connected and self.is_internet_reachable


class NetworkMonitor:
    """Holds the current online flag and reports transitions.

    The platform adapter (or :class:`farmsync.monitors.probe.ReachabilityProbe`)
    pushes state in through :meth:`set_online` or :meth:`update`. Change
    callbacks fire at most once per actual transition.
    """

    def __init__(self, initial: bool = False) -> None:
        self._state = ConnectivityState(is_connected=initial, is_internet_reachable=initial)
        self._listeners = ListenerSet("network", _logger)

    @property
    def state(self) -> ConnectivityState:
        return self._state

    def is_online(self) -> bool:
        """Synchronous snapshot of connectivity."""
        return self._state.is_online

    def on_change(self, callback: Callable[[bool], None]) -> Unsubscribe:
        """Subscribe to online/offline transitions."""
        return self._listeners.add(callback)

    def set_online(self, online: bool) -> None:
        self.update(
            self._state.model_copy(update={"is_connected": online, "is_internet_reachable": online})
        )

    def update(self, state: ConnectivityState) -> None:
        """Record a full connectivity report, notifying on online/offline edges."""
        was_online = self._state.is_online
        self._state = state
        if state.is_online == was_online:
            return
        _logger.info(
            "Connectivity changed: %s (type=%s)",
            "online" if state.is_online else "offline",
            state.connection_type,
        )
        self._listeners.notify(state.is_online)
