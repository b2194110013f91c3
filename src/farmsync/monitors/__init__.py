"""Connectivity and app lifecycle monitors."""

from farmsync.monitors.lifecycle import AppLifecycleMonitor, AppState
from farmsync.monitors.network import ConnectivityState, NetworkMonitor
from farmsync.monitors.probe import ReachabilityProbe

__all__ = [
    "AppLifecycleMonitor",
    "AppState",
    "ConnectivityState",
    "NetworkMonitor",
    "ReachabilityProbe",
]
