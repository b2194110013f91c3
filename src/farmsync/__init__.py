"""farmsync - Offline-first sync queue and read-through cache for the farm app."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("farmsync")
except PackageNotFoundError:
    __version__ = "0+local"
from farmsync._transport import HttpTransport
from farmsync.cache import MISSING, Cache
from farmsync.client import FarmSync
from farmsync.config import SyncConfig
from farmsync.exceptions import (
    ConfigError,
    ExhaustedRetriesError,
    FarmSyncError,
    FetchError,
    JobPayloadError,
    NoNetworkError,
    StoreError,
    TransportError,
)
from farmsync.models import CacheEntry, DeadLetter, JobPriority, JobType, SyncJob, SyncStats
from farmsync.monitors import AppLifecycleMonitor, AppState, ConnectivityState, NetworkMonitor, ReachabilityProbe
from farmsync.rest import rest_fetcher, rest_job_handler
from farmsync.storage import FileStore, MemoryStore, PersistentStore
from farmsync.sync import SyncQueue

__all__ = [
    "__version__",
    "MISSING",
    "AppLifecycleMonitor",
    "AppState",
    "Cache",
    "CacheEntry",
    "ConfigError",
    "ConnectivityState",
    "DeadLetter",
    "ExhaustedRetriesError",
    "FarmSync",
    "FarmSyncError",
    "FetchError",
    "FileStore",
    "HttpTransport",
    "JobPayloadError",
    "JobPriority",
    "JobType",
    "MemoryStore",
    "NetworkMonitor",
    "NoNetworkError",
    "PersistentStore",
    "ReachabilityProbe",
    "StoreError",
    "SyncConfig",
    "SyncJob",
    "SyncQueue",
    "SyncStats",
    "TransportError",
    "rest_fetcher",
    "rest_job_handler",
]
