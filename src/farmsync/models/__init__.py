"""Data models for farmsync records."""

from farmsync.models._base import FarmSyncModel
from farmsync.models.cache import CacheEntry
from farmsync.models.job import SYNC_JOB_LIST, DeadLetter, JobPriority, JobType, SyncJob
from farmsync.models.stats import SyncStats

__all__ = [
    "SYNC_JOB_LIST",
    "CacheEntry",
    "DeadLetter",
    "FarmSyncModel",
    "JobPriority",
    "JobType",
    "SyncJob",
    "SyncStats",
]
