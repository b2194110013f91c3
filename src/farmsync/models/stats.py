"""Sync queue status snapshot."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SyncStats(BaseModel):
    """Derived queue counters for a sync-status indicator.

    Not persisted; rebuilt from the live queue and running counters on
    every read.
    """

    model_config = ConfigDict(frozen=True)

    total_jobs: int = 0
    pending_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    last_sync_time: datetime | None = None
    sync_in_progress: bool = False
