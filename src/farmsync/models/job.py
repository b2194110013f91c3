"""Sync job records."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import Field, TypeAdapter, field_validator

from farmsync._clock import utcnow
from farmsync.models._base import FarmSyncModel, ensure_utc


class JobPriority(StrEnum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Higher drains first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[JobPriority, int] = {
    JobPriority.HIGH: 3,
    JobPriority.NORMAL: 2,
    JobPriority.LOW: 1,
}


class JobType(StrEnum):
    """Job types used by the app. Any non-empty string is accepted as a type."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    SYNC = "sync"


class SyncJob(FarmSyncModel):
    """A unit of deferred work waiting for connectivity.

    Parameters
    ----------
    id : str
        Caller-supplied idempotency key. Re-adding a job with the same id
        replaces the queued one.
    type : str
        Selects the handler invoked when the queue drains.
    priority : JobPriority
        Drain order: high, then normal, then low.
    payload : Any
        JSON-serializable job data.
    retries : int
        Failed attempts so far.
    max_retries : int
        Attempts allowed before the job is dead-lettered.
    created_at : datetime
        When the job was (last) enqueued.
    last_attempt : datetime or None
        When a handler last failed for this job.
    last_error : str or None
        Message of the last handler failure.
    """

    id: str
    type: str
    priority: JobPriority = JobPriority.NORMAL
    payload: Any = None
    retries: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=1)
    created_at: datetime = Field(default_factory=utcnow)
    last_attempt: datetime | None = None
    last_error: str | None = None

    @field_validator("id", "type")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must be non-empty")
        return stripped

    @field_validator("created_at", "last_attempt")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def exhausted(self) -> bool:
        """Whether the job has used up all of its attempts."""
        return self.retries >= self.max_retries


class DeadLetter(FarmSyncModel):
    """A job dropped after exhausting its retries."""

    job: SyncJob
    error: str
    failed_at: datetime = Field(default_factory=utcnow)


SYNC_JOB_LIST = TypeAdapter(list[SyncJob])
"""Adapter used to (de)serialize the persisted queue."""
