"""Deterministic ordering and retry policy for the sync queue.

Pure functions only; the queue owns all state.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from farmsync.models.job import SyncJob


def sort_jobs(jobs: Iterable[SyncJob]) -> list[SyncJob]:
    """Order by priority, high first.

    ``sorted`` is stable, so jobs of equal priority keep their enqueue order.
    """
    return sorted(jobs, key=lambda job: -job.priority.rank)


def retry_delay(retries: int, backoff_base: float) -> float:
    """Seconds to wait before attempt ``retries + 1``."""
    if backoff_base <= 0 or retries <= 0:
        return 0.0
    return backoff_base * (2 ** (retries - 1))


def is_due(job: SyncJob, now: datetime, backoff_base: float) -> bool:
    """Whether *job* may be attempted in a drain starting at *now*."""
    if job.retries == 0 or job.last_attempt is None:
        return True
    delay = retry_delay(job.retries, backoff_base)
    return now >= job.last_attempt + timedelta(seconds=delay)


def describe_error(exc: BaseException) -> str:
    """Human-readable failure message stored on the job."""
    message = str(exc).strip()
    return message or type(exc).__name__
