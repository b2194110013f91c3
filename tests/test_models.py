"""Tests for the persisted pydantic records."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from farmsync.models import SYNC_JOB_LIST, CacheEntry, JobPriority, JobType, SyncJob, SyncStats
from farmsync.sync.policy import describe_error, is_due, retry_delay, sort_jobs

_T0 = datetime(2026, 3, 1, 6, 0, tzinfo=UTC)

# ------------------------------------------------------------------
# CacheEntry
# ------------------------------------------------------------------


class TestCacheEntry:
    def test_fresh_up_to_ttl_inclusive(self) -> None:
        entry = CacheEntry(data={"a": 1}, timestamp=1_000, ttl=500)
        assert entry.is_fresh(1_500) is True
        assert entry.is_fresh(1_501) is False
        assert entry.age_ms(1_200) == 200

    def test_zero_ttl_fresh_only_at_same_instant(self) -> None:
        entry = CacheEntry(data=None, timestamp=10, ttl=0)
        assert entry.is_fresh(10) is True
        assert entry.is_fresh(11) is False

    def test_negative_values_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CacheEntry(data=1, timestamp=-1, ttl=10)
        with pytest.raises(ValidationError):
            CacheEntry(data=1, timestamp=0, ttl=-10)

    def test_round_trip_through_json(self) -> None:
        entry = CacheEntry(data=[1, "two"], timestamp=5, ttl=60_000)
        assert CacheEntry.model_validate_json(entry.model_dump_json(by_alias=True)) == entry


# ------------------------------------------------------------------
# SyncJob
# ------------------------------------------------------------------


class TestSyncJob:
    def test_defaults(self) -> None:
        job = SyncJob(id="animal-1", type=JobType.UPLOAD)
        assert job.priority == JobPriority.NORMAL
        assert job.retries == 0
        assert job.max_retries == 3
        assert job.created_at.tzinfo is not None
        assert job.exhausted is False

    def test_accepts_camel_case_input(self) -> None:
        job = SyncJob.model_validate(
            {
                "id": "a",
                "type": "upload",
                "priority": "high",
                "maxRetries": 5,
                "createdAt": "2026-03-01T06:00:00",
                "lastError": "boom",
            }
        )
        assert job.max_retries == 5
        assert job.created_at == _T0
        assert job.last_error == "boom"

    def test_serializes_with_camel_case_keys(self) -> None:
        data = SyncJob(id="a", type="upload", created_at=_T0).to_json_dict()
        assert data["createdAt"] == "2026-03-01T06:00:00Z"
        assert data["maxRetries"] == 3
        assert data["lastAttempt"] is None

    def test_custom_type_strings_allowed(self) -> None:
        assert SyncJob(id="a", type=" weigh-in ").type == "weigh-in"

    @pytest.mark.parametrize("field", ["id", "type"])
    def test_blank_identifiers_rejected(self, field: str) -> None:
        values = {"id": "a", "type": "upload", field: "  "}
        with pytest.raises(ValidationError):
            SyncJob(**values)

    def test_unknown_priority_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SyncJob(id="a", type="upload", priority="urgent")

    def test_exhausted(self) -> None:
        assert SyncJob(id="a", type="upload", retries=3, max_retries=3).exhausted is True

    def test_is_immutable(self) -> None:
        job = SyncJob(id="a", type="upload")
        with pytest.raises(ValidationError):
            job.retries = 2  # type: ignore[misc]

    def test_list_adapter_round_trip(self) -> None:
        jobs = [SyncJob(id="a", type="upload", created_at=_T0), SyncJob(id="b", type="sync", created_at=_T0)]
        raw = SYNC_JOB_LIST.dump_json(jobs, by_alias=True)
        assert SYNC_JOB_LIST.validate_json(raw) == jobs


def test_priority_rank_order() -> None:
    assert JobPriority.HIGH.rank > JobPriority.NORMAL.rank > JobPriority.LOW.rank


def test_sync_stats_defaults() -> None:
    stats = SyncStats()
    assert stats.total_jobs == 0
    assert stats.last_sync_time is None
    assert stats.sync_in_progress is False


# ------------------------------------------------------------------
# Policy helpers
# ------------------------------------------------------------------


class TestPolicy:
    def test_sort_jobs_is_stable_within_priority(self) -> None:
        jobs = [
            SyncJob(id="l1", type="t", priority="low"),
            SyncJob(id="n1", type="t"),
            SyncJob(id="h1", type="t", priority="high"),
            SyncJob(id="n2", type="t"),
            SyncJob(id="h2", type="t", priority="high"),
        ]
        assert [job.id for job in sort_jobs(jobs)] == ["h1", "h2", "n1", "n2", "l1"]

    def test_retry_delay_doubles(self) -> None:
        assert retry_delay(0, 10) == 0.0
        assert retry_delay(1, 10) == 10
        assert retry_delay(3, 10) == 40
        assert retry_delay(3, 0) == 0.0

    def test_is_due(self) -> None:
        job = SyncJob(id="a", type="t", retries=1, last_attempt=_T0)
        assert is_due(job, _T0, 0) is True
        assert is_due(job, _T0, 30) is False
        assert is_due(job, datetime(2026, 3, 1, 6, 0, 30, tzinfo=UTC), 30) is True

    def test_describe_error(self) -> None:
        assert describe_error(RuntimeError("server said no")) == "server said no"
        assert describe_error(TimeoutError()) == "TimeoutError"
