"""Durable, priority-ordered sync job queue."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from farmsync._clock import utcnow
from farmsync._redact import redact_for_log
from farmsync.config import SyncConfig
from farmsync.exceptions import ExhaustedRetriesError, JobPayloadError, NoNetworkError, StoreError
from farmsync.models._base import ensure_utc
from farmsync.models.job import SYNC_JOB_LIST, DeadLetter, JobPriority, SyncJob
from farmsync.models.stats import SyncStats
from farmsync.monitors._listeners import ListenerSet, Unsubscribe
from farmsync.monitors.lifecycle import AppLifecycleMonitor
from farmsync.monitors.network import NetworkMonitor
from farmsync.storage.base import PersistentStore
from farmsync.sync.policy import describe_error, is_due, sort_jobs

_logger = logging.getLogger(__name__)

JobHandler = Callable[[SyncJob], Awaitable[None]]
StatsListener = Callable[[SyncStats], None]
DeadLetterCallback = Callable[[SyncJob, ExhaustedRetriesError], None]


@dataclass(slots=True)
class _Registration:
    handler: JobHandler
    payload_model: type[BaseModel] | None = None


class _Outcome(Enum):
    COMPLETED = "completed"
    RETRY = "retry"
    FAILED = "failed"
    HELD = "held"


class SyncQueue:
    """Queue of deferred jobs drained whenever the device is online.

    Jobs are persisted after every mutation so a restart never loses one.
    Mutations made before :meth:`start` first load the persisted queue, so
    they add to it rather than overwrite it.
    At most one drain runs at a time; triggers that arrive while a drain is
    running are ignored.

    Usage::

        async with SyncQueue(store, network, lifecycle) as queue:
            queue.register_handler("upload", upload_record)
            await queue.add_sync_job("animal-42", "upload", {"id": 42}, "high")

    Parameters
    ----------
    store : PersistentStore
        Durable mirror of the job list.
    network : NetworkMonitor
        Connectivity source; offline->online edges trigger a drain.
    lifecycle : AppLifecycleMonitor or None
        Foreground edges trigger a drain while online.
    config : SyncConfig or None
        Retry, timer and storage settings.
    clock : callable
        Returns the current UTC datetime.
    on_dead_letter : callable or None
        Called with the job and an :class:`ExhaustedRetriesError` when a job
        is dropped after its last retry.
    """

    def __init__(
        self,
        store: PersistentStore,
        network: NetworkMonitor,
        lifecycle: AppLifecycleMonitor | None = None,
        *,
        config: SyncConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
        on_dead_letter: DeadLetterCallback | None = None,
    ) -> None:
        self._store = store
        self._network = network
        self._lifecycle = lifecycle
        self._config = config or SyncConfig()
        self._clock = clock
        self._on_dead_letter = on_dead_letter

        self._jobs: list[SyncJob] = []
        self._handlers: dict[str, _Registration] = {}
        self._completed = 0
        self._failed = 0
        self._last_sync_time: datetime | None = None
        self._dead_letters: deque[DeadLetter] = deque(maxlen=self._config.dead_letter_limit)
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self._persist_lock = asyncio.Lock()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._draining = False
        self._drain_task: asyncio.Task[None] | None = None
        self._periodic_task: asyncio.Task[None] | None = None
        self._unsubscribers: list[Unsubscribe] = []
        self._listeners = ListenerSet("sync status", _logger)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SyncQueue:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def is_started(self) -> bool:
        return self._loop is not None

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def start(self) -> None:
        """Load persisted state, subscribe to monitors and start the timer."""
        if self._loop is not None:
            return
        self._loop = asyncio.get_running_loop()

        await self._ensure_loaded()
        self._last_sync_time = await self._load_last_sync_time()
        _logger.info("Sync queue started with %d pending job(s)", len(self._jobs))

        self._unsubscribers.append(self._network.on_change(self._on_network_change))
        if self._lifecycle is not None and self._config.app_state_sync_enabled:
            self._unsubscribers.append(self._lifecycle.on_foreground(self._on_foreground))

        if self._config.periodic_sync_enabled and self._config.periodic_sync_interval > 0:
            self._periodic_task = self._loop.create_task(self._periodic())

        self._notify()
        if self._network.is_online():
            self._request_drain("startup")

    async def close(self) -> None:
        """Stop triggers, wait for a running drain, and drop handlers.

        A running handler is never cancelled.
        """
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        periodic = self._periodic_task
        self._periodic_task = None
        if periodic is not None:
            periodic.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await periodic

        await self.join()
        self._handlers.clear()
        self._listeners.clear()
        self._loop = None

    # ------------------------------------------------------------------
    # Handlers and listeners
    # ------------------------------------------------------------------

    def register_handler(
        self,
        job_type: str,
        handler: JobHandler,
        *,
        payload_model: type[BaseModel] | None = None,
    ) -> None:
        """Associate *handler* with jobs of *job_type*.

        Handlers are looked up when the queue drains, so jobs enqueued before
        their handler exists are held rather than dropped. With
        *payload_model*, each payload is validated before the handler runs
        and the handler receives the job with the parsed model as payload.
        """
        self._handlers[job_type] = _Registration(handler=handler, payload_model=payload_model)

    def unregister_handler(self, job_type: str) -> None:
        self._handlers.pop(job_type, None)

    def add_listener(self, callback: StatsListener) -> Unsubscribe:
        """Receive a :class:`SyncStats` after every change to the queue."""
        return self._listeners.add(callback)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_sync_job(
        self,
        job_id: str,
        job_type: str,
        payload: Any = None,
        priority: JobPriority | str = JobPriority.NORMAL,
        *,
        max_retries: int | None = None,
    ) -> SyncJob:
        """Enqueue a job, replacing any queued job with the same id.

        The replacement keeps the old job's place among jobs of its priority
        and starts with a fresh retry counter. When online and idle a drain
        starts in the background; this call does not wait for it.

        Raises
        ------
        ValueError
            If the id or type is empty, the priority is unknown, or the
            payload is not JSON serializable.
        """
        job = SyncJob(
            id=job_id,
            type=job_type,
            priority=JobPriority(priority),
            payload=payload,
            max_retries=max_retries if max_retries is not None else self._config.max_retries,
            created_at=self._clock(),
        )
        # Reject payloads that could not be persisted.
        job.model_dump_json()
        await self._ensure_loaded()

        index = self._index_of(job.id)
        if index is None:
            self._jobs.append(job)
        else:
            self._jobs[index] = job
        self._jobs = sort_jobs(self._jobs)
        _logger.debug(
            "Queued %s job %s (%s): %s",
            job.type,
            job.id,
            job.priority,
            redact_for_log(job.payload),
        )

        await self._persist_jobs()
        self._notify()
        if self._network.is_online():
            self._request_drain("enqueue")
        return job

    async def remove_sync_job(self, job_id: str) -> bool:
        """Drop a queued job. Returns whether it was present."""
        await self._ensure_loaded()
        before = len(self._jobs)
        self._jobs = [job for job in self._jobs if job.id != job_id]
        removed = len(self._jobs) != before
        await self._persist_jobs()
        self._notify()
        return removed

    async def clear_sync_queue(self) -> None:
        """Empty the queue and reset the completed/failed counters.

        A handler already running keeps running; its outcome is ignored.
        """
        await self._ensure_loaded()
        self._jobs = []
        self._completed = 0
        self._failed = 0
        self._dead_letters.clear()
        await self._persist_jobs()
        self._notify()

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    async def force_sync_now(self) -> None:
        """Drain now and wait for completion.

        Joins the running drain if there is one.

        Raises
        ------
        NoNetworkError
            If the device is offline.
        """
        if not self._network.is_online():
            raise NoNetworkError("Cannot sync: no network connection")
        task = self._request_drain("manual")
        if task is not None:
            await asyncio.shield(task)

    async def join(self) -> None:
        """Wait for the running drain, if any, to finish."""
        task = self._drain_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    def _request_drain(self, reason: str) -> asyncio.Task[None] | None:
        if self.is_draining:
            _logger.debug("Sync already in progress, ignoring %s trigger", reason)
            return self._drain_task
        if not self._network.is_online():
            _logger.debug("No network connection, %s sync skipped", reason)
            return None
        if not self._jobs:
            return None
        loop = self._loop or asyncio.get_running_loop()
        self._draining = True
        task = loop.create_task(self._drain(reason))
        task.add_done_callback(self._drain_done)
        self._drain_task = task
        return task

    def _drain_done(self, task: asyncio.Task[None]) -> None:
        self._draining = False
        if not task.cancelled() and task.exception() is not None:
            _logger.error("Sync drain crashed", exc_info=task.exception())

    def _dispatch_drain(self, reason: str) -> None:
        """Request a drain from a monitor callback, which may run off-loop."""
        loop = self._loop
        if loop is None:
            return
        try:
            running: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._request_drain(reason)
        else:
            loop.call_soon_threadsafe(self._request_drain, reason)

    def _on_network_change(self, online: bool) -> None:
        if online:
            _logger.info("Network connection restored, starting sync")
            self._dispatch_drain("reconnect")

    def _on_foreground(self) -> None:
        if self._network.is_online():
            self._dispatch_drain("foreground")

    async def _periodic(self) -> None:
        interval = self._config.periodic_sync_interval
        while True:
            await asyncio.sleep(interval)
            if self._network.is_online() and not self.is_draining:
                self._request_drain("periodic")

    async def _drain(self, reason: str) -> None:
        snapshot = list(self._jobs)
        counts = dict.fromkeys(_Outcome, 0)
        _logger.info("Processing %d sync job(s) (%s)", len(snapshot), reason)
        self._notify()
        try:
            for position, job in enumerate(snapshot, start=1):
                counts[await self._attempt(job)] += 1
                if not self._network.is_online():
                    _logger.info(
                        "Network disconnected during sync, %d job(s) left for later",
                        len(snapshot) - position,
                    )
                    break
        finally:
            await self._persist_jobs()
            self._last_sync_time = self._clock()
            await self._persist_last_sync_time()
            self._draining = False
            _logger.info(
                "Sync completed: %d succeeded, %d will retry, %d failed, %d held",
                counts[_Outcome.COMPLETED],
                counts[_Outcome.RETRY],
                counts[_Outcome.FAILED],
                counts[_Outcome.HELD],
            )
            self._notify()

    async def _attempt(self, job: SyncJob) -> _Outcome:
        registration = self._handlers.get(job.type)
        if registration is None:
            _logger.debug("No handler registered for job type %s, holding %s", job.type, job.id)
            return _Outcome.HELD
        if not is_due(job, self._clock(), self._config.retry_backoff_base):
            _logger.debug("Job %s is backing off after %d failure(s)", job.id, job.retries)
            return _Outcome.HELD

        try:
            await self._invoke(registration, job)
        except Exception as exc:
            return self._record_failure(job, exc)
        return self._record_success(job)

    async def _invoke(self, registration: _Registration, job: SyncJob) -> None:
        call_job = job
        if registration.payload_model is not None:
            try:
                parsed = registration.payload_model.model_validate(job.payload)
            except ValidationError as exc:
                raise JobPayloadError(f"Invalid payload for {job.type} job {job.id}: {exc}") from exc
            call_job = job.model_copy(update={"payload": parsed})

        timeout = self._config.handler_timeout
        if timeout > 0:
            await asyncio.wait_for(registration.handler(call_job), timeout)
        else:
            await registration.handler(call_job)

    def _record_success(self, job: SyncJob) -> _Outcome:
        index = self._index_of(job.id)
        if index is None:
            _logger.debug("Job %s finished after it was removed from the queue", job.id)
            return _Outcome.COMPLETED
        if self._jobs[index] is job:
            del self._jobs[index]
        else:
            _logger.debug("Job %s was replaced while running, keeping the new version", job.id)
        self._completed += 1
        return _Outcome.COMPLETED

    def _record_failure(self, job: SyncJob, exc: Exception) -> _Outcome:
        message = describe_error(exc)
        _logger.warning("Sync job %s (%s) failed: %s", job.id, job.type, message, exc_info=exc)

        index = self._index_of(job.id)
        if index is None or self._jobs[index] is not job:
            return _Outcome.RETRY

        updated = job.model_copy(
            update={
                "retries": job.retries + 1,
                "last_attempt": self._clock(),
                "last_error": message,
            }
        )
        if not updated.exhausted:
            self._jobs[index] = updated
            return _Outcome.RETRY

        del self._jobs[index]
        self._failed += 1
        self._dead_letter(updated)
        return _Outcome.FAILED

    def _dead_letter(self, job: SyncJob) -> None:
        error = ExhaustedRetriesError(
            f"Sync job {job.id} failed after {job.retries} attempt(s): {job.last_error}",
            job_id=job.id,
            retries=job.retries,
            last_error=job.last_error,
        )
        _logger.warning("%s", error)
        if self._dead_letters.maxlen:
            self._dead_letters.append(DeadLetter(job=job, error=job.last_error or "", failed_at=self._clock()))
        if self._on_dead_letter is not None:
            try:
                self._on_dead_letter(job, error)
            except Exception:
                _logger.error("Error in dead-letter callback for job %s", job.id, exc_info=True)

    # ------------------------------------------------------------------
    # Read accessors (no I/O)
    # ------------------------------------------------------------------

    def get_sync_stats(self) -> SyncStats:
        pending = len(self._jobs)
        return SyncStats(
            total_jobs=pending + self._completed + self._failed,
            pending_jobs=pending,
            completed_jobs=self._completed,
            failed_jobs=self._failed,
            last_sync_time=self._last_sync_time,
            sync_in_progress=self.is_draining,
        )

    def get_pending_jobs(self) -> list[SyncJob]:
        return list(self._jobs)

    def get_dead_letters(self) -> list[DeadLetter]:
        return list(self._dead_letters)

    def is_network_available(self) -> bool:
        return self._network.is_online()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _index_of(self, job_id: str) -> int | None:
        for index, job in enumerate(self._jobs):
            if job.id == job_id:
                return index
        return None

    def _notify(self) -> None:
        if len(self._listeners):
            self._listeners.notify(self.get_sync_stats())

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        async with self._load_lock:
            if self._loaded:
                return
            persisted = await self._load_jobs()
            self._jobs = sort_jobs(persisted)
            self._loaded = True

    async def _persist_jobs(self) -> None:
        # Snapshot under the lock: the last write to finish always carries
        # the latest job list.
        async with self._persist_lock:
            raw = SYNC_JOB_LIST.dump_json(self._jobs, by_alias=True)
            try:
                await self._store.set(self._config.queue_storage_key, raw)
            except StoreError:
                _logger.error("Failed to save sync queue", exc_info=True)

    async def _load_jobs(self) -> list[SyncJob]:
        try:
            raw = await self._store.get(self._config.queue_storage_key)
        except StoreError:
            _logger.error("Failed to load sync queue", exc_info=True)
            return []
        if raw is None:
            return []
        try:
            items = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            _logger.error("Persisted sync queue is not valid JSON, starting empty")
            return []
        if not isinstance(items, list):
            _logger.error("Persisted sync queue is not a list, starting empty")
            return []

        jobs: list[SyncJob] = []
        for item in items:
            try:
                jobs.append(SyncJob.model_validate(item))
            except ValidationError:
                _logger.warning("Dropping unreadable persisted sync job: %r", redact_for_log(item))
        return jobs

    async def _persist_last_sync_time(self) -> None:
        if self._last_sync_time is None:
            return
        try:
            await self._store.set(
                self._config.last_sync_storage_key,
                self._last_sync_time.isoformat().encode("utf-8"),
            )
        except StoreError:
            _logger.warning("Failed to save last sync time", exc_info=True)

    async def _load_last_sync_time(self) -> datetime | None:
        try:
            raw = await self._store.get(self._config.last_sync_storage_key)
        except StoreError:
            _logger.warning("Failed to load last sync time", exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return ensure_utc(datetime.fromisoformat(raw.decode("utf-8")))
        except (UnicodeDecodeError, ValueError):
            _logger.warning("Ignoring unreadable last sync time %r", raw[:64])
            return None
