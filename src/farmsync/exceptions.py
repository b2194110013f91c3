"""Custom exception hierarchy for farmsync."""

from __future__ import annotations


class FarmSyncError(Exception):
    """Base exception for all farmsync errors."""


class ConfigError(FarmSyncError):
    """Invalid or missing configuration."""


class StoreError(FarmSyncError):
    """Persistent storage read/write failure.

    Never fatal: the cache treats it as a miss and the sync queue logs it
    and keeps its in-memory state.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class FetchError(FarmSyncError):
    """A cache fetcher or job handler failed.

    The original exception is chained as ``__cause__`` and kept on
    ``original``.
    """

    def __init__(
        self,
        message: str,
        *,
        key: str = "",
        original: BaseException | None = None,
    ) -> None:
        self.key = key
        self.original = original
        super().__init__(message)


class TransportError(FarmSyncError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str = "",
    ) -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(message)


class NoNetworkError(FarmSyncError):
    """An explicit sync was requested while the device is offline."""


class JobPayloadError(FarmSyncError):
    """Job payload did not match the payload model registered for its type."""


class ExhaustedRetriesError(FarmSyncError):
    """A sync job failed ``max_retries`` times and was dropped.

    Not raised to the caller that enqueued the job. It is handed to the
    dead-letter callback and kept on the queue's dead-letter list.
    """

    def __init__(
        self,
        message: str,
        *,
        job_id: str,
        retries: int,
        last_error: str | None = None,
    ) -> None:
        self.job_id = job_id
        self.retries = retries
        self.last_error = last_error
        super().__init__(message)
