"""Runtime configuration for farmsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from farmsync.exceptions import ConfigError

#: Default cache time-to-live in milliseconds (5 minutes).
DEFAULT_CACHE_TTL_MS: int = 5 * 60 * 1000

#: Default periodic drain interval in seconds (5 minutes).
DEFAULT_PERIODIC_SYNC_INTERVAL: float = 5 * 60.0


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Cache and sync queue configuration.

    Parameters
    ----------
    cache_ttl_ms : int
        Default cache entry time-to-live in milliseconds.
    cache_key_prefix : str
        Prefix applied to cache keys in the persistent store.
    cache_index_key : str
        Persistent store key listing every persisted cache key, so
        :meth:`farmsync.cache.Cache.clear` reaches entries from earlier runs.
    queue_storage_key : str
        Persistent store key holding the serialized job queue.
    last_sync_storage_key : str
        Persistent store key holding the last drain timestamp.
    max_retries : int
        Attempts allowed per job before it is dead-lettered.
    periodic_sync_enabled : bool
        Run a drain on a fixed timer while online and idle.
    periodic_sync_interval : float
        Seconds between periodic drain attempts.
    app_state_sync_enabled : bool
        Drain when the app returns to the foreground while online.
    handler_timeout : float
        Seconds a single job handler may run before it counts as failed.
        ``0`` disables the limit.
    retry_backoff_base : float
        Base delay in seconds before a failed job is attempted again,
        doubled per retry. ``0`` (the default) retries on every drain.
    dead_letter_limit : int
        Number of permanently failed jobs kept for inspection. ``0``
        keeps none.
    base_url : str or None
        Backend base URL used by :class:`farmsync._transport.HttpTransport`.
    http_timeout : float
        Total timeout in seconds for HTTP requests.
    reachability_url : str or None
        URL probed to decide whether the internet is reachable. The probe
        is disabled when unset.
    reachability_interval : float
        Seconds between reachability probes.
    storage_dir : str or None
        Directory for :class:`farmsync.storage.FileStore`. An in-memory
        store is used when unset.
    """

    cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS
    cache_key_prefix: str = "cache_"
    cache_index_key: str = "cached_keys"
    queue_storage_key: str = "sync_queue"
    last_sync_storage_key: str = "last_sync_time"
    max_retries: int = 3
    periodic_sync_enabled: bool = True
    periodic_sync_interval: float = DEFAULT_PERIODIC_SYNC_INTERVAL
    app_state_sync_enabled: bool = True
    handler_timeout: float = 30.0
    retry_backoff_base: float = 0.0
    dead_letter_limit: int = 50
    base_url: str | None = None
    http_timeout: float = 15.0
    reachability_url: str | None = None
    reachability_interval: float = 30.0
    storage_dir: str | None = None

    def __post_init__(self) -> None:
        if self.cache_ttl_ms < 0:
            raise ConfigError("cache_ttl_ms must be >= 0")
        if self.max_retries < 1:
            raise ConfigError("max_retries must be >= 1")
        if self.dead_letter_limit < 0:
            raise ConfigError("dead_letter_limit must be >= 0")
        for name in ("periodic_sync_interval", "handler_timeout", "retry_backoff_base", "http_timeout"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0")
        if self.reachability_interval <= 0:
            raise ConfigError("reachability_interval must be > 0")
        if not self.cache_key_prefix:
            raise ConfigError("cache_key_prefix must be non-empty")
        if not self.cache_index_key or self.cache_index_key.startswith(self.cache_key_prefix):
            raise ConfigError("cache_index_key must be non-empty and outside cache_key_prefix")
        if not self.queue_storage_key or not self.last_sync_storage_key:
            raise ConfigError("storage keys must be non-empty")

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from ``FARMSYNC_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        SyncConfig
            Populated configuration.

        Raises
        ------
        ConfigError
            If a numeric variable cannot be parsed or a value is out of range.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "FARMSYNC_CACHE_KEY_PREFIX": "cache_key_prefix",
            "FARMSYNC_CACHE_INDEX_KEY": "cache_index_key",
            "FARMSYNC_QUEUE_STORAGE_KEY": "queue_storage_key",
            "FARMSYNC_LAST_SYNC_STORAGE_KEY": "last_sync_storage_key",
            "FARMSYNC_BASE_URL": "base_url",
            "FARMSYNC_REACHABILITY_URL": "reachability_url",
            "FARMSYNC_STORAGE_DIR": "storage_dir",
        }
        _ENV_INT_MAP = {
            "FARMSYNC_CACHE_TTL_MS": "cache_ttl_ms",
            "FARMSYNC_MAX_RETRIES": "max_retries",
            "FARMSYNC_DEAD_LETTER_LIMIT": "dead_letter_limit",
        }
        _ENV_FLOAT_MAP = {
            "FARMSYNC_PERIODIC_SYNC_INTERVAL": "periodic_sync_interval",
            "FARMSYNC_HANDLER_TIMEOUT": "handler_timeout",
            "FARMSYNC_RETRY_BACKOFF_BASE": "retry_backoff_base",
            "FARMSYNC_HTTP_TIMEOUT": "http_timeout",
            "FARMSYNC_REACHABILITY_INTERVAL": "reachability_interval",
        }
        _ENV_BOOL_MAP = {
            "FARMSYNC_PERIODIC_SYNC_ENABLED": ("periodic_sync_enabled", True),
            "FARMSYNC_APP_STATE_SYNC_ENABLED": ("app_state_sync_enabled", True),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        for env_key, field_name in _ENV_INT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = int(val)
            except ValueError as exc:
                raise ConfigError(f"{env_key} must be an integer, got {val!r}") from exc

        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = float(val)
            except ValueError as exc:
                raise ConfigError(f"{env_key} must be a number, got {val!r}") from exc

        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
