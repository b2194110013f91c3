"""Two-tier read-through cache.

Reads are served from the memory tier, then the persistent tier, then the
caller's fetcher. Only one fetch per key runs at a time; concurrent callers
for the same key await the same task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Final

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from farmsync._clock import now_ms
from farmsync.config import SyncConfig
from farmsync.exceptions import FetchError, StoreError
from farmsync.models.cache import CacheEntry
from farmsync.storage.base import PersistentStore

_logger = logging.getLogger(__name__)

_KEY_LIST = TypeAdapter(list[str])


class _Missing:
    def __repr__(self) -> str:
        return "<MISSING>"


MISSING: Final = _Missing()
"""Sentinel for "no fallback supplied" (``None`` is a valid fallback)."""

Fetcher = Callable[[], Awaitable[Any]]


def _require_key(key: str) -> str:
    if not isinstance(key, str) or not key:
        raise ValueError("cache key must be a non-empty string")
    return key


class Cache:
    """Per-key TTL cache with a memory tier over a persistent tier.

    The keys present in the persistent tier are listed under
    ``config.cache_index_key`` so :meth:`clear` also removes entries written
    by earlier runs.

    Parameters
    ----------
    store : PersistentStore
        Backing store for the persistent tier.
    config : SyncConfig or None
        Supplies the default TTL, the storage key prefix and the index key.
    clock : callable
        Returns the current epoch time in milliseconds.
    """

    def __init__(
        self,
        store: PersistentStore,
        *,
        config: SyncConfig | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._config = config or SyncConfig()
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task[Any]] = {}
        # Started/written generation per key. A fetch only writes its result
        # if no newer generation has written first. Both are dropped for a key
        # once it has no memory entry and no running fetch.
        self._generation: dict[str, int] = {}
        self._written: dict[str, int] = {}
        self._running: dict[str, int] = {}
        self._known_keys: set[str] = set()
        self._persisted: set[str] | None = None
        self._index_lock = asyncio.Lock()

    def _storage_key(self, key: str) -> str:
        return f"{self._config.cache_key_prefix}{key}"

    def _resolve_ttl(self, ttl: int | None) -> int:
        if ttl is None:
            return self._config.cache_ttl_ms
        if ttl < 0:
            raise ValueError("ttl must be >= 0")
        return int(ttl)

    def _next_generation(self, key: str) -> int:
        generation = self._generation.get(key, 0) + 1
        self._generation[key] = generation
        return generation

    def _prune(self, key: str) -> None:
        if self._running.get(key, 0) or key in self._memory:
            return
        self._generation.pop(key, None)
        self._written.pop(key, None)
        self._running.pop(key, None)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def peek(self, key: str) -> CacheEntry | None:
        """Return the memory-tier entry for *key*, fresh or not. No I/O."""
        return self._memory.get(key)

    async def get_or_fetch(
        self,
        key: str,
        fetcher: Fetcher,
        *,
        ttl: int | None = None,
        fallback: Any = MISSING,
        persist: bool = True,
    ) -> Any:
        """Return a fresh value for *key*, fetching it only when needed.

        Lookup order is memory, then the persistent store (when *persist*),
        then *fetcher*. If the fetch fails, *fallback* is returned when
        supplied, else any stale memory entry, else the error is raised.

        Raises
        ------
        FetchError
            The fetcher failed and no fallback or cached value exists.
        """
        _require_key(key)
        ttl_ms = self._resolve_ttl(ttl)

        entry = self._memory.get(key)
        if entry is not None and entry.is_fresh(self._clock()):
            _logger.debug("Cache hit (memory) for %s", key)
            return entry.data

        if persist:
            stored = await self._load(key)
            if stored is not None and stored.is_fresh(self._clock()):
                current = self._memory.get(key)
                if current is None or current.timestamp <= stored.timestamp:
                    self._memory[key] = stored
                _logger.debug("Cache hit (persistent) for %s", key)
                return stored.data

        return await self._fetch(key, fetcher, ttl_ms=ttl_ms, fallback=fallback, persist=persist, force=False)

    async def refresh(
        self,
        key: str,
        fetcher: Fetcher,
        *,
        ttl: int | None = None,
        fallback: Any = MISSING,
        persist: bool = True,
    ) -> Any:
        """Fetch *key* unconditionally, bypassing both cache tiers.

        Failure handling matches :meth:`get_or_fetch`.
        """
        _require_key(key)
        ttl_ms = self._resolve_ttl(ttl)
        return await self._fetch(key, fetcher, ttl_ms=ttl_ms, fallback=fallback, persist=persist, force=True)

    async def set(self, key: str, value: Any, *, ttl: int | None = None, persist: bool = True) -> CacheEntry:
        """Write *value* for *key* as a fresh entry."""
        _require_key(key)
        ttl_ms = self._resolve_ttl(ttl)
        generation = self._next_generation(key)
        return await self._write(key, value, ttl_ms=ttl_ms, persist=persist, generation=generation)

    async def invalidate(self, key: str) -> None:
        """Remove *key* from both tiers. Absent keys are ignored.

        A fetch already in flight for *key* still answers its callers but
        no longer repopulates the cache.
        """
        _require_key(key)
        generation = self._next_generation(key)
        self._written[key] = generation
        self._memory.pop(key, None)
        self._known_keys.discard(key)
        self._prune(key)
        try:
            await self._store.remove(self._storage_key(key))
        except StoreError:
            _logger.warning("Failed to remove %s from persistent cache", key, exc_info=True)
            return
        await self._track(key, persisted=False)

    async def clear(self) -> None:
        """Invalidate every cached key, including persisted keys from earlier runs."""
        persisted = await self._persisted_keys()
        for key in sorted(self._known_keys | set(self._memory) | persisted):
            await self.invalidate(key)

    # ------------------------------------------------------------------
    # Persisted key index
    # ------------------------------------------------------------------

    async def _persisted_keys(self) -> set[str]:
        if self._persisted is not None:
            return self._persisted
        keys: set[str] = set()
        try:
            raw = await self._store.get(self._config.cache_index_key)
        except StoreError:
            _logger.warning("Failed to read the persistent cache index", exc_info=True)
            raw = None
        if raw is not None:
            try:
                keys = set(_KEY_LIST.validate_json(raw))
            except ValidationError:
                _logger.warning("Ignoring unreadable persistent cache index")
        if self._persisted is None:
            self._persisted = keys
        return self._persisted

    async def _track(self, key: str, *, persisted: bool) -> None:
        async with self._index_lock:
            keys = await self._persisted_keys()
            if (key in keys) == persisted:
                return
            if persisted:
                keys.add(key)
            else:
                keys.discard(key)
            try:
                if keys:
                    await self._store.set(self._config.cache_index_key, _KEY_LIST.dump_json(sorted(keys)))
                else:
                    await self._store.remove(self._config.cache_index_key)
            except StoreError:
                _logger.warning("Failed to update the persistent cache index", exc_info=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _load(self, key: str) -> CacheEntry | None:
        try:
            raw = await self._store.get(self._storage_key(key))
        except StoreError:
            _logger.warning("Failed to read %s from persistent cache", key, exc_info=True)
            return None
        if raw is None:
            return None
        self._known_keys.add(key)
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError:
            _logger.warning("Ignoring unreadable persistent cache entry for %s", key)
            return None

    async def _write(self, key: str, value: Any, *, ttl_ms: int, persist: bool, generation: int) -> CacheEntry:
        entry = CacheEntry(data=value, timestamp=self._clock(), ttl=ttl_ms)
        if generation < self._written.get(key, 0):
            _logger.debug("Discarding superseded result for %s (generation %d)", key, generation)
            return entry
        self._written[key] = generation
        self._memory[key] = entry
        self._known_keys.add(key)
        if not persist:
            return entry

        try:
            raw = entry.model_dump_json(by_alias=True).encode("utf-8")
        except PydanticSerializationError:
            _logger.warning("Value for %s is not JSON serializable; kept in memory only", key)
            return entry
        try:
            await self._store.set(self._storage_key(key), raw)
        except StoreError:
            _logger.warning("Failed to write %s to persistent cache", key, exc_info=True)
            return entry
        await self._track(key, persisted=True)
        return entry

    async def _run_fetch(self, key: str, fetcher: Fetcher, *, ttl_ms: int, persist: bool, generation: int) -> Any:
        _logger.debug("Fetching %s (generation %d)", key, generation)
        try:
            value = await fetcher()
        except Exception as exc:
            raise FetchError(f"Fetch for {key!r} failed: {exc}", key=key, original=exc) from exc
        await self._write(key, value, ttl_ms=ttl_ms, persist=persist, generation=generation)
        return value

    def _forget_task(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        self._running[key] = self._running.get(key, 1) - 1
        self._prune(key)
        # Mark the exception retrieved even if every awaiting caller was cancelled.
        if not task.cancelled():
            task.exception()

    async def _fetch(
        self,
        key: str,
        fetcher: Fetcher,
        *,
        ttl_ms: int,
        fallback: Any,
        persist: bool,
        force: bool,
    ) -> Any:
        task = self._inflight.get(key)
        if task is None or force:
            if not force:
                # A concurrent caller may have filled the key while we read the store.
                entry = self._memory.get(key)
                if entry is not None and entry.is_fresh(self._clock()):
                    return entry.data
            generation = self._next_generation(key)
            task = asyncio.ensure_future(
                self._run_fetch(key, fetcher, ttl_ms=ttl_ms, persist=persist, generation=generation)
            )
            self._inflight[key] = task
            self._running[key] = self._running.get(key, 0) + 1
            task.add_done_callback(lambda done, key=key: self._forget_task(key, done))
        else:
            _logger.debug("Joining in-flight fetch for %s", key)

        try:
            return await asyncio.shield(task)
        except FetchError as exc:
            return self._degrade(key, exc, fallback)

    def _degrade(self, key: str, error: FetchError, fallback: Any) -> Any:
        if fallback is not MISSING:
            _logger.warning("Fetch for %s failed, returning fallback value: %s", key, error)
            return fallback
        stale = self._memory.get(key)
        if stale is not None:
            _logger.warning("Fetch for %s failed, returning stale entry: %s", key, error)
            return stale.data
        raise error
