"""High-level entry point wiring the cache and the sync queue together."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiohttp

from farmsync._clock import now_ms, utcnow
from farmsync._transport import HttpTransport
from farmsync.cache.cache import Cache
from farmsync.config import SyncConfig
from farmsync.exceptions import FarmSyncError
from farmsync.monitors.lifecycle import AppLifecycleMonitor
from farmsync.monitors.network import NetworkMonitor
from farmsync.monitors.probe import ReachabilityProbe
from farmsync.storage.base import MemoryStore, PersistentStore
from farmsync.storage.file import FileStore
from farmsync.sync.queue import DeadLetterCallback, SyncQueue

_logger = logging.getLogger(__name__)


class FarmSync:
    """Offline-first data layer for the app.

    Construct one instance at startup and pass it to the screens that need
    it.

    Usage::

        async with FarmSync(SyncConfig.from_env()) as farm:
            farm.queue.register_handler("upload", handler)
            crops = await farm.cache.get_or_fetch("crops", fetch_crops)

    Parameters
    ----------
    config : SyncConfig or None
        Runtime configuration. Defaults to ``SyncConfig()``.
    store : PersistentStore or None
        Persistent backend. Defaults to a :class:`FileStore` under
        ``config.storage_dir`` or, when unset, a :class:`MemoryStore`.
    network : NetworkMonitor or None
        Connectivity source fed by the platform.
    lifecycle : AppLifecycleMonitor or None
        App state source fed by the platform.
    session : aiohttp.ClientSession or None
        HTTP session to reuse. One is created (and closed) on demand when
        ``base_url`` or ``reachability_url`` is configured.
    on_dead_letter : callable or None
        Passed to :class:`SyncQueue`.
    """

    def __init__(
        self,
        config: SyncConfig | None = None,
        *,
        store: PersistentStore | None = None,
        network: NetworkMonitor | None = None,
        lifecycle: AppLifecycleMonitor | None = None,
        session: aiohttp.ClientSession | None = None,
        on_dead_letter: DeadLetterCallback | None = None,
        cache_clock: Callable[[], int] = now_ms,
        queue_clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or SyncConfig()
        if store is None:
            store = FileStore(self._config.storage_dir) if self._config.storage_dir else MemoryStore()
        self._store = store
        self._network = network or NetworkMonitor()
        self._lifecycle = lifecycle or AppLifecycleMonitor()
        self._cache = Cache(self._store, config=self._config, clock=cache_clock)
        self._queue = SyncQueue(
            self._store,
            self._network,
            self._lifecycle,
            config=self._config,
            clock=queue_clock,
            on_dead_letter=on_dead_letter,
        )
        self._external_session = session is not None
        self._http_session = session
        self._transport: HttpTransport | None = None
        self._probe: ReachabilityProbe | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FarmSync:
        config = self._config
        if (config.base_url or config.reachability_url) and self._http_session is None:
            self._http_session = aiohttp.ClientSession()

        try:
            if config.base_url and self._http_session is not None:
                self._transport = HttpTransport(config.base_url, self._http_session, timeout=config.http_timeout)

            if config.reachability_url and self._http_session is not None:
                self._probe = ReachabilityProbe(
                    self._network,
                    self._http_session,
                    config.reachability_url,
                    interval=config.reachability_interval,
                )
                await self._probe.check()
                self._probe.start()

            await self._queue.start()
        except BaseException:
            await self.__aexit__(None, None, None)
            raise
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self._queue.close()
        if self._probe is not None:
            await self._probe.stop()
            self._probe = None
        self._transport = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def store(self) -> PersistentStore:
        return self._store

    @property
    def cache(self) -> Cache:
        return self._cache

    @property
    def queue(self) -> SyncQueue:
        return self._queue

    @property
    def network(self) -> NetworkMonitor:
        return self._network

    @property
    def lifecycle(self) -> AppLifecycleMonitor:
        return self._lifecycle

    @property
    def transport(self) -> HttpTransport:
        if self._transport is None:
            raise FarmSyncError("No transport. Set config.base_url and use 'async with FarmSync(...) as farm:'")
        return self._transport
