"""HTTP reachability probe feeding a :class:`NetworkMonitor`."""

from __future__ import annotations

import asyncio
import contextlib
import logging

import aiohttp

from farmsync.monitors.network import ConnectivityState, NetworkMonitor

_logger = logging.getLogger(__name__)


class ReachabilityProbe:
    """Periodically checks that *url* answers and updates *monitor*.

    Any HTTP status below 500 counts as reachable: the point is to prove an
    uplink exists, not that the endpoint is healthy.

    Parameters
    ----------
    monitor : NetworkMonitor
        Monitor to update with each result.
    session : aiohttp.ClientSession
        HTTP session used for probes.
    url : str
        URL to probe with ``HEAD``.
    interval : float
        Seconds between probes.
    timeout : float
        Per-probe timeout in seconds.
    """

    def __init__(
        self,
        monitor: NetworkMonitor,
        session: aiohttp.ClientSession,
        url: str,
        *,
        interval: float = 30.0,
        timeout: float = 5.0,
    ) -> None:
        self._monitor = monitor
        self._session = session
        self._url = url
        self._interval = interval
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def check(self) -> bool:
        """Probe once and push the result into the monitor."""
        reachable = False
        try:
            async with self._session.head(self._url, timeout=self._timeout, allow_redirects=True) as resp:
                reachable = resp.status < 500
        except (aiohttp.ClientError, TimeoutError) as exc:
            _logger.debug("Reachability probe to %s failed: %s", self._url, exc)

        previous = self._monitor.state
        self._monitor.update(
            ConnectivityState(
                is_connected=previous.is_connected or reachable,
                is_internet_reachable=reachable,
                connection_type=previous.connection_type,
                is_expensive=previous.is_expensive,
            )
        )
        return reachable

    async def _run(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
