"""HTTP JSON transport used by job handlers and cache fetchers."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from farmsync.exceptions import TransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything that can send one JSON request and return the decoded reply."""

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        ...


class HttpTransport:
    """JSON-over-HTTP transport.

    Every request carries ``timeout`` seconds as its total budget.
    """

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 15.0,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout) if timeout > 0 else aiohttp.ClientTimeout()
        self._headers: dict[str, str] = {"accept": "application/json"}
        if headers:
            self._headers.update(headers)

    def set_header(self, name: str, value: str | None) -> None:
        """Set (or with ``None`` remove) a header sent on every request."""
        if value is None:
            self._headers.pop(name, None)
        else:
            self._headers[name] = value

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (``None`` if empty).

        Raises
        ------
        TransportError
            On network failure, timeout, non-2xx status, or invalid JSON.
        """
        url = self._url(path)
        _logger.debug("%s %s", method, url)

        try:
            async with self._http.request(
                method,
                url,
                json=body,
                params=params,
                headers=self._headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise TransportError(
                        f"HTTP {resp.status} from {path}: {text[:200]}",
                        status_code=resp.status,
                        path=path,
                    )
        except TransportError:
            raise
        except TimeoutError as exc:
            raise TransportError(f"Request to {path} timed out", path=path) from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"Request to {path} failed: {exc}", path=path) from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise TransportError(f"Invalid JSON from {path}: {text[:200]}", path=path) from exc
