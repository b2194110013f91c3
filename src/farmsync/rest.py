"""Builders for REST-backed job handlers and cache fetchers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pydantic import BaseModel

from farmsync._transport import Transport
from farmsync.models.job import SyncJob

_BODYLESS_METHODS = frozenset({"GET", "DELETE", "HEAD"})


def _payload_body(payload: Any) -> Any:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    return payload


def rest_job_handler(transport: Transport, method: str, path: str) -> Callable[[SyncJob], Awaitable[None]]:
    """Build a queue handler that replays a job as one REST call.

    *path* may reference payload fields and the job id with ``str.format``
    syntax, e.g. ``"/animals/{id}"`` or ``"/jobs/{job_id}"``. The payload is
    sent as the JSON body except for ``GET``/``DELETE``/``HEAD``.
    """
    verb = method.upper()

    async def _handler(job: SyncJob) -> None:
        body = _payload_body(job.payload)
        fields: dict[str, Any] = dict(body) if isinstance(body, Mapping) else {}
        fields.setdefault("job_id", job.id)
        resolved = path.format_map(fields)
        await transport.request_json(verb, resolved, body=None if verb in _BODYLESS_METHODS else body)

    return _handler


def rest_fetcher(
    transport: Transport,
    path: str,
    *,
    params: Mapping[str, str] | None = None,
) -> Callable[[], Awaitable[Any]]:
    """Build a cache fetcher that GETs *path*."""

    async def _fetch() -> Any:
        return await transport.request_json("GET", path, params=params)

    return _fetch
