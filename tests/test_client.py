"""End-to-end tests for the FarmSync facade."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from farmsync import FarmSync, FileStore, MemoryStore, SyncConfig, rest_fetcher, rest_job_handler
from farmsync.exceptions import FarmSyncError
from farmsync.models import SyncJob


def _backend(received: list[dict[str, Any]]) -> web.Application:
    async def health(request: web.Request) -> web.Response:
        return web.Response(text="ok")

    async def crops(request: web.Request) -> web.Response:
        return web.json_response([{"id": 1, "name": "barley"}])

    async def save_animal(request: web.Request) -> web.Response:
        body = await request.json()
        received.append({**body, "path_id": request.match_info["animal_id"]})
        return web.json_response({"ok": True})

    app = web.Application()
    app.router.add_get("/health", health)
    app.router.add_get("/crops", crops)
    app.router.add_post("/animals/{animal_id}", save_animal)
    return app


@pytest.mark.asyncio
async def test_defaults_without_http() -> None:
    handled: list[str] = []

    async def handler(job: SyncJob) -> None:
        handled.append(job.id)

    async with FarmSync(SyncConfig(periodic_sync_enabled=False)) as farm:
        assert isinstance(farm.store, MemoryStore)
        with pytest.raises(FarmSyncError):
            _ = farm.transport

        farm.queue.register_handler("upload", handler)
        await farm.queue.add_sync_job("a", "upload", {"n": 1})
        assert farm.queue.get_sync_stats().pending_jobs == 1

        farm.network.set_online(True)
        await farm.queue.join()
        assert handled == ["a"]


@pytest.mark.asyncio
async def test_storage_dir_persists_between_instances(tmp_path: Path) -> None:
    config = SyncConfig(periodic_sync_enabled=False, storage_dir=str(tmp_path))

    async with FarmSync(config) as farm:
        assert isinstance(farm.store, FileStore)
        await farm.queue.add_sync_job("a", "upload", {"n": 1}, "high")
        await farm.cache.set("fields", ["north"])

    async with FarmSync(config) as farm:
        assert [job.id for job in farm.queue.get_pending_jobs()] == ["a"]

        async def unused() -> Any:
            raise AssertionError("cache should have been hit")

        assert await farm.cache.get_or_fetch("fields", unused) == ["north"]


@pytest.mark.asyncio
async def test_owned_session_closed_when_startup_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    created: list[aiohttp.ClientSession] = []
    session_cls = aiohttp.ClientSession

    def make_session(*args: Any, **kwargs: Any) -> aiohttp.ClientSession:
        session = session_cls(*args, **kwargs)
        created.append(session)
        return session

    class _UnreadableStore(MemoryStore):
        async def get(self, key: str) -> bytes | None:
            raise RuntimeError("store offline")

    monkeypatch.setattr(aiohttp, "ClientSession", make_session)
    config = SyncConfig(periodic_sync_enabled=False, base_url="http://127.0.0.1:1")

    with pytest.raises(RuntimeError, match="store offline"):
        async with FarmSync(config, store=_UnreadableStore()):
            raise AssertionError("startup should have failed")

    assert len(created) == 1
    assert created[0].closed


@pytest.mark.asyncio
async def test_http_round_trip() -> None:
    received: list[dict[str, Any]] = []
    async with TestServer(_backend(received)) as server:
        config = SyncConfig(
            periodic_sync_enabled=False,
            base_url=str(server.make_url("/")),
            reachability_url=str(server.make_url("/health")),
            reachability_interval=60,
        )
        async with FarmSync(config) as farm:
            assert farm.network.is_online() is True
            farm.queue.register_handler("upload", rest_job_handler(farm.transport, "POST", "/animals/{animal_id}"))

            await farm.queue.add_sync_job("weigh-7", "upload", {"animal_id": 7, "weight": 388})
            await farm.queue.join()

            crops = await farm.cache.get_or_fetch("crops", rest_fetcher(farm.transport, "/crops"))
            stats = farm.queue.get_sync_stats()

        assert received == [{"animal_id": 7, "weight": 388, "path_id": "7"}]
        assert crops == [{"id": 1, "name": "barley"}]
        assert stats.completed_jobs == 1
        assert stats.pending_jobs == 0
