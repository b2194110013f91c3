from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from farmsync.exceptions import StoreError
from farmsync.storage import FileStore, MemoryStore


@pytest.mark.asyncio
async def test_memory_store_round_trip() -> None:
    store = MemoryStore({"seed": b"1"})
    await store.set("k", b"value")

    assert await store.get("k") == b"value"
    assert await store.get("seed") == b"1"
    assert await store.get("absent") is None

    await store.remove("k")
    await store.remove("k")
    assert store.keys() == ["seed"]


class TestFileStore:
    @pytest.mark.asyncio
    async def test_round_trip_survives_new_instance(self, tmp_path: Path) -> None:
        await FileStore(tmp_path / "data").set("sync_queue", b"[]")

        reopened = FileStore(tmp_path / "data")
        assert await reopened.get("sync_queue") == b"[]"

    @pytest.mark.asyncio
    async def test_overwrite_replaces_value(self, tmp_path: Path) -> None:
        store = FileStore(tmp_path)
        await store.set("k", b"one")
        await store.set("k", b"two")

        assert await store.get("k") == b"two"
        assert [p.name for p in tmp_path.iterdir()] == ["k.bin"]

    @pytest.mark.asyncio
    async def test_overlapping_writes_apply_in_call_order(self, tmp_path: Path) -> None:
        store = FileStore(tmp_path)
        for _ in range(20):
            await asyncio.gather(*(store.set("k", str(n).encode()) for n in range(8)))
            assert await store.get("k") == b"7"

        await asyncio.gather(store.set("k", b"a"), store.remove("k"), store.set("k", b"b"))
        assert await store.get("k") == b"b"
        await asyncio.gather(store.set("k", b"c"), store.remove("k"))
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_missing_key_and_idempotent_remove(self, tmp_path: Path) -> None:
        store = FileStore(tmp_path)
        assert await store.get("nothing") is None

        await store.set("k", b"v")
        await store.remove("k")
        await store.remove("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_keys_with_path_characters_stay_in_directory(self, tmp_path: Path) -> None:
        store = FileStore(tmp_path)
        await store.set("cache_../fields/north", b"x")
        await store.set("cache_fields north", b"y")

        assert await store.get("cache_../fields/north") == b"x"
        assert await store.get("cache_fields north") == b"y"
        assert all(p.parent == tmp_path for p in tmp_path.iterdir())

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            await FileStore(tmp_path).get("")

    @pytest.mark.asyncio
    async def test_unwritable_directory_raises_store_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_bytes(b"")
        store = FileStore(blocker)

        with pytest.raises(StoreError) as excinfo:
            await store.set("k", b"v")
        assert excinfo.value.key == "k"
