"""
Unit tests for the durable queue store and key/value adapters.
"""

import asyncio
import json

import pytest

from interaction_tracker import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    PendingQueueStore,
    StorageError,
)


@pytest.mark.asyncio
async def test_save_and_load_roundtrip(kv, event_factory):
    store = PendingQueueStore(kv, key="pending")
    events = [event_factory(i, subject_id=i) for i in range(3)]

    await store.save(events)
    loaded = await store.load()

    assert loaded == events


@pytest.mark.asyncio
async def test_snapshot_format_is_camel_case_json(kv, event_factory):
    store = PendingQueueStore(kv, key="pending")
    await store.save([event_factory(0)])

    raw = json.loads(await kv.get("pending"))
    assert raw == [
        {"subjectId": 10, "actorId": "u1", "kind": "View", "occurredAt": "2026-01-01T12:00:00Z"}
    ]


@pytest.mark.asyncio
async def test_save_overwrites_previous_snapshot(kv, event_factory):
    store = PendingQueueStore(kv, key="pending")
    await store.save([event_factory(i) for i in range(5)])
    await store.save([event_factory(9)])

    assert len(await store.load()) == 1


@pytest.mark.asyncio
async def test_load_missing_key_is_empty(kv):
    assert await PendingQueueStore(kv, key="nothing-here").load() == []


@pytest.mark.asyncio
async def test_load_corrupt_snapshot_is_empty():
    kv = InMemoryKeyValueStore({"pending": b'[{"subjectId": 1, "actorI'})
    assert await PendingQueueStore(kv, key="pending").load() == []


@pytest.mark.asyncio
async def test_load_non_list_snapshot_is_empty():
    kv = InMemoryKeyValueStore({"pending": b'{"subjectId": 1}'})
    assert await PendingQueueStore(kv, key="pending").load() == []


@pytest.mark.asyncio
async def test_load_skips_malformed_entries():
    good = {"subjectId": 1, "actorId": "u1", "kind": "Click", "occurredAt": "2026-01-01T00:00:00Z"}
    bad = {"subjectId": "not-a-number", "actorId": "u1", "kind": "Teleport"}
    kv = InMemoryKeyValueStore({"pending": json.dumps([good, bad]).encode()})

    loaded = await PendingQueueStore(kv, key="pending").load()

    assert len(loaded) == 1
    assert loaded[0].subject_id == 1


@pytest.mark.asyncio
async def test_kv_failures_raise_storage_error(event_factory):
    class BrokenKV:
        async def get(self, key):
            raise OSError("read failed")

        async def set(self, key, value):
            raise OSError("write failed")

    store = PendingQueueStore(BrokenKV(), key="pending")

    with pytest.raises(StorageError):
        await store.load()
    with pytest.raises(StorageError):
        await store.save([event_factory(0)])
    assert await store.save_quietly([event_factory(0)]) is False


def test_empty_key_rejected(kv):
    with pytest.raises(ValueError):
        PendingQueueStore(kv, key="")


@pytest.mark.asyncio
async def test_file_store_persists_across_instances(tmp_path, event_factory):
    """A new store over the same directory sees the previous snapshot."""
    events = [event_factory(i) for i in range(4)]
    await PendingQueueStore(FileKeyValueStore(tmp_path), key="pending").save(events)

    reopened = PendingQueueStore(FileKeyValueStore(tmp_path), key="pending")
    assert await reopened.load() == events
    assert (tmp_path / "pending.json").exists()
    assert not list(tmp_path.glob("*.tmp"))


@pytest.mark.asyncio
async def test_file_store_missing_file(tmp_path):
    kv = FileKeyValueStore(tmp_path / "nested", mkdirs=True)
    assert await kv.get("absent") is None


@pytest.mark.asyncio
async def test_file_store_rejects_path_like_keys(tmp_path):
    kv = FileKeyValueStore(tmp_path)
    with pytest.raises(ValueError):
        await kv.set("../escape", b"x")


@pytest.mark.asyncio
async def test_slow_older_write_cannot_overwrite_newer(gated_kv, event_factory, until):
    """Saves land in call order even if an earlier key/value write stalls."""
    store = PendingQueueStore(gated_kv, key="pending")
    older = [event_factory(0), event_factory(1)]
    newer = [event_factory(1)]

    release = gated_kv.hold_next_write()
    first = asyncio.create_task(store.save(older))
    await until(lambda: gated_kv.holding)

    second = asyncio.create_task(store.save(newer))
    for _ in range(5):
        await asyncio.sleep(0)
    assert not second.done()

    release.set()
    await asyncio.gather(first, second)

    assert await store.load() == newer
