"""Tests for debounced, coalesced persistence of counters and sets."""

import asyncio
import json

import pytest

from soundrelay.exceptions import PersistenceError
from soundrelay.storage import counter_store
from soundrelay.storage.counter_store import (
    BareCount,
    CountEnvelope,
    DurableCounterStore,
    PersistentCounter,
    PersistentSet,
    UnrecognizedPayload,
    decode_counter_payload,
    decode_member_list,
)


@pytest.fixture
def recorded_writes(monkeypatch):
    writes = []
    real_write = counter_store.atomic_write_json

    async def recording_write(path, payload):
        writes.append((path.name, payload))
        await real_write(path, payload)

    monkeypatch.setattr(counter_store, "atomic_write_json", recording_write)
    return writes


@pytest.mark.asyncio
async def test_burst_of_increments_coalesces_into_one_write(tmp_path, recorded_writes) -> None:
    counter = PersistentCounter(tmp_path / "count.json", debounce_seconds=0.05)

    for _ in range(50):
        counter.increment()
    assert counter.persist_pending

    await asyncio.sleep(0.2)

    assert recorded_writes == [("count.json", 50)]
    assert json.loads((tmp_path / "count.json").read_text()) == 50
    assert counter.dirty is False


@pytest.mark.asyncio
async def test_flush_writes_pending_state_immediately(tmp_path, recorded_writes) -> None:
    counter = PersistentCounter(tmp_path / "count.json", debounce_seconds=60)
    for _ in range(3):
        counter.increment()

    await counter.flush()

    assert recorded_writes == [("count.json", 3)]
    assert not counter.persist_pending
    assert json.loads((tmp_path / "count.json").read_text()) == 3


@pytest.mark.asyncio
async def test_flush_when_clean_writes_nothing(tmp_path, recorded_writes) -> None:
    counter = PersistentCounter(tmp_path / "count.json")
    await counter.flush()
    assert recorded_writes == []
    assert not (tmp_path / "count.json").exists()


@pytest.mark.asyncio
async def test_crash_before_debounce_keeps_last_completed_write(tmp_path) -> None:
    path = tmp_path / "count.json"
    counter = PersistentCounter(path, debounce_seconds=60)
    counter.increment()
    await counter.flush()

    counter.increment()
    counter.increment()
    # Simulated crash: the pending timer never fires.
    counter._timer.cancel()

    reloaded = PersistentCounter(path)
    await reloaded.load()
    assert reloaded.get() == 1


@pytest.mark.asyncio
async def test_failed_write_leaves_value_dirty_and_flush_raises(tmp_path, monkeypatch) -> None:
    counter = PersistentCounter(tmp_path / "count.json", debounce_seconds=60)
    counter.increment()

    async def broken_write(path, payload):
        raise OSError("disk full")

    monkeypatch.setattr(counter_store, "atomic_write_json", broken_write)

    with pytest.raises(PersistenceError, match="disk full"):
        await counter.flush()
    assert counter.dirty is True

    monkeypatch.undo()
    await counter.flush()
    assert json.loads((tmp_path / "count.json").read_text()) == 1


@pytest.mark.asyncio
async def test_missing_files_load_as_defaults(tmp_path) -> None:
    store = DurableCounterStore(tmp_path / "nowhere")
    await store.load()
    assert store.downloads.get() == 0
    assert len(store.authorized_users) == 0


@pytest.mark.asyncio
async def test_legacy_count_envelope_is_accepted(tmp_path) -> None:
    path = tmp_path / "count.json"
    path.write_text(json.dumps({"count": 41}))
    counter = PersistentCounter(path)

    await counter.load()
    counter.increment()
    await counter.flush()

    assert counter.get() == 42
    assert json.loads(path.read_text()) == 42


@pytest.mark.asyncio
async def test_corrupt_file_keeps_defaults(tmp_path) -> None:
    path = tmp_path / "count.json"
    path.write_text("{not json")
    counter = PersistentCounter(path)
    await counter.load()
    assert counter.get() == 0


@pytest.mark.asyncio
async def test_set_skips_non_integer_members(tmp_path) -> None:
    path = tmp_path / "users.json"
    path.write_text(json.dumps([3, "7", "abc", True, None, 1.0, 2.5]))
    users = PersistentSet(path)

    await users.load()

    assert sorted(users) == [1, 3, 7]
    users.add(2)
    await users.flush()
    assert json.loads(path.read_text()) == [1, 2, 3, 7]


@pytest.mark.asyncio
async def test_store_flushes_both_files(tmp_path) -> None:
    store = DurableCounterStore(tmp_path, debounce_seconds=60)
    store.downloads.increment()
    store.authorized_users.add(11)

    await store.flush()

    assert json.loads((tmp_path / "download-count.json").read_text()) == 1
    assert json.loads((tmp_path / "authorized-users.json").read_text()) == [11]


def test_counter_payload_variants() -> None:
    assert decode_counter_payload(5) == BareCount(5)
    assert decode_counter_payload({"count": 9}) == CountEnvelope(9)
    assert isinstance(decode_counter_payload("5"), UnrecognizedPayload)
    assert isinstance(decode_counter_payload(True), UnrecognizedPayload)


def test_member_list_rejects_non_arrays() -> None:
    with pytest.raises(ValueError):
        decode_member_list({"users": [1]})
