"""Tests for the in-memory signal store."""

from __future__ import annotations

import pytest

from xray_server.core.errors import NotFound
from xray_server.core.metrics import compute_metrics
from xray_server.core.models import Reading, Sample, SignalFilter, SignalRecord


def _record(device_id: str, timestamp: int, speed: float = 1.0, n: int = 2) -> SignalRecord:
    samples = tuple(Sample(i * 100, (50.0, 10.0, speed)) for i in range(n))
    return compute_metrics(Reading(device_id, samples, timestamp))


@pytest.fixture
async def seeded(store):
    await store.create(_record("d1", 1000, speed=1.0))
    await store.create(_record("d1", 2000, speed=3.0, n=4))
    await store.create(_record("d2", 3000, speed=5.0))
    return store


@pytest.mark.asyncio
async def test_create_assigns_id_and_timestamps(store, reading):
    stored = await store.create(compute_metrics(reading))

    assert len(stored.id) == 24
    assert stored.created_at == stored.updated_at
    assert stored.created_at.tzinfo is not None
    assert stored.record.data_volume == 6


@pytest.mark.asyncio
async def test_create_applies_consistency_rules(store):
    record = SignalRecord(
        device_id="d1", timestamp=1,
        data=[[0, [10.0, 20.0, 1.0]], [1, [30.0, 40.0, 2.0]]],
        data_length=2, data_volume=99,
    )
    stored = await store.create(record)

    assert stored.record.data_volume == 6
    assert stored.record.coordinates == pytest.approx((20.0, 30.0))


@pytest.mark.asyncio
async def test_returned_records_are_copies(store, reading):
    stored = await store.create(compute_metrics(reading))
    stored.record.device_id = "tampered"

    again = await store.find_by_id(stored.id)
    assert again.record.device_id == "d1"


@pytest.mark.asyncio
async def test_find_all_keeps_insertion_order(seeded):
    items = await seeded.find_all()
    assert [i.record.timestamp for i in items] == [1000, 2000, 3000]


@pytest.mark.asyncio
async def test_filter_by_device(seeded):
    items = await seeded.find_all(SignalFilter(device_id="d1"))
    assert {i.record.device_id for i in items} == {"d1"}
    assert len(items) == 2


@pytest.mark.asyncio
async def test_time_range_needs_both_bounds(seeded):
    ranged = await seeded.find_all(SignalFilter(start_time=1500, end_time=3000))
    assert [i.record.timestamp for i in ranged] == [2000, 3000]

    half_open = await seeded.find_all(SignalFilter(start_time=1500))
    assert len(half_open) == 3


@pytest.mark.asyncio
async def test_skip_and_limit(seeded):
    items = await seeded.find_all(SignalFilter(skip=1, limit=1))
    assert [i.record.timestamp for i in items] == [2000]


@pytest.mark.asyncio
async def test_find_by_device_with_range(seeded):
    items = await seeded.find_by_device("d1", SignalFilter(start_time=0, end_time=1500))
    assert [i.record.timestamp for i in items] == [1000]
    assert await seeded.find_by_device("ghost") == []


@pytest.mark.asyncio
async def test_find_by_id_missing(store):
    with pytest.raises(NotFound, match="Signal with ID abc not found"):
        await store.find_by_id("abc")


@pytest.mark.asyncio
async def test_update_merges_and_keeps_volume_consistent(store, reading):
    stored = await store.create(compute_metrics(reading))

    updated = await store.update(stored.id, {"dataLength": 5, "averageSpeed": 9.5})

    assert updated.record.data_length == 5
    assert updated.record.data_volume == 15
    assert updated.record.average_speed == 9.5
    assert updated.record.device_id == "d1"
    assert updated.updated_at >= stored.updated_at
    assert updated.created_at == stored.created_at


@pytest.mark.asyncio
async def test_update_with_new_data_recounts(store, reading):
    stored = await store.create(compute_metrics(reading))
    updated = await store.update(stored.id, {"data": [[0, [1.0, 2.0, 3.0]]]})

    assert updated.record.data_length == 1
    assert updated.record.data_volume == 3


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(store, reading):
    stored = await store.create(compute_metrics(reading))
    with pytest.raises(ValueError):
        await store.update(stored.id, {"colour": "red"})


@pytest.mark.asyncio
async def test_update_and_delete_missing(store):
    with pytest.raises(NotFound):
        await store.update("missing", {"averageSpeed": 1.0})
    with pytest.raises(NotFound):
        await store.delete("missing")


@pytest.mark.asyncio
async def test_delete(seeded):
    first = (await seeded.find_all())[0]
    await seeded.delete(first.id)

    with pytest.raises(NotFound):
        await seeded.find_by_id(first.id)
    assert len(await seeded.find_all()) == 2


@pytest.mark.asyncio
async def test_statistics(seeded):
    stats = await seeded.statistics()

    assert stats.total_signals == 3
    assert stats.total_devices == 2
    assert stats.average_data_length == pytest.approx(2.67)
    assert stats.average_data_volume == 8
    assert stats.average_speed == 3
    assert stats.max_speed == 5.0
    assert stats.min_speed == 1.0


@pytest.mark.asyncio
async def test_statistics_for_one_device(seeded):
    stats = await seeded.statistics("d1")
    assert stats.total_signals == 2
    assert stats.total_devices == 1
    assert stats.average_data_length == 3


@pytest.mark.asyncio
async def test_statistics_empty(store):
    stats = await store.statistics()
    assert stats.to_dict() == {
        "totalSignals": 0,
        "totalDevices": 0,
        "averageDataLength": 0,
        "averageDataVolume": 0,
        "averageSpeed": 0,
        "maxSpeed": 0,
        "minSpeed": 0,
    }
