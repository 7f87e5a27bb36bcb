"""Tests for the REST API endpoints."""

from __future__ import annotations

import pytest

SIGNAL = {
    "deviceId": "api-device",
    "timestamp": 1735683480000,
    "data": [[762, [51.339764, 12.339223, 1.2038]], [1766, [51.339777, 12.339211, 1.531604]]],
    "dataLength": 2,
    "dataVolume": 6,
    "averageSpeed": 1.367702,
    "maxSpeed": 1.531604,
    "minSpeed": 1.2038,
}

READING = {
    "deviceId": "d1",
    "data": [[762, [51.339764, 12.339223, 1.2038]], [1766, [51.339777, 12.339211, 1.531604]]],
    "time": 1735683480000,
}


async def _create(client, **overrides) -> dict:
    resp = await client.post("/api/v1/signals", json={**SIGNAL, **overrides})
    assert resp.status_code == 201
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert data["environment"] == "test"
    assert "uptime_seconds" in data
    assert data["broker"] == {"status": "connected", "url": "memory://"}
    assert data["storage"] == "memory"


@pytest.mark.asyncio
async def test_stats_empty(client):
    resp = await client.get("/api/v1/stats")
    assert resp.status_code == 200
    data = resp.json()
    assert data["readings_published"] == 0
    assert data["active_devices"]["total"] == 0


@pytest.mark.asyncio
async def test_create_signal(client):
    resp = await client.post("/api/v1/signals", json=SIGNAL)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "X-Ray record created successfully"
    assert "timestamp" in body

    data = body["data"]
    assert data["deviceId"] == "api-device"
    assert data["coordinates"] == pytest.approx([51.3397705, 12.339217])
    assert data["createdAt"] == data["updatedAt"]
    assert len(data["id"]) == 24


@pytest.mark.asyncio
async def test_create_signal_forces_volume(client):
    data = await _create(client, dataVolume=100)
    assert data["dataVolume"] == 6


@pytest.mark.asyncio
@pytest.mark.parametrize("override", [
    {"deviceId": ""},
    {"data": []},
    {"dataLength": 0},
    {"averageSpeed": -1},
    {"data": [[1, [1.0, 2.0]]]},
])
async def test_create_signal_validation(client, override):
    resp = await client.post("/api/v1/signals", json={**SIGNAL, **override})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_list_and_filter_signals(client):
    await _create(client, deviceId="a", timestamp=1000)
    await _create(client, deviceId="a", timestamp=2000)
    await _create(client, deviceId="b", timestamp=3000)

    resp = await client.get("/api/v1/signals")
    assert resp.status_code == 200
    assert len(resp.json()["data"]) == 3

    resp = await client.get("/api/v1/signals", params={"deviceId": "a"})
    assert [s["timestamp"] for s in resp.json()["data"]] == [1000, 2000]

    resp = await client.get("/api/v1/signals", params={"startTime": 1500, "endTime": 3000})
    assert [s["timestamp"] for s in resp.json()["data"]] == [2000, 3000]

    resp = await client.get("/api/v1/signals", params={"startTime": 1500})
    assert len(resp.json()["data"]) == 3

    resp = await client.get("/api/v1/signals", params={"skip": 1, "limit": 1})
    assert [s["timestamp"] for s in resp.json()["data"]] == [2000]


@pytest.mark.asyncio
async def test_list_rejects_bad_limit(client):
    resp = await client.get("/api/v1/signals", params={"limit": 0})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_device_signals(client):
    await _create(client, deviceId="a", timestamp=1000)
    await _create(client, deviceId="b", timestamp=2000)

    resp = await client.get("/api/v1/signals/device/b")
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "X-Ray records for device b retrieved successfully"
    assert [s["deviceId"] for s in body["data"]] == ["b"]


@pytest.mark.asyncio
async def test_get_update_delete_signal(client):
    created = await _create(client)
    url = f"/api/v1/signals/{created['id']}"

    resp = await client.get(url)
    assert resp.status_code == 200
    assert resp.json()["data"]["deviceId"] == "api-device"

    resp = await client.patch(url, json={"dataLength": 4, "maxSpeed": 9.0})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["dataLength"] == 4
    assert data["dataVolume"] == 12
    assert data["maxSpeed"] == 9.0
    assert data["createdAt"] == created["createdAt"]

    resp = await client.delete(url)
    assert resp.status_code == 200
    assert resp.json()["data"] is None

    resp = await client.get(url)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_update_without_fields(client):
    created = await _create(client)
    resp = await client.patch(f"/api/v1/signals/{created['id']}", json={})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_missing_signal_is_404(client):
    for method in ("get", "delete"):
        resp = await getattr(client, method)("/api/v1/signals/000000000000000000000000")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Signal with ID 000000000000000000000000 not found"

    resp = await client.patch("/api/v1/signals/nope", json={"maxSpeed": 1.0})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_statistics(client):
    await _create(client, deviceId="a", averageSpeed=1.0, maxSpeed=2.0, minSpeed=0.5)
    await _create(client, deviceId="b", averageSpeed=2.0, maxSpeed=4.0, minSpeed=1.5)

    resp = await client.get("/api/v1/signals/statistics")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["totalSignals"] == 2
    assert data["totalDevices"] == 2
    assert data["averageSpeed"] == 1.5
    assert data["maxSpeed"] == 4.0
    assert data["minSpeed"] == 0.5

    resp = await client.get("/api/v1/signals/statistics", params={"deviceId": "a"})
    assert resp.json()["data"]["totalSignals"] == 1

    resp = await client.get("/api/v1/signals/statistics", params={"deviceId": "ghost"})
    assert resp.json()["data"]["totalSignals"] == 0


@pytest.mark.asyncio
async def test_publish_is_consumed_and_stored(client, wait_until):
    resp = await client.post("/api/v1/rabbitmq/publish", json=READING)
    assert resp.status_code == 200
    assert resp.json()["data"] == {"deviceId": "d1", "timestamp": 1735683480000}

    async def stored():
        return (await client.get("/api/v1/signals/device/d1")).json()["data"]

    records = await wait_until(stored)
    assert len(records) == 1
    record = records[0]
    assert record["dataLength"] == 2
    assert record["dataVolume"] == 6
    assert record["averageSpeed"] == pytest.approx(1.367702)
    assert record["data"] == READING["data"]

    stats = (await client.get("/api/v1/stats")).json()
    assert stats["readings_published"] == 1
    assert stats["readings_consumed"] == 1
    assert stats["readings_stored"] == 1
    assert stats["active_devices"]["total"] == 1


@pytest.mark.asyncio
async def test_publish_validation(client):
    resp = await client.post("/api/v1/rabbitmq/publish", json={"deviceId": "d1", "data": "x"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_publish_when_broker_down(client, app_state):
    await app_state.get_broker().close()
    resp = await client.post("/api/v1/rabbitmq/publish", json=READING)
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_connection_status_and_queue_info(client):
    resp = await client.get("/api/v1/rabbitmq/connection-status")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "connected"

    resp = await client.get("/api/v1/rabbitmq/queue-info")
    assert resp.status_code == 200
    assert resp.json()["data"]["queue"] == "x-ray-queue"
    assert resp.json()["data"]["messageCount"] == 0


@pytest.mark.asyncio
async def test_producer_devices(client):
    resp = await client.get("/api/v1/producer/devices")
    assert resp.status_code == 200
    assert resp.json() == {"devices": ["d1", "d2"], "count": 2}


@pytest.mark.asyncio
async def test_send_single(client, wait_until):
    resp = await client.post("/api/v1/producer/send-single", json={"deviceId": "d2"})
    assert resp.status_code == 200
    assert resp.json() == {"message": "Message sent successfully", "deviceId": "d2"}

    async def stored():
        return (await client.get("/api/v1/signals/device/d2")).json()["data"]

    records = await wait_until(stored)
    assert records[0]["dataLength"] == 3


@pytest.mark.asyncio
async def test_send_single_unknown_device(client):
    resp = await client.post("/api/v1/producer/send-single", json={"deviceId": "ghost"})
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Device ghost not found in data"


@pytest.mark.asyncio
async def test_send_bulk_skips_unknown(client):
    resp = await client.post("/api/v1/producer/send-bulk",
                             json={"deviceIds": ["d1", "ghost"], "count": 2})
    assert resp.status_code == 200
    data = resp.json()
    assert data["count"] == 2
    assert data["totalMessages"] == 2
    assert data["deviceIds"] == ["d1", "ghost"]


@pytest.mark.asyncio
async def test_send_bulk_count_limits(client):
    resp = await client.post("/api/v1/producer/send-bulk",
                             json={"deviceIds": ["d1"], "count": 101})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_send_random(client):
    resp = await client.post("/api/v1/producer/send-random", json={"count": 3})
    assert resp.status_code == 200
    assert resp.json()["count"] == 3


@pytest.mark.asyncio
async def test_simulation_start_and_stop(client, app_state):
    resp = await client.post("/api/v1/producer/simulate",
                             json={"deviceId": "d1", "interval": 1000})
    assert resp.status_code == 200
    assert resp.json()["interval"] == 1000
    assert app_state.get_simulator().active_simulations() == ["d1"]

    resp = await client.post("/api/v1/producer/simulate/stop", json={"deviceId": "d1"})
    assert resp.status_code == 200
    assert resp.json()["stopped"] == 1
    assert resp.json()["active"] == []


@pytest.mark.asyncio
async def test_stop_all_simulations(client):
    for device_id in ("d1", "d2"):
        resp = await client.post("/api/v1/producer/simulate", json={"deviceId": device_id})
        assert resp.json()["interval"] == 5000

    resp = await client.post("/api/v1/producer/simulate/stop", json={})
    assert resp.json()["stopped"] == 2


@pytest.mark.asyncio
async def test_simulation_validation(client):
    resp = await client.post("/api/v1/producer/simulate",
                             json={"deviceId": "d1", "interval": 10})
    assert resp.status_code == 422

    resp = await client.post("/api/v1/producer/simulate", json={"deviceId": "ghost"})
    assert resp.status_code == 404
