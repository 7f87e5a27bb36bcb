"""Device simulation endpoints.

Drive the in-process simulator: one-shot, bulk, random, and continuous
publishing of catalog tracks.
"""

from __future__ import annotations

from fastapi import APIRouter

from xray_server.api.schemas import (
    SendBulkIn,
    SendRandomIn,
    SendSingleIn,
    StartSimulationIn,
    StopSimulationIn,
    http_error,
)
from xray_server.core.errors import XRayError

router = APIRouter(prefix="/api/v1")


@router.get("/producer/devices")
async def list_devices() -> dict:
    from xray_server.main import get_simulator

    devices = get_simulator().list_devices()
    return {"devices": devices, "count": len(devices)}


@router.post("/producer/send-single")
async def send_single(body: SendSingleIn) -> dict:
    from xray_server.main import get_simulator

    try:
        await get_simulator().send_once(body.deviceId)
    except XRayError as exc:
        raise http_error(exc) from exc
    return {"message": "Message sent successfully", "deviceId": body.deviceId}


@router.post("/producer/send-bulk")
async def send_bulk(body: SendBulkIn) -> dict:
    """Send ``count`` messages per device. Unknown devices are skipped."""
    from xray_server.main import get_simulator

    try:
        sent = await get_simulator().send_bulk(body.deviceIds, body.count)
    except XRayError as exc:
        raise http_error(exc) from exc
    return {
        "message": "Messages sent successfully",
        "deviceIds": body.deviceIds,
        "count": body.count,
        "totalMessages": sent,
    }


@router.post("/producer/send-random")
async def send_random(body: SendRandomIn) -> dict:
    from xray_server.main import get_simulator

    try:
        sent = await get_simulator().send_random(body.count)
    except XRayError as exc:
        raise http_error(exc) from exc
    return {"message": "Random data sent successfully", "count": sent}


@router.post("/producer/simulate")
async def start_simulation(body: StartSimulationIn) -> dict:
    from xray_server.main import get_config, get_simulator

    interval = body.interval or get_config().simulator.default_interval_ms
    try:
        get_simulator().start_continuous(body.deviceId, interval)
    except XRayError as exc:
        raise http_error(exc) from exc
    return {
        "message": "Simulation started successfully",
        "deviceId": body.deviceId,
        "interval": interval,
    }


@router.post("/producer/simulate/stop")
async def stop_simulation(body: StopSimulationIn) -> dict:
    from xray_server.main import get_simulator

    simulator = get_simulator()
    if body.deviceId is None:
        stopped = simulator.stop_all()
    else:
        stopped = 1 if simulator.stop(body.deviceId) else 0
    return {
        "message": "Simulation stopped",
        "stopped": stopped,
        "active": simulator.active_simulations(),
    }
