"""Signal record API endpoints: CRUD, filtered listing, and statistics."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from xray_server.api.schemas import (
    CreateSignalIn,
    UpdateSignalIn,
    http_error,
    success_response,
)
from xray_server.core.errors import XRayError
from xray_server.core.models import SignalFilter

router = APIRouter(prefix="/api/v1")


def _filter(
    device_id: str | None,
    start_time: int | None,
    end_time: int | None,
    limit: int | None,
    skip: int | None,
) -> SignalFilter:
    return SignalFilter(device_id=device_id, start_time=start_time,
                        end_time=end_time, limit=limit, skip=skip)


@router.post("/signals", status_code=201)
async def create_signal(body: CreateSignalIn) -> dict:
    """Store a signal record directly, bypassing the broker."""
    from xray_server.main import get_store

    try:
        stored = await get_store().create(body.to_record())
    except XRayError as exc:
        raise http_error(exc) from exc
    return success_response("X-Ray record created successfully", stored.to_dict())


@router.get("/signals")
async def list_signals(
    device_id: str | None = Query(default=None, alias="deviceId"),
    start_time: int | None = Query(default=None, alias="startTime"),
    end_time: int | None = Query(default=None, alias="endTime"),
    limit: int | None = Query(default=None, ge=1, le=1000),
    skip: int | None = Query(default=None, ge=0),
) -> dict:
    """List records. The time range applies only when both bounds are given."""
    from xray_server.main import get_store

    f = _filter(device_id, start_time, end_time, limit, skip)
    try:
        signals = await get_store().find_all(f)
    except XRayError as exc:
        raise http_error(exc) from exc
    return success_response("X-Ray records retrieved successfully",
                            [s.to_dict() for s in signals])


@router.get("/signals/statistics")
async def signal_statistics(
    device_id: str | None = Query(default=None, alias="deviceId"),
) -> dict:
    from xray_server.main import get_store

    try:
        stats = await get_store().statistics(device_id)
    except XRayError as exc:
        raise http_error(exc) from exc
    return success_response("Statistics retrieved successfully", stats.to_dict())


@router.get("/signals/device/{device_id}")
async def list_device_signals(
    device_id: str,
    start_time: int | None = Query(default=None, alias="startTime"),
    end_time: int | None = Query(default=None, alias="endTime"),
    limit: int | None = Query(default=None, ge=1, le=1000),
    skip: int | None = Query(default=None, ge=0),
) -> dict:
    from xray_server.main import get_store

    f = _filter(None, start_time, end_time, limit, skip)
    try:
        signals = await get_store().find_by_device(device_id, f)
    except XRayError as exc:
        raise http_error(exc) from exc
    return success_response(f"X-Ray records for device {device_id} retrieved successfully",
                            [s.to_dict() for s in signals])


@router.get("/signals/{record_id}")
async def get_signal(record_id: str) -> dict:
    from xray_server.main import get_store

    try:
        stored = await get_store().find_by_id(record_id)
    except XRayError as exc:
        raise http_error(exc) from exc
    return success_response("X-Ray record retrieved successfully", stored.to_dict())


@router.patch("/signals/{record_id}")
async def update_signal(record_id: str, body: UpdateSignalIn) -> dict:
    from xray_server.main import get_store

    changes = body.changes()
    if not changes:
        raise HTTPException(status_code=400, detail="no fields to update")
    try:
        stored = await get_store().update(record_id, changes)
    except XRayError as exc:
        raise http_error(exc) from exc
    return success_response("X-Ray record updated successfully", stored.to_dict())


@router.delete("/signals/{record_id}")
async def delete_signal(record_id: str) -> dict:
    from xray_server.main import get_store

    try:
        await get_store().delete(record_id)
    except XRayError as exc:
        raise http_error(exc) from exc
    return success_response("X-Ray record deleted successfully")
