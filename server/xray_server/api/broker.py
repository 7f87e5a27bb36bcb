"""Broker status and direct-publish endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from xray_server.api.schemas import ReadingIn, http_error, success_response
from xray_server.core.errors import XRayError

router = APIRouter(prefix="/api/v1")


@router.get("/rabbitmq/connection-status")
async def connection_status() -> dict:
    from xray_server.main import get_consumer

    return success_response("Connection status retrieved successfully",
                            get_consumer().status())


@router.get("/rabbitmq/queue-info")
async def queue_info() -> dict:
    """Queue name, ready message count, and consumer count."""
    from xray_server.main import get_broker

    try:
        info = await get_broker().queue_info()
    except XRayError as exc:
        raise http_error(exc) from exc
    return success_response("Queue information retrieved successfully", info)


@router.post("/rabbitmq/publish")
async def publish_reading(body: ReadingIn) -> dict:
    from xray_server.main import get_publisher

    try:
        await get_publisher().publish(body.to_reading())
    except XRayError as exc:
        raise http_error(exc) from exc
    return success_response("X-ray data published successfully",
                            {"deviceId": body.deviceId, "timestamp": body.time})
