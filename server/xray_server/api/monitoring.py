"""Health check and monitoring endpoints."""

from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(prefix="/api/v1")


@router.get("/health")
async def health() -> dict:
    """Basic health check, including broker connection and consumer state."""
    from xray_server.main import get_config, get_consumer, get_stats

    config = get_config()
    consumer = get_consumer()
    snapshot = get_stats().snapshot()
    return {
        "status": "ok",
        "version": "0.1.0",
        "environment": config.server.env,
        "uptime_seconds": snapshot["uptime_seconds"],
        "broker": consumer.status(),
        "consumer": consumer.state.value,
        "storage": config.storage.backend,
    }


@router.get("/stats")
async def stats() -> dict:
    """Ingest pipeline counters.

    The ``active_devices`` section counts devices whose readings were
    consumed within the configured window.
    """
    from xray_server.main import get_stats

    return get_stats().snapshot()
