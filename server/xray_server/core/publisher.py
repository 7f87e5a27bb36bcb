"""Reading publisher: encodes readings and hands them to the broker."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from xray_server.core.codec import encode_reading

if TYPE_CHECKING:
    from xray_server.broker.base import MessageBroker
    from xray_server.core.models import Reading
    from xray_server.core.stats import IngestStats

log = structlog.get_logger()


class Publisher:
    """Publishes readings to the fan-out exchange.

    Fire-and-forget: success means the payload reached the local channel,
    not that the broker stored it. Calls are serialized so that concurrent
    simulation ticks never interleave on the shared channel.
    """

    def __init__(self, broker: MessageBroker, stats: IngestStats | None = None) -> None:
        self._broker = broker
        self._stats = stats
        self._lock = asyncio.Lock()

    async def publish(self, reading: Reading) -> None:
        await self.publish_raw(encode_reading(reading), device_id=reading.device_id)

    async def publish_raw(self, payload: bytes, device_id: str = "") -> None:
        async with self._lock:
            try:
                await self._broker.publish(payload)
            except Exception:
                log.error("reading_publish_failed", device=device_id, exc_info=True)
                if self._stats is not None:
                    self._stats.record_publish_error()
                raise

        if self._stats is not None:
            self._stats.record_published(len(payload))
        log.info("reading_published", device=device_id, size=len(payload))
