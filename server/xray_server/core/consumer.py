"""Reading consumer: drains the queue with manual acknowledgment.

Each delivery is decoded, handed to every subscribed handler in turn, and
acked only once all handlers succeed. Decode and handler failures are
nacked with requeue, so the broker redelivers them (at-least-once).
There is no retry cap or dead-letter route: a poison message cycles until
an operator removes it, and every cycle is logged and counted.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

import structlog

from xray_server.core.codec import decode_reading
from xray_server.core.errors import ChannelUnavailable, DecodeError

if TYPE_CHECKING:
    from xray_server.broker.base import Delivery, MessageBroker
    from xray_server.core.models import Reading
    from xray_server.core.stats import IngestStats

log = structlog.get_logger()

ReadingHandler = Callable[["Reading"], Awaitable[object]]


class ConsumerState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONSUMING = "consuming"


class ReadingConsumer:
    """Pulls deliveries from the broker and dispatches decoded readings."""

    def __init__(self, broker: MessageBroker, stats: IngestStats | None = None) -> None:
        self._broker = broker
        self._stats = stats
        self._handlers: list[ReadingHandler] = []
        self.state = ConsumerState.DISCONNECTED

    def subscribe(self, handler: ReadingHandler) -> None:
        """Register a handler called for every successfully decoded reading."""
        self._handlers.append(handler)

    def status(self) -> dict:
        return self._broker.status()

    async def run(self) -> None:
        """Consume until the broker closes or the task is cancelled.

        A lost connection ends the loop; reconnecting is left to whatever
        supervises the process.
        """
        self.state = ConsumerState.CONNECTING
        log.info("consumer_starting", url=self._broker.url)
        try:
            deliveries = self._broker.deliveries()
            self.state = ConsumerState.CONSUMING
            log.info("consumer_started")
            async for delivery in deliveries:
                await self.handle_delivery(delivery)
        except ChannelUnavailable:
            log.error("consumer_connection_lost", url=self._broker.url, exc_info=True)
        except Exception:
            log.critical("consumer_crashed", url=self._broker.url, exc_info=True)
            raise
        finally:
            self.state = ConsumerState.DISCONNECTED
            log.info("consumer_stopped")

    async def handle_delivery(self, delivery: Delivery) -> bool:
        """Process one delivery. Returns True if it was acked."""
        try:
            reading = decode_reading(delivery.body)
        except DecodeError as exc:
            log.error("reading_decode_failed", error=str(exc),
                      redelivered=delivery.redelivered, size=len(delivery.body))
            if self._stats is not None:
                self._stats.record_decode_failure()
            await delivery.nack(requeue=True)
            return False

        log.info("reading_received", device=reading.device_id,
                 samples=len(reading.samples), redelivered=delivery.redelivered)

        try:
            for handler in self._handlers:
                await handler(reading)
        except Exception:
            log.error("reading_handler_failed", device=reading.device_id,
                      redelivered=delivery.redelivered, exc_info=True)
            if self._stats is not None:
                self._stats.record_handler_failure()
            await delivery.nack(requeue=True)
            return False

        await delivery.ack()
        if self._stats is not None:
            self._stats.record_consumed(reading.device_id, len(reading.samples),
                                        redelivered=delivery.redelivered)
        return True
