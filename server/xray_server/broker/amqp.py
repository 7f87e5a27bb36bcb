"""AMQP (RabbitMQ) implementation of MessageBroker, built on aio-pika.

Uses a plain (non-robust) connection: when the broker goes away the
consumer loop ends and the process supervisor is expected to restart us.
"""

from __future__ import annotations

from typing import AsyncIterator

import aio_pika
import structlog
from aio_pika import ExchangeType
from aio_pika.abc import (
    AbstractChannel,
    AbstractConnection,
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
)
from aio_pika.exceptions import (
    AMQPConnectionError,
    ChannelClosed,
    ChannelInvalidStateError,
    ChannelPreconditionFailed,
)

from xray_server.broker.base import Delivery, Topology
from xray_server.core.errors import ChannelUnavailable, TopologyConflict

log = structlog.get_logger()

_CONNECTION_ERRORS = (AMQPConnectionError, ChannelClosed, ChannelInvalidStateError)


class AmqpDelivery:
    """Incoming aio-pika message; settle failures surface as ChannelUnavailable."""

    def __init__(self, message: AbstractIncomingMessage) -> None:
        self._message = message

    @property
    def body(self) -> bytes:
        return self._message.body

    @property
    def redelivered(self) -> bool:
        return bool(self._message.redelivered)

    async def ack(self) -> None:
        try:
            await self._message.ack()
        except _CONNECTION_ERRORS as exc:
            raise ChannelUnavailable(f"ack failed: {exc}") from exc

    async def nack(self, requeue: bool = True) -> None:
        try:
            await self._message.nack(requeue=requeue)
        except _CONNECTION_ERRORS as exc:
            raise ChannelUnavailable(f"nack failed: {exc}") from exc


class AmqpBroker:
    """MessageBroker backed by a single aio-pika connection and channel."""

    def __init__(
        self,
        url: str = "amqp://localhost:5672",
        topology: Topology | None = None,
        prefetch: int = 1,
    ) -> None:
        self._url = url
        self._topology = topology or Topology()
        self._prefetch = prefetch
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._queue: AbstractQueue | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def topology(self) -> Topology:
        return self._topology

    @property
    def is_connected(self) -> bool:
        return self._connection is not None and not self._connection.is_closed

    def _require_channel(self) -> AbstractChannel:
        if self._channel is None or self._channel.is_closed:
            raise ChannelUnavailable("Channel not initialized")
        return self._channel

    async def connect(self) -> None:
        """Open connection and channel, apply prefetch, declare topology."""
        log.info("broker_connecting", url=self._url)
        try:
            self._connection = await aio_pika.connect(self._url)
            self._connection.close_callbacks.add(self._on_connection_closed)
            self._channel = await self._connection.channel()
            await self._channel.set_qos(prefetch_count=self._prefetch)
            await self.ensure_topology()
        except Exception:
            log.error("broker_connect_failed", url=self._url, exc_info=True)
            raise
        log.info("broker_connected", url=self._url, prefetch=self._prefetch)

    def _on_connection_closed(self, _sender, exc: BaseException | None = None) -> None:
        if exc is not None:
            log.error("broker_connection_error", url=self._url, error=str(exc))
        else:
            log.warning("broker_connection_closed", url=self._url)

    async def ensure_topology(self) -> None:
        """Declare the fan-out exchange and durable queue, then bind them.

        Safe to repeat. A conflicting existing declaration is fatal.
        """
        channel = self._require_channel()
        t = self._topology
        try:
            self._exchange = await channel.declare_exchange(
                t.exchange, ExchangeType.FANOUT, durable=t.durable,
            )
            self._queue = await channel.declare_queue(t.queue, durable=t.durable)
            await self._queue.bind(self._exchange, routing_key=t.routing_key)
        except ChannelPreconditionFailed as exc:
            log.critical("topology_conflict", exchange=t.exchange,
                         queue=t.queue, error=str(exc))
            raise TopologyConflict(str(exc)) from exc
        log.info("topology_ready", exchange=t.exchange, queue=t.queue)

    async def publish(self, body: bytes) -> None:
        """Hand a payload to the channel. No publisher confirms are awaited."""
        self._require_channel()
        if self._exchange is None:
            raise ChannelUnavailable("Exchange not declared")
        message = aio_pika.Message(body=body, content_type="application/json")
        await self._exchange.publish(message, routing_key=self._topology.routing_key)

    async def deliveries(self) -> AsyncIterator[Delivery]:
        """Yield incoming messages one at a time, manual ack mode."""
        self._require_channel()
        if self._queue is None:
            raise ChannelUnavailable("Queue not declared")
        try:
            async with self._queue.iterator() as queue_iter:
                async for message in queue_iter:
                    yield AmqpDelivery(message)
        except _CONNECTION_ERRORS as exc:
            raise ChannelUnavailable(f"broker connection lost: {exc}") from exc

    async def queue_info(self) -> dict:
        channel = self._require_channel()
        queue = await channel.declare_queue(self._topology.queue, passive=True)
        result = queue.declaration_result
        return {
            "queue": self._topology.queue,
            "messageCount": result.message_count,
            "consumerCount": result.consumer_count,
        }

    def status(self) -> dict:
        return {
            "status": "connected" if self.is_connected else "disconnected",
            "url": self._url,
        }

    async def close(self) -> None:
        """Close channel then connection. Errors are logged, not raised."""
        try:
            if self._channel is not None:
                await self._channel.close()
            if self._connection is not None:
                await self._connection.close()
            log.info("broker_disconnected", url=self._url)
        except Exception:
            log.error("broker_disconnect_failed", url=self._url, exc_info=True)
        finally:
            self._channel = None
            self._connection = None
            self._exchange = None
            self._queue = None
