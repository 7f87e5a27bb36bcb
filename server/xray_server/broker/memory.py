"""In-process implementation of MessageBroker.

Models just enough of AMQP for local runs and tests: fan-out exchanges,
queues, bindings, prefetch, and ack / nack-with-requeue. Zero dependencies.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import AsyncIterator

from xray_server.broker.base import Topology
from xray_server.core.errors import ChannelUnavailable, TopologyConflict


@dataclass
class _Envelope:
    body: bytes
    redelivered: bool = False


@dataclass
class _MemoryQueue:
    name: str
    durable: bool
    ready: deque[_Envelope] = field(default_factory=deque)
    unacked: int = 0
    consumers: int = 0


class MemoryDelivery:
    """A message held by one consumer until it is acked or nacked."""

    def __init__(self, broker: MemoryBroker, queue: _MemoryQueue, envelope: _Envelope) -> None:
        self._broker = broker
        self._queue = queue
        self._envelope = envelope
        self._settled = False

    @property
    def body(self) -> bytes:
        return self._envelope.body

    @property
    def redelivered(self) -> bool:
        return self._envelope.redelivered

    async def ack(self) -> None:
        await self._settle(requeue=False)

    async def nack(self, requeue: bool = True) -> None:
        await self._settle(requeue=requeue)

    async def _settle(self, requeue: bool) -> None:
        if self._settled:
            raise RuntimeError("delivery already acknowledged")
        self._settled = True
        await self._broker._settle(self._queue, self._envelope, requeue)


class MemoryBroker:
    """MessageBroker backed by deques and an asyncio.Condition."""

    def __init__(self, topology: Topology | None = None, prefetch: int = 1) -> None:
        self._topology = topology or Topology()
        self._prefetch = prefetch
        self._connected = False
        self._cond = asyncio.Condition()
        self._exchanges: dict[str, tuple[str, bool]] = {}
        self._queues: dict[str, _MemoryQueue] = {}
        self._bindings: dict[str, set[str]] = {}

    @property
    def url(self) -> str:
        return "memory://"

    @property
    def topology(self) -> Topology:
        return self._topology

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _require_connected(self) -> None:
        if not self._connected:
            raise ChannelUnavailable("Channel not initialized")

    async def connect(self) -> None:
        self._connected = True
        await self.ensure_topology()

    async def close(self) -> None:
        async with self._cond:
            self._connected = False
            self._cond.notify_all()

    def declare_exchange(self, name: str, kind: str = "fanout", durable: bool = True) -> None:
        existing = self._exchanges.get(name)
        if existing is not None and existing != (kind, durable):
            raise TopologyConflict(
                f"exchange {name!r} exists as {existing}, requested {(kind, durable)}"
            )
        self._exchanges[name] = (kind, durable)
        self._bindings.setdefault(name, set())

    def declare_queue(self, name: str, durable: bool = True) -> None:
        existing = self._queues.get(name)
        if existing is not None:
            if existing.durable != durable:
                raise TopologyConflict(
                    f"queue {name!r} exists with durable={existing.durable}"
                )
            return
        self._queues[name] = _MemoryQueue(name=name, durable=durable)

    async def ensure_topology(self) -> None:
        self._require_connected()
        t = self._topology
        self.declare_exchange(t.exchange, "fanout", t.durable)
        self.declare_queue(t.queue, t.durable)
        self._bindings[t.exchange].add(t.queue)

    async def publish(self, body: bytes) -> None:
        self._require_connected()
        exchange = self._topology.exchange
        if exchange not in self._exchanges:
            raise ChannelUnavailable("Exchange not declared")
        async with self._cond:
            for queue_name in self._bindings[exchange]:
                self._queues[queue_name].ready.append(_Envelope(body=body))
            self._cond.notify_all()

    def _can_deliver(self, queue: _MemoryQueue) -> bool:
        if not queue.ready:
            return False
        return self._prefetch <= 0 or queue.unacked < self._prefetch

    async def deliveries(self) -> AsyncIterator[MemoryDelivery]:
        self._require_connected()
        queue = self._queues.get(self._topology.queue)
        if queue is None:
            raise ChannelUnavailable("Queue not declared")
        queue.consumers += 1
        try:
            while True:
                # Let other tasks run between deliveries, even when messages are ready.
                await asyncio.sleep(0)
                async with self._cond:
                    await self._cond.wait_for(
                        lambda: not self._connected or self._can_deliver(queue)
                    )
                    if not self._connected:
                        return
                    envelope = queue.ready.popleft()
                    queue.unacked += 1
                yield MemoryDelivery(self, queue, envelope)
        finally:
            queue.consumers -= 1

    async def _settle(self, queue: _MemoryQueue, envelope: _Envelope, requeue: bool) -> None:
        async with self._cond:
            queue.unacked -= 1
            if requeue:
                envelope.redelivered = True
                queue.ready.append(envelope)
            self._cond.notify_all()

    def message_count(self, queue_name: str | None = None) -> int:
        queue = self._queues.get(queue_name or self._topology.queue)
        return len(queue.ready) if queue is not None else 0

    async def queue_info(self) -> dict:
        self._require_connected()
        queue = self._queues[self._topology.queue]
        return {
            "queue": queue.name,
            "messageCount": len(queue.ready),
            "consumerCount": queue.consumers,
        }

    def status(self) -> dict:
        return {
            "status": "connected" if self._connected else "disconnected",
            "url": self.url,
        }
