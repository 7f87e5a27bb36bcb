"""Broker interface (port) for reading transport."""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Protocol


@dataclass(frozen=True)
class Topology:
    """Exchange/queue layout: one fan-out exchange feeding one queue."""
    exchange: str = "x-ray-exchange"
    queue: str = "x-ray-queue"
    routing_key: str = ""  # ignored by fan-out, kept for the binding
    durable: bool = True


class Delivery(Protocol):
    """One message handed to a consumer, awaiting ack or nack."""

    body: bytes
    redelivered: bool

    async def ack(self) -> None: ...

    async def nack(self, requeue: bool = True) -> None: ...


class MessageBroker(Protocol):
    """Port: owns the broker connection, channel, and topology."""

    @property
    def url(self) -> str: ...

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def ensure_topology(self) -> None: ...

    async def publish(self, body: bytes) -> None: ...

    def deliveries(self) -> AsyncIterator[Delivery]: ...

    async def queue_info(self) -> dict: ...

    def status(self) -> dict: ...
