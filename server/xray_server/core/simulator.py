"""Device simulator: replays catalog tracks onto the broker.

Generates synthetic reading traffic independent of real devices, either
as one-shot batches (the whole recorded track per message) or as a
continuous per-device stream of one sample per tick.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import TYPE_CHECKING

import structlog

from xray_server.core.errors import UnknownDevice
from xray_server.core.models import Reading

if TYPE_CHECKING:
    from xray_server.core.catalog import DeviceTrack
    from xray_server.core.publisher import Publisher

log = structlog.get_logger()


def _now_ms() -> int:
    return int(time.time() * 1000)


class SimulationHandle:
    """Cancels one continuous simulation. Calling the handle stops it."""

    def __init__(self, simulator: DeviceSimulator, device_id: str, task: asyncio.Task) -> None:
        self._simulator = simulator
        self.device_id = device_id
        self.task = task

    @property
    def running(self) -> bool:
        return not self.task.done()

    def cancel(self) -> None:
        self.task.cancel()
        self._simulator._unregister(self)

    def __call__(self) -> None:
        self.cancel()


class DeviceSimulator:
    """Publishes catalog tracks through a Publisher."""

    def __init__(
        self,
        publisher: Publisher,
        catalog: dict[str, DeviceTrack],
        pacing_seconds: float = 0.1,
    ) -> None:
        self._publisher = publisher
        self._catalog = catalog
        self._pacing = pacing_seconds
        self._simulations: dict[str, SimulationHandle] = {}

    def list_devices(self) -> list[str]:
        return list(self._catalog)

    def active_simulations(self) -> list[str]:
        return list(self._simulations)

    def _track(self, device_id: str) -> DeviceTrack:
        track = self._catalog.get(device_id)
        if track is None:
            raise UnknownDevice(device_id)
        return track

    async def send_once(self, device_id: str) -> None:
        """Publish the device's entire track, stamped now."""
        track = self._track(device_id)
        reading = Reading(device_id=device_id, samples=track.samples, collected_at=_now_ms())
        await self._publisher.publish(reading)
        log.info("simulator_sent", device=device_id, samples=len(track.samples))

    async def send_bulk(self, device_ids: list[str], count: int = 1) -> int:
        """Send ``count`` messages per device, device by device.

        Unknown devices are skipped. Returns the number of messages sent.
        """
        sent = 0
        for device_id in device_ids:
            if device_id not in self._catalog:
                log.warning("simulator_device_skipped", device=device_id)
                continue
            for _ in range(count):
                await self.send_once(device_id)
                sent += 1
                await asyncio.sleep(self._pacing)
        return sent

    async def send_random(self, count: int = 1) -> int:
        """Send ``count`` full tracks from devices picked uniformly at random."""
        device_ids = self.list_devices()
        if not device_ids:
            log.warning("simulator_catalog_empty")
            return 0
        for _ in range(count):
            await self.send_once(random.choice(device_ids))
            await asyncio.sleep(self._pacing)
        return count

    def start_continuous(self, device_id: str, interval_ms: int = 5000) -> SimulationHandle:
        """Publish one sample per tick, cycling through the device's track.

        A simulation already running for the device is cancelled and
        replaced. Must be called from within the running event loop.
        """
        track = self._track(device_id)

        previous = self._simulations.get(device_id)
        if previous is not None:
            log.info("simulation_replaced", device=device_id)
            previous.cancel()

        task = asyncio.create_task(
            self._run_continuous(device_id, track, interval_ms / 1000),
            name=f"simulate-{device_id}",
        )
        handle = SimulationHandle(self, device_id, task)
        self._simulations[device_id] = handle
        log.info("simulation_started", device=device_id, interval_ms=interval_ms)
        return handle

    async def _run_continuous(self, device_id: str, track: DeviceTrack, interval: float) -> None:
        cursor = 0
        while True:
            await asyncio.sleep(interval)
            batch = (track.samples[cursor % len(track.samples)],) if track.samples else ()
            reading = Reading(device_id=device_id, samples=batch, collected_at=_now_ms())
            try:
                # Shielded: stopping the simulation must not abort a publish in flight.
                await asyncio.shield(self._publisher.publish(reading))
            except asyncio.CancelledError:
                raise
            except Exception:
                log.error("simulation_tick_failed", device=device_id, index=cursor, exc_info=True)
                continue
            log.debug("simulation_tick", device=device_id, index=cursor)
            cursor += 1

    def _unregister(self, handle: SimulationHandle) -> None:
        if self._simulations.get(handle.device_id) is handle:
            del self._simulations[handle.device_id]
            log.info("simulation_stopped", device=handle.device_id)

    def stop(self, device_id: str) -> bool:
        handle = self._simulations.get(device_id)
        if handle is None:
            return False
        handle.cancel()
        return True

    def stop_all(self) -> int:
        handles = list(self._simulations.values())
        for handle in handles:
            handle.cancel()
        return len(handles)
