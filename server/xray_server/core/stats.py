"""Ingest statistics and active-device tracking.

Tracks in-memory pipeline counters and a sliding window of devices whose
readings were recently consumed. No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass
class DeviceActivity:
    """Tracks a single device's recent activity."""
    last_seen: float          # time.monotonic() timestamp
    readings: int = 0
    samples: int = 0


class IngestStats:
    """Thread-safe pipeline counters with active-device tracking.

    A device is "active" if a reading from it was consumed within
    ``active_window_seconds`` (default 120s).
    """

    def __init__(self, active_window_seconds: float = 120.0) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()
        self._active_window = active_window_seconds

        # Counters
        self.readings_published: int = 0
        self.bytes_published: int = 0
        self.publish_errors: int = 0
        self.readings_consumed: int = 0
        self.readings_stored: int = 0
        self.decode_failures: int = 0
        self.handler_failures: int = 0
        self.redeliveries: int = 0

        # Device tracking: device_id → DeviceActivity
        self._devices: dict[str, DeviceActivity] = {}

    def record_published(self, size_bytes: int) -> None:
        with self._lock:
            self.readings_published += 1
            self.bytes_published += size_bytes

    def record_publish_error(self) -> None:
        with self._lock:
            self.publish_errors += 1

    def record_consumed(self, device_id: str, sample_count: int, *, redelivered: bool = False) -> None:
        """Record that a reading was decoded, handled and acked."""
        now = time.monotonic()
        with self._lock:
            self.readings_consumed += 1
            if redelivered:
                self.redeliveries += 1
            dev = self._devices.get(device_id)
            if dev is None:
                self._devices[device_id] = DeviceActivity(
                    last_seen=now, readings=1, samples=sample_count,
                )
            else:
                dev.last_seen = now
                dev.readings += 1
                dev.samples += sample_count

    def record_stored(self, count: int = 1) -> None:
        with self._lock:
            self.readings_stored += count

    def record_decode_failure(self) -> None:
        with self._lock:
            self.decode_failures += 1

    def record_handler_failure(self) -> None:
        with self._lock:
            self.handler_failures += 1

    def _prune_stale_devices(self, now: float) -> None:
        """Remove devices not seen within the active window. Caller holds lock."""
        cutoff = now - self._active_window
        stale = [did for did, dev in self._devices.items() if dev.last_seen < cutoff]
        for did in stale:
            del self._devices[did]

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        now_mono = time.monotonic()
        with self._lock:
            self._prune_stale_devices(now_mono)

            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "readings_published": self.readings_published,
                "bytes_published": self.bytes_published,
                "publish_errors": self.publish_errors,
                "readings_consumed": self.readings_consumed,
                "readings_stored": self.readings_stored,
                "decode_failures": self.decode_failures,
                "handler_failures": self.handler_failures,
                "redeliveries": self.redeliveries,
                "active_devices": {
                    "total": len(self._devices),
                    "samples": sum(dev.samples for dev in self._devices.values()),
                    "window_seconds": self._active_window,
                },
            }
