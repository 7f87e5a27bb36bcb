"""Signal processor: turns consumed readings into stored signal records.

This is the core business logic of the ingest path. It depends on the
SignalStore protocol, not a concrete backend.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from xray_server.core.metrics import compute_metrics

if TYPE_CHECKING:
    from xray_server.core.models import Reading, StoredSignal
    from xray_server.core.stats import IngestStats
    from xray_server.storage.base import SignalStore

log = structlog.get_logger()


class SignalProcessor:
    """Computes metrics for a reading and writes the resulting record."""

    def __init__(self, store: SignalStore, stats: IngestStats) -> None:
        self._store = store
        self._stats = stats

    async def process_reading(self, reading: Reading) -> StoredSignal:
        """Store one reading. Store errors propagate so the message is requeued."""
        record = compute_metrics(reading)
        stored = await self._store.create(record)
        self._stats.record_stored()
        log.info("signal_stored", device=reading.device_id, record_id=stored.id,
                 data_length=record.data_length,
                 average_speed=record.average_speed)
        return stored
