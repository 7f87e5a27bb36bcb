"""In-process SignalStore. Records live in a dict guarded by a lock."""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from threading import Lock
from typing import Any

import structlog

from xray_server.core.errors import NotFound
from xray_server.core.models import (
    SignalFilter,
    SignalRecord,
    SignalStatistics,
    StoredSignal,
    normalize_record,
)
from xray_server.storage.base import prepare_update, round_stat

log = structlog.get_logger()


class MemorySignalStore:
    """SignalStore backed by an insertion-ordered dict."""

    def __init__(self) -> None:
        self._items: dict[str, StoredSignal] = {}
        self._lock = Lock()

    async def create(self, record: SignalRecord) -> StoredSignal:
        now = datetime.now(timezone.utc)
        stored = StoredSignal(
            id=uuid.uuid4().hex[:24],
            record=normalize_record(copy.deepcopy(record)),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self._items[stored.id] = stored
            return copy.deepcopy(stored)

    def _select(self, filter: SignalFilter | None, device_id: str | None = None) -> list[StoredSignal]:
        f = filter or SignalFilter()
        device_id = device_id or f.device_id
        with self._lock:
            items = [
                item for item in self._items.values()
                if (device_id is None or item.record.device_id == device_id)
                and (not f.has_time_range
                     or f.start_time <= item.record.timestamp <= f.end_time)
            ]
            if f.skip:
                items = items[f.skip:]
            if f.limit:
                items = items[:f.limit]
            return copy.deepcopy(items)

    async def find_all(self, filter: SignalFilter | None = None) -> list[StoredSignal]:
        return self._select(filter)

    async def find_by_device(self, device_id: str, filter: SignalFilter | None = None) -> list[StoredSignal]:
        return self._select(filter, device_id=device_id)

    async def find_by_id(self, record_id: str) -> StoredSignal:
        with self._lock:
            item = self._items.get(record_id)
            if item is None:
                raise NotFound(record_id)
            return copy.deepcopy(item)

    async def update(self, record_id: str, fields: dict[str, Any]) -> StoredSignal:
        changes = prepare_update(fields)
        with self._lock:
            item = self._items.get(record_id)
            if item is None:
                raise NotFound(record_id)
            doc = item.record.to_document()
            doc.update(changes)
            item.record = SignalRecord.from_document(doc)
            item.updated_at = datetime.now(timezone.utc)
            return copy.deepcopy(item)

    async def delete(self, record_id: str) -> None:
        with self._lock:
            if self._items.pop(record_id, None) is None:
                raise NotFound(record_id)

    async def statistics(self, device_id: str | None = None) -> SignalStatistics:
        with self._lock:
            records = [
                item.record for item in self._items.values()
                if device_id is None or item.record.device_id == device_id
            ]
        if not records:
            return SignalStatistics()

        n = len(records)
        return SignalStatistics(
            total_signals=n,
            total_devices=len({r.device_id for r in records}),
            average_data_length=round_stat(sum(r.data_length for r in records) / n),
            average_data_volume=round_stat(sum(r.data_volume for r in records) / n),
            average_speed=round_stat(sum(r.average_speed for r in records) / n),
            max_speed=max(r.max_speed for r in records),
            min_speed=min(r.min_speed for r in records),
        )

    async def close(self) -> None:
        log.debug("memory_store_closed", records=len(self._items))
