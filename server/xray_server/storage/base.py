"""Storage interface (port) for persisting signal records."""

from __future__ import annotations

from typing import Any, Protocol, TYPE_CHECKING

from xray_server.core.models import RECORD_FIELDS

if TYPE_CHECKING:
    from xray_server.core.models import (
        SignalFilter,
        SignalRecord,
        SignalStatistics,
        StoredSignal,
    )


class SignalStore(Protocol):
    """Port: CRUD and aggregate queries over signal records."""

    async def create(self, record: SignalRecord) -> StoredSignal: ...

    async def find_all(self, filter: SignalFilter | None = None) -> list[StoredSignal]: ...

    async def find_by_id(self, record_id: str) -> StoredSignal: ...

    async def find_by_device(self, device_id: str, filter: SignalFilter | None = None) -> list[StoredSignal]: ...

    async def update(self, record_id: str, fields: dict[str, Any]) -> StoredSignal: ...

    async def delete(self, record_id: str) -> None: ...

    async def statistics(self, device_id: str | None = None) -> SignalStatistics: ...

    async def close(self) -> None: ...


def round_stat(value: float | None) -> float:
    """Round an aggregated average to 2 decimal places."""
    if value is None:
        return 0
    return round(value, 2)


def prepare_update(fields: dict[str, Any]) -> dict[str, Any]:
    """Validate a partial update and keep the derived counts consistent.

    ``fields`` uses document (camelCase) names. New raw data implies a new
    dataLength, and dataVolume always follows dataLength.
    """
    unknown = set(fields) - set(RECORD_FIELDS)
    if unknown:
        raise ValueError(f"unknown signal fields: {sorted(unknown)}")

    changes = dict(fields)
    if "data" in changes and "dataLength" not in changes:
        changes["dataLength"] = len(changes["data"])
    if changes.get("dataLength"):
        changes["dataVolume"] = changes["dataLength"] * 3
    return changes
