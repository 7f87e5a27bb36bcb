"""X-ray server: core internal data models.

These are plain dataclasses with no framework dependencies.
Wire JSON and store documents are converted to/from these at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Document field name -> dataclass attribute, for the camelCase store/API form.
RECORD_FIELDS = {
    "deviceId": "device_id",
    "timestamp": "timestamp",
    "data": "data",
    "dataLength": "data_length",
    "dataVolume": "data_volume",
    "averageSpeed": "average_speed",
    "maxSpeed": "max_speed",
    "minSpeed": "min_speed",
    "coordinates": "coordinates",
}


@dataclass(frozen=True)
class Sample:
    """One telemetry point: offset from the batch start plus [lat, lng, speed]."""
    relative_ts: int
    position: tuple[float | None, ...]

    def _component(self, index: int) -> float | None:
        if index < len(self.position):
            return self.position[index]
        return None

    @property
    def latitude(self) -> float | None:
        return self._component(0)

    @property
    def longitude(self) -> float | None:
        return self._component(1)

    @property
    def speed(self) -> float | None:
        return self._component(2)

    def to_wire(self) -> list:
        return [self.relative_ts, list(self.position)]


@dataclass(frozen=True)
class Reading:
    """One batch of device telemetry as carried on the broker."""
    device_id: str
    samples: tuple[Sample, ...] = ()
    collected_at: int = 0

    def to_wire(self) -> dict:
        return {
            "deviceId": self.device_id,
            "data": [s.to_wire() for s in self.samples],
            "time": self.collected_at,
        }


@dataclass
class SignalRecord:
    """Metric-enriched form of a Reading, as handed to the store."""
    device_id: str
    timestamp: int
    data: list = field(default_factory=list)
    data_length: int = 0
    data_volume: int = 0
    average_speed: float = 0.0
    max_speed: float = 0.0
    min_speed: float = 0.0
    coordinates: tuple[float, float] | None = None

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "deviceId": self.device_id,
            "timestamp": self.timestamp,
            "data": [list(point) for point in self.data],
            "dataLength": self.data_length,
            "dataVolume": self.data_volume,
            "averageSpeed": self.average_speed,
            "maxSpeed": self.max_speed,
            "minSpeed": self.min_speed,
            "coordinates": list(self.coordinates) if self.coordinates is not None else None,
        }
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> SignalRecord:
        kwargs = {attr: doc[key] for key, attr in RECORD_FIELDS.items() if doc.get(key) is not None}
        if "coordinates" in kwargs:
            kwargs["coordinates"] = tuple(kwargs["coordinates"])
        return cls(**kwargs)


@dataclass
class StoredSignal:
    """A SignalRecord as held by the store: id and lifecycle timestamps added."""
    id: str
    record: SignalRecord
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        out = {"id": self.id}
        out.update(self.record.to_document())
        out["createdAt"] = self.created_at.isoformat()
        out["updatedAt"] = self.updated_at.isoformat()
        return out


@dataclass(frozen=True)
class SignalFilter:
    device_id: str | None = None
    start_time: int | None = None
    end_time: int | None = None
    limit: int | None = None
    skip: int | None = None

    @property
    def has_time_range(self) -> bool:
        # Both bounds must be given; a single bound disables the range filter.
        return self.start_time is not None and self.end_time is not None


@dataclass(frozen=True)
class SignalStatistics:
    total_signals: int = 0
    total_devices: int = 0
    average_data_length: float = 0
    average_data_volume: float = 0
    average_speed: float = 0
    max_speed: float = 0
    min_speed: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSignals": self.total_signals,
            "totalDevices": self.total_devices,
            "averageDataLength": self.average_data_length,
            "averageDataVolume": self.average_data_volume,
            "averageSpeed": self.average_speed,
            "maxSpeed": self.max_speed,
            "minSpeed": self.min_speed,
        }


def normalize_record(record: SignalRecord) -> SignalRecord:
    """Apply the store-side consistency rules to a record, in place.

    dataVolume always tracks dataLength * 3, and coordinates are derived
    from the raw points when the caller did not provide them.
    """
    if record.data_length and record.data_volume != record.data_length * 3:
        record.data_volume = record.data_length * 3

    if record.coordinates is None and record.data:
        located = [point[1] for point in record.data
                   if len(point[1]) >= 2 and point[1][0] is not None and point[1][1] is not None]
        if located:
            record.coordinates = (
                sum(p[0] for p in located) / len(located),
                sum(p[1] for p in located) / len(located),
            )

    return record
