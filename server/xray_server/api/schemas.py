"""Request bodies and response helpers shared by the API routers."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Optional

from fastapi import HTTPException
from pydantic import BaseModel, Field

from xray_server.core.errors import (
    ChannelUnavailable,
    NotFound,
    PersistenceError,
    UnknownDevice,
    XRayError,
)
from xray_server.core.models import Reading, Sample, SignalRecord

Position = Annotated[list[float], Field(min_length=3, max_length=3)]
DataPoint = tuple[int, Position]


class ReadingIn(BaseModel):
    deviceId: str = Field(min_length=1)
    data: list[DataPoint]
    time: int

    def to_reading(self) -> Reading:
        return Reading(
            device_id=self.deviceId,
            samples=tuple(Sample(ts, tuple(pos)) for ts, pos in self.data),
            collected_at=self.time,
        )


class CreateSignalIn(BaseModel):
    deviceId: str = Field(min_length=1)
    timestamp: int
    data: list[DataPoint] = Field(min_length=1)
    dataLength: int = Field(ge=1)
    dataVolume: int = Field(ge=3)
    averageSpeed: float = Field(default=0, ge=0)
    maxSpeed: float = Field(default=0, ge=0)
    minSpeed: float = Field(default=0, ge=0)
    coordinates: Optional[Annotated[list[float], Field(min_length=2, max_length=2)]] = None

    def to_record(self) -> SignalRecord:
        return SignalRecord(
            device_id=self.deviceId,
            timestamp=self.timestamp,
            data=[[ts, list(pos)] for ts, pos in self.data],
            data_length=self.dataLength,
            data_volume=self.dataVolume,
            average_speed=self.averageSpeed,
            max_speed=self.maxSpeed,
            min_speed=self.minSpeed,
            coordinates=tuple(self.coordinates) if self.coordinates else None,
        )


class UpdateSignalIn(BaseModel):
    deviceId: Optional[str] = Field(default=None, min_length=1)
    timestamp: Optional[int] = None
    data: Optional[list[DataPoint]] = None
    dataLength: Optional[int] = Field(default=None, ge=1)
    dataVolume: Optional[int] = Field(default=None, ge=3)
    averageSpeed: Optional[float] = Field(default=None, ge=0)
    maxSpeed: Optional[float] = Field(default=None, ge=0)
    minSpeed: Optional[float] = Field(default=None, ge=0)
    coordinates: Optional[Annotated[list[float], Field(min_length=2, max_length=2)]] = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude_none=True, mode="json")


class SendSingleIn(BaseModel):
    deviceId: str


class SendBulkIn(BaseModel):
    deviceIds: list[str]
    count: int = Field(default=1, ge=1, le=100)


class SendRandomIn(BaseModel):
    count: int = Field(default=1, ge=1, le=100)


class StartSimulationIn(BaseModel):
    deviceId: str
    interval: Optional[int] = Field(default=None, ge=1000, le=60000)  # None: configured default


class StopSimulationIn(BaseModel):
    deviceId: Optional[str] = None  # None stops every simulation


def success_response(message: str, data: Any = None) -> dict:
    return {
        "success": True,
        "message": message,
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def http_error(exc: XRayError) -> HTTPException:
    """Map a core error onto an HTTP status."""
    if isinstance(exc, (NotFound, UnknownDevice)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ChannelUnavailable):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))
