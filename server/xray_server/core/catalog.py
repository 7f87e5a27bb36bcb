"""Device catalog for the simulator.

Maps device ids to a recorded track: a fixed sequence of samples plus the
time it was recorded. Loaded from a JSON file shaped like

    {"<deviceId>": {"data": [[ts, [lat, lng, speed]], ...], "time": ms}}

falling back to one built-in sample device.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from xray_server.core.codec import parse_reading
from xray_server.core.errors import DecodeError
from xray_server.core.models import Sample

log = structlog.get_logger()

SAMPLE_DEVICE_ID = "66bb584d4ae73e488c30a072"


@dataclass(frozen=True)
class DeviceTrack:
    samples: tuple[Sample, ...]
    base_time: int


def sample_catalog() -> dict[str, DeviceTrack]:
    """One device with three recorded points near Leipzig."""
    return {
        SAMPLE_DEVICE_ID: DeviceTrack(
            samples=(
                Sample(762, (51.339764, 12.339223833333334, 1.2038000000000002)),
                Sample(1766, (51.33977733333333, 12.339211833333334, 1.531604)),
                Sample(2763, (51.339782, 12.339196166666667, 2.13906)),
            ),
            base_time=int(time.time() * 1000),
        ),
    }


def parse_catalog(raw: object) -> dict[str, DeviceTrack]:
    if not isinstance(raw, dict):
        raise DecodeError("catalog must be a JSON object keyed by device id")
    catalog: dict[str, DeviceTrack] = {}
    for device_id, entry in raw.items():
        if not isinstance(entry, dict):
            raise DecodeError(f"catalog entry {device_id!r} must be an object")
        reading = parse_reading({
            "deviceId": device_id,
            "data": entry.get("data"),
            "time": entry.get("time"),
        })
        catalog[device_id] = DeviceTrack(samples=reading.samples, base_time=reading.collected_at)
    return catalog


def load_catalog(path: str | Path | None) -> dict[str, DeviceTrack]:
    """Load the catalog from ``path``; any problem falls back to the sample device."""
    if path is None:
        return sample_catalog()

    path = Path(path)
    if not path.exists():
        log.warning("catalog_file_missing", path=str(path))
        return sample_catalog()

    try:
        catalog = parse_catalog(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, DecodeError):
        log.error("catalog_load_failed", path=str(path), exc_info=True)
        return sample_catalog()

    log.info("catalog_loaded", path=str(path), devices=len(catalog))
    return catalog
