"""Wire codec for Readings carried on the broker.

Payload is UTF-8 JSON:
    {"deviceId": str, "data": [[ts, [lat, lng, speed]], ...], "time": ms}
"""

from __future__ import annotations

import json
import math
from numbers import Real

from xray_server.core.errors import DecodeError
from xray_server.core.models import Reading, Sample


def encode_reading(reading: Reading) -> bytes:
    """Serialize a Reading to compact JSON bytes, keys in wire order."""
    return json.dumps(reading.to_wire(), separators=(",", ":")).encode("utf-8")


def _is_number(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    # 1e400 parses to inf; plain ints are exact at any size
    return isinstance(value, int) or math.isfinite(value)


def _reject_constant(name: str) -> float:
    raise DecodeError(f"non-finite number {name} is not valid JSON")


def _parse_sample(raw: object, index: int) -> Sample:
    if not isinstance(raw, list) or len(raw) != 2:
        raise DecodeError(f"data[{index}] must be a [timestamp, position] pair")
    ts, position = raw
    if not _is_number(ts):
        raise DecodeError(f"data[{index}] timestamp must be a number")
    if not isinstance(position, list):
        raise DecodeError(f"data[{index}] position must be an array")
    for component in position:
        if component is not None and not _is_number(component):
            raise DecodeError(f"data[{index}] position components must be numbers")
    return Sample(relative_ts=int(ts), position=tuple(position))


def parse_reading(body: object) -> Reading:
    """Build a Reading from an already-parsed JSON value."""
    if not isinstance(body, dict):
        raise DecodeError("payload must be a JSON object")

    device_id = body.get("deviceId")
    if not isinstance(device_id, str) or not device_id:
        raise DecodeError("deviceId must be a non-empty string")

    data = body.get("data")
    if not isinstance(data, list):
        raise DecodeError("data must be an array")

    time_ms = body.get("time")
    if not _is_number(time_ms):
        raise DecodeError("time must be a number")

    samples = tuple(_parse_sample(raw, i) for i, raw in enumerate(data))
    return Reading(device_id=device_id, samples=samples, collected_at=int(time_ms))


def decode_reading(payload: bytes) -> Reading:
    """Decode a broker payload. Raises DecodeError on any malformed input."""
    try:
        body = json.loads(payload, parse_constant=_reject_constant)
    # ValueError also covers bad UTF-8 and ints past the digit limit
    except (ValueError, RecursionError) as exc:
        raise DecodeError(f"invalid JSON: {exc}") from exc
    return parse_reading(body)
