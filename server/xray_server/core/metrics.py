"""Signal metrics: pure transform from a Reading to SignalRecord fields."""

from __future__ import annotations

from xray_server.core.models import Reading, SignalRecord


def compute_metrics(reading: Reading) -> SignalRecord:
    """Compute data length/volume, speed stats and mean coordinates.

    Speeds are taken from every sample that carries a third component;
    coordinates from every sample carrying both lat and lng. Empty sets
    give zeros. No rounding is applied here.
    """
    samples = reading.samples

    data_length = len(samples)
    data_volume = sum(len(s.position) for s in samples)

    speeds = [s.speed for s in samples if s.speed is not None]
    if speeds:
        average_speed = sum(speeds) / len(speeds)
        max_speed = max(speeds)
        min_speed = min(speeds)
    else:
        average_speed = max_speed = min_speed = 0

    points = [
        (s.latitude, s.longitude) for s in samples
        if s.latitude is not None and s.longitude is not None
    ]
    if points:
        coordinates = (
            sum(lat for lat, _ in points) / len(points),
            sum(lng for _, lng in points) / len(points),
        )
    else:
        coordinates = (0, 0)

    return SignalRecord(
        device_id=reading.device_id,
        timestamp=reading.collected_at,
        data=[s.to_wire() for s in samples],
        data_length=data_length,
        data_volume=data_volume,
        average_speed=average_speed,
        max_speed=max_speed,
        min_speed=min_speed,
        coordinates=coordinates,
    )
