"""Error taxonomy shared by the broker, storage, and simulator layers."""

from __future__ import annotations


class XRayError(Exception):
    """Base class for all errors raised by the server core."""


class TopologyConflict(XRayError):
    """Exchange or queue already exists with different parameters.

    Fatal: needs an operator to fix the broker state or the config.
    """


class ChannelUnavailable(XRayError):
    """A broker operation was attempted with no open channel."""


class DecodeError(XRayError):
    """A broker payload could not be decoded into a Reading."""


class PersistenceError(XRayError):
    """The backing store failed to read or write."""


class NotFound(XRayError):
    """No signal record exists with the requested id."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Signal with ID {record_id} not found")
        self.record_id = record_id


class UnknownDevice(XRayError):
    """The simulator catalog has no entry for the requested device."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"Device {device_id} not found in data")
        self.device_id = device_id
