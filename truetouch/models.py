"""Data models shared by the connection, protocol and transport layers.

Values that cross thread boundaries (device and service descriptions,
inbound notifications) are frozen dataclasses. ConnectionContext is the
one mutable record and is only handed out as a copy.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

from .errors import TrueTouchError


class Finger(IntEnum):
    """Actuator positions on the glove.

    The value is the bit position the glove firmware uses in finger bitsets,
    so it must never be renumbered.
    """
    THUMB = 0
    INDEX = 1
    MIDDLE = 2
    RING = 3
    PINKY = 4
    PALM = 5

    @property
    def bit(self) -> int:
        """Mask for this finger in a wire bitset."""
        return 1 << self.value

    @classmethod
    def from_name(cls, name: str) -> Finger:
        """Look up a finger by name, ignoring case and surrounding whitespace."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown finger: {name!r}") from None


# Finger identifiers, in bit order
FINGER_NAMES = tuple(finger.name.lower() for finger in Finger)


class UpdateType(Enum):
    """Kinds of per-finger update an application can request."""
    ACTUATE_SOLENOID = "actuate_solenoid"
    RELEASE_SOLENOID = "release_solenoid"
    PULSE_SOLENOID = "pulse_solenoid"
    SET_ERM = "set_erm"


class ConnectionState(Enum):
    """Lifecycle of the link to the glove."""
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ScanStatus(Enum):
    """Outcome of polling a discovery stream."""
    AVAILABLE = "available"  # an item was returned
    FINISHED = "finished"    # the stream is exhausted
    PENDING = "pending"      # nothing yet, poll again later


@dataclass(frozen=True)
class DeviceInfo:
    """A device seen during a scan.

    Attributes:
        id: Transport-specific identifier (BLE address on most platforms)
        name: Advertised name, empty if the device did not advertise one
    """
    id: str
    name: str = ""


@dataclass(frozen=True)
class ServiceInfo:
    """A GATT service reported by service discovery.

    Attributes:
        uuid: Service UUID as reported by the platform, possibly wrapped in braces
    """
    uuid: str

    @property
    def normalized_uuid(self) -> str:
        """UUID without brace decoration, lowercased."""
        return self.uuid.replace("{", "").replace("}", "").strip().lower()


@dataclass(frozen=True)
class InboundData:
    """A notification payload received from the glove.

    Attributes:
        device_id: Device the payload came from
        characteristic_uuid: Characteristic that notified
        data: Raw payload bytes
        timestamp: Local time the payload was received
    """
    device_id: str
    characteristic_uuid: str
    data: bytes
    timestamp: float = field(default_factory=time.time)


@dataclass
class ConnectionContext:
    """What the state machine currently knows about the link.

    Attributes:
        state: Current connection state
        device: Device found by the last successful scan, if any
        error: Error waiting to be surfaced by the ERROR state
    """
    state: ConnectionState = ConnectionState.IDLE
    device: Optional[DeviceInfo] = None
    error: Optional[TrueTouchError] = None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def copy(self) -> ConnectionContext:
        return ConnectionContext(state=self.state, device=self.device, error=self.error)
