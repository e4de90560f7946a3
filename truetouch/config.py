"""Connection and protocol settings for a TrueTouch glove.

Defaults match the stock glove firmware, which advertises as "TrueTouch"
and exposes the Nordic UART Service (NUS).
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass

DEVICE_NAME = "TrueTouch"
SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
RX_CHAR_UUID = "6e400002-b5a3-f393-e0a9-e50e24dcca9e"  # Write (host to glove)
TX_CHAR_UUID = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"  # Notify (glove to host)

DEFAULT_PULSE_DURATION_MS = 10
DEFAULT_SEND_INTERVAL = 0.2  # seconds between send cycles
DEFAULT_TICK_INTERVAL = 0.02  # seconds between state machine ticks
DEFAULT_ACK_TIMEOUT = 1.0  # seconds
DEFAULT_SCAN_TIMEOUT = 10.0  # seconds

MAX_PULSE_DURATION_MS = 0xFFFFFFFF


@dataclass(frozen=True)
class GloveConfig:
    """Immutable settings shared by the state machine, dispatcher and transport.

    Attributes:
        device_name: Advertised name to match (case-insensitive)
        service_uuid: Service to look for once the device is found
        rx_char_uuid: Characteristic frames are written to
        tx_char_uuid: Characteristic subscribed to for notifications
        pulse_duration_ms: Initial solenoid pulse duration
        send_interval_s: Period of the send cycle
        tick_interval_s: Period of the state machine tick
        throttle_until_ack: Skip send cycles until the glove acknowledges the last one
        ack_timeout_s: How long to wait for an acknowledgement before giving up on it
        scan_timeout_s: How long a device scan runs before it reports exhaustion
    """
    device_name: str = DEVICE_NAME
    service_uuid: str = SERVICE_UUID
    rx_char_uuid: str = RX_CHAR_UUID
    tx_char_uuid: str = TX_CHAR_UUID
    pulse_duration_ms: int = DEFAULT_PULSE_DURATION_MS
    send_interval_s: float = DEFAULT_SEND_INTERVAL
    tick_interval_s: float = DEFAULT_TICK_INTERVAL
    throttle_until_ack: bool = False
    ack_timeout_s: float = DEFAULT_ACK_TIMEOUT
    scan_timeout_s: float = DEFAULT_SCAN_TIMEOUT

    def __post_init__(self):
        if not self.device_name:
            raise ValueError("device_name must not be empty")
        if not self.service_uuid or not self.rx_char_uuid or not self.tx_char_uuid:
            raise ValueError("service and characteristic UUIDs must not be empty")
        validate_pulse_duration(self.pulse_duration_ms)
        for name in ("send_interval_s", "tick_interval_s", "ack_timeout_s", "scan_timeout_s"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

    def replace(self, **changes) -> GloveConfig:
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)


def validate_pulse_duration(duration_ms: int) -> int:
    """Check that a pulse duration fits the protocol's 32-bit field."""
    if isinstance(duration_ms, bool) or not isinstance(duration_ms, int):
        raise ValueError(f"Pulse duration must be an integer, got {duration_ms!r}")
    if not 0 <= duration_ms <= MAX_PULSE_DURATION_MS:
        raise ValueError(f"Pulse duration out of range: {duration_ms}")
    return duration_ms
