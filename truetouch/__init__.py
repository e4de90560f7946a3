"""TrueTouch SDK - BLE host driver for the TrueTouch haptic glove."""

from .ack_monitor import AckMonitor
from .config import GloveConfig
from .connection import ConnectionStateMachine
from .dispatcher import FrameDispatcher
from .errors import (
    ConnectionLostError,
    DeviceNotFoundError,
    FrameFormatError,
    InvalidTransitionError,
    ServiceNotFoundError,
    TransmissionError,
    TransportError,
    TrueTouchError,
)
from .glove import TrueTouchGlove
from .models import (
    FINGER_NAMES,
    ConnectionContext,
    ConnectionState,
    DeviceInfo,
    Finger,
    InboundData,
    ScanStatus,
    ServiceInfo,
    UpdateType,
)
from .protocol import FrameEncoder, PendingSnapshot, UpdateCoalescer, WireFrame
from .transport import BleakTransport, TransportAdapter

__all__ = [
    "AckMonitor",
    "GloveConfig",
    "ConnectionStateMachine",
    "FrameDispatcher",
    "TrueTouchGlove",
    "TrueTouchError",
    "DeviceNotFoundError",
    "ServiceNotFoundError",
    "TransportError",
    "TransmissionError",
    "ConnectionLostError",
    "FrameFormatError",
    "InvalidTransitionError",
    "FINGER_NAMES",
    "Finger",
    "UpdateType",
    "ConnectionState",
    "ConnectionContext",
    "ScanStatus",
    "DeviceInfo",
    "ServiceInfo",
    "InboundData",
    "FrameEncoder",
    "PendingSnapshot",
    "UpdateCoalescer",
    "WireFrame",
    "TransportAdapter",
    "BleakTransport",
]
