"""Transport layer for TrueTouch glove communication."""

from .base import TransportAdapter
from .ble import BleakTransport

__all__ = ["TransportAdapter", "BleakTransport"]
