"""Protocol layer for the TrueTouch binary command set."""

from .coalescer import PendingSnapshot, UpdateCoalescer
from .encoder import FrameEncoder
from .frames import CommandId, GpioLevel, WireFrame

__all__ = [
    "CommandId",
    "GpioLevel",
    "WireFrame",
    "FrameEncoder",
    "PendingSnapshot",
    "UpdateCoalescer",
]
