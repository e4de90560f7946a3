"""TrueTouch wire frame definitions.

Every frame starts with a command byte followed by a big-endian 32-bit
finger bitset. The remaining bytes depend on the command:

    SOLENOID_WRITE  [cmd:1][bitset:4][gpio level:1]      6 bytes
    SOLENOID_PULSE  [cmd:1][bitset:4][duration ms:4]     9 bytes
    ERM_SET         [cmd:1][bitset:4][intensity:1]       6 bytes
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from ..errors import FrameFormatError


class CommandId(IntEnum):
    """Command byte values understood by the glove firmware."""
    SOLENOID_WRITE = 0x01  # Digital write to the given fingers' solenoids
    SOLENOID_PULSE = 0x02  # Pulse the given fingers' solenoids for some milliseconds
    ERM_SET = 0x03         # Set PWM intensity on the given fingers' ERM motors


class GpioLevel(IntEnum):
    """Solenoid output level carried by SOLENOID_WRITE."""
    LOW = 0
    HIGH = 1


HEADER_SIZE = 5  # command + bitset

FRAME_SIZES = {
    CommandId.SOLENOID_WRITE: 6,
    CommandId.SOLENOID_PULSE: 9,
    CommandId.ERM_SET: 6,
}


@dataclass(frozen=True)
class WireFrame:
    """One complete protocol message, ready to write to the glove.

    Attributes:
        data: Encoded frame bytes
    """
    data: bytes

    def __post_init__(self):
        if not isinstance(self.data, bytes):
            raise FrameFormatError(f"Frame data must be bytes, got {type(self.data).__name__}")
        if not self.data:
            raise FrameFormatError("Frame is empty")
        try:
            command = CommandId(self.data[0])
        except ValueError:
            raise FrameFormatError(f"Unknown command byte 0x{self.data[0]:02X}") from None
        expected = FRAME_SIZES[command]
        if len(self.data) != expected:
            raise FrameFormatError(
                f"{command.name} frame must be {expected} bytes, got {len(self.data)}"
            )

    @property
    def command(self) -> CommandId:
        return CommandId(self.data[0])

    @property
    def bitset(self) -> int:
        return int.from_bytes(self.data[1:HEADER_SIZE], "big")

    def hex(self) -> str:
        """Space separated upper-case hex dump, e.g. '01 00 00 00 12 01'."""
        return " ".join(f"{byte:02X}" for byte in self.data)

    def __bytes__(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)
