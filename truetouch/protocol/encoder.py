"""Frame encoder for TrueTouch commands.

Converts finger sets and coalesced snapshots into wire frames.
Pure functions with no side effects.
"""
from __future__ import annotations

import struct
from typing import Iterable, List

from ..config import validate_pulse_duration
from ..models import Finger
from .coalescer import PendingSnapshot, validate_intensity
from .frames import CommandId, GpioLevel, WireFrame

_WRITE_FORMAT = ">BIB"
_PULSE_FORMAT = ">BII"
_ERM_FORMAT = ">BIB"


class FrameEncoder:
    """Encoder for the TrueTouch binary protocol."""

    @staticmethod
    def finger_bitset(fingers: Iterable[Finger]) -> int:
        """Build the 32-bit finger mask.

        Examples:
            >>> FrameEncoder.finger_bitset([Finger.INDEX, Finger.PINKY])
            18
        """
        bitset = 0
        for finger in fingers:
            bitset |= Finger(finger).bit
        return bitset

    @staticmethod
    def encode_solenoid_write(fingers: Iterable[Finger], level: GpioLevel) -> WireFrame:
        """Encode a digital write to the given fingers' solenoids.

        Protocol: [0x01][bitset:4][level:1]
        """
        bitset = FrameEncoder._require_bitset(fingers)
        data = struct.pack(_WRITE_FORMAT, CommandId.SOLENOID_WRITE, bitset, GpioLevel(level))
        return WireFrame(data)

    @staticmethod
    def encode_solenoid_pulse(fingers: Iterable[Finger], duration_ms: int) -> WireFrame:
        """Encode a timed pulse of the given fingers' solenoids.

        Protocol: [0x02][bitset:4][duration_ms:4]
        """
        bitset = FrameEncoder._require_bitset(fingers)
        duration_ms = validate_pulse_duration(duration_ms)
        data = struct.pack(_PULSE_FORMAT, CommandId.SOLENOID_PULSE, bitset, duration_ms)
        return WireFrame(data)

    @staticmethod
    def encode_erm_set(fingers: Iterable[Finger], intensity: int) -> WireFrame:
        """Encode an ERM intensity for the given fingers.

        Protocol: [0x03][bitset:4][intensity:1]
        """
        bitset = FrameEncoder._require_bitset(fingers)
        intensity = validate_intensity(intensity)
        data = struct.pack(_ERM_FORMAT, CommandId.ERM_SET, bitset, intensity)
        return WireFrame(data)

    @staticmethod
    def encode_snapshot(snapshot: PendingSnapshot, pulse_duration_ms: int) -> List[WireFrame]:
        """Encode every non-empty bucket of a snapshot, in send order.

        Order: actuate write, release write, pulse, then one ERM frame per
        distinct intensity in ascending order. The protocol carries a single
        intensity per message, so different intensities are never merged.
        """
        frames: List[WireFrame] = []

        if snapshot.actuate:
            frames.append(FrameEncoder.encode_solenoid_write(snapshot.actuate, GpioLevel.HIGH))

        if snapshot.release:
            frames.append(FrameEncoder.encode_solenoid_write(snapshot.release, GpioLevel.LOW))

        if snapshot.pulse:
            frames.append(FrameEncoder.encode_solenoid_pulse(snapshot.pulse, pulse_duration_ms))

        for intensity in sorted(snapshot.erm):
            fingers = snapshot.erm[intensity]
            if fingers:
                frames.append(FrameEncoder.encode_erm_set(fingers, intensity))

        return frames

    @staticmethod
    def _require_bitset(fingers: Iterable[Finger]) -> int:
        bitset = FrameEncoder.finger_bitset(fingers)
        if bitset == 0:
            raise ValueError("At least one finger is required")
        return bitset
