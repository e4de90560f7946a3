"""Coalescer that accumulates finger update requests between send cycles.

Maintains mutable buckets internally but hands out immutable snapshots.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Set

from ..models import Finger, UpdateType

MAX_ERM_INTENSITY = 255


@dataclass(frozen=True)
class PendingSnapshot:
    """Immutable copy of everything queued since the last send cycle.

    Attributes:
        actuate: Fingers whose solenoid should be driven high
        release: Fingers whose solenoid should be driven low
        pulse: Fingers whose solenoid should be pulsed
        erm: Mapping of ERM intensity to the fingers requesting it
    """
    actuate: FrozenSet[Finger] = frozenset()
    release: FrozenSet[Finger] = frozenset()
    pulse: FrozenSet[Finger] = frozenset()
    erm: Dict[int, FrozenSet[Finger]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.actuate or self.release or self.pulse or self.erm)


class UpdateCoalescer:
    """Merges per-finger requests so only the latest intent per category survives.

    A finger sits in at most one of the actuate, release and pulse buckets,
    and under at most one ERM intensity. Requests may come from any thread;
    the lock only guards the buckets and is never held while sending.
    """

    def __init__(self):
        self._actuate: Set[Finger] = set()
        self._release: Set[Finger] = set()
        self._pulse: Set[Finger] = set()
        self._erm: Dict[int, Set[Finger]] = {}
        self._lock = threading.Lock()

    def request_update(
        self,
        finger: Finger,
        kind: UpdateType,
        value: Optional[int] = None,
    ) -> bool:
        """Queue an update for one finger.

        Args:
            finger: Finger to update
            kind: What to do with it
            value: ERM intensity (0-255), required for SET_ERM and ignored otherwise

        Returns:
            True if pending state changed, False if the request was already queued

        Raises:
            ValueError: On an unknown finger, kind or intensity
        """
        if not isinstance(finger, Finger):
            raise ValueError(f"Unknown finger: {finger!r}")

        if kind == UpdateType.SET_ERM:
            intensity = validate_intensity(value)
            with self._lock:
                return self._set_erm(finger, intensity)

        if kind == UpdateType.ACTUATE_SOLENOID:
            target, others = self._actuate, (self._release, self._pulse)
        elif kind == UpdateType.RELEASE_SOLENOID:
            target, others = self._release, (self._actuate, self._pulse)
        elif kind == UpdateType.PULSE_SOLENOID:
            target, others = self._pulse, (self._actuate, self._release)
        else:
            raise ValueError(f"Unknown update type: {kind!r}")

        with self._lock:
            if finger in target:
                return False
            for bucket in others:
                bucket.discard(finger)
            target.add(finger)
            return True

    def _set_erm(self, finger: Finger, intensity: int) -> bool:
        for key, fingers in list(self._erm.items()):
            if finger not in fingers:
                continue
            if key == intensity:
                return False
            fingers.discard(finger)
            if not fingers:
                del self._erm[key]
        self._erm.setdefault(intensity, set()).add(finger)
        return True

    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._actuate or self._release or self._pulse or self._erm)

    def take_snapshot_and_clear(self) -> PendingSnapshot:
        """Copy out all pending updates and empty the buckets in one step."""
        with self._lock:
            snapshot = PendingSnapshot(
                actuate=frozenset(self._actuate),
                release=frozenset(self._release),
                pulse=frozenset(self._pulse),
                erm={key: frozenset(fingers) for key, fingers in self._erm.items()},
            )
            self._actuate.clear()
            self._release.clear()
            self._pulse.clear()
            self._erm.clear()
        return snapshot


def validate_intensity(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"ERM intensity must be an integer, got {value!r}")
    if not 0 <= value <= MAX_ERM_INTENSITY:
        raise ValueError(f"ERM intensity out of range: {value}")
    return value
