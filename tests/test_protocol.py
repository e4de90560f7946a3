"""Unit tests for the protocol layer.

Tests verify:
- Coalescer merges and supersedes intents per finger
- Encoder produces the exact wire bytes
- Snapshot encoding order
- WireFrame validation
"""
import threading
import unittest

from truetouch.errors import FrameFormatError
from truetouch.models import Finger, UpdateType
from truetouch.protocol import (
    CommandId,
    FrameEncoder,
    GpioLevel,
    PendingSnapshot,
    UpdateCoalescer,
    WireFrame,
)


class TestUpdateCoalescer(unittest.TestCase):
    """Tests for UpdateCoalescer."""

    def setUp(self):
        self.coalescer = UpdateCoalescer()

    def test_empty(self):
        self.assertFalse(self.coalescer.has_pending())
        self.assertTrue(self.coalescer.take_snapshot_and_clear().is_empty)

    def test_actuate_then_release_supersedes(self):
        """Latest solenoid intent wins."""
        self.coalescer.request_update(Finger.INDEX, UpdateType.ACTUATE_SOLENOID)
        self.coalescer.request_update(Finger.INDEX, UpdateType.RELEASE_SOLENOID)

        snapshot = self.coalescer.take_snapshot_and_clear()
        self.assertEqual(snapshot.actuate, frozenset())
        self.assertEqual(snapshot.release, frozenset({Finger.INDEX}))

    def test_pulse_is_exclusive_with_actuate_and_release(self):
        self.coalescer.request_update(Finger.THUMB, UpdateType.ACTUATE_SOLENOID)
        self.coalescer.request_update(Finger.THUMB, UpdateType.PULSE_SOLENOID)
        self.coalescer.request_update(Finger.RING, UpdateType.PULSE_SOLENOID)
        self.coalescer.request_update(Finger.RING, UpdateType.RELEASE_SOLENOID)

        snapshot = self.coalescer.take_snapshot_and_clear()
        self.assertEqual(snapshot.actuate, frozenset())
        self.assertEqual(snapshot.pulse, frozenset({Finger.THUMB}))
        self.assertEqual(snapshot.release, frozenset({Finger.RING}))

    def test_repeat_request_reports_no_change(self):
        self.assertTrue(self.coalescer.request_update(Finger.INDEX, UpdateType.ACTUATE_SOLENOID))
        self.assertFalse(self.coalescer.request_update(Finger.INDEX, UpdateType.ACTUATE_SOLENOID))

    def test_erm_moves_between_buckets(self):
        """A finger sits under exactly one intensity; empty buckets vanish."""
        self.coalescer.request_update(Finger.THUMB, UpdateType.SET_ERM, 100)
        self.coalescer.request_update(Finger.THUMB, UpdateType.SET_ERM, 200)

        snapshot = self.coalescer.take_snapshot_and_clear()
        self.assertEqual(snapshot.erm, {200: frozenset({Finger.THUMB})})

    def test_erm_same_value_is_idempotent(self):
        self.assertTrue(self.coalescer.request_update(Finger.THUMB, UpdateType.SET_ERM, 100))
        self.assertFalse(self.coalescer.request_update(Finger.THUMB, UpdateType.SET_ERM, 100))
        self.assertEqual(self.coalescer.take_snapshot_and_clear().erm, {100: frozenset({Finger.THUMB})})

    def test_erm_independent_of_solenoid(self):
        self.coalescer.request_update(Finger.INDEX, UpdateType.PULSE_SOLENOID)
        self.coalescer.request_update(Finger.INDEX, UpdateType.SET_ERM, 0)

        snapshot = self.coalescer.take_snapshot_and_clear()
        self.assertEqual(snapshot.pulse, frozenset({Finger.INDEX}))
        self.assertEqual(snapshot.erm, {0: frozenset({Finger.INDEX})})

    def test_snapshot_clears(self):
        self.coalescer.request_update(Finger.INDEX, UpdateType.ACTUATE_SOLENOID)
        self.coalescer.request_update(Finger.PINKY, UpdateType.SET_ERM, 5)
        self.coalescer.take_snapshot_and_clear()

        self.assertFalse(self.coalescer.has_pending())
        self.assertTrue(self.coalescer.take_snapshot_and_clear().is_empty)

    def test_invalid_requests(self):
        with self.assertRaises(ValueError):
            self.coalescer.request_update(1, UpdateType.ACTUATE_SOLENOID)
        with self.assertRaises(ValueError):
            self.coalescer.request_update(Finger.INDEX, "actuate")
        for bad in (None, -1, 256, 1.0, True):
            with self.assertRaises(ValueError):
                self.coalescer.request_update(Finger.INDEX, UpdateType.SET_ERM, bad)
        self.assertFalse(self.coalescer.has_pending())

    def test_concurrent_requests(self):
        """Requests from many threads are all accounted for."""
        def worker(finger):
            for intensity in range(256):
                self.coalescer.request_update(finger, UpdateType.SET_ERM, intensity)

        threads = [threading.Thread(target=worker, args=(f,)) for f in Finger]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snapshot = self.coalescer.take_snapshot_and_clear()
        self.assertEqual(snapshot.erm, {255: frozenset(Finger)})


class TestFrameEncoder(unittest.TestCase):
    """Tests for FrameEncoder wire bytes."""

    def test_finger_bitset(self):
        self.assertEqual(FrameEncoder.finger_bitset([Finger.INDEX, Finger.PINKY]), 0x12)
        self.assertEqual(FrameEncoder.finger_bitset(Finger), 0x3F)
        self.assertEqual(FrameEncoder.finger_bitset([]), 0)

    def test_solenoid_write(self):
        frame = FrameEncoder.encode_solenoid_write({Finger.INDEX, Finger.PINKY}, GpioLevel.HIGH)
        self.assertEqual(frame.data, bytes([0x01, 0x00, 0x00, 0x00, 0x12, 0x01]))
        self.assertEqual(frame.hex(), "01 00 00 00 12 01")

    def test_solenoid_pulse(self):
        frame = FrameEncoder.encode_solenoid_pulse({Finger.THUMB}, 500)
        self.assertEqual(frame.data, bytes([0x02, 0x00, 0x00, 0x00, 0x01, 0x00, 0x00, 0x01, 0xF4]))

    def test_erm_set(self):
        frame = FrameEncoder.encode_erm_set({Finger.THUMB}, 100)
        self.assertEqual(frame.data, bytes([0x03, 0x00, 0x00, 0x00, 0x01, 0x64]))

    def test_empty_finger_set_rejected(self):
        with self.assertRaises(ValueError):
            FrameEncoder.encode_solenoid_write([], GpioLevel.LOW)
        with self.assertRaises(ValueError):
            FrameEncoder.encode_erm_set([], 10)

    def test_out_of_range_values_rejected(self):
        with self.assertRaises(ValueError):
            FrameEncoder.encode_solenoid_pulse({Finger.THUMB}, 2 ** 32)
        with self.assertRaises(ValueError):
            FrameEncoder.encode_erm_set({Finger.THUMB}, 256)

    def test_snapshot_order(self):
        """Actuate, release, pulse, then ERM by ascending intensity."""
        snapshot = PendingSnapshot(
            actuate=frozenset({Finger.INDEX}),
            release=frozenset({Finger.MIDDLE}),
            pulse=frozenset({Finger.THUMB}),
            erm={200: frozenset({Finger.PALM}), 100: frozenset({Finger.THUMB})},
        )
        frames = FrameEncoder.encode_snapshot(snapshot, 10)

        self.assertEqual([f.hex() for f in frames], [
            "01 00 00 00 02 01",
            "01 00 00 00 04 00",
            "02 00 00 00 01 00 00 00 0A",
            "03 00 00 00 01 64",
            "03 00 00 00 20 C8",
        ])

    def test_snapshot_skips_empty_buckets(self):
        snapshot = PendingSnapshot(erm={100: frozenset({Finger.THUMB})})
        frames = FrameEncoder.encode_snapshot(snapshot, 10)
        self.assertEqual(len(frames), 1)
        self.assertEqual(frames[0].command, CommandId.ERM_SET)

    def test_empty_snapshot(self):
        self.assertEqual(FrameEncoder.encode_snapshot(PendingSnapshot(), 10), [])


class TestWireFrame(unittest.TestCase):
    """Tests for WireFrame validation."""

    def test_properties(self):
        frame = WireFrame(bytes([0x03, 0x00, 0x00, 0x00, 0x20, 0xC8]))
        self.assertEqual(frame.command, CommandId.ERM_SET)
        self.assertEqual(frame.bitset, 0x20)
        self.assertEqual(len(frame), 6)
        self.assertEqual(bytes(frame), frame.data)

    def test_rejects_malformed(self):
        bad_frames = [
            b"",
            bytes([0x09, 0, 0, 0, 1, 1]),          # unknown command
            bytes([0x01, 0, 0, 0, 1]),             # too short
            bytes([0x02, 0, 0, 0, 1, 0, 0, 0]),    # pulse missing a byte
            bytearray([0x01, 0, 0, 0, 1, 1]),      # not bytes
        ]
        for data in bad_frames:
            with self.assertRaises(FrameFormatError):
                WireFrame(data)


if __name__ == '__main__':
    unittest.main()
