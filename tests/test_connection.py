"""Unit tests for ConnectionStateMachine."""

import unittest
from unittest.mock import MagicMock

from truetouch.config import GloveConfig
from truetouch.connection import ConnectionStateMachine
from truetouch.errors import (
    ConnectionLostError,
    DeviceNotFoundError,
    ServiceNotFoundError,
    TransportError,
)
from truetouch.models import ConnectionState

from fakes import FakeTransport

NUS = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"


class TestConnectionStateMachine(unittest.TestCase):
    """Test discovery and connection flow."""

    def setUp(self):
        self.transport = FakeTransport()
        self.machine = ConnectionStateMachine(self.transport)
        self.states = []
        self.machine.subscribe_state(self.states.append)

    def connect(self):
        self.transport.add_device("AA:BB", "TrueTouch")
        self.transport.add_service(NUS)
        self.machine.tick()  # IDLE -> SCANNING
        self.machine.tick()  # SCANNING -> CONNECTING
        self.machine.tick()  # CONNECTING -> CONNECTED

    def test_initial_state(self):
        self.assertEqual(self.machine.state, ConnectionState.IDLE)
        self.assertIsNone(self.machine.device)

    def test_idle_starts_scan(self):
        self.machine.tick()

        self.assertEqual(self.machine.state, ConnectionState.SCANNING)
        self.assertEqual(self.transport.call_names(), ["start_scan"])
        self.assertEqual(self.states, [ConnectionState.SCANNING])

    def test_full_connection(self):
        self.connect()

        self.assertEqual(self.machine.state, ConnectionState.CONNECTED)
        self.assertEqual(self.machine.device.id, "AA:BB")
        self.assertEqual(self.states, [
            ConnectionState.SCANNING,
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
        ])
        self.assertIn(("scan_services", "AA:BB"), self.transport.calls)
        self.assertIn(
            ("subscribe", "AA:BB", NUS, "6e400003-b5a3-f393-e0a9-e50e24dcca9e"),
            self.transport.calls,
        )

    def test_scan_pending_waits(self):
        self.machine.tick()
        self.machine.tick()
        self.machine.tick()
        self.assertEqual(self.machine.state, ConnectionState.SCANNING)

    def test_device_name_is_case_insensitive(self):
        self.transport.add_device("AA:BB", "truetouch")
        self.machine.tick()
        self.machine.tick()
        self.assertEqual(self.machine.state, ConnectionState.CONNECTING)

    def test_skips_other_devices_in_one_tick(self):
        """All queued devices are drained in a single tick."""
        self.transport.add_device("11:11", "Headphones")
        self.transport.add_device("22:22", "")
        self.transport.add_device("AA:BB", "TrueTouch")
        self.machine.tick()
        self.machine.tick()

        self.assertEqual(self.machine.state, ConnectionState.CONNECTING)
        self.assertEqual(self.machine.device.id, "AA:BB")
        self.assertEqual(self.transport.call_names(), ["start_scan", "stop_scan", "scan_services"])

    def test_device_not_found(self):
        """Scan exhausted without a match goes to ERROR with the recorded message."""
        self.transport.add_device("11:11", "Headphones")
        self.transport.scan_finished = True
        self.machine.tick()
        self.machine.tick()

        context = self.machine.context
        self.assertEqual(context.state, ConnectionState.ERROR)
        self.assertIsInstance(context.error, DeviceNotFoundError)
        self.assertEqual(context.error_message, "Could not find TrueTouch")

    def test_error_restarts_scanning_on_next_tick(self):
        self.transport.scan_finished = True
        self.machine.tick()
        self.machine.tick()
        self.states.clear()
        self.transport.calls.clear()

        self.machine.tick()

        self.assertEqual(self.states, [ConnectionState.IDLE, ConnectionState.SCANNING])
        self.assertEqual(self.machine.state, ConnectionState.SCANNING)
        self.assertIsNone(self.machine.context.error)
        self.assertEqual(self.transport.call_names(), ["start_scan"])

    def test_service_uuid_braces_and_case_ignored(self):
        self.transport.add_device("AA:BB", "TrueTouch")
        self.transport.add_service("{00001800-0000-1000-8000-00805F9B34FB}")
        self.transport.add_service("{6E400001-B5A3-F393-E0A9-E50E24DCCA9E}")
        self.machine.tick()
        self.machine.tick()
        self.machine.tick()

        self.assertEqual(self.machine.state, ConnectionState.CONNECTED)

    def test_service_not_found(self):
        self.transport.add_device("AA:BB", "TrueTouch")
        self.transport.add_service("00001800-0000-1000-8000-00805f9b34fb")
        self.transport.services_finished = True
        self.machine.tick()
        self.machine.tick()
        self.machine.tick()

        context = self.machine.context
        self.assertEqual(context.state, ConnectionState.ERROR)
        self.assertIsInstance(context.error, ServiceNotFoundError)
        self.assertEqual(context.error_message, "Could not find NUS service on TrueTouch")

    def test_error_clears_device(self):
        self.transport.add_device("AA:BB", "TrueTouch")
        self.transport.services_finished = True
        for _ in range(4):
            self.machine.tick()

        self.assertEqual(self.machine.state, ConnectionState.SCANNING)
        self.assertIsNone(self.machine.device)

    def test_subscribe_failure_goes_to_error(self):
        self.transport.subscribe = MagicMock(side_effect=TransportError("no notify"))
        self.transport.add_device("AA:BB", "TrueTouch")
        self.transport.add_service(NUS)
        for _ in range(3):
            self.machine.tick()

        self.assertEqual(self.machine.state, ConnectionState.ERROR)
        self.assertEqual(self.machine.context.error_message, "no notify")

    def test_start_scan_failure_stays_idle(self):
        self.transport.start_scan = MagicMock(side_effect=TransportError("adapter off"))
        self.machine.tick()
        self.assertEqual(self.machine.state, ConnectionState.IDLE)

    def test_inbound_drained_and_forwarded(self):
        received = []
        self.machine.subscribe_inbound(received.append)
        self.connect()
        self.transport.add_inbound(b"\x01")
        self.transport.add_inbound(b"\x02\x03")

        self.machine.tick()

        self.assertEqual([r.data for r in received], [b"\x01", b"\x02\x03"])
        self.assertIsNone(self.transport.poll_inbound())
        self.assertEqual(self.machine.state, ConnectionState.CONNECTED)

    def test_report_error_while_connected(self):
        self.connect()
        self.machine.report_error(ConnectionLostError("link lost"))

        self.assertEqual(self.machine.state, ConnectionState.ERROR)
        self.machine.tick()
        self.assertEqual(self.machine.state, ConnectionState.SCANNING)

    def test_report_error_while_scanning_stops_scan(self):
        self.machine.tick()
        self.machine.report_error("adapter reset")

        self.assertEqual(self.machine.state, ConnectionState.ERROR)
        self.assertEqual(self.machine.context.error_message, "adapter reset")
        self.assertEqual(self.transport.call_names(), ["start_scan", "stop_scan"])

    def test_report_error_ignored_when_idle(self):
        self.machine.report_error("ignored")
        self.assertEqual(self.machine.state, ConnectionState.IDLE)
        self.assertEqual(self.states, [])

    def test_custom_device_name(self):
        machine = ConnectionStateMachine(self.transport, GloveConfig(device_name="LeftGlove"))
        self.transport.add_device("11:11", "TrueTouch")
        self.transport.add_device("22:22", "LeftGlove")
        machine.tick()
        machine.tick()
        self.assertEqual(machine.device.id, "22:22")

    def test_callback_errors_are_isolated(self):
        def bad_callback(state):
            raise RuntimeError("boom")

        self.machine.subscribe_state(bad_callback)
        self.machine.tick()

        self.assertEqual(self.states, [ConnectionState.SCANNING])

    def test_unsubscribe(self):
        seen = []
        unsub = self.machine.subscribe_state(seen.append)
        unsub()
        self.machine.tick()
        self.assertEqual(seen, [])


if __name__ == '__main__':
    unittest.main()
