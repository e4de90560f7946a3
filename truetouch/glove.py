"""TrueTouch glove abstraction layer.

Ties the transport, the connection state machine, the update coalescer and
the frame dispatcher together behind one object for applications.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Union

from .ack_monitor import AckMonitor
from .config import GloveConfig
from .connection import ConnectionStateMachine
from .dispatcher import FrameDispatcher
from .errors import ConnectionLostError, TrueTouchError
from .models import ConnectionState, DeviceInfo, Finger, UpdateType
from .protocol.coalescer import UpdateCoalescer
from .transport.base import TransportAdapter
from .transport.ble import BleakTransport

logger = logging.getLogger(__name__)

DISCONNECTED_LABEL = "Disconnected"
STOP_TIMEOUT = 2.0  # seconds


class TrueTouchGlove:
    """High-level interface to a TrueTouch glove.

    This class acts as a facade, managing:
    1. The radio (TransportAdapter, BleakTransport by default)
    2. Discovery and connection (ConnectionStateMachine)
    3. Update batching (UpdateCoalescer) and sending (FrameDispatcher)
    4. Acknowledgement latency (AckMonitor)

    Updates can be requested at any time from any thread. They are merged
    per finger and sent every send interval while the glove is connected.
    Requests made while disconnected are kept and sent once connected.

    Example:
        >>> with TrueTouchGlove() as glove:
        ...     glove.request_finger_update(Finger.INDEX, UpdateType.PULSE_SOLENOID)
        ...     glove.request_finger_update(Finger.THUMB, UpdateType.SET_ERM, 200)
    """

    def __init__(self, transport: Optional[TransportAdapter] = None, config: Optional[GloveConfig] = None):
        """Initialize TrueTouchGlove.

        Args:
            transport: Transport adapter, or None to use BLE through bleak
            config: Connection and protocol settings, or None for defaults
        """
        self._config = config or GloveConfig()

        if transport is None:
            transport = BleakTransport(scan_timeout=self._config.scan_timeout_s)

        # Components
        self._transport = transport
        self._machine = ConnectionStateMachine(transport, self._config)
        self._coalescer = UpdateCoalescer()
        self._dispatcher = FrameDispatcher(transport, self._coalescer, self._config)
        self._ack_monitor = AckMonitor(ack_timeout=self._config.ack_timeout_s)

        # Wiring
        self._transport.set_disconnect_handler(self._on_disconnected)
        self._machine.subscribe_inbound(self._ack_monitor.on_inbound)
        self._machine.subscribe_state(self._on_state_changed)
        self._dispatcher.subscribe_started(self._ack_monitor.mark_sent)

        # Driver thread
        self._driver_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    # --- Update Interface ---

    def request_finger_update(
        self,
        finger: Union[Finger, str],
        kind: UpdateType,
        value: Optional[int] = None,
    ) -> bool:
        """Queue an update for one finger.

        Args:
            finger: Finger, or its name (e.g. "index")
            kind: Update to apply
            value: ERM intensity 0-255, required for SET_ERM

        Returns:
            True if pending state changed

        Raises:
            ValueError: On an unknown finger, kind or intensity
        """
        if isinstance(finger, str):
            finger = Finger.from_name(finger)
        return self._coalescer.request_update(finger, kind, value)

    def set_pulse_duration_ms(self, value: int) -> None:
        """Set the pulse duration used for subsequent pulse frames."""
        self._dispatcher.pulse_duration_ms = value

    @property
    def pulse_duration_ms(self) -> int:
        return self._dispatcher.pulse_duration_ms

    # --- Driving ---

    def poll(self) -> None:
        """Advance the connection state machine by one tick."""
        self._machine.tick()

    def flush(self) -> bool:
        """Run one send cycle.

        Does nothing unless connected. With throttle_until_ack set, also does
        nothing while the previous sequence is unacknowledged.

        Returns:
            True if a sequence was started
        """
        device = self._machine.device
        if not self._machine.is_connected or device is None:
            return False
        if self._config.throttle_until_ack and self._ack_monitor.awaiting_response:
            return False
        return self._dispatcher.send_cycle(device.id)

    def start(self) -> None:
        """Start the background driver thread."""
        if self._driver_thread is not None and self._driver_thread.is_alive():
            return

        self._stop_event.clear()
        self._driver_thread = threading.Thread(
            target=self._driver_loop,
            daemon=True,
            name="TrueTouchDriver",
        )
        self._driver_thread.start()
        logger.debug(
            f"Driver started (tick={self._config.tick_interval_s}s, send={self._config.send_interval_s}s)"
        )

    def stop(self) -> None:
        """Stop the background driver thread and wait for any send to finish."""
        if self._driver_thread is None:
            return

        self._stop_event.set()
        if self._driver_thread.is_alive():
            self._driver_thread.join(timeout=STOP_TIMEOUT)
        self._driver_thread = None
        self._dispatcher.wait_idle(timeout=STOP_TIMEOUT)
        logger.debug("Driver stopped")

    def close(self) -> None:
        """Stop driving the glove and release the transport."""
        self.stop()
        self._transport.close()

    def __enter__(self) -> TrueTouchGlove:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # --- Status Interface ---

    def get_connection_state(self) -> ConnectionState:
        return self._machine.state

    @property
    def is_connected(self) -> bool:
        return self._machine.is_connected

    def get_connected_device_identity(self) -> Optional[DeviceInfo]:
        """Get the connected device, or None when not connected."""
        context = self._machine.context
        if context.state != ConnectionState.CONNECTED:
            return None
        return context.device

    @property
    def connected_device_name(self) -> str:
        device = self.get_connected_device_identity()
        return device.name if device else DISCONNECTED_LABEL

    @property
    def connected_device_id(self) -> str:
        device = self.get_connected_device_identity()
        return device.id if device else DISCONNECTED_LABEL

    @property
    def last_transmission_error(self) -> Optional[TrueTouchError]:
        return self._dispatcher.last_error

    @property
    def last_latency_ms(self) -> Optional[float]:
        return self._ack_monitor.last_latency_ms

    def subscribe_state(self, callback: Callable[[ConnectionState], None]) -> Callable[[], None]:
        """Subscribe to connection state changes.

        Returns:
            Unsubscribe function
        """
        return self._machine.subscribe_state(callback)

    def subscribe_errors(self, callback: Callable[[TrueTouchError], None]) -> Callable[[], None]:
        """Subscribe to transmission failures.

        Returns:
            Unsubscribe function
        """
        return self._dispatcher.subscribe_errors(callback)

    def subscribe_latency(self, callback: Callable[[float], None]) -> Callable[[], None]:
        """Subscribe to acknowledgement latency measurements, in milliseconds.

        Returns:
            Unsubscribe function
        """
        return self._ack_monitor.subscribe_latency(callback)

    # Internal methods

    def _driver_loop(self) -> None:
        """Tick the state machine and run send cycles until stopped."""
        logger.debug("Driver thread started")
        last_send = 0.0

        while not self._stop_event.is_set():
            try:
                self.poll()
                now = time.monotonic()
                if now - last_send >= self._config.send_interval_s:
                    last_send = now
                    self.flush()
            except Exception as e:
                logger.error(f"Driver error: {e}")

            self._stop_event.wait(self._config.tick_interval_s)

        logger.debug("Driver thread exiting")

    def _on_disconnected(self, device_id: str) -> None:
        self._machine.report_error(ConnectionLostError(f"Lost connection to {device_id}"))

    def _on_state_changed(self, state: ConnectionState) -> None:
        if state != ConnectionState.CONNECTED:
            self._ack_monitor.reset()
