"""Connection state machine for a TrueTouch glove.

Drives the transport adapter through discovery and connection:

    IDLE -> SCANNING -> CONNECTING -> CONNECTED
              |             |             |
              +-----------> ERROR <-------+
                              |
                              +-> IDLE (and straight back to SCANNING)

Each tick() runs the handler for the current state once. Handlers only make
short, non-blocking adapter calls and drain whatever the adapter has queued,
so tick() can be called from any periodic loop.

There is no retry inside a state and no backoff: any failure goes through
ERROR and the machine starts scanning again on the same tick.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, FrozenSet, List, Optional, Union

from .config import GloveConfig
from .errors import (
    DeviceNotFoundError,
    InvalidTransitionError,
    ServiceNotFoundError,
    TransportError,
    TrueTouchError,
)
from .models import (
    ConnectionContext,
    ConnectionState,
    DeviceInfo,
    InboundData,
    ScanStatus,
    ServiceInfo,
)
from .transport.base import TransportAdapter

logger = logging.getLogger(__name__)

DEVICE_NOT_FOUND_MESSAGE = "Could not find TrueTouch"
SERVICE_NOT_FOUND_MESSAGE = "Could not find NUS service on TrueTouch"

TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.IDLE: frozenset({ConnectionState.SCANNING}),
    ConnectionState.SCANNING: frozenset({ConnectionState.CONNECTING, ConnectionState.ERROR}),
    ConnectionState.CONNECTING: frozenset({ConnectionState.CONNECTED, ConnectionState.ERROR}),
    ConnectionState.CONNECTED: frozenset({ConnectionState.ERROR}),
    ConnectionState.ERROR: frozenset({ConnectionState.IDLE}),
}


class ConnectionStateMachine:
    """Discovers, connects to and monitors one glove.

    Example:
        >>> machine = ConnectionStateMachine(transport)
        >>> machine.subscribe_state(lambda s: print(f"State: {s.name}"))
        >>> while machine.state != ConnectionState.CONNECTED:
        ...     machine.tick()
        ...     time.sleep(0.02)
    """

    def __init__(self, transport: TransportAdapter, config: Optional[GloveConfig] = None):
        self._transport = transport
        self._config = config or GloveConfig()
        self._context = ConnectionContext()

        self._handlers: Dict[ConnectionState, Callable[[], None]] = {
            ConnectionState.IDLE: self._on_idle,
            ConnectionState.SCANNING: self._on_scanning,
            ConnectionState.CONNECTING: self._on_connecting,
            ConnectionState.CONNECTED: self._on_connected,
            ConnectionState.ERROR: self._on_error,
        }

        self._state_callbacks: List[Callable[[ConnectionState], None]] = []
        self._inbound_callbacks: List[Callable[[InboundData], None]] = []

        # Thread safety
        self._lock = threading.RLock()
        self._callback_lock = threading.Lock()

        # Transitions made under the lock, announced after it is released
        self._pending_states: List[ConnectionState] = []
        self._pending_inbound: List[InboundData] = []

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._context.state

    @property
    def context(self) -> ConnectionContext:
        """Copy of what the machine currently knows about the link."""
        with self._lock:
            return self._context.copy()

    @property
    def device(self) -> Optional[DeviceInfo]:
        with self._lock:
            return self._context.device

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def tick(self) -> None:
        """Run the handler for the current state once."""
        with self._lock:
            try:
                self._handlers[self._context.state]()
            except TransportError as e:
                logger.error(f"Transport error in {self._context.state.name}: {e}")
                # IDLE has no error edge; it simply tries to scan again next tick
                if ConnectionState.ERROR in TRANSITIONS[self._context.state]:
                    self._context.error = e
                    self._transition(ConnectionState.ERROR)
        self._flush_notifications()

    def report_error(self, error: Union[TrueTouchError, str]) -> None:
        """Force the machine into ERROR because of an external failure.

        Ignored while IDLE or already in ERROR.

        Args:
            error: The failure, or a message describing it
        """
        if isinstance(error, str):
            error = TrueTouchError(error)

        with self._lock:
            if self._context.state in (ConnectionState.IDLE, ConnectionState.ERROR):
                logger.debug(f"Ignoring error in {self._context.state.name}: {error}")
                return
            if self._context.state == ConnectionState.SCANNING:
                self._transport.stop_scan()
            self._context.error = error
            self._transition(ConnectionState.ERROR)
        self._flush_notifications()

    def subscribe_state(self, callback: Callable[[ConnectionState], None]) -> Callable[[], None]:
        """Subscribe to state changes.

        Args:
            callback: Function to call with each new state

        Returns:
            Unsubscribe function
        """
        return self._subscribe(self._state_callbacks, callback)

    def subscribe_inbound(self, callback: Callable[[InboundData], None]) -> Callable[[], None]:
        """Subscribe to notifications received while connected.

        Args:
            callback: Function to call with each InboundData

        Returns:
            Unsubscribe function
        """
        return self._subscribe(self._inbound_callbacks, callback)

    # State handlers

    def _on_idle(self) -> None:
        self._transport.start_scan()
        logger.info("Scanning for devices")
        self._transition(ConnectionState.SCANNING)

    def _on_scanning(self) -> None:
        wanted = self._config.device_name.lower()
        while True:
            status, device = self._transport.poll_device()
            if status == ScanStatus.PENDING:
                return

            if status == ScanStatus.FINISHED:
                self._context.error = DeviceNotFoundError(DEVICE_NOT_FOUND_MESSAGE)
                self._transition(ConnectionState.ERROR)
                return

            logger.debug(f"Found device {device.name!r} ({device.id})")
            if device.name.lower() == wanted:
                self._transport.stop_scan()
                self._context.device = device
                logger.info(f"Found {device.name} at {device.id}, discovering services")
                self._transport.scan_services(device.id)
                self._transition(ConnectionState.CONNECTING)
                return

    def _on_connecting(self) -> None:
        wanted = ServiceInfo(self._config.service_uuid).normalized_uuid
        while True:
            status, service = self._transport.poll_service()
            if status == ScanStatus.PENDING:
                return

            if status == ScanStatus.FINISHED:
                self._context.error = ServiceNotFoundError(SERVICE_NOT_FOUND_MESSAGE)
                self._transition(ConnectionState.ERROR)
                return

            logger.debug(f"Found service {service.uuid}")
            if service.normalized_uuid == wanted:
                device = self._context.device
                logger.info(f"Found service {wanted} on {device.id}")
                self._transport.subscribe(device.id, self._config.service_uuid, self._config.tx_char_uuid)
                self._transition(ConnectionState.CONNECTED)
                return

    def _on_connected(self) -> None:
        while True:
            inbound = self._transport.poll_inbound()
            if inbound is None:
                return
            logger.debug(f"Received {inbound.data.hex(' ').upper()} from {inbound.device_id}")
            self._pending_inbound.append(inbound)

    def _on_error(self) -> None:
        error = self._context.error
        if error is not None:
            logger.warning(f"Connection error: {error}")
        self._context.error = None
        self._context.device = None
        self._transition(ConnectionState.IDLE)
        self._on_idle()

    # Internal methods

    def _transition(self, new_state: ConnectionState) -> None:
        old_state = self._context.state
        if new_state not in TRANSITIONS[old_state]:
            raise InvalidTransitionError(f"Invalid transition {old_state.name} -> {new_state.name}")
        self._context.state = new_state
        logger.info(f"Connection state: {old_state.name} -> {new_state.name}")
        self._pending_states.append(new_state)

    def _flush_notifications(self) -> None:
        with self._lock:
            states, self._pending_states = self._pending_states, []
            inbound, self._pending_inbound = self._pending_inbound, []

        for state in states:
            self._notify(self._state_callbacks, state, "state")
        for item in inbound:
            self._notify(self._inbound_callbacks, item, "inbound")

    def _subscribe(self, callbacks: list, callback) -> Callable[[], None]:
        with self._callback_lock:
            callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def _notify(self, callbacks: list, value, kind: str) -> None:
        with self._callback_lock:
            snapshot = list(callbacks)

        for callback in snapshot:
            try:
                callback(value)
            except Exception as e:
                logger.error(f"Error in {kind} callback: {e}")
