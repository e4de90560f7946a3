"""Frame dispatcher that turns coalesced updates into BLE writes.

Each send cycle drains the coalescer, encodes the snapshot and hands the
frames to a short-lived worker thread, which writes them one at a time.
Only one sequence is ever in flight: a cycle that finds the previous
sequence still sending does nothing, and the pending updates keep
coalescing until the next cycle.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Tuple

from .config import GloveConfig, validate_pulse_duration
from .errors import TransmissionError, TrueTouchError
from .protocol.coalescer import UpdateCoalescer
from .protocol.encoder import FrameEncoder
from .protocol.frames import WireFrame
from .transport.base import TransportAdapter

logger = logging.getLogger(__name__)


class FrameDispatcher:
    """Sends coalesced updates to the glove, one sequence at a time.

    Example:
        >>> dispatcher = FrameDispatcher(transport, coalescer)
        >>> dispatcher.subscribe_errors(lambda e: print(f"Send failed: {e}"))
        >>> dispatcher.send_cycle(device.id)
        True
    """

    def __init__(
        self,
        transport: TransportAdapter,
        coalescer: UpdateCoalescer,
        config: Optional[GloveConfig] = None,
    ):
        self._transport = transport
        self._coalescer = coalescer
        self._config = config or GloveConfig()
        self._pulse_duration_ms = self._config.pulse_duration_ms

        # Set while no sequence is being sent
        self._idle = threading.Event()
        self._idle.set()
        self._start_lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None

        self._last_error: Optional[TrueTouchError] = None

        self._error_callbacks: List[Callable[[TrueTouchError], None]] = []
        self._started_callbacks: List[Callable[[Tuple[WireFrame, ...]], None]] = []
        self._sent_callbacks: List[Callable[[Tuple[WireFrame, ...]], None]] = []
        self._callback_lock = threading.Lock()

    @property
    def pulse_duration_ms(self) -> int:
        return self._pulse_duration_ms

    @pulse_duration_ms.setter
    def pulse_duration_ms(self, value: int) -> None:
        self._pulse_duration_ms = validate_pulse_duration(value)
        logger.debug(f"Pulse duration set to {value} ms")

    @property
    def in_flight(self) -> bool:
        """True while a worker is sending a sequence."""
        return not self._idle.is_set()

    @property
    def last_error(self) -> Optional[TrueTouchError]:
        return self._last_error

    def send_cycle(self, device_id: str) -> bool:
        """Start sending everything pending, unless a sequence is in flight.

        Args:
            device_id: Device to write to

        Returns:
            True if a worker was started, False if there was nothing to do
        """
        if not self._coalescer.has_pending():
            return False

        with self._start_lock:
            if not self._idle.is_set():
                logger.debug("Previous sequence still in flight, skipping cycle")
                return False
            self._idle.clear()

        try:
            snapshot = self._coalescer.take_snapshot_and_clear()
            frames = tuple(FrameEncoder.encode_snapshot(snapshot, self._pulse_duration_ms))
        except (ValueError, TrueTouchError) as e:
            logger.error(f"Failed to encode pending updates: {e}")
            self._record_error(e if isinstance(e, TrueTouchError) else TrueTouchError(str(e)))
            self._idle.set()
            return False

        if not frames:
            self._idle.set()
            return False

        # Listeners hear about the sequence before its first write can be answered
        self._notify(self._started_callbacks, frames, "started")

        self._worker = threading.Thread(
            target=self._send_frames,
            args=(device_id, frames),
            daemon=True,
            name="TrueTouchSender",
        )
        self._worker.start()
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no sequence is in flight.

        Returns:
            True if idle, False if the timeout expired first
        """
        return self._idle.wait(timeout)

    def subscribe_errors(self, callback: Callable[[TrueTouchError], None]) -> Callable[[], None]:
        """Subscribe to send failures.

        Returns:
            Unsubscribe function
        """
        return self._subscribe(self._error_callbacks, callback)

    def subscribe_started(
        self, callback: Callable[[Tuple[WireFrame, ...]], None]
    ) -> Callable[[], None]:
        """Subscribe to sequences about to be sent.

        Called on the thread that ran send_cycle(), before the worker starts.

        Returns:
            Unsubscribe function
        """
        return self._subscribe(self._started_callbacks, callback)

    def subscribe_sent(
        self, callback: Callable[[Tuple[WireFrame, ...]], None]
    ) -> Callable[[], None]:
        """Subscribe to completed sequences.

        The callback receives the frames that were written, in order.

        Returns:
            Unsubscribe function
        """
        return self._subscribe(self._sent_callbacks, callback)

    # Internal methods

    def _send_frames(self, device_id: str, frames: Tuple[WireFrame, ...]) -> None:
        """Write a sequence in order, stopping at the first failure."""
        try:
            for frame in frames:
                logger.debug(f"Sending {frame.hex()}")
                self._transport.send_frame(
                    device_id,
                    self._config.service_uuid,
                    self._config.rx_char_uuid,
                    frame.data,
                )
        except TransmissionError as e:
            dropped = len(frames) - frames.index(frame)
            logger.error(f"Failed to send {frame.hex()}: {e} ({dropped} frame(s) dropped)")
            self._record_error(e)
            return
        except Exception as e:
            logger.error(f"Unexpected send error: {e}")
            self._record_error(TransmissionError(str(e), frame=frame.data))
            return
        finally:
            self._idle.set()

        self._notify(self._sent_callbacks, frames, "sent")

    def _record_error(self, error: TrueTouchError) -> None:
        self._last_error = error
        self._notify(self._error_callbacks, error, "error")

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
