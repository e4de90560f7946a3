"""Round-trip latency monitor for sent sequences.

The glove answers each write sequence with a notification. The monitor
treats the first notification after a send as its acknowledgement, reports
the round trip in milliseconds, and can be used to hold back the next send
until that acknowledgement arrives.

This is a passive observer: it never sends anything itself.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from .config import DEFAULT_ACK_TIMEOUT
from .models import InboundData

logger = logging.getLogger(__name__)


class AckMonitor:
    """Measures time from a send to the next inbound notification."""

    def __init__(self, ack_timeout: float = DEFAULT_ACK_TIMEOUT, clock: Callable[[], float] = time.monotonic):
        """Initialize ACK monitor.

        Args:
            ack_timeout: Seconds after which an unanswered send stops being awaited
            clock: Monotonic time source, in seconds
        """
        self._ack_timeout = ack_timeout
        self._clock = clock

        self._sent_at: Optional[float] = None
        self._last_latency_ms: Optional[float] = None

        self._latency_callbacks: List[Callable[[float], None]] = []

        # Thread safety
        self._lock = threading.Lock()
        self._callback_lock = threading.Lock()

    def mark_sent(self, *_args) -> None:
        """Record that a sequence was just sent.

        Accepts and ignores arguments so it can be subscribed directly to
        FrameDispatcher.subscribe_sent().
        """
        with self._lock:
            self._sent_at = self._clock()

    def on_inbound(self, inbound: Optional[InboundData] = None) -> Optional[float]:
        """Handle a notification from the glove.

        Returns:
            Round-trip latency in milliseconds, or None if no send was awaited
        """
        with self._lock:
            if self._sent_at is None:
                return None
            latency_ms = (self._clock() - self._sent_at) * 1000.0
            self._sent_at = None
            self._last_latency_ms = latency_ms

        logger.debug(f"ACK latency: {latency_ms:.1f} ms")
        self._notify_callbacks(latency_ms)
        return latency_ms

    @property
    def awaiting_response(self) -> bool:
        """True while a send is unanswered and has not timed out."""
        with self._lock:
            if self._sent_at is None:
                return False
            if self._clock() - self._sent_at >= self._ack_timeout:
                logger.warning(f"No ACK within {self._ack_timeout}s, no longer waiting")
                self._sent_at = None
                return False
            return True

    @property
    def last_latency_ms(self) -> Optional[float]:
        with self._lock:
            return self._last_latency_ms

    def reset(self) -> None:
        """Forget any outstanding send, e.g. after the link drops."""
        with self._lock:
            self._sent_at = None

    def subscribe_latency(self, callback: Callable[[float], None]) -> Callable[[], None]:
        """Subscribe to latency measurements.

        Args:
            callback: Function to call with each latency in milliseconds

        Returns:
            Unsubscribe function
        """
        with self._callback_lock:
            self._latency_callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in self._latency_callbacks:
                    self._latency_callbacks.remove(callback)

        return unsubscribe

    def _notify_callbacks(self, latency_ms: float) -> None:
        with self._callback_lock:
            callbacks = list(self._latency_callbacks)

        for callback in callbacks:
            try:
                callback(latency_ms)
            except Exception as e:
                logger.error(f"Error in latency callback: {e}")
