"""Abstract base class for the transport adapter.

The adapter is the only part of the SDK that talks to a radio stack. The
core drives it with short, non-blocking calls from its tick and polls it for
results, so any BLE library (or a simulator) can sit behind it.

Key principles:
- Poll, don't call back: discovery results and notifications are queued by
  the adapter and drained by the core on its own thread
- Only send_frame() blocks, and it is only called from the sender worker
- Failures to write raise TransmissionError
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

from ..models import DeviceInfo, InboundData, ScanStatus, ServiceInfo

DisconnectHandler = Callable[[str], None]


class TransportAdapter(ABC):
    """Capability set the connection state machine and dispatcher rely on."""

    _disconnect_handler: Optional[DisconnectHandler] = None

    def set_disconnect_handler(self, handler: Optional[DisconnectHandler]) -> None:
        """Register a function called with the device id when a link drops.

        Adapters that cannot detect disconnects never call it.
        """
        self._disconnect_handler = handler

    def _notify_disconnect(self, device_id: str) -> None:
        handler = self._disconnect_handler
        if handler is not None:
            handler(device_id)

    @abstractmethod
    def start_scan(self) -> None:
        """Begin scanning for advertising devices."""
        pass

    @abstractmethod
    def stop_scan(self) -> None:
        """Stop a running device scan. Safe to call when no scan is running."""
        pass

    @abstractmethod
    def poll_device(self) -> Tuple[ScanStatus, Optional[DeviceInfo]]:
        """Return the next discovered device without blocking.

        Returns:
            (AVAILABLE, device) if a device is waiting,
            (PENDING, None) if the scan is still running,
            (FINISHED, None) once the scan is exhausted
        """
        pass

    @abstractmethod
    def scan_services(self, device_id: str) -> None:
        """Begin discovering services on a device."""
        pass

    @abstractmethod
    def poll_service(self) -> Tuple[ScanStatus, Optional[ServiceInfo]]:
        """Return the next discovered service without blocking.

        Same contract as poll_device().
        """
        pass

    @abstractmethod
    def subscribe(self, device_id: str, service_uuid: str, characteristic_uuid: str) -> None:
        """Enable notifications on a characteristic.

        Raises:
            TransportError: If the subscription fails
        """
        pass

    @abstractmethod
    def send_frame(
        self,
        device_id: str,
        service_uuid: str,
        characteristic_uuid: str,
        data: bytes,
    ) -> None:
        """Write one frame and block until the device acknowledges it.

        Raises:
            TransmissionError: If the write fails
        """
        pass

    @abstractmethod
    def poll_inbound(self) -> Optional[InboundData]:
        """Return the next received notification, or None if there is none."""
        pass

    def close(self) -> None:
        """Release radio resources. Should be safe to call multiple times."""
        pass

    def __enter__(self) -> TransportAdapter:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
