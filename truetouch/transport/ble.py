"""BLE transport implementation using bleak.

bleak is asyncio-only, while the SDK core runs on plain threads and polls.
BleakTransport bridges the two by running a private event loop on a daemon
thread. Discovery results and notifications land in thread-safe queues that
the poll methods drain without blocking.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import functools
import logging
import queue
import threading
from typing import Dict, Optional, Set, Tuple

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from ..config import DEFAULT_SCAN_TIMEOUT
from ..errors import TransmissionError, TransportError
from ..models import DeviceInfo, InboundData, ScanStatus, ServiceInfo
from .base import TransportAdapter

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0  # seconds
CLOSE_TIMEOUT = 2.0  # seconds


class BleakTransport(TransportAdapter):
    """Transport adapter for a BLE glove, backed by bleak.

    Responsibilities:
    - Run device scans and queue every advertising device
    - Connect to a device and queue its GATT services
    - Subscribe to notifications and queue their payloads
    - Write frames with response, blocking the caller until acknowledged

    Example:
        >>> transport = BleakTransport(scan_timeout=5.0)
        >>> transport.start_scan()
        >>> status, device = transport.poll_device()
        >>> transport.close()
    """

    def __init__(
        self,
        scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ):
        """Initialize BleakTransport.

        Args:
            scan_timeout: Seconds a device scan runs before it reports exhaustion
            connect_timeout: Seconds allowed for connecting and for GATT operations
        """
        self._scan_timeout = scan_timeout
        self._connect_timeout = connect_timeout

        # Event loop thread
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._loop_lock = threading.Lock()

        # Discovery and notification queues
        self._devices: queue.Queue[DeviceInfo] = queue.Queue()
        self._services: queue.Queue[ServiceInfo] = queue.Queue()
        self._inbound: queue.Queue[InboundData] = queue.Queue()

        # Nothing is running yet, so both streams start out exhausted
        self._scan_finished = threading.Event()
        self._scan_finished.set()
        self._services_finished = threading.Event()
        self._services_finished.set()

        self._scan_future: Optional[concurrent.futures.Future] = None
        self._scan_generation = 0
        self._seen: Set[Tuple[str, str]] = set()

        # Only touched from the event loop thread
        self._clients: Dict[str, BleakClient] = {}

    # --- Device scan ---

    def start_scan(self) -> None:
        self.stop_scan()
        self._scan_generation += 1
        _drain(self._devices)
        self._seen.clear()
        self._scan_finished.clear()
        self._scan_future = self._submit(self._scan(self._scan_generation))
        logger.debug(f"Device scan started (timeout={self._scan_timeout}s)")

    def stop_scan(self) -> None:
        future = self._scan_future
        self._scan_future = None
        if future is not None and not future.done():
            future.cancel()
            logger.debug("Device scan stopped")

    def poll_device(self) -> Tuple[ScanStatus, Optional[DeviceInfo]]:
        return _poll(self._devices, self._scan_finished)

    async def _scan(self, generation: int) -> None:
        scanner = BleakScanner(detection_callback=self._on_detection)
        started = False
        try:
            # A connected glove stops advertising, so links left over from a
            # failed attempt must be dropped before it can be found again
            await self._disconnect_all()
            await scanner.start()
            started = True
            await asyncio.sleep(self._scan_timeout)
        except BleakError as e:
            logger.error(f"Device scan failed: {e}")
        finally:
            if started:
                try:
                    await scanner.stop()
                except BleakError as e:
                    logger.warning(f"Error stopping scanner: {e}")
            # A newer scan owns the finished flag
            if generation == self._scan_generation:
                self._scan_finished.set()

    def _on_detection(self, device, advertisement_data) -> None:
        """Queue a device reported by the scanner (runs on the loop thread)."""
        name = getattr(advertisement_data, "local_name", None) or device.name or ""
        key = (device.address, name)
        if key in self._seen:
            return
        self._seen.add(key)
        self._devices.put(DeviceInfo(id=device.address, name=name))

    # --- Service discovery ---

    def scan_services(self, device_id: str) -> None:
        _drain(self._services)
        self._services_finished.clear()
        self._submit(self._discover_services(device_id))

    def poll_service(self) -> Tuple[ScanStatus, Optional[ServiceInfo]]:
        return _poll(self._services, self._services_finished)

    async def _discover_services(self, device_id: str) -> None:
        try:
            client = await self._connect(device_id)
            for service in client.services:
                self._services.put(ServiceInfo(uuid=str(service.uuid)))
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            # An empty, finished stream sends the state machine back to scanning
            logger.error(f"Service discovery on {device_id} failed: {e}")
        finally:
            self._services_finished.set()

    async def _connect(self, device_id: str) -> BleakClient:
        client = self._clients.get(device_id)
        if client is not None and client.is_connected:
            return client

        client = BleakClient(
            device_id,
            timeout=self._connect_timeout,
            disconnected_callback=functools.partial(self._on_disconnected, device_id),
        )
        await client.connect()
        self._clients[device_id] = client
        logger.info(f"Connected to {device_id}")
        return client

    def _on_disconnected(self, device_id: str, client) -> None:
        if self._clients.get(device_id) is not client:
            # Dropped on purpose by _disconnect_all()
            logger.debug(f"Device {device_id} disconnected")
            return
        logger.warning(f"Device {device_id} disconnected")
        del self._clients[device_id]
        # The handler may block on locks held by threads waiting on this loop
        threading.Thread(
            target=self._notify_disconnect,
            args=(device_id,),
            daemon=True,
            name="TrueTouchDisconnect",
        ).start()

    # --- Notifications ---

    def subscribe(self, device_id: str, service_uuid: str, characteristic_uuid: str) -> None:
        future = self._submit(self._subscribe(device_id, characteristic_uuid))
        try:
            future.result(timeout=self._connect_timeout)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(
                f"Subscribing to {characteristic_uuid} on {device_id} failed: {e}"
            ) from e

    async def _subscribe(self, device_id: str, characteristic_uuid: str) -> None:
        client = self._clients.get(device_id)
        if client is None or not client.is_connected:
            raise TransportError(f"Not connected to {device_id}")
        handler = functools.partial(self._on_notify, device_id)
        await client.start_notify(characteristic_uuid, handler)

    def _on_notify(self, device_id: str, sender, data: bytearray) -> None:
        characteristic_uuid = str(getattr(sender, "uuid", sender))
        self._inbound.put(
            InboundData(device_id=device_id, characteristic_uuid=characteristic_uuid, data=bytes(data))
        )

    def poll_inbound(self) -> Optional[InboundData]:
        try:
            return self._inbound.get_nowait()
        except queue.Empty:
            return None

    # --- Writes ---

    def send_frame(
        self,
        device_id: str,
        service_uuid: str,
        characteristic_uuid: str,
        data: bytes,
    ) -> None:
        payload = bytes(data)
        future = self._submit(self._write(device_id, characteristic_uuid, payload))
        try:
            future.result()
        except TransmissionError:
            raise
        except Exception as e:
            raise TransmissionError(f"BLE write to {device_id} failed: {e}", frame=payload) from e

    async def _write(self, device_id: str, characteristic_uuid: str, payload: bytes) -> None:
        client = self._clients.get(device_id)
        if client is None or not client.is_connected:
            raise TransmissionError(f"Not connected to {device_id}", frame=payload)
        await client.write_gatt_char(characteristic_uuid, payload, response=True)

    # --- Lifecycle ---

    def close(self) -> None:
        """Stop scanning, disconnect every client and shut down the loop thread."""
        with self._loop_lock:
            loop, thread = self._loop, self._loop_thread
            self._loop, self._loop_thread = None, None

        if loop is None:
            return

        self.stop_scan()
        try:
            asyncio.run_coroutine_threadsafe(self._disconnect_all(), loop).result(timeout=CLOSE_TIMEOUT)
        except concurrent.futures.TimeoutError:
            logger.warning("Timed out disconnecting BLE clients")
        except Exception as e:
            logger.error(f"Error disconnecting BLE clients: {e}")

        loop.call_soon_threadsafe(loop.stop)
        if thread is not None and thread.is_alive():
            thread.join(timeout=CLOSE_TIMEOUT)
        loop.close()
        logger.info("BLE transport closed")

    async def _disconnect_all(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            try:
                await client.disconnect()
                logger.info(f"Disconnected from {client.address}")
            except BleakError as e:
                logger.warning(f"Error disconnecting {client.address}: {e}")

    def _submit(self, coro) -> concurrent.futures.Future:
        return asyncio.run_coroutine_threadsafe(coro, self._ensure_loop())

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._loop_lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=_run_loop,
                    args=(loop,),
                    daemon=True,
                    name="TrueTouchBleLoop",
                )
                thread.start()
                self._loop, self._loop_thread = loop, thread
            return self._loop


def _run_loop(loop: asyncio.AbstractEventLoop) -> None:
    asyncio.set_event_loop(loop)
    loop.run_forever()


def _drain(items: queue.Queue) -> None:
    while True:
        try:
            items.get_nowait()
        except queue.Empty:
            return


def _poll(items: queue.Queue, finished: threading.Event):
    try:
        return ScanStatus.AVAILABLE, items.get_nowait()
    except queue.Empty:
        pass
    if finished.is_set():
        # Re-check: the producer may have queued a last item before finishing
        try:
            return ScanStatus.AVAILABLE, items.get_nowait()
        except queue.Empty:
            return ScanStatus.FINISHED, None
    return ScanStatus.PENDING, None
