"""
Connection manager for the scooter's UART-like GATT service.

Owns a single bleak client and drives the session through
connect -> characteristic discovery -> notification subscription. Callers
issue commands as hex strings and observe the session through ``events``.

All callbacks from bleak are delivered on the event loop, so session state is
only ever mutated from that loop.
"""

import asyncio
import logging
import re
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Tuple

from bleak import BleakClient
from bleak.exc import BleakDeviceNotFoundError, BleakError

from .codec import bytes_to_hex, hex_to_bytes
from .core import CCCD_UUID, CONNECT_TIMEOUT
from .errors import (
    AdapterDisabledError,
    AdapterUnavailableError,
    ConnectionFailedError,
    InvalidAddressError,
    MalformedHexError,
    ScootctlError,
    ServicesIncompatibleError,
    TransmitRejectedError,
)
from .events import (
    ConnectionFailed,
    Connected,
    DataReceived,
    Disconnected,
    EventBus,
    ServicesDiscovered,
)

logger = logging.getLogger(__name__)

# Linux/Windows report a MAC address, macOS a CoreBluetooth UUID
_MAC_RE = re.compile(r"^[0-9A-F]{2}(?::[0-9A-F]{2}){5}$", re.IGNORECASE)
_UUID_RE = re.compile(
    r"^[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}$", re.IGNORECASE
)

WRITE_PROPERTIES = frozenset({"write", "write-without-response"})
NOTIFY_PROPERTY = "notify"

# Backend messages for adapter problems (BlueZ, CoreBluetooth, WinRT)
_ADAPTER_UNAVAILABLE_MARKERS = (
    "no bluetooth adapters",
    "bluetooth device is unsupported",
    "bluetooth is not available",
    "no bluetooth radio",
    "unsupported platform",
)
_ADAPTER_DISABLED_MARKERS = (
    "turned off",
    "powered off",
    "not powered",
    "no powered bluetooth adapters",
)


class ConnectionState(Enum):
    """Lifecycle of a GATT session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SERVICES_READY = "services_ready"


def is_valid_address(address: str) -> bool:
    """Check whether a string is a usable device address."""
    if not isinstance(address, str):
        return False
    candidate = address.strip()
    return bool(_MAC_RE.match(candidate) or _UUID_RE.match(candidate))


def find_write_and_notify(services: Iterable[Any]) -> Tuple[Optional[Any], Optional[Any]]:
    """Locate the first write-capable and first notify-capable characteristic.

    Services and characteristics are visited in discovery order. The two
    channels may come from different services.

    Args:
        services: GATT services exposing ``characteristics``

    Returns:
        Tuple of (write characteristic, notify characteristic), either may be None
    """
    write_char = None
    notify_char = None

    for service in services:
        for characteristic in service.characteristics:
            properties = set(characteristic.properties)

            if write_char is None and properties & WRITE_PROPERTIES:
                write_char = characteristic

            if notify_char is None and NOTIFY_PROPERTY in properties:
                notify_char = characteristic

            if write_char is not None and notify_char is not None:
                return write_char, notify_char

    return write_char, notify_char


def _classify_connect_error(exc: BaseException) -> ScootctlError:
    """Map a bleak/OS failure to the error taxonomy."""
    if isinstance(exc, BleakDeviceNotFoundError):
        return ConnectionFailedError(f"Device not found: {exc}")
    if isinstance(exc, asyncio.TimeoutError):
        return ConnectionFailedError("Connection attempt timed out")

    message = str(exc).lower()
    if isinstance(exc, (BleakError, OSError)):
        if any(marker in message for marker in _ADAPTER_DISABLED_MARKERS):
            return AdapterDisabledError("Bluetooth is not enabled")
        if any(marker in message for marker in _ADAPTER_UNAVAILABLE_MARKERS):
            return AdapterUnavailableError("Bluetooth adapter not available")
    return ConnectionFailedError(f"Failed to connect: {exc}")


class ConnectionManager:
    """Manages one GATT link to a scooter controller."""

    def __init__(
        self,
        client_factory: Callable[..., Any] = BleakClient,
        timeout: float = CONNECT_TIMEOUT,
        adapter: Optional[str] = None,
    ) -> None:
        """Initialize manager with no device connection.

        Args:
            client_factory: Callable building a bleak-compatible client
            timeout: Link establishment timeout in seconds
            adapter: Bluetooth adapter name (BlueZ only, e.g. "hci0")
        """
        self._client_factory = client_factory
        self._timeout = timeout
        self._adapter = adapter

        self._client: Optional[Any] = None
        self._address: Optional[str] = None
        self._state = ConnectionState.DISCONNECTED
        self._write_channel: Optional[Any] = None
        self._notify_channel: Optional[Any] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._adapter_unavailable = False

        self.events = EventBus()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def address(self) -> Optional[str]:
        """Address of the current or most recent session."""
        return self._address

    @property
    def write_channel(self) -> Optional[Any]:
        return self._write_channel

    @property
    def notify_channel(self) -> Optional[Any]:
        return self._notify_channel

    @property
    def is_connected(self) -> bool:
        """Check if a write channel is bound, i.e. commands can be sent."""
        return self._client is not None and self._write_channel is not None

    def connect(self, address: str) -> "asyncio.Task[bool]":
        """Start connecting to a device.

        Returns immediately. Progress and failures are published on
        ``events``; the returned task resolves to True once the session is
        usable for sending commands.

        Args:
            address: MAC address (or CoreBluetooth UUID on macOS)

        Returns:
            Task driving the connection sequence

        Raises:
            AdapterUnavailableError: If an earlier attempt found no adapter
        """
        if self._adapter_unavailable:
            raise AdapterUnavailableError("Bluetooth adapter not available")

        previous = self._connect_task
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.create_task(self._run_connect(address))
        self._connect_task = task
        return task

    async def _run_connect(self, address: str) -> bool:
        if not is_valid_address(address):
            error = InvalidAddressError(f"Invalid device address: {address}")
            logger.error(str(error))
            self.events.publish(ConnectionFailed(address=address, error=error))
            return False

        address = address.strip().upper()
        if self._client is not None or self._state is not ConnectionState.DISCONNECTED:
            await self.disconnect()

        self._address = address
        self._state = ConnectionState.CONNECTING
        logger.info(f"Connecting to device: {address}")

        kwargs: dict[str, Any] = {
            "disconnected_callback": self._on_link_lost,
            "timeout": self._timeout,
        }
        if self._adapter:
            kwargs["adapter"] = self._adapter
        client = None
        try:
            client = self._client_factory(address, **kwargs)
            self._client = client
            await client.connect()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = _classify_connect_error(e)
            if isinstance(error, AdapterUnavailableError):
                self._adapter_unavailable = True
            logger.error(f"{error} ({address})")
            if client is self._client:
                self._reset_session()
            self.events.publish(ConnectionFailed(address=address, error=error))
            return False

        if client is not self._client:
            return False

        self._state = ConnectionState.CONNECTED
        logger.info("Connected to GATT server")
        self.events.publish(Connected(address=address))

        return await self._discover_channels(client)

    async def _discover_channels(self, client: Any) -> bool:
        """Bind the write/notify channels and subscribe to notifications."""
        try:
            write_char, notify_char = find_write_and_notify(client.services)
        except Exception as e:
            logger.error(f"Error during service discovery: {e}")
            error = ServicesIncompatibleError(f"Service discovery failed: {e}")
            self.events.publish(ServicesDiscovered(has_both_channels=False, error=error))
            return False

        self._write_channel = write_char
        self._notify_channel = notify_char
        if write_char is not None:
            self._state = ConnectionState.SERVICES_READY

        if notify_char is not None:
            await self._enable_notifications(client, notify_char)
            if client is not self._client:
                return False

        if write_char is not None and notify_char is not None:
            logger.info("UART-like characteristics found and configured")
            self.events.publish(ServicesDiscovered(has_both_channels=True))
        else:
            logger.warning("UART-like characteristics not found")
            error = ServicesIncompatibleError(
                "Device lacks a write/notify characteristic pair "
                f"(write={'yes' if write_char else 'no'}, "
                f"notify={'yes' if notify_char else 'no'})"
            )
            self.events.publish(ServicesDiscovered(has_both_channels=False, error=error))

        return write_char is not None

    async def _enable_notifications(self, client: Any, characteristic: Any) -> None:
        """Turn on notifications through the characteristic's CCCD."""
        if characteristic.get_descriptor(CCCD_UUID) is None:
            logger.warning("CCCD descriptor not found for characteristic")
            return

        try:
            await client.start_notify(characteristic, self._on_notification)
            logger.debug(f"Notifications enabled for {characteristic.uuid}")
        except Exception as e:
            logger.error(f"Error enabling notifications: {e}")

    def _on_notification(self, sender: Any, data: bytearray) -> None:
        """Handle notification data from the device."""
        if not data:
            return
        payload = bytes(data)
        logger.debug(f"RX: {bytes_to_hex(payload)}")
        self.events.publish(DataReceived(data=payload))

    def _on_link_lost(self, client: Any) -> None:
        """Handle a disconnect reported by bleak."""
        if client is not self._client:
            # Stale client from a released session
            return
        logger.warning("Disconnected from GATT server")
        address = self._address
        self._reset_session()
        self.events.publish(Disconnected(address=address))

    def _reset_session(self) -> None:
        self._client = None
        self._state = ConnectionState.DISCONNECTED
        self._write_channel = None
        self._notify_channel = None

    async def send_command(self, hex_string: str) -> bool:
        """Send a hex string command to the connected device.

        Args:
            hex_string: Command as hex (e.g. "D707A0000101A9")

        Returns:
            True if the write was accepted by the BLE stack, False otherwise
        """
        characteristic = self._write_channel
        client = self._client
        if characteristic is None or client is None:
            logger.error("Cannot send command: not connected or no write characteristic")
            return False

        try:
            payload = hex_to_bytes(hex_string)
        except MalformedHexError as e:
            logger.error(str(e))
            return False

        response = "write-without-response" not in characteristic.properties
        try:
            await client.write_gatt_char(characteristic, payload, response=response)
        except Exception as e:
            error = TransmitRejectedError(f"Failed to write characteristic: {e}")
            logger.error(str(error))
            return False

        logger.debug(f"TX: {bytes_to_hex(payload)}")
        return True

    async def disconnect(self) -> None:
        """Release the link and clear channel bindings.

        Safe to call in any state.
        """
        task = self._connect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            self._connect_task = None

        client = self._client
        notify_char = self._notify_channel
        address = self._address
        was_active = self._state is not ConnectionState.DISCONNECTED
        self._reset_session()

        if client is not None:
            if notify_char is not None:
                try:
                    await client.stop_notify(notify_char)
                except Exception as e:
                    logger.debug(f"Stopping notifications failed: {e}")
            try:
                await client.disconnect()
            except Exception as e:
                logger.error(f"Error during disconnect: {e}")

        if was_active:
            logger.info("Disconnected")
            self.events.publish(Disconnected(address=address))

    async def cleanup(self) -> None:
        """Disconnect and detach all subscribers."""
        await self.disconnect()
        self.events.clear()
