"""
High-level scooter control on top of the connection manager.

Translates semantic requests (driving mode, lock, speed limit, advanced mode)
into wire commands, validates user input before a command is produced, and
remembers the last manually connected device.
"""

import asyncio
import logging
from typing import Any, Optional

from .codec import (
    DrivingMode,
    LockState,
    advanced_mode_command,
    driving_mode_command,
    is_valid_mode,
    is_valid_speed,
    lock_command,
    speed_limit_command,
)
from .connection import ConnectionManager, ConnectionState
from .core import MODE_MAX, MODE_MIN, SPEED_MAX, SPEED_MIN
from .errors import AdapterUnavailableError
from .events import EventBus
from .store import LastDeviceStore

logger = logging.getLogger(__name__)


class ScooterController:
    """Manages connection and control of a BLE scooter controller."""

    SPEED_MIN = SPEED_MIN
    SPEED_MAX = SPEED_MAX
    MODE_MIN = MODE_MIN
    MODE_MAX = MODE_MAX

    def __init__(
        self,
        manager: Optional[ConnectionManager] = None,
        store: Optional[LastDeviceStore] = None,
    ) -> None:
        """Initialize controller.

        Args:
            manager: Connection manager (creates a bleak-backed one if None)
            store: Last device store (platform cache file if None)
        """
        self.manager = manager or ConnectionManager()
        self.store = store or LastDeviceStore()

    @property
    def events(self) -> EventBus:
        return self.manager.events

    @property
    def is_connected(self) -> bool:
        """Check if commands can be sent."""
        return self.manager.is_connected

    @property
    def address(self) -> Optional[str]:
        return self.manager.address

    async def connect(self, address: str, remember: bool = True) -> bool:
        """Connect to a device and wait until it is usable.

        Args:
            address: Device address
            remember: Cache the address for the next start on success

        Returns:
            True if connected with a write channel, False otherwise
        """
        if self.is_connected and self.manager.address == address.strip().upper():
            logger.warning("Already connected")
            return True

        try:
            task = self.manager.connect(address)
        except AdapterUnavailableError as e:
            logger.error(str(e))
            return False

        await asyncio.wait({task})
        if task.cancelled():
            logger.warning("Connection attempt cancelled")
            return False

        connected = task.result()
        if connected and remember and self.manager.address:
            self.store.save(self.manager.address)
        return connected

    async def reconnect_last(self) -> bool:
        """Connect to the cached device address, if any.

        Returns:
            True if connected, False if nothing cached or connection failed
        """
        address = self.store.load()
        if not address:
            logger.info("No cached device address")
            return False

        logger.info(f"Trying cached address: {address}")
        return await self.connect(address, remember=False)

    async def disconnect(self) -> None:
        """Disconnect from device."""
        await self.manager.disconnect()

    def forget_device(self) -> None:
        """Clear the cached device address."""
        self.store.clear()

    async def set_driving_mode(self, mode: DrivingMode) -> bool:
        """Select ECO, Normal, Sport or Developer mode."""
        return await self._send(driving_mode_command(mode), f"driving mode {mode.name}")

    async def set_lock(self, state: LockState) -> bool:
        """Lock or unlock the scooter."""
        return await self._send(lock_command(state), state.value)

    async def set_speed_limit(self, speed_kmh: int) -> bool:
        """Set speed limit in km/h.

        Args:
            speed_kmh: Speed limit (8 to 30)

        Returns:
            True if the command was sent, False if invalid or not sent
        """
        if not is_valid_speed(speed_kmh):
            logger.error(f"Speed {speed_kmh} out of range [{self.SPEED_MIN}, {self.SPEED_MAX}]")
            return False
        return await self._send(speed_limit_command(speed_kmh), f"speed limit {speed_kmh} km/h")

    async def set_advanced_mode(self, mode: int) -> bool:
        """Select an advanced mode by number.

        Args:
            mode: Mode number (0 to 254)

        Returns:
            True if the command was sent, False if invalid or not sent
        """
        if not is_valid_mode(mode):
            logger.error(f"Mode {mode} out of range [{self.MODE_MIN}, {self.MODE_MAX}]")
            return False
        command = advanced_mode_command(mode)
        if command is None:
            return False
        return await self._send(command, f"advanced mode {mode}")

    async def send_hex(self, hex_string: str) -> bool:
        """Send a raw hex command."""
        if not hex_string.strip():
            logger.error("Empty hex command")
            return False
        return await self._send(hex_string.strip(), "raw command")

    async def _send(self, command: str, label: str) -> bool:
        if not self.is_connected:
            logger.error("Not connected")
            return False

        sent = await self.manager.send_command(command)
        if sent:
            logger.info(f"Sent {label}: {command}")
        else:
            logger.error(f"Sending {label} failed")
        return sent

    def get_status(self) -> dict[str, Any]:
        """Get a snapshot of the connection.

        Returns:
            Dictionary with state, address, channel UUIDs and cached address
        """
        write_char = self.manager.write_channel
        notify_char = self.manager.notify_channel
        state = self.manager.state
        return {
            "state": state.name,
            "address": self.manager.address if state is not ConnectionState.DISCONNECTED else None,
            "write_channel": getattr(write_char, "uuid", None),
            "notify_channel": getattr(notify_char, "uuid", None),
            "cached_address": self.store.load(),
        }

    async def cleanup(self) -> None:
        """Release the connection and detach subscribers."""
        await self.manager.cleanup()
