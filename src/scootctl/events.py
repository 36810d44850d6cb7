"""
Events published by the connection manager and scan session.

Callers subscribe with a callback or consume ``EventBus.stream()`` from a
task. Subscriber failures are logged and never reach the BLE callbacks that
publish events.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncGenerator, Callable, List, Optional, Tuple, Union

from .catalog import Peripheral
from .codec import bytes_to_hex
from .errors import ScootctlError, ServicesIncompatibleError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Connected:
    """GATT link established."""

    address: str


@dataclass(frozen=True)
class Disconnected:
    """GATT link released or lost."""

    address: Optional[str]


@dataclass(frozen=True)
class ConnectionFailed:
    """Connection attempt failed."""

    address: str
    error: ScootctlError

    @property
    def reason(self) -> str:
        """Human-readable failure message."""
        return str(self.error)


@dataclass(frozen=True)
class ServicesDiscovered:
    """Characteristic discovery finished."""

    has_both_channels: bool
    error: Optional[ServicesIncompatibleError] = None


@dataclass(frozen=True)
class DataReceived:
    """Notification payload from the device."""

    data: bytes

    @property
    def hex(self) -> str:
        """Payload as uppercase hex without separators."""
        return bytes_to_hex(self.data)


@dataclass(frozen=True)
class ScanResults:
    """Filtered catalog view after a change."""

    peripherals: Tuple[Peripheral, ...]


@dataclass(frozen=True)
class ScanFailed:
    """Scan could not run."""

    code: Union[int, str]


@dataclass(frozen=True)
class ScanFinished:
    """A running scan ended."""

    device_count: int


Event = Union[
    Connected,
    Disconnected,
    ConnectionFailed,
    ServicesDiscovered,
    DataReceived,
    ScanResults,
    ScanFailed,
    ScanFinished,
]

Subscriber = Callable[[Event], None]


class EventBus:
    """Publish/subscribe hub for events."""

    def __init__(self, queue_size: int = 100) -> None:
        self._subscribers: List[Subscriber] = []
        self._queue_size = queue_size

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for all events.

        Args:
            callback: Function called with each published event

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: Event) -> None:
        """Deliver an event to every subscriber."""
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event subscriber error: {e}")

    def clear(self) -> None:
        """Detach all subscribers."""
        self._subscribers.clear()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def stream(self) -> AsyncGenerator[Event, None]:
        """Async generator that yields events as they are published.

        Yields:
            Events in publication order
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)

        def _enqueue(event: Event) -> None:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Slow consumer, drop rather than block the BLE callback
                pass

        unsubscribe = self.subscribe(_enqueue)
        try:
            while True:
                yield await queue.get()
        finally:
            unsubscribe()
