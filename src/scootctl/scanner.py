"""
Timed BLE discovery scan feeding a DeviceCatalog.

Each advertisement is reported as soon as it is seen. Whenever the catalog
changes the filtered view is published as a ScanResults event.
"""

import asyncio
import logging
from typing import Any, Callable, Iterable, List, Optional, Union

from bleak import BleakScanner

from .catalog import DeviceCatalog, Peripheral
from .core import SCAN_PERIOD
from .events import EventBus, ScanFailed, ScanFinished, ScanResults

logger = logging.getLogger(__name__)


class ScanSession:
    """Drives one discovery scan at a time."""

    def __init__(
        self,
        catalog: Optional[DeviceCatalog] = None,
        scanner_factory: Callable[..., Any] = BleakScanner,
        adapter: Optional[str] = None,
    ) -> None:
        """Initialize an idle scan session.

        Args:
            catalog: Catalog to fill (creates one if None)
            scanner_factory: Callable building a bleak-compatible scanner
            adapter: Bluetooth adapter name (BlueZ only, e.g. "hci0")
        """
        self.catalog = catalog if catalog is not None else DeviceCatalog()
        self.events = EventBus()
        self._scanner_factory = scanner_factory
        self._adapter = adapter
        self._scanner: Optional[Any] = None
        self._running = False
        self._include_unnamed = True
        self._stop_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def include_unnamed(self) -> bool:
        return self._include_unnamed

    @include_unnamed.setter
    def include_unnamed(self, value: bool) -> None:
        """Change the name filter and republish the current view."""
        if value == self._include_unnamed:
            return
        self._include_unnamed = value
        self._publish_view()

    def results(self) -> List[Peripheral]:
        """Current filtered view of the catalog."""
        return list(self.catalog.filtered_view(self._include_unnamed))

    async def start(self, duration: float = SCAN_PERIOD, include_unnamed: bool = True) -> bool:
        """Start scanning.

        Args:
            duration: Seconds before the scan stops itself, 0 to run until stopped
            include_unnamed: Whether results include devices without a name

        Returns:
            True if the scan started, False if already running or it failed
        """
        if self._running:
            logger.warning("Scan already running")
            return False

        self._include_unnamed = include_unnamed
        self.catalog.reset()
        self._running = True
        logger.info("Starting BLE scan")

        kwargs: dict[str, Any] = {
            "detection_callback": self._on_detect,
            "scanning_mode": "active",
        }
        if self._adapter:
            kwargs["adapter"] = self._adapter

        try:
            self._scanner = self._scanner_factory(**kwargs)
            await self._scanner.start()
        except Exception as e:
            logger.error(f"Error starting scan: {e}")
            await self.on_scan_failed(str(e))
            return False

        if duration > 0:
            self._stop_task = asyncio.create_task(self._auto_stop(duration))
        return True

    async def _auto_stop(self, duration: float) -> None:
        await asyncio.sleep(duration)
        self._stop_task = None
        await self.stop()

    async def stop(self) -> None:
        """Stop scanning. Safe to call when not running."""
        if await self._halt():
            self.events.publish(ScanFinished(device_count=len(self.catalog)))

    async def _halt(self) -> bool:
        task = self._stop_task
        self._stop_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        if not self._running:
            return False
        self._running = False

        scanner = self._scanner
        self._scanner = None
        if scanner is not None:
            try:
                await scanner.stop()
                logger.info("Scan stopped")
            except Exception as e:
                logger.error(f"Error stopping scan: {e}")
        return True

    async def on_scan_failed(self, code: Union[int, str]) -> None:
        """Abort the session and report the failure.

        Args:
            code: Backend error code or message
        """
        logger.error(f"Scan failed with error code: {code}")
        await self._halt()
        self.events.publish(ScanFailed(code=code))

    def _on_detect(self, device: Any, advertisement_data: Any) -> None:
        """bleak detection callback."""
        if not self._running:
            return
        name = getattr(advertisement_data, "local_name", None) or device.name
        rssi = getattr(advertisement_data, "rssi", None)
        self.report([Peripheral(address=device.address, name=name, rssi=rssi)])

    def report(self, peripherals: Iterable[Peripheral]) -> bool:
        """Merge one or more sightings into the catalog.

        Args:
            peripherals: Sightings, single or batched

        Returns:
            True if the catalog changed
        """
        changed = False
        for peripheral in peripherals:
            if self.catalog.upsert(peripheral):
                changed = True
            logger.debug(
                f"Device found: name={peripheral.name}, address={peripheral.address}, "
                f"rssi={peripheral.rssi}"
            )

        if changed:
            self._publish_view()
        return changed

    def _publish_view(self) -> None:
        self.events.publish(ScanResults(peripherals=tuple(self.results())))
