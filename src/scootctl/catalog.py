"""
Catalog of peripherals discovered during a scan.

Entries are keyed by hardware address and kept in first-seen order. An entry
seen without a name is upgraded in place when a named advertisement arrives,
so list positions stay stable while a scan is running.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, Optional

UNKNOWN_DEVICE_NAME = "Unknown Device"


@dataclass(frozen=True)
class Peripheral:
    """A discovered BLE device."""

    address: str
    name: Optional[str] = None
    rssi: Optional[int] = None

    @property
    def has_name(self) -> bool:
        """Check if the device advertised a non-blank name."""
        return bool(self.name and self.name.strip())

    @property
    def display_name(self) -> str:
        """Name suitable for display, never empty."""
        return self.name.strip() if self.has_name else UNKNOWN_DEVICE_NAME  # type: ignore[union-attr]


class DeviceCatalog:
    """Deduplicating, order-preserving collection of peripherals."""

    def __init__(self) -> None:
        self._entries: Dict[str, Peripheral] = {}

    def upsert(self, peripheral: Peripheral) -> bool:
        """Insert a peripheral or upgrade an unnamed entry.

        Args:
            peripheral: Newly sighted peripheral

        Returns:
            True if the catalog content changed, False otherwise
        """
        existing = self._entries.get(peripheral.address)
        if existing is None or (not existing.has_name and peripheral.has_name):
            # Reassigning an existing key keeps its insertion position
            self._entries[peripheral.address] = peripheral
            return True
        return False

    def reset(self) -> None:
        """Remove all entries."""
        self._entries.clear()

    def filtered_view(self, include_unnamed: bool = True) -> Iterator[Peripheral]:
        """Iterate entries in insertion order.

        Args:
            include_unnamed: Whether to yield entries without a usable name

        Yields:
            Peripherals passing the filter
        """
        for peripheral in list(self._entries.values()):
            if include_unnamed or peripheral.has_name:
                yield peripheral

    def get(self, address: str) -> Optional[Peripheral]:
        """Look up an entry by address."""
        return self._entries.get(address)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, address: object) -> bool:
        return address in self._entries
