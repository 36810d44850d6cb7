"""
Persistence of the last connected device address.

A single JSON file under the platform cache directory holds the address. The
store is created by the caller and handed to the controller explicitly.
"""

import json
import logging
import os
import platform
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

APP_DIR_NAME = "scootctl"
CACHE_FILE_NAME = "device_address.json"


def default_cache_file() -> Path:
    """Get the standard cache file location for the device address."""
    # Check XDG_CACHE_HOME first (Linux/Unix standard)
    cache_dir = os.environ.get("XDG_CACHE_HOME")
    if cache_dir:
        cache_path = Path(cache_dir) / APP_DIR_NAME
    else:
        system = platform.system()
        if system == "Darwin":
            cache_path = Path.home() / "Library" / "Caches" / APP_DIR_NAME
        elif system == "Windows":
            local_appdata = os.environ.get("LOCALAPPDATA")
            if local_appdata:
                cache_path = Path(local_appdata) / APP_DIR_NAME
            else:
                appdata = os.environ.get(
                    "APPDATA", str(Path.home() / "AppData" / "Roaming")
                )
                cache_path = Path(appdata) / APP_DIR_NAME
        else:
            cache_path = Path.home() / ".cache" / APP_DIR_NAME

    return cache_path / CACHE_FILE_NAME


class LastDeviceStore:
    """Reads and writes the last connected device address."""

    def __init__(self, path: Optional[Path] = None) -> None:
        """Initialize store.

        Args:
            path: JSON file location (platform cache directory if None)
        """
        self.path = path or default_cache_file()

    def load(self) -> Optional[str]:
        """Load the cached device address.

        Returns:
            Cached address string if available, None otherwise
        """
        try:
            if self.path.exists():
                with open(self.path, "r") as f:
                    data = json.load(f)
                address = data.get("address") if isinstance(data, dict) else None
                return address or None
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load cached address: {e}")
        return None

    def save(self, address: str) -> None:
        """Save the device address.

        Args:
            address: Bluetooth address to cache
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump({"address": address}, f, indent=2)
            logger.info(f"Cached device address: {address}")
        except OSError as e:
            logger.warning(f"Failed to save cached address: {e}")

    def clear(self) -> None:
        """Forget the cached address."""
        try:
            if self.path.exists():
                self.path.unlink()
                logger.info("Cleared cached device address")
        except OSError as e:
            logger.warning(f"Failed to clear cached address: {e}")
