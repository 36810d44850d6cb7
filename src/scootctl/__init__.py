"""
ScootCtl - BLE Scooter Controller Library

A Python library for controlling electric scooter controllers that expose a
UART-like write/notify characteristic pair over Bluetooth Low Energy.
"""

__version__ = "0.1.0"
__author__ = "OpenCode"
__description__ = (
    "CLI and REPL interface for controlling BLE electric scooter controllers"
)

from .connection import ConnectionManager, ConnectionState
from .controller import ScooterController
from .display import DisplayManager
from .scanner import ScanSession

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "DisplayManager",
    "ScanSession",
    "ScooterController",
]
