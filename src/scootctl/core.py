"""
Core constants for scooter controller communication.
"""

# Client Characteristic Configuration Descriptor, used to turn notifications on
CCCD_UUID = "00002902-0000-1000-8000-00805f9b34fb"

# Speed limit constraints (km/h), as accepted by the controller firmware
SPEED_MIN = 8
SPEED_MAX = 30

# Advanced mode numbers selectable through the D706A3 frame family
MODE_MIN = 0
MODE_MAX = 254

# Scan duration in seconds, 0 disables the automatic stop
SCAN_PERIOD = 12.0

# Link establishment timeout handed to bleak
CONNECT_TIMEOUT = 10.0

# Application metadata
__version__ = "0.1.0"
__author__ = "OpenCode"
__description__ = "CLI and REPL interface for controlling BLE electric scooter controllers"
