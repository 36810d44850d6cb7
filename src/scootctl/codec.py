"""
Command codec for the scooter controller wire protocol.

Maps semantic commands (driving mode, lock state, speed limit, advanced mode)
to the hex-framed commands the controller accepts, and converts between hex
strings and byte payloads.

Driving mode, lock and speed commands are literal values captured from the
device. Only the advanced mode family has a known checksum rule, so the other
tables must stay literal until re-validated against hardware.
"""

import re
from enum import Enum
from typing import Optional

from .core import MODE_MAX, MODE_MIN, SPEED_MAX, SPEED_MIN
from .errors import MalformedHexError

WireCommand = str

ADVANCED_MODE_PREFIX = "D706A3"
FRAME_TERMINATOR = "0D0A"
CHECKSUM_BASE = 0xA9

_WHITESPACE_RE = re.compile(r"\s+")
_HEX_PAIR_RE = re.compile(r"^[0-9A-Fa-f]{2}$")


class DrivingMode(Enum):
    """Available driving modes."""

    ECO = 0
    NORMAL = 1
    SPORT = 2
    DEVELOPER = 3


class LockState(Enum):
    """Lock states."""

    LOCKED = "locked"
    UNLOCKED = "unlocked"


_DRIVING_MODE_COMMANDS = {
    DrivingMode.ECO: "D707A45A00005",
    DrivingMode.NORMAL: "D706A30001AA",
    DrivingMode.SPORT: "D706A30002AB",
    DrivingMode.DEVELOPER: "D706A30003AC",
}

_DRIVING_MODE_DESCRIPTIONS = {
    DrivingMode.ECO: "ECO Mode - Maximum efficiency",
    DrivingMode.NORMAL: "Normal Mode - Balanced performance",
    DrivingMode.SPORT: "Sport Mode - Maximum performance",
    DrivingMode.DEVELOPER: "Developer Mode - Advanced settings",
}

_LOCK_COMMANDS = {
    LockState.LOCKED: "D707A0000101A9",
    LockState.UNLOCKED: "D707A0000301AB",
}

_SPEED_LIMIT_COMMANDS = {
    8: "D707A900005000",
    9: "D707A900005A0A",
    10: "D707A900006414",
    11: "D707A900006E1E",
    12: "D707A900007828",
    13: "D707A900008232",
    14: "D707A900008C3C",
    15: "D707A900009646",
    16: "D707A90000A050",
    17: "D707A90000AA5A",
    18: "D707A90000B464",
    19: "D707A90000BE6E",
    20: "D707A90000C878",
    21: "D707A90000D282",
    22: "D707A90000DC8C",
    23: "D707A90000E696",
    24: "D707A90000F0A0",
    25: "D707A90000FAAA",
    26: "D707A9000104B5",
    27: "D707A900010EBF",
    28: "D707A9000118C9",
    29: "D707A9000122D3",
    30: "D707A900012CDD",
}


def driving_mode_command(mode: DrivingMode) -> WireCommand:
    """Get the command selecting a driving mode.

    Args:
        mode: Desired driving mode

    Returns:
        Hex command string
    """
    return _DRIVING_MODE_COMMANDS[mode]


def driving_mode_description(mode: DrivingMode) -> str:
    """Get a human-readable description of a driving mode."""
    return _DRIVING_MODE_DESCRIPTIONS[mode]


def lock_command(state: LockState) -> WireCommand:
    """Get the command locking or unlocking the scooter.

    Args:
        state: Desired lock state

    Returns:
        Hex command string
    """
    return _LOCK_COMMANDS[state]


def speed_limit_command(speed_kmh: int) -> WireCommand:
    """Get the command setting the speed limit.

    Values outside the supported range fall back to the slowest entry.

    Args:
        speed_kmh: Speed limit in km/h (8 to 30)

    Returns:
        Hex command string
    """
    return _SPEED_LIMIT_COMMANDS.get(speed_kmh, _SPEED_LIMIT_COMMANDS[SPEED_MIN])


def is_valid_speed(speed_kmh: int) -> bool:
    """Check whether a speed limit has a table entry."""
    return SPEED_MIN <= speed_kmh <= SPEED_MAX


def checksum(mode: int) -> int:
    """Checksum byte of an advanced mode frame."""
    return (CHECKSUM_BASE + mode) & 0xFF


def advanced_mode_command(mode: int) -> Optional[WireCommand]:
    """Build the D706A3 command selecting an advanced mode.

    Layout: D706A3 + mode (2 bytes, big endian) + checksum (1 byte) + 0D0A.

    Args:
        mode: Mode number (0 to 254)

    Returns:
        Hex command string, or None if the mode is out of range
    """
    if not is_valid_mode(mode):
        return None
    return f"{ADVANCED_MODE_PREFIX}{mode:04X}{checksum(mode):02X}{FRAME_TERMINATOR}"


def is_valid_mode(mode: int) -> bool:
    """Check whether an advanced mode number is addressable."""
    return MODE_MIN <= mode <= MODE_MAX


def hex_to_bytes(hex_string: str) -> bytes:
    """Convert a hex string to bytes.

    All whitespace is ignored, so "D7 07 A0" and "D707A0" are equivalent.

    Args:
        hex_string: Hex command string

    Returns:
        Decoded payload

    Raises:
        MalformedHexError: If the string has odd length or non-hex characters
    """
    cleaned = _WHITESPACE_RE.sub("", hex_string)
    if len(cleaned) % 2 != 0:
        raise MalformedHexError(f"Hex string must have even length: {hex_string!r}")

    payload = bytearray()
    for i in range(0, len(cleaned), 2):
        pair = cleaned[i : i + 2]
        if not _HEX_PAIR_RE.match(pair):
            raise MalformedHexError(
                f"Invalid hex string: contains non-hex characters: {hex_string!r}"
            )
        payload.append(int(pair, 16))
    return bytes(payload)


def bytes_to_hex(data: bytes) -> str:
    """Convert bytes to an uppercase hex string without separators."""
    return "".join(f"{b:02X}" for b in data)
