"""Domain-specific errors for scootctl."""


class ScootctlError(Exception):
    """Base error for scootctl."""


class AdapterUnavailableError(ScootctlError):
    """Raised when the host has no usable Bluetooth adapter."""


class AdapterDisabledError(ScootctlError):
    """Raised when the Bluetooth adapter exists but is powered off."""


class InvalidAddressError(ScootctlError):
    """Raised when a device address is not a valid hardware identifier."""


class ConnectionFailedError(ScootctlError):
    """Raised when a GATT link cannot be established."""


class ServicesIncompatibleError(ScootctlError):
    """Raised when a device lacks the required write/notify characteristic pair."""


class MalformedHexError(ScootctlError, ValueError):
    """Raised when a hex command string cannot be decoded into bytes."""


class TransmitRejectedError(ScootctlError):
    """Raised when the BLE stack refuses a characteristic write."""
