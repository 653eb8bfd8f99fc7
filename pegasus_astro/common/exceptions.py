"""
Custom Exception Classes for the Pegasus Astro driver

Hierarchical exception structure for error handling across services.
Every device-level error carries the DeviceAction status code that is
reported back to control-plane callers.
"""

from enum import IntEnum


class DeviceAction(IntEnum):
    """Status codes reported to control-plane callers"""
    OK = 0
    COM_ERROR = 1
    CANNOT_CONNECT = 2
    TIMEOUT = 3
    INVALID_VALUE = 4
    UNKNOWN_PROPERTY = 5
    CANNOT_UPDATE_READ_ONLY_PROPERTY = 6


class PegasusError(Exception):
    """Base exception for all driver errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(PegasusError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class DeviceError(PegasusError):
    """Device communication errors"""

    action = DeviceAction.COM_ERROR

    def __init__(
        self,
        message: str,
        device_id: str | None = None,
        device_name: str | None = None,
        recoverable: bool = True,
    ):
        self.device_id = device_id
        self.device_name = device_name
        self.detail = message
        super().__init__(f"Device Error: {message}", recoverable)


class DeviceConnectionError(DeviceError):
    """Port could not be opened or the startup probe failed"""

    action = DeviceAction.CANNOT_CONNECT

    def __init__(
        self,
        message: str,
        address: str | None = None,
        device_name: str | None = None,
    ):
        self.address = address
        super().__init__(message, device_name=device_name, recoverable=False)


class ComError(DeviceError):
    """Serial I/O failure other than a timeout, the device is presumed gone"""

    action = DeviceAction.COM_ERROR

    def __init__(
        self,
        message: str,
        device_id: str | None = None,
        device_name: str | None = None,
    ):
        super().__init__(message, device_id, device_name, recoverable=False)


class DeviceTimeoutError(DeviceError):
    """No frame terminator received within the command deadline"""

    action = DeviceAction.TIMEOUT

    def __init__(
        self,
        message: str,
        device_id: str | None = None,
        device_name: str | None = None,
        timeout_s: float | None = None,
    ):
        self.timeout_s = timeout_s
        super().__init__(message, device_id, device_name, recoverable=True)


class InvalidValueError(DeviceError):
    """Value rejected by the device (ERR sentinel) or not parseable as its kind"""

    action = DeviceAction.INVALID_VALUE

    def __init__(
        self,
        message: str,
        device_id: str | None = None,
        device_name: str | None = None,
        value: str | None = None,
    ):
        self.value = value
        super().__init__(message, device_id, device_name, recoverable=True)


class UnknownPropertyError(DeviceError):
    """Property name not part of the device schema"""

    action = DeviceAction.UNKNOWN_PROPERTY

    def __init__(self, prop_name: str, device_id: str | None = None, device_name: str | None = None):
        self.prop_name = prop_name
        super().__init__(f"Unknown property '{prop_name}'", device_id, device_name)


class ReadOnlyPropertyError(DeviceError):
    """Attempt to write a ReadOnly property"""

    action = DeviceAction.CANNOT_UPDATE_READ_ONLY_PROPERTY

    def __init__(self, prop_name: str, device_id: str | None = None, device_name: str | None = None):
        self.prop_name = prop_name
        super().__init__(f"Property '{prop_name}' is read only", device_id, device_name)


class DeviceNotFoundError(PegasusError):
    """No registered device with this id"""

    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(f"Device not found: {device_id}")
