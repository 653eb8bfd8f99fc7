"""
Common Utilities

Shared modules used across all services:
- config.py - Configuration dataclasses
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
"""

from .config import (
    DriverConfig,
    SerialSettings,
    RefreshSettings,
    MqttSettings,
    RpcSettings,
    HealthSettings,
    load_driver_config,
    load_config_file,
)
from .exceptions import (
    DeviceAction,
    PegasusError,
    ConfigError,
    DeviceError,
    DeviceConnectionError,
    ComError,
    DeviceTimeoutError,
    InvalidValueError,
    UnknownPropertyError,
    ReadOnlyPropertyError,
    DeviceNotFoundError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    log_device_read,
    log_device_write,
)

__all__ = [
    # Config
    "DriverConfig",
    "SerialSettings",
    "RefreshSettings",
    "MqttSettings",
    "RpcSettings",
    "HealthSettings",
    "load_driver_config",
    "load_config_file",
    # Exceptions
    "DeviceAction",
    "PegasusError",
    "ConfigError",
    "DeviceError",
    "DeviceConnectionError",
    "ComError",
    "DeviceTimeoutError",
    "InvalidValueError",
    "UnknownPropertyError",
    "ReadOnlyPropertyError",
    "DeviceNotFoundError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "log_device_read",
    "log_device_write",
]
