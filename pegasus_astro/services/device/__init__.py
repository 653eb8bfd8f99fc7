"""
Device Service - PPBA Serial Communication

Responsibilities:
- Discover PPBA units by USB serial number prefix
- Own one serial link per device
- Refresh device properties at a fixed interval
- Apply property writes and report their status
"""

from .device_manager import DeviceListener, DeviceManager, DeviceStatus
from .powerbox import PowerBoxDevice, device_id_for
from .service import DeviceService

__all__ = [
    "DeviceListener",
    "DeviceManager",
    "DeviceStatus",
    "DeviceService",
    "PowerBoxDevice",
    "device_id_for",
]
