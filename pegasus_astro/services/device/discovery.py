"""
Serial Port Discovery

Finds PPBA units among the available serial ports. The USB serial
number prefix is the only selection criterion; no handshake happens
before connect.
"""

from typing import Callable, Iterable

from serial.tools import list_ports
from serial.tools.list_ports_common import ListPortInfo

from pegasus_astro.common.logging_setup import get_service_logger

logger = get_service_logger("device.discovery")

PRODUCT_PREFIX_LEN = 4


def serial_port_info() -> tuple[ListPortInfo, ...]:
    """All serial ports currently known to the platform"""
    return tuple(list_ports.comports())


def matches_product(info: ListPortInfo, prefix: str) -> bool:
    """True if the port's USB serial number starts with the product prefix"""
    serial_number = getattr(info, "serial_number", None)
    if not serial_number or len(serial_number) < PRODUCT_PREFIX_LEN:
        return False
    return serial_number[:PRODUCT_PREFIX_LEN] == prefix


def look_for_devices(
    prefix: str,
    ports: Iterable[ListPortInfo] | None = None,
) -> list[tuple[str, ListPortInfo]]:
    """
    Select the ports belonging to a product.

    Args:
        prefix: 4-character product prefix (e.g. "PPBA")
        ports: Port list to filter, defaults to the platform's ports

    Returns:
        (port path, port info) pairs in encounter order
    """
    if ports is None:
        ports = serial_port_info()

    found = [(info.device, info) for info in ports if matches_product(info, prefix)]
    logger.debug(f"Found {len(found)} port(s) matching {prefix}")
    return found


def device_name_for(info: ListPortInfo, base_name: str = "PegasusPowerBoxAdvanced") -> str:
    """Human-readable device name, suffixed with the serial number when known"""
    serial_number = getattr(info, "serial_number", None)
    if serial_number:
        return f"{base_name}-{serial_number}"
    return base_name


PortLister = Callable[[], Iterable[ListPortInfo]]
