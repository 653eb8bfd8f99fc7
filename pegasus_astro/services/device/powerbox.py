"""
Pegasus Pocket Powerbox Advance

One physical PPBA behind an exclusively owned serial link. The device
keeps a PropertyTable mirroring the hardware and exposes connect,
refresh and update operations, each serialized by a per-device lock.
"""

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum

from pegasus_astro.common.exceptions import (
    ComError,
    DeviceConnectionError,
    DeviceError,
    InvalidValueError,
    UnknownPropertyError,
)
from pegasus_astro.common.logging_setup import get_service_logger, log_device_write
from .properties import Permission, Property, PropertyKind, PropertySpec, PropertyTable
from .protocol import Command, split_fields
from .serial_link import SerialLink

logger = get_service_logger("device.powerbox")

# Ids are derived from the device name so a power-cycled unit keeps its id
DEVICE_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "pegasusastro.com")

UNKNOWN_FIRMWARE = "UNKNOWN"


def device_id_for(name: str) -> str:
    """Stable identifier for a device name"""
    return str(uuid.uuid5(DEVICE_NAMESPACE, name))


class DeviceState(str, Enum):
    DISCONNECTED = "disconnected"
    PROBING = "probing"
    READY = "ready"
    REFRESHING = "refreshing"
    UPDATING = "updating"


@dataclass(frozen=True)
class ResponseGroup:
    """A fetch command and the fixed positional schema of its response"""
    label: str
    command: Command
    specs: tuple[PropertySpec, ...]

    def parse(self, response: str) -> list[Property]:
        fields = split_fields(response)
        if len(fields) < len(self.specs):
            raise InvalidValueError(
                f"{self.label}: expected {len(self.specs)} fields, got {len(fields)}",
                value=response,
            )
        # Extra trailing fields (e.g. the uptime that ends a PC response) are ignored
        return [spec.build(raw) for spec, raw in zip(self.specs, fields)]


FLOAT = PropertyKind.FLOAT
INT = PropertyKind.INTEGER
BOOL = PropertyKind.BOOLEAN
RW = Permission.READ_WRITE

WRITE_ONLY_DEFAULTS: tuple[tuple[PropertySpec, str], ...] = (
    (PropertySpec("reboot", BOOL, Permission.WRITE_ONLY), "0"),
    (PropertySpec("power_status_on_boot", PropertyKind.STRING, Permission.WRITE_ONLY), "1111"),
)

POWER_STATS = ResponseGroup("power consumption and stats", Command.POWER_CONSUMPTION_STATS, (
    PropertySpec("average_amps", FLOAT),
    PropertySpec("amps_hours", FLOAT),
    PropertySpec("watt_hours", FLOAT),
    PropertySpec("uptime", INT),
))

POWER_METRICS = ResponseGroup("power metrics", Command.POWER_METRICS, (
    PropertySpec("total_current", FLOAT),
    PropertySpec("current_12V_output", FLOAT),
    PropertySpec("current_dewA", FLOAT),
    PropertySpec("current_dewB", FLOAT),
))

POWER_SENSOR_READINGS = ResponseGroup("power and sensor readings", Command.POWER_SENSOR_READINGS, (
    PropertySpec("input_voltage", FLOAT),
    PropertySpec("current", FLOAT),
    PropertySpec("temp", FLOAT),
    PropertySpec("humidity", FLOAT),
    PropertySpec("dew_point", FLOAT),
    PropertySpec("quadport_status", BOOL, RW),
    PropertySpec("adj_output_status", BOOL),
    PropertySpec("dew1_power", INT, RW),
    PropertySpec("dew2_power", INT, RW),
    PropertySpec("autodew_bool", BOOL),
    PropertySpec("pwr_warn", BOOL),
    PropertySpec("adjustable_output", INT, RW),
))

# Fetched by every refresh, in this order
REFRESH_GROUPS = (POWER_STATS, POWER_METRICS, POWER_SENSOR_READINGS)

FIRMWARE_VERSION = PropertySpec("firmware_version", PropertyKind.STRING)

WRITE_COMMANDS: dict[str, Command] = {
    "adjustable_output": Command.ADJUSTABLE_OUTPUT,
    "quadport_status": Command.QUAD_PORT_STATUS,
    "dew1_power": Command.DEW_A_POWER,
    "dew2_power": Command.DEW_B_POWER,
    "power_status_on_boot": Command.POWER_STATUS_ON_BOOT,
    "reboot": Command.REBOOT,
}

NO_VALUE_COMMANDS = frozenset({Command.REBOOT})


def _group_offsets() -> list[tuple[ResponseGroup, int]]:
    offsets = []
    offset = len(WRITE_ONLY_DEFAULTS)
    for group in REFRESH_GROUPS:
        offsets.append((group, offset))
        offset += len(group.specs)
    return offsets


GROUP_OFFSETS = _group_offsets()


class PowerBoxDevice:
    """
    Pegasus Pocket Powerbox Advance.

    Lifecycle: DISCONNECTED -> PROBING -> READY -> (REFRESHING | UPDATING)*
    and back to DISCONNECTED on a communication failure or disconnect().
    Refresh and update on the same device never overlap.
    """

    def __init__(
        self,
        name: str,
        address: str,
        baud: int = 9600,
        timeout: float = 0.5,
        link: SerialLink | None = None,
    ):
        self.id = device_id_for(name)
        self.name = name
        self.address = address
        self.baud = baud
        self.timeout = timeout
        self.properties = PropertyTable()
        self.state = DeviceState.DISCONNECTED

        self._link = link or SerialLink(address, baud, timeout)
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"PowerBoxDevice(name={self.name!r}, address={self.address!r}, state={self.state.value})"

    @property
    def is_connected(self) -> bool:
        return self.state != DeviceState.DISCONNECTED

    @classmethod
    async def connect(
        cls,
        name: str,
        address: str,
        baud: int = 9600,
        timeout: float = 0.5,
        link: SerialLink | None = None,
    ) -> "PowerBoxDevice":
        """
        Open the port, probe the device and fetch its full property set.

        Raises:
            DeviceConnectionError: port could not be opened, or the probe
                or initial fetch failed
        """
        device = cls(name, address, baud, timeout, link)
        await device._connect()
        return device

    async def _connect(self) -> None:
        async with self._lock:
            self.state = DeviceState.PROBING
            logger.info(f"Connecting to {self.name} on {self.address}")

            try:
                await self._run(self._link.open)
                await self._send(Command.STATUS)

                props = [spec.build(default) for spec, default in WRITE_ONLY_DEFAULTS]
                for group in REFRESH_GROUPS:
                    props.extend(await self._fetch_group(group))
                props.append(await self._firmware_version())

                if self.state == DeviceState.DISCONNECTED:
                    raise ComError("Connection lost during initial fetch")
            except DeviceConnectionError as e:
                self.state = DeviceState.DISCONNECTED
                e.device_name = self.name
                raise
            except DeviceError as e:
                self.state = DeviceState.DISCONNECTED
                await self._run(self._link.close)
                raise DeviceConnectionError(
                    f"{self.name} did not answer on {self.address}: {e.detail}",
                    address=self.address,
                    device_name=self.name,
                ) from e

            self.properties.replace_or_merge(props)
            self.state = DeviceState.READY

        logger.info(
            f"Connected to {self.name} ({self.id})",
            extra={"device_id": self.id, "address": self.address},
        )

    async def disconnect(self) -> None:
        """Close the serial link"""
        async with self._lock:
            await self._run(self._link.close)
            self.state = DeviceState.DISCONNECTED

    async def refresh(self) -> None:
        """
        Fetch the three reading groups in order and merge each into the table.

        The first failure aborts the refresh: groups already merged stay
        merged, later groups are left untouched.
        """
        async with self._lock:
            self._require_connected()
            self.state = DeviceState.REFRESHING
            logger.debug(f"Refreshing properties for {self.name}")
            try:
                for group, offset in GROUP_OFFSETS:
                    props = await self._fetch_group(group)
                    self.properties.replace_or_merge(props, offset)
            finally:
                if self.state == DeviceState.REFRESHING:
                    self.state = DeviceState.READY

    async def update_property(self, prop_name: str, value: str) -> None:
        """
        Write a property on the device, then in the local table.

        Raises:
            UnknownPropertyError, ReadOnlyPropertyError, InvalidValueError,
            DeviceTimeoutError, ComError
        """
        async with self._lock:
            self._require_connected()
            self.state = DeviceState.UPDATING
            logger.info(f"Updating {self.name}.{prop_name} with {value}")
            try:
                await self.properties.set(prop_name, value, self._write_remote)
            except DeviceError as e:
                e.device_id = self.id
                e.device_name = self.name
                log_device_write(logger, self.name, prop_name, value, success=False)
                raise
            finally:
                if self.state == DeviceState.UPDATING:
                    self.state = DeviceState.READY

            log_device_write(logger, self.name, prop_name, value)

    def snapshot(self) -> dict:
        """JSON-ready view of the device and its properties"""
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "baud": self.baud,
            "properties": self.properties.to_list(),
        }

    async def _write_remote(self, prop_name: str, value: str) -> None:
        command = WRITE_COMMANDS.get(prop_name)
        if command is None:
            raise UnknownPropertyError(prop_name)

        if command in NO_VALUE_COMMANDS:
            await self._send(command)
        else:
            await self._send(command, value)

    async def _fetch_group(self, group: ResponseGroup) -> list[Property]:
        response = await self._send(group.command)
        try:
            return group.parse(response)
        except DeviceError as e:
            e.device_id = self.id
            e.device_name = self.name
            raise

    async def _firmware_version(self) -> Property:
        """Best effort: firmware is informational only"""
        try:
            firmware = await self._send(Command.FIRMWARE_VERSION)
        except DeviceError as e:
            logger.warning(f"Could not read firmware version of {self.name}: {e.message}")
            firmware = UNKNOWN_FIRMWARE
        return FIRMWARE_VERSION.build(firmware)

    async def _send(self, command: Command, value: str | None = None) -> str:
        try:
            return await self._run(self._link.exchange, command, value)
        except DeviceError as e:
            e.device_id = self.id
            e.device_name = self.name
            if isinstance(e, ComError):
                self.state = DeviceState.DISCONNECTED
            raise

    def _require_connected(self) -> None:
        if self.state == DeviceState.DISCONNECTED:
            raise ComError(f"{self.name} is not connected", self.id, self.name)

    async def _run(self, func, *args):
        """Run a blocking serial call in a thread to avoid blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)
