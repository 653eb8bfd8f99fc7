"""
Device Manager

Owns the registered devices, runs one refresh loop per device and
tears devices down when their serial session fails.
"""

import asyncio
import time
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Callable

from serial.tools.list_ports_common import ListPortInfo

from pegasus_astro.common.config import DriverConfig
from pegasus_astro.common.exceptions import ComError, DeviceAction, DeviceError, DeviceNotFoundError
from pegasus_astro.common.logging_setup import get_service_logger
from .discovery import PortLister, device_name_for, look_for_devices, serial_port_info
from .powerbox import PowerBoxDevice, device_id_for
from .serial_link import SerialLink

logger = get_service_logger("device.manager")

LinkFactory = Callable[[str, int, float], SerialLink]


@dataclass
class DeviceStatus:
    """Refresh bookkeeping for a registered device"""
    device_id: str
    device_name: str
    last_seen: datetime | None = None
    last_error: str | None = None
    consecutive_failures: int = 0
    refresh_count: int = 0


class DeviceListener:
    """
    Receives device lifecycle events.

    Control-plane adapters subclass this and override what they publish;
    the default implementation ignores every event.
    """

    async def device_added(self, device: PowerBoxDevice) -> None:
        pass

    async def device_refreshed(self, device: PowerBoxDevice) -> None:
        pass

    async def device_removed(self, device_id: str) -> None:
        pass


class DeviceManager:
    """
    Manages the set of connected devices.

    Refresh policy is fail-fast: a ComError ends the device immediately,
    any other refresh error counts against the configured failure budget
    (1 by default). A failed refresh loop is never restarted.
    """

    def __init__(
        self,
        config: DriverConfig | None = None,
        listener: DeviceListener | None = None,
        link_factory: LinkFactory = SerialLink,
        port_lister: PortLister = serial_port_info,
    ):
        self.config = config or DriverConfig()
        self.listener = listener or DeviceListener()
        self._link_factory = link_factory
        self._port_lister = port_lister

        self._devices: dict[str, PowerBoxDevice] = {}
        self._status: dict[str, DeviceStatus] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._devices

    def get_device(self, device_id: str) -> PowerBoxDevice | None:
        return self._devices.get(device_id)

    def get_devices(self) -> list[PowerBoxDevice]:
        return list(self._devices.values())

    def get_status(self, device_id: str) -> DeviceStatus | None:
        return self._status.get(device_id)

    def get_all_status(self) -> dict[str, DeviceStatus]:
        return self._status.copy()

    def discover(self, prefix: str | None = None) -> list[tuple[str, ListPortInfo]]:
        """Ports whose serial number starts with the product prefix"""
        prefix = prefix or self.config.serial.product_prefix
        return look_for_devices(prefix, self._port_lister())

    async def add_discovered(self, prefix: str | None = None) -> list[PowerBoxDevice]:
        """Connect every discovered port, returning the devices that came up"""
        found = self.discover(prefix)
        if not found:
            logger.warning(f"No {prefix or self.config.serial.product_prefix} found on the system")
            return []

        # One at a time, so devices register in port encounter order
        devices = []
        for port, info in found:
            device = await self.add_device(device_name_for(info, self.config.serial.device_name), port)
            if device is not None:
                devices.append(device)
        return devices

    async def add_device(self, name: str, port: str) -> PowerBoxDevice | None:
        """
        Connect and register a device, then start its refresh loop.

        Returns:
            The registered device, or None if it could not be connected
        """
        device_id = device_id_for(name)
        existing = self._devices.get(device_id)
        if existing is not None:
            logger.debug(f"Device {name} already registered as {device_id}")
            return existing

        serial = self.config.serial
        timeout = self.config.timeout_s
        try:
            device = await PowerBoxDevice.connect(
                name,
                port,
                serial.baud,
                timeout,
                link=self._link_factory(port, serial.baud, timeout),
            )
        except DeviceError as e:
            logger.error(f"Cannot start communication with {name}: {e.message}")
            return None

        async with self._lock:
            if device_id in self._devices:
                # Lost a race with a concurrent add of the same unit
                await device.disconnect()
                return self._devices[device_id]

            self._devices[device_id] = device
            self._status[device_id] = DeviceStatus(
                device_id=device_id,
                device_name=name,
                last_seen=datetime.now(timezone.utc),
            )
            self._tasks[device_id] = asyncio.create_task(
                self._refresh_loop(device),
                name=f"refresh-{device_id}",
            )

        logger.info(
            f"Registered device: {name} port={port} baud={serial.baud}",
            extra={"device_id": device_id},
        )
        await self._notify("device_added", device)
        return device

    async def remove_device(self, device_id: str, notify: bool = True) -> bool:
        """
        Drop a device and close its port.

        The device's refresh loop is cancelled first. An exchange it had
        in flight still runs to completion or timeout before the port
        closes.

        Returns:
            True if the device was registered
        """
        async with self._lock:
            device = self._devices.pop(device_id, None)
            self._status.pop(device_id, None)
            task = self._cancel_refresh(device_id)

        await self._wait_cancelled(task)
        if device is None:
            return False

        await device.disconnect()
        logger.info(f"Removed device {device.name} ({device_id})")

        if notify:
            await self._notify("device_removed", device_id)
        return True

    async def update_property(self, device_id: str, prop_name: str, value: str) -> None:
        """
        Route a property update to a device.

        A ComError removes the device before the error is re-raised;
        every other error leaves the device registered.

        Raises:
            DeviceNotFoundError: no such device
            DeviceError: whatever the device raised
        """
        device = self._devices.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)

        try:
            await device.update_property(prop_name, value)
        except ComError as e:
            logger.error(f"Communication lost with {device.name} during update: {e.message}")
            await self._teardown(device, e)
            raise

    async def stop(self) -> None:
        """Cancel every refresh loop and close every port"""
        async with self._lock:
            tasks = list(self._tasks.values())
            devices = list(self._devices.values())
            self._tasks.clear()
            self._devices.clear()
            self._status.clear()

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)

        for device in devices:
            await device.disconnect()

        logger.info(f"Device manager stopped ({len(devices)} devices closed)")

    async def _refresh_loop(self, device: PowerBoxDevice) -> None:
        """Periodically refresh one device and publish its state"""
        interval = self.config.refresh.interval_s
        budget = self.config.refresh.failure_budget

        while True:
            await asyncio.sleep(interval)
            if self._devices.get(device.id) is not device:
                break

            started = time.monotonic()
            status = self._status.get(device.id)

            try:
                await device.refresh()
            except ComError as e:
                logger.error(f"Communication lost with {device.name}: {e.message}")
                await self._teardown(device, e)
                break
            except DeviceError as e:
                if status:
                    status.consecutive_failures += 1
                    status.last_error = e.message
                failures = status.consecutive_failures if status else budget
                if failures >= budget:
                    logger.error(
                        f"Refresh of {device.name} failed ({failures}/{budget}): {e.message}"
                    )
                    await self._teardown(device, e)
                    break
                logger.warning(f"Refresh of {device.name} failed ({failures}/{budget}): {e.message}")
                continue
            except Exception as e:
                logger.exception(f"Unexpected error refreshing {device.name}: {e}")
                await self._teardown(device, e)
                break

            if self._devices.get(device.id) is not device:
                break

            if status:
                status.last_seen = datetime.now(timezone.utc)
                status.last_error = None
                status.consecutive_failures = 0
                status.refresh_count += 1

            await self._notify("device_refreshed", device)
            logger.debug(
                f"Refreshed and published state of {device.name} in {time.monotonic() - started:.2f}s"
            )

        logger.info(f"Refresh loop for {device.name} ended")

    async def _teardown(self, device: PowerBoxDevice, error: Exception) -> None:
        """Remove a failed device, if it is still the registered one"""
        async with self._lock:
            if self._devices.get(device.id) is not device:
                return
            del self._devices[device.id]
            self._status.pop(device.id, None)
            task = self._cancel_refresh(device.id)

        await self._wait_cancelled(task)
        await device.disconnect()

        action = error.action if isinstance(error, DeviceError) else DeviceAction.COM_ERROR
        logger.warning(
            f"Device {device.name} torn down: {getattr(error, 'message', error)}",
            extra={"device_id": device.id, "action": int(action)},
        )
        await self._notify("device_removed", device.id)

    def _cancel_refresh(self, device_id: str) -> asyncio.Task | None:
        """
        Forget a refresh task, cancelling it unless it is the caller.

        Returns the cancelled task so the caller can wait for it to unwind.
        """
        task = self._tasks.pop(device_id, None)
        if task is None or task is asyncio.current_task():
            return None
        task.cancel()
        return task

    @staticmethod
    async def _wait_cancelled(task: asyncio.Task | None) -> None:
        if task is not None:
            await asyncio.wait({task})

    async def _notify(self, event: str, arg) -> None:
        try:
            await getattr(self.listener, event)(arg)
        except Exception as e:
            logger.error(f"Listener failed on {event}: {e}")
