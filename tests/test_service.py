"""
Tests for the DeviceService lifecycle and health handlers.
"""
import asyncio
import json

from pegasus_astro.services.device.device_manager import DeviceManager
from pegasus_astro.services.device.service import DeviceService


def make_service(config, serial_factory, ports) -> DeviceService:
    manager = DeviceManager(config, link_factory=serial_factory, port_lister=lambda: ports)
    return DeviceService(config, manager=manager)


def test_start_connects_discovered_devices(config, serial_factory, ports):
    async def scenario():
        service = make_service(config, serial_factory, ports)
        await service.start()
        count = len(service.manager)
        running = service.running
        await service.stop()
        return count, running, service.running

    count, running, stopped_running = asyncio.run(scenario())

    assert count == 2
    assert running is True
    assert stopped_running is False
    assert all(not fake.is_open for fake in serial_factory.ports.values())


def test_run_until_shutdown_requested(config, serial_factory, ports):
    async def scenario():
        service = make_service(config, serial_factory, ports)
        asyncio.get_running_loop().call_later(0.05, service.request_shutdown)
        await asyncio.wait_for(service.run(), timeout=5.0)
        return len(service.manager)

    assert asyncio.run(scenario()) == 0


def test_health_handlers(config, serial_factory, ports):
    async def scenario():
        service = make_service(config, serial_factory, ports)
        await service.start()
        health = await service._health_handler(None)
        devices = await service._devices_handler(None)
        await service.stop()
        return json.loads(health.text), json.loads(devices.text)

    health, devices = asyncio.run(scenario())

    assert health["status"] == "healthy"
    assert health["devices"] == 2
    assert len(devices) == 2
    assert all(entry["consecutive_failures"] == 0 for entry in devices.values())
    assert all(entry["last_seen"] is not None for entry in devices.values())
