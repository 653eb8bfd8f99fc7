"""
Pytest configuration for pegasus_astro tests.
"""
import pytest

from pegasus_astro.common.config import DriverConfig, HealthSettings, RefreshSettings

from fakes import FakeSerial, FakeSerialFactory, make_port


@pytest.fixture
def fake_serial():
    """A FakeSerial answering every command with the default replies"""
    return FakeSerial()


@pytest.fixture
def serial_factory():
    return FakeSerialFactory()


@pytest.fixture
def ports():
    """Two PPBA units between unrelated USB serial adapters"""
    return [
        make_port("/dev/ttyUSB0", "FT232R01"),
        make_port("/dev/ttyACM0", "PPBA1234"),
        make_port("/dev/ttyS0", None),
        make_port("/dev/ttyACM1", "PPBA5678"),
    ]


@pytest.fixture
def config():
    """Refresh loops effectively idle, health server off"""
    return DriverConfig(
        refresh=RefreshSettings(interval_s=3600.0),
        health=HealthSettings(port=0),
    )


@pytest.fixture
def fast_config():
    """Refresh loops running every few milliseconds, health server off"""
    return DriverConfig(
        refresh=RefreshSettings(interval_s=0.01),
        health=HealthSettings(port=0),
    )
