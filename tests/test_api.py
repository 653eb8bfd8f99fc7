"""
Tests for the HTTP/JSON RPC API using FastAPI's TestClient.
"""
import pytest
from fastapi.testclient import TestClient
from serial import SerialException

from pegasus_astro.api.main import create_app
from pegasus_astro.services.device.device_manager import DeviceManager
from pegasus_astro.services.device.powerbox import device_id_for

DEVICE_ID = device_id_for("PegasusPowerBoxAdvanced-PPBA1234")


@pytest.fixture
def manager(config, serial_factory, ports):
    return DeviceManager(config, link_factory=serial_factory, port_lister=lambda: ports)


@pytest.fixture
def client(config, manager):
    with TestClient(create_app(config, manager)) as client:
        yield client


def set_property(client, device_id=DEVICE_ID, name="dew1_power", value="64"):
    return client.post("/api/devices/properties", json={
        "device_id": device_id,
        "property_name": name,
        "property_value": value,
    })


class TestListDevices:

    def test_lists_discovered_devices(self, client):
        response = client.get("/api/devices")

        assert response.status_code == 200
        devices = response.json()
        assert [d["address"] for d in devices] == ["/dev/ttyACM0", "/dev/ttyACM1"]
        assert devices[0]["id"] == DEVICE_ID
        assert devices[0]["baud"] == 9600
        assert len(devices[0]["properties"]) == 23

    def test_property_shape(self, client):
        device = client.get("/api/devices").json()[0]
        props = {p["name"]: p for p in device["properties"]}

        assert props["adjustable_output"] == {
            "name": "adjustable_output",
            "value": "12",
            "kind": "integer",
            "permission": "ReadWrite",
        }

    def test_no_devices(self, config, serial_factory):
        manager = DeviceManager(config, link_factory=serial_factory, port_lister=list)
        with TestClient(create_app(config, manager)) as client:
            assert client.get("/api/devices").json() == []


class TestSetProperty:

    def test_ok(self, client):
        response = set_property(client)

        assert response.status_code == 200
        assert response.json() == {"status": 0}
        props = {p["name"]: p for p in client.get("/api/devices").json()[0]["properties"]}
        assert props["dew1_power"]["value"] == "64"

    @pytest.mark.parametrize("field", ["device_id", "property_name", "property_value"])
    def test_empty_field_is_invalid_value(self, client, field):
        body = {"device_id": DEVICE_ID, "property_name": "dew1_power", "property_value": "64"}
        body[field] = ""

        response = client.post("/api/devices/properties", json=body)

        assert response.status_code == 200
        assert response.json() == {"status": 4}

    def test_empty_fields_checked_before_lookup(self, client):
        assert set_property(client, device_id="no-such-device", value="").json() == {"status": 4}

    def test_unknown_device(self, client):
        assert set_property(client, device_id="no-such-device").status_code == 404

    def test_unknown_property(self, client):
        assert set_property(client, name="dew3_power").json() == {"status": 5}

    def test_read_only_property(self, client):
        assert set_property(client, name="temp", value="10").json() == {"status": 6}

    def test_malformed_value(self, client):
        assert set_property(client, value="high").json() == {"status": 4}

    def test_rejected_by_device(self, client, serial_factory):
        serial_factory.ports["/dev/ttyACM0"].responses[b"P3:"] = b"P3:ERR\r\n"
        assert set_property(client, value="300").json() == {"status": 4}

    def test_timeout(self, client, serial_factory):
        serial_factory.ports["/dev/ttyACM0"].responses[b"P3:"] = None
        assert set_property(client).json() == {"status": 3}

    def test_io_failure_removes_device(self, client, serial_factory):
        serial_factory.ports["/dev/ttyACM0"].responses[b"P3:"] = SerialException("device disconnected")

        assert set_property(client).json() == {"status": 1}
        remaining = client.get("/api/devices").json()
        assert [d["address"] for d in remaining] == ["/dev/ttyACM1"]


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["devices"] == 2
