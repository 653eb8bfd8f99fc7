"""
Unit tests for configuration loading.
"""
import pytest

from pegasus_astro.common import config as config_module
from pegasus_astro.common.config import DriverConfig, load_config_file, load_driver_config
from pegasus_astro.common.exceptions import ConfigError


class TestLoadDriverConfig:

    def test_defaults(self):
        config = load_driver_config(None)

        assert config.serial.product_prefix == "PPBA"
        assert config.serial.baud == 9600
        assert config.timeout_s == 0.5
        assert config.refresh.interval_s == 5.0
        assert config.refresh.failure_budget == 1
        assert config.mqtt.port == 1883
        assert config.mqtt.client_id == "pegasus_ppba"
        assert config.rpc.port == 50051
        assert config.health.port == 8083

    def test_overrides(self):
        config = load_driver_config({
            "serial": {"timeout_ms": 250, "baud": 19200},
            "refresh": {"interval_s": 2, "failure_budget": 3},
            "mqtt": {"host": "broker.local", "topic_prefix": "astro"},
        })

        assert config.timeout_s == 0.25
        assert config.serial.baud == 19200
        assert config.refresh.interval_s == 2.0
        assert config.refresh.failure_budget == 3
        assert config.mqtt.host == "broker.local"
        assert config.mqtt.topic_prefix == "astro"
        assert config.mqtt.port == 1883

    @pytest.mark.parametrize("data", [
        {"serial": {"product_prefix": "PPB"}},
        {"serial": {"timeout_ms": 0}},
        {"refresh": {"interval_s": -1}},
        {"refresh": {"failure_budget": 0}},
        {"mqtt": {"port": "not-a-port"}},
        {"rpc": ["not", "a", "mapping"]},
        ["not", "a", "mapping"],
    ])
    def test_invalid(self, data):
        with pytest.raises(ConfigError):
            load_driver_config(data)


class TestLoadConfigFile:

    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("serial:\n  product_prefix: UPBv\nhealth:\n  port: 0\n")

        config = load_config_file(path)

        assert config.serial.product_prefix == "UPBv"
        assert config.health.port == 0

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config_file(path) == DriverConfig()

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config_file(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("serial: [unclosed\n")

        with pytest.raises(ConfigError):
            load_config_file(path)

    def test_no_default_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATHS", [tmp_path / "missing.yaml"])

        assert load_config_file() == DriverConfig()

    def test_default_file_found(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("refresh:\n  interval_s: 1.5\n")
        monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATHS", [tmp_path / "missing.yaml", path])

        assert load_config_file().refresh.interval_s == 1.5
