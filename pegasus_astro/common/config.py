"""
Configuration Dataclasses

Type-safe configuration structures for the driver.
Loaded from a YAML file; every section is optional and falls back
to the defaults below.
"""

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .exceptions import ConfigError


DEFAULT_CONFIG_PATHS = [
    "/etc/pegasus-astro/config.yaml",
    Path(__file__).parent.parent.parent / "config.yaml",
]


@dataclass
class SerialSettings:
    """Discovery and serial link settings"""
    product_prefix: str = "PPBA"
    device_name: str = "PegasusPowerBoxAdvanced"
    baud: int = 9600
    timeout_ms: int = 500


@dataclass
class RefreshSettings:
    """Refresh loop settings"""
    interval_s: float = 5.0
    # Consecutive non-I/O refresh failures tolerated before teardown (1 = fail-fast)
    failure_budget: int = 1


@dataclass
class MqttSettings:
    """MQTT broker connection"""
    host: str = "127.0.0.1"
    port: int = 1883
    client_id: str = "pegasus_ppba"
    keepalive_s: int = 5
    topic_prefix: str = "devices"
    product_topic: str = "ppba"


@dataclass
class RpcSettings:
    """HTTP/JSON RPC server"""
    host: str = "127.0.0.1"
    port: int = 50051


@dataclass
class HealthSettings:
    """Health server (0 disables)"""
    host: str = "127.0.0.1"
    port: int = 8083


@dataclass
class DriverConfig:
    """Complete driver configuration"""
    serial: SerialSettings = field(default_factory=SerialSettings)
    refresh: RefreshSettings = field(default_factory=RefreshSettings)
    mqtt: MqttSettings = field(default_factory=MqttSettings)
    rpc: RpcSettings = field(default_factory=RpcSettings)
    health: HealthSettings = field(default_factory=HealthSettings)

    @property
    def timeout_s(self) -> float:
        return self.serial.timeout_ms / 1000


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"section '{name}' must be a mapping")
    return section


def load_driver_config(data: dict | None) -> DriverConfig:
    """Load DriverConfig from dictionary (e.g., from a YAML file)"""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("configuration root must be a mapping")

    serial_data = _section(data, "serial")
    refresh_data = _section(data, "refresh")
    mqtt_data = _section(data, "mqtt")
    rpc_data = _section(data, "rpc")
    health_data = _section(data, "health")

    try:
        serial = SerialSettings(
            product_prefix=str(serial_data.get("product_prefix", "PPBA")),
            device_name=str(serial_data.get("device_name", "PegasusPowerBoxAdvanced")),
            baud=int(serial_data.get("baud", 9600)),
            timeout_ms=int(serial_data.get("timeout_ms", 500)),
        )
        refresh = RefreshSettings(
            interval_s=float(refresh_data.get("interval_s", 5.0)),
            failure_budget=int(refresh_data.get("failure_budget", 1)),
        )
        mqtt = MqttSettings(
            host=str(mqtt_data.get("host", "127.0.0.1")),
            port=int(mqtt_data.get("port", 1883)),
            client_id=str(mqtt_data.get("client_id", "pegasus_ppba")),
            keepalive_s=int(mqtt_data.get("keepalive_s", 5)),
            topic_prefix=str(mqtt_data.get("topic_prefix", "devices")),
            product_topic=str(mqtt_data.get("product_topic", "ppba")),
        )
        rpc = RpcSettings(
            host=str(rpc_data.get("host", "127.0.0.1")),
            port=int(rpc_data.get("port", 50051)),
        )
        health = HealthSettings(
            host=str(health_data.get("host", "127.0.0.1")),
            port=int(health_data.get("port", 8083)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(str(e)) from e

    if len(serial.product_prefix) != 4:
        raise ConfigError(f"product_prefix must be 4 characters, got '{serial.product_prefix}'")
    if serial.timeout_ms <= 0:
        raise ConfigError("timeout_ms must be positive")
    if refresh.interval_s <= 0:
        raise ConfigError("refresh interval_s must be positive")
    if refresh.failure_budget < 1:
        raise ConfigError("refresh failure_budget must be at least 1")

    return DriverConfig(
        serial=serial,
        refresh=refresh,
        mqtt=mqtt,
        rpc=rpc,
        health=health,
    )


def find_config_path() -> Path | None:
    """Return the first existing default config file, if any"""
    for path in DEFAULT_CONFIG_PATHS:
        path = Path(path)
        if path.exists():
            return path
    return None


def load_config_file(config_path: str | Path | None = None) -> DriverConfig:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Explicit path; when omitted the default locations are
            searched and built-in defaults are used if none exists.

    Returns:
        Parsed DriverConfig
    """
    if config_path is None:
        config_path = find_config_path()
        if config_path is None:
            return DriverConfig()

    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"configuration file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    return load_driver_config(data)
