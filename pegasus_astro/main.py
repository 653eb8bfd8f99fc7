"""
Pegasus Astro Driver - Main Entry Point

Usage:
    pegasus-astro                          # MQTT driver, default config
    pegasus-astro --config my.yaml mqtt    # MQTT driver, custom config
    pegasus-astro serve                    # HTTP/JSON RPC server
    pegasus-astro discover                 # List matching serial ports and exit
"""

import argparse
import asyncio
import sys

import aiomqtt
import uvicorn

from pegasus_astro.common.config import DriverConfig, load_config_file
from pegasus_astro.common.exceptions import ConfigError
from pegasus_astro.common.logging_setup import get_service_logger
from pegasus_astro.services.device.discovery import device_name_for, look_for_devices
from pegasus_astro.services.device.powerbox import device_id_for

logger = get_service_logger("main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pegasus-astro",
        description="Driver for Pegasus Astro Pocket Powerbox Advance units",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to configuration file (default: search standard locations)",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("mqtt", help="Run the MQTT driver (default)")
    subparsers.add_parser("serve", help="Run the HTTP/JSON RPC server")
    subparsers.add_parser("discover", help="List matching serial ports and exit")
    return parser


def run_mqtt(config: DriverConfig) -> int:
    from pegasus_astro.services.mqtt.service import MqttService

    try:
        asyncio.run(MqttService(config).run())
    except aiomqtt.MqttError:
        return 1
    return 0


def run_rpc(config: DriverConfig) -> int:
    from pegasus_astro.api.main import create_app

    uvicorn.run(create_app(config), host=config.rpc.host, port=config.rpc.port)
    return 0


def run_discover(config: DriverConfig) -> int:
    found = look_for_devices(config.serial.product_prefix)
    if not found:
        logger.warning(f"No {config.serial.product_prefix} found on the system")
        return 1

    for port, info in found:
        name = device_name_for(info, config.serial.device_name)
        print(f"{port}\t{name}\t{device_id_for(name)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config_file(args.config)
    except ConfigError as e:
        logger.error(e.message)
        return 1

    if args.command == "serve":
        return run_rpc(config)
    if args.command == "discover":
        return run_discover(config)
    return run_mqtt(config)


if __name__ == "__main__":
    sys.exit(main())
