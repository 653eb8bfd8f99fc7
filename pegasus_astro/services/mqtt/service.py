"""
MQTT Service

Runs the device service with an MQTT adapter attached: state is
published after every refresh, update and delete requests are
consumed from the broker until shutdown.
"""

import asyncio

import aiomqtt

from pegasus_astro.common.config import DriverConfig
from pegasus_astro.common.logging_setup import get_service_logger
from pegasus_astro.services.device.service import DeviceService
from .adapter import MqttAdapter

logger = get_service_logger("mqtt")


class MqttService:
    """Device service plus MQTT control plane"""

    def __init__(self, config: DriverConfig | None = None):
        self.config = config or DriverConfig()
        self.adapter = MqttAdapter(self.config.mqtt)
        self.device_service = DeviceService(self.config, listener=self.adapter)
        self._listen_task: asyncio.Task | None = None

    async def run(self) -> None:
        """Connect to the broker and serve until shutdown or broker loss"""
        mqtt = self.config.mqtt
        logger.info(f"Connecting to MQTT broker {mqtt.host}:{mqtt.port}")

        try:
            async with aiomqtt.Client(
                hostname=mqtt.host,
                port=mqtt.port,
                identifier=mqtt.client_id,
                keepalive=mqtt.keepalive_s,
            ) as client:
                self.adapter.attach(client, self.device_service.manager)
                self._listen_task = asyncio.create_task(self._listen(client))
                try:
                    await self.device_service.run()
                finally:
                    self._listen_task.cancel()
                    try:
                        await self._listen_task
                    except asyncio.CancelledError:
                        pass
        except aiomqtt.MqttError as e:
            logger.error(f"The MQTT broker is not available: {e}")
            await self.device_service.stop()
            raise

        logger.info("MQTT service stopped")

    async def _listen(self, client: aiomqtt.Client) -> None:
        try:
            async for message in client.messages:
                try:
                    await self.adapter.handle_message(message.topic.value, message.payload)
                except Exception as e:
                    logger.error(f"Error handling message on {message.topic.value}: {e}")
        except aiomqtt.MqttError as e:
            logger.error(f"MQTT connection lost: {e}")
            self.device_service.request_shutdown()
