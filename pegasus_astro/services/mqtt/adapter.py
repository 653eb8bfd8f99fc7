"""
MQTT Adapter

Bridges DeviceManager events to MQTT topics and routes inbound
update/delete requests back to the manager.
"""

import json
from typing import Any

from pydantic import BaseModel, ValidationError

from pegasus_astro.common.config import MqttSettings
from pegasus_astro.common.exceptions import ComError, DeviceError, DeviceNotFoundError
from pegasus_astro.common.logging_setup import get_service_logger
from pegasus_astro.services.device.device_manager import DeviceListener, DeviceManager
from pegasus_astro.services.device.powerbox import PowerBoxDevice
from .topics import TopicAction, Topics

logger = get_service_logger("mqtt")

QOS_AT_LEAST_ONCE = 1
QOS_EXACTLY_ONCE = 2


class UpdatePropertyRequest(BaseModel):
    """Payload of {prefix}/{id}/update"""
    prop_name: str
    value: bool | int | float | str

    def wire_value(self) -> str:
        if isinstance(self.value, bool):
            return "1" if self.value else "0"
        return str(self.value)


class MqttAdapter(DeviceListener):
    """
    Publishes device state and serves update requests over MQTT.

    The client is anything with aiomqtt.Client's publish, subscribe and
    unsubscribe coroutines.
    """

    def __init__(self, settings: MqttSettings | None = None, client: Any = None):
        self.settings = settings or MqttSettings()
        self.topics = Topics(self.settings.topic_prefix, self.settings.product_topic)
        self.client = client
        self.manager: DeviceManager | None = None

    def attach(self, client: Any, manager: DeviceManager) -> None:
        self.client = client
        self.manager = manager

    async def device_added(self, device: PowerBoxDevice) -> None:
        if self.client is None:
            return
        await self.client.subscribe(self.topics.update(device.id), qos=QOS_EXACTLY_ONCE)
        await self.client.subscribe(self.topics.delete(device.id), qos=QOS_EXACTLY_ONCE)

        payload = json.dumps(device.snapshot())
        await self.client.publish(self.topics.new_device(), payload=payload, qos=QOS_AT_LEAST_ONCE)
        await self.client.publish(self.topics.state(device.id), payload=payload, qos=QOS_AT_LEAST_ONCE)
        logger.info(f"Announced {device.name} on {self.topics.new_device()}")

    async def device_refreshed(self, device: PowerBoxDevice) -> None:
        if self.client is None:
            return
        await self.client.publish(
            self.topics.state(device.id),
            payload=json.dumps(device.snapshot()),
            qos=QOS_AT_LEAST_ONCE,
        )

    async def device_removed(self, device_id: str) -> None:
        if self.client is None:
            return
        # Stop listening first so our own delete is not routed back to us
        await self._unsubscribe(device_id)
        await self.client.publish(
            self.topics.delete(device_id),
            payload=json.dumps({"id": device_id}),
            qos=QOS_AT_LEAST_ONCE,
        )
        logger.info(f"Published removal of {device_id}")

    async def handle_message(self, topic: str, payload: Any) -> None:
        """Route one inbound message"""
        parsed = self.topics.parse(topic)
        if parsed is None:
            logger.debug(f"Ignoring message on {topic}")
            return
        if self.manager is None:
            logger.warning(f"No device manager attached, dropping message on {topic}")
            return

        device_id, action = parsed
        if action is TopicAction.DELETE:
            if await self.manager.remove_device(device_id, notify=False):
                if self.client is not None:
                    await self._unsubscribe(device_id)
                logger.info(f"Device {device_id} removed by external request")
            return

        await self._handle_update(device_id, payload)

    async def _unsubscribe(self, device_id: str) -> None:
        await self.client.unsubscribe(self.topics.update(device_id))
        await self.client.unsubscribe(self.topics.delete(device_id))

    async def _handle_update(self, device_id: str, payload: Any) -> None:
        if not isinstance(payload, (bytes, bytearray, str)):
            logger.warning(f"Unsupported update payload for {device_id}: {payload!r}")
            return
        try:
            request = UpdatePropertyRequest.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(f"Malformed update request for {device_id}: {e}")
            return

        try:
            await self.manager.update_property(device_id, request.prop_name, request.wire_value())
        except DeviceNotFoundError:
            logger.warning(f"Update for unknown device {device_id} ignored")
        except ComError as e:
            # The manager already tore the device down and published its removal
            logger.debug(f"Update of {request.prop_name} on {device_id} lost the device: {e.message}")
        except DeviceError as e:
            logger.warning(
                f"Update of {request.prop_name} on {device_id} failed: {e.message}",
                extra={"device_id": device_id, "action": int(e.action)},
            )
            await self.client.publish(
                self.topics.update_error(device_id),
                payload=json.dumps({
                    "prop_name": request.prop_name,
                    "value": request.value,
                    "error": e.action.name,
                }),
                qos=QOS_AT_LEAST_ONCE,
            )
