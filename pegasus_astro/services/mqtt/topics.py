"""
MQTT topic layout.

    {prefix}/{device_id}                 device state (published)
    {prefix}/{device_id}/update          property update requests (subscribed)
    {prefix}/{device_id}/update/error    failed update echo (published)
    {prefix}/{device_id}/delete          device removal (published and subscribed)
    {prefix}/{product}/new               newly added device (published)
"""

from dataclasses import dataclass
from enum import Enum


class TopicAction(str, Enum):
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Topics:
    prefix: str = "devices"
    product: str = "ppba"

    def state(self, device_id: str) -> str:
        return f"{self.prefix}/{device_id}"

    def update(self, device_id: str) -> str:
        return f"{self.prefix}/{device_id}/{TopicAction.UPDATE.value}"

    def update_error(self, device_id: str) -> str:
        return f"{self.update(device_id)}/error"

    def delete(self, device_id: str) -> str:
        return f"{self.prefix}/{device_id}/{TopicAction.DELETE.value}"

    def new_device(self) -> str:
        return f"{self.prefix}/{self.product}/new"

    def parse(self, topic: str) -> tuple[str, TopicAction] | None:
        """
        Split an inbound topic into (device_id, action).

        Returns None for anything that is not {prefix}/{id}/update or
        {prefix}/{id}/delete.
        """
        parts = topic.split("/")
        if len(parts) != 3 or parts[0] != self.prefix or not parts[1]:
            return None
        try:
            action = TopicAction(parts[2])
        except ValueError:
            return None
        return parts[1], action
