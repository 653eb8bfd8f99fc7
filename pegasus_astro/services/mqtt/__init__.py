"""
MQTT Service - Pub/sub control plane

Responsibilities:
- Publish device snapshots after every refresh
- Announce new devices and removals
- Apply property updates requested over MQTT, echoing failures
"""

from .adapter import MqttAdapter, UpdatePropertyRequest
from .service import MqttService
from .topics import TopicAction, Topics

__all__ = ["MqttAdapter", "MqttService", "TopicAction", "Topics", "UpdatePropertyRequest"]
