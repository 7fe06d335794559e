from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import paho.mqtt.client as mqtt

from .config import MqttSettings

_LOGGER = logging.getLogger(__name__)


@dataclass
class MqttPayload:
    topic: str
    payload: dict[str, Any]
    qos: int = 1
    retain: bool = False


class MqttPublisher:
    def __init__(self, settings: MqttSettings) -> None:
        self._settings = settings

    def publish(self, payload: MqttPayload) -> None:
        if not self._settings.enabled:
            return
        client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if self._settings.username:
            client.username_pw_set(self._settings.username, self._settings.password)
        try:
            client.connect(self._settings.host, self._settings.port, keepalive=30)
            client.loop_start()
            info = client.publish(
                payload.topic,
                json_dumps(payload.payload),
                qos=payload.qos,
                retain=payload.retain,
            )
            info.wait_for_publish(timeout=10)
            client.loop_stop()
            client.disconnect()
            _LOGGER.debug("Published MQTT message to %s", payload.topic)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.error("Failed to publish MQTT message: %s", exc)


def json_dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"), default=str)
