from __future__ import annotations

import logging
from typing import Any

from .config import SyncContext
from .models import ReconciliationReport
from .mqtt_client import MqttPayload, MqttPublisher
from .webhook import WebhookClient

_LOGGER = logging.getLogger(__name__)

EVENT_NAME = "gitwatch_sync.run"


class Notifier:
    def __init__(self, context: SyncContext, webhook: WebhookClient | None = None) -> None:
        self._context = context
        self._webhook = webhook or WebhookClient(context)
        self._mqtt_settings = context.mqtt()
        self._mqtt = MqttPublisher(self._mqtt_settings)

    def should_notify(self, exit_code: int) -> bool:
        return exit_code != 0 or self._context.notify_on_success

    def payload(self, report: ReconciliationReport, exit_code: int) -> dict[str, Any]:
        return {
            "event": EVENT_NAME,
            "exit_code": exit_code,
            **report.model_dump(mode="json"),
        }

    def notify(self, report: ReconciliationReport, exit_code: int) -> None:
        if not self.should_notify(exit_code):
            return
        payload = self.payload(report, exit_code)
        self._webhook.post(payload)
        self._mqtt.publish(
            MqttPayload(
                topic=self._mqtt_settings.topic,
                payload=payload,
                qos=self._mqtt_settings.qos,
                retain=self._mqtt_settings.retain,
            )
        )

    def close(self) -> None:
        self._webhook.close()
