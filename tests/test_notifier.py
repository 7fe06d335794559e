from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import paho.mqtt.client as mqtt

from gitwatch_sync.config import SyncContext
from gitwatch_sync.models import Outcome, ReconciliationReport
from gitwatch_sync.notifier import EVENT_NAME, Notifier
from gitwatch_sync.webhook import WebhookClient


def make_report(**fields) -> ReconciliationReport:
    return ReconciliationReport(
        branch="main",
        remote="origin",
        started_at=datetime(2024, 5, 17, tzinfo=timezone.utc),
        **fields,
    )


def webhook_for(context, handler):
    return WebhookClient(context, transport=httpx.MockTransport(handler))


def test_failure_is_posted_with_bearer_token():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    context = SyncContext(webhook_url="https://hooks.example.test/sync", webhook_token="tok")
    notifier = Notifier(context, webhook=webhook_for(context, handler))

    notifier.notify(make_report(outcome=Outcome.CONFLICT_DETECTED, error="boom"), 1)
    notifier.close()

    assert len(seen) == 1
    assert seen[0].headers["Authorization"] == "Bearer tok"
    body = json.loads(seen[0].content)
    assert body["event"] == EVENT_NAME
    assert body["exit_code"] == 1
    assert body["outcome"] == "ConflictDetected"
    assert body["error"] == "boom"


def test_success_is_silent_unless_requested():
    seen = []
    context = SyncContext(webhook_url="https://hooks.example.test/sync")
    notifier = Notifier(
        context, webhook=webhook_for(context, lambda r: seen.append(r) or httpx.Response(200))
    )

    notifier.notify(make_report(outcome=Outcome.ALREADY_SYNCHRONIZED), 0)

    assert seen == []
    assert Notifier(context.model_copy(update={"notify_on_success": True})).should_notify(0)


def test_rejected_token_is_logged_not_raised(caplog):
    context = SyncContext(webhook_url="https://hooks.example.test/sync", webhook_token="old")
    client = webhook_for(context, lambda request: httpx.Response(401))

    assert client.post({"event": EVENT_NAME}) is False
    assert "NOTIFY_WEBHOOK_TOKEN" in caplog.text


def test_transport_error_is_logged_not_raised():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    context = SyncContext(webhook_url="https://hooks.example.test/sync")

    assert webhook_for(context, handler).post({"event": EVENT_NAME}) is False


def test_webhook_disabled_without_url():
    client = WebhookClient(SyncContext())

    assert client.enabled is False
    assert client.post({"event": EVENT_NAME}) is False


class FakeMqttClient:
    instances: list["FakeMqttClient"] = []

    def __init__(self, *args, **kwargs):
        self.published = []
        self.connected_to = None
        self.credentials = None
        FakeMqttClient.instances.append(self)

    def username_pw_set(self, username, password):
        self.credentials = (username, password)

    def connect(self, host, port, keepalive=60):
        self.connected_to = (host, port)

    def loop_start(self):
        pass

    def loop_stop(self):
        pass

    def disconnect(self):
        pass

    def publish(self, topic, payload, qos=0, retain=False):
        self.published.append((topic, json.loads(payload), qos, retain))

        class Info:
            def wait_for_publish(self, timeout=None):
                return None

        return Info()


def test_failure_is_published_over_mqtt(monkeypatch):
    FakeMqttClient.instances = []
    monkeypatch.setattr(mqtt, "Client", FakeMqttClient)
    context = SyncContext(
        mqtt_enabled=True,
        mqtt_host="broker.local",
        mqtt_username="user",
        mqtt_password="pw",
        mqtt_topic="nodes/notes/sync",
    )

    Notifier(context).notify(make_report(outcome=Outcome.LOCAL_BEHIND_REMOTE_ABORT), 1)

    (client,) = FakeMqttClient.instances
    assert client.connected_to == ("broker.local", 1883)
    assert client.credentials == ("user", "pw")
    topic, payload, qos, retain = client.published[0]
    assert topic == "nodes/notes/sync"
    assert payload["outcome"] == "LocalBehindRemoteAbort"
    assert (qos, retain) == (1, False)


def test_mqtt_errors_do_not_escape(monkeypatch):
    class Broken(FakeMqttClient):
        def connect(self, host, port, keepalive=60):
            raise OSError("connection refused")

    monkeypatch.setattr(mqtt, "Client", Broken)
    context = SyncContext(mqtt_enabled=True)

    Notifier(context).notify(make_report(), 2)
