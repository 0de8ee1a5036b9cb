from __future__ import annotations

import pytest

from multi_git import mqtt_client
from multi_git.config import MqttSettings
from multi_git.mqtt_client import MqttPayload, MqttPublisher


class _BrokenInfo:
    def wait_for_publish(self, timeout=None) -> None:
        raise RuntimeError("The client is not currently connected.")


class _FakeClient:
    instances: list["_FakeClient"] = []

    def __init__(self, *args, **kwargs) -> None:
        self.calls: list[str] = []
        _FakeClient.instances.append(self)

    def username_pw_set(self, username, password=None) -> None:
        self.calls.append("auth")

    def connect(self, host, port, keepalive=60) -> None:
        self.calls.append("connect")

    def loop_start(self) -> None:
        self.calls.append("loop_start")

    def publish(self, topic, payload, qos=0, retain=False) -> _BrokenInfo:
        self.calls.append("publish")
        return _BrokenInfo()

    def disconnect(self) -> None:
        self.calls.append("disconnect")

    def loop_stop(self) -> None:
        self.calls.append("loop_stop")


@pytest.mark.asyncio
async def test_network_loop_is_stopped_when_publish_fails(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    _FakeClient.instances.clear()
    monkeypatch.setattr(mqtt_client.mqtt, "Client", _FakeClient)
    publisher = MqttPublisher(MqttSettings(enabled=True, host="broker"))

    await publisher.publish(MqttPayload(topic="multi_git/events", payload={"event": "x"}))

    (client,) = _FakeClient.instances
    assert client.calls[-2:] == ["disconnect", "loop_stop"]
    assert "Failed to publish MQTT message" in caplog.text


@pytest.mark.asyncio
async def test_disabled_publisher_never_connects(monkeypatch: pytest.MonkeyPatch) -> None:
    _FakeClient.instances.clear()
    monkeypatch.setattr(mqtt_client.mqtt, "Client", _FakeClient)

    await MqttPublisher(MqttSettings(enabled=False)).publish(
        MqttPayload(topic="t", payload={})
    )

    assert _FakeClient.instances == []
