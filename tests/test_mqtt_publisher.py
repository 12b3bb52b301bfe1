from __future__ import annotations

import json
from typing import Any

import paho.mqtt.client as mqtt
import pytest

from resmand._mqtt import MqttChangePublisher, MqttTarget, encode_change_event
from resmand.config import ResmandConfig
from resmand.notifier import ChangeNotifier
from resmand.state.events import ChangeEvent


class _PublishInfo:
    def __init__(self, rc: int) -> None:
        self.rc = rc


class _DummyClient:
    instances: list[_DummyClient] = []

    def __init__(self, *_args: Any, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.published: list[tuple[str, bytes, int]] = []
        self.connected_to: tuple[str, int, int] | None = None
        self.loop_running = False
        self.disconnected = False
        self.rc = mqtt.MQTT_ERR_SUCCESS
        _DummyClient.instances.append(self)

    def enable_logger(self, _logger: Any) -> None:
        pass

    def connect_async(self, host: str, port: int, keepalive: int = 60) -> None:
        self.connected_to = (host, port, keepalive)

    def loop_start(self) -> None:
        self.loop_running = True

    def loop_stop(self) -> None:
        self.loop_running = False

    def disconnect(self) -> None:
        self.disconnected = True

    def publish(self, topic: str, payload: bytes, qos: int = 0) -> _PublishInfo:
        self.published.append((topic, payload, qos))
        return _PublishInfo(self.rc)


@pytest.fixture
def dummy_client(monkeypatch: pytest.MonkeyPatch) -> type[_DummyClient]:
    _DummyClient.instances = []
    monkeypatch.setattr("resmand._mqtt.mqtt.Client", _DummyClient)
    return _DummyClient


def test_target_disabled_without_host() -> None:
    assert MqttTarget.from_config(ResmandConfig()) is None


def test_target_uses_service_name_for_default_topic() -> None:
    target = MqttTarget.from_config(ResmandConfig(mqtt_host="broker.local", mqtt_port=1884))

    assert target is not None
    assert target.topic == "org/regolith/Trawl/ResourcesChanged"
    assert target.port == 1884


def test_encode_change_event() -> None:
    event = ChangeEvent(serial=7)

    payload = json.loads(encode_change_event(event, "org.example.Res"))

    assert payload["signal"] == "ResourcesChanged"
    assert payload["service"] == "org.example.Res"
    assert payload["serial"] == 7


def test_publisher_mirrors_notifier_events(dummy_client: type[_DummyClient]) -> None:
    target = MqttTarget(host="broker.local", port=1883, topic="res/changed", client_id="resmand-test")
    publisher = MqttChangePublisher(target, service_name="org.example.Res")
    notifier = ChangeNotifier()
    notifier.subscribe(publisher.publish)

    publisher.start()
    notifier.notify()

    client = dummy_client.instances[-1]
    assert publisher.is_running
    assert client.connected_to == ("broker.local", 1883, 60)
    assert [topic for topic, _, _ in client.published] == ["res/changed"]

    publisher.stop()
    assert client.disconnected
    assert not client.loop_running
    assert not publisher.is_running


def test_publish_failure_is_logged_not_raised(dummy_client: type[_DummyClient], caplog: pytest.LogCaptureFixture) -> None:
    target = MqttTarget(host="broker.local", port=1883, topic="res/changed", client_id="resmand-test")
    publisher = MqttChangePublisher(target, service_name="org.example.Res")
    publisher.start()
    dummy_client.instances[-1].rc = mqtt.MQTT_ERR_NO_CONN

    publisher.publish(ChangeEvent(serial=1))

    assert "failed" in caplog.text
    publisher.stop()


def test_publish_before_start_is_dropped() -> None:
    target = MqttTarget(host="broker.local", port=1883, topic="res/changed", client_id="resmand-test")
    publisher = MqttChangePublisher(target, service_name="org.example.Res")

    publisher.publish(ChangeEvent(serial=1))

    assert not publisher.is_running
