"""Internal MQTT mirror of the ResourcesChanged signal."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from resmand._constants import SIGNAL_RESOURCES_CHANGED
from resmand.config import ResmandConfig
from resmand.state.events import ChangeEvent


@dataclass(frozen=True)
class MqttTarget:
    """Broker data required to publish change events."""

    host: str
    port: int
    topic: str
    client_id: str
    keepalive: int = 60

    @classmethod
    def from_config(cls, config: ResmandConfig) -> MqttTarget | None:
        if not config.mqtt_host:
            return None
        return cls(
            host=config.mqtt_host,
            port=config.mqtt_port,
            topic=config.resolved_mqtt_topic,
            client_id=f"resmand-{config.service_name}",
            keepalive=config.mqtt_keepalive,
        )


def encode_change_event(event: ChangeEvent, service_name: str) -> bytes:
    """Serialize a change event as the JSON message published on the topic."""
    payload = {
        "signal": SIGNAL_RESOURCES_CHANGED,
        "service": service_name,
        "serial": event.serial,
        "emitted_at": event.emitted_at.isoformat(),
    }
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class MqttChangePublisher:
    """Threaded paho-mqtt client that mirrors change events onto a topic.

    Use :meth:`publish` as a :class:`~resmand.notifier.ChangeNotifier`
    subscriber. paho queues the message and its network thread delivers it,
    so publishing never blocks the mutation that raised the event.
    """

    def __init__(
        self,
        target: MqttTarget,
        *,
        service_name: str,
        logger: logging.Logger | None = None,
    ) -> None:
        self._target = target
        self._service_name = service_name
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is running."""
        return self._running

    def start(self) -> None:
        """Connect to the broker and start the network loop."""
        self.stop()
        target = self._target
        self._logger.debug(
            "MQTT publisher start requested host=%s port=%s topic=%s client_id=%s",
            target.host,
            target.port,
            target.topic,
            target.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=target.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)

        def on_connect(
            _c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.info("MQTT connected to %s:%s", target.host, target.port)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.warning("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_disconnect = on_disconnect

        client.connect_async(target.host, target.port, keepalive=target.keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

    def publish(self, event: ChangeEvent) -> None:
        """Queue *event* for delivery; failures are logged, never raised."""
        client = self._client
        if client is None:
            self._logger.debug("MQTT publisher not running; dropping event %d", event.serial)
            return
        info = client.publish(
            self._target.topic,
            encode_change_event(event, self._service_name),
            qos=0,
        )
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.warning(
                "MQTT publish of change event %d failed: %s",
                event.serial,
                mqtt.error_string(info.rc),
            )

    def stop(self) -> None:
        """Stop and disconnect the MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
