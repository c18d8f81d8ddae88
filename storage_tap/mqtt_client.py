from __future__ import annotations

import json
import logging
import ssl
from typing import Any

import paho.mqtt.client as mqtt

from storage_tap.config import MqttConfig


class MqttPublisher:
    """Publishes storage snapshots as JSON to one topic per host.

    ``{base_topic}/status`` carries ``online``/``offline`` with a last will so
    subscribers can tell a silent host from a host with no RAID controller.
    """

    def __init__(self, config: MqttConfig) -> None:
        self.config = config
        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv311,
        )
        self.logger = logging.getLogger(self.__class__.__name__)
        self._connected = False

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        if config.username:
            self.client.username_pw_set(config.username, config.password)
        if config.tls_enabled:
            self.client.tls_set(ca_certs=config.ca_cert, cert_reqs=ssl.CERT_REQUIRED)

        self.client.will_set(self.availability_topic, payload="offline", qos=1, retain=True)
        self.client.reconnect_delay_set(min_delay=1, max_delay=120)

    @property
    def availability_topic(self) -> str:
        return f"{self.config.base_topic}/status"

    @property
    def connected(self) -> bool:
        return self._connected

    def snapshot_topic(self, host: str) -> str:
        return f"{self.config.base_topic}/{host}"

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        if reason_code.is_failure:
            self._connected = False
            self.logger.error("Failed to connect to MQTT broker: %s", reason_code)
            return
        self._connected = True
        self.logger.info("Connected to MQTT broker %s:%s", self.config.host, self.config.port)
        client.publish(self.availability_topic, payload="online", qos=1, retain=True)

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: Any,
        properties: Any = None,
    ) -> None:
        self._connected = False
        if reason_code.is_failure:
            self.logger.warning("Lost MQTT broker connection (%s); reconnecting.", reason_code)
        else:
            self.logger.info("Disconnected from MQTT broker (clean)")

    def connect(self) -> None:
        self.logger.info("Connecting to MQTT broker %s:%s", self.config.host, self.config.port)
        self.client.connect(self.config.host, self.config.port, keepalive=self.config.keepalive)
        self.client.loop_start()

    def disconnect(self) -> None:
        if self._connected:
            self.client.publish(self.availability_topic, payload="offline", qos=1, retain=True)
        self.client.loop_stop()
        self.client.disconnect()

    def publish_snapshot(self, payload: dict[str, Any], payload_json: str | None = None) -> bool:
        """Publish one collection snapshot to the topic of the host it describes.

        Args:
            payload: Snapshot as returned by ``StorageCollector.collect``.
            payload_json: Pre-rendered JSON for ``payload``; rendered compactly when omitted.

        Returns:
            True if the client accepted the message.
        """
        if not self._connected:
            self.logger.warning("Not connected to MQTT broker, snapshot may be queued")
        topic = self.snapshot_topic(payload.get("host", "localhost"))
        self.logger.debug(
            "Publishing %s snapshot with %s measurements to %s",
            payload.get("source"),
            len(payload.get("measurements", [])),
            topic,
        )
        result = self.client.publish(
            topic,
            payload=payload_json if payload_json is not None else json.dumps(payload),
            qos=self.config.qos,
            retain=self.config.retain,
        )
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self.logger.error("Failed to publish snapshot, error code: %s", result.rc)
            return False
        return True
