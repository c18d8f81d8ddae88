"""Tests for snapshot publication: schema, MQTT and the CLI entry point."""
from __future__ import annotations

import json
import sys
from unittest.mock import Mock, patch

import paho.mqtt.client as mqtt
import pytest

from storage_tap.config import MqttConfig
from storage_tap.main import build_parser, main, run_cycle
from storage_tap.mqtt_client import MqttPublisher
from storage_tap.schema import load_schema, validate_payload

VALID_PAYLOAD = {
    "schema": {"name": "storage-tap", "version": 1},
    "ts": "2026-10-18T12:00:00+00:00",
    "host": "localhost",
    "source": "perccli",
    "measurements": [
        {"name": "esxi_controller_status", "labels": {"controller": "0"}, "value": 1.0},
    ],
}


@pytest.fixture
def mqtt_config():
    return MqttConfig(
        enabled=True,
        host="broker.lan",
        port=1883,
        base_topic="telemetry/storage",
        client_id="storage-tap-test",
        username="tap",
        password="secret",
        qos=1,
        retain=False,
        tls_enabled=False,
        ca_cert=None,
        keepalive=60,
    )


class TestSchema:
    def test_schema_loads(self):
        assert load_schema()["title"] == "storage-tap collection snapshot"

    def test_valid_payload(self):
        assert validate_payload(VALID_PAYLOAD) == []

    def test_invalid_payload(self):
        payload = dict(VALID_PAYLOAD, source="ipmitool")
        payload["measurements"] = [{"name": "x", "labels": {"a": 1}, "value": "high"}]
        assert len(validate_payload(payload)) == 3


class TestMqttPublisher:
    @patch("storage_tap.mqtt_client.mqtt.Client")
    def test_setup(self, mock_client_cls, mqtt_config):
        publisher = MqttPublisher(mqtt_config)
        client = mock_client_cls.return_value

        client.username_pw_set.assert_called_once_with("tap", "secret")
        client.will_set.assert_called_once_with(
            "telemetry/storage/status", payload="offline", qos=1, retain=True
        )
        client.tls_set.assert_not_called()
        assert publisher.connected is False

    @patch("storage_tap.mqtt_client.mqtt.Client")
    def test_on_connect_publishes_online(self, mock_client_cls, mqtt_config):
        publisher = MqttPublisher(mqtt_config)
        client = mock_client_cls.return_value

        publisher._on_connect(client, None, {}, Mock(is_failure=False), None)

        assert publisher.connected is True
        client.publish.assert_called_once_with(
            "telemetry/storage/status", payload="online", qos=1, retain=True
        )

    @patch("storage_tap.mqtt_client.mqtt.Client")
    def test_on_connect_failure(self, mock_client_cls, mqtt_config):
        publisher = MqttPublisher(mqtt_config)
        publisher._on_connect(mock_client_cls.return_value, None, {}, Mock(is_failure=True), None)
        assert publisher.connected is False

    @patch("storage_tap.mqtt_client.mqtt.Client")
    def test_publish_snapshot_to_host_topic(self, mock_client_cls, mqtt_config):
        client = mock_client_cls.return_value
        client.publish.return_value = Mock(rc=mqtt.MQTT_ERR_SUCCESS)
        publisher = MqttPublisher(mqtt_config)

        assert publisher.publish_snapshot(VALID_PAYLOAD) is True
        client.publish.assert_called_once_with(
            "telemetry/storage/localhost",
            payload=json.dumps(VALID_PAYLOAD),
            qos=1,
            retain=False,
        )

    @patch("storage_tap.mqtt_client.mqtt.Client")
    def test_publish_snapshot_uses_rendered_json(self, mock_client_cls, mqtt_config):
        client = mock_client_cls.return_value
        client.publish.return_value = Mock(rc=mqtt.MQTT_ERR_SUCCESS)
        publisher = MqttPublisher(mqtt_config)

        publisher.publish_snapshot(dict(VALID_PAYLOAD, host="esx01"), '{"pretty": true}')
        assert client.publish.call_args.args == ("telemetry/storage/esx01",)
        assert client.publish.call_args.kwargs["payload"] == '{"pretty": true}'

    @patch("storage_tap.mqtt_client.mqtt.Client")
    def test_publish_snapshot_failure(self, mock_client_cls, mqtt_config):
        client = mock_client_cls.return_value
        client.publish.return_value = Mock(rc=mqtt.MQTT_ERR_NO_CONN)
        publisher = MqttPublisher(mqtt_config)

        assert publisher.publish_snapshot(VALID_PAYLOAD) is False

    @patch("storage_tap.mqtt_client.mqtt.Client")
    def test_disconnect_announces_offline(self, mock_client_cls, mqtt_config):
        client = mock_client_cls.return_value
        publisher = MqttPublisher(mqtt_config)
        publisher._on_connect(client, None, {}, Mock(is_failure=False), None)
        client.publish.reset_mock()

        publisher.disconnect()

        client.publish.assert_called_once_with(
            "telemetry/storage/status", payload="offline", qos=1, retain=True
        )
        client.loop_stop.assert_called_once()
        client.disconnect.assert_called_once()


class TestRunCycle:
    def test_publishes_collected_snapshot(self):
        collector = Mock()
        collector.collect.return_value = VALID_PAYLOAD
        publisher = Mock()

        assert run_cycle(collector, publisher, None, pretty_print=False) == VALID_PAYLOAD
        publisher.publish_snapshot.assert_called_once_with(VALID_PAYLOAD, json.dumps(VALID_PAYLOAD))


@pytest.mark.integration
class TestMain:
    def test_parser_defaults(self):
        args = build_parser().parse_args([])
        assert args.config == "config/example.cfg"
        assert args.once is False
        assert args.verbose == 0

    def test_once_writes_snapshot(self, tmp_path):
        config_path = tmp_path / "storage-tap.cfg"
        config_path.write_text("[exporter]\nhost = esx01\n")
        dump_path = tmp_path / "snapshot.json"
        argv = ["storage-tap", "--config", str(config_path), "--once", "--dump-json", str(dump_path)]

        with patch.object(sys, "argv", argv), \
             patch("storage_tap.main.StorageCollector") as mock_collector_cls, \
             patch("storage_tap.main.start_exporter") as mock_exporter, \
             patch("storage_tap.main.MqttPublisher") as mock_publisher_cls, \
             patch("storage_tap.main.configure_logging"):
            mock_collector_cls.return_value.collect.return_value = VALID_PAYLOAD
            main()

        assert json.loads(dump_path.read_text()) == VALID_PAYLOAD
        assert mock_collector_cls.call_args.kwargs["host"] == "esx01"
        mock_exporter.assert_not_called()
        mock_publisher_cls.assert_not_called()
