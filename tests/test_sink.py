"""Tests for the Prometheus backed measurement sink."""
from __future__ import annotations

from unittest.mock import patch

import pytest
from prometheus_client import generate_latest

from storage_tap.config import ExporterConfig
from storage_tap.exporter import start_exporter
from storage_tap.models import Measurement
from storage_tap.sink import METRIC_DEFINITIONS, MeasurementSink


class TestMeasurementSink:
    def test_registers_every_metric(self, sink):
        assert set(sink.gauges) == set(METRIC_DEFINITIONS)

    def test_set_and_get(self, sink):
        sink.set("controller_status", {"controller": "0"}, 1)
        assert sink.get("controller_status", {"controller": "0"}) == 1.0
        assert sink.get("controller_status", {"controller": "1"}) is None

    def test_reset_clears_all_label_sets(self, sink):
        sink.set("controller_status", {"controller": "0"}, 1)
        sink.set("bbu_health", {"controller": "0"}, 0)
        sink.reset()
        assert sink.samples() == []

    def test_samples(self, sink):
        sink.set("drive_temp", {"controller": "0", "drive": "Drive /c0/e32/s1"}, 31.0)
        assert sink.samples() == [
            Measurement(
                name="esxi_drive_temp",
                labels={"controller": "0", "drive": "Drive /c0/e32/s1"},
                value=31.0,
            )
        ]

    def test_unknown_metric(self, sink):
        with pytest.raises(KeyError):
            sink.set("fan_speed", {"controller": "0"}, 1)

    def test_wrong_labels(self, sink):
        with pytest.raises(ValueError):
            sink.set("controller_status", {"drive": "x"}, 1)

    def test_exposition_uses_namespace(self):
        sink = MeasurementSink(namespace="storage")
        sink.set("smartctl_info", {"host": "esx01"}, 1)
        text = generate_latest(sink.registry).decode()
        assert 'storage_smartctl_info{host="esx01"} 1.0' in text

    def test_separate_sinks_do_not_share_registries(self):
        first = MeasurementSink()
        second = MeasurementSink()
        first.set("smartctl_info", {"host": "a"}, 1)
        assert second.samples() == []


class TestExporter:
    @patch("storage_tap.exporter.start_http_server")
    def test_serves_sink_registry(self, mock_start, sink):
        config = ExporterConfig(address="0.0.0.0", port=10424, namespace="esxi", host="localhost")
        start_exporter(config, sink)
        mock_start.assert_called_once_with(10424, addr="0.0.0.0", registry=sink.registry)
