from __future__ import annotations

import logging
from typing import Mapping

from prometheus_client import CollectorRegistry, Gauge

from storage_tap.logging_utils import TRACE_LEVEL
from storage_tap.models import Measurement

# name -> (help, label names)
METRIC_DEFINITIONS: dict[str, tuple[str, tuple[str, ...]]] = {
    "controller_info": (
        "MegaRAID controller info",
        ("controller", "model", "serial", "fwversion"),
    ),
    "controller_status": (
        "Controller status (1=Optimal, 0=Not Optimal)",
        ("controller",),
    ),
    "controller_temperature": (
        "Controller temperature in Celsius",
        ("controller",),
    ),
    "drive_status": (
        "Physical drive status (1=Online, 0=Other)",
        ("controller", "drive", "model_name", "protocol"),
    ),
    "drive_temp": (
        "Physical drive temperature in Celsius",
        ("controller", "drive"),
    ),
    "drive_smart": (
        "Drive SMART attributes",
        ("controller", "drive", "attribute"),
    ),
    "virtual_drive_status": (
        "Virtual drive status (1=Optimal, 0=Other)",
        ("controller", "vd"),
    ),
    "bbu_health": (
        "Battery Backup Unit health (1=Healthy, 0=Unhealthy)",
        ("controller",),
    ),
    "smartctl_info": (
        "Indicates smartctl is used for metrics collection (1=Active)",
        ("host",),
    ),
    "smartctl_drive": (
        "Lists drives detected via smartctl on ESXi host",
        ("host", "drive", "device_id", "model_name", "protocol"),
    ),
}


class MeasurementSink:
    """Owns one gauge per metric in a private registry.

    The sink lives for the whole process; each collection cycle calls
    :meth:`reset` before writing so label sets from an earlier cycle never
    survive into the next one.
    """

    def __init__(self, namespace: str = "esxi", registry: CollectorRegistry | None = None) -> None:
        self.namespace = namespace
        self.registry = registry or CollectorRegistry()
        self.logger = logging.getLogger(self.__class__.__name__)
        self.gauges: dict[str, Gauge] = {
            name: Gauge(
                name,
                help_text,
                list(labels),
                namespace=namespace,
                registry=self.registry,
            )
            for name, (help_text, labels) in METRIC_DEFINITIONS.items()
        }

    def full_name(self, metric: str) -> str:
        return f"{self.namespace}_{metric}" if self.namespace else metric

    def reset(self) -> None:
        for gauge in self.gauges.values():
            gauge.clear()

    def set(self, metric: str, labels: Mapping[str, str], value: float) -> None:
        gauge = self.gauges[metric]
        self.logger.log(TRACE_LEVEL, "%s%s = %s", metric, dict(labels), value)
        gauge.labels(**labels).set(value)

    def get(self, metric: str, labels: Mapping[str, str]) -> float | None:
        return self.registry.get_sample_value(self.full_name(metric), dict(labels))

    def samples(self) -> list[Measurement]:
        measurements = []
        for family in self.registry.collect():
            for sample in family.samples:
                measurements.append(
                    Measurement(name=sample.name, labels=dict(sample.labels), value=sample.value)
                )
        return measurements
