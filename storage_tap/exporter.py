from __future__ import annotations

import logging

from prometheus_client import start_http_server

from storage_tap.config import ExporterConfig
from storage_tap.sink import MeasurementSink

logger = logging.getLogger(__name__)


def start_exporter(config: ExporterConfig, sink: MeasurementSink):
    """Serve the sink's registry on ``/metrics`` from a daemon thread."""
    logger.info("Starting server on %s:%s", config.address, config.port)
    return start_http_server(config.port, addr=config.address, registry=sink.registry)
