from __future__ import annotations

import argparse
import json
import logging
import time
from typing import Any

from storage_tap.collector import StorageCollector
from storage_tap.config import load_config
from storage_tap.exporter import start_exporter
from storage_tap.logging_utils import configure_logging, resolve_log_level
from storage_tap.mqtt_client import MqttPublisher
from storage_tap.schema import validate_payload
from storage_tap.sink import MeasurementSink


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Storage Tap RAID and SMART exporter")
    parser.add_argument(
        "--config",
        default="config/example.cfg",
        help="Path to CFG configuration file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log snapshots without publishing to MQTT",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Collect a single snapshot, log it and exit without serving /metrics",
    )
    parser.add_argument(
        "--dump-json",
        help="Write the JSON snapshot to a file (overwrites on each cycle)",
    )
    return parser


def run_cycle(
    collector: StorageCollector,
    publisher: MqttPublisher | None,
    dump_json: str | None,
    pretty_print: bool,
) -> dict[str, Any]:
    logger = logging.getLogger("storage_tap")
    payload = collector.collect()
    schema_errors = validate_payload(payload)
    if schema_errors:
        logger.warning("Schema validation failed with %s errors.", len(schema_errors))
        logger.debug("Schema errors: %s", schema_errors)
    else:
        logger.debug("Schema validation passed.")
    payload_json = json.dumps(payload, indent=2) if pretty_print else json.dumps(payload)
    if dump_json:
        with open(dump_json, "w", encoding="utf-8") as handle:
            handle.write(payload_json)
    if publisher is not None:
        publisher.publish_snapshot(payload, payload_json)
    else:
        logger.debug("Snapshot: %s", payload_json)
    return payload


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)
    logger = logging.getLogger("storage_tap")
    config = load_config(args.config)
    pretty_print = level <= logging.DEBUG

    sink = MeasurementSink(namespace=config.exporter.namespace)
    collector = StorageCollector(sink, config.collector, host=config.exporter.host)
    publisher = None
    if config.mqtt.enabled and not args.dry_run:
        publisher = MqttPublisher(config.mqtt)
        publisher.connect()
    elif args.dry_run:
        logger.info("Dry run enabled; skipping MQTT publish.")

    if args.once:
        run_cycle(collector, publisher, args.dump_json, pretty_print)
        logger.info("Single-run mode enabled; exiting after initial snapshot.")
        if publisher is not None:
            publisher.disconnect()
        return

    start_exporter(config.exporter, sink)
    interval = max(1, config.publish.interval_s)
    logger.info("Storage Tap started. Rescanning every %s seconds.", interval)

    try:
        # Cycles run back to back in this thread, so two never overlap
        while True:
            try:
                run_cycle(collector, publisher, args.dump_json, pretty_print)
            except Exception:
                logger.exception("Collection cycle failed")
            time.sleep(interval)
    except KeyboardInterrupt:
        logger.info("Storage Tap stopped.")
    finally:
        if publisher is not None:
            publisher.disconnect()


if __name__ == "__main__":
    main()
