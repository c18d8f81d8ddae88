"""Storage Tap RAID controller and SMART exporter."""

from storage_tap.collector import StorageCollector
from storage_tap.commands import CommandError, CommandRunner, CommandTimeoutError
from storage_tap.config import AppConfig, load_config
from storage_tap.sink import MeasurementSink

__all__ = [
    "AppConfig",
    "CommandError",
    "CommandRunner",
    "CommandTimeoutError",
    "MeasurementSink",
    "StorageCollector",
    "load_config",
]
