from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import configparser


@dataclass(frozen=True)
class ExporterConfig:
    address: str
    port: int
    namespace: str
    host: str


@dataclass(frozen=True)
class PublishConfig:
    interval_s: int


@dataclass(frozen=True)
class CollectorConfig:
    perccli_dir: str
    smartctl_dir: str
    esxcli_path: str
    command_timeout_s: float


@dataclass(frozen=True)
class MqttConfig:
    enabled: bool
    host: str
    port: int
    base_topic: str
    client_id: str
    username: str | None
    password: str | None
    qos: int
    retain: bool
    tls_enabled: bool
    ca_cert: str | None
    keepalive: int


@dataclass(frozen=True)
class AppConfig:
    exporter: ExporterConfig
    publish: PublishConfig
    collector: CollectorConfig
    mqtt: MqttConfig


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def default_collector_config() -> CollectorConfig:
    return CollectorConfig(
        perccli_dir="/opt/lsi/perccli",
        smartctl_dir="/opt/smartmontools",
        esxcli_path="esxcli",
        command_timeout_s=30.0,
    )


def load_config(path: str | Path) -> AppConfig:
    parser = configparser.ConfigParser()
    read_files = parser.read(path)
    if not read_files:
        raise FileNotFoundError(f"Config file not found: {path}")

    # Every section is optional; missing keys fall back to the stock ESXi layout
    exporter = ExporterConfig(
        address=parser.get("exporter", "address", fallback="0.0.0.0"),
        port=parser.getint("exporter", "port", fallback=10424),
        namespace=parser.get("exporter", "namespace", fallback="esxi"),
        host=parser.get("exporter", "host", fallback="localhost"),
    )

    publish = PublishConfig(
        interval_s=parser.getint("publish", "interval_s", fallback=86400),
    )

    defaults = default_collector_config()
    collector = CollectorConfig(
        perccli_dir=parser.get("collector", "perccli_dir", fallback=defaults.perccli_dir),
        smartctl_dir=parser.get("collector", "smartctl_dir", fallback=defaults.smartctl_dir),
        esxcli_path=parser.get("collector", "esxcli_path", fallback=defaults.esxcli_path),
        command_timeout_s=parser.getfloat(
            "collector", "command_timeout_s", fallback=defaults.command_timeout_s
        ),
    )

    mqtt = MqttConfig(
        enabled=parser.getboolean("mqtt", "enabled", fallback=False),
        host=parser.get("mqtt", "host", fallback="localhost"),
        port=parser.getint("mqtt", "port", fallback=1883),
        base_topic=parser.get("mqtt", "base_topic", fallback="telemetry/storage"),
        client_id=parser.get("mqtt", "client_id", fallback="storage-tap"),
        username=_get_optional(parser.get("mqtt", "username", fallback=None)),
        password=_get_optional(parser.get("mqtt", "password", fallback=None)),
        qos=parser.getint("mqtt", "qos", fallback=0),
        retain=parser.getboolean("mqtt", "retain", fallback=False),
        tls_enabled=parser.getboolean("mqtt", "tls", fallback=False),
        ca_cert=_get_optional(parser.get("mqtt", "ca_cert", fallback=None)),
        keepalive=parser.getint("mqtt", "keepalive", fallback=60),
    )

    return AppConfig(exporter=exporter, publish=publish, collector=collector, mqtt=mqtt)
