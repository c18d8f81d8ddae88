from __future__ import annotations

from datetime import datetime, timezone
import json
import logging
import shlex
from typing import Any, Protocol

from storage_tap.commands import CommandError, CommandRunner
from storage_tap.config import CollectorConfig, default_collector_config
from storage_tap.discovery import scan_devices
from storage_tap.models import ControllerTopology, DiscoveredDevice
from storage_tap.sink import MeasurementSink
from storage_tap.smart import parse_smart_table
from storage_tap.topology import ControllerTopologyExtractor

SCHEMA_NAME = "storage-tap"
SCHEMA_VERSION = 1

SOURCE_PERCCLI = "perccli"
SOURCE_ESXCLI = "esxcli"
UNKNOWN = "Unknown"


class Runner(Protocol):
    def run(self, command: str) -> str: ...


class StorageCollector:
    """Runs one collection cycle and writes the result into the sink.

    The structured ``perccli`` dump is preferred. When it cannot be used the
    whole cycle switches to ``esxcli`` discovery plus per-device ``smartctl``.
    """

    def __init__(
        self,
        sink: MeasurementSink,
        config: CollectorConfig | None = None,
        runner: Runner | None = None,
        host: str = "localhost",
    ) -> None:
        self.sink = sink
        self.config = config or default_collector_config()
        self.runner = runner or CommandRunner(timeout_s=self.config.command_timeout_s)
        self.host = host
        self.logger = logging.getLogger(self.__class__.__name__)

    # Command lines

    def _perccli(self, args: str) -> str:
        return f"cd {shlex.quote(self.config.perccli_dir)} && ./perccli {args}"

    def perccli_show_all_command(self) -> str:
        return self._perccli("/cALL show all J")

    def perccli_smart_command(self, path: str) -> str:
        return self._perccli(f"{path} show smart")

    def esxcli_device_list_command(self) -> str:
        return f"{self.config.esxcli_path} storage core device list"

    def smartctl_command(self, device_id: str) -> str:
        return (
            f"cd {shlex.quote(self.config.smartctl_dir)} && "
            f"./smartctl -a -d sat /dev/disks/{shlex.quote(device_id)}"
        )

    def _run(self, command: str) -> str | None:
        try:
            return self.runner.run(command)
        except CommandError as exc:
            self.logger.warning("Command failed: %s (%s)", command, exc)
            if exc.stderr:
                self.logger.debug("stderr: %s", exc.stderr)
            return None

    # Cycle

    def collect(self) -> dict[str, Any]:
        self.logger.debug("Collecting storage metrics.")
        ts = datetime.now(timezone.utc).isoformat()
        self.sink.reset()

        controllers = self.load_controllers()
        if controllers is None:
            self.logger.info("perccli not used. Discovering and processing devices via esxcli.")
            source = SOURCE_ESXCLI
            self.collect_fallback()
        else:
            self.logger.info("perccli found controllers. Processing perccli data.")
            source = SOURCE_PERCCLI
            self.collect_controllers(controllers)

        measurements = self.sink.samples()
        self.logger.debug("Completed collection with %d measurements.", len(measurements))
        return {
            "schema": {"name": SCHEMA_NAME, "version": SCHEMA_VERSION},
            "ts": ts,
            "host": self.host,
            "source": source,
            "measurements": [m.as_dict() for m in measurements],
        }

    def load_controllers(self) -> list[Any] | None:
        """Return the perccli controller list, or None when it is unusable."""
        stdout = self._run(self.perccli_show_all_command())
        if stdout is None:
            self.logger.info("perccli command failed. Falling back to esxcli.")
            return None
        try:
            data = json.loads(stdout)
        except json.JSONDecodeError as exc:
            self.logger.warning(
                "Failed to decode JSON from perccli output: %s. Falling back to esxcli.", exc
            )
            return None

        controllers = data.get("Controllers") if isinstance(data, dict) else None
        if not isinstance(controllers, list) or not controllers:
            self.logger.info("perccli returned no controller data. Falling back to esxcli.")
            return None

        first = controllers[0]
        status = first.get("Command Status") if isinstance(first, dict) else None
        if isinstance(status, dict) and status.get("Status") == "Failure" and (
            "No Controller found" in str(status.get("Description", ""))
        ):
            self.logger.info("perccli reported 'No Controller found'. Falling back to esxcli.")
            return None
        return controllers

    # Primary path

    def collect_controllers(self, controllers: list[Any]) -> None:
        extractor = ControllerTopologyExtractor(smart_source=self.fetch_perccli_smart)
        for entry in controllers:
            response = entry.get("Response Data") if isinstance(entry, dict) else None
            if not isinstance(response, dict):
                self.logger.debug("Skipping controller entry without Response Data")
                continue
            self.publish_topology(extractor.extract(response))

    def fetch_perccli_smart(self, path: str) -> str:
        output = self._run(self.perccli_smart_command(path))
        if output is None:
            self.logger.info("Error getting SMART data for %s", path)
            return ""
        return output

    def publish_topology(self, topology: ControllerTopology) -> None:
        controller = topology.controller
        ctl = controller.controller_id
        self.sink.set(
            "controller_info",
            {
                "controller": ctl,
                "model": controller.model,
                "serial": controller.serial,
                "fwversion": controller.firmware_version,
            },
            1,
        )
        self.sink.set("controller_status", {"controller": ctl}, 1 if controller.optimal else 0)
        if controller.temperature_c is not None:
            self.sink.set("controller_temperature", {"controller": ctl}, controller.temperature_c)

        for drive in topology.physical_drives:
            self.sink.set(
                "drive_status",
                {
                    "controller": ctl,
                    "drive": drive.identifier,
                    "model_name": drive.model_name,
                    "protocol": drive.protocol,
                },
                1 if drive.online else 0,
            )
            if drive.temperature_c is not None:
                self.sink.set(
                    "drive_temp",
                    {"controller": ctl, "drive": drive.identifier},
                    drive.temperature_c,
                )
            for attribute, value in drive.smart.items():
                self.sink.set(
                    "drive_smart",
                    {"controller": ctl, "drive": drive.identifier, "attribute": attribute},
                    value,
                )

        for volume in topology.virtual_drives:
            self.sink.set(
                "virtual_drive_status",
                {"controller": ctl, "vd": volume.identifier},
                1 if volume.optimal else 0,
            )

        if topology.battery is not None:
            self.sink.set("bbu_health", {"controller": ctl}, 1 if topology.battery.healthy else 0)

    # Fallback path

    def collect_fallback(self) -> None:
        self.sink.set("smartctl_info", {"host": self.host}, 1)
        output = self._run(self.esxcli_device_list_command())
        if output is None:
            self.logger.warning("Error discovering esxcli devices.")
            return
        for device in scan_devices(output):
            self.publish_device(device)

    def publish_device(self, device: DiscoveredDevice) -> None:
        model = device.model or UNKNOWN
        protocol = device.protocol or UNKNOWN
        self.logger.info("Processing esxcli device: %s (%s)", device.display_name, device.device_id)
        self.sink.set(
            "smartctl_drive",
            {
                "host": self.host,
                "drive": device.display_name,
                "device_id": device.device_id,
                "model_name": model,
                "protocol": protocol,
            },
            1,
        )
        # esxcli only lists devices it can see, so they are reported online
        self.sink.set(
            "drive_status",
            {
                "controller": SOURCE_ESXCLI,
                "drive": device.display_name,
                "model_name": model,
                "protocol": protocol,
            },
            1,
        )

        output = self._run(self.smartctl_command(device.device_id))
        if output is None:
            self.logger.info(
                "smartctl failed for %s; expected for logical drives.", device.device_id
            )
            return
        attributes = parse_smart_table(output)
        if not attributes:
            self.logger.info(
                "No SMART data collected via esxcli for device: %s (%s)",
                device.display_name,
                device.device_id,
            )
            return
        for attribute, value in attributes.items():
            self.sink.set(
                "drive_smart",
                {"controller": SOURCE_ESXCLI, "drive": device.display_name, "attribute": attribute},
                value,
            )
