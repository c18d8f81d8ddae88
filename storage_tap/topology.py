"""Walks the ``perccli /cALL show all J`` dump of a single controller."""
from __future__ import annotations

import logging
from typing import Any, Callable

from storage_tap.models import (
    BatteryUnit,
    Controller,
    ControllerTopology,
    PhysicalDrive,
    SmartAttributes,
    VirtualDrive,
    drive_path,
)
from storage_tap.smart import decode_smart_data, extract_smart_hex

UNKNOWN = "Unknown"

RAID_DRIVERS = frozenset({"megaraid_sas", "lsi-mr3"})
# Firmware releases disagree on the spelling
TEMPERATURE_KEYS = (
    "ROC temperature(Degree Celcius)",
    "ROC temperature(Degree Celsius)",
)
HEALTHY_BBU_CODES = frozenset({0.0, 8.0, 4096.0})
BBU_NOT_APPLICABLE = "NA"


def get_text(mapping: Any, key: str, default: str = UNKNOWN) -> str:
    """Read ``key`` as text; numbers are rendered, anything else gives ``default``."""
    if not isinstance(mapping, dict):
        return default
    value = mapping.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return default


def parse_float(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def split_composite(token: str, separator: str) -> tuple[str, str] | None:
    """Split ``token`` on the first ``separator`` into two non-empty parts."""
    first, sep, second = token.partition(separator)
    first, second = first.strip(), second.strip()
    if not sep or not first or not second:
        return None
    return first, second


class ControllerTopologyExtractor:
    def __init__(self, smart_source: Callable[[str], str] | None = None) -> None:
        """
        Args:
            smart_source: Called with a drive path such as ``/c0/e32/s2``; returns
                the ``show smart`` output for it, or an empty string.
        """
        self.smart_source = smart_source
        self.logger = logging.getLogger(self.__class__.__name__)

    def extract(self, response: dict[str, Any]) -> ControllerTopology:
        controller = self.extract_controller(response)
        if controller.driver_name not in RAID_DRIVERS:
            self.logger.debug(
                "Controller %s uses driver %s; skipping RAID details",
                controller.controller_id,
                controller.driver_name,
            )
            return ControllerTopology(controller=controller)

        return ControllerTopology(
            controller=controller,
            physical_drives=self.extract_physical_drives(response, controller.controller_id),
            virtual_drives=self.extract_virtual_drives(response, controller.controller_id),
            battery=self.extract_battery(response, controller.controller_id),
        )

    def extract_controller(self, response: dict[str, Any]) -> Controller:
        basics = response.get("Basics")
        version = response.get("Version")
        status = response.get("Status")
        controller_id = get_text(basics, "Controller")

        temperature = None
        hw_cfg = response.get("HwCfg")
        if isinstance(hw_cfg, dict):
            for key in TEMPERATURE_KEYS:
                if key in hw_cfg:
                    temperature = parse_float(hw_cfg[key])
                    if temperature is None:
                        self.logger.debug(
                            "Could not parse temperature for controller %s: %r",
                            controller_id,
                            hw_cfg[key],
                        )
                    break

        return Controller(
            controller_id=controller_id,
            model=get_text(basics, "Model"),
            serial=get_text(basics, "Serial Number"),
            firmware_version=get_text(version, "Firmware Version"),
            driver_name=get_text(version, "Driver Name"),
            optimal=isinstance(status, dict) and status.get("Controller Status") == "Optimal",
            temperature_c=temperature,
        )

    def extract_physical_drives(
        self, response: dict[str, Any], controller_id: str
    ) -> list[PhysicalDrive]:
        pd_list = response.get("PD LIST")
        if not isinstance(pd_list, list):
            return []

        drives = []
        for entry in pd_list:
            if not isinstance(entry, dict):
                self.logger.debug("Skipping malformed PD LIST entry: %r", entry)
                continue
            eid_slt = get_text(entry, "EID:Slt", "")
            parts = split_composite(eid_slt, ":")
            if parts is None:
                self.logger.warning(
                    "Skipping drive on controller %s with malformed EID:Slt %r",
                    controller_id,
                    eid_slt,
                )
                continue
            enclosure, slot = parts

            temperature = None
            if "Temp" in entry:
                temperature = parse_float(str(entry["Temp"]).replace("C", ""))
                if temperature is None:
                    self.logger.info(
                        "Could not parse temperature for Drive %s: %r",
                        drive_path(controller_id, enclosure, slot),
                        entry["Temp"],
                    )

            drives.append(
                PhysicalDrive(
                    controller_id=controller_id,
                    enclosure_id=enclosure,
                    slot_id=slot,
                    model_name=get_text(entry, "Model").strip() or UNKNOWN,
                    protocol=get_text(entry, "Intf"),
                    online=entry.get("State") == "Onln",
                    temperature_c=temperature,
                    smart=self.fetch_smart(drive_path(controller_id, enclosure, slot)),
                )
            )
        return drives

    def fetch_smart(self, path: str) -> SmartAttributes:
        if self.smart_source is None:
            return {}
        output = self.smart_source(path)
        smart_hex = extract_smart_hex(output) if output else ""
        if not smart_hex:
            self.logger.info("No SMART data found for %s", path)
            return {}
        return decode_smart_data(smart_hex)

    def extract_virtual_drives(
        self, response: dict[str, Any], controller_id: str
    ) -> list[VirtualDrive]:
        vd_list = response.get("VD LIST")
        if not isinstance(vd_list, list):
            return []

        volumes = []
        for entry in vd_list:
            if not isinstance(entry, dict):
                self.logger.debug("Skipping malformed VD LIST entry: %r", entry)
                continue
            position = get_text(entry, "DG/VD", "")
            parts = split_composite(position, "/")
            if parts is None:
                self.logger.warning(
                    "Skipping virtual drive on controller %s with malformed DG/VD %r",
                    controller_id,
                    position,
                )
                continue
            volumes.append(
                VirtualDrive(
                    controller_id=controller_id,
                    drive_group=parts[0],
                    volume=parts[1],
                    optimal=entry.get("State") == "Optl",
                )
            )
        return volumes

    def extract_battery(
        self, response: dict[str, Any], controller_id: str
    ) -> BatteryUnit | None:
        status = response.get("Status")
        if not isinstance(status, dict) or "BBU Status" not in status:
            return None
        code = status["BBU Status"]
        if code == BBU_NOT_APPLICABLE:
            return None
        value = parse_float(code)
        if value is None:
            self.logger.debug("Unrecognised BBU status on controller %s: %r", controller_id, code)
        return BatteryUnit(
            controller_id=controller_id,
            healthy=value in HEALTHY_BBU_CODES,
        )
