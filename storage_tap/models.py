from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SmartAttributes = dict[str, float]


@dataclass(frozen=True)
class Controller:
    controller_id: str
    model: str
    serial: str
    firmware_version: str
    driver_name: str
    optimal: bool
    temperature_c: float | None = None


@dataclass(frozen=True)
class PhysicalDrive:
    controller_id: str
    enclosure_id: str
    slot_id: str
    model_name: str
    protocol: str
    online: bool
    temperature_c: float | None = None
    smart: SmartAttributes = field(default_factory=dict)

    @property
    def path(self) -> str:
        """Vendor tool address of the drive, e.g. ``/c0/e32/s2``."""
        return drive_path(self.controller_id, self.enclosure_id, self.slot_id)

    @property
    def identifier(self) -> str:
        return f"Drive {self.path}"


@dataclass(frozen=True)
class VirtualDrive:
    controller_id: str
    drive_group: str
    volume: str
    optimal: bool

    @property
    def identifier(self) -> str:
        return f"DG{self.drive_group}/VD{self.volume}"


@dataclass(frozen=True)
class BatteryUnit:
    controller_id: str
    healthy: bool


@dataclass(frozen=True)
class ControllerTopology:
    controller: Controller
    physical_drives: list[PhysicalDrive] = field(default_factory=list)
    virtual_drives: list[VirtualDrive] = field(default_factory=list)
    battery: BatteryUnit | None = None


@dataclass(frozen=True)
class DiscoveredDevice:
    device_id: str
    display_name: str
    model: str = ""
    protocol: str = ""


@dataclass(frozen=True)
class Measurement:
    name: str
    labels: dict[str, str]
    value: float

    def as_dict(self) -> dict[str, Any]:
        return {"name": self.name, "labels": dict(self.labels), "value": self.value}


def drive_path(controller_id: str, enclosure_id: str, slot_id: str) -> str:
    return f"/c{controller_id}/e{enclosure_id}/s{slot_id}"
