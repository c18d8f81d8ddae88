"""Device discovery from ``esxcli storage core device list`` text output."""
from __future__ import annotations

import logging
import re

from storage_tap.models import DiscoveredDevice

DEVICE_ID_RE = re.compile(r"^(naa\.\S+|t10\.\S+|mpx\.\S+)$")
# Anchored so "Has Settable Display Name: true" is not taken as a name
DISPLAY_NAME_RE = re.compile(r"^Display Name:\s*(.+)")
PAREN_SUFFIX_RE = re.compile(r"\s*\([^)]+\)$")
MODEL_RE = re.compile(r"^Model:\s*(.+)")
SSD_RE = re.compile(r"Is SSD:\s*true", re.IGNORECASE)


class DeviceDiscoveryScanner:
    """Groups ``esxcli storage core device list`` output into devices.

    The listing is a run of blocks, each opened by an unindented device id
    line (``naa.``, ``t10.`` or ``mpx.``) followed by ``Key: value`` lines.
    The only state is the record being filled in; it is flushed whenever the
    next id line shows up and once more at the end of input.
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)
        self.devices: list[DiscoveredDevice] = []
        self._current: dict[str, str] = {}

    @property
    def pending(self) -> dict[str, str]:
        """Fields gathered so far for the device currently being read."""
        return dict(self._current)

    def scan(self, output: str) -> list[DiscoveredDevice]:
        self.devices = []
        self._current = {}
        for line in output.splitlines():
            self.feed(line)
        self._flush(last=True)
        return self.devices

    def feed(self, line: str) -> None:
        line = line.strip()

        # Identifier lines must be checked before any field rule
        if DEVICE_ID_RE.match(line):
            self._flush()
            self._current = {"id": line}
            return
        if not self._current:
            return

        if match := DISPLAY_NAME_RE.search(line):
            self._current["display_name"] = PAREN_SUFFIX_RE.sub("", match.group(1).strip())
        elif match := MODEL_RE.search(line):
            self._current["model"] = match.group(1).strip()
        elif SSD_RE.search(line):
            self._current["protocol"] = "SSD"
        elif "nvme" in line.lower():
            self._current["protocol"] = "NVMe"

    def _flush(self, last: bool = False) -> None:
        if not self._current:
            return
        record, self._current = self._current, {}
        device_id = record.get("id", "")
        display_name = record.get("display_name", "")
        if device_id and display_name:
            self.devices.append(
                DiscoveredDevice(
                    device_id=device_id,
                    display_name=display_name,
                    model=record.get("model", ""),
                    protocol=record.get("protocol", ""),
                )
            )
        else:
            self.logger.info(
                "Skipping incomplete %sdevice info, dropped: %s",
                "last " if last else "",
                record,
            )


def scan_devices(output: str) -> list[DiscoveredDevice]:
    return DeviceDiscoveryScanner().scan(output)
