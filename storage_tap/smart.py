"""SMART attribute decoding.

Two sources feed the same ``dict[str, float]`` shape:

* the hex dump printed by ``perccli /cX/eY/sZ show smart``, a raw copy of the
  ATA SMART data page (11-byte attribute records), and
* the attribute table printed by ``smartctl -a``.
"""
from __future__ import annotations

import logging
import re
from types import MappingProxyType

from storage_tap.models import SmartAttributes

logger = logging.getLogger(__name__)

RECORD_SIZE = 11
HEADERS = ((0x01, 0x00), (0x2F, 0x00))

WEAR_LEVELING_ID = 0xB1
TEMPERATURE_ID = 0xC2

SMART_ATTRIBUTE_NAMES = MappingProxyType({
    0x01: "raw_read_error_rate",
    0x03: "spin_up_time",
    0x04: "start_stop_count",
    0x05: "reallocated_sector_count",
    0x07: "seek_error_rate",
    0x09: "power_on_hours",
    0x0C: "power_cycle_count",
    0x53: "initial_bad_block_count",
    0xB1: "wear_leveling_count",
    0xB3: "used_reserved_block_count_total",
    0xB4: "unused_reserved_block_count_total",
    0xB5: "program_fail_count_total",
    0xB6: "erase_fail_count_total",
    0xB7: "runtime_bad_block",
    0xB8: "end_to_end_error",
    0xBB: "uncorrectable_error_count",
    0xBE: "airflow_temperature_celsius",
    0xC2: "temperature_celsius",
    0xC3: "hardware_ecc_recovered",
    0xC5: "current_pending_sector_count",
    0xC6: "uncorrectable_sector_count",
    0xC7: "udma_crc_error_count",
    0xCA: "data_address_mark_errors",
    0xEB: "por_recovery_count",
    0xF1: "total_host_writes",
    0xF2: "total_host_reads",
    0xF3: "total_host_writes_expanded",
    0xF4: "total_host_reads_expanded",
    0xF5: "remaining_rated_write_endurance",
    0xF6: "cumulative_host_sectors_written",
    0xF7: "host_program_page_count",
    0xFB: "minimum_spares_remaining",
})

WEAR_LEVELING_NAME = SMART_ATTRIBUTE_NAMES[WEAR_LEVELING_ID]

_NON_HEX = re.compile(r"[^0-9a-fA-F]")
_SMART_MARKER = re.compile(r"^Smart Data Info\b.*=\s*$")
_HEX_LINE = re.compile(r"^[0-9a-fA-F][0-9a-fA-F ]*$")
_WHITESPACE = re.compile(r"\s+")


def attribute_name(attr_id: int) -> str:
    return SMART_ATTRIBUTE_NAMES.get(attr_id, f"unknown_{attr_id:x}")


def hex_to_bytes(data: str) -> bytes:
    """Decode the hex digits found in ``data``, dropping any odd trailing nibble."""
    digits = _NON_HEX.sub("", data)
    if len(digits) % 2:
        digits = digits[:-1]
    return bytes.fromhex(digits)


def decode_smart_data(data: str) -> SmartAttributes:
    """Decode a hex encoded SMART attribute table into named attributes.

    Each record is laid out as::

        [0] id  [1:3] flags  [3] normalized  [4] worst  [5:11] raw (little-endian)

    A zero id means the slot is empty or the stream is misaligned; the scan
    then moves a single byte forward until it finds a record again.
    """
    raw_bytes = hex_to_bytes(data)
    attributes: SmartAttributes = {}

    offset = 0
    if len(raw_bytes) >= 2 and (raw_bytes[0], raw_bytes[1]) in HEADERS:
        offset = 2

    while offset + RECORD_SIZE <= len(raw_bytes):
        attr_id = raw_bytes[offset]
        if not 1 <= attr_id <= 255:
            offset += 1
            continue

        normalized = raw_bytes[offset + 3]
        raw_field = raw_bytes[offset + 5:offset + RECORD_SIZE]
        raw_value = int.from_bytes(raw_field, "little")
        name = attribute_name(attr_id)

        if attr_id == WEAR_LEVELING_ID:
            attributes[f"{name}_raw"] = float(raw_value)
            attributes[f"{name}_value"] = float(normalized)
        elif attr_id == TEMPERATURE_ID:
            # Upper bytes carry min/max history, only the first one is current
            attributes[name] = float(raw_field[0])
        else:
            attributes[name] = float(raw_value)
        offset += RECORD_SIZE

    if offset < len(raw_bytes):
        logger.debug("Ignoring %d trailing SMART bytes", len(raw_bytes) - offset)
    return attributes


def extract_smart_hex(output: str) -> str:
    """Pull the hex block that follows the ``Smart Data Info ... =`` marker.

    Returns an empty string when the marker is missing.
    """
    lines = iter(output.splitlines())
    for line in lines:
        if _SMART_MARKER.match(line.strip()):
            break
    else:
        return ""

    block: list[str] = []
    for line in lines:
        line = line.strip()
        if not line or not _HEX_LINE.match(line):
            break
        block.append(line)
    return "".join(block)


def canonical_attribute_name(display_name: str) -> str:
    return display_name.replace("-", "_").lower()


def parse_smart_table(output: str) -> SmartAttributes:
    """Parse the ``ID# ATTRIBUTE_NAME ...`` table printed by ``smartctl -a``."""
    attributes: SmartAttributes = {}
    in_table = False

    for line in output.splitlines():
        line = line.strip()
        if not in_table:
            in_table = line.startswith("ID#")
            continue
        if not line:
            break

        tokens = _WHITESPACE.split(line)
        if len(tokens) < 10:
            logger.debug("Line does not match SMART format: %s", line)
            continue

        name, value, raw = tokens[1], tokens[3], tokens[-1]
        try:
            raw_value = float(raw)
        except ValueError:
            logger.debug("Could not parse raw value '%s' for %s", raw, name)
            continue

        key = canonical_attribute_name(name)
        if key == WEAR_LEVELING_NAME:
            try:
                attributes[f"{key}_value"] = float(value)
            except ValueError:
                logger.debug("Could not parse value '%s' for %s", value, name)
                continue
            attributes[f"{key}_raw"] = raw_value
        else:
            attributes[key] = raw_value

    return attributes
