"""Bluetooth Low Energy sampling with Apple tracker annotation."""

from __future__ import annotations

import logging
import re
import time

from shheissee.common import BLE, BleDevice
from shheissee.sampling.base import Sampler
from shheissee.tools import ToolStrategy, bounded, run_cascade

_LOGGER = logging.getLogger(__name__)

TRACKER_NOTE = " (Potential AirTag)"

_PERMISSION = ("Operation not permitted", "Permission denied")

_MAC = r"[0-9A-Fa-f]{2}(?::[0-9A-Fa-f]{2}){5}"
# "[NEW] Device AA:..", "Device AA:..", or a bare "AA:.." followed by data
_BLE_LINE_RE = re.compile(
    rf"^(?:\[(?:NEW|CHG|DEL)\]\s+)?(?:Device\s+)?(?P<addr>{_MAC}):?(?:\s+(?P<data>.*))?$"
)
_RSSI_RE = re.compile(r"^RSSI:\s*(?:0x[0-9a-fA-F]+\s*)?\(?(-?\d+)\)?")


def ble_strategies(seconds: int = 10) -> list[ToolStrategy]:
    """BLE scanning tools in preference order.

    Every strategy treats running out of time as a normal end of scan.
    """
    return [
        ToolStrategy(
            name="hcitool lescan",
            tool="hcitool",
            command=bounded(seconds, "hcitool", "lescan", "--dup"),
            indicators=("Set scan parameters failed", "Operation not permitted"),
            timeout=seconds + 5,
            timeout_ok=True,
        ),
        ToolStrategy(
            name="bluetoothctl scan",
            tool="bluetoothctl",
            command=bounded(seconds, "bluetoothctl", "scan", "on"),
            indicators=("Failed to start discovery", "No default controller available"),
            timeout=seconds + 5,
            timeout_ok=True,
            cleanup=bounded(5, "bluetoothctl", "scan", "off"),
        ),
        ToolStrategy(
            name="btmgmt find",
            tool="btmgmt",
            command=bounded(seconds, "btmgmt", "find"),
            indicators=_PERMISSION,
            timeout=seconds + 5,
            timeout_ok=True,
        ),
        ToolStrategy(
            name="hcitool scan",
            tool="hcitool",
            command=bounded(max(seconds - 2, 1), "hcitool", "scan"),
            indicators=_PERMISSION,
            timeout=seconds + 5,
            timeout_ok=True,
        ),
    ]


def is_tracker_candidate(data: str) -> bool:
    """Return True if advertisement *data* suggests an Apple device (0x004C)."""
    return "Apple" in data or "004C" in data.upper()


def parse_ble_scan(output: str) -> list[BleDevice]:
    """Parse BLE scan output into devices.

    Accepts ``hcitool lescan`` lines (``AA:BB:.. Name``) and
    ``bluetoothctl`` event lines (``[NEW] Device AA:BB:.. Name``,
    ``[CHG] Device AA:BB:.. RSSI: -60``).  Repeated addresses are merged:
    the first non-empty data wins and the latest RSSI is kept.  Devices
    whose data looks like an Apple tracker get :data:`TRACKER_NOTE`.
    Later lines that carry Apple manufacturer data are appended.
    """
    data: dict[str, str] = {}
    rssi: dict[str, int] = {}

    for line in output.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("LE Scan"):
            continue
        match = _BLE_LINE_RE.match(trimmed)
        if not match:
            _LOGGER.debug("Skipped BLE line: %r", line)
            continue

        address = match.group("addr").upper()
        text = (match.group("data") or "").strip()
        data.setdefault(address, "")

        rssi_match = _RSSI_RE.match(text)
        if rssi_match:
            rssi[address] = int(rssi_match.group(1))
        elif text and not data[address]:
            data[address] = text
        elif is_tracker_candidate(text) and not is_tracker_candidate(data[address]):
            # manufacturer data often arrives on a later [CHG] line
            data[address] = f"{data[address]} {text}"

    devices: list[BleDevice] = []
    for address, text in data.items():
        if is_tracker_candidate(text):
            text += TRACKER_NOTE
        devices.append(BleDevice(address=address, data=text, rssi=rssi.get(address, 0)))
    return devices


class BleSampler(Sampler):
    """Sample nearby BLE advertisers."""

    domain = BLE

    def _sample(self) -> list[BleDevice] | None:
        cascade = run_cascade(
            ble_strategies(self._settings.ble_scan_seconds),
            runner=self._runner,
            which=self._which,
            sleep=time.sleep,
        )
        if not cascade.ok:
            self._error(
                f"All BLE scanning methods failed: {cascade.describe_failures()}",
                "ERROR: All BLE scanning methods failed",
            )
            return None

        devices = parse_ble_scan(cascade.result.output)
        self._store.replace_ble(devices)
        self._running(f"Monitored {len(devices)} BLE devices")
        return devices
