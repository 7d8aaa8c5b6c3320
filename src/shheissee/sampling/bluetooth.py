"""Classic Bluetooth device sampling via hcitool, btmgmt or bluetoothctl."""

from __future__ import annotations

import logging

from shheissee.common import BLUETOOTH, BluetoothDevice, is_valid_mac
from shheissee.sampling.base import Sampler
from shheissee.tools import ToolStrategy, bounded, run_cascade

_LOGGER = logging.getLogger(__name__)

_PERMISSION = ("Operation not permitted", "Permission denied")


def bluetooth_strategies(seconds: int = 10) -> list[ToolStrategy]:
    """Scanning tools in preference order: legacy, management, interactive."""
    return [
        ToolStrategy(
            name="hcitool scan",
            tool="hcitool",
            command=bounded(seconds, "hcitool", "scan"),
            indicators=_PERMISSION,
            timeout=seconds + 5,
        ),
        ToolStrategy(
            name="btmgmt find",
            tool="btmgmt",
            command=bounded(seconds, "btmgmt", "find"),
            indicators=_PERMISSION,
            timeout=seconds + 5,
        ),
        ToolStrategy(
            name="bluetoothctl devices",
            tool="bluetoothctl",
            command=bounded(seconds, "bluetoothctl", "devices"),
            indicators=("No default controller available",),
            timeout=seconds + 5,
        ),
    ]


def parse_bluetooth_devices(output: str) -> list[BluetoothDevice]:
    """Parse Bluetooth scan output into devices.

    Two line shapes are understood:

    - hcitool: ``\\tAA:BB:CC:DD:EE:FF\\tDevice Name``
    - bluetoothctl: ``Device AA:BB:CC:DD:EE:FF Device Name``

    Lines whose address is not a MAC are skipped.
    """
    devices: list[BluetoothDevice] = []

    for line in output.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("Scanning"):
            continue

        parts = trimmed.split()
        if trimmed.startswith("Device ") and len(parts) >= 2:
            address, name = parts[1], " ".join(parts[2:])
        elif "\t" in line:
            # hcitool leaves the name column empty for devices that did not answer
            address, name = parts[0], " ".join(parts[1:])
        else:
            _LOGGER.debug("Skipped unrecognized Bluetooth line: %r", line)
            continue

        if not is_valid_mac(address):
            _LOGGER.debug("Skipped Bluetooth line with bad address: %r", line)
            continue
        devices.append(BluetoothDevice(address=address.upper(), name=name))

    return devices


class BluetoothSampler(Sampler):
    """Sample nearby classic Bluetooth devices."""

    domain = BLUETOOTH

    def _sample(self) -> list[BluetoothDevice] | None:
        cascade = run_cascade(
            bluetooth_strategies(self._settings.bluetooth_scan_seconds),
            runner=self._runner,
            which=self._which,
        )
        if not cascade.ok:
            self._error(
                f"All Bluetooth scanning methods failed: {cascade.describe_failures()}",
                "ERROR: All Bluetooth scanning methods failed",
            )
            return None

        devices = parse_bluetooth_devices(cascade.result.output)
        self._store.replace_bluetooth(devices)
        self._running(f"Monitored {len(devices)} Bluetooth devices")
        return devices
