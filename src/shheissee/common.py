"""Shared data structures and helpers for the security monitor."""

from __future__ import annotations

import collections
import os
import re
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

# -- Colors (RGB tuples; mapped to Rich color names for the status tables) --
WHITE = (255, 255, 255)
GREEN = (0, 255, 0)
YELLOW = (255, 255, 0)
RED = (255, 0, 0)
GRAY = (128, 128, 128)
ORANGE = (255, 165, 0)

# Canonical mapping from RGB tuple to Rich color name.
COLOR_TO_RICH: dict[tuple, str] = {
    WHITE: "white",
    GREEN: "green",
    YELLOW: "yellow",
    RED: "red",
    GRAY: "grey50",
    ORANGE: "dark_orange",
}

# -- Severities --
LOW = "Low"
MEDIUM = "Medium"
HIGH = "High"

# -- Finding types --
EVIL_TWIN = "EVIL_TWIN"
ROGUE_AP = "ROGUE_AP"
WEAK_ENCRYPTION = "WEAK_ENCRYPTION"
BLUETOOTH_MASS_SCANNING = "BLUETOOTH_MASS_SCANNING"
BLUETOOTH_SPOOFING = "BLUETOOTH_SPOOFING"
BLUETOOTH_MITM = "BLUETOOTH_MITM"
SUSPICIOUS_PORT = "SUSPICIOUS_PORT"
UNKNOWN_DEVICE = "UNKNOWN_DEVICE"
AI_CONNECTION_ANOMALY = "AI_CONNECTION_ANOMALY"

# -- Service health states --
RUNNING = "running"
ERROR = "error"
IDLE = "idle"

# -- Domains --
WIFI = "wifi"
BLUETOOTH = "bluetooth"
BLE = "ble"
RADIO = "radio"
NETWORK = "network"

DOMAINS: tuple[str, ...] = (WIFI, BLUETOOTH, BLE, RADIO, NETWORK)

DOMAIN_NAMES: dict[str, str] = {
    WIFI: "WiFi Monitoring",
    BLUETOOTH: "Bluetooth Monitoring",
    BLE: "AirTag/BLE Monitoring",
    RADIO: "Radio Frequency Monitoring",
    NETWORK: "Network Monitoring",
}


# ---------------------------------------------------------------------------
# Sample records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WifiAccessPoint:
    """A detected WiFi access point."""

    bssid: str
    power: int = -100       # dBm
    beacons: int = 0
    encryption: str = "Open"
    ssid: str = ""          # empty means hidden


@dataclass(frozen=True)
class WifiClient:
    """A station seen talking to an access point."""

    mac: str
    ap_mac: str
    power: int = -100       # dBm
    lost: int = 0


@dataclass(frozen=True)
class BluetoothDevice:
    """A classic Bluetooth device found by an inquiry scan."""

    address: str
    name: str = ""


@dataclass(frozen=True)
class BleDevice:
    """A Bluetooth Low Energy advertiser.

    ``data`` carries the advertisement text as printed by the scanning tool,
    with a ``(Potential AirTag)`` suffix when it looks like an Apple tracker.
    """

    address: str
    data: str = ""
    rssi: int = 0


@dataclass(frozen=True)
class RadioInfo:
    """Radio hardware and spectrum presence summary."""

    has_sdr: bool = False
    sdr_devices: tuple[str, ...] = ()
    sub_ghz_signals_detected: bool = False
    monitored_frequencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class NetworkInfo:
    """Internet reachability and average round-trip latency."""

    online: bool = False
    avg_latency: str = "N/A"


@dataclass(frozen=True)
class Attack:
    """A detected suspicious condition.

    Created by the detection heuristics; never mutated after creation.
    """

    type: str
    severity: str
    description: str
    target: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ServiceHealth:
    """Health record for one monitored domain.

    ``events`` keeps only the most recent entries (oldest evicted first).
    """

    domain: str
    name: str
    status: str = RUNNING
    last_update: datetime = field(default_factory=datetime.now)
    error_message: str = ""
    events: collections.deque = field(
        default_factory=lambda: collections.deque(maxlen=10),
    )

    def add_event(self, message: str, when: datetime) -> None:
        """Append a ``[HH:MM:SS] message`` entry to the rolling event log."""
        self.events.append(f"[{when:%H:%M:%S}] {message}")

    def snapshot(self) -> ServiceHealth:
        """Return an independent copy safe to hand to readers."""
        return ServiceHealth(
            domain=self.domain,
            name=self.name,
            status=self.status,
            last_update=self.last_update,
            error_message=self.error_message,
            events=collections.deque(self.events, maxlen=self.events.maxlen),
        )


@dataclass
class BlockedItems:
    """Point-in-time copy of every blocked address, keyed by address."""

    ips: dict[str, datetime] = field(default_factory=dict)
    macs: dict[str, datetime] = field(default_factory=dict)
    bluetooth: dict[str, datetime] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Command runner protocol (subprocess injection seam)
# ---------------------------------------------------------------------------

class CommandRunner(Protocol):
    """Protocol for running external commands.

    Provides an injection seam so callers can substitute a fake runner in
    tests instead of patching ``subprocess`` globally.
    """

    def run(
        self,
        cmd: list[str],
        *,
        capture_output: bool = True,
        text: bool = True,
        timeout: float | None = None,
        env: dict[str, str] | None = None,
    ) -> subprocess.CompletedProcess[Any]:
        """Run *cmd* and return a CompletedProcess."""
        ...  # pragma: no cover


class SubprocessRunner:
    """Default CommandRunner that delegates to the real ``subprocess`` module."""

    def run(
        self,
        cmd: list[str],
        *,
        capture_output: bool = True,
        text: bool = True,
        timeout: float | None = None,
        env: dict[str, str] | None = None,
    ) -> subprocess.CompletedProcess[Any]:
        """Run *cmd* via ``subprocess.run``."""
        return subprocess.run(
            cmd,
            capture_output=capture_output,
            text=text,
            timeout=timeout,
            env=env,
        )


def _minimal_env() -> dict[str, str]:
    """Build a minimal environment for subprocess calls.

    Only passes PATH, LC_ALL, and HOME so tool output stays in the C locale
    and the full user environment does not leak into child processes.
    """
    return {
        "PATH": os.environ.get("PATH", "/usr/sbin:/usr/bin:/sbin:/bin"),
        "LC_ALL": "C",
        "HOME": os.environ.get("HOME", ""),
    }


# ---------------------------------------------------------------------------
# Signal / severity helpers
# ---------------------------------------------------------------------------

def signal_to_bars(signal_dbm: int) -> int:
    """Convert signal strength in dBm to a bar count (0-4)."""
    if signal_dbm >= -50:
        return 4
    if signal_dbm >= -60:
        return 3
    if signal_dbm >= -70:
        return 2
    if signal_dbm >= -80:
        return 1
    return 0


def signal_color(signal_dbm: int) -> tuple:
    """Return an RGB color tuple based on signal strength."""
    if signal_dbm >= -50:
        return GREEN
    if signal_dbm >= -65:
        return YELLOW
    return RED


def severity_color(severity: str) -> tuple:
    """Return an RGB color tuple for a finding severity."""
    if severity == HIGH:
        return RED
    if severity == MEDIUM:
        return ORANGE
    if severity == LOW:
        return YELLOW
    return WHITE


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

_MAC_RE = re.compile(r"^([0-9a-fA-F]{2}:){5}[0-9a-fA-F]{2}$")


def is_valid_mac(address: str) -> bool:
    """Return True if *address* is a colon-separated hex MAC address."""
    return bool(_MAC_RE.match(address))
