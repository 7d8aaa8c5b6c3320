"""Wi-Fi access point and client sampling.

Preferred path: find (or create) a monitor-mode interface and run a
bounded ``airodump-ng`` CSV capture, which yields APs with beacon counts
and cipher info plus associated clients.  If that is not possible, fall
back to an active ``iw dev <iface> scan`` on the first WiFi interface,
which yields APs only.
"""

from __future__ import annotations

import csv
import glob
import logging
import os
import re
import tempfile

from shheissee.common import WIFI, WifiAccessPoint, WifiClient
from shheissee.errors import ShheisseeError
from shheissee.sampling.base import Sampler
from shheissee.sampling.interfaces import get_or_create_monitor_interface, list_wifi_interfaces
from shheissee.tools import bounded, is_tool_available, run_with_elevation_fallback

_LOGGER = logging.getLogger(__name__)

# The active-scan output carries no cipher details.
FALLBACK_ENCRYPTION = "WPA2"


# ---------------------------------------------------------------------------
# Airodump-ng CSV parsing
# ---------------------------------------------------------------------------

def map_airodump_privacy(privacy: str) -> str:
    """Map an airodump-ng Privacy field to a short encryption label."""
    p = privacy.upper()
    if "WPA3" in p or "SAE" in p:
        return "WPA3"
    if "WPA2" in p:
        return "WPA2"
    if "WPA" in p:
        return "WPA"
    if "WEP" in p:
        return "WEP"
    if "OPN" in p or not p:
        return "Open"
    return privacy[:5]


def _to_int(value: str, default: int) -> int:
    try:
        return int(value)
    except ValueError:
        return default


def parse_airodump_csv(content: str) -> tuple[list[WifiAccessPoint], list[WifiClient]]:
    """Parse airodump-ng CSV content into (access_points, clients).

    The CSV has two sections separated by a blank line:
    1. Access points (BSSID, ..., Privacy, ..., Power, # beacons, ..., ESSID)
    2. Stations (Station MAC, ..., Power, # packets, BSSID, Probed ESSIDs)

    Rows too short to parse are skipped.  Stations that are not associated
    with any AP are dropped.
    """
    access_points: list[WifiAccessPoint] = []
    clients: list[WifiClient] = []

    if not content.strip():
        return access_points, clients

    # airodump-ng may write \r\n and 3+ blank lines between sections
    normalized = content.replace("\r\n", "\n").replace("\r", "\n")
    sections = re.split(r"\n{2,}", normalized.strip())

    # -- AP section --
    header = None
    for row in csv.reader(sections[0].splitlines()):
        row = [c.strip() for c in row]
        if not row or not row[0]:
            continue
        if "BSSID" in row[0]:
            header = row
            continue
        if header is None or len(row) < 14:
            if header is not None:
                _LOGGER.debug("Skipped AP row with %d fields (need 14): %s", len(row), row)
            continue

        power = _to_int(row[8], -100)
        if power == -1:
            power = -100
        access_points.append(WifiAccessPoint(
            bssid=row[0].lower(),
            power=power,
            beacons=_to_int(row[9], 0),
            encryption=map_airodump_privacy(row[5]),
            ssid=row[13],
        ))

    # -- Station section --
    if len(sections) > 1:
        header = None
        for row in csv.reader(sections[1].splitlines()):
            row = [c.strip() for c in row]
            if not row or not row[0]:
                continue
            if "Station MAC" in row[0]:
                header = row
                continue
            if header is None or len(row) < 6:
                if header is not None:
                    _LOGGER.debug("Skipped station row with %d fields (need 6): %s", len(row), row)
                continue

            ap_mac = row[5].lower()
            if not ap_mac or "not associated" in ap_mac:
                continue
            clients.append(WifiClient(
                mac=row[0].lower(),
                ap_mac=ap_mac,
                power=_to_int(row[3], -100),
            ))

    return access_points, clients


# ---------------------------------------------------------------------------
# iw scan parsing
# ---------------------------------------------------------------------------

_BSS_RE = re.compile(r"^BSS\s+([0-9a-fA-F]{2}(?::[0-9a-fA-F]{2}){5})")
_SIGNAL_RE = re.compile(r"^signal:\s*(-?\d+(?:\.\d+)?)\s*dBm")


def parse_iw_scan_output(output: str) -> list[WifiAccessPoint]:
    """Parse ``iw dev <iface> scan`` output into access points.

    Each AP block starts with ``BSS <mac>(on <iface>)``; within a block
    only ``signal: <n> dBm`` and ``SSID: <name>`` are read.  Encryption is
    reported as :data:`FALLBACK_ENCRYPTION` for every AP.
    """
    access_points: list[WifiAccessPoint] = []
    bssid: str | None = None
    ssid = ""
    power = 0

    def _flush() -> None:
        if bssid:
            access_points.append(WifiAccessPoint(
                bssid=bssid,
                power=power,
                encryption=FALLBACK_ENCRYPTION,
                ssid=ssid,
            ))

    for line in output.splitlines():
        line = line.strip()
        bss = _BSS_RE.match(line)
        if bss:
            _flush()
            bssid = bss.group(1).lower()
            ssid = ""
            power = 0
            continue
        if bssid is None:
            continue
        signal = _SIGNAL_RE.match(line)
        if signal:
            power = int(float(signal.group(1)))
        elif line.startswith("SSID:"):
            ssid = line[len("SSID:"):].strip()

    _flush()
    return access_points


# ---------------------------------------------------------------------------
# Sampler
# ---------------------------------------------------------------------------

class WifiSampler(Sampler):
    """Sample nearby access points and clients.

    Args:
        proc_wireless: Override for ``/proc/net/wireless`` (for testing).
    """

    domain = WIFI

    def __init__(self, *args, proc_wireless: str = "/proc/net/wireless", **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._proc_wireless = proc_wireless

    def _sample(self) -> tuple[list[WifiAccessPoint], list[WifiClient]] | None:
        try:
            interface = get_or_create_monitor_interface(
                runner=self._runner, which=self._which, proc_wireless=self._proc_wireless,
            )
        except ShheisseeError as exc:
            self._store.mark_error(
                self.domain,
                f"Error setting up monitor interface: {exc}",
                f"ERROR: {exc}",
            )
            _LOGGER.warning("Error setting up monitor interface: %s", exc)
            return self._fallback_scan()

        self._store.mark_running(self.domain, f"Using WiFi interface: {interface}")
        captured = self._capture(interface)
        if captured is None:
            return self._fallback_scan()

        access_points, clients = captured
        self._store.replace_wifi(access_points, clients)
        self._running(
            f"Monitor capture found {len(access_points)} access points, {len(clients)} clients"
        )
        return access_points, clients

    def _capture(self, interface: str) -> tuple[list[WifiAccessPoint], list[WifiClient]] | None:
        """Run a bounded airodump-ng capture on *interface* and parse its CSV."""
        if not is_tool_available("airodump-ng", self._which):
            _LOGGER.info("airodump-ng not installed, using active scan")
            return None

        seconds = self._settings.airodump_capture_seconds
        with tempfile.TemporaryDirectory(prefix="shheissee-") as tmp:
            prefix = os.path.join(tmp, "capture")
            cmd = bounded(
                seconds, "airodump-ng", "--output-format", "csv",
                "--write-interval", "1", "-w", prefix, interface,
            )
            result = run_with_elevation_fallback(
                cmd, runner=self._runner, which=self._which, timeout=seconds + 5,
            )
            # airodump-ng runs until stopped, so running out of time is the normal end
            if not (result.ok or result.timed_out):
                _LOGGER.warning("airodump-ng capture failed: %s", result.error)
                return None
            paths = sorted(glob.glob(f"{prefix}-*.csv"))
            if not paths:
                _LOGGER.warning("airodump-ng wrote no CSV output")
                return None
            try:
                with open(paths[-1], encoding="utf-8", errors="replace") as f:
                    content = f.read()
            except OSError as exc:
                _LOGGER.warning("could not read airodump-ng CSV: %s", exc)
                return None
        return parse_airodump_csv(content)

    def _fallback_scan(self) -> tuple[list[WifiAccessPoint], list[WifiClient]] | None:
        """Active scan on the first WiFi interface (APs only)."""
        _LOGGER.info("Attempting fallback WiFi scan with iw dev scan")
        interfaces = list_wifi_interfaces(
            runner=self._runner, which=self._which, proc_wireless=self._proc_wireless,
        )
        if not interfaces:
            self._error("No wireless interfaces found")
            return None

        seconds = self._settings.iw_scan_seconds
        result = run_with_elevation_fallback(
            bounded(seconds, "iw", "dev", interfaces[0], "scan"),
            runner=self._runner,
            which=self._which,
            timeout=seconds + 5,
        )
        if not result.ok:
            self._error(f"iw scan failed: {result.error}", "Fallback scan failed")
            return None

        access_points = parse_iw_scan_output(result.output)
        self._store.replace_wifi(access_points, [])
        self._running(f"Fallback scan found {len(access_points)} access points")
        return access_points, []
