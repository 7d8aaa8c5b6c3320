"""Radio hardware detection and sub-GHz presence check."""

from __future__ import annotations

import logging

from shheissee.common import RADIO, RadioInfo
from shheissee.sampling.base import Sampler
from shheissee.sampling.interfaces import list_wifi_interfaces
from shheissee.tools import bounded, is_tool_available, run_with_elevation_fallback

_LOGGER = logging.getLogger(__name__)

SDR_KEYWORDS: tuple[str, ...] = ("rtl", "hackrf", "blade")

# rtl_power output longer than this (after trimming) counts as signal presence
SUB_GHZ_OUTPUT_THRESHOLD = 50

SDR_FREQUENCIES: tuple[str, ...] = (
    "300-488MHz Sub-GHz (IoT sensors, remotes)",
    "433MHz (Wireless sensors, doorbells)",
    "868MHz (Security systems, alarm sensors)",
    "2.4GHz (WiFi, Bluetooth, Zigbee)",
    "5GHz (WiFi 5/6, surveillance cameras)",
)
BUILTIN_FREQUENCIES: tuple[str, ...] = (
    "2.4GHz (WiFi channels via built-in card)",
    "5GHz (WiFi channels via built-in card)",
    "*External SDR needed for Sub-GHz",
)
NO_HARDWARE_FREQUENCIES: tuple[str, ...] = (
    "No radio monitoring hardware detected",
    "Built-in WiFi card: Not found",
    "External SDR: Not found",
)


def parse_sdr_devices(lsusb_output: str) -> list[str]:
    """Return lsusb lines that look like SDR hardware (RTL-SDR, HackRF, bladeRF)."""
    devices: list[str] = []
    for line in lsusb_output.splitlines():
        trimmed = line.strip()
        lowered = trimmed.lower()
        if trimmed and any(keyword in lowered for keyword in SDR_KEYWORDS):
            devices.append(trimmed)
    return devices


def monitored_frequencies(has_sdr: bool, builtin_capable: bool) -> tuple[str, ...]:
    """Human-readable bands covered by the detected hardware."""
    if has_sdr:
        return SDR_FREQUENCIES
    if builtin_capable:
        return BUILTIN_FREQUENCIES
    return NO_HARDWARE_FREQUENCIES


class RadioSampler(Sampler):
    """Detect SDR and built-in radio hardware and probe the sub-GHz band.

    Args:
        proc_wireless: Override for ``/proc/net/wireless`` (for testing).
    """

    domain = RADIO

    def __init__(self, *args, proc_wireless: str = "/proc/net/wireless", **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._proc_wireless = proc_wireless

    def _sdr_devices(self) -> list[str]:
        if not is_tool_available("lsusb", self._which):
            return []
        result = run_with_elevation_fallback(
            ["lsusb"], runner=self._runner, which=self._which, timeout=5,
        )
        if not result.ok:
            _LOGGER.debug("lsusb failed: %s", result.error)
            return []
        return parse_sdr_devices(result.output)

    def _builtin_cards(self) -> list[str]:
        """Wireless interfaces that answer iwconfig (weak monitor-capable signal)."""
        cards: list[str] = []
        for iface in list_wifi_interfaces(
            runner=self._runner, which=self._which, proc_wireless=self._proc_wireless,
        ):
            result = run_with_elevation_fallback(
                ["iwconfig", iface], runner=self._runner, which=self._which, timeout=5,
            )
            if result.ok:
                cards.append(f"{iface} (built-in WiFi card)")
        return cards

    def _sub_ghz_scan(self) -> bool:
        seconds = self._settings.sub_ghz_scan_seconds
        result = run_with_elevation_fallback(
            bounded(
                seconds, "rtl_power", "-f", "300M:488M:2M",
                "-g", "20", "-i", "1", "-1", "-d", "0",
            ),
            ("rtl_power: failed to open rtl",),
            runner=self._runner,
            which=self._which,
            timeout=seconds + 5,
        )
        detected = result.ok and len(result.output.strip()) > SUB_GHZ_OUTPUT_THRESHOLD
        _LOGGER.info("Sub-GHz scan completed: signals detected %s", detected)
        return detected

    def _sample(self) -> RadioInfo:
        sdr_devices = self._sdr_devices()
        has_sdr = bool(sdr_devices)
        builtin_cards = self._builtin_cards()
        builtin_capable = bool(builtin_cards)

        sub_ghz = self._sub_ghz_scan() if has_sdr else False

        info = RadioInfo(
            has_sdr=has_sdr,
            sdr_devices=tuple(sdr_devices + builtin_cards),
            sub_ghz_signals_detected=sub_ghz,
            monitored_frequencies=monitored_frequencies(has_sdr, builtin_capable),
        )
        self._store.set_radio(info)

        if has_sdr:
            self._running(f"External SDR detected: {has_sdr}, sub-GHz signals: {sub_ghz}")
        elif builtin_capable:
            self._running(
                f"Built-in WiFi cards detected: {len(builtin_cards)} (limited to WiFi bands)"
            )
        else:
            self._running("No SDR hardware detected")
        return info
