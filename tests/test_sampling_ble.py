"""Tests for shheissee.sampling.ble — BLE sampling and tracker annotation."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from shheissee.common import BLE, ERROR, RUNNING
from shheissee.config import MonitorSettings
from shheissee.sampling.ble import (
    TRACKER_NOTE,
    BleSampler,
    ble_strategies,
    is_tracker_candidate,
    parse_ble_scan,
)
from shheissee.store import ObservationStore
from shheissee.tools import TIMEOUT_EXIT_STATUS
from tests.test_tools import ScriptedRunner, make_which

LESCAN_OUTPUT = (
    "LE Scan ...\n"
    "AA:BB:CC:DD:EE:01 (unknown)\n"
    "AA:BB:CC:DD:EE:02 Apple, Inc.\n"
    "AA:BB:CC:DD:EE:01 Fitness Band\n"
)

BLUETOOTHCTL_SCAN = (
    "Discovery started\n"
    "[CHG] Controller 00:1A:7D:DA:71:13 Discovering: yes\n"
    "[NEW] Device 4C:11:22:33:44:55 Headphones\n"
    "[CHG] Device 4C:11:22:33:44:55 RSSI: -61\n"
    "[NEW] Device 66:77:88:99:AA:BB 66-77-88-99-AA-BB\n"
    "[CHG] Device 66:77:88:99:AA:BB ManufacturerData Key: 0x004c\n"
    "[CHG] Device 66:77:88:99:AA:BB RSSI: 0xffffffb5 (-75)\n"
)


class TestBleStrategies:
    """Four tools; running out of time ends a scan normally."""

    def test_order(self):
        assert [s.name for s in ble_strategies()] == [
            "hcitool lescan", "bluetoothctl scan", "btmgmt find", "hcitool scan",
        ]

    def test_all_timeout_ok(self):
        assert all(s.timeout_ok for s in ble_strategies())

    def test_bluetoothctl_turns_scan_off(self):
        strategy = ble_strategies(6)[1]
        assert strategy.cleanup == ("timeout", "5", "bluetoothctl", "scan", "off")

    def test_classic_scan_is_shorter(self):
        assert ble_strategies(10)[3].command[:2] == ("timeout", "8")


class TestIsTrackerCandidate:
    @pytest.mark.parametrize("data", ["Apple, Inc.", "ManufacturerData Key: 0x004c", "004C0215"])
    def test_positive(self, data):
        assert is_tracker_candidate(data) is True

    @pytest.mark.parametrize("data", ["", "(unknown)", "Samsung"])
    def test_negative(self, data):
        assert is_tracker_candidate(data) is False


class TestParseBleScan:
    """parse_ble_scan merges repeated addresses."""

    def test_hcitool_lescan(self):
        devices = parse_ble_scan(LESCAN_OUTPUT)
        assert [d.address for d in devices] == ["AA:BB:CC:DD:EE:01", "AA:BB:CC:DD:EE:02"]
        assert devices[0].data == "(unknown)"
        assert devices[1].data == "Apple, Inc." + TRACKER_NOTE

    def test_bluetoothctl_events(self):
        devices = {d.address: d for d in parse_ble_scan(BLUETOOTHCTL_SCAN)}
        assert set(devices) == {"4C:11:22:33:44:55", "66:77:88:99:AA:BB"}
        headphones = devices["4C:11:22:33:44:55"]
        assert headphones.data == "Headphones"
        assert headphones.rssi == -61

        tracker = devices["66:77:88:99:AA:BB"]
        assert tracker.rssi == -75
        assert tracker.data.endswith(TRACKER_NOTE)
        assert "0x004c" in tracker.data

    def test_controller_lines_ignored(self):
        assert parse_ble_scan("[CHG] Controller 00:1A:7D:DA:71:13 Discovering: yes\n") == []

    def test_empty(self):
        assert parse_ble_scan("") == []


def _sampler(runner, which=None):
    store = ObservationStore()
    sampler = BleSampler(
        store, MonitorSettings(ble_scan_seconds=4), runner=runner, which=which or make_which(),
    )
    return sampler, store


class TestBleSampler:
    """BleSampler treats a timed-out scan as a result."""

    def test_timed_out_lescan_is_success(self):
        runner = ScriptedRunner().on(
            "hcitool", "lescan", returncode=TIMEOUT_EXIT_STATUS, stdout=LESCAN_OUTPUT,
        )
        sampler, store = _sampler(runner)
        devices = sampler.sample()
        assert len(devices) == 2
        assert store.ble_devices() == devices
        health = store.health(BLE)
        assert health.status == RUNNING
        assert health.events[-1].endswith("Monitored 2 BLE devices")

    def test_bluetoothctl_fallback_runs_cleanup(self):
        runner = (
            ScriptedRunner()
            .on("bluetoothctl", "scan", "on", returncode=TIMEOUT_EXIT_STATUS, stdout=BLUETOOTHCTL_SCAN)
            .on("bluetoothctl", "scan", "off")
        )
        sampler, _ = _sampler(runner, which=make_which("hcitool"))
        with patch("shheissee.sampling.ble.time.sleep") as mock_sleep:
            devices = sampler.sample()
        assert len(devices) == 2
        assert runner.ran("bluetoothctl", "scan", "off")
        mock_sleep.assert_called_once()

    def test_all_fail_marks_error(self):
        runner = ScriptedRunner().on("btmgmt", returncode=1, stderr="Unable to open adapter")
        sampler, store = _sampler(runner, which=make_which("hcitool", "bluetoothctl"))
        assert sampler.sample() is None
        health = store.health(BLE)
        assert health.status == ERROR
        assert health.error_message.startswith("All BLE scanning methods failed: ")
        assert "btmgmt find: btmgmt exited with status 1" in health.error_message
