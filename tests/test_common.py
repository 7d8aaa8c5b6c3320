"""Tests for shheissee.common shared records and helpers."""

from __future__ import annotations

import collections
import dataclasses
import subprocess
from datetime import datetime
from unittest.mock import patch

import pytest

from shheissee.common import (
    COLOR_TO_RICH,
    DOMAIN_NAMES,
    DOMAINS,
    GREEN,
    HIGH,
    LOW,
    MEDIUM,
    ORANGE,
    RED,
    RUNNING,
    WHITE,
    YELLOW,
    Attack,
    BlockedItems,
    NetworkInfo,
    RadioInfo,
    ServiceHealth,
    SubprocessRunner,
    WifiAccessPoint,
    WifiClient,
    _minimal_env,
    is_valid_mac,
    severity_color,
    signal_color,
    signal_to_bars,
)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class TestWifiAccessPoint:
    def test_defaults(self):
        ap = WifiAccessPoint(bssid="aa:bb:cc:dd:ee:ff")
        assert ap.power == -100
        assert ap.beacons == 0
        assert ap.encryption == "Open"
        assert ap.ssid == ""

    def test_frozen(self):
        ap = WifiAccessPoint(bssid="aa:bb:cc:dd:ee:ff")
        with pytest.raises(dataclasses.FrozenInstanceError):
            ap.ssid = "x"  # type: ignore[misc]


class TestWifiClient:
    def test_defaults(self):
        client = WifiClient(mac="11:22:33:44:55:66", ap_mac="aa:bb:cc:dd:ee:ff")
        assert client.power == -100
        assert client.lost == 0


class TestSampleDefaults:
    def test_radio_info_defaults(self):
        info = RadioInfo()
        assert info.has_sdr is False
        assert info.sdr_devices == ()
        assert info.monitored_frequencies == ()

    def test_network_info_defaults(self):
        info = NetworkInfo()
        assert info.online is False
        assert info.avg_latency == "N/A"


class TestAttack:
    def test_timestamp_defaults_to_now(self):
        before = datetime.now()
        attack = Attack(type="EVIL_TWIN", severity=HIGH, description="d", target="t")
        assert before <= attack.timestamp <= datetime.now()

    def test_immutable(self):
        attack = Attack(type="EVIL_TWIN", severity=HIGH, description="d", target="t")
        with pytest.raises(dataclasses.FrozenInstanceError):
            attack.target = "other"  # type: ignore[misc]


class TestServiceHealth:
    """ServiceHealth keeps a bounded, timestamped event log."""

    def test_event_format(self):
        health = ServiceHealth(domain="wifi", name="WiFi Monitoring")
        health.add_event("Monitored 3 devices", datetime(2025, 1, 1, 9, 5, 7))
        assert list(health.events) == ["[09:05:07] Monitored 3 devices"]

    def test_eleventh_event_evicts_oldest(self):
        health = ServiceHealth(domain="wifi", name="WiFi Monitoring")
        when = datetime(2025, 1, 1, 12, 0, 0)
        for i in range(11):
            health.add_event(f"event {i}", when)
        assert len(health.events) == 10
        assert health.events[0] == "[12:00:00] event 1"
        assert health.events[-1] == "[12:00:00] event 10"

    def test_snapshot_is_independent(self):
        health = ServiceHealth(domain="ble", name="AirTag/BLE Monitoring")
        health.add_event("one", datetime(2025, 1, 1))
        snap = health.snapshot()
        health.add_event("two", datetime(2025, 1, 1))
        health.status = "error"
        assert list(snap.events) == ["[00:00:00] one"]
        assert snap.status == RUNNING
        assert snap.events.maxlen == 10

    def test_custom_event_cap(self):
        health = ServiceHealth(
            domain="wifi", name="WiFi", events=collections.deque(maxlen=2),
        )
        for i in range(3):
            health.add_event(str(i), datetime(2025, 1, 1))
        assert len(health.events) == 2


class TestBlockedItems:
    def test_defaults_are_distinct(self):
        a, b = BlockedItems(), BlockedItems()
        a.ips["1.2.3.4"] = datetime.now()
        assert b.ips == {}


class TestDomains:
    def test_every_domain_has_display_name(self):
        assert set(DOMAIN_NAMES) == set(DOMAINS)

    def test_order(self):
        assert DOMAINS == ("wifi", "bluetooth", "ble", "radio", "network")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestSignalToBars:
    def test_boundaries(self):
        assert signal_to_bars(-50) == 4
        assert signal_to_bars(-51) == 3
        assert signal_to_bars(-60) == 3
        assert signal_to_bars(-61) == 2
        assert signal_to_bars(-80) == 1
        assert signal_to_bars(-81) == 0


class TestSignalColor:
    def test_boundary(self):
        assert signal_color(-50) == GREEN
        assert signal_color(-51) == YELLOW
        assert signal_color(-65) == YELLOW
        assert signal_color(-66) == RED


class TestSeverityColor:
    def test_mapping(self):
        assert severity_color(HIGH) == RED
        assert severity_color(MEDIUM) == ORANGE
        assert severity_color(LOW) == YELLOW
        assert severity_color("Unknown") == WHITE

    def test_every_color_has_rich_name(self):
        for color in (RED, ORANGE, YELLOW, WHITE, GREEN):
            assert color in COLOR_TO_RICH


class TestIsValidMac:
    @pytest.mark.parametrize("mac", ["AA:BB:CC:DD:EE:FF", "00:1a:2b:3c:4d:5e"])
    def test_valid(self, mac):
        assert is_valid_mac(mac) is True

    @pytest.mark.parametrize("mac", ["", "AA:BB:CC:DD:EE", "AA-BB-CC-DD-EE-FF", "GG:BB:CC:DD:EE:FF"])
    def test_invalid(self, mac):
        assert is_valid_mac(mac) is False


class TestMinimalEnv:
    def test_only_expected_keys(self):
        env = _minimal_env()
        assert set(env) == {"PATH", "LC_ALL", "HOME"}
        assert env["LC_ALL"] == "C"


class TestSubprocessRunner:
    def test_delegates_to_subprocess_run(self):
        completed = subprocess.CompletedProcess(args=["ls"], returncode=0, stdout="", stderr="")
        with patch("shheissee.common.subprocess.run", return_value=completed) as mock_run:
            result = SubprocessRunner().run(["ls"], timeout=3, env={"PATH": "/bin"})
        assert result is completed
        mock_run.assert_called_once_with(
            ["ls"], capture_output=True, text=True, timeout=3, env={"PATH": "/bin"},
        )
