"""Tests for shheissee.monitor — the sampling pipeline and its lifecycle."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from shheissee.common import (
    BLE,
    BLUETOOTH,
    BLUETOOTH_SPOOFING,
    DOMAINS,
    EVIL_TWIN,
    HIGH,
    IDLE,
    NETWORK,
    RADIO,
    SUSPICIOUS_PORT,
    UNKNOWN_DEVICE,
    WEAK_ENCRYPTION,
    WIFI,
    Attack,
    BluetoothDevice,
    NetworkInfo,
    WifiAccessPoint,
)
from shheissee.config import MonitorSettings
from shheissee.errors import StateConflict, ToolUnavailable
from shheissee.mitigation import Blocker
from shheissee.monitor import SecurityMonitor
from tests.test_detection_network import NMAP_OUTPUT
from tests.test_tools import ScriptedRunner, make_which


class FakeSampler:
    """Returns a fixed sample and signals every call."""

    def __init__(self, result=None):
        self.result = result
        self.calls = 0
        self.called = threading.Event()

    def sample(self):
        self.calls += 1
        self.called.set()
        return self.result


FAST = MonitorSettings(
    wifi_interval=0.01,
    bluetooth_interval=0.01,
    ble_interval=0.01,
    radio_interval=0.01,
    network_interval=0.01,
    port_scan_enabled=False,
)


def _monitor(samplers=None, settings=FAST, runner=None, blocker=None):
    fakes = {domain: FakeSampler() for domain in DOMAINS}
    fakes.update(samplers or {})
    runner = runner or ScriptedRunner()
    monitor = SecurityMonitor(
        settings,
        samplers=fakes,
        runner=runner,
        which=make_which(),
        blocker=blocker,
    )
    return monitor, fakes


WIFI_SAMPLE = (
    [
        WifiAccessPoint(bssid="aa:aa:aa:aa:aa:01", ssid="Home", encryption="WEP"),
        WifiAccessPoint(bssid="aa:aa:aa:aa:aa:02", ssid="Home", encryption="WPA2"),
    ],
    [],
)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class TestRunPass:
    """run_pass samples, detects and records."""

    def test_wifi_findings_recorded(self):
        monitor, fakes = _monitor({WIFI: FakeSampler(WIFI_SAMPLE)})
        attacks = monitor.run_pass(WIFI)
        assert [a.type for a in attacks] == [EVIL_TWIN, WEAK_ENCRYPTION]
        assert monitor.recent_attacks() == attacks
        assert monitor.attack_count == 2
        assert fakes[WIFI].calls == 1

    def test_bluetooth_findings(self):
        devices = [BluetoothDevice("11:22:33:44:55:66", "SpoofBuds")]
        monitor, _ = _monitor({BLUETOOTH: FakeSampler(devices)})
        attacks = monitor.run_pass(BLUETOOTH)
        assert [a.type for a in attacks] == [BLUETOOTH_SPOOFING]

    @pytest.mark.parametrize("domain", [BLE, RADIO])
    def test_domains_without_heuristics(self, domain):
        monitor, _ = _monitor({domain: FakeSampler(object())})
        assert monitor.run_pass(domain) == []
        assert monitor.attack_count == 0

    def test_failed_sample_produces_nothing(self):
        monitor, fakes = _monitor({WIFI: FakeSampler(None)})
        assert monitor.run_pass(WIFI) == []
        assert fakes[WIFI].calls == 1

    def test_unknown_domain(self):
        monitor, _ = _monitor()
        with pytest.raises(ValueError):
            monitor.run_pass("zigbee")

    def test_network_port_scan(self):
        runner = ScriptedRunner().on("nmap", stdout=NMAP_OUTPUT)
        settings = MonitorSettings(port_scan_enabled=True, port_scan_subnet="10.1.0.0/24")
        monitor, _ = _monitor(
            {NETWORK: FakeSampler(NetworkInfo(online=True, avg_latency="5ms"))},
            settings=settings,
            runner=runner,
        )
        attacks = monitor.run_pass(NETWORK)
        assert runner.calls[-1][-1] == "10.1.0.0/24"
        assert len(attacks) == 3
        assert all(a.type == SUSPICIOUS_PORT for a in attacks)

    def test_network_port_scan_disabled(self):
        runner = ScriptedRunner().on("nmap", stdout=NMAP_OUTPUT)
        monitor, _ = _monitor(
            {NETWORK: FakeSampler(NetworkInfo(online=True, avg_latency="5ms"))},
            runner=runner,
        )
        assert monitor.run_pass(NETWORK) == []
        assert not runner.ran("nmap")


class TestRecord:
    """record appends every finding, then auto-mitigates it."""

    def _attack(self, target="10.0.0.9"):
        return Attack(type=UNKNOWN_DEVICE, severity=HIGH, description="new host", target=target)

    def test_auto_block_applied(self):
        blocker = Blocker(
            True, runner=ScriptedRunner().on("ufw"), which=make_which(),
        )
        monitor, _ = _monitor(blocker=blocker)
        monitor.record([self._attack()])
        assert "10.0.0.9" in blocker.blocked_items().ips
        assert monitor.attack_count == 1

    def test_repeat_finding_is_not_an_error(self, caplog):
        blocker = Blocker(
            True, runner=ScriptedRunner().on("ufw"), which=make_which(),
        )
        monitor, _ = _monitor(blocker=blocker)
        monitor.record([self._attack(), self._attack()])
        assert monitor.attack_count == 2
        assert "auto-mitigation failed" not in caplog.text

    def test_mitigation_failure_logged_and_processing_continues(self, caplog):
        blocker = MagicMock()
        blocker.auto_mitigate.side_effect = [ToolUnavailable("no firewall"), None]
        monitor, _ = _monitor(blocker=blocker)
        monitor.record([self._attack("10.0.0.1"), self._attack("10.0.0.2")])
        assert monitor.attack_count == 2
        assert blocker.auto_mitigate.call_count == 2
        assert "auto-mitigation failed for 10.0.0.1: no firewall" in caplog.text

    def test_findings_appended_before_mitigation(self):
        monitor, _ = _monitor(blocker=MagicMock())
        seen = []
        monitor.blocker.auto_mitigate.side_effect = lambda a: seen.append(monitor.attack_count)
        monitor.record([self._attack(), self._attack()])
        assert seen == [1, 2]


class TestQuickScan:
    def test_every_domain_once(self):
        monitor, fakes = _monitor({WIFI: FakeSampler(WIFI_SAMPLE)})
        attacks = monitor.quick_scan()
        assert all(fake.calls == 1 for fake in fakes.values())
        assert [a.type for a in attacks] == [EVIL_TWIN, WEAK_ENCRYPTION]

    def test_recent_limit(self):
        monitor, _ = _monitor({WIFI: FakeSampler(WIFI_SAMPLE)})
        monitor.quick_scan()
        assert [a.type for a in monitor.recent_attacks(1)] == [WEAK_ENCRYPTION]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:
    """start/stop/close manage one daemon thread per domain."""

    def test_start_runs_every_domain(self):
        monitor, fakes = _monitor()
        try:
            monitor.start()
            for fake in fakes.values():
                assert fake.called.wait(2)
            assert sorted(monitor.running_domains()) == sorted(DOMAINS)
        finally:
            monitor.close()

    def test_second_start_refused(self):
        monitor, _ = _monitor()
        try:
            monitor.start_sampler(WIFI)
            with pytest.raises(StateConflict):
                monitor.start_sampler(WIFI)
        finally:
            monitor.close()

    def test_start_is_idempotent_for_running_domains(self):
        monitor, _ = _monitor()
        try:
            monitor.start_sampler(WIFI)
            monitor.start()
            assert sorted(monitor.running_domains()) == sorted(DOMAINS)
        finally:
            monitor.close()

    def test_unknown_domain(self):
        monitor, _ = _monitor()
        with pytest.raises(ValueError):
            monitor.start_sampler("zigbee")

    def test_stop_marks_idle(self):
        monitor, fakes = _monitor()
        monitor.start_sampler(WIFI)
        assert fakes[WIFI].called.wait(2)
        monitor.stop()
        assert monitor.running_domains() == []
        health = monitor.store.health(WIFI)
        assert health.status == IDLE
        assert health.events[-1].endswith("Monitoring stopped")
        assert monitor.store.health(BLE) is None

    def test_restart_after_stop(self):
        monitor, fakes = _monitor()
        try:
            monitor.start_sampler(WIFI)
            assert fakes[WIFI].called.wait(2)
            monitor.stop()
            fakes[WIFI].called.clear()
            monitor.start_sampler(WIFI)
            assert fakes[WIFI].called.wait(2)
        finally:
            monitor.close()

    def test_slow_pass_blocks_restart_until_it_exits(self, monkeypatch):
        monkeypatch.setattr("shheissee.monitor._JOIN_TIMEOUT", 0.1)
        entered = threading.Event()
        release = threading.Event()

        class BlockingSampler:
            def sample(self):
                entered.set()
                release.wait(5)

        monitor, _ = _monitor({RADIO: BlockingSampler()})
        try:
            monitor.start_sampler(RADIO)
            assert entered.wait(2)
            monitor.stop()
            assert monitor.running_domains() == [RADIO]
            with pytest.raises(StateConflict, match="still stopping"):
                monitor.start_sampler(RADIO)

            release.set()
            for thread in threading.enumerate():
                if thread.name == "sampler-radio":
                    thread.join(2)
            assert monitor.store.health(RADIO).status == IDLE

            monitor.start_sampler(RADIO)
            live = [t for t in threading.enumerate() if t.name == "sampler-radio"]
            assert len(live) == 1
        finally:
            release.set()
            monitor.close()

    def test_crashing_pass_keeps_loop_alive(self, caplog):
        crashing = FakeSampler()
        count = {"n": 0}
        done = threading.Event()

        def sample():
            count["n"] += 1
            if count["n"] >= 2:
                done.set()
            raise RuntimeError("boom")

        crashing.sample = sample
        monitor, _ = _monitor({RADIO: crashing})
        try:
            monitor.start_sampler(RADIO)
            assert done.wait(2)
        finally:
            monitor.close()
        assert "radio sampling pass crashed" in caplog.text

    def test_close_without_start(self):
        monitor, _ = _monitor()
        monitor.close()
        monitor.close()

    def test_start_after_close_refused(self):
        monitor, _ = _monitor()
        monitor.close()
        with pytest.raises(StateConflict):
            monitor.start_sampler(WIFI)

    def test_context_manager_closes(self):
        monitor, fakes = _monitor()
        with monitor:
            monitor.start_sampler(NETWORK)
            assert fakes[NETWORK].called.wait(2)
        assert monitor.running_domains() == []
        with pytest.raises(StateConflict):
            monitor.start()
