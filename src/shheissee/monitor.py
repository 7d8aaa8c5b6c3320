"""Monitoring coordinator: sampler -> heuristics -> findings -> mitigation.

:class:`SecurityMonitor` owns the shared state (observation store,
findings log, blocker) and one sampler per domain.  Each domain can run
on its own background thread at the configured interval, or be driven
one pass at a time with :meth:`SecurityMonitor.run_pass`.
"""

from __future__ import annotations

import logging
import threading

from shheissee.common import (
    BLE,
    BLUETOOTH,
    DOMAINS,
    IDLE,
    NETWORK,
    RADIO,
    WIFI,
    Attack,
    CommandRunner,
)
from shheissee.config import MonitorSettings
from shheissee.detection import (
    detect_bluetooth_attacks,
    detect_wifi_attacks,
    scan_suspicious_ports,
)
from shheissee.errors import ShheisseeError, StateConflict
from shheissee.findings import FindingsLog
from shheissee.mitigation import Blocker
from shheissee.sampling import (
    BleSampler,
    BluetoothSampler,
    NetworkSampler,
    RadioSampler,
    WifiSampler,
)
from shheissee.sampling.base import Sampler
from shheissee.store import ObservationStore
from shheissee.tools import Which

_LOGGER = logging.getLogger(__name__)

_JOIN_TIMEOUT = 5.0


class SecurityMonitor:
    """Wires samplers, heuristics, the findings log and the blocker.

    Nothing runs until :meth:`start` or :meth:`start_sampler` is called.

    Args:
        settings: Monitor settings; defaults if omitted.
        store: Shared observation store (created if omitted).
        findings: Findings log (created if omitted).
        blocker: Mitigation subsystem (created if omitted).
        samplers: Optional mapping of domain to sampler, replacing the
            default sampler for that domain.
        runner: Optional CommandRunner for subprocess calls (testing seam).
        which: Optional executable lookup (testing seam).
    """

    def __init__(
        self,
        settings: MonitorSettings | None = None,
        *,
        store: ObservationStore | None = None,
        findings: FindingsLog | None = None,
        blocker: Blocker | None = None,
        samplers: dict[str, Sampler] | None = None,
        runner: CommandRunner | None = None,
        which: Which | None = None,
    ) -> None:
        self.settings = settings or MonitorSettings()
        if store is None:
            store = ObservationStore(max_events=self.settings.max_health_events)
        if findings is None:
            findings = FindingsLog(self.settings.max_findings)
        self.store = store
        self.findings = findings
        self.blocker = blocker or Blocker(
            self.settings.auto_block,
            runner=runner,
            which=which,
            deauth_count=self.settings.deauth_packet_count,
        )
        self._runner = runner
        self._which = which

        seams = {"runner": runner, "which": which}
        self.samplers: dict[str, Sampler] = {
            WIFI: WifiSampler(self.store, self.settings, **seams),
            BLUETOOTH: BluetoothSampler(self.store, self.settings, **seams),
            BLE: BleSampler(self.store, self.settings, **seams),
            RADIO: RadioSampler(self.store, self.settings, **seams),
            NETWORK: NetworkSampler(self.store, self.settings, **seams),
        }
        if samplers:
            self.samplers.update(samplers)

        self._workers: dict[str, tuple[threading.Thread, threading.Event]] = {}
        self._lock = threading.Lock()
        self._closed = False

    # -- Pipeline ------------------------------------------------------------

    def _detect(self, domain: str, sample) -> list[Attack]:
        if domain == WIFI:
            access_points, _ = sample
            return detect_wifi_attacks(access_points)
        if domain == BLUETOOTH:
            return detect_bluetooth_attacks(sample)
        if domain == NETWORK and self.settings.port_scan_enabled:
            return scan_suspicious_ports(
                self.settings.port_scan_subnet,
                runner=self._runner,
                which=self._which,
                timeout=self.settings.port_scan_timeout,
            )
        return []

    def run_pass(self, domain: str) -> list[Attack]:
        """Sample *domain* once, run its heuristics and record the findings.

        Returns the findings produced by this pass.  A pass whose sampling
        failed produces no findings.
        """
        sampler = self.samplers.get(domain)
        if sampler is None:
            raise ValueError(f"unknown domain {domain!r}")

        sample = sampler.sample()
        if sample is None:
            return []
        attacks = self._detect(domain, sample)
        self.record(attacks)
        return attacks

    def record(self, attacks: list[Attack]) -> None:
        """Append *attacks* to the findings log, then auto-mitigate each one.

        Mitigation failures are logged; the remaining findings are still
        processed.
        """
        for attack in attacks:
            self.findings.append(attack)
            _LOGGER.info("%s [%s] %s", attack.type, attack.severity, attack.description)
            try:
                self.blocker.auto_mitigate(attack)
            except StateConflict as exc:
                _LOGGER.debug("auto-mitigation skipped: %s", exc)
            except ShheisseeError as exc:
                _LOGGER.warning("auto-mitigation failed for %s: %s", attack.target, exc)

    def quick_scan(self) -> list[Attack]:
        """Run one pass of every domain in turn and return all findings."""
        attacks: list[Attack] = []
        for domain in DOMAINS:
            attacks.extend(self.run_pass(domain))
        return attacks

    # -- Lifecycle -----------------------------------------------------------

    def _loop(self, domain: str, stop_event: threading.Event) -> None:
        interval = self.settings.interval_for(domain)
        while not stop_event.is_set():
            try:
                self.run_pass(domain)
            except Exception:
                _LOGGER.exception("%s sampling pass crashed", domain)
            stop_event.wait(interval)
        self.store.set_status(domain, IDLE, event="Monitoring stopped")

    def _is_running(self, domain: str) -> bool:
        """Caller must hold ``self._lock``."""
        worker = self._workers.get(domain)
        return worker is not None and worker[0].is_alive()

    def start_sampler(self, domain: str) -> None:
        """Start the background loop for *domain*.

        Raises:
            ValueError: *domain* is unknown.
            StateConflict: the domain's loop is running or still stopping,
                or the monitor has been closed.
        """
        if domain not in self.samplers:
            raise ValueError(f"unknown domain {domain!r}")
        with self._lock:
            if self._closed:
                raise StateConflict("monitor is closed")
            worker = self._workers.get(domain)
            if worker is not None and worker[0].is_alive():
                if worker[1].is_set():
                    raise StateConflict(f"{domain} sampler is still stopping")
                raise StateConflict(f"{domain} sampler is already running")
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._loop,
                args=(domain, stop_event),
                name=f"sampler-{domain}",
                daemon=True,
            )
            self._workers[domain] = (thread, stop_event)
            thread.start()
        _LOGGER.info("Started %s sampler", domain)

    def start(self) -> None:
        """Start every domain whose loop is not already running."""
        for domain in DOMAINS:
            with self._lock:
                running = self._is_running(domain)
            if not running:
                self.start_sampler(domain)

    def stop(self) -> None:
        """Signal every loop to stop and wait for them.

        Each loop marks its domain Idle as it exits.  A pass blocked in an
        external tool finishes on its own timeout; the wait here is bounded,
        and a loop still busy afterwards stays registered until it exits so
        its domain cannot be started twice.
        """
        with self._lock:
            workers = dict(self._workers)
        if not workers:
            return
        for _, stop_event in workers.values():
            stop_event.set()
        for domain, (thread, _) in workers.items():
            thread.join(timeout=_JOIN_TIMEOUT)
            if thread.is_alive():
                _LOGGER.warning("%s sampler did not stop within %.1fs", domain, _JOIN_TIMEOUT)
                continue
            with self._lock:
                current = self._workers.get(domain)
                if current is not None and current[0] is thread:
                    del self._workers[domain]
        _LOGGER.info("Stopped %d sampler(s)", len(workers))

    def close(self) -> None:
        """Stop all loops and refuse further starts.  Safe to call repeatedly."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.stop()

    def __enter__(self) -> SecurityMonitor:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # -- Read surface --------------------------------------------------------

    def running_domains(self) -> list[str]:
        with self._lock:
            return [d for d in self._workers if self._is_running(d)]

    def recent_attacks(self, limit: int = 0) -> list[Attack]:
        return self.findings.recent(limit)

    @property
    def attack_count(self) -> int:
        return len(self.findings)
