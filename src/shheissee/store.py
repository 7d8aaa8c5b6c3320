"""Process-wide observation state shared by samplers and readers.

Holds the latest sample for each domain and that domain's
:class:`~shheissee.common.ServiceHealth`.  Each domain has its own
reader/writer lock: many readers may look at a domain while no sampler is
replacing it, and a replacement swaps the whole sample at once so readers
never see a half-updated set.
"""

from __future__ import annotations

import collections
import contextlib
import threading
from datetime import datetime
from typing import Any, Callable, Iterator

from shheissee.common import (
    BLE,
    BLUETOOTH,
    DOMAIN_NAMES,
    DOMAINS,
    ERROR,
    NETWORK,
    RADIO,
    RUNNING,
    WIFI,
    BleDevice,
    BluetoothDevice,
    NetworkInfo,
    RadioInfo,
    ServiceHealth,
    WifiAccessPoint,
    WifiClient,
)
from shheissee.config import MAX_HEALTH_EVENTS


class ReadWriteLock:
    """Many concurrent readers or a single writer.

    Writers take priority once waiting so a steady stream of readers
    cannot starve a sampler.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextlib.contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextlib.contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class _DomainState:
    def __init__(self, sample: Any) -> None:
        self.lock = ReadWriteLock()
        self.sample = sample
        self.health: ServiceHealth | None = None


class ObservationStore:
    """Latest per-domain samples plus per-domain service health.

    Args:
        clock: Returns the current time (testing seam).
        max_events: Rolling event log length kept per domain.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        max_events: int = MAX_HEALTH_EVENTS,
    ) -> None:
        self._clock = clock
        self._max_events = max_events
        self._domains: dict[str, _DomainState] = {
            WIFI: _DomainState(((), ())),
            BLUETOOTH: _DomainState(()),
            BLE: _DomainState(()),
            RADIO: _DomainState(RadioInfo()),
            NETWORK: _DomainState(NetworkInfo()),
        }

    def _state(self, domain: str) -> _DomainState:
        try:
            return self._domains[domain]
        except KeyError:
            raise ValueError(f"unknown domain {domain!r}") from None

    def _replace(self, domain: str, sample: Any) -> None:
        state = self._state(domain)
        with state.lock.write_locked():
            state.sample = sample

    def _read(self, domain: str) -> Any:
        state = self._state(domain)
        with state.lock.read_locked():
            return state.sample

    # -- Wi-Fi ---------------------------------------------------------------

    def replace_wifi(
        self,
        access_points: list[WifiAccessPoint],
        clients: list[WifiClient],
    ) -> None:
        """Swap in a complete Wi-Fi sample (APs and clients together)."""
        self._replace(WIFI, (tuple(access_points), tuple(clients)))

    def wifi(self) -> tuple[list[WifiAccessPoint], list[WifiClient]]:
        """Return the APs and clients from the same sampling pass."""
        access_points, clients = self._read(WIFI)
        return list(access_points), list(clients)

    def wifi_access_points(self) -> list[WifiAccessPoint]:
        return self.wifi()[0]

    def wifi_clients(self) -> list[WifiClient]:
        return self.wifi()[1]

    # -- Bluetooth / BLE -----------------------------------------------------

    def replace_bluetooth(self, devices: list[BluetoothDevice]) -> None:
        self._replace(BLUETOOTH, tuple(devices))

    def bluetooth_devices(self) -> list[BluetoothDevice]:
        return list(self._read(BLUETOOTH))

    def replace_ble(self, devices: list[BleDevice]) -> None:
        self._replace(BLE, tuple(devices))

    def ble_devices(self) -> list[BleDevice]:
        return list(self._read(BLE))

    # -- Radio / network -----------------------------------------------------

    def set_radio(self, info: RadioInfo) -> None:
        self._replace(RADIO, info)

    def radio(self) -> RadioInfo:
        return self._read(RADIO)

    def set_network(self, info: NetworkInfo) -> None:
        self._replace(NETWORK, info)

    def network(self) -> NetworkInfo:
        return self._read(NETWORK)

    # -- Service health ------------------------------------------------------

    def _health_locked(self, state: _DomainState, domain: str) -> ServiceHealth:
        """Return the domain's health record, creating it on first use.

        Caller must hold the domain's write lock.
        """
        if state.health is None:
            state.health = ServiceHealth(
                domain=domain,
                name=DOMAIN_NAMES.get(domain, domain),
                status=RUNNING,
                last_update=self._clock(),
                events=collections.deque(maxlen=self._max_events),
            )
        return state.health

    def begin(self, domain: str) -> None:
        """Record that a sampling attempt is starting for *domain*."""
        state = self._state(domain)
        with state.lock.write_locked():
            self._health_locked(state, domain)

    def mark_running(self, domain: str, event: str | None = None) -> None:
        """Mark *domain* healthy, clearing any error message."""
        self.set_status(domain, RUNNING, event=event)

    def mark_error(self, domain: str, message: str, event: str | None = None) -> None:
        """Mark *domain* failed with *message*; the previous sample is kept."""
        self.set_status(domain, ERROR, message=message, event=event)

    def set_status(
        self,
        domain: str,
        status: str,
        *,
        message: str = "",
        event: str | None = None,
    ) -> None:
        state = self._state(domain)
        now = self._clock()
        with state.lock.write_locked():
            health = self._health_locked(state, domain)
            health.status = status
            health.error_message = message
            health.last_update = now
            if event:
                health.add_event(event, now)

    def health(self, domain: str) -> ServiceHealth | None:
        """Return a copy of *domain*'s health, or None before its first attempt."""
        state = self._state(domain)
        with state.lock.read_locked():
            return state.health.snapshot() if state.health else None

    def all_health(self) -> dict[str, ServiceHealth]:
        """Return copies of every health record created so far."""
        result: dict[str, ServiceHealth] = {}
        for domain in DOMAINS:
            health = self.health(domain)
            if health is not None:
                result[domain] = health
        return result
