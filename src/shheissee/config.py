"""Monitor configuration.

Module-level defaults may be overridden with ``SHHEISSEE_*`` environment
variables; :meth:`MonitorSettings.from_env` gathers them into one object
that the coordinator and samplers take.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

from shheissee.common import BLE, BLUETOOTH, NETWORK, RADIO, WIFI

_LOGGER = logging.getLogger(__name__)

# -- Sampling cadence (seconds between passes) --
WIFI_INTERVAL = 30
BLUETOOTH_INTERVAL = 30
BLE_INTERVAL = 30
RADIO_INTERVAL = 60
NETWORK_INTERVAL = 30

# -- Network reachability --
PING_TARGET = "8.8.8.8"
PING_COUNT = 3
PING_INTERVAL = 0.2

# -- Suspicious port scan --
PORT_SCAN_ENABLED = True
PORT_SCAN_SUBNET = "192.168.1.0/24"
PORT_SCAN_TIMEOUT = 120

# -- Wi-Fi capture --
AIRODUMP_CAPTURE_SECONDS = 8
IW_SCAN_SECONDS = 8

# -- Bluetooth --
BLUETOOTH_SCAN_SECONDS = 10
BLE_SCAN_SECONDS = 10

# -- Radio --
SUB_GHZ_SCAN_SECONDS = 5

# -- Mitigation --
AUTO_BLOCK = False
DEAUTH_PACKET_COUNT = 10

# -- Bounded state --
MAX_FINDINGS = 1000
MAX_HEALTH_EVENTS = 10

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        _LOGGER.warning("config: ignoring non-integer %s=%r", key, raw)
        return default


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        _LOGGER.warning("config: ignoring non-numeric %s=%r", key, raw)
        return default


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    _LOGGER.warning("config: ignoring non-boolean %s=%r", key, raw)
    return default


def _env_str(env: Mapping[str, str], key: str, default: str) -> str:
    raw = env.get(key)
    return raw.strip() if raw and raw.strip() else default


@dataclass
class MonitorSettings:
    """Tunable settings for one monitor process."""

    wifi_interval: float = WIFI_INTERVAL
    bluetooth_interval: float = BLUETOOTH_INTERVAL
    ble_interval: float = BLE_INTERVAL
    radio_interval: float = RADIO_INTERVAL
    network_interval: float = NETWORK_INTERVAL
    ping_target: str = PING_TARGET
    ping_count: int = PING_COUNT
    ping_interval: float = PING_INTERVAL
    port_scan_enabled: bool = PORT_SCAN_ENABLED
    port_scan_subnet: str = PORT_SCAN_SUBNET
    port_scan_timeout: int = PORT_SCAN_TIMEOUT
    airodump_capture_seconds: int = AIRODUMP_CAPTURE_SECONDS
    iw_scan_seconds: int = IW_SCAN_SECONDS
    bluetooth_scan_seconds: int = BLUETOOTH_SCAN_SECONDS
    ble_scan_seconds: int = BLE_SCAN_SECONDS
    sub_ghz_scan_seconds: int = SUB_GHZ_SCAN_SECONDS
    auto_block: bool = AUTO_BLOCK
    deauth_packet_count: int = DEAUTH_PACKET_COUNT
    max_findings: int = MAX_FINDINGS
    max_health_events: int = MAX_HEALTH_EVENTS

    def interval_for(self, domain: str) -> float:
        """Return the sampling interval for *domain* in seconds."""
        intervals = {
            WIFI: self.wifi_interval,
            BLUETOOTH: self.bluetooth_interval,
            BLE: self.ble_interval,
            RADIO: self.radio_interval,
            NETWORK: self.network_interval,
        }
        return intervals[domain]

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> MonitorSettings:
        """Build settings from ``SHHEISSEE_*`` variables over the defaults.

        Malformed values are logged and the default is kept.
        """
        env = os.environ if env is None else env
        return cls(
            wifi_interval=_env_float(env, "SHHEISSEE_WIFI_INTERVAL", WIFI_INTERVAL),
            bluetooth_interval=_env_float(env, "SHHEISSEE_BLUETOOTH_INTERVAL", BLUETOOTH_INTERVAL),
            ble_interval=_env_float(env, "SHHEISSEE_BLE_INTERVAL", BLE_INTERVAL),
            radio_interval=_env_float(env, "SHHEISSEE_RADIO_INTERVAL", RADIO_INTERVAL),
            network_interval=_env_float(env, "SHHEISSEE_NETWORK_INTERVAL", NETWORK_INTERVAL),
            ping_target=_env_str(env, "SHHEISSEE_PING_TARGET", PING_TARGET),
            ping_count=_env_int(env, "SHHEISSEE_PING_COUNT", PING_COUNT),
            ping_interval=_env_float(env, "SHHEISSEE_PING_INTERVAL", PING_INTERVAL),
            port_scan_enabled=_env_bool(env, "SHHEISSEE_PORT_SCAN", PORT_SCAN_ENABLED),
            port_scan_subnet=_env_str(env, "SHHEISSEE_PORT_SCAN_SUBNET", PORT_SCAN_SUBNET),
            port_scan_timeout=_env_int(env, "SHHEISSEE_PORT_SCAN_TIMEOUT", PORT_SCAN_TIMEOUT),
            airodump_capture_seconds=_env_int(
                env, "SHHEISSEE_AIRODUMP_SECONDS", AIRODUMP_CAPTURE_SECONDS,
            ),
            iw_scan_seconds=_env_int(env, "SHHEISSEE_IW_SCAN_SECONDS", IW_SCAN_SECONDS),
            bluetooth_scan_seconds=_env_int(
                env, "SHHEISSEE_BLUETOOTH_SCAN_SECONDS", BLUETOOTH_SCAN_SECONDS,
            ),
            ble_scan_seconds=_env_int(env, "SHHEISSEE_BLE_SCAN_SECONDS", BLE_SCAN_SECONDS),
            sub_ghz_scan_seconds=_env_int(env, "SHHEISSEE_SUB_GHZ_SECONDS", SUB_GHZ_SCAN_SECONDS),
            auto_block=_env_bool(env, "SHHEISSEE_AUTO_BLOCK", AUTO_BLOCK),
            deauth_packet_count=_env_int(env, "SHHEISSEE_DEAUTH_COUNT", DEAUTH_PACKET_COUNT),
            max_findings=_env_int(env, "SHHEISSEE_MAX_FINDINGS", MAX_FINDINGS),
            max_health_events=_env_int(env, "SHHEISSEE_MAX_HEALTH_EVENTS", MAX_HEALTH_EVENTS),
        )
