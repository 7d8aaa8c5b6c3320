"""Internet reachability and latency sampling via ping."""

from __future__ import annotations

import logging

from shheissee.common import NETWORK, NetworkInfo
from shheissee.sampling.base import Sampler
from shheissee.tools import run_with_elevation_fallback

_LOGGER = logging.getLogger(__name__)


def parse_ping_average(output: str) -> str:
    """Extract the average round-trip time from ping's summary line.

    Understands iputils (``rtt min/avg/max/mdev = 9.1/12.3/15.0/2.1 ms``)
    and busybox (``round-trip min/avg/max = 9.1/12.3/15.0 ms``).
    Returns e.g. ``"12.3ms"``, or ``"Unknown"`` when no summary is found.
    """
    for line in output.splitlines():
        if "min/avg/max" not in line or "=" not in line:
            continue
        fields = line.split("=", 1)[1].split()
        if not fields:
            _LOGGER.debug("Skipped ping summary without values: %r", line)
            continue
        values = fields[0].split("/")
        if len(values) >= 2 and values[1]:
            return f"{values[1]}ms"
    return "Unknown"


class NetworkSampler(Sampler):
    """Ping a well-known address to measure reachability."""

    domain = NETWORK

    def _sample(self) -> NetworkInfo:
        settings = self._settings
        cmd = [
            "ping",
            "-c", str(settings.ping_count),
            "-i", str(settings.ping_interval),
            settings.ping_target,
        ]
        result = run_with_elevation_fallback(
            cmd, runner=self._runner, which=self._which, timeout=10,
        )
        if not result.ok:
            info = NetworkInfo(online=False, avg_latency="N/A")
            self._store.set_network(info)
            self._error("Network is offline", "Network offline")
            return info

        latency = parse_ping_average(result.output)
        info = NetworkInfo(online=True, avg_latency=latency)
        self._store.set_network(info)
        self._running(f"Online, latency: {latency}")
        return info
