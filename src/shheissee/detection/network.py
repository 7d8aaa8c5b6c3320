"""Suspicious open-port detection on the local subnet.

Scans the subnet with ``nmap`` for ports commonly abused on a LAN (FTP,
Telnet, RDP, SMB).  :func:`detect_suspicious_ports` is the pure part and
works on captured nmap output; :func:`scan_suspicious_ports` runs nmap.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime

from shheissee.common import MEDIUM, SUSPICIOUS_PORT, Attack, CommandRunner
from shheissee.tools import Which, is_tool_available, run_with_elevation_fallback

_LOGGER = logging.getLogger(__name__)

SUSPICIOUS_PORTS: tuple[tuple[int, str], ...] = (
    (21, "FTP"),
    (23, "Telnet"),
    (3389, "RDP"),
    (445, "SMB"),
)

_REPORT_RE = re.compile(r"^Nmap scan report for\s+(?:\S+\s+\((?P<ip>[^)]+)\)|(?P<host>\S+))")
_PORT_RE = re.compile(r"^(?P<port>\d+)/tcp\s+open\b")


def parse_open_ports(output: str) -> dict[int, list[str]]:
    """Map each open TCP port in nmap normal output to the hosts reporting it.

    Hosts are listed in scan order; a port seen before any
    ``Nmap scan report`` line is attributed to ``"network"``.
    """
    open_ports: dict[int, list[str]] = {}
    host = "network"
    for line in output.splitlines():
        line = line.strip()
        report = _REPORT_RE.match(line)
        if report:
            host = report.group("ip") or report.group("host")
            continue
        port = _PORT_RE.match(line)
        if port:
            hosts = open_ports.setdefault(int(port.group("port")), [])
            if host not in hosts:
                hosts.append(host)
    return open_ports


def detect_suspicious_ports(output: str, now: datetime | None = None) -> list[Attack]:
    """One Medium finding per suspicious port reported open.

    The finding targets the first host seen with that port open.
    """
    now = now or datetime.now()
    open_ports = parse_open_ports(output)
    attacks: list[Attack] = []
    for port, service in SUSPICIOUS_PORTS:
        hosts = open_ports.get(port)
        if not hosts:
            continue
        attacks.append(Attack(
            type=SUSPICIOUS_PORT,
            severity=MEDIUM,
            description=(
                f"Suspicious open port detected: {port}/tcp ({service}) "
                f"on {', '.join(hosts)}"
            ),
            target=hosts[0],
            timestamp=now,
        ))
    return attacks


def scan_suspicious_ports(
    subnet: str = "192.168.1.0/24",
    *,
    runner: CommandRunner | None = None,
    which: Which | None = None,
    timeout: float = 120,
) -> list[Attack]:
    """Scan *subnet* with nmap and return suspicious-port findings.

    Returns an empty list if nmap is not installed or the scan fails.
    """
    if not is_tool_available("nmap", which):
        _LOGGER.debug("nmap not installed, skipping port scan")
        return []

    ports = ",".join(str(port) for port, _ in SUSPICIOUS_PORTS)
    result = run_with_elevation_fallback(
        ["nmap", "-p", ports, "--open", subnet],
        runner=runner,
        which=which,
        timeout=timeout,
    )
    if not result.ok:
        _LOGGER.warning("nmap port scan failed: %s", result.error)
        return []
    return detect_suspicious_ports(result.output)
