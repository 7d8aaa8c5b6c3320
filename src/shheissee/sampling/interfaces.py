"""Wireless interface discovery and monitor-mode setup.

Enumerates wireless interfaces from ``/proc/net/wireless`` (falling back
to ``iwconfig``), finds interfaces already in monitor mode, and switches
an interface into monitor mode with ``ifconfig``/``iwconfig``.

All external I/O is injectable for testability:
- functions accept a ``CommandRunner`` and a ``which`` lookup
- ``list_wifi_interfaces`` accepts a ``proc_wireless`` path
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from shheissee.common import CommandRunner
from shheissee.errors import ToolExecutionFailed, ToolUnavailable
from shheissee.tools import Which, run_with_elevation_fallback

_LOGGER = logging.getLogger(__name__)

WIFI_PREFIX = "wlan"


@dataclass(frozen=True)
class InterfaceInfo:
    """A wireless interface and its current mode as reported by iwconfig."""

    name: str
    mode: str = "Managed"


# ---------------------------------------------------------------------------
# Output parsing
# ---------------------------------------------------------------------------

def parse_iwconfig_output(output: str) -> list[InterfaceInfo]:
    """Parse ``iwconfig`` output into interface names and modes.

    An interface block starts with an unindented line containing ``IEEE``;
    ``Mode:`` may appear on that line or on an indented continuation line.
    Interfaces without wireless extensions are ignored.
    """
    interfaces: list[InterfaceInfo] = []
    current: str | None = None
    modes: dict[str, str] = {}

    for line in output.splitlines():
        if not line.strip():
            continue
        if not line[0].isspace():
            current = None
            if "IEEE" in line:
                current = line.split()[0].rstrip(":")
                modes[current] = "Managed"
                interfaces.append(InterfaceInfo(current))
        if current is not None and "Mode:" in line:
            mode = line.split("Mode:", 1)[1].split()
            if mode:
                modes[current] = mode[0]

    return [InterfaceInfo(i.name, modes[i.name]) for i in interfaces]


def parse_proc_net_wireless(content: str) -> list[str]:
    """Return interface names listed in ``/proc/net/wireless``.

    The first two lines are column headers; data lines start with
    ``<iface>:``.
    """
    names: list[str] = []
    for line in content.splitlines()[2:]:
        fields = line.split()
        if not fields:
            continue
        name = fields[0]
        if not name.endswith(":"):
            _LOGGER.debug("Skipped /proc/net/wireless line: %r", line)
            continue
        names.append(name[:-1])
    return names


def _wifi_only(names: list[str], prefix: str) -> list[str]:
    """Keep names with *prefix*, removing duplicates in order."""
    seen: set[str] = set()
    result: list[str] = []
    for name in names:
        if name.startswith(prefix) and name not in seen:
            seen.add(name)
            result.append(name)
    return result


# ---------------------------------------------------------------------------
# Enumeration
# ---------------------------------------------------------------------------

def _iwconfig(runner: CommandRunner | None, which: Which | None) -> list[InterfaceInfo] | None:
    result = run_with_elevation_fallback(["iwconfig"], runner=runner, which=which, timeout=5)
    # iwconfig exits 0 even when some interfaces lack wireless extensions
    if not result.ok:
        _LOGGER.debug("iwconfig failed: %s", result.error)
        return None
    return parse_iwconfig_output(result.output)


def list_wifi_interfaces(
    *,
    runner: CommandRunner | None = None,
    which: Which | None = None,
    proc_wireless: str = "/proc/net/wireless",
    prefix: str = WIFI_PREFIX,
) -> list[str]:
    """Enumerate WiFi interface names.

    Reads *proc_wireless* first; if it cannot be read, falls back to the
    interfaces reported by ``iwconfig``.  Only names starting with
    *prefix* are returned.  Returns an empty list if neither source works.
    """
    try:
        with open(proc_wireless, encoding="utf-8") as f:
            names = parse_proc_net_wireless(f.read())
    except OSError:
        infos = _iwconfig(runner, which)
        if infos is None:
            return []
        names = [info.name for info in infos]

    return _wifi_only(names, prefix)


def find_monitor_interface(
    *,
    runner: CommandRunner | None = None,
    which: Which | None = None,
) -> str | None:
    """Return the first interface iwconfig reports in monitor mode, or None."""
    infos = _iwconfig(runner, which)
    for info in infos or []:
        if info.mode.lower() == "monitor":
            return info.name
    return None


def enable_monitor_mode(
    interface: str,
    *,
    runner: CommandRunner | None = None,
    which: Which | None = None,
) -> None:
    """Take *interface* down, switch it to monitor mode, bring it back up.

    Failing to take the interface down or up again is logged and ignored;
    only a failure of the mode switch itself raises.

    Raises:
        ToolExecutionFailed: ``iwconfig <iface> mode monitor`` failed.
    """
    down = run_with_elevation_fallback(
        ["ifconfig", interface, "down"], runner=runner, which=which, timeout=10,
    )
    if not down.ok:
        _LOGGER.warning("Could not bring down interface %s: %s", interface, down.error)

    mode = run_with_elevation_fallback(
        ["iwconfig", interface, "mode", "monitor"], runner=runner, which=which, timeout=10,
    )
    if not mode.ok:
        raise ToolExecutionFailed(
            f"failed to set monitor mode on {interface}: {mode.error}",
            mode.command,
            mode.output,
        )

    up = run_with_elevation_fallback(
        ["ifconfig", interface, "up"], runner=runner, which=which, timeout=10,
    )
    if not up.ok:
        _LOGGER.warning("Could not bring up interface %s: %s", interface, up.error)

    _LOGGER.info("Successfully put %s into monitor mode", interface)


def get_or_create_monitor_interface(
    *,
    runner: CommandRunner | None = None,
    which: Which | None = None,
    proc_wireless: str = "/proc/net/wireless",
) -> str:
    """Return a monitor-mode interface, converting the first WiFi card if needed.

    Raises:
        ToolUnavailable: No wireless interface exists.
        ToolExecutionFailed: The mode switch failed.
    """
    existing = find_monitor_interface(runner=runner, which=which)
    if existing:
        return existing

    interfaces = list_wifi_interfaces(runner=runner, which=which, proc_wireless=proc_wireless)
    if not interfaces:
        raise ToolUnavailable("no WiFi interfaces found")

    target = interfaces[0]
    _LOGGER.info("Attempting to put interface %s into monitor mode", target)
    enable_monitor_mode(target, runner=runner, which=which)
    return target
