"""Active mitigation: firewall, MAC filtering, Bluetooth and Wi-Fi deauth.

The :class:`Blocker` keeps the set of blocked IPs, MACs and Bluetooth
addresses and applies or reverts each block through whichever supported
tool is installed.  Which tools are tried, and in what order, is data
(:class:`FirewallStrategy` tuples) rather than control flow.
"""

from __future__ import annotations

import logging
import shutil
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from shheissee.common import (
    AI_CONNECTION_ANOMALY,
    BLUETOOTH_MITM,
    BLUETOOTH_SPOOFING,
    EVIL_TWIN,
    ROGUE_AP,
    SUSPICIOUS_PORT,
    UNKNOWN_DEVICE,
    Attack,
    BlockedItems,
    CommandRunner,
    SubprocessRunner,
)
from shheissee.errors import (
    PermissionDenied,
    StateConflict,
    ToolExecutionFailed,
    ToolUnavailable,
)
from shheissee.sampling.interfaces import find_monitor_interface
from shheissee.tools import ToolResult, Which, run_with_elevation_fallback

_LOGGER = logging.getLogger(__name__)
_DEFAULT_RUNNER = SubprocessRunner()

_IP_TARGETED_TYPES = frozenset({UNKNOWN_DEVICE, SUSPICIOUS_PORT, AI_CONNECTION_ANOMALY})
_BLUETOOTH_TARGETED_TYPES = frozenset({BLUETOOTH_SPOOFING, BLUETOOTH_MITM})
_ROGUE_AP_TYPES = frozenset({EVIL_TWIN, ROGUE_AP})


@dataclass(frozen=True)
class FirewallStrategy:
    """Commands that apply (or revert) one block with one tool.

    ``steps`` are argv templates run in order; ``{address}`` is replaced
    with the address being blocked.  Every step must succeed.
    """

    tool: str
    steps: tuple[tuple[str, ...], ...]


_FIREWALLD_RULE = "rule family='ipv4' source address='{address}' reject"

IP_BLOCK_STRATEGIES: tuple[FirewallStrategy, ...] = (
    FirewallStrategy("ufw", (("ufw", "deny", "from", "{address}"),)),
    FirewallStrategy("firewall-cmd", (
        ("firewall-cmd", "--permanent", "--add-rich-rule", _FIREWALLD_RULE),
        ("firewall-cmd", "--reload"),
    )),
    FirewallStrategy("iptables", (("iptables", "-I", "INPUT", "-s", "{address}", "-j", "DROP"),)),
)

IP_UNBLOCK_STRATEGIES: tuple[FirewallStrategy, ...] = (
    FirewallStrategy("ufw", (("ufw", "delete", "deny", "from", "{address}"),)),
    FirewallStrategy("firewall-cmd", (
        ("firewall-cmd", "--permanent", "--remove-rich-rule", _FIREWALLD_RULE),
        ("firewall-cmd", "--reload"),
    )),
    FirewallStrategy("iptables", (("iptables", "-D", "INPUT", "-s", "{address}", "-j", "DROP"),)),
)

MAC_BLOCK_STRATEGIES: tuple[FirewallStrategy, ...] = (
    FirewallStrategy("ebtables", (("ebtables", "-A", "INPUT", "-s", "{address}", "-j", "DROP"),)),
    FirewallStrategy("iptables", ((
        "iptables", "-I", "INPUT", "-m", "mac", "--mac-source", "{address}", "-j", "DROP",
    ),)),
)

MAC_UNBLOCK_STRATEGIES: tuple[FirewallStrategy, ...] = (
    FirewallStrategy("ebtables", (("ebtables", "-D", "INPUT", "-s", "{address}", "-j", "DROP"),)),
    FirewallStrategy("iptables", ((
        "iptables", "-D", "INPUT", "-m", "mac", "--mac-source", "{address}", "-j", "DROP",
    ),)),
)

_BLUETOOTH_LIMITATION = (
    "rfkill %s the whole Bluetooth radio; %s is not targeted individually"
)


def _failure(message: str, result: ToolResult) -> ToolExecutionFailed:
    """Build the exception matching *result*'s failure mode."""
    if result.permission_denied and not result.elevated:
        return PermissionDenied(f"{message}: {result.error}", result.command, result.output)
    return ToolExecutionFailed(f"{message}: {result.error}", result.command, result.output)


class Blocker:
    """Thread-safe registry and enforcer of blocked addresses.

    All state (three address maps and the auto-block flag) sits behind a
    single lock, held for the duration of each block or unblock so that
    tool invocations for the same state never interleave.

    Args:
        auto_block: Initial state of automatic mitigation.
        runner: Optional CommandRunner for subprocess calls (testing seam).
        which: Optional executable lookup (testing seam).
        clock: Returns the current time (testing seam).
        deauth_count: Deauthentication frames sent per burst.
    """

    def __init__(
        self,
        auto_block: bool = False,
        *,
        runner: CommandRunner | None = None,
        which: Which | None = None,
        clock: Callable[[], datetime] = datetime.now,
        deauth_count: int = 10,
    ) -> None:
        self._runner = runner or _DEFAULT_RUNNER
        self._which = which or shutil.which
        self._clock = clock
        self._deauth_count = deauth_count
        self._blocked_ips: dict[str, datetime] = {}
        self._blocked_macs: dict[str, datetime] = {}
        self._blocked_bt: dict[str, datetime] = {}
        self._auto_block = auto_block
        self._lock = threading.Lock()

    # -- Helpers -------------------------------------------------------------

    def _available(self, tool: str) -> bool:
        return self._which(tool) is not None

    def _run(self, cmd: list[str], timeout: float = 30) -> ToolResult:
        return run_with_elevation_fallback(
            cmd, runner=self._runner, which=self._which, timeout=timeout,
        )

    def _enforce(
        self,
        strategies: tuple[FirewallStrategy, ...],
        address: str,
        action: str,
        *,
        fall_through: bool,
    ) -> str:
        """Apply *strategies* to *address* and return the tool that succeeded.

        Without *fall_through* only the first installed tool is tried;
        with it, each installed tool is tried in turn until one succeeds.

        Raises:
            ToolUnavailable: None of the tools is installed.
            ToolExecutionFailed: Every tool that was tried failed.
        """
        candidates = [s for s in strategies if self._available(s.tool)]
        if not candidates:
            tools = ", ".join(s.tool for s in strategies)
            raise ToolUnavailable(f"no supported tool found to {action} ({tools})")
        if not fall_through:
            candidates = candidates[:1]

        failures: list[ToolExecutionFailed] = []
        for strategy in candidates:
            failure = self._apply(strategy, address, action)
            if failure is None:
                return strategy.tool
            _LOGGER.debug("%s", failure)
            failures.append(failure)
        raise failures[-1]

    def _apply(
        self, strategy: FirewallStrategy, address: str, action: str,
    ) -> ToolExecutionFailed | None:
        """Run every step of *strategy*; return the first failure, or None."""
        for step in strategy.steps:
            result = self._run([part.format(address=address) for part in step])
            if not result.ok:
                return _failure(f"failed to {action} with {strategy.tool}", result)
        return None

    # -- IP ------------------------------------------------------------------

    def block_ip(self, ip: str, reason: str = "") -> None:
        """Drop inbound traffic from *ip* using ufw, firewalld, or iptables.

        Raises:
            StateConflict: *ip* is already blocked.
            ToolUnavailable: No supported firewall tool is installed.
            ToolExecutionFailed: The firewall command failed.
        """
        with self._lock:
            if ip in self._blocked_ips:
                raise StateConflict(f"IP {ip} is already blocked")
            tool = self._enforce(IP_BLOCK_STRATEGIES, ip, f"block IP {ip}", fall_through=False)
            self._blocked_ips[ip] = self._clock()
        _LOGGER.info("Blocked IP %s via %s: %s", ip, tool, reason)

    def unblock_ip(self, ip: str) -> None:
        """Remove the block on *ip*.

        Raises:
            StateConflict: *ip* is not blocked.
            ToolUnavailable: No supported firewall tool is installed.
            ToolExecutionFailed: The firewall command failed.
        """
        with self._lock:
            if ip not in self._blocked_ips:
                raise StateConflict(f"IP {ip} is not blocked")
            tool = self._enforce(IP_UNBLOCK_STRATEGIES, ip, f"unblock IP {ip}", fall_through=False)
            del self._blocked_ips[ip]
        _LOGGER.info("Unblocked IP %s via %s", ip, tool)

    # -- MAC -----------------------------------------------------------------

    def block_mac(self, mac: str, reason: str = "") -> None:
        """Drop frames from *mac*, preferring ebtables over iptables MAC matching."""
        with self._lock:
            if mac in self._blocked_macs:
                raise StateConflict(f"MAC {mac} is already blocked")
            tool = self._enforce(MAC_BLOCK_STRATEGIES, mac, f"block MAC {mac}", fall_through=True)
            self._blocked_macs[mac] = self._clock()
        _LOGGER.info("Blocked MAC %s via %s: %s", mac, tool, reason)

    def unblock_mac(self, mac: str) -> None:
        with self._lock:
            if mac not in self._blocked_macs:
                raise StateConflict(f"MAC {mac} is not blocked")
            tool = self._enforce(
                MAC_UNBLOCK_STRATEGIES, mac, f"unblock MAC {mac}", fall_through=True,
            )
            del self._blocked_macs[mac]
        _LOGGER.info("Unblocked MAC %s via %s", mac, tool)

    # -- Bluetooth -----------------------------------------------------------

    def _rfkill(self, action: str, address: str) -> None:
        """Toggle the Bluetooth radio with rfkill, if installed."""
        if not self._available("rfkill"):
            _LOGGER.warning(
                "rfkill not installed; Bluetooth device %s is recorded but not enforced",
                address,
            )
            return
        result = self._run(["rfkill", action, "bluetooth"])
        if not result.ok:
            raise _failure(f"failed to {action} Bluetooth device {address}", result)
        _LOGGER.warning(_BLUETOOTH_LIMITATION, f"{action}s", address)

    def block_bluetooth_device(self, address: str, reason: str = "") -> None:
        """Record *address* as blocked and soft-block the Bluetooth radio.

        The address is recorded even when rfkill is missing.

        Raises:
            StateConflict: *address* is already blocked.
            ToolExecutionFailed: rfkill is installed but failed.
        """
        with self._lock:
            if address in self._blocked_bt:
                raise StateConflict(f"Bluetooth device {address} is already blocked")
            self._rfkill("block", address)
            self._blocked_bt[address] = self._clock()
        _LOGGER.info("Blocked Bluetooth device %s: %s", address, reason)

    def unblock_bluetooth_device(self, address: str) -> None:
        with self._lock:
            if address not in self._blocked_bt:
                raise StateConflict(f"Bluetooth device {address} is not blocked")
            self._rfkill("unblock", address)
            del self._blocked_bt[address]
        _LOGGER.info("Unblocked Bluetooth device %s", address)

    # -- Wi-Fi deauthentication ----------------------------------------------

    def deauth_wifi_client(self, client_mac: str, ap_mac: str, reason: str = "") -> None:
        """Send a burst of deauthentication frames to *client_mac* on *ap_mac*.

        Needs aireplay-ng and an interface that is already in monitor mode;
        no interface is switched into monitor mode here.

        Raises:
            ToolUnavailable: aireplay-ng or a monitor interface is missing.
            ToolExecutionFailed: aireplay-ng failed.
        """
        if not self._available("aireplay-ng"):
            raise ToolUnavailable("aireplay-ng not available for WiFi deauthentication")

        interface = find_monitor_interface(runner=self._runner, which=self._which)
        if interface is None:
            raise ToolUnavailable("no monitor interface available for deauth")

        result = self._run([
            "aireplay-ng", "--deauth", str(self._deauth_count),
            "-a", ap_mac, "-c", client_mac, interface,
        ], timeout=60)
        if not result.ok:
            raise _failure(f"failed to deauth WiFi client {client_mac}", result)
        _LOGGER.info(
            "Deauthenticated WiFi client %s from AP %s: %s", client_mac, ap_mac, reason,
        )

    # -- Automatic mitigation ------------------------------------------------

    def auto_mitigate(self, attack: Attack) -> None:
        """Apply the mitigation mapped to *attack*'s type when auto-block is on.

        - UNKNOWN_DEVICE, SUSPICIOUS_PORT, AI_CONNECTION_ANOMALY: block the
          target as an IP if it contains a ``.``
        - BLUETOOTH_SPOOFING, BLUETOOTH_MITM: block the target as a
          Bluetooth address
        - EVIL_TWIN, ROGUE_AP: log only; the target is an SSID and a deauth
          needs client/AP MAC pairs

        Errors from the chosen block propagate to the caller.
        """
        if not self.auto_block:
            return

        reason = f"Auto-blocked: {attack.description}"
        if attack.type in _IP_TARGETED_TYPES:
            if "." in attack.target:
                self.block_ip(attack.target, reason)
        elif attack.type in _BLUETOOTH_TARGETED_TYPES:
            self.block_bluetooth_device(attack.target, reason)
        elif attack.type in _ROGUE_AP_TYPES:
            _LOGGER.info("Would deauth clients from rogue AP: %s", attack.target)

    @property
    def auto_block(self) -> bool:
        with self._lock:
            return self._auto_block

    def set_auto_block(self, enabled: bool) -> None:
        with self._lock:
            self._auto_block = enabled
        _LOGGER.info("Auto-blocking %s", "enabled" if enabled else "disabled")

    def blocked_items(self) -> BlockedItems:
        """Return copies of the blocked-address maps."""
        with self._lock:
            return BlockedItems(
                ips=dict(self._blocked_ips),
                macs=dict(self._blocked_macs),
                bluetooth=dict(self._blocked_bt),
            )
