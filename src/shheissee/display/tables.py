"""Rich table builders for the security monitor.

Builds Rich :class:`Table` objects for access points, findings, service
health, and blocked addresses.  Printing is left to the caller; run the
module to render a demo::

    python -m shheissee.display.tables
"""

from __future__ import annotations

from datetime import datetime

from rich.markup import escape
from rich.table import Table

from shheissee.common import (
    COLOR_TO_RICH,
    DOMAIN_NAMES,
    ERROR,
    HIGH,
    IDLE,
    MEDIUM,
    RUNNING,
    Attack,
    BlockedItems,
    ServiceHealth,
    WifiAccessPoint,
    severity_color,
    signal_color,
    signal_to_bars,
)

_STATUS_STYLE: dict[str, str] = {
    RUNNING: "green",
    ERROR: "bold red",
    IDLE: "grey50",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _rich_color(rgb: tuple) -> str:  # type: ignore[type-arg]
    """Convert an RGB tuple to a Rich color name."""
    return COLOR_TO_RICH.get(rgb, "white")


def _bar_string(bars: int) -> str:
    """Build a signal-bar string like '▂▄▆█'."""
    chars = ["▂", "▄", "▆", "█"]
    return "".join(chars[i] if i < bars else " " for i in range(4))


def _encryption_style(encryption: str) -> str:
    lowered = encryption.lower()
    if "wep" in lowered or lowered == "open":
        return "red"
    if lowered.startswith("wpa2") or lowered.startswith("wpa3"):
        return "green"
    return "yellow"


def _new_table(title: str, caption: str, title_style: str = "bold cyan") -> Table:
    return Table(
        title=title,
        title_style=title_style,
        caption=caption,
        caption_style="grey50",
        expand=True,
        show_lines=False,
        padding=(0, 1),
    )


# ---------------------------------------------------------------------------
# Access point table
# ---------------------------------------------------------------------------

def build_access_point_table(access_points: list[WifiAccessPoint]) -> Table:
    """Build a Rich Table of the latest Wi-Fi sample, strongest signal first."""
    table = _new_table("WiFi Access Points", f"{len(access_points)} access points found")
    table.add_column("#", style="grey50", width=3, justify="right")
    table.add_column("SSID", style="white", min_width=15, max_width=30)
    table.add_column("BSSID", style="grey50", width=17)
    table.add_column("dBm", justify="right", width=5)
    table.add_column("Sig", width=5)
    table.add_column("Beacons", justify="right", width=8)
    table.add_column("Encryption", width=10)

    ordered = sorted(access_points, key=lambda ap: ap.power, reverse=True)
    for i, ap in enumerate(ordered, 1):
        ssid = escape(ap.ssid) if ap.ssid else "[dim]<hidden>[/dim]"
        sig_c = _rich_color(signal_color(ap.power))
        enc_c = _encryption_style(ap.encryption)
        table.add_row(
            str(i),
            ssid,
            escape(ap.bssid.upper()),
            f"[{sig_c}]{ap.power}[/{sig_c}]",
            f"[{sig_c}]{_bar_string(signal_to_bars(ap.power))}[/{sig_c}]",
            str(ap.beacons),
            f"[{enc_c}]{escape(ap.encryption)}[/{enc_c}]",
        )

    return table


# ---------------------------------------------------------------------------
# Findings table
# ---------------------------------------------------------------------------

def build_findings_table(attacks: list[Attack]) -> Table:
    """Build a Rich Table of findings, newest first.

    Args:
        attacks: Findings in arrival order, as returned by
            :meth:`FindingsLog.recent`.
    """
    high = sum(1 for a in attacks if a.severity == HIGH)
    medium = sum(1 for a in attacks if a.severity == MEDIUM)
    table = _new_table(
        "Detected Attacks",
        f"{len(attacks)} finding(s): {high} high, {medium} medium",
        title_style="bold red",
    )
    table.add_column("Time", style="grey50", width=8)
    table.add_column("Severity", width=8)
    table.add_column("Type", style="cyan", min_width=10, max_width=24)
    table.add_column("Target", style="white", min_width=10, max_width=20)
    table.add_column("Description", min_width=20, max_width=60)

    for attack in reversed(attacks):
        sev_c = _rich_color(severity_color(attack.severity))
        table.add_row(
            f"{attack.timestamp:%H:%M:%S}",
            f"[{sev_c}]{attack.severity}[/{sev_c}]",
            attack.type,
            escape(attack.target),
            escape(attack.description),
        )

    return table


# ---------------------------------------------------------------------------
# Service health table
# ---------------------------------------------------------------------------

def build_health_table(health: dict[str, ServiceHealth]) -> Table:
    """Build a Rich Table with one row per domain that has been sampled.

    The last event of each domain is shown; the error message replaces it
    when the domain is in the error state.
    """
    table = _new_table("Service Health", f"{len(health)} service(s)")
    table.add_column("Service", style="white", min_width=15, max_width=30)
    table.add_column("Status", width=8)
    table.add_column("Updated", style="grey50", width=8)
    table.add_column("Last event", min_width=20, max_width=60)

    for domain, record in health.items():
        style = _STATUS_STYLE.get(record.status, "")
        if record.status == ERROR and record.error_message:
            detail = f"[red]{escape(record.error_message)}[/red]"
        else:
            detail = escape(record.events[-1]) if record.events else ""
        table.add_row(
            escape(record.name or DOMAIN_NAMES.get(domain, domain)),
            f"[{style}]{record.status.upper()}[/{style}]" if style else record.status.upper(),
            f"{record.last_update:%H:%M:%S}",
            detail,
        )

    return table


# ---------------------------------------------------------------------------
# Blocked items table
# ---------------------------------------------------------------------------

def build_blocked_table(items: BlockedItems) -> Table:
    """Build a Rich Table listing every blocked IP, MAC and Bluetooth address."""
    rows: list[tuple[str, str, datetime]] = []
    for kind, entries in (("IP", items.ips), ("MAC", items.macs), ("Bluetooth", items.bluetooth)):
        rows.extend((kind, address, when) for address, when in entries.items())
    rows.sort(key=lambda row: row[2])

    table = _new_table("Blocked", f"{len(rows)} blocked", title_style="bold red")
    table.add_column("#", style="grey50", width=3, justify="right")
    table.add_column("Kind", style="cyan", width=9)
    table.add_column("Address", style="white", width=17)
    table.add_column("Since", style="grey50", width=19)

    for i, (kind, address, when) in enumerate(rows, 1):
        table.add_row(str(i), kind, escape(address), f"{when:%Y-%m-%d %H:%M:%S}")

    return table


# ---------------------------------------------------------------------------
# Standalone CLI (demo)
# ---------------------------------------------------------------------------

def main() -> None:
    """Render demo tables with sample data for visual testing."""
    from rich.console import Console

    from shheissee.common import EVIL_TWIN, WEAK_ENCRYPTION

    sample_aps = [
        WifiAccessPoint(bssid="aa:bb:cc:dd:ee:01", ssid="HomeNet", power=-45, encryption="WPA2"),
        WifiAccessPoint(bssid="aa:bb:cc:dd:ee:02", ssid="HomeNet", power=-62, encryption="WPA2"),
        WifiAccessPoint(bssid="aa:bb:cc:dd:ee:03", ssid="Cafe", power=-80, encryption="WEP"),
    ]
    sample_attacks = [
        Attack(EVIL_TWIN, HIGH, "Potential evil twin attack: SSID 'HomeNet'", "HomeNet"),
        Attack(WEAK_ENCRYPTION, HIGH, "Weak encryption (WEP) detected on network: Cafe", "Cafe"),
    ]
    console = Console()
    console.print(build_access_point_table(sample_aps))
    console.print(build_findings_table(sample_attacks))


if __name__ == "__main__":
    main()
