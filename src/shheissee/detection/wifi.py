"""Wi-Fi attack heuristics: evil twins, rogue APs, weak encryption.

Pure functions over one Wi-Fi sample; no I/O and no shared state.
"""

from __future__ import annotations

from datetime import datetime

from shheissee.common import (
    EVIL_TWIN,
    HIGH,
    ROGUE_AP,
    WEAK_ENCRYPTION,
    Attack,
    WifiAccessPoint,
)

ROGUE_SSID_WORDS: tuple[str, ...] = (
    "free", "public", "hack", "test", "evil", "wifi", "guest", "default",
)


def detect_evil_twins(
    access_points: list[WifiAccessPoint],
    now: datetime | None = None,
) -> list[Attack]:
    """Flag SSIDs broadcast by two or more distinct BSSIDs.

    Hidden networks (empty SSID or ``"Hidden"``) are ignored.  One finding
    per SSID, in order of first appearance.
    """
    now = now or datetime.now()
    by_ssid: dict[str, list[str]] = {}
    for ap in access_points:
        if not ap.ssid or ap.ssid == "Hidden":
            continue
        bssids = by_ssid.setdefault(ap.ssid, [])
        if ap.bssid.lower() not in bssids:
            bssids.append(ap.bssid.lower())

    return [
        Attack(
            type=EVIL_TWIN,
            severity=HIGH,
            description=(
                f"Potential evil twin attack: SSID '{ssid}' is broadcast "
                f"by {len(bssids)} access points"
            ),
            target=ssid,
            timestamp=now,
        )
        for ssid, bssids in by_ssid.items()
        if len(bssids) > 1
    ]


def detect_rogue_aps(
    access_points: list[WifiAccessPoint],
    now: datetime | None = None,
) -> list[Attack]:
    """Flag APs whose SSID contains a word from :data:`ROGUE_SSID_WORDS`."""
    now = now or datetime.now()
    attacks: list[Attack] = []
    for ap in access_points:
        ssid_lower = ap.ssid.lower()
        for word in ROGUE_SSID_WORDS:
            if word in ssid_lower:
                attacks.append(Attack(
                    type=ROGUE_AP,
                    severity=HIGH,
                    description=(
                        f"Potentially rogue access point detected: {ap.ssid} "
                        f"(matched '{word}')"
                    ),
                    target=ap.ssid,
                    timestamp=now,
                ))
                break
    return attacks


def detect_weak_encryption(
    access_points: list[WifiAccessPoint],
    now: datetime | None = None,
) -> list[Attack]:
    """Flag APs still using WEP."""
    now = now or datetime.now()
    return [
        Attack(
            type=WEAK_ENCRYPTION,
            severity=HIGH,
            description=f"Weak encryption (WEP) detected on network: {ap.ssid or ap.bssid}",
            target=ap.ssid or ap.bssid,
            timestamp=now,
        )
        for ap in access_points
        if "wep" in ap.encryption.lower()
    ]


def detect_wifi_attacks(
    access_points: list[WifiAccessPoint],
    now: datetime | None = None,
) -> list[Attack]:
    """Run every Wi-Fi heuristic: evil twins, then rogue APs, then weak encryption."""
    now = now or datetime.now()
    return (
        detect_evil_twins(access_points, now)
        + detect_rogue_aps(access_points, now)
        + detect_weak_encryption(access_points, now)
    )
