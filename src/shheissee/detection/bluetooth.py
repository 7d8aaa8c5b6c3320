"""Bluetooth attack heuristics: mass scanning, spoofed names, MITM relays."""

from __future__ import annotations

from datetime import datetime

from shheissee.common import (
    BLUETOOTH_MASS_SCANNING,
    BLUETOOTH_MITM,
    BLUETOOTH_SPOOFING,
    HIGH,
    MEDIUM,
    Attack,
    BluetoothDevice,
)

# More devices than this in one sample is treated as mass scanning.
MASS_SCANNING_THRESHOLD = 20

SPOOFING_NAME_WORDS: tuple[str, ...] = (
    "attack", "hack", "exploit", "test", "spoof", "evil", "malware", "virus",
)
MITM_NAME_WORDS: tuple[str, ...] = ("proxy", "gateway", "bridge", "intercept")


def detect_mass_scanning(
    devices: list[BluetoothDevice],
    now: datetime | None = None,
) -> list[Attack]:
    if len(devices) <= MASS_SCANNING_THRESHOLD:
        return []
    return [Attack(
        type=BLUETOOTH_MASS_SCANNING,
        severity=MEDIUM,
        description=(
            f"Mass scanning detected: {len(devices)} Bluetooth devices found "
            "(unusual activity)"
        ),
        target="bluetooth_network",
        timestamp=now or datetime.now(),
    )]


def _first_word(name: str, words: tuple[str, ...]) -> str | None:
    name_lower = name.lower()
    for word in words:
        if word in name_lower:
            return word
    return None


def detect_spoofing(
    devices: list[BluetoothDevice],
    now: datetime | None = None,
) -> list[Attack]:
    now = now or datetime.now()
    return [
        Attack(
            type=BLUETOOTH_SPOOFING,
            severity=HIGH,
            description=f"Suspicious Bluetooth device name: {d.name} ({d.address})",
            target=d.address,
            timestamp=now,
        )
        for d in devices
        if _first_word(d.name, SPOOFING_NAME_WORDS)
    ]


def detect_mitm(
    devices: list[BluetoothDevice],
    now: datetime | None = None,
) -> list[Attack]:
    """Flag devices named like relays; the description names the matched kind."""
    now = now or datetime.now()
    attacks: list[Attack] = []
    for d in devices:
        kind = _first_word(d.name, MITM_NAME_WORDS)
        if kind is None:
            continue
        attacks.append(Attack(
            type=BLUETOOTH_MITM,
            severity=HIGH,
            description=(
                f"Potential Man-in-the-Middle device: {d.name} ({d.address}) "
                f"- appears to be {kind}"
            ),
            target=d.address,
            timestamp=now,
        ))
    return attacks


def detect_bluetooth_attacks(
    devices: list[BluetoothDevice],
    now: datetime | None = None,
) -> list[Attack]:
    """Run every Bluetooth heuristic over one sample."""
    now = now or datetime.now()
    return (
        detect_mass_scanning(devices, now)
        + detect_spoofing(devices, now)
        + detect_mitm(devices, now)
    )
