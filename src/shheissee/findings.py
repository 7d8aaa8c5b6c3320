"""Bounded, append-only log of detected attacks."""

from __future__ import annotations

import collections
import threading

from shheissee.common import Attack
from shheissee.config import MAX_FINDINGS


class FindingsLog:
    """Thread-safe FIFO of :class:`Attack` findings.

    Keeps at most *max_size* entries; once full, every append evicts the
    oldest finding.  Arrival order is preserved.
    """

    def __init__(self, max_size: int = MAX_FINDINGS) -> None:
        self._items: collections.deque[Attack] = collections.deque(maxlen=max_size)
        self._lock = threading.Lock()

    def append(self, attack: Attack) -> None:
        """Append *attack*, evicting the oldest entry when full."""
        with self._lock:
            self._items.append(attack)

    def recent(self, limit: int = 0) -> list[Attack]:
        """Return the *limit* newest findings, oldest first.

        ``limit <= 0`` or a limit larger than the log returns everything.
        """
        with self._lock:
            items = list(self._items)
        if limit <= 0 or limit >= len(items):
            return items
        return items[-limit:]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
