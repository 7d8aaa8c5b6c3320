"""Tests for shheissee.findings — the bounded findings log."""

from __future__ import annotations

import threading
from datetime import datetime

from shheissee.common import MEDIUM, SUSPICIOUS_PORT, Attack
from shheissee.findings import FindingsLog


def _attack(i: int) -> Attack:
    return Attack(
        type=SUSPICIOUS_PORT,
        severity=MEDIUM,
        description=f"finding {i}",
        target=f"10.0.0.{i % 250}",
        timestamp=datetime(2025, 1, 1),
    )


class TestAppend:
    """append keeps arrival order and evicts the oldest past the cap."""

    def test_keeps_order(self):
        log = FindingsLog()
        attacks = [_attack(i) for i in range(3)]
        for a in attacks:
            log.append(a)
        assert log.recent() == attacks
        assert len(log) == 3

    def test_1001st_append_evicts_oldest(self):
        log = FindingsLog()
        attacks = [_attack(i) for i in range(1001)]
        for a in attacks:
            log.append(a)
        assert len(log) == 1000
        assert log.recent() == attacks[1:]

    def test_custom_cap(self):
        log = FindingsLog(max_size=2)
        for i in range(3):
            log.append(_attack(i))
        assert [a.description for a in log.recent()] == ["finding 1", "finding 2"]

    def test_concurrent_appends_all_counted(self):
        log = FindingsLog()

        def worker(start: int):
            for i in range(start, start + 100):
                log.append(_attack(i))

        threads = [threading.Thread(target=worker, args=(n * 100,)) for n in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert len(log) == 500


class TestRecent:
    """recent(limit) returns the newest entries, oldest first."""

    def _log(self, n: int) -> FindingsLog:
        log = FindingsLog()
        for i in range(n):
            log.append(_attack(i))
        return log

    def test_tail(self):
        recent = self._log(5).recent(2)
        assert [a.description for a in recent] == ["finding 3", "finding 4"]

    def test_zero_returns_all(self):
        assert len(self._log(5).recent(0)) == 5

    def test_negative_returns_all(self):
        assert len(self._log(5).recent(-3)) == 5

    def test_larger_than_log_returns_all(self):
        assert len(self._log(5).recent(50)) == 5

    def test_empty(self):
        assert FindingsLog().recent(10) == []

    def test_result_is_copy(self):
        log = self._log(2)
        log.recent().clear()
        assert len(log) == 2
