"""Common plumbing for domain samplers."""

from __future__ import annotations

import logging
from typing import Any

from shheissee.common import CommandRunner, SubprocessRunner
from shheissee.config import MonitorSettings
from shheissee.store import ObservationStore
from shheissee.tools import Which

_DEFAULT_RUNNER = SubprocessRunner()


class Sampler:
    """One domain's sampling pass.

    Subclasses set :attr:`domain` and implement :meth:`_sample`.  Calling
    :meth:`sample` performs a single full pass and returns the new sample,
    or ``None`` if no new sample was produced.  Failures never propagate:
    they are recorded on the domain's health and the previous sample stays
    in the store.

    Args:
        store: Where samples and health are published.
        settings: Timeouts and targets; defaults if omitted.
        runner: Optional CommandRunner for subprocess calls (testing seam).
        which: Optional executable lookup (testing seam).
    """

    domain = ""

    def __init__(
        self,
        store: ObservationStore,
        settings: MonitorSettings | None = None,
        *,
        runner: CommandRunner | None = None,
        which: Which | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or MonitorSettings()
        self._runner = runner or _DEFAULT_RUNNER
        self._which = which
        self._logger = logging.getLogger(type(self).__module__)

    def sample(self) -> Any:
        """Run one sampling pass."""
        self._store.begin(self.domain)
        return self._sample()

    def _sample(self) -> Any:
        raise NotImplementedError

    def _running(self, event: str) -> None:
        self._store.mark_running(self.domain, event)
        self._logger.info(event)

    def _error(self, message: str, event: str | None = None) -> None:
        self._store.mark_error(self.domain, message, event or f"ERROR: {message}")
        self._logger.warning(message)
