"""External tool invocation with transparent privilege elevation.

Every sampler and mitigation action shells out through
:func:`run_with_elevation_fallback`.  A command that fails with
permission-shaped output ("Permission denied", "Operation not permitted",
...) is retried once under ``sudo`` when sudo is installed.

Tool cascades ("try hcitool, else btmgmt, else bluetoothctl") are expressed
as ordered lists of :class:`ToolStrategy` and driven by :func:`run_cascade`.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Callable

from shheissee.common import CommandRunner, SubprocessRunner, _minimal_env

_LOGGER = logging.getLogger(__name__)
_DEFAULT_RUNNER = SubprocessRunner()

ELEVATION_COMMAND = "sudo"

# Exit status used by coreutils ``timeout`` when the wrapped command ran out of time.
TIMEOUT_EXIT_STATUS = 124

PERMISSION_INDICATORS: tuple[str, ...] = (
    "Permission denied",
    "Operation not permitted",
    "Device or resource busy",
    "interface not in monitor mode",
    "no such device",
    "rtl_power: failed to open rtl",
)

Which = Callable[[str], "str | None"]


@dataclass
class ToolResult:
    """Outcome of one (possibly elevated) tool invocation.

    ``error`` is ``None`` when the command exited 0.  ``output`` is the
    combined stdout and stderr text.
    """

    command: list[str]
    output: str = ""
    returncode: int | None = None
    error: str | None = None
    timed_out: bool = False
    elevated: bool = False
    permission_denied: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ToolStrategy:
    """One entry of a tool cascade.

    Args:
        name: Label used in logs and health messages.
        tool: Executable whose presence gates this strategy.
        command: Full argv to run (may start with a ``timeout`` wrapper).
        indicators: Extra failure phrases that should trigger elevation.
        timeout: Subprocess-level bound in seconds.
        timeout_ok: Treat running out of time as a successful (partial) result.
        cleanup: Best-effort command run after this strategy succeeds.
    """

    name: str
    tool: str
    command: tuple[str, ...]
    indicators: tuple[str, ...] = ()
    timeout: float = 15
    timeout_ok: bool = False
    cleanup: tuple[str, ...] | None = None


@dataclass
class CascadeResult:
    """Result of :func:`run_cascade`: the winning strategy, or every failure."""

    strategy: ToolStrategy | None = None
    result: ToolResult | None = None
    failures: list[tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.strategy is not None

    def describe_failures(self) -> str:
        """Join failures as ``name: error; name: error``."""
        return "; ".join(f"{name}: {error}" for name, error in self.failures)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def bounded(seconds: int, *cmd: str) -> tuple[str, ...]:
    """Wrap *cmd* in coreutils ``timeout`` so the tool itself is stopped."""
    return ("timeout", str(seconds), *cmd)


def is_tool_available(name: str, which: Which | None = None) -> bool:
    """Return True if *name* resolves to an executable on PATH."""
    which = which or shutil.which
    return which(name) is not None


def needs_elevation(text: str, extra_indicators: tuple[str, ...] | list[str] = ()) -> bool:
    """Return True if *text* contains a permission-shaped failure phrase."""
    for indicator in (*PERMISSION_INDICATORS, *extra_indicators):
        if indicator in text:
            return True
    return False


def _tool_name(cmd: list[str]) -> str:
    """Name the tool being run, looking past sudo and a ``timeout N`` wrapper."""
    words = list(cmd)
    if words and os.path.basename(words[0]) == ELEVATION_COMMAND:
        words = words[1:]
    if len(words) > 2 and words[0] == "timeout":
        words = words[2:]
    return words[0] if words else "command"


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _invoke(
    cmd: list[str],
    runner: CommandRunner,
    timeout: float | None,
) -> ToolResult:
    """Run *cmd* once, folding every failure mode into a ToolResult."""
    name = _tool_name(cmd)
    try:
        completed = runner.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=_minimal_env(),
        )
    except subprocess.TimeoutExpired as exc:
        return ToolResult(
            command=cmd,
            output=_decode(exc.stdout) + _decode(exc.stderr),
            error=f"{name} timed out after {timeout}s",
            timed_out=True,
        )
    except FileNotFoundError:
        return ToolResult(command=cmd, error=f"{name}: command not found")
    except OSError as exc:
        return ToolResult(command=cmd, error=f"{name}: {exc}")

    output = _decode(completed.stdout) + _decode(completed.stderr)
    if completed.returncode == 0:
        return ToolResult(command=cmd, output=output, returncode=0)
    return ToolResult(
        command=cmd,
        output=output,
        returncode=completed.returncode,
        error=f"{name} exited with status {completed.returncode}",
        timed_out=completed.returncode == TIMEOUT_EXIT_STATUS,
    )


# ---------------------------------------------------------------------------
# Tool invoker
# ---------------------------------------------------------------------------

def run_with_elevation_fallback(
    cmd: list[str] | tuple[str, ...],
    extra_indicators: tuple[str, ...] | list[str] = (),
    *,
    runner: CommandRunner | None = None,
    which: Which | None = None,
    timeout: float | None = 15,
) -> ToolResult:
    """Run *cmd*, retrying once under sudo on a permission-shaped failure.

    The combined output and error text of a failed attempt is matched
    against :data:`PERMISSION_INDICATORS` plus *extra_indicators*.  On a
    match the identical command is re-run prefixed with sudo and that
    attempt's result is returned, success or failure.  If sudo cannot be
    found the original failure is returned unchanged.

    Never raises for command failure; inspect ``ToolResult.error``.
    """
    runner = runner or _DEFAULT_RUNNER
    which = which or shutil.which
    cmd = list(cmd)

    result = _invoke(cmd, runner, timeout)
    if result.ok or result.timed_out:
        return result

    if not needs_elevation(f"{result.output}\n{result.error}", extra_indicators):
        return result

    result.permission_denied = True
    try:
        elevator = which(ELEVATION_COMMAND)
    except OSError as exc:
        _LOGGER.debug("could not look up %s: %s", ELEVATION_COMMAND, exc)
        elevator = None
    if elevator is None:
        _LOGGER.debug("permission error for %s but %s is unavailable", _tool_name(cmd), ELEVATION_COMMAND)
        return result

    _LOGGER.info("Permission error detected, retrying with %s: %s", ELEVATION_COMMAND, " ".join(cmd))
    elevated = _invoke([elevator, *cmd], runner, timeout)
    elevated.elevated = True
    return elevated


def run_cascade(
    strategies: list[ToolStrategy] | tuple[ToolStrategy, ...],
    *,
    runner: CommandRunner | None = None,
    which: Which | None = None,
    sleep: Callable[[float], None] | None = None,
    cleanup_delay: float = 3.0,
) -> CascadeResult:
    """Try *strategies* in order and stop at the first success.

    Strategies whose tool is not installed are skipped and recorded as
    failures.  A strategy with ``timeout_ok`` counts a timeout as success.
    When the winning strategy has a ``cleanup`` command it is run
    best-effort after *cleanup_delay* seconds.
    """
    which = which or shutil.which
    cascade = CascadeResult()

    for strategy in strategies:
        if not is_tool_available(strategy.tool, which):
            cascade.failures.append((strategy.name, f"{strategy.tool} not installed"))
            continue

        result = run_with_elevation_fallback(
            strategy.command,
            strategy.indicators,
            runner=runner,
            which=which,
            timeout=strategy.timeout,
        )
        if result.ok or (result.timed_out and strategy.timeout_ok):
            cascade.strategy = strategy
            cascade.result = result
            if strategy.cleanup:
                if sleep is not None:
                    sleep(cleanup_delay)
                cleanup = run_with_elevation_fallback(
                    strategy.cleanup, runner=runner, which=which, timeout=10,
                )
                if not cleanup.ok:
                    _LOGGER.debug("cleanup for %s failed: %s", strategy.name, cleanup.error)
            return cascade

        _LOGGER.info("%s failed (%s), trying next method", strategy.name, result.error)
        cascade.failures.append((strategy.name, result.error or "failed"))

    return cascade
