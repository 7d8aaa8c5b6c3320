"""Exceptions raised by mitigation operations."""

from __future__ import annotations


class ShheisseeError(Exception):
    """Base class for all monitor errors."""


class ToolUnavailable(ShheisseeError):
    """No acceptable external tool is installed for the operation."""


class ToolExecutionFailed(ShheisseeError):
    """An external tool ran but exited non-zero or could not be started.

    Args:
        message: Human-readable description of the failure.
        command: The command that was run (after any elevation prefix).
        output: Combined stdout/stderr text of the failed attempt.
    """

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.command = list(command or [])
        self.output = output


class PermissionDenied(ToolExecutionFailed):
    """The tool failed in a permission-shaped way and could not be elevated."""


class StateConflict(ShheisseeError):
    """The address is already in the requested blocked/unblocked state."""
