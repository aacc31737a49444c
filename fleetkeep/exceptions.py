"""FleetKeep exception classes."""

from __future__ import annotations


class FleetKeepError(RuntimeError):
    """Base exception for FleetKeep errors."""


class UserError(FleetKeepError):
    """Errors that should be shown to user without traceback."""

    def __init__(self, message: str, rc: int = 2):
        super().__init__(message)
        self.rc = rc


class ValidationError(UserError):
    """Malformed node field (name, host, port or user)."""


class DuplicateNodeError(UserError):
    """A node with the same name (case-insensitive) already exists."""


class CommandFailureError(FleetKeepError):
    """Command failed - error message already printed, just need to exit.

    This exception is for cases where a command has already printed
    its error message and just needs to signal failure without
    additional output from main().
    """

    def __init__(self, rc: int = 1):
        super().__init__("")
        self.rc = rc


class LockTimeoutError(FleetKeepError):
    """The inventory lock could not be acquired within the retry budget."""


class HostKeyError(FleetKeepError):
    """Host keys could not be scanned for a node."""


class HostKeyChangedError(HostKeyError):
    """The remote host key no longer matches the pinned one."""


class UnsupportedOsError(FleetKeepError):
    """The remote operating system is not one we can bootstrap."""
