"""Errors raised by the time tracker. Anything deriving from TrackerError exits the CLI with code 1."""

from pathlib import Path
from typing import Optional


class TrackerError(Exception):
    """Base class for tracker failures shown to the user."""


class InvalidClientError(TrackerError):
    """Client name is not a kebab-case slug."""

    def __init__(self, client: str):
        self.client = client
        super().__init__(
            f"Invalid client name: {client!r} "
            "(must be kebab-case: lowercase letters and digits joined by single hyphens, e.g. 'acme-corp')"
        )


class ClientNotFoundError(TrackerError):
    """Client has no provisioned workspace."""

    def __init__(self, client: str, path: Optional[Path] = None):
        self.client = client
        self.path = path
        where = f" ({path})" if path else ""
        super().__init__(f"Client not found: {client}{where}. Create its workspace first.")


class StorageError(TrackerError):
    """Database missing, locked beyond the retry budget, or schema missing."""


class StateCorruptionError(TrackerError):
    """Active session state file could not be parsed. Readers treat this as 'no active session'."""


class ProcessControlError(TrackerError):
    """A signal could not be delivered (usually: the process is already gone)."""

    def __init__(self, pid: int, reason: str):
        self.pid = pid
        super().__init__(f"Cannot signal pid {pid}: {reason}")


class DaemonStartError(TrackerError):
    """Tracker daemon could not be launched or died before it reported in."""
