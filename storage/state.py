"""
Active session state file - which session is running and which process tracks it.

Format (one KEY=value per line, shell-sourceable):

    CLIENT='acme'
    SESSION_ID=42
    PID=1234
    TRACKER_PID=1240

Read by other processes (stop, cleanup) while it may be rewritten, so writes
go to a temp file in the same directory and are renamed into place.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from errors import StateCorruptionError

logger = logging.getLogger(__name__)

_LINE_RE = re.compile(r"^(\w+)='?([^']*)'?$")
_NUMERIC_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class SessionState:
    """The single active session record."""
    client: str
    session_id: int
    pid: int          # controller that started the session
    tracker_pid: int  # background daemon sampling apps

    def to_text(self) -> str:
        return (
            f"CLIENT='{self.client}'\n"
            f"SESSION_ID={self.session_id}\n"
            f"PID={self.pid}\n"
            f"TRACKER_PID={self.tracker_pid}\n"
        )


def parse_state(content: str) -> SessionState:
    """Parse state file text. Raises StateCorruptionError if required fields are missing or not numeric."""
    fields: dict[str, str] = {}
    for line in content.splitlines():
        match = _LINE_RE.match(line.strip())
        if match:
            fields[match.group(1)] = match.group(2)

    client = fields.get("CLIENT", "")
    if not client:
        raise StateCorruptionError("missing CLIENT")
    for key in ("SESSION_ID", "TRACKER_PID"):
        if not _NUMERIC_RE.match(fields.get(key, "")):
            raise StateCorruptionError(f"invalid {key}: {fields.get(key)!r}")
    pid = fields.get("PID", "0")

    state = SessionState(
        client=client,
        session_id=int(fields["SESSION_ID"]),
        pid=int(pid) if _NUMERIC_RE.match(pid) else 0,
        tracker_pid=int(fields["TRACKER_PID"]),
    )
    if state.session_id <= 0:
        raise StateCorruptionError(f"invalid SESSION_ID: {state.session_id}")
    return state


class SessionStateStore:
    """Single-slot durable record of the active session."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Optional[SessionState]:
        """Return the active session, or None if there is none or the file is unreadable."""
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read state file %s: %s", self.path, e)
            return None
        try:
            return parse_state(content)
        except StateCorruptionError as e:
            logger.warning("Ignoring malformed state file %s: %s", self.path, e)
            return None

    def write(self, state: SessionState):
        """Replace the record atomically (temp file + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".state-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(state.to_text())
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise

    def clear(self):
        """Remove the record; no-op when absent."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
