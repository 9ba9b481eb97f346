"""Process supervision for the tracker daemon: liveness, signals, detached launch."""

import logging
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Optional

from errors import DaemonStartError, ProcessControlError

logger = logging.getLogger(__name__)

# main.py sits next to this package both in a checkout and in site-packages
MAIN_SCRIPT = Path(__file__).resolve().parent.parent / "main.py"


class ProcessControl:
    """pid -> alive, pid + signal -> best-effort delivery."""

    def is_alive(self, pid: int) -> bool:
        if not pid or pid <= 0:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # exists, owned by someone else
            return True
        return True

    def send_signal(self, pid: int, sig: int):
        try:
            os.kill(pid, sig)
        except OSError as e:
            raise ProcessControlError(pid, e.strerror or str(e)) from e

    def terminate(self, pid: int, grace_period: float = 0.5, poll: float = 0.05) -> bool:
        """
        SIGTERM, then SIGKILL if still alive after grace_period.
        Returns True once the process is gone. A failed delivery counts as
        success: the process is not running either way.
        """
        if not self.is_alive(pid):
            return True
        try:
            self.send_signal(pid, signal.SIGTERM)
        except ProcessControlError as e:
            logger.debug("%s", e)
            return True

        deadline = time.monotonic() + grace_period
        while time.monotonic() < deadline:
            if not self.is_alive(pid):
                return True
            time.sleep(poll)

        if self.is_alive(pid):
            logger.debug("pid %d ignored SIGTERM, sending SIGKILL", pid)
            try:
                self.send_signal(pid, signal.SIGKILL)
            except ProcessControlError as e:
                logger.debug("%s", e)
        return not self.is_alive(pid)


class DaemonLauncher:
    """Starts `main.py daemon` detached so it outlives the calling command."""

    def __init__(
        self,
        db_path: Optional[Path] = None,
        state_file: Optional[Path] = None,
        python: str = sys.executable,
        script: Path = MAIN_SCRIPT,
    ):
        self.db_path = db_path
        self.state_file = state_file
        self.python = python
        self.script = Path(script)
        self._procs: dict[int, subprocess.Popen] = {}

    def command(self, session_id: int, client: str, poll_interval: int) -> list[str]:
        cmd = [self.python, str(self.script)]
        if self.db_path:
            cmd += ["--db", str(self.db_path)]
        if self.state_file:
            cmd += ["--state-file", str(self.state_file)]
        return cmd + [
            "daemon", str(session_id),
            "--client", client,
            "--poll-interval", str(poll_interval),
        ]

    def spawn(self, session_id: int, client: str, poll_interval: int) -> int:
        cmd = self.command(session_id, client, poll_interval)
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
                close_fds=True,
            )
        except OSError as e:
            raise DaemonStartError(f"Cannot launch tracker daemon: {e}") from e
        self._procs[proc.pid] = proc
        logger.debug("Spawned tracker pid %d: %s", proc.pid, " ".join(cmd))
        return proc.pid

    def exited(self, pid: int) -> bool:
        """True if a daemon spawned by this launcher has already exited."""
        proc = self._procs.get(pid)
        return proc is not None and proc.poll() is not None
