"""Session lifecycle - start, stop and inspect the single active tracking session."""

import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import config
from errors import DaemonStartError, StorageError
from storage import SessionState, SessionStateStore, Storage

from .cleanup import Reconciler
from .clients import validate_client_name
from .process import DaemonLauncher, ProcessControl

logger = logging.getLogger(__name__)

_STARTUP_POLL = 0.05


class Launcher(Protocol):
    def spawn(self, session_id: int, client: str, poll_interval: int) -> int: ...

    def exited(self, pid: int) -> bool: ...


@dataclass
class StopResult:
    """Outcome of stopping a session. error is set when the DB could not be updated."""
    client: str
    session_id: int
    duration: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class StartResult:
    state: SessionState
    already_tracking: bool = False
    previous: Optional[StopResult] = None
    orphans_closed: int = 0


@dataclass
class StatusInfo:
    state: SessionState
    tracker_alive: bool
    start_time: Optional[int] = None

    def elapsed(self, now: float) -> Optional[int]:
        if self.start_time is None:
            return None
        return max(0, int(now) - self.start_time)


class SessionController:
    """
    Owns the active session: the sessions row, the state file and the tracker process.

    Every command is a short-lived invocation; the tracker daemon outlives it
    and is controlled only through its pid (liveness check + signals).
    """

    def __init__(
        self,
        storage: Storage,
        state_store: SessionStateStore,
        processes: Optional[ProcessControl] = None,
        launcher: Optional[Launcher] = None,
        reconciler: Optional[Reconciler] = None,
        workspace_check: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: int = config.POLL_INTERVAL,
        stop_grace_period: float = config.STOP_GRACE_PERIOD,
        startup_timeout: float = config.DAEMON_STARTUP_TIMEOUT,
    ):
        self.storage = storage
        self.state_store = state_store
        self.processes = processes or ProcessControl()
        self.launcher = launcher or DaemonLauncher()
        self.reconciler = reconciler or Reconciler(storage, state_store, self.processes, clock=clock)
        self.workspace_check = workspace_check
        self.clock = clock
        self.sleep = sleep
        self.poll_interval = poll_interval
        self.stop_grace_period = stop_grace_period
        self.startup_timeout = startup_timeout

    def status(self) -> Optional[SessionState]:
        return self.state_store.read()

    def status_info(self) -> Optional[StatusInfo]:
        state = self.status()
        if state is None:
            return None
        start_time = None
        if self.storage.exists:
            try:
                session = self.storage.get_session(state.session_id)
                start_time = session.start_time if session else None
            except StorageError as e:
                logger.debug("Cannot read session %d: %s", state.session_id, e)
        return StatusInfo(state, self.processes.is_alive(state.tracker_pid), start_time)

    def start(self, client: str) -> StartResult:
        client = validate_client_name(client)
        if self.workspace_check:
            self.workspace_check(client)

        self.storage.init_schema()

        previous = None
        state = self.state_store.read()
        if state is not None and self.processes.is_alive(state.tracker_pid):
            if state.client == client:
                return StartResult(state=state, already_tracking=True)
            logger.info("Stopping previous session: %s", state.client)
            previous = self.stop()
            if previous is not None and not previous.ok:
                raise StorageError(f"Could not stop previous session ({previous.client}): {previous.error}")
        elif state is not None or self.state_store.exists():
            report = self.reconciler.run()
            for err in report.errors:
                logger.warning("%s", err)

        now = int(self.clock())
        orphans = self.reconciler.close_orphans(now)

        self.storage.ensure_client(client)
        session_id = self.storage.create_session(client, now)
        tracker_pid = self._launch(session_id, client)

        state = SessionState(client=client, session_id=session_id, pid=os.getpid(), tracker_pid=tracker_pid)
        self.state_store.write(state)
        logger.info("Started session %d for %s (tracker pid %d)", session_id, client, tracker_pid)
        return StartResult(state=state, previous=previous, orphans_closed=len(orphans))

    def _launch(self, session_id: int, client: str) -> int:
        try:
            pid = self.launcher.spawn(session_id, client, self.poll_interval)
        except DaemonStartError:
            self._abort_session(session_id)
            raise

        published = self._wait_for_tracker(session_id, pid)
        if published is not None:
            return published.tracker_pid
        if self.launcher.exited(pid) or not self.processes.is_alive(pid):
            self._abort_session(session_id)
            raise DaemonStartError(f"Tracker daemon (pid {pid}) exited during startup")
        logger.warning("Tracker pid %d did not report in within %.1fs; using spawned pid", pid, self.startup_timeout)
        return pid

    def _wait_for_tracker(self, session_id: int, pid: int) -> Optional[SessionState]:
        attempts = max(1, int(self.startup_timeout / _STARTUP_POLL))
        for _ in range(attempts):
            state = self.state_store.read()
            if state is not None and state.session_id == session_id and state.tracker_pid:
                return state
            if self.launcher.exited(pid):
                return None
            self.sleep(_STARTUP_POLL)
        return None

    def _abort_session(self, session_id: int):
        try:
            self.storage.close_session(session_id, int(self.clock()))
        except StorageError as e:
            logger.warning("Could not close session %d after failed start: %s", session_id, e)

    def stop(self) -> Optional[StopResult]:
        """Stop the tracker and close its session. Returns None if nothing was active."""
        state = self.state_store.read()
        if state is None:
            if self.state_store.exists():
                logger.warning("Removing malformed state file %s", self.state_store.path)
                self.state_store.clear()
            return None

        if not self.processes.terminate(state.tracker_pid, self.stop_grace_period):
            logger.warning("Tracker pid %d still alive after SIGKILL", state.tracker_pid)

        result = StopResult(client=state.client, session_id=state.session_id)
        try:
            if not self.storage.exists:
                raise StorageError(f"Database not found: {self.storage.db_path}")
            self.storage.close_session(state.session_id, int(self.clock()))
            session = self.storage.get_session(state.session_id)
            result.duration = session.duration if session else None
        except StorageError as e:
            result.error = str(e)
        finally:
            self.state_store.clear()
        return result
