"""
Reconciliation of tracking state left behind by crashes and killed processes.

Two passes, both idempotent:
  1. State file points at a dead tracker: close that session at an end time
     estimated from its app usage, then drop the state file.
  2. Any session still open after STALE_SESSION_AGE is closed with a flat
     STALE_SESSION_DURATION, whether or not a state file ever pointed at it.
The session of a live tracker is never touched.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import config
from errors import StorageError
from storage import SessionState, SessionStateStore, Storage

from .process import ProcessControl

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    abandoned: list[int] = field(default_factory=list)
    stale: list[int] = field(default_factory=list)
    removed_state: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def cleaned(self) -> int:
        return len(self.abandoned) + len(self.stale)

    @property
    def nothing_to_do(self) -> bool:
        return not (self.cleaned or self.removed_state or self.errors)


def estimate_end_time(
    storage: Storage,
    session_id: int,
    now: int,
    min_duration: int = config.ABANDONED_SESSION_MIN_DURATION,
) -> int:
    """
    Best guess for when an abandoned session really ended:
    max(last app usage, start + min_duration), never past now and never before start.
    Falls back to now if the session row can't be read.
    """
    try:
        session = storage.get_session(session_id)
        last_seen = storage.last_seen(session_id)
    except StorageError as e:
        logger.warning("Cannot estimate end of session %d: %s", session_id, e)
        return now
    if session is None:
        return now
    floor = session.start_time + min_duration
    estimate = max(last_seen, floor) if last_seen is not None else floor
    return max(session.start_time, min(estimate, now))


class Reconciler:
    """Repairs orphaned state records, dead trackers and sessions left open for too long."""

    def __init__(
        self,
        storage: Storage,
        state_store: SessionStateStore,
        processes: Optional[ProcessControl] = None,
        clock: Callable[[], float] = time.time,
        stale_after: int = config.STALE_SESSION_AGE,
        stale_duration: int = config.STALE_SESSION_DURATION,
        min_abandoned_duration: int = config.ABANDONED_SESSION_MIN_DURATION,
    ):
        self.storage = storage
        self.state_store = state_store
        self.processes = processes or ProcessControl()
        self.clock = clock
        self.stale_after = stale_after
        self.stale_duration = stale_duration
        self.min_abandoned_duration = min_abandoned_duration

    def _live_state(self) -> Optional[SessionState]:
        state = self.state_store.read()
        if state and self.processes.is_alive(state.tracker_pid):
            return state
        return None

    def run(self) -> CleanupReport:
        report = CleanupReport()
        now = int(self.clock())
        state = self.state_store.read()

        if state is None and self.state_store.exists():
            logger.info("Removing malformed state file %s", self.state_store.path)
            self.state_store.clear()
            report.removed_state = True

        if not self.storage.exists:
            if state is not None:
                self.state_store.clear()
                report.removed_state = True
            return report

        live_session: Optional[int] = None
        if state is not None:
            if self.processes.is_alive(state.tracker_pid):
                live_session = state.session_id
            else:
                self._close_abandoned(state, now, report)

        self._sweep_stale(now, live_session, report)
        return report

    def _close_abandoned(self, state: SessionState, now: int, report: CleanupReport):
        logger.info("Stale session %d (%s): tracker pid %d is gone", state.session_id, state.client, state.tracker_pid)
        end_time = estimate_end_time(self.storage, state.session_id, now, self.min_abandoned_duration)
        try:
            closed = self.storage.close_session(state.session_id, end_time)
        except StorageError as e:
            report.errors.append(f"Failed to close session {state.session_id}: {e}")
            return
        self.state_store.clear()
        report.removed_state = True
        if closed:
            report.abandoned.append(state.session_id)

    def _sweep_stale(self, now: int, live_session: Optional[int], report: CleanupReport):
        try:
            stale = self.storage.find_stale_open_sessions(now - self.stale_after)
        except StorageError as e:
            report.errors.append(f"Failed to find old sessions: {e}")
            return
        for session_id in stale:
            if session_id == live_session:
                continue
            try:
                if self.storage.close_session_with_duration(session_id, self.stale_duration):
                    report.stale.append(session_id)
            except StorageError as e:
                report.errors.append(f"Failed to close old session {session_id}: {e}")

    def close_orphans(self, now: Optional[int] = None) -> list[int]:
        """
        Close open sessions that no live tracker owns, at their estimated end.
        Used before opening a new session so at most one is ever open.
        """
        now = int(self.clock()) if now is None else now
        live = self._live_state()
        closed = []
        for session in self.storage.get_open_sessions():
            if live and session.id == live.session_id:
                continue
            end_time = estimate_end_time(self.storage, session.id, now, self.min_abandoned_duration)
            if self.storage.close_session(session.id, end_time):
                logger.warning("Closed orphaned session %d (%s)", session.id, session.client)
                closed.append(session.id)
        return closed
