"""Background tracker - samples the foreground app every poll and adds the interval to the active session."""

import logging
import os
import signal
import time
from typing import Callable, Optional

import config
from activity_tracker import AppSample, ForegroundSampler, UNKNOWN_SAMPLE
from errors import StorageError
from storage import SessionState, SessionStateStore, Storage

logger = logging.getLogger(__name__)

SLEEP_SLICE = 0.2


class TrackingDaemon:
    """
    Runs until stopped by a signal (or stop()). No internal exit condition:
    a failed sample or a locked database loses one tick, never the loop.
    """

    def __init__(
        self,
        storage: Storage,
        state_store: SessionStateStore,
        session_id: int,
        client: Optional[str] = None,
        sampler: Optional[ForegroundSampler] = None,
        poll_interval: int = config.POLL_INTERVAL,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.storage = storage
        self.state_store = state_store
        self.session_id = session_id
        self.client = client
        self.sampler = sampler or ForegroundSampler()
        self.poll_interval = max(1, int(poll_interval))
        self.clock = clock
        self.ticks = 0
        self.failed_ticks = 0
        self.sleep = sleep
        self.running = True

    def publish_pid(self, pid: Optional[int] = None) -> Optional[SessionState]:
        """
        Write our pid into the state file as TRACKER_PID so stop/cleanup can supervise us.
        Keeps the controller PID of an existing record for this session.
        """
        pid = pid or os.getpid()
        current = self.state_store.read()
        if current and current.session_id == self.session_id:
            state = SessionState(current.client, self.session_id, current.pid, pid)
        elif self.client:
            state = SessionState(self.client, self.session_id, os.getppid(), pid)
        else:
            logger.warning("No state record for session %d and no client given; pid not published", self.session_id)
            return None
        self.state_store.write(state)
        logger.info("Tracker pid %d published for session %d", pid, self.session_id)
        return state

    def _sample(self) -> AppSample:
        try:
            return self.sampler.sample()
        except Exception as e:
            logger.debug("Sample failed: %s", e)
            return UNKNOWN_SAMPLE

    def tick(self) -> bool:
        """One poll: sample, then record poll_interval seconds. Returns False if the write was lost."""
        sample = self._sample()
        self.ticks += 1
        try:
            self.storage.record_usage(
                self.session_id,
                sample.app_name,
                sample.app_identifier,
                self.poll_interval,
                int(self.clock()),
            )
        except StorageError as e:
            self.failed_ticks += 1
            logger.warning("Tick %d: usage not recorded (%s)", self.ticks, e)
            return False
        return True

    def stop(self, _=None, __=None):
        # only flips a flag: safe to call from a signal handler
        self.running = False

    def _wait(self):
        """Sleep one poll interval in short slices, returning early once stopped."""
        remaining = float(self.poll_interval)
        while self.running and remaining > 0:
            step = min(SLEEP_SLICE, remaining)
            self.sleep(step)
            remaining -= step

    def install_signal_handlers(self):
        signal.signal(signal.SIGTERM, self.stop)
        signal.signal(signal.SIGINT, self.stop)

    def run(self):
        logger.info(
            "Tracking session %d (client=%s) every %ds",
            self.session_id, self.client or "?", self.poll_interval,
        )
        while self.running:
            self.tick()
            self._wait()
        logger.info(
            "Tracker for session %d stopped after %d ticks (%d lost)",
            self.session_id, self.ticks, self.failed_ticks,
        )
