"""Shared fixtures: temp database/state file and fake process table, launcher and clock."""

import os

import pytest

from storage import SessionState, SessionStateStore, Storage
from time_tracker import SessionController


class FakeClock:
    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeProcesses:
    """In-memory process table standing in for os.kill."""

    def __init__(self):
        self.alive: set[int] = set()
        self.terminated: list[int] = []

    def is_alive(self, pid: int) -> bool:
        return pid in self.alive

    def terminate(self, pid: int, grace_period: float = 0.5, poll: float = 0.05) -> bool:
        if pid not in self.alive:
            return True
        self.terminated.append(pid)
        self.alive.discard(pid)
        return True


class FakeLauncher:
    """Pretends to spawn the daemon; optionally publishes its pid like the real one does."""

    def __init__(self, processes: FakeProcesses, state_store: SessionStateStore, publish: bool = True):
        self.processes = processes
        self.state_store = state_store
        self.publish = publish
        self.die_on_start = False
        self.next_pid = 5000
        self.spawned: list[tuple[int, str, int]] = []

    def spawn(self, session_id: int, client: str, poll_interval: int) -> int:
        pid = self.next_pid
        self.next_pid += 1
        self.spawned.append((session_id, client, pid))
        if self.die_on_start:
            return pid
        self.processes.alive.add(pid)
        if self.publish:
            self.state_store.write(SessionState(client, session_id, os.getppid(), pid))
        return pid

    def exited(self, pid: int) -> bool:
        return pid not in self.processes.alive


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "time-tracking.db"


@pytest.fixture
def storage(db_path):
    s = Storage(db_path, busy_timeout=0.05, write_retries=2, retry_delay=0.01)
    s.init_schema()
    yield s
    s.close()


@pytest.fixture
def state_store(tmp_path):
    return SessionStateStore(tmp_path / "active-session.state")


@pytest.fixture
def processes():
    return FakeProcesses()


@pytest.fixture
def launcher(processes, state_store):
    return FakeLauncher(processes, state_store)


@pytest.fixture
def controller(storage, state_store, processes, launcher, clock):
    return SessionController(
        storage=storage,
        state_store=state_store,
        processes=processes,
        launcher=launcher,
        clock=clock,
        sleep=lambda _: None,
        startup_timeout=0.1,
    )
