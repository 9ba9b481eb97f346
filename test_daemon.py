"""Tracker daemon: per-tick accumulation, failure tolerance, pid publishing."""

import os
import signal

import pytest

from activity_tracker import AppSample
from errors import StorageError
from storage import SessionState
from time_tracker import TrackingDaemon
from time_tracker.daemon import SLEEP_SLICE


class ScriptedSampler:
    def __init__(self, *samples):
        self.samples = list(samples)
        self.calls = 0

    def sample(self):
        self.calls += 1
        item = self.samples.pop(0) if self.samples else AppSample("Idle")
        if isinstance(item, Exception):
            raise item
        return item


def _daemon(storage, state_store, clock, sampler, session_id, **kw):
    return TrackingDaemon(
        storage=storage, state_store=state_store, session_id=session_id,
        sampler=sampler, poll_interval=5, clock=clock, **kw,
    )


def test_tick_accumulates_poll_interval(storage, state_store, clock):
    sid = storage.create_session("acme", int(clock()))
    sampler = ScriptedSampler(AppSample("Editor", "com.editor"), AppSample("Editor"), AppSample("Browser"))
    d = _daemon(storage, state_store, clock, sampler, sid)

    for _ in range(3):
        assert d.tick()
        clock.advance(5)

    apps = {a.app_name: a.total_seconds for a in storage.query_app_breakdown("acme", 10)}
    assert apps == {"Editor": 10, "Browser": 5}
    assert storage.last_seen(sid) == int(clock()) - 5


def test_sampler_failure_is_recorded_as_unknown(storage, state_store, clock):
    sid = storage.create_session("acme", int(clock()))
    d = _daemon(storage, state_store, clock, ScriptedSampler(RuntimeError("no display")), sid)
    assert d.tick()
    assert [a.app_name for a in storage.query_app_breakdown("acme", 10)] == ["Unknown"]


def test_storage_failure_is_swallowed(state_store, clock):
    class BrokenStorage:
        def record_usage(self, *args):
            raise StorageError("database is locked")

    d = _daemon(BrokenStorage(), state_store, clock, ScriptedSampler(AppSample("Editor")), 1)
    assert d.tick() is False
    assert d.tick() is False
    assert (d.ticks, d.failed_ticks) == (2, 2)


def test_run_until_stopped(storage, state_store, clock):
    sid = storage.create_session("acme", int(clock()))
    d = None

    class StopAfterFirst:
        def sample(self):
            d.stop()
            return AppSample("Editor")

    d = _daemon(storage, state_store, clock, StopAfterFirst(), sid, sleep=lambda _: None)
    d.run()
    assert d.ticks == 1
    assert storage.query_app_breakdown("acme", 10)[0].total_seconds == 5


def test_signal_during_wait_ends_loop_without_sleeping_full_interval(storage, state_store, clock):
    sid = storage.create_session("acme", int(clock()))
    slept = []
    d = None

    def sleep(seconds):
        slept.append(seconds)
        if len(slept) == 2:
            d.stop(signal.SIGTERM, None)

    d = _daemon(storage, state_store, clock, ScriptedSampler(AppSample("Editor")), sid, sleep=sleep)
    d.run()
    assert d.ticks == 1
    assert len(slept) == 2
    assert sum(slept) < d.poll_interval


def test_wait_sleeps_one_interval_in_slices(storage, state_store, clock):
    slept = []
    d = _daemon(storage, state_store, clock, ScriptedSampler(), 1, sleep=slept.append)
    d._wait()
    assert max(slept) <= SLEEP_SLICE
    assert sum(slept) == pytest.approx(d.poll_interval)


def test_publish_pid_updates_existing_record(storage, state_store, clock):
    state_store.write(SessionState("acme", 7, pid=111, tracker_pid=0))
    d = _daemon(storage, state_store, clock, ScriptedSampler(), 7)
    d.publish_pid(pid=222)
    assert state_store.read() == SessionState("acme", 7, pid=111, tracker_pid=222)


def test_publish_pid_creates_record_when_absent(storage, state_store, clock):
    d = _daemon(storage, state_store, clock, ScriptedSampler(), 7, client="acme")
    d.publish_pid()
    state = state_store.read()
    assert (state.client, state.session_id, state.tracker_pid) == ("acme", 7, os.getpid())


def test_publish_pid_ignores_other_session_without_client(storage, state_store, clock):
    other = SessionState("beta", 3, 1, 2)
    state_store.write(other)
    d = _daemon(storage, state_store, clock, ScriptedSampler(), 7)
    assert d.publish_pid(pid=222) is None
    assert state_store.read() == other
