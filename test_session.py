"""Session lifecycle: start/stop/status and the one-open-session invariant."""

import pytest

from errors import ClientNotFoundError, DaemonStartError, InvalidClientError, StorageError
from storage import SessionState
from time_tracker import SessionController


def open_sessions(storage):
    return storage.get_open_sessions()


@pytest.mark.parametrize("client", ["acme", "a", "acme-corp", "x1-2y-z3", "personal", "42"])
def test_start_valid_client_opens_one_session(controller, storage, state_store, client):
    result = controller.start(client)
    assert not result.already_tracking
    sessions = open_sessions(storage)
    assert len(sessions) == 1
    assert sessions[0].client == client
    assert state_store.read() == result.state
    assert result.state.session_id == sessions[0].id


@pytest.mark.parametrize("client", [
    "Acme", "ac_me", "-acme", "acme-", "ac--me", "", "acme corp", "acme\n", "../etc", "acme'; DROP TABLE sessions;--",
])
def test_start_invalid_client_rejected_before_any_mutation(controller, storage, state_store, launcher, client):
    with pytest.raises(InvalidClientError) as exc:
        controller.start(client)
    assert repr(client) in str(exc.value)
    assert "kebab-case" in str(exc.value)
    assert open_sessions(storage) == []
    assert state_store.read() is None
    assert launcher.spawned == []


def test_start_fails_before_schema_when_workspace_missing(tmp_path, state_store, processes, launcher, clock):
    from storage import Storage

    def no_workspace(name):
        raise ClientNotFoundError(name, tmp_path / name)

    storage = Storage(tmp_path / "fresh.db")
    c = SessionController(storage, state_store, processes, launcher, workspace_check=no_workspace,
                          clock=clock, sleep=lambda _: None)
    with pytest.raises(ClientNotFoundError):
        c.start("acme")
    assert not storage.exists


def test_start_same_client_twice_is_noop(controller, storage, launcher):
    first = controller.start("acme")
    second = controller.start("acme")
    assert second.already_tracking
    assert second.state == first.state
    assert len(open_sessions(storage)) == 1
    assert len(launcher.spawned) == 1


def test_start_other_client_closes_previous_first(controller, storage, processes, clock):
    acme = controller.start("acme")
    clock.advance(90)
    beta = controller.start("beta")

    assert beta.previous is not None
    assert beta.previous.client == "acme"
    assert beta.previous.duration == 90
    assert acme.state.tracker_pid in processes.terminated

    closed = storage.get_session(acme.state.session_id)
    assert closed.end_time is not None
    assert closed.duration == closed.end_time - closed.start_time >= 0
    assert [s.client for s in open_sessions(storage)] == ["beta"]


def test_start_with_dead_tracker_reconciles(controller, storage, state_store, clock):
    stale = storage.create_session("acme", int(clock()) - 600)
    state_store.write(SessionState("acme", stale, 10, 999))  # 999 not alive

    result = controller.start("acme")
    assert not result.already_tracking
    assert not storage.get_session(stale).is_open
    assert [s.id for s in open_sessions(storage)] == [result.state.session_id]


def test_start_closes_open_session_without_state(controller, storage, clock):
    lost = storage.create_session("acme", int(clock()) - 600)
    result = controller.start("beta")
    assert result.orphans_closed == 1
    assert storage.get_session(lost).duration == 600
    assert len(open_sessions(storage)) == 1


def test_start_uses_spawned_pid_when_daemon_is_slow(storage, state_store, processes, launcher, clock):
    launcher.publish = False
    c = SessionController(storage, state_store, processes, launcher, clock=clock,
                          sleep=lambda _: None, startup_timeout=0.1)
    result = c.start("acme")
    assert result.state.tracker_pid == launcher.spawned[0][2]
    assert state_store.read() == result.state


def test_start_aborts_when_daemon_dies(controller, storage, state_store, launcher):
    launcher.die_on_start = True
    with pytest.raises(DaemonStartError):
        controller.start("acme")
    assert open_sessions(storage) == []
    assert state_store.read() is None


def test_stop_without_session_is_noop(controller, storage, state_store):
    assert controller.stop() is None
    assert state_store.read() is None
    assert storage.query_session_summary() == []


def test_stop_terminates_tracker_and_closes_session(controller, storage, state_store, processes, clock):
    started = controller.start("acme")
    clock.advance(3600)
    result = controller.stop()

    assert result.ok
    assert result.duration == 3600
    assert not processes.is_alive(started.state.tracker_pid)
    assert storage.get_session(started.state.session_id).duration == 3600
    assert state_store.read() is None


def test_stop_clears_state_even_when_database_fails(controller, state_store, monkeypatch):
    controller.start("acme")

    def fail(*args):
        raise StorageError("database is locked")
    monkeypatch.setattr(controller.storage, "close_session", fail)

    result = controller.stop()
    assert not result.ok
    assert "locked" in result.error
    assert state_store.read() is None


def test_stop_with_malformed_state_removes_it(controller, state_store):
    state_store.path.write_text("nonsense")
    assert controller.stop() is None
    assert not state_store.exists()


def test_status(controller, processes, clock):
    assert controller.status() is None
    assert controller.status_info() is None

    started = controller.start("acme")
    clock.advance(125)
    info = controller.status_info()
    assert controller.status() == started.state
    assert info.tracker_alive
    assert info.elapsed(clock()) == 125

    processes.alive.clear()
    assert not controller.status_info().tracker_alive
