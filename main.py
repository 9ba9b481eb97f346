#!/usr/bin/env python3
"""
Client time tracker - how long you work on each client, and in which apps.

Usage:
  python main.py start acme        # begin tracking 'acme' (alias: focus)
  python main.py stop              # stop the active session (alias: unfocus)
  python main.py status
  python main.py stats [acme]      # per-client totals, app breakdown for one client
  python main.py cleanup           # repair sessions left open by crashes
  python main.py init              # create the database
"""

import argparse
import logging
import logging.handlers
import sys
import time
from pathlib import Path

import config
from activity_tracker import ForegroundSampler
from errors import TrackerError
from storage import SessionStateStore, Storage
from time_tracker import DaemonLauncher, Reconciler, SessionController, TrackingDaemon
from time_tracker.clients import client_workspace, require_workspace, validate_client_name
from time_tracker.report import app_table, error, format_duration, info, ok, summary_table, warn

logger = logging.getLogger("worktime")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"


def setup_command_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
    )


def setup_daemon_logging(log_file: Path):
    """Daemon has no terminal: log to a rotating file, warnings also to stderr."""
    log_file.parent.mkdir(parents=True, exist_ok=True)
    root = logging.getLogger()
    root.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

    fh = logging.handlers.RotatingFileHandler(
        str(log_file), maxBytes=1024 * 1024, backupCount=3, encoding="utf-8"
    )
    fh.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(fh)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(logging.WARNING)
    sh.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(sh)


def _controller(args) -> SessionController:
    return SessionController(
        storage=Storage(args.db),
        state_store=SessionStateStore(args.state_file),
        launcher=DaemonLauncher(db_path=args.db, state_file=args.state_file),
        workspace_check=require_workspace if config.REQUIRE_WORKSPACE else None,
    )


def cmd_start(args) -> int:
    client = validate_client_name(args.client)
    result = _controller(args).start(client)
    if result.already_tracking:
        warn(f"Already tracking: {result.state.client}")
        return 0
    if result.previous is not None:
        info(f"Stopped previous session: {result.previous.client} ({format_duration(result.previous.duration)})")
    if result.orphans_closed:
        warn(f"Closed {result.orphans_closed} orphaned session(s)")

    print()
    print(f"CLIENT: {client}")
    print("─" * 50)
    print(f"   Workspace: {client_workspace(client)}")
    print("─" * 50)
    ok(f"Started tracking: {client} (session {result.state.session_id})")
    return 0


def cmd_stop(args) -> int:
    result = _controller(args).stop()
    if result is None:
        info("No active session")
        return 0
    if not result.ok:
        warn(f"Failed to update session {result.session_id} in database: {result.error}")
        return 1
    ok(f"Stopped tracking: {result.client} ({format_duration(result.duration)})")
    return 0


def cmd_status(args) -> int:
    status = _controller(args).status_info()
    if status is None:
        info("No active session")
        return 0
    state = status.state
    elapsed = status.elapsed(time.time())
    print(f"Client:   {state.client}")
    print(f"Session:  {state.session_id}")
    print(f"Elapsed:  {format_duration(elapsed) if elapsed is not None else 'N/A'}")
    print(f"Tracker:  pid {state.tracker_pid} ({'running' if status.tracker_alive else 'not running'})")
    if not status.tracker_alive:
        warn("Tracker is not running - run `cleanup` to close this session")
    return 0


def cmd_cleanup(args) -> int:
    storage = Storage(args.db)
    state_store = SessionStateStore(args.state_file)
    if not storage.exists and not state_store.exists():
        info("No database to clean")
        return 0

    report = Reconciler(storage, state_store).run()
    for session_id in report.abandoned:
        ok(f"Cleaned up session {session_id}")
    if report.stale:
        ok(f"Closed {len(report.stale)} old session(s) (estimated {format_duration(config.STALE_SESSION_DURATION)})")
    if report.removed_state and not report.abandoned:
        ok("Removed orphaned state file")
    for err in report.errors:
        warn(err)
    if report.nothing_to_do:
        ok("No cleanup needed")
    return 1 if report.errors else 0


def cmd_stats(args) -> int:
    client = validate_client_name(args.client) if args.client else None
    storage = Storage(args.db)
    if not storage.exists:
        info("No time tracking data")
        return 0

    rows = storage.query_session_summary(client)
    if not rows:
        info("No sessions recorded yet")
        return 0

    print("TIME TRACKING STATISTICS")
    print("━" * 60)
    print()
    print(summary_table(rows))

    if client:
        print()
        print(f"APPLICATION USAGE: {client}")
        print("─" * 80)
        apps = storage.query_app_breakdown(client, config.APP_BREAKDOWN_LIMIT)
        if apps:
            print(app_table(apps))
        else:
            info(f"No application usage data for {client}")
    return 0


def cmd_init(args) -> int:
    storage = Storage(args.db)
    if storage.exists:
        storage.init_schema()
        ok(f"Database already exists: {args.db}")
        return 0
    info("Initializing time tracking database...")
    storage.init_schema()
    ok(f"Time tracking database initialized: {args.db}")
    return 0


def cmd_daemon(args) -> int:
    if not args.session_id.isdigit() or int(args.session_id) <= 0:
        error(f"Invalid session ID: {args.session_id} (must be numeric)")
        return 1
    setup_daemon_logging(args.log_file)
    storage = Storage(args.db)
    if not storage.exists:
        logger.error("Database not found: %s", args.db)
        return 1

    daemon = TrackingDaemon(
        storage=storage,
        state_store=SessionStateStore(args.state_file),
        session_id=int(args.session_id),
        client=args.client,
        sampler=ForegroundSampler(),
        poll_interval=args.poll_interval,
    )
    daemon.install_signal_handlers()
    daemon.publish_pid()
    daemon.run()
    storage.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Track time spent per client, with per-app breakdown")
    p.add_argument("--db", type=Path, default=config.DB_PATH, help="SQLite database path")
    p.add_argument("--state-file", type=Path, default=config.STATE_FILE, help="Active session state file")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("start", aliases=["focus"], help="Start tracking a client")
    s.add_argument("client", help="Client name (kebab-case)")
    s.set_defaults(func=cmd_start)

    s = sub.add_parser("stop", aliases=["unfocus"], help="Stop the active session")
    s.set_defaults(func=cmd_stop)

    s = sub.add_parser("status", help="Show the active session")
    s.set_defaults(func=cmd_status)

    s = sub.add_parser("cleanup", help="Close sessions left open by crashed trackers")
    s.set_defaults(func=cmd_cleanup)

    s = sub.add_parser("stats", aliases=["s"], help="Time per client; app breakdown for one client")
    s.add_argument("client", nargs="?", help="Only this client")
    s.set_defaults(func=cmd_stats)

    s = sub.add_parser("init", help="Create the time tracking database")
    s.set_defaults(func=cmd_init)

    # internal: launched detached by `start`
    s = sub.add_parser("daemon")
    s.add_argument("session_id")
    s.add_argument("--client")
    s.add_argument("--poll-interval", type=int, default=config.POLL_INTERVAL)
    s.add_argument("--log-file", type=Path, default=config.LOG_FILE)
    s.set_defaults(func=cmd_daemon)
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.command != "daemon":
        setup_command_logging(args.verbose)
    try:
        return args.func(args)
    except TrackerError as e:
        error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
