"""SQLite storage for client sessions and per-app usage."""

import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, TypeVar

import config
from errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
    CREATE TABLE IF NOT EXISTS sessions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        client TEXT NOT NULL,
        start_time INTEGER NOT NULL,
        end_time INTEGER,
        duration INTEGER,
        created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
    );

    CREATE INDEX IF NOT EXISTS idx_sessions_client ON sessions(client);
    CREATE INDEX IF NOT EXISTS idx_sessions_start_time ON sessions(start_time);
    CREATE INDEX IF NOT EXISTS idx_sessions_active ON sessions(end_time) WHERE end_time IS NULL;

    CREATE TABLE IF NOT EXISTS applications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        bundle_id TEXT
    );

    CREATE TABLE IF NOT EXISTS app_usage (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id INTEGER NOT NULL,
        application_id INTEGER NOT NULL,
        total_seconds INTEGER NOT NULL DEFAULT 0,
        last_seen INTEGER,
        FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE,
        FOREIGN KEY (application_id) REFERENCES applications(id),
        UNIQUE(session_id, application_id)
    );

    CREATE INDEX IF NOT EXISTS idx_app_usage_session ON app_usage(session_id);

    CREATE TABLE IF NOT EXISTS clients (
        name TEXT PRIMARY KEY,
        created_at INTEGER NOT NULL DEFAULT (strftime('%s', 'now'))
    );
"""


def _ensure_dir(path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)


def _is_lock_error(exc: sqlite3.OperationalError) -> bool:
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


@dataclass
class SessionRecord:
    """One row of the sessions table."""
    id: int
    client: str
    start_time: int
    end_time: Optional[int] = None
    duration: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass
class ClientSummary:
    """Per-client aggregate for the stats view."""
    client: str
    session_count: int
    total_seconds: int
    avg_seconds: int
    last_start: Optional[int]


@dataclass
class AppTotal:
    app_name: str
    total_seconds: int


class Storage:
    """
    Persistent storage for sessions, applications and app usage.

    The daemon writes every poll while stats/cleanup read and write from
    other processes, so every statement goes through SQLite's own locking
    (busy timeout) and lock errors are retried a few times before they
    surface as StorageError.
    """

    def __init__(
        self,
        db_path: Path,
        busy_timeout: float = config.DB_BUSY_TIMEOUT,
        write_retries: int = config.DB_WRITE_RETRIES,
        retry_delay: float = 0.1,
    ):
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self.write_retries = max(1, write_retries)
        self.retry_delay = retry_delay
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def exists(self) -> bool:
        return self.db_path.exists()

    def _get_conn(self, create: bool = False) -> sqlite3.Connection:
        if self._conn is None:
            if not create and not self.db_path.exists():
                raise StorageError(f"Database not found: {self.db_path}")
            try:
                conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout)
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
            except sqlite3.Error as e:
                raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
            self._conn = conn
        return self._conn

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _run(self, op: Callable[[sqlite3.Connection], T], create: bool = False) -> T:
        """Run op inside one transaction, retrying while the database is locked."""
        conn = self._get_conn(create=create)
        attempt = 1
        while True:
            try:
                with conn:
                    return op(conn)
            except sqlite3.OperationalError as e:
                if not _is_lock_error(e) or attempt >= self.write_retries:
                    raise StorageError(f"Database error: {e}") from e
                logger.debug("Database locked (attempt %d/%d), retrying", attempt, self.write_retries)
                time.sleep(self.retry_delay * attempt)
                attempt += 1
            except sqlite3.Error as e:
                raise StorageError(f"Database error: {e}") from e

    def init_schema(self):
        """Create tables and indexes. Safe to call on an existing database."""
        _ensure_dir(self.db_path)
        self._run(lambda conn: conn.executescript(SCHEMA), create=True)

    # -- sessions ---------------------------------------------------------

    def ensure_client(self, name: str):
        """Register a client name; no-op if it is already known."""
        self._run(lambda conn: conn.execute(
            "INSERT OR IGNORE INTO clients (name, created_at) VALUES (?, ?)",
            (name, int(time.time())),
        ))

    def create_session(self, client: str, start_time: int) -> int:
        """Record start of a new open session. Returns session ID."""
        def op(conn: sqlite3.Connection) -> int:
            cur = conn.execute(
                "INSERT INTO sessions (client, start_time) VALUES (?, ?)",
                (client, int(start_time)),
            )
            return cur.lastrowid
        return self._run(op)

    def close_session(self, session_id: int, end_time: int) -> bool:
        """
        Set end_time and duration on an open session.
        An end_time before start_time is clamped to start_time so duration is never negative.
        Returns False if the session was already closed (or does not exist).
        """
        def op(conn: sqlite3.Connection) -> bool:
            cur = conn.execute("""
                UPDATE sessions
                SET end_time = MAX(?, start_time), duration = MAX(?, start_time) - start_time
                WHERE id = ? AND end_time IS NULL
            """, (int(end_time), int(end_time), session_id))
            return cur.rowcount > 0
        return self._run(op)

    def close_session_with_duration(self, session_id: int, duration: int) -> bool:
        """Close an open session as start_time + duration."""
        def op(conn: sqlite3.Connection) -> bool:
            cur = conn.execute("""
                UPDATE sessions SET end_time = start_time + ?, duration = ?
                WHERE id = ? AND end_time IS NULL
            """, (int(duration), int(duration), session_id))
            return cur.rowcount > 0
        return self._run(op)

    def get_session(self, session_id: int) -> Optional[SessionRecord]:
        row = self._run(lambda conn: conn.execute(
            "SELECT id, client, start_time, end_time, duration FROM sessions WHERE id = ?",
            (session_id,),
        ).fetchone())
        return SessionRecord(**dict(row)) if row else None

    def get_open_sessions(self) -> list[SessionRecord]:
        rows = self._run(lambda conn: conn.execute(
            "SELECT id, client, start_time, end_time, duration FROM sessions "
            "WHERE end_time IS NULL ORDER BY start_time"
        ).fetchall())
        return [SessionRecord(**dict(r)) for r in rows]

    def find_stale_open_sessions(self, older_than: int) -> list[int]:
        """IDs of open sessions that started before the given timestamp."""
        rows = self._run(lambda conn: conn.execute(
            "SELECT id FROM sessions WHERE end_time IS NULL AND start_time < ? ORDER BY id",
            (int(older_than),),
        ).fetchall())
        return [r["id"] for r in rows]

    def last_seen(self, session_id: int) -> Optional[int]:
        """Most recent poll timestamp recorded for a session, if any."""
        row = self._run(lambda conn: conn.execute(
            "SELECT MAX(last_seen) AS last_seen FROM app_usage WHERE session_id = ?",
            (session_id,),
        ).fetchone())
        return row["last_seen"] if row else None

    # -- usage ------------------------------------------------------------

    def record_usage(
        self,
        session_id: int,
        app_name: str,
        app_identifier: Optional[str],
        increment_seconds: int,
        observed_at: int,
    ):
        """Add increment_seconds to (session, app) and bump last_seen. App upsert and usage upsert share one transaction."""
        identifier = app_identifier or None

        def op(conn: sqlite3.Connection):
            conn.execute("""
                INSERT INTO applications (name, bundle_id) VALUES (?, ?)
                ON CONFLICT(name) DO UPDATE SET bundle_id = COALESCE(bundle_id, excluded.bundle_id)
            """, (app_name, identifier))
            app_id = conn.execute(
                "SELECT id FROM applications WHERE name = ?", (app_name,)
            ).fetchone()["id"]
            conn.execute("""
                INSERT INTO app_usage (session_id, application_id, total_seconds, last_seen)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(session_id, application_id) DO UPDATE SET
                    total_seconds = total_seconds + excluded.total_seconds,
                    last_seen = excluded.last_seen
            """, (session_id, app_id, int(increment_seconds), int(observed_at)))
        self._run(op)

    def get_application(self, name: str) -> Optional[dict]:
        row = self._run(lambda conn: conn.execute(
            "SELECT id, name, bundle_id FROM applications WHERE name = ?", (name,)
        ).fetchone())
        return dict(row) if row else None

    # -- stats ------------------------------------------------------------

    def query_session_summary(self, client: Optional[str] = None) -> list[ClientSummary]:
        """Sessions grouped by client, most total time first."""
        where = "WHERE client = ?" if client else ""
        params = (client,) if client else ()
        rows = self._run(lambda conn: conn.execute(f"""
            SELECT client,
                   COUNT(*) AS session_count,
                   COALESCE(SUM(duration), 0) AS total_seconds,
                   CAST(COALESCE(AVG(duration), 0) AS INTEGER) AS avg_seconds,
                   MAX(start_time) AS last_start
            FROM sessions {where}
            GROUP BY client
            ORDER BY total_seconds DESC
        """, params).fetchall())
        return [ClientSummary(**dict(r)) for r in rows]

    def query_app_breakdown(self, client: str, limit: int = config.APP_BREAKDOWN_LIMIT) -> list[AppTotal]:
        """Total foreground seconds per app across all of a client's sessions."""
        rows = self._run(lambda conn: conn.execute("""
            SELECT a.name AS app_name, SUM(au.total_seconds) AS total_seconds
            FROM app_usage au
            JOIN applications a ON au.application_id = a.id
            JOIN sessions s ON au.session_id = s.id
            WHERE s.client = ?
            GROUP BY a.name
            ORDER BY total_seconds DESC
            LIMIT ?
        """, (client, limit)).fetchall())
        return [AppTotal(**dict(r)) for r in rows]
