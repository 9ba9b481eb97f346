"""Configuration for the client time tracker."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env
_env_file = Path(__file__).parent / ".env"
load_dotenv(_env_file)


def _bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


# Data directory - DB, active session state and daemon log
HOME_DIR = Path(os.environ.get("WORKTIME_HOME", Path.home() / ".config" / "worktime")).expanduser()
DB_PATH = Path(os.environ.get("WORKTIME_DB", HOME_DIR / "time-tracking.db")).expanduser()
STATE_FILE = Path(os.environ.get("WORKTIME_STATE_FILE", HOME_DIR / "active-session.state")).expanduser()
LOG_FILE = Path(os.environ.get("WORKTIME_LOG_FILE", HOME_DIR / "daemon.log")).expanduser()
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Client workspaces (provisioned elsewhere; we only check they exist)
WORKSPACE_DIR = Path(os.environ.get("WORKSPACE_DIR", Path.home() / "workspace")).expanduser()
CLIENTS_DIR = WORKSPACE_DIR / "clients"
PERSONAL_CLIENT = "personal"
PERSONAL_DIR = WORKSPACE_DIR / PERSONAL_CLIENT
REQUIRE_WORKSPACE = _bool("REQUIRE_WORKSPACE", "true")

# Poll interval for foreground app sampling (seconds)
POLL_INTERVAL = int(os.environ.get("POLL_INTERVAL", "5"))
# Max seconds to wait for one osascript/xprop call
SAMPLER_TIMEOUT = float(os.environ.get("SAMPLER_TIMEOUT", "2"))

# Daemon supervision
STOP_GRACE_PERIOD = float(os.environ.get("STOP_GRACE_PERIOD", "0.5"))   # SIGTERM -> SIGKILL
DAEMON_STARTUP_TIMEOUT = float(os.environ.get("DAEMON_STARTUP_TIMEOUT", "2"))

# SQLite lock handling
DB_BUSY_TIMEOUT = float(os.environ.get("DB_BUSY_TIMEOUT", "5"))
DB_WRITE_RETRIES = int(os.environ.get("DB_WRITE_RETRIES", "3"))

# Reconciliation
STALE_SESSION_AGE = 24 * 3600              # open longer than this -> swept
STALE_SESSION_DURATION = 8 * 3600          # duration given to swept sessions
ABANDONED_SESSION_MIN_DURATION = 3600      # floor for a dead tracker's estimated end

# Stats
APP_BREAKDOWN_LIMIT = 10
