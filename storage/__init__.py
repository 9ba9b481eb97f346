"""Persistence - SQLite session/usage store and the active session state file."""

from .db import AppTotal, ClientSummary, SessionRecord, Storage
from .state import SessionState, SessionStateStore

__all__ = ["Storage", "SessionRecord", "ClientSummary", "AppTotal", "SessionState", "SessionStateStore"]
