"""Terminal output helpers for the CLI."""

import sys
from datetime import datetime, timezone
from typing import Optional

from storage import AppTotal, ClientSummary


def ok(msg: str):
    print(f"✓ {msg}")


def info(msg: str):
    print(f"→ {msg}")


def warn(msg: str):
    print(f"⚠ {msg}", file=sys.stderr)


def error(msg: str):
    print(f"✗ {msg}", file=sys.stderr)


def format_duration(seconds: Optional[int]) -> str:
    """Seconds -> 'Xh Ym'."""
    seconds = max(0, int(seconds or 0))
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


def format_date(timestamp: Optional[int]) -> str:
    if timestamp is None:
        return "N/A"
    try:
        return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
    except (ValueError, OverflowError, OSError):
        return "N/A"


def summary_table(rows: list[ClientSummary]) -> str:
    lines = [
        f"{'CLIENT':<15} {'SESSIONS':>10} {'TOTAL TIME':>15} {'AVG SESSION':>15} {'LAST FOCUSED':>20}",
        "─" * 80,
    ]
    for r in rows:
        lines.append(
            f"{r.client:<15} {r.session_count:>10} {format_duration(r.total_seconds):>15} "
            f"{format_duration(r.avg_seconds):>15} {format_date(r.last_start):>20}"
        )
    return "\n".join(lines)


def app_table(rows: list[AppTotal]) -> str:
    lines = [f"{'APPLICATION':<50} {'TIME':>15}", "─" * 70]
    for r in rows:
        lines.append(f"{r.app_name:<50} {format_duration(r.total_seconds):>15}")
    return "\n".join(lines)
