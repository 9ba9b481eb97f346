"""macOS-specific foreground app detection using AppleScript."""

import subprocess
from typing import Optional

from .monitor import AppSample

_SCRIPT = """
tell application "System Events"
    set frontApp to first application process whose frontmost is true
    set appName to name of frontApp
    try
        set bundleId to bundle identifier of frontApp
        return appName & "|||" & bundleId
    on error
        return appName & "|||"
    end try
end tell
"""


def get_frontmost_app_macos(timeout: float = 2.0) -> Optional[AppSample]:
    """
    Get the frontmost application and its bundle id via System Events.
    Returns None if detection fails.
    """
    try:
        result = subprocess.run(
            ["osascript", "-e", _SCRIPT],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return None
    if result.returncode != 0 or not result.stdout.strip():
        return None

    parts = result.stdout.strip().split("|||", 1)
    app_name = parts[0].strip()
    bundle_id = parts[1].strip() if len(parts) > 1 else ""
    # AppleScript prints "missing value" for apps without a bundle
    if bundle_id == "missing value":
        bundle_id = ""
    if not app_name:
        return None
    return AppSample(app_name=app_name, app_identifier=bundle_id or None)
