"""Linux-specific foreground app detection using X11."""

import re
import subprocess
from typing import Optional

from .monitor import AppSample

_WINDOW_ID_RE = re.compile(r"0x[0-9a-fA-F]+")
# WM_CLASS(STRING) = "app_instance", "AppName"
_WM_CLASS_RE = re.compile(r'"([^"]*)",\s*"([^"]+)"')


def parse_wm_class(xprop_output: str) -> Optional[AppSample]:
    """Build a sample from `xprop WM_CLASS` output: class name is the app, instance is the identifier."""
    for line in xprop_output.strip().split("\n"):
        if "WM_CLASS" not in line:
            continue
        match = _WM_CLASS_RE.search(line)
        if match:
            instance, wm_class = match.group(1), match.group(2)
            return AppSample(app_name=wm_class, app_identifier=instance or None)
    return None


def get_frontmost_app_x11(timeout: float = 1.0) -> Optional[AppSample]:
    """
    Get the application owning the active window using xprop (X11).
    Returns None if not on X11 or if detection fails.
    """
    try:
        result = subprocess.run(
            ["xprop", "-root", "_NET_ACTIVE_WINDOW"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        if result.returncode != 0:
            return None

        match = _WINDOW_ID_RE.search(result.stdout)
        if not match:
            return None

        props = subprocess.run(
            ["xprop", "-id", match.group(0), "WM_CLASS"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        if props.returncode != 0:
            return None
        return parse_wm_class(props.stdout)
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return None
