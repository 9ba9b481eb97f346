"""Foreground app sampler. Linux (X11) and macOS supported; anything else reports Unknown."""

import logging
import platform
from dataclasses import dataclass
from typing import Optional

import config

logger = logging.getLogger(__name__)

UNKNOWN_APP = "Unknown"


@dataclass(frozen=True)
class AppSample:
    """The application in the foreground at one poll."""

    app_name: str
    app_identifier: Optional[str] = None  # macOS bundle id / X11 WM_CLASS instance

    @property
    def is_unknown(self) -> bool:
        return self.app_name == UNKNOWN_APP


UNKNOWN_SAMPLE = AppSample(app_name=UNKNOWN_APP)


class ForegroundSampler:
    """
    Best-effort probe for the frontmost application.
    sample() never raises: any platform failure yields UNKNOWN_SAMPLE so the
    tracking loop keeps attributing time.
    """

    def __init__(self, timeout: float = config.SAMPLER_TIMEOUT, system: Optional[str] = None):
        self.timeout = timeout
        self.system = system or platform.system()

    def _probe(self) -> Optional[AppSample]:
        if self.system == "Darwin":
            from .macos import get_frontmost_app_macos
            return get_frontmost_app_macos(timeout=self.timeout)
        if self.system == "Linux":
            from .linux import get_frontmost_app_x11
            return get_frontmost_app_x11(timeout=self.timeout)
        return None

    def sample(self) -> AppSample:
        try:
            result = self._probe()
        except Exception as e:
            logger.debug("Foreground probe failed: %s", e)
            return UNKNOWN_SAMPLE
        return result or UNKNOWN_SAMPLE
