"""Activity tracking - which application is in the foreground."""

from .monitor import ForegroundSampler, AppSample, UNKNOWN_APP, UNKNOWN_SAMPLE

__all__ = ["ForegroundSampler", "AppSample", "UNKNOWN_APP", "UNKNOWN_SAMPLE"]
