"""Client time tracking - session lifecycle, tracker daemon and crash recovery."""

from .cleanup import CleanupReport, Reconciler
from .daemon import TrackingDaemon
from .process import DaemonLauncher, ProcessControl
from .session import SessionController, StartResult, StatusInfo, StopResult

__all__ = [
    "SessionController", "StartResult", "StopResult", "StatusInfo",
    "TrackingDaemon", "Reconciler", "CleanupReport",
    "ProcessControl", "DaemonLauncher",
]
