"""Filesystem watching for watchrun."""

from watchrun.watching.events import ChangeEvent, ChangeOp
from watchrun.watching.maintainer import WatchSetMaintainer
from watchrun.watching.notifier import Notifier, WatchdogNotifier, translate_event

__all__ = [
    "ChangeEvent",
    "ChangeOp",
    "Notifier",
    "WatchSetMaintainer",
    "WatchdogNotifier",
    "translate_event",
]
