"""Execution of trigger bodies.

Provides the Runnable protocol, the shell-script implementation used for
configured actions and services, and per-trigger output prefixing.
"""

from watchrun.execution.output import TriggerOutput
from watchrun.execution.protocol import Runnable, TextSink
from watchrun.execution.script import ShellScript, shutdown_process

__all__ = [
    "Runnable",
    "ShellScript",
    "TextSink",
    "TriggerOutput",
    "shutdown_process",
]
