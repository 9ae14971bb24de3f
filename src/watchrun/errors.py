"""Exception types raised by watchrun.

Configuration problems surface before the watch loop starts, trigger
problems abort the dispatch they occur in, and everything else is reported
by the component that owns the failure policy.
"""

from __future__ import annotations


class WatchrunError(Exception):
    """Base class for all watchrun errors."""


class ConfigError(WatchrunError):
    """The configuration file is missing, unreadable, or malformed."""


class ConfigValidationError(ConfigError):
    """One or more configuration rules were violated.

    Every violation is collected so the user can fix them in one pass.
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__(str(self))

    def __str__(self) -> str:
        if len(self.errors) == 1:
            return self.errors[0]
        return "invalid configuration:\n" + "\n".join(f"  - {e}" for e in self.errors)


class TriggerError(WatchrunError):
    """A named trigger could not be run."""

    def __init__(self, trigger: str, message: str) -> None:
        self.trigger = trigger
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class UnresolvedTriggerError(TriggerError):
    """No action or service has the requested name."""


class UnsupportedVerbError(TriggerError):
    """A trigger verb is not valid for the kind of trigger it was applied to."""


class ExecutionError(TriggerError):
    """A trigger body could not be executed."""


class ScriptFailedError(ExecutionError):
    """A trigger body ran but exited with a non-zero status."""

    def __init__(self, trigger: str, message: str, returncode: int = 1) -> None:
        self.returncode = returncode
        super().__init__(trigger, message)

    def __str__(self) -> str:
        return f"{self.message} (exit status {self.returncode})"


class ServiceNotRunningError(WatchrunError):
    """stop() was called on a service that is not running."""


class StartupError(WatchrunError):
    """A startup trigger failed; the watch loop was never started."""


class WatchError(WatchrunError):
    """The notification primitive could not be set up."""
