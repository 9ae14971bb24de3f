"""watchrun: run actions and supervise services when watched files change."""

__version__ = "0.1.0"

# Public API
from watchrun.config import WatchConfig, load_config
from watchrun.errors import (
    ConfigError,
    ConfigValidationError,
    StartupError,
    TriggerError,
    WatchError,
    WatchrunError,
)
from watchrun.execution import Runnable, ShellScript, TriggerOutput
from watchrun.matching import TriggerIndex
from watchrun.orchestration import DispatchOutcome, Dispatcher, ServiceSupervisor
from watchrun.watcher import Watcher

__all__ = [
    # Main entry point
    "Watcher",
    # Config
    "WatchConfig",
    "load_config",
    # Errors
    "ConfigError",
    "ConfigValidationError",
    "StartupError",
    "TriggerError",
    "WatchError",
    "WatchrunError",
    # Building blocks
    "DispatchOutcome",
    "Dispatcher",
    "Runnable",
    "ServiceSupervisor",
    "ShellScript",
    "TriggerIndex",
    "TriggerOutput",
    "__version__",
]
