"""Logging for watchrun.

Diagnostics go through the standard logging module under the "watchrun"
logger; trigger output (the `[name] ` prefixed lines) never does.

Levels, from quiet to noisy, as selected by -v counts or `logging.verbose`:
    0 error, 1 warning, 2 info (default), 3 verbose, 4 trace

Records go to the file named by `logging.file` or WATCHRUN_LOG, otherwise
to stderr.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from watchrun.config.schema import LoggingConfig

# Custom log levels
TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("watchrun")

LOG_ENV = "WATCHRUN_LOG"

# Indexed by verbosity; anything above the last entry is trace
_VERBOSITY = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

_installed: list[logging.Handler] = []


class _LowercaseLevelFormatter(logging.Formatter):
    """Formatter that emits lowercase level names."""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def verbosity_level(verbose: int) -> int:
    return _VERBOSITY[max(0, min(verbose, len(_VERBOSITY) - 1))]


def parse_level(name: str) -> int:
    """Level for a name such as "debug" or "verbose"; unknown names mean info."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def resolve_level(config: LoggingConfig | None = None, verbose: int | None = None) -> int:
    """Pick the effective log level.

    An explicit verbosity (from the command line) wins over the config file,
    and the config's numeric ``verbose`` wins over its ``level`` string.
    """
    if verbose is not None:
        return verbosity_level(verbose)
    if config is not None:
        if config.verbose is not None:
            return verbosity_level(config.verbose)
        if config.level:
            return parse_level(config.level)
    return logging.INFO


def _open_handler(log_path: str | None) -> logging.Handler:
    if log_path:
        try:
            return logging.FileHandler(os.path.expanduser(log_path), mode="a", encoding="utf-8")
        except OSError as e:
            print(f"[watchrun] Failed to open log file: {e}", file=sys.stderr)
    return logging.StreamHandler(sys.stderr)


def setup_logging(config: LoggingConfig | None = None, verbose: int | None = None) -> None:
    """Initialize logging. Subsequent calls are no-ops until reset_logging().

    Args:
        config: Optional LoggingConfig with level, verbose, and file settings.
        verbose: Optional verbosity override, 0 (errors) to 4 (trace).
    """
    if _installed:
        return

    level = resolve_level(config, verbose)
    logger.setLevel(level)

    handler = _open_handler(config.file if config and config.file else os.environ.get(LOG_ENV))
    handler.setLevel(level)
    # Format: HH:MM:SS level: message
    handler.setFormatter(
        _LowercaseLevelFormatter("%(asctime)s %(levelname)s: %(message)s", datefmt="%H:%M:%S")
    )
    logger.addHandler(handler)
    _installed.append(handler)


def reset_logging() -> None:
    """Remove handlers installed by setup_logging()."""
    while _installed:
        handler = _installed.pop()
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Optional name for a child logger (e.g., "debouncer").
              If None, returns the root watchrun logger.
    """
    if name:
        return logger.getChild(name)
    return logger
