"""Configuration file loading.

Handles:
- Config file discovery in the working directory
- YAML file parsing
- Environment variable overrides
- Conversion from dict to typed WatchConfig dataclass
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from watchrun.config.schema import (
    FileTriggerConfig,
    LoggingConfig,
    SettingsConfig,
    WatchConfig,
)
from watchrun.errors import ConfigError
from watchrun.logging import LOG_ENV

_log = logging.getLogger("watchrun.config")

CONFIG_FILENAMES = ("watchrun.yaml", ".watchrun.yaml", "watchrun.yml", ".watchrun.yml")

SHELL_ENV = "WATCHRUN_SHELL"


def find_config_file(directory: str | Path | None = None) -> Path | None:
    """Look for a config file with one of the default names.

    Args:
        directory: Directory to search. Defaults to the current directory.

    Returns:
        The first existing candidate, or None.
    """
    base = Path(directory) if directory is not None else Path.cwd()
    for name in CONFIG_FILENAMES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping from a file.

    Raises:
        ConfigError: If the file is missing, unreadable, not valid YAML,
            or does not contain a mapping at the top level.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"config file not found: {path}") from None
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"failed to read {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def env_overrides() -> dict[str, Any]:
    """Build config values from environment variables."""
    overrides: dict[str, Any] = {}

    log_path = os.environ.get(LOG_ENV)
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    shell = os.environ.get(SHELL_ENV)
    if shell:
        overrides.setdefault("settings", {})["shell"] = shell

    return overrides


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _string_list(value: Any, where: str) -> list[str]:
    """Normalize a scalar-or-list YAML value to a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ConfigError(f"'{where}' must be a string or a list of strings")


def _scripts(data: dict[str, Any], key: str) -> dict[str, str]:
    scripts = _section(data, key)
    # Bodies are checked later by validation so all problems are reported together
    return {str(name): body for name, body in scripts.items()}


def dict_to_config(data: dict[str, Any]) -> WatchConfig:
    """Convert a parsed YAML mapping to a typed WatchConfig.

    Raises:
        ConfigError: If a section has the wrong shape.
    """
    rules_data = data.get("file_triggers") or []
    if not isinstance(rules_data, list):
        raise ConfigError("'file_triggers' must be a list")

    rules = []
    for i, rule in enumerate(rules_data):
        if not isinstance(rule, dict):
            raise ConfigError(f"file_triggers[{i}] must be a mapping")
        rules.append(
            FileTriggerConfig(
                include=_string_list(rule.get("include"), f"file_triggers[{i}].include"),
                exclude=_string_list(rule.get("exclude"), f"file_triggers[{i}].exclude"),
                triggers=_string_list(rule.get("trigger"), f"file_triggers[{i}].trigger"),
            )
        )

    settings_data = _section(data, "settings")
    defaults = SettingsConfig()
    try:
        settings = SettingsConfig(
            shell=str(settings_data.get("shell", defaults.shell)),
            debounce=float(settings_data.get("debounce", defaults.debounce)),
            rescan_interval=float(
                settings_data.get("rescan_interval", defaults.rescan_interval)
            ),
            restart_backoff=float(
                settings_data.get("restart_backoff", defaults.restart_backoff)
            ),
            interrupt_timeout=float(
                settings_data.get("interrupt_timeout", defaults.interrupt_timeout)
            ),
            terminate_timeout=float(
                settings_data.get("terminate_timeout", defaults.terminate_timeout)
            ),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value in 'settings': {e}") from e

    log_data = _section(data, "logging")
    verbose = log_data.get("verbose")
    if verbose is not None and not isinstance(verbose, int):
        raise ConfigError("'logging.verbose' must be an integer from 0 to 4")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=verbose,
        file=log_data.get("file"),
    )

    return WatchConfig(
        actions=_scripts(data, "actions"),
        services=_scripts(data, "services"),
        on_start=_string_list(data.get("on_start"), "on_start"),
        file_triggers=rules,
        settings=settings,
        logging=logging_config,
    )


def load_config(path: str | Path | None = None) -> WatchConfig:
    """Load a watchrun config file.

    Args:
        path: Config file. If None, the default names are searched for in
            the current directory.

    Returns:
        Typed WatchConfig with environment overrides applied.

    Raises:
        ConfigError: If no config could be found or it is invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            raise ConfigError(
                "no config file given and none of "
                + ", ".join(CONFIG_FILENAMES)
                + " found in the current directory"
            )

    path = Path(path)
    data = load_yaml_file(path)
    _log.debug("Loaded config from %s", path)

    for key, values in env_overrides().items():
        section = data.get(key)
        data[key] = {**section, **values} if isinstance(section, dict) else values

    return dict_to_config(data)
