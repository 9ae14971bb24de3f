"""Configuration management for watchrun.

Example usage:
    from watchrun.config import load_config

    config = load_config("watchrun.yaml")
    for rule in config.file_triggers:
        print(rule.include, rule.triggers)
"""

from watchrun.config.loader import (
    CONFIG_FILENAMES,
    dict_to_config,
    find_config_file,
    load_config,
)
from watchrun.config.schema import (
    FileTriggerConfig,
    LoggingConfig,
    SettingsConfig,
    WatchConfig,
)

__all__ = [
    "CONFIG_FILENAMES",
    "FileTriggerConfig",
    "LoggingConfig",
    "SettingsConfig",
    "WatchConfig",
    "dict_to_config",
    "find_config_file",
    "load_config",
]
