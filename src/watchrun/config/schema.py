"""Configuration schema dataclasses for watchrun.

Defines the structure of a watchrun YAML file. Example:

    actions:
      vet: go vet ./...
      test: go test ./...
    services:
      run: go run ./cmd/server
    on_start:
      - run
    file_triggers:
      - include: ["*.go", "**/*.go"]
        exclude: ["vendor/"]
        trigger:
          - vet
          - test
          - run
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_SHELL = "/bin/sh"
DEFAULT_DEBOUNCE = 0.25  # Fixed batching window, measured from the first event
DEFAULT_RESCAN_INTERVAL = 1.0  # Seconds between watch-set re-resolutions
DEFAULT_RESTART_BACKOFF = 0.15  # Pause before relaunching a crashed service


@dataclass
class FileTriggerConfig:
    """A file trigger rule.

    Rules are evaluated in declaration order; that order decides which
    triggers run first when several rules match the same change.
    """

    include: list[str] = field(default_factory=list)  # Glob patterns, "dir/" = dirs only
    exclude: list[str] = field(default_factory=list)  # Excluded paths and everything below
    triggers: list[str] = field(default_factory=list)  # Trigger names ("name" or "name:verb")


@dataclass
class SettingsConfig:
    """Tuning knobs for the watch loop and process handling."""

    shell: str = DEFAULT_SHELL  # Interpreter used as `<shell> -c <script>`
    debounce: float = DEFAULT_DEBOUNCE
    rescan_interval: float = DEFAULT_RESCAN_INTERVAL
    restart_backoff: float = DEFAULT_RESTART_BACKOFF
    interrupt_timeout: float = 2.0  # Wait after SIGINT before SIGTERM
    terminate_timeout: float = 3.0  # Wait after SIGTERM before SIGKILL


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0..4, overrides level
    file: str | None = None  # Log file path


@dataclass
class WatchConfig:
    """Root configuration object."""

    actions: dict[str, str] = field(default_factory=dict)  # One-shot scripts
    services: dict[str, str] = field(default_factory=dict)  # Long-running scripts
    on_start: list[str] = field(default_factory=list)  # Triggers run before watching
    file_triggers: list[FileTriggerConfig] = field(default_factory=list)
    settings: SettingsConfig = field(default_factory=SettingsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def referenced_triggers(self) -> list[str]:
        """All trigger references, startup steps first, in declaration order."""
        refs = list(self.on_start)
        for rule in self.file_triggers:
            refs.extend(rule.triggers)
        return refs
