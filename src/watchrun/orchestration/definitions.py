"""Trigger definitions, trigger-name grammar, and configuration validation.

A trigger reference is either `name` or `name:verb`. The only verb is
`stop`, and it only applies to services.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from watchrun.config.schema import WatchConfig
from watchrun.errors import ConfigValidationError
from watchrun.execution.protocol import Runnable
from watchrun.execution.script import ShellScript
from watchrun.matching.resolver import unique

VERB_SEPARATOR = ":"
STOP_VERB = "stop"
SERVICE_VERBS = frozenset({STOP_VERB})


class TriggerKind(Enum):
    """The two kinds of named trigger."""

    ACTION = "action"  # One-shot, expected to exit
    SERVICE = "service"  # Long-running, restarted when it exits


@dataclass(frozen=True)
class TriggerDefinition:
    """A named action or service and the body that runs for it."""

    name: str
    kind: TriggerKind
    body: Runnable


def parse_trigger_name(reference: str) -> tuple[str, str | None]:
    """Split a trigger reference into its name and optional verb.

    >>> parse_trigger_name("server:stop")
    ('server', 'stop')
    >>> parse_trigger_name("build")
    ('build', None)
    """
    name, sep, verb = reference.partition(VERB_SEPARATOR)
    return name, (verb if sep else None)


def _report(errors: list[str], names: list[str], one: str, many: str) -> None:
    """Append a single- or multi-name message, matching the count."""
    if len(names) == 1:
        errors.append(one.format(names[0]))
    elif len(names) > 1:
        errors.append(many.format(", ".join(names)))


def _check_references(config: WatchConfig, references: Iterable[str]) -> list[str]:
    errors: list[str] = []
    unresolved: list[str] = []
    bad_verbs: list[str] = []

    for reference in unique(references):
        name, verb = parse_trigger_name(reference)
        if name in config.actions:
            if verb is not None:
                bad_verbs.append(f"trigger verb '{verb}' not supported for action {name}")
        elif name in config.services:
            if verb is not None and verb not in SERVICE_VERBS:
                bad_verbs.append(f"trigger verb '{verb}' not supported for service {name}")
        else:
            unresolved.append(name)

    _report(
        errors,
        unique(unresolved),
        "the referenced trigger {} does not exist",
        "the following referenced triggers do not exist: {}",
    )
    errors.extend(bad_verbs)
    return errors


def validate_config(config: WatchConfig) -> list[str]:
    """Check a configuration, returning every violation found.

    Checks:
    - every referenced trigger resolves to an action or a service
    - no name is defined as both an action and a service
    - no action or service name contains the verb separator
    - verbs are only used on services, and only known verbs are used
    - every body is a non-empty script

    Returns:
        Human-readable error messages; empty when the config is valid.
    """
    errors = _check_references(config, config.referenced_triggers())

    both = [name for name in config.services if name in config.actions]
    _report(
        errors,
        both,
        "{} is defined as both an action and a service",
        "the following are defined as both actions and services: {}",
    )

    invalid = unique(
        name
        for name in [*config.actions, *config.services]
        if VERB_SEPARATOR in name
    )
    _report(
        errors,
        invalid,
        "{} name invalid; cannot use '" + VERB_SEPARATOR + "'",
        "the following names are invalid because they have a '"
        + VERB_SEPARATOR
        + "' in the name: {}",
    )

    for kind, scripts in (("action", config.actions), ("service", config.services)):
        for name, body in scripts.items():
            if not isinstance(body, str) or not body.strip():
                errors.append(f"{kind} {name} must be a non-empty script")

    return errors


def check_config(config: WatchConfig) -> None:
    """Validate a configuration.

    Raises:
        ConfigValidationError: With every violation, if any were found.
    """
    errors = validate_config(config)
    if errors:
        raise ConfigValidationError(errors)


def compile_triggers(
    config: WatchConfig,
) -> tuple[dict[str, TriggerDefinition], dict[str, TriggerDefinition]]:
    """Build runnable definitions for every action and service.

    Returns:
        (actions, services), each keyed by trigger name.
    """
    settings = config.settings

    def build(name: str, source: str, kind: TriggerKind) -> TriggerDefinition:
        body = ShellScript(
            name,
            source,
            shell=settings.shell,
            interrupt_timeout=settings.interrupt_timeout,
            terminate_timeout=settings.terminate_timeout,
        )
        return TriggerDefinition(name=name, kind=kind, body=body)

    actions = {name: build(name, src, TriggerKind.ACTION) for name, src in config.actions.items()}
    services = {
        name: build(name, src, TriggerKind.SERVICE) for name, src in config.services.items()
    }
    return actions, services
