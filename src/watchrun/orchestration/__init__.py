"""Trigger orchestration for watchrun.

Compiles configured actions and services, runs trigger lists in order,
supervises long-running services and batches change events into dispatches.
"""

from watchrun.orchestration.debouncer import DebounceState, EventDebouncer
from watchrun.orchestration.definitions import (
    STOP_VERB,
    TriggerDefinition,
    TriggerKind,
    check_config,
    compile_triggers,
    parse_trigger_name,
    validate_config,
)
from watchrun.orchestration.dispatcher import DispatchOutcome, Dispatcher
from watchrun.orchestration.supervisor import ServiceState, ServiceSupervisor

__all__ = [
    "DebounceState",
    "DispatchOutcome",
    "Dispatcher",
    "EventDebouncer",
    "STOP_VERB",
    "ServiceState",
    "ServiceSupervisor",
    "TriggerDefinition",
    "TriggerKind",
    "check_config",
    "compile_triggers",
    "parse_trigger_name",
    "validate_config",
]
