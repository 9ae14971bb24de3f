"""Sequential execution of resolved trigger lists."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Mapping, Sequence
from enum import Enum

from watchrun.errors import (
    ServiceNotRunningError,
    UnresolvedTriggerError,
    UnsupportedVerbError,
)
from watchrun.execution.output import TriggerOutput
from watchrun.execution.protocol import TextSink
from watchrun.logging import get_logger
from watchrun.orchestration.definitions import STOP_VERB, TriggerDefinition, parse_trigger_name
from watchrun.orchestration.supervisor import ServiceSupervisor

log = get_logger("dispatcher")


class DispatchOutcome(Enum):
    """How a dispatch that was not cancelled ended."""

    COMPLETED = "completed"
    FAILED = "failed"


def _cancel_requested() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class Dispatcher:
    """Runs named triggers, routing each to an action or a service.

    Holds no state of its own between dispatches; the services it starts
    belong to their supervisors.
    """

    def __init__(
        self,
        actions: Mapping[str, TriggerDefinition],
        services: Mapping[str, ServiceSupervisor],
        cwd: str,
        stdout: TextSink | None = None,
        stderr: TextSink | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            actions: Action definitions keyed by name.
            services: One supervisor per configured service, keyed by name.
            cwd: Working directory for action bodies.
            stdout: Sink for trigger output (default: sys.stdout).
            stderr: Sink for trigger errors and status lines (default: sys.stderr).
        """
        self._actions = actions
        self._services = services
        self._cwd = cwd
        self._stdout = stdout if stdout is not None else sys.stdout
        self._stderr = stderr if stderr is not None else sys.stderr

    async def run(self, reference: str) -> None:
        """Run a single trigger reference (`name` or `name:verb`).

        Actions run to completion. A service is (re)started in the
        background, or stopped with the `stop` verb.

        Raises:
            UnresolvedTriggerError: If no action or service has the name.
            UnsupportedVerbError: If the verb does not apply to the trigger.
            ExecutionError: If an action body failed.
            asyncio.CancelledError: If cancelled while an action ran.
        """
        name, verb = parse_trigger_name(reference)

        action = self._actions.get(name)
        if action is not None:
            if verb is not None:
                raise UnsupportedVerbError(
                    name, f"trigger verb {verb} not supported for actions"
                )
            await self._run_action(action)
            return

        supervisor = self._services.get(name)
        if supervisor is not None:
            if verb == STOP_VERB:
                self._stop_service(supervisor)
            elif verb is not None:
                raise UnsupportedVerbError(
                    name, f"trigger verb {verb} not supported for services"
                )
            else:
                self._restart_service(supervisor)
            return

        raise UnresolvedTriggerError(name, f"no action or service named {name} found")

    async def _run_action(self, action: TriggerDefinition) -> None:
        out = TriggerOutput(action.name, self._stdout)
        err = TriggerOutput(action.name, self._stderr)
        await action.body.run(self._cwd, out, err)

    def _stop_service(self, supervisor: ServiceSupervisor) -> None:
        try:
            supervisor.stop()
        except ServiceNotRunningError:
            log.debug("Service %s was not running", supervisor.name)

    def _restart_service(self, supervisor: ServiceSupervisor) -> None:
        self._stop_service(supervisor)
        out = TriggerOutput(supervisor.name, self._stdout)
        err = TriggerOutput(supervisor.name, self._stderr)
        supervisor.start(out, err)

    def _status(self, name: str, text: str) -> None:
        self._stderr.write(f"[{name}] {text}\n")
        self._stderr.flush()

    async def dispatch(self, triggers: Sequence[str]) -> DispatchOutcome:
        """Run triggers strictly in order, stopping at the first failure.

        Cancellation is checked before each trigger and honored by running
        action bodies. It is reported on the error sink and re-raised.

        Returns:
            COMPLETED if every trigger ran, FAILED if one failed.
        """
        previous: str | None = None
        for trigger in triggers:
            if _cancel_requested():
                # The cancellation arrived while the previous trigger ran
                log.debug("Dispatch cancelled before %s", trigger)
                if previous is not None:
                    self._status(previous, "CANCELLED")
                raise asyncio.CancelledError()

            log.debug("[%s] STARTING", trigger)
            try:
                await self.run(trigger)
            except asyncio.CancelledError:
                self._status(trigger, "CANCELLED")
                raise
            except Exception as e:
                self._status(trigger, f"FAILED: {e}")
                log.debug("Dispatch aborted at %s", trigger)
                return DispatchOutcome.FAILED
            previous = trigger

        return DispatchOutcome.COMPLETED
