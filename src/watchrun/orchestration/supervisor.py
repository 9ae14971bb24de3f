"""Exclusive lifecycle management for long-running services."""

from __future__ import annotations

import asyncio
from enum import Enum

from watchrun.config.schema import DEFAULT_RESTART_BACKOFF
from watchrun.errors import ServiceNotRunningError
from watchrun.execution.protocol import Runnable, TextSink
from watchrun.logging import get_logger

log = get_logger("supervisor")


class ServiceState(Enum):
    """Lifecycle state of a supervised service."""

    STOPPED = "stopped"  # No generation running or requested
    STARTING = "starting"  # Requested, waiting for the previous generation to unwind
    RUNNING = "running"  # A generation owns the lock and is (re)launching the body


class _Generation:
    """Cancellation handle for one run of a service's restart loop."""

    def __init__(self) -> None:
        self.cancelled = False
        self.body_task: asyncio.Task[None] | None = None

    def cancel(self) -> None:
        self.cancelled = True
        if self.body_task is not None and not self.body_task.done():
            self.body_task.cancel()


class ServiceSupervisor:
    """Keeps at most one generation of a service alive and restarts it on exit.

    A generation is one pass through the restart loop: the body is launched,
    and whenever it exits for any reason other than cancellation it is
    relaunched after a short backoff. Stopping cancels the body and ends the
    loop, which waits out one more backoff as a grace period before
    releasing the lock so the next generation starts on a clean slate.

    Generations started with start() run in tasks owned by the supervisor,
    so cancelling the caller does not stop the service.

    Example:
        supervisor = ServiceSupervisor("server", ShellScript("server", "./serve"), "/app")
        supervisor.start(sys.stdout, sys.stderr)
        ...
        supervisor.stop()
    """

    def __init__(
        self,
        name: str,
        body: Runnable,
        cwd: str,
        restart_backoff: float = DEFAULT_RESTART_BACKOFF,
    ) -> None:
        """Initialize the supervisor.

        Args:
            name: Service name, used for logging.
            body: What to run for each launch.
            cwd: Working directory for the body.
            restart_backoff: Seconds to wait before a relaunch, and after
                the loop ends.
        """
        self.name = name
        self._body = body
        self._cwd = cwd
        self._restart_backoff = restart_backoff

        self._lock = asyncio.Lock()
        self._state = ServiceState.STOPPED
        self._generation: _Generation | None = None

        # Bumped on every start/stop request; a run that waited for the lock
        # only launches if no newer request arrived meanwhile
        self._request = 0

        self._tasks: set[asyncio.Task[None]] = set()
        self.launches = 0

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_running(self) -> bool:
        """True while a generation is running or about to start."""
        return self._state is not ServiceState.STOPPED

    def _cancel_current(self) -> None:
        if self._generation is not None:
            self._generation.cancel()
            self._generation = None

    def start(self, stdout: TextSink, stderr: TextSink) -> asyncio.Task[None]:
        """Start the service in the background, replacing any running generation.

        The current generation is cancelled immediately; the new one waits
        for the lock so the old loop has fully exited before the new body
        launches.

        Returns:
            The task running the new generation's restart loop.
        """
        self._request += 1
        request = self._request
        self._cancel_current()
        self._state = ServiceState.STARTING

        task = asyncio.create_task(
            self._run(request, stdout, stderr), name=f"service:{self.name}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, request: int, stdout: TextSink, stderr: TextSink) -> None:
        async with self._lock:
            if request != self._request:
                log.debug("Start of %s superseded before launch", self.name)
                return

            generation = _Generation()
            self._generation = generation
            self._state = ServiceState.RUNNING
            try:
                await self._restart_loop(generation, stdout, stderr)
            finally:
                if self._generation is generation:
                    self._generation = None
                    self._state = ServiceState.STOPPED

    async def _restart_loop(
        self, generation: _Generation, stdout: TextSink, stderr: TextSink
    ) -> None:
        while not generation.cancelled:
            self.launches += 1
            log.info("Starting service %s", self.name)
            generation.body_task = asyncio.create_task(
                self._body.run(self._cwd, stdout, stderr)
            )
            try:
                await generation.body_task
            except asyncio.CancelledError:
                if not generation.cancelled:
                    # The loop itself is being cancelled (shutdown)
                    raise
                break
            except Exception as e:
                log.warning("Service %s exited: %s", self.name, e)
            else:
                log.warning("Service %s exited", self.name)

            if generation.cancelled:
                break
            await asyncio.sleep(self._restart_backoff)

        # Grace period for the stopped body to clean up
        await asyncio.sleep(self._restart_backoff)
        log.info("Service %s stopped", self.name)

    def stop(self) -> None:
        """Stop the service without waiting for it to exit.

        Raises:
            ServiceNotRunningError: If the service is not running.
        """
        if self._state is ServiceState.STOPPED:
            raise ServiceNotRunningError(f"service {self.name} is not running")

        log.debug("Stopping service %s", self.name)
        self._request += 1
        self._cancel_current()
        self._state = ServiceState.STOPPED

    async def shutdown(self) -> None:
        """Stop the service and wait for every generation to finish.

        Stopped generations exit on their own once the body has shut down;
        cancelling this call cancels them outright.
        """
        try:
            self.stop()
        except ServiceNotRunningError:
            pass
        tasks = list(self._tasks)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
