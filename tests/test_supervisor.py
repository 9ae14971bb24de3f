"""Tests for service supervision."""

from __future__ import annotations

import asyncio
import io

import pytest

from watchrun.errors import ServiceNotRunningError
from watchrun.orchestration import ServiceState, ServiceSupervisor


class CountingBody:
    """Blocks until cancelled and tracks how many copies run at once."""

    def __init__(self) -> None:
        self.active = 0
        self.max_active = 0
        self.started = 0
        self.cancelled = 0

    async def run(self, cwd, stdout, stderr) -> None:
        self.started += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.active -= 1


class ExitingBody:
    """Exits right away, optionally with an error."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.started = 0

    async def run(self, cwd, stdout, stderr) -> None:
        self.started += 1
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error


def sinks():
    return io.StringIO(), io.StringIO()


async def wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


class TestServiceSupervisor:
    @pytest.mark.asyncio
    async def test_start_runs_body(self):
        body = CountingBody()
        supervisor = ServiceSupervisor("srv", body, "/work", restart_backoff=0.01)

        supervisor.start(*sinks())
        assert supervisor.is_running
        await wait_for(lambda: body.active == 1)
        assert supervisor.state is ServiceState.RUNNING

        await supervisor.shutdown()
        assert body.active == 0

    @pytest.mark.asyncio
    async def test_at_most_one_generation(self):
        body = CountingBody()
        supervisor = ServiceSupervisor("srv", body, "/work", restart_backoff=0.02)

        for _ in range(3):
            supervisor.start(*sinks())
        await asyncio.sleep(0.2)

        assert body.max_active == 1
        assert body.active == 1
        assert supervisor.state is ServiceState.RUNNING
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_restart_waits_for_previous_generation(self):
        body = CountingBody()
        supervisor = ServiceSupervisor("srv", body, "/work", restart_backoff=0.02)

        supervisor.start(*sinks())
        await wait_for(lambda: body.active == 1)
        supervisor.start(*sinks())
        await wait_for(lambda: body.started == 2)

        assert body.cancelled == 1
        assert body.max_active == 1
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_crashed_body_is_relaunched(self):
        body = ExitingBody(RuntimeError("crash"))
        supervisor = ServiceSupervisor("srv", body, "/work", restart_backoff=0.01)

        supervisor.start(*sinks())
        await wait_for(lambda: body.started >= 3)
        assert supervisor.is_running

        supervisor.stop()
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_clean_exit_is_relaunched(self):
        body = ExitingBody()
        supervisor = ServiceSupervisor("srv", body, "/work", restart_backoff=0.01)

        supervisor.start(*sinks())
        await wait_for(lambda: body.started >= 2)
        assert supervisor.launches >= 2

        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_stop_cancels_body(self):
        body = CountingBody()
        supervisor = ServiceSupervisor("srv", body, "/work", restart_backoff=0.01)
        supervisor.start(*sinks())
        await wait_for(lambda: body.active == 1)

        supervisor.stop()

        assert supervisor.state is ServiceState.STOPPED
        await wait_for(lambda: body.active == 0)
        assert body.cancelled == 1
        await asyncio.sleep(0.05)
        assert body.started == 1

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self):
        supervisor = ServiceSupervisor("srv", CountingBody(), "/work")
        with pytest.raises(ServiceNotRunningError, match="srv"):
            supervisor.stop()

    @pytest.mark.asyncio
    async def test_stop_twice(self):
        body = CountingBody()
        supervisor = ServiceSupervisor("srv", body, "/work", restart_backoff=0.01)
        supervisor.start(*sinks())
        await wait_for(lambda: body.active == 1)

        supervisor.stop()
        with pytest.raises(ServiceNotRunningError):
            supervisor.stop()
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_stop_before_launch_prevents_launch(self):
        body = CountingBody()
        supervisor = ServiceSupervisor("srv", body, "/work", restart_backoff=0.01)
        supervisor.start(*sinks())
        await wait_for(lambda: body.active == 1)

        supervisor.start(*sinks())  # Waits for the old generation's grace period
        await asyncio.sleep(0)
        supervisor.stop()
        await asyncio.sleep(0.1)

        assert body.started == 1
        assert supervisor.state is ServiceState.STOPPED
        await supervisor.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_when_stopped(self):
        supervisor = ServiceSupervisor("srv", CountingBody(), "/work")
        await supervisor.shutdown()
        assert supervisor.state is ServiceState.STOPPED
