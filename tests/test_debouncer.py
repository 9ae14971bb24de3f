"""Tests for change-event batching."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading

import pytest

from watchrun.orchestration import DebounceState, EventDebouncer
from watchrun.watching import ChangeEvent, ChangeOp

WINDOW = 0.05


class Recorder:
    """Stands in for the index and dispatcher."""

    def __init__(self, triggers=("build",), block: bool = False) -> None:
        self.triggers = list(triggers)
        self.block = block
        self.batches: list[list[str]] = []
        self.dispatched: list[list[str]] = []
        self.cancelled = 0
        self.resolve_threads: list[int] = []

    def resolve(self, paths) -> list[str]:
        self.resolve_threads.append(threading.get_ident())
        self.batches.append(list(paths))
        return list(self.triggers) if paths else []

    async def dispatch(self, triggers: list[str]) -> None:
        self.dispatched.append(triggers)
        if self.block:
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                self.cancelled += 1
                raise


def make_debouncer(recorder: Recorder) -> tuple[EventDebouncer, asyncio.Queue, asyncio.Queue]:
    events: asyncio.Queue = asyncio.Queue()
    errors: asyncio.Queue = asyncio.Queue()
    debouncer = EventDebouncer(events, errors, recorder.resolve, recorder.dispatch, window=WINDOW)
    return debouncer, events, errors


@contextlib.asynccontextmanager
async def running(debouncer: EventDebouncer):
    task = asyncio.create_task(debouncer.run())
    try:
        yield task
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


class TestEventDebouncer:
    @pytest.mark.asyncio
    async def test_burst_is_dispatched_once(self):
        recorder = Recorder()
        debouncer, events, _ = make_debouncer(recorder)

        async with running(debouncer):
            for i in range(5):
                events.put_nowait(ChangeEvent(f"/r/src/{i}.go", ChangeOp.WRITE))
            await asyncio.sleep(WINDOW * 4)

        assert recorder.dispatched == [["build"]]
        assert recorder.batches == [[f"/r/src/{i}.go" for i in range(5)]]

    @pytest.mark.asyncio
    async def test_event_after_flush_starts_new_batch(self):
        recorder = Recorder()
        debouncer, events, _ = make_debouncer(recorder)

        async with running(debouncer):
            events.put_nowait(ChangeEvent("/r/a.go", ChangeOp.WRITE))
            await asyncio.sleep(WINDOW * 4)
            events.put_nowait(ChangeEvent("/r/b.go", ChangeOp.CREATE))
            await asyncio.sleep(WINDOW * 4)

        assert recorder.batches == [["/r/a.go"], ["/r/b.go"]]
        assert len(recorder.dispatched) == 2

    @pytest.mark.asyncio
    async def test_window_is_not_extended(self):
        recorder = Recorder()
        debouncer, events, _ = make_debouncer(recorder)

        async with running(debouncer):
            # Keep events coming for well over one window
            for _ in range(8):
                events.put_nowait(ChangeEvent("/r/a.go", ChangeOp.WRITE))
                await asyncio.sleep(WINDOW / 2)
            await asyncio.sleep(WINDOW * 4)

        assert len(recorder.batches) >= 2

    @pytest.mark.asyncio
    async def test_metadata_events_are_ignored(self):
        recorder = Recorder()
        debouncer, events, _ = make_debouncer(recorder)

        async with running(debouncer):
            events.put_nowait(ChangeEvent("/r/a.go", ChangeOp.METADATA))
            await asyncio.sleep(WINDOW * 4)
            assert debouncer.state is DebounceState.IDLE

        assert recorder.batches == []
        assert recorder.dispatched == []

    @pytest.mark.asyncio
    async def test_no_triggers_no_dispatch(self):
        recorder = Recorder(triggers=())
        debouncer, events, _ = make_debouncer(recorder)

        async with running(debouncer):
            events.put_nowait(ChangeEvent("/r/README.md", ChangeOp.WRITE))
            await asyncio.sleep(WINDOW * 4)

        assert recorder.batches == [["/r/README.md"]]
        assert recorder.dispatched == []

    @pytest.mark.asyncio
    async def test_new_dispatch_supersedes_running_one(self):
        recorder = Recorder(block=True)
        debouncer, _, _ = make_debouncer(recorder)

        debouncer.accept(ChangeEvent("/r/a.go", ChangeOp.WRITE))
        first = debouncer.flush()
        await asyncio.sleep(0.01)

        debouncer.accept(ChangeEvent("/r/b.go", ChangeOp.WRITE))
        second = debouncer.flush()
        await asyncio.gather(first, return_exceptions=True)

        assert first.cancelled()
        assert not second.done()
        assert debouncer.current_dispatch is second

        await asyncio.sleep(0.01)
        await debouncer.cancel_dispatches()
        assert second.cancelled()
        assert recorder.cancelled == 2

    @pytest.mark.asyncio
    async def test_empty_flush_leaves_running_dispatch(self):
        recorder = Recorder(block=True)
        debouncer, _, _ = make_debouncer(recorder)

        debouncer.accept(ChangeEvent("/r/a.go", ChangeOp.WRITE))
        first = debouncer.flush()
        await asyncio.sleep(0.01)

        recorder.triggers = []
        debouncer.accept(ChangeEvent("/r/README.md", ChangeOp.WRITE))
        assert debouncer.flush() is None
        await asyncio.sleep(0.01)

        assert not first.done()
        await debouncer.cancel_dispatches()

    @pytest.mark.asyncio
    async def test_accept_opens_window(self):
        debouncer, _, _ = make_debouncer(Recorder())
        assert debouncer.state is DebounceState.IDLE

        debouncer.accept(ChangeEvent("/r/a.go", ChangeOp.WRITE))
        debouncer.accept(ChangeEvent("/r/b.go", ChangeOp.REMOVE))

        assert debouncer.state is DebounceState.ACCUMULATING
        assert debouncer.pending == ["/r/a.go", "/r/b.go"]

        debouncer.flush()
        assert debouncer.state is DebounceState.IDLE
        assert debouncer.pending == []
        await debouncer.cancel_dispatches()

    @pytest.mark.asyncio
    async def test_errors_are_logged_and_loop_continues(self, caplog: pytest.LogCaptureFixture):
        recorder = Recorder()
        debouncer, events, errors = make_debouncer(recorder)

        with caplog.at_level(logging.ERROR, logger="watchrun"):
            async with running(debouncer) as task:
                errors.put_nowait(OSError("queue overflow"))
                await asyncio.sleep(0.01)
                assert not task.done()

                events.put_nowait(ChangeEvent("/r/a.go", ChangeOp.WRITE))
                await asyncio.sleep(WINDOW * 4)

        assert "queue overflow" in caplog.text
        assert recorder.dispatched == [["build"]]

    @pytest.mark.asyncio
    async def test_cancel_stops_in_flight_dispatch(self):
        recorder = Recorder(block=True)
        debouncer, events, _ = make_debouncer(recorder)

        async with running(debouncer):
            events.put_nowait(ChangeEvent("/r/a.go", ChangeOp.WRITE))
            await asyncio.sleep(WINDOW * 4)
            assert recorder.dispatched == [["build"]]

        assert recorder.cancelled == 1

    @pytest.mark.asyncio
    async def test_batches_are_resolved_off_the_loop_thread(self):
        recorder = Recorder()
        debouncer, events, _ = make_debouncer(recorder)

        async with running(debouncer):
            events.put_nowait(ChangeEvent("/r/a.go", ChangeOp.WRITE))
            await asyncio.sleep(WINDOW * 4)

        assert recorder.dispatched == [["build"]]
        assert recorder.resolve_threads
        assert threading.get_ident() not in recorder.resolve_threads

    @pytest.mark.asyncio
    async def test_flush_async_dispatches(self):
        recorder = Recorder()
        debouncer, _, _ = make_debouncer(recorder)

        debouncer.accept(ChangeEvent("/r/a.go", ChangeOp.WRITE))
        task = await debouncer.flush_async()

        assert debouncer.state is DebounceState.IDLE
        assert task is not None
        await task
        assert recorder.dispatched == [["build"]]
