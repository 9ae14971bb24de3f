"""Batching of change events into dispatches."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import Any

from watchrun.config.schema import DEFAULT_DEBOUNCE
from watchrun.logging import TRACE, get_logger
from watchrun.watching.events import ChangeEvent

log = get_logger("debouncer")


class DebounceState(Enum):
    IDLE = "idle"  # Nothing pending
    ACCUMULATING = "accumulating"  # Batch open, flush deadline set
    FLUSH_PENDING = "flush_pending"  # Deadline reached, batch being resolved


class EventDebouncer:
    """Collects changed paths for a fixed window, then dispatches once.

    The window starts with the first content event of a batch and is not
    extended by later events. When it closes, the batch is resolved to a
    trigger list; a non-empty list supersedes (cancels) whatever dispatch
    is still in flight and starts a new one.

    Notifier errors are logged and do not stop the loop.
    """

    def __init__(
        self,
        events: asyncio.Queue[ChangeEvent],
        errors: asyncio.Queue[Exception],
        resolve: Callable[[Sequence[str]], list[str]],
        dispatch: Callable[[list[str]], Awaitable[Any]],
        window: float = DEFAULT_DEBOUNCE,
    ) -> None:
        """Initialize the debouncer.

        Args:
            events: Change events from the notifier.
            errors: Errors from the notifier.
            resolve: Maps a batch of changed paths to ordered triggers.
            dispatch: Runs a trigger list; started as a task per flush.
            window: Seconds from the first event of a batch to its flush.
        """
        self._events = events
        self._errors = errors
        self._resolve = resolve
        self._dispatch = dispatch
        self._window = window

        self._state = DebounceState.IDLE
        self._batch: list[str] = []
        self._deadline: float | None = None

        self._current: asyncio.Task[Any] | None = None
        self._dispatches: set[asyncio.Task[Any]] = set()
        self.flushes = 0

    @property
    def state(self) -> DebounceState:
        return self._state

    @property
    def pending(self) -> list[str]:
        """Paths collected in the open batch."""
        return list(self._batch)

    @property
    def current_dispatch(self) -> asyncio.Task[Any] | None:
        return self._current

    def accept(self, event: ChangeEvent) -> None:
        """Add an event to the batch, opening the window if idle."""
        if not event.op.changes_content:
            return

        log.log(TRACE, "Change %s %s", event.op.value, event.path)
        self._batch.append(event.path)
        if self._deadline is None:
            self._deadline = asyncio.get_running_loop().time() + self._window
            self._state = DebounceState.ACCUMULATING

    def _close_batch(self) -> list[str]:
        self._state = DebounceState.FLUSH_PENDING
        batch, self._batch = self._batch, []
        self._deadline = None
        return batch

    def flush(self) -> asyncio.Task[Any] | None:
        """Close the batch, resolve it in place and dispatch its triggers.

        Returns:
            The new dispatch task, or None if the batch matched nothing.
        """
        batch = self._close_batch()
        try:
            triggers = self._resolve(batch)
        finally:
            self._state = DebounceState.IDLE
        return self._start_dispatch(batch, triggers)

    async def flush_async(self) -> asyncio.Task[Any] | None:
        """Like flush(), but resolves the batch in a worker thread.

        Resolution globs the filesystem; the loop keeps serving output pumps
        and notifier callbacks meanwhile.
        """
        batch = self._close_batch()
        try:
            triggers = await asyncio.to_thread(self._resolve, batch)
        finally:
            self._state = DebounceState.IDLE
        return self._start_dispatch(batch, triggers)

    def _start_dispatch(self, batch: list[str], triggers: list[str]) -> asyncio.Task[Any] | None:
        self.flushes += 1
        if not triggers:
            log.debug("No triggers for %d changed path(s)", len(batch))
            return None

        if self._current is not None and not self._current.done():
            log.debug("Superseding in-flight dispatch")
            self._current.cancel()

        log.info("Running %s", ", ".join(triggers))
        task = asyncio.create_task(self._dispatch(triggers), name="dispatch")
        self._dispatches.add(task)
        task.add_done_callback(self._dispatch_done)
        self._current = task
        return task

    def _dispatch_done(self, task: asyncio.Task[Any]) -> None:
        self._dispatches.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Dispatch error: %s", exc)

    def _timeout(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - asyncio.get_running_loop().time())

    async def run(self) -> None:
        """Process events until cancelled, then cancel in-flight dispatches."""
        loop = asyncio.get_running_loop()
        next_event: asyncio.Task[ChangeEvent] | None = None
        next_error: asyncio.Task[Exception] | None = None

        try:
            while True:
                if next_event is None:
                    next_event = asyncio.create_task(self._events.get())
                if next_error is None:
                    next_error = asyncio.create_task(self._errors.get())

                done, _ = await asyncio.wait(
                    {next_event, next_error},
                    timeout=self._timeout(),
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if next_error in done:
                    log.error("Watch error: %s", next_error.result())
                    next_error = None

                if next_event in done:
                    self.accept(next_event.result())
                    next_event = None

                if self._deadline is not None and loop.time() >= self._deadline:
                    await self.flush_async()
        finally:
            for waiter in (next_event, next_error):
                if waiter is not None:
                    waiter.cancel()
            await self.cancel_dispatches()

    async def cancel_dispatches(self) -> None:
        """Cancel every dispatch still running and wait for them to unwind."""
        tasks = [t for t in self._dispatches if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
