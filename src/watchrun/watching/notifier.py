"""Filesystem notifications via watchdog, bridged onto the asyncio loop.

watchdog delivers events on its observer thread. They are translated to
ChangeEvents there and handed to the loop with call_soon_threadsafe, so the
queues are only ever touched from the loop thread.
"""

from __future__ import annotations

import asyncio
import os
import threading
from collections.abc import Callable
from typing import Any, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from watchrun.errors import WatchError
from watchrun.logging import get_logger
from watchrun.matching.resolver import normalize_path
from watchrun.watching.events import ChangeEvent, ChangeOp

log = get_logger("notifier")

# watchdog event_type -> ChangeOp for file events
_FILE_OPS = {
    "created": ChangeOp.CREATE,
    "modified": ChangeOp.WRITE,
    "deleted": ChangeOp.REMOVE,
    "moved": ChangeOp.RENAME,
}

# Directory events that change which entries exist; a directory "modified"
# only means its mtime moved and is reported as METADATA
_DIR_OPS = {
    "created": ChangeOp.CREATE,
    "deleted": ChangeOp.REMOVE,
    "moved": ChangeOp.RENAME,
}


class Notifier(Protocol):
    """What the watch loop needs from a notification source."""

    events: asyncio.Queue[ChangeEvent]
    errors: asyncio.Queue[Exception]

    def add(self, path: str) -> None: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


def _decode(path: str | bytes) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return path


def translate_event(event: FileSystemEvent) -> list[ChangeEvent]:
    """Convert a watchdog event into change events.

    A move yields a RENAME for the source and a CREATE for the destination.
    Open/close notifications, and anything else unrecognized, are METADATA.
    """
    src = normalize_path(_decode(event.src_path))
    ops = _DIR_OPS if event.is_directory else _FILE_OPS
    op = ops.get(event.event_type, ChangeOp.METADATA)

    changes = [ChangeEvent(src, op)]
    if event.event_type == "moved":
        dest = _decode(getattr(event, "dest_path", "") or "")
        if dest:
            changes.append(ChangeEvent(normalize_path(dest), ChangeOp.CREATE))
    return changes


class _ChangeHandler(FileSystemEventHandler):
    """Runs on the observer thread and forwards translated events."""

    def __init__(
        self,
        publish: Callable[[ChangeEvent], None],
        report: Callable[[Exception], None],
    ) -> None:
        super().__init__()
        self._publish = publish
        self._report = report

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            changes = translate_event(event)
        except Exception as e:
            self._report(e)
            return
        for change in changes:
            self._publish(change)


class WatchdogNotifier:
    """Watches individual directories (non-recursively) with watchdog.

    Directories can be added while running. Adding a directory twice is a
    no-op.

    Example:
        notifier = WatchdogNotifier()
        notifier.start()
        notifier.add("/project/src")
        event = await notifier.events.get()
    """

    def __init__(self, observer_factory: Callable[[], Any] = Observer) -> None:
        self.events: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self.errors: asyncio.Queue[Exception] = asyncio.Queue()

        self._observer = observer_factory()
        self._handler = _ChangeHandler(self._publish, self._report)
        self._loop: asyncio.AbstractEventLoop | None = None

        self._watched: dict[str, Any] = {}
        self._lock = threading.Lock()

    @property
    def watched(self) -> frozenset[str]:
        """Directories currently registered."""
        with self._lock:
            return frozenset(self._watched)

    def start(self) -> None:
        """Start the observer thread. Must be called from the event loop."""
        self._loop = asyncio.get_running_loop()
        self._observer.start()
        log.debug("Notifier started")

    def stop(self) -> None:
        """Stop the observer thread and wait for it to exit."""
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join(timeout=5.0)
        log.debug("Notifier stopped")

    def add(self, path: str) -> None:
        """Register a directory.

        Raises:
            WatchError: If path is not a directory or cannot be watched.
        """
        path = normalize_path(path)
        with self._lock:
            if path in self._watched:
                return
            if not os.path.isdir(path):
                raise WatchError(f"cannot watch {path}: not a directory")
            try:
                watch = self._observer.schedule(self._handler, path, recursive=False)
            except OSError as e:
                raise WatchError(f"cannot watch {path}: {e}") from e
            self._watched[path] = watch
        log.debug("Watching %s", path)

    def _publish(self, change: ChangeEvent) -> None:
        self._call_in_loop(self.events.put_nowait, change)

    def _report(self, error: Exception) -> None:
        self._call_in_loop(self.errors.put_nowait, error)

    def _call_in_loop(self, fn: Callable[[Any], None], arg: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(fn, arg)
        except RuntimeError:
            pass  # Loop closed between the check and the call
