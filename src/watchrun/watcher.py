"""The watcher: startup, watch registration and the run loop."""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from collections.abc import Sequence

from watchrun.config.schema import FileTriggerConfig, WatchConfig
from watchrun.errors import StartupError, WatchError
from watchrun.execution.protocol import TextSink
from watchrun.logging import get_logger
from watchrun.matching.index import TriggerIndex
from watchrun.matching.resolver import watch_dirs
from watchrun.orchestration.debouncer import EventDebouncer
from watchrun.orchestration.definitions import check_config, compile_triggers
from watchrun.orchestration.dispatcher import Dispatcher
from watchrun.orchestration.supervisor import ServiceSupervisor
from watchrun.watching.maintainer import WatchSetMaintainer
from watchrun.watching.notifier import Notifier, WatchdogNotifier

log = get_logger("watcher")

# Signals that shut the watcher down the same way as cancellation
STOP_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


class Watcher:
    """Watches a directory and runs triggers when matching files change.

    Example:
        watcher = Watcher("/project", load_config("watchrun.yaml"))
        await watcher.start()  # Runs until cancelled
    """

    def __init__(
        self,
        directory: str,
        config: WatchConfig,
        stdout: TextSink | None = None,
        stderr: TextSink | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            directory: Root that patterns are resolved against and the
                working directory for every trigger.
            config: Loaded configuration.
            stdout: Sink for trigger output (default: sys.stdout).
            stderr: Sink for trigger errors and status lines (default: sys.stderr).
            notifier: Notification source (default: a WatchdogNotifier).
        """
        self.directory = os.path.abspath(directory)
        self.config = config
        self._stdout = stdout if stdout is not None else sys.stdout
        self._stderr = stderr if stderr is not None else sys.stderr
        self._notifier = notifier
        self._index = TriggerIndex(self.directory, config.file_triggers)
        self._supervisors: dict[str, ServiceSupervisor] = {}
        self.stop_signal: int | None = None

    @property
    def index(self) -> TriggerIndex:
        return self._index

    def validate(self) -> None:
        """Raises ConfigValidationError if the config is invalid."""
        check_config(self.config)

    def watched_paths(self) -> list[str]:
        return self._index.watched_paths()

    def matching_triggers(self, path: str) -> list[FileTriggerConfig]:
        return self._index.matching_triggers(path)

    def triggers_for_changed_paths(self, paths: Sequence[str]) -> list[str]:
        return self._index.triggers_for_changed_paths(paths)

    def _build_dispatcher(self) -> Dispatcher:
        actions, services = compile_triggers(self.config)
        restart_backoff = self.config.settings.restart_backoff
        self._supervisors = {
            name: ServiceSupervisor(name, definition.body, self.directory, restart_backoff)
            for name, definition in services.items()
        }
        return Dispatcher(actions, self._supervisors, self.directory, self._stdout, self._stderr)

    async def _run_startup(self, dispatcher: Dispatcher) -> None:
        for trigger in self.config.on_start:
            log.info("Running startup trigger %s", trigger)
            try:
                await dispatcher.run(trigger)
            except Exception as e:
                raise StartupError(f"startup trigger {trigger} failed: {e}") from e

    def _register(self, notifier: Notifier, paths: list[str]) -> None:
        dirs = watch_dirs(paths)
        if not dirs:
            raise WatchError("no paths to watch")
        for directory in dirs:
            notifier.add(directory)
            log.info("Watching %s", directory)

    def _on_stop_signal(self, task: asyncio.Task[None], signum: int) -> None:
        name = signal.Signals(signum).name
        if self.stop_signal is not None:
            log.info("Received %s, already shutting down", name)
            return
        log.info("Received %s, shutting down", name)
        self.stop_signal = signum
        task.cancel()

    def _install_signal_handlers(self) -> list[int]:
        loop = asyncio.get_running_loop()
        task = asyncio.current_task()
        installed: list[int] = []
        if task is None:
            return installed
        for signum in STOP_SIGNALS:
            try:
                loop.add_signal_handler(signum, self._on_stop_signal, task, signum)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not the main thread, or the loop has no signal support
                log.debug("Cannot handle %s here", signal.Signals(signum).name)
                continue
            installed.append(signum)
        return installed

    async def start(self) -> None:
        """Run startup triggers, then watch until cancelled.

        SIGTERM and SIGHUP stop the watcher like cancellation does: in-flight
        dispatches are cancelled and services shut down before returning.
        The signal received is kept in ``stop_signal``.

        Raises:
            ConfigValidationError: If the config is invalid.
            StartupError: If an on_start trigger failed.
            WatchError: If nothing can be watched or registration failed.
        """
        self.validate()
        dispatcher = self._build_dispatcher()
        notifier = self._notifier if self._notifier is not None else WatchdogNotifier()
        settings = self.config.settings

        tasks: list[asyncio.Task[None]] = []
        notifier_started = False
        self.stop_signal = None
        handled = self._install_signal_handlers()
        try:
            await self._run_startup(dispatcher)

            paths = self.watched_paths()
            notifier.start()
            notifier_started = True
            self._register(notifier, paths)

            maintainer = WatchSetMaintainer(
                self.watched_paths, notifier, initial=paths, interval=settings.rescan_interval
            )
            debouncer = EventDebouncer(
                notifier.events,
                notifier.errors,
                self.triggers_for_changed_paths,
                dispatcher.dispatch,
                window=settings.debounce,
            )
            tasks = [
                asyncio.create_task(maintainer.run(), name="maintainer"),
                asyncio.create_task(debouncer.run(), name="debouncer"),
            ]
            log.info("Watching %d path(s) under %s", len(paths), self.directory)
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            if self.stop_signal is None:
                raise
            current = asyncio.current_task()
            if current is not None:
                current.uncancel()
        finally:
            try:
                await self._cleanup(tasks, notifier if notifier_started else None)
            finally:
                loop = asyncio.get_running_loop()
                for signum in handled:
                    loop.remove_signal_handler(signum)

    async def _cleanup(self, tasks: list[asyncio.Task[None]], notifier: Notifier | None) -> None:
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self._supervisors:
            await asyncio.gather(
                *(s.shutdown() for s in self._supervisors.values()), return_exceptions=True
            )

        if notifier is not None:
            notifier.stop()
        log.debug("Watcher stopped")
