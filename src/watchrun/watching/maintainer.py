"""Periodic growth of the watch set as new files appear."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable

from watchrun.config.schema import DEFAULT_RESCAN_INTERVAL
from watchrun.errors import WatchError
from watchrun.logging import get_logger
from watchrun.matching.resolver import watch_dirs
from watchrun.watching.notifier import Notifier

log = get_logger("maintainer")


class WatchSetMaintainer:
    """Re-resolves the watch set on a fixed tick and registers new directories.

    The set of seen paths only grows. Readers get an immutable snapshot that
    is swapped in whole on each tick.
    """

    def __init__(
        self,
        resolve: Callable[[], Iterable[str]],
        notifier: Notifier,
        initial: Iterable[str] = (),
        interval: float = DEFAULT_RESCAN_INTERVAL,
    ) -> None:
        """Initialize the maintainer.

        Args:
            resolve: Returns the current watch set.
            notifier: Where new directories are registered.
            initial: Paths already registered at startup.
            interval: Seconds between re-resolutions.
        """
        self._resolve = resolve
        self._notifier = notifier
        self._interval = interval
        self._seen: frozenset[str] = frozenset(initial)

    @property
    def snapshot(self) -> frozenset[str]:
        """Every path seen so far."""
        return self._seen

    def _resolve_all(self) -> list[str]:
        return list(self._resolve())

    def rescan(self) -> list[str]:
        """Resolve once and register directories for newly seen paths.

        Returns:
            The newly seen paths.
        """
        return self.update(self._resolve_all())

    def update(self, latest: Iterable[str]) -> list[str]:
        """Register directories for paths in latest that were not seen yet."""
        seen = self._seen
        added = [p for p in latest if p not in seen]
        if not added:
            return []

        self._seen = seen.union(added)

        for directory in watch_dirs(added):
            try:
                self._notifier.add(directory)
            except WatchError as e:
                log.warning("Failed to add new path: %s", e)
            else:
                log.info("Watching new path %s", directory)
        return added

    async def run(self) -> None:
        """Rescan every interval until cancelled."""
        log.debug("Watch-set maintainer started (interval: %.1fs)", self._interval)
        while True:
            await asyncio.sleep(self._interval)
            try:
                # Globbing runs off the loop; registration stays on it
                self.update(await asyncio.to_thread(self._resolve_all))
            except Exception as e:
                log.error("Error rescanning watch set: %s", e)
