"""Background task that keeps the metadata cache within its staleness bound."""

import asyncio
import contextlib

import structlog

from stephie import config as config_module
from stephie.clock import Clock, system_clock
from stephie.metadata.cache import MetadataCache

log = structlog.get_logger()


class MetadataRefresher:
    """Runs ``MetadataCache.sync()`` every ``interval`` seconds.

    The first sync runs immediately when the cache has never completed one
    within the staleness bound. Sync failures are logged and retried on the
    next tick.
    """

    def __init__(
        self,
        cache: MetadataCache,
        interval: float | None = None,
        *,
        clock: Clock = system_clock,
    ) -> None:
        self.cache = cache
        self.interval = (
            interval if interval is not None else config_module.settings.metadata_sync_interval_seconds
        )
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self.runs = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.interval <= 0:
            log.info("Metadata refresher disabled")
            return
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="metadata-refresher")
        log.info("Metadata refresher started", interval=self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        log.info("Metadata refresher stopped", runs=self.runs, failures=self.failures)

    async def _loop(self) -> None:
        sync_now = self.cache.needs_sync()
        while True:
            if not sync_now:
                await self._clock.sleep(self.interval)
            sync_now = False
            await self.run_once()

    async def run_once(self) -> bool:
        """One refresh. Returns False if the sync failed."""
        self.runs += 1
        try:
            await self.cache.sync()
        except Exception:
            self.failures += 1
            log.exception("Scheduled metadata sync failed")
            return False
        return True
