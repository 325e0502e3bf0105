"""Periodic background sync task."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from herd_sync.sync.coordinator import SyncCoordinator
    from herd_sync.sync.protocol import FullSyncReport, QueueReport
    from herd_sync.sync.push_queue import PushQueueProcessor

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 300.0


class BackgroundSync:
    """
    Runs ``sync_all`` every ``interval`` seconds, then drains the push queue.

    A failing cycle is logged and the loop keeps going.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        processor: PushQueueProcessor | None = None,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._coordinator = coordinator
        self._processor = processor
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()
        self.cycles = 0
        self.last_report: FullSyncReport | None = None
        self.last_queue_report: QueueReport | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name="herd-sync-background")
        logger.info("Background sync started (every %.0fs)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Background sync stopped")

    def trigger(self) -> None:
        """Run the next cycle now instead of waiting for the interval."""
        self._wakeup.set()

    async def run_once(self) -> None:
        """One cycle: sync every table, then push queued local changes."""
        try:
            self.last_report = await self._coordinator.sync_all()
            if self._processor is not None:
                self.last_queue_report = await self._processor.process()
        except Exception:
            logger.warning("Background sync cycle failed", exc_info=True)
        finally:
            self.cycles += 1

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            self._wakeup.clear()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wakeup.wait(), timeout=self._interval)
