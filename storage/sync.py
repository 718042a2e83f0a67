import asyncio
import contextlib
import logging

from core.types import SyncStatus
from session.controller import SessionController
from storage.sink import AnalyticsSink

logger = logging.getLogger(__name__)


class AutoSync:
    """Periodically saves pending session changes and flushes the analytics sink.

    Sessions started with auto_save off are never saved here. Failures are
    logged and retried on the next tick.
    """

    def __init__(self, controller: SessionController, sink: AnalyticsSink, interval_ms: int = 30_000):
        self.controller = controller
        self.sink = sink
        self.interval_ms = interval_ms
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the loop and do a final sync."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.sync_once()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            await self.sync_once()

    async def sync_once(self) -> bool:
        saved = False
        if self.controller.auto_save and self.controller.sync_status != SyncStatus.SYNCED:
            saved = self.controller.force_sync()
        try:
            flushed = await self.sink.flush()
        except Exception as e:
            logger.warning("Analytics flush failed: %s", e)
        else:
            if flushed:
                logger.debug("Flushed %d analytics events", flushed)
        return saved
