import logging
import os
from collections import deque
from typing import Any, Protocol

import httpx

from core.config import AnalyticsConfig

logger = logging.getLogger(__name__)


class AnalyticsSink(Protocol):
    def track(self, event: dict[str, Any]) -> None: ...

    async def flush(self) -> int: ...


class LoggingSink:
    """Writes analytics events to the log. Nothing is buffered."""

    def track(self, event: dict[str, Any]) -> None:
        logger.debug("analytics %s %s", event.get("type"), event)

    async def flush(self) -> int:
        return 0


class NullSink:
    def track(self, event: dict[str, Any]) -> None:
        pass

    async def flush(self) -> int:
        return 0


class HttpAnalyticsSink:
    """Queues events in memory and posts them in batches on flush.

    ``track`` never blocks or raises; when the queue is full the oldest events
    are discarded and counted in ``discarded``.
    """

    def __init__(self, config: AnalyticsConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self.url = config.url
        token = os.environ.get(config.api_key_env, "")
        self.headers = {"Content-Type": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        self._queue: deque[dict[str, Any]] = deque(maxlen=config.max_queue)
        self._transport = transport
        self.discarded = 0

    def __len__(self) -> int:
        return len(self._queue)

    def track(self, event: dict[str, Any]) -> None:
        if len(self._queue) == self._queue.maxlen:
            self.discarded += 1
        self._queue.append(event)

    async def flush(self) -> int:
        """Post queued events. On failure they are put back and the error is raised."""
        if not self._queue:
            return 0
        batch = list(self._queue)
        self._queue.clear()
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_s, transport=self._transport) as client:
                resp = await client.post(self.url, headers=self.headers, json={"events": batch})
                resp.raise_for_status()
        except httpx.HTTPError:
            # Re-queued ahead of newer events; a full queue drops the newest
            overflow = len(self._queue) + len(batch) - self._queue.maxlen
            if overflow > 0:
                self.discarded += overflow
            self._queue.extendleft(reversed(batch))
            raise
        logger.debug("Flushed %d analytics events to %s", len(batch), self.url)
        return len(batch)


def create_sink(config: AnalyticsConfig) -> AnalyticsSink:
    if config.backend == "http":
        return HttpAnalyticsSink(config)
    if config.backend == "disabled":
        return NullSink()
    return LoggingSink()
