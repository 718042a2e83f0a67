import logging
import math
from collections import deque
from dataclasses import replace

from core.errors import InputRejected
from core.types import FeedbackEvent, InteractionEvent

logger = logging.getLogger(__name__)


def validate_event(event: InteractionEvent) -> None:
    """Raise InputRejected if the event carries out-of-range measurements."""
    if not math.isfinite(event.accuracy) or not 0.0 <= event.accuracy <= 1.0:
        raise InputRejected(f"accuracy {event.accuracy} outside [0, 1]")
    if not math.isfinite(event.duration_ms) or event.duration_ms < 0:
        raise InputRejected(f"negative duration {event.duration_ms}")
    if not math.isfinite(event.response_time_ms) or event.response_time_ms < 0:
        raise InputRejected(f"negative response time {event.response_time_ms}")


class EventBuffer:
    """Bounded, insertion-ordered interaction store. Oldest events are evicted first."""

    def __init__(self, capacity: int = 1000):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._events: deque[InteractionEvent] = deque(maxlen=capacity)
        self._ids: set[str] = set()
        self.dropped_events = 0

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event: InteractionEvent) -> bool:
        """Append an event. Returns False (and counts a drop) if it is rejected."""
        try:
            validate_event(event)
            if event.id in self._ids:
                raise InputRejected(f"duplicate event id {event.id}")
            if self._events and event.timestamp < self._events[-1].timestamp:
                raise InputRejected(
                    f"out-of-order timestamp {event.timestamp} < {self._events[-1].timestamp}"
                )
        except InputRejected as e:
            self.dropped_events += 1
            logger.debug("Dropped event id=%s: %s", event.id, e)
            return False

        if len(self._events) == self.capacity:
            self._ids.discard(self._events[0].id)
        self._events.append(event)
        self._ids.add(event.id)
        return True

    def all(self) -> list[InteractionEvent]:
        return list(self._events)

    def recent(self, n: int) -> list[InteractionEvent]:
        if n <= 0:
            return []
        start = max(0, len(self._events) - n)
        return [self._events[i] for i in range(start, len(self._events))]

    def last(self) -> InteractionEvent | None:
        return self._events[-1] if self._events else None

    def first(self) -> InteractionEvent | None:
        return self._events[0] if self._events else None

    def attach_feedback(self, event_id: str, feedback: FeedbackEvent) -> bool:
        if event_id not in self._ids:
            return False
        for i, event in enumerate(self._events):
            if event.id == event_id:
                self._events[i] = replace(event, feedback=feedback)
                return True
        return False

    def clear(self) -> None:
        self._events.clear()
        self._ids.clear()

    @property
    def usage(self) -> float:
        return len(self._events) / self.capacity
