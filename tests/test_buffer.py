import pytest

from analytics.buffer import EventBuffer, validate_event
from core.errors import InputRejected
from core.types import FeedbackEvent, FeedbackKind


def test_append_and_all_in_order(make_event):
    buf = EventBuffer(capacity=10)
    events = [make_event() for _ in range(3)]
    for e in events:
        assert buf.append(e) is True
    assert buf.all() == events
    assert len(buf) == 3
    assert buf.last() is events[-1]
    assert buf.first() is events[0]


def test_overflow_keeps_most_recent(make_event):
    """N > capacity appends keep exactly the last `capacity` events, in order."""
    buf = EventBuffer(capacity=5)
    events = [make_event() for _ in range(12)]
    for e in events:
        buf.append(e)
    assert len(buf) == 5
    assert [e.id for e in buf.all()] == [e.id for e in events[-5:]]
    assert buf.usage == 1.0


def test_evicted_id_can_be_reused(make_event):
    buf = EventBuffer(capacity=2)
    buf.append(make_event(event_id="a"))
    buf.append(make_event())
    buf.append(make_event())
    assert buf.append(make_event(event_id="a")) is True


@pytest.mark.parametrize(
    "kwargs",
    [
        {"accuracy": 1.5},
        {"accuracy": -0.1},
        {"accuracy": float("nan")},
        {"duration_ms": -1.0},
        {"response_time_ms": -5.0},
    ],
)
def test_malformed_event_rejected(make_event, kwargs):
    buf = EventBuffer(capacity=10)
    assert buf.append(make_event(**kwargs)) is False
    assert len(buf) == 0
    assert buf.dropped_events == 1


def test_validate_event_raises(make_event):
    with pytest.raises(InputRejected):
        validate_event(make_event(accuracy=2.0))


def test_duplicate_id_rejected(make_event):
    buf = EventBuffer(capacity=10)
    buf.append(make_event(event_id="same"))
    assert buf.append(make_event(event_id="same")) is False
    assert len(buf) == 1
    assert buf.dropped_events == 1


def test_out_of_order_rejected(make_event):
    buf = EventBuffer(capacity=10)
    buf.append(make_event(timestamp=5_000))
    assert buf.append(make_event(timestamp=4_000)) is False
    assert buf.append(make_event(timestamp=5_000)) is True
    assert buf.dropped_events == 1


def test_recent(make_event):
    buf = EventBuffer(capacity=10)
    events = [make_event() for _ in range(6)]
    for e in events:
        buf.append(e)
    assert buf.recent(3) == events[-3:]
    assert buf.recent(100) == events
    assert buf.recent(0) == []


def test_attach_feedback(make_event):
    buf = EventBuffer(capacity=10)
    event = make_event(event_id="e1")
    buf.append(event)
    feedback = FeedbackEvent(kind=FeedbackKind.HAPTIC, intensity=0.5, duration_ms=200)

    assert buf.attach_feedback("e1", feedback) is True
    assert buf.last().feedback == feedback
    assert event.feedback is None
    assert buf.attach_feedback("missing", feedback) is False


def test_clear(make_event):
    buf = EventBuffer(capacity=10)
    buf.append(make_event(event_id="x"))
    buf.clear()
    assert buf.all() == []
    assert buf.last() is None
    assert buf.append(make_event(event_id="x")) is True


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        EventBuffer(capacity=0)
