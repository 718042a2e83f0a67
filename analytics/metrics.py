from collections.abc import Sequence

import psutil

from analytics.trend import classify_trend, linear_trend
from core.types import InstantMetrics, InteractionEvent, MetricTrend, PerformanceReport, UserState

MIN_RATE_SPAN_MS = 60_000


def interaction_rate(events: Sequence[InteractionEvent]) -> float:
    """Interactions per minute over the buffered span, floored at one minute.

    The span ends at the last event rather than the wall clock so the value
    only changes when a new interaction is recorded.
    """
    if not events:
        return 0.0
    span = max(MIN_RATE_SPAN_MS, events[-1].timestamp - events[0].timestamp)
    return len(events) / span * 60_000


def instant_metrics(events: Sequence[InteractionEvent], user_state: UserState, window: int = 5) -> InstantMetrics:
    if not events:
        return InstantMetrics(
            current_accuracy=0.0,
            recent_response_time_ms=0.0,
            engagement_level=user_state.engagement,
            interaction_rate=0.0,
            trend=MetricTrend.STABLE,
        )

    recent = list(events[-window:])
    trend = MetricTrend.STABLE
    if len(recent) >= 3:
        trend = classify_trend(linear_trend([e.accuracy for e in recent]))

    return InstantMetrics(
        current_accuracy=sum(e.accuracy for e in recent) / len(recent),
        recent_response_time_ms=sum(e.response_time_ms for e in recent) / len(recent),
        engagement_level=user_state.engagement,
        interaction_rate=interaction_rate(events),
        trend=trend,
    )


def process_memory_mb() -> float:
    try:
        return psutil.Process().memory_info().rss / (1024 * 1024)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return 0.0


def performance_report(
    duration_ms: int,
    total_events: int,
    dropped_events: int,
    processing_times_ms: Sequence[float],
) -> PerformanceReport:
    events_per_second = total_events / duration_ms * 1000 if duration_ms > 0 else 0.0
    average_latency = sum(processing_times_ms) / len(processing_times_ms) if processing_times_ms else 0.0
    recommendations = [
        "Low interaction frequency" if events_per_second < 0.1 else "Normal interaction frequency",
        "Consider optimizing event processing" if average_latency > 50 else "Processing latency nominal",
    ]
    if dropped_events:
        recommendations.append(f"{dropped_events} malformed events were dropped")
    return PerformanceReport(
        tracking_duration_ms=duration_ms,
        total_events=total_events,
        events_per_second=events_per_second,
        average_latency_ms=average_latency,
        error_rate=dropped_events / (total_events or 1),
        memory_mb=process_memory_mb(),
        recommendations=recommendations,
    )
