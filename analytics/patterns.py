from collections.abc import Sequence

from analytics.clustering import find_clusters
from analytics.trend import linear_trend
from core.config import PatternConfig
from core.types import ErrorPattern, InteractionEvent, PatternTrend, PatternType

ACCURACY_RECOMMENDATION = "Consider reducing difficulty or offering help"
TIMING_RECOMMENDATION = "User may be fatiguing, consider a pause"
SPATIAL_RECOMMENDATION = "Check element calibration or size in the problem area"


def _step_share(values: Sequence[float], rising: bool) -> float:
    """Share of consecutive steps moving in the given direction."""
    steps = len(values) - 1
    if steps <= 0:
        return 0.0
    moves = sum(1 for a, b in zip(values, values[1:]) if (b > a if rising else b < a))
    return moves / steps


def detect_patterns(events: Sequence[InteractionEvent], config: PatternConfig | None = None) -> list[ErrorPattern]:
    """Detect accuracy decay, timing decay and spatial error clusters.

    Runs only with at least ``config.min_events`` events and looks at the last
    ``config.window`` of them. Rules are independent: every qualifying pattern
    is emitted, in the fixed order accuracy, timing, spatial.
    """
    config = config or PatternConfig()
    if len(events) < config.min_events:
        return []

    window = list(events[-config.window :])
    patterns: list[ErrorPattern] = []

    accuracies = [e.accuracy for e in window]
    accuracy_trend = linear_trend(accuracies)
    if accuracy_trend < config.accuracy_slope:
        patterns.append(
            ErrorPattern(
                type=PatternType.ACCURACY,
                frequency=_step_share(accuracies, rising=False),
                severity=min(abs(accuracy_trend), 1.0),
                trend=PatternTrend.INCREASING,
                recommendation=ACCURACY_RECOMMENDATION,
            )
        )

    response_times = [e.response_time_ms for e in window]
    timing_trend = linear_trend(response_times)
    if timing_trend > config.timing_slope:
        patterns.append(
            ErrorPattern(
                type=PatternType.TIMING,
                frequency=_step_share(response_times, rising=True),
                severity=min(timing_trend / 1000.0, 1.0),
                trend=PatternTrend.INCREASING,
                recommendation=TIMING_RECOMMENDATION,
            )
        )

    misses = [e.start for e in window if not e.successful]
    if len(misses) >= config.min_spatial_errors:
        clusters = find_clusters(misses, radius=config.cluster_radius, min_points=config.cluster_min_points)
        if clusters:
            patterns.append(
                ErrorPattern(
                    type=PatternType.SPATIAL,
                    frequency=len(misses) / len(window),
                    severity=config.spatial_severity,
                    trend=PatternTrend.STABLE,
                    recommendation=SPATIAL_RECOMMENDATION,
                    hotspots=[c.centroid for c in clusters],
                )
            )

    return patterns
