from collections.abc import Sequence

from analytics.trend import linear_trend
from core.config import PredictionConfig
from core.types import InteractionEvent, InterventionType, Prediction, UserState


def consecutive_errors(events: Sequence[InteractionEvent]) -> int:
    """Count trailing unsuccessful events, scanning back to the last success."""
    count = 0
    for event in reversed(events):
        if event.successful:
            break
        count += 1
    return count


def frustration_horizon(errors: int, config: PredictionConfig | None = None) -> float:
    """Milliseconds until frustration is expected to become actionable."""
    config = config or PredictionConfig()
    if errors <= 0:
        return config.default_frustration_ms
    return max(config.min_frustration_ms, config.base_frustration_ms / errors)


def predict(
    events: Sequence[InteractionEvent],
    user_state: UserState,
    frustration_threshold: float = 0.7,
    config: PredictionConfig | None = None,
) -> Prediction:
    """Short-horizon forecast over the most recent events.

    With fewer than ``config.min_events`` events a neutral forecast is returned.
    """
    config = config or PredictionConfig()
    total = len(events)
    if total < config.min_events:
        return Prediction(
            next_success_probability=0.5,
            estimated_frustration_ms=config.default_frustration_ms,
            confidence=config.default_confidence,
            sample_count=total,
        )

    recent = list(events[-config.window :])
    success_rate = sum(1 for e in recent if e.successful) / len(recent)
    accuracy_trend = linear_trend([e.accuracy for e in recent])
    errors = consecutive_errors(recent)

    intervention: InterventionType | None = None
    if errors >= 3:
        intervention = InterventionType.HINT
    elif success_rate < 0.4:
        intervention = InterventionType.DIFFICULTY_ADJUST
    elif user_state.frustration > frustration_threshold:
        intervention = InterventionType.BREAK

    return Prediction(
        next_success_probability=min(1.0, max(0.0, success_rate + accuracy_trend)),
        estimated_frustration_ms=frustration_horizon(errors, config),
        confidence=min(config.confidence_cap, total / config.confidence_samples),
        sample_count=total,
        recommended_intervention=intervention,
    )
