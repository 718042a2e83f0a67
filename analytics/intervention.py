from collections.abc import Sequence

from analytics.prediction import consecutive_errors
from core.config import InterventionConfig
from core.types import (
    Difficulty,
    DifficultyReason,
    InteractionEvent,
    InterventionType,
    Recommendation,
    Urgency,
    UserState,
)

EASIER = {
    Difficulty.HARD: Difficulty.MEDIUM,
    Difficulty.MEDIUM: Difficulty.EASY,
    Difficulty.EASY: Difficulty.EASY,
}
HARDER = {
    Difficulty.EASY: Difficulty.MEDIUM,
    Difficulty.MEDIUM: Difficulty.HARD,
    Difficulty.HARD: Difficulty.HARD,
}


def evaluate(
    events: Sequence[InteractionEvent],
    thresholds: InterventionConfig,
    user_state: UserState,
) -> Recommendation | None:
    """Apply the intervention table to the most recent window; first match wins.

    1. trailing errors at or above the threshold -> hint (high)
    2. frustration at or above the threshold -> break (medium)
    3. mean window accuracy below the floor -> difficulty adjustment (medium)
    """
    if len(events) < thresholds.min_events:
        return None
    window = list(events[-thresholds.window :])

    errors = consecutive_errors(window)
    if errors >= thresholds.consecutive_errors:
        return Recommendation(
            type=InterventionType.HINT,
            urgency=Urgency.HIGH,
            reason=f"{errors} consecutive errors",
            suggested_action="Show a hint or reduce difficulty",
            confidence=0.9,
        )

    if user_state.frustration >= thresholds.frustration_level:
        return Recommendation(
            type=InterventionType.BREAK,
            urgency=Urgency.MEDIUM,
            reason="High frustration detected",
            suggested_action="Offer a pause or a calming activity",
            confidence=0.8,
        )

    avg_accuracy = sum(e.accuracy for e in window) / len(window)
    if avg_accuracy < thresholds.accuracy_floor:
        return Recommendation(
            type=InterventionType.DIFFICULTY_ADJUST,
            urgency=Urgency.MEDIUM,
            reason=f"Very low accuracy ({avg_accuracy:.2f})",
            suggested_action="Reduce activity difficulty",
            confidence=0.7,
        )

    return None


def recommend_difficulty(
    events: Sequence[InteractionEvent],
    current: Difficulty,
    thresholds: InterventionConfig,
) -> tuple[Difficulty, DifficultyReason] | None:
    """Step difficulty from the success rate of a full window of events.

    Above raise_success_rate steps up, below lower_success_rate steps down.
    Returns None when the window is short or the level would not change.
    """
    if len(events) < thresholds.window:
        return None
    window = list(events[-thresholds.window :])
    success_rate = sum(1 for e in window if e.successful) / len(window)

    if success_rate > thresholds.raise_success_rate:
        target, reason = HARDER[current], DifficultyReason.SUCCESS
    elif success_rate < thresholds.lower_success_rate:
        target, reason = EASIER[current], DifficultyReason.STRUGGLE
    else:
        return None
    if target == current:
        return None
    return target, reason
