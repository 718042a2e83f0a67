from analytics.intervention import evaluate, recommend_difficulty
from core.config import InterventionConfig
from core.types import Difficulty, DifficultyReason, InterventionType, Urgency, UserState


def test_no_recommendation_with_few_events(make_event):
    events = [make_event(successful=False) for _ in range(2)]
    assert evaluate(events, InterventionConfig(), UserState(frustration=1.0)) is None


def test_hint_wins_over_break(make_event):
    events = [make_event(successful=False, accuracy=0.1) for _ in range(5)]
    rec = evaluate(events, InterventionConfig(), UserState(frustration=0.95))
    assert rec.type == InterventionType.HINT
    assert rec.urgency == Urgency.HIGH
    assert rec.confidence == 0.9
    assert rec.reason == "5 consecutive errors"


def test_break_on_frustration(make_event):
    events = [make_event() for _ in range(5)]
    rec = evaluate(events, InterventionConfig(), UserState(frustration=0.7))
    assert rec.type == InterventionType.BREAK
    assert rec.urgency == Urgency.MEDIUM
    assert rec.confidence == 0.8


def test_difficulty_on_low_accuracy(make_event):
    events = [make_event(accuracy=0.1, successful=s) for s in (True, False, True, False, True)]
    rec = evaluate(events, InterventionConfig(), UserState())
    assert rec.type == InterventionType.DIFFICULTY_ADJUST
    assert rec.urgency == Urgency.MEDIUM
    assert rec.confidence == 0.7


def test_no_recommendation_when_doing_well(make_event):
    events = [make_event(accuracy=0.9) for _ in range(8)]
    assert evaluate(events, InterventionConfig(), UserState()) is None


def test_only_recent_window_counts(make_event):
    events = [make_event(successful=False, accuracy=0.0) for _ in range(10)]
    events += [make_event(accuracy=0.9) for _ in range(5)]
    assert evaluate(events, InterventionConfig(), UserState()) is None


def test_custom_threshold(make_event):
    events = [make_event()] + [make_event(successful=False, accuracy=0.5) for _ in range(3)]
    assert evaluate(events, InterventionConfig(consecutive_errors=4), UserState()) is None
    assert evaluate(events, InterventionConfig(), UserState()).type == InterventionType.HINT


def test_difficulty_up_on_high_success(make_event):
    events = [make_event() for _ in range(5)]
    change = recommend_difficulty(events, Difficulty.EASY, InterventionConfig())
    assert change == (Difficulty.MEDIUM, DifficultyReason.SUCCESS)


def test_difficulty_down_on_low_success(make_event):
    events = [make_event(successful=s) for s in (False, True, False, False, False)]
    change = recommend_difficulty(events, Difficulty.HARD, InterventionConfig())
    assert change == (Difficulty.MEDIUM, DifficultyReason.STRUGGLE)


def test_difficulty_kept_in_band(make_event):
    # 2/5 is not below 0.4 and 4/5 is not above 0.85
    low = [make_event(successful=s) for s in (True, True, False, False, False)]
    high = [make_event(successful=s) for s in (True, True, True, True, False)]
    assert recommend_difficulty(low, Difficulty.MEDIUM, InterventionConfig()) is None
    assert recommend_difficulty(high, Difficulty.MEDIUM, InterventionConfig()) is None


def test_difficulty_needs_full_window(make_event):
    events = [make_event() for _ in range(4)]
    assert recommend_difficulty(events, Difficulty.EASY, InterventionConfig()) is None


def test_difficulty_clamped_at_ends(make_event):
    wins = [make_event() for _ in range(5)]
    losses = [make_event(successful=False) for _ in range(5)]
    assert recommend_difficulty(wins, Difficulty.HARD, InterventionConfig()) is None
    assert recommend_difficulty(losses, Difficulty.EASY, InterventionConfig()) is None


def test_policy_vocabulary():
    assert {t.value for t in InterventionType} == {"hint", "break", "difficulty-adjust"}
    assert {u.value for u in Urgency} == {"low", "medium", "high"}
