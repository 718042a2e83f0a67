import pytest

from analytics.prediction import consecutive_errors, frustration_horizon, predict
from core.types import InterventionType, UserState


def test_neutral_prediction_with_few_events(make_event):
    prediction = predict([make_event(), make_event()], UserState())
    assert prediction.next_success_probability == 0.5
    assert prediction.estimated_frustration_ms == 300_000
    assert prediction.confidence == 0.1
    assert prediction.sample_count == 2
    assert prediction.recommended_intervention is None


def test_consecutive_errors(make_event):
    flags = [True, False, True, False, False, False]
    assert consecutive_errors([make_event(successful=f) for f in flags]) == 3
    assert consecutive_errors([make_event(successful=False) for _ in range(4)]) == 4
    assert consecutive_errors([make_event(successful=True)]) == 0
    assert consecutive_errors([]) == 0


def test_frustration_horizon_values():
    assert frustration_horizon(0) == 300_000
    assert frustration_horizon(1) == 30_000
    assert frustration_horizon(3) == 10_000
    assert frustration_horizon(100) == 1_000


def test_frustration_horizon_shrinks_with_errors(make_event):
    horizons = []
    for k in range(1, 10):
        events = [make_event(successful=True)] * (10 - k) + [make_event(successful=False) for _ in range(k)]
        horizons.append(predict(events, UserState()).estimated_frustration_ms)
    assert all(a > b for a, b in zip(horizons, horizons[1:]))


def test_all_successful(make_event):
    prediction = predict([make_event(accuracy=0.8) for _ in range(5)], UserState())
    assert prediction.next_success_probability == 1.0
    assert prediction.estimated_frustration_ms == 300_000
    assert prediction.confidence == pytest.approx(0.25)
    assert prediction.recommended_intervention is None


def test_probability_includes_accuracy_trend(make_event):
    events = [make_event(accuracy=a, successful=s) for a, s in [(0.9, True), (0.6, True), (0.3, False), (0.3, True)]]
    prediction = predict(events, UserState())
    # 0.75 success rate plus a -0.21 slope
    assert prediction.next_success_probability == pytest.approx(0.54)


def test_hint_for_three_errors(make_event):
    events = [make_event()] * 3 + [make_event(successful=False) for _ in range(3)]
    assert predict(events, UserState()).recommended_intervention == InterventionType.HINT


def test_difficulty_adjust_for_low_success(make_event):
    events = [make_event(successful=s) for s in (False, False, True, False, False)]
    assert predict(events, UserState()).recommended_intervention == InterventionType.DIFFICULTY_ADJUST


def test_break_for_high_frustration(make_event):
    events = [make_event() for _ in range(5)]
    prediction = predict(events, UserState(frustration=0.9))
    assert prediction.recommended_intervention == InterventionType.BREAK


def test_confidence_saturates(make_event):
    events = [make_event() for _ in range(40)]
    prediction = predict(events, UserState())
    assert prediction.confidence == 0.9
    assert prediction.sample_count == 40
