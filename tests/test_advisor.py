import asyncio
from unittest.mock import AsyncMock

import pytest

from core.config import ProactiveConfig
from core.errors import InvalidTransition
from core.types import (
    Difficulty,
    DifficultyReason,
    InterventionType,
    PauseReason,
    SessionConfig,
    SessionStatus,
    SuggestionResponse,
)
from session.advisor import ProactiveAdvisor


def _struggle(controller, make_input, n: int = 3) -> None:
    for _ in range(n):
        controller.record_interaction(make_input(accuracy=0.1, successful=False))


@pytest.fixture
def advisor(active_controller) -> ProactiveAdvisor:
    return ProactiveAdvisor(active_controller, ProactiveConfig(cooldown_ms=30_000, suggestion_ttl_ms=120_000))


@pytest.mark.asyncio
async def test_emits_suggestion(advisor, active_controller, make_input):
    advisor.on_suggestion = AsyncMock()
    _struggle(active_controller, make_input)

    suggestion = await advisor.evaluate_once()

    assert suggestion is not None
    assert suggestion.recommendation.type == InterventionType.HINT
    assert suggestion.expires_at == suggestion.timestamp + 120_000
    assert advisor.active() == [suggestion]
    advisor.on_suggestion.assert_awaited_once_with(suggestion)


@pytest.mark.asyncio
async def test_nothing_to_suggest(advisor, active_controller, make_input):
    for _ in range(3):
        active_controller.record_interaction(make_input(accuracy=0.9))
    assert await advisor.evaluate_once() is None
    assert advisor.suggestions == []


@pytest.mark.asyncio
async def test_cooldown(advisor, active_controller, clock, make_input):
    _struggle(active_controller, make_input)
    assert await advisor.evaluate_once() is not None
    clock.advance(10_000)
    assert await advisor.evaluate_once() is None
    clock.advance(20_000)
    assert await advisor.evaluate_once() is not None
    assert len(advisor.suggestions) == 2


@pytest.mark.asyncio
async def test_single_flight(advisor, active_controller, make_input):
    _struggle(active_controller, make_input)
    async with advisor._lock:
        assert await advisor.evaluate_once() is None
    assert await advisor.evaluate_once() is not None


@pytest.mark.asyncio
async def test_overlapping_evaluations_emit_once(advisor, active_controller, make_input):
    release = asyncio.Event()

    async def slow_delivery(suggestion):
        await release.wait()

    advisor.on_suggestion = slow_delivery
    _struggle(active_controller, make_input)

    first = asyncio.create_task(advisor.evaluate_once())
    await asyncio.sleep(0)
    assert await advisor.evaluate_once() is None
    release.set()
    assert await first is not None
    assert len(advisor.suggestions) == 1


@pytest.mark.asyncio
async def test_no_suggestion_when_ai_disabled(controller, make_input):
    controller.start_session(SessionConfig(activity_id="a1", enable_ai=False))
    advisor = ProactiveAdvisor(controller, ProactiveConfig())
    _struggle(controller, make_input)
    assert await advisor.evaluate_once() is None


@pytest.mark.asyncio
async def test_no_suggestion_while_paused(advisor, active_controller, make_input):
    _struggle(active_controller, make_input)
    active_controller.pause_session()
    assert await advisor.evaluate_once() is None


@pytest.mark.asyncio
async def test_timeout_checked(controller, clock, make_input):
    controller.start_session(SessionConfig(activity_id="a1", duration_ms=5_000))
    advisor = ProactiveAdvisor(controller, ProactiveConfig())
    _struggle(controller, make_input)
    clock.advance(5_000)
    assert await advisor.evaluate_once() is None
    assert controller.status == SessionStatus.TIMEOUT


@pytest.mark.asyncio
async def test_suggestions_expire(advisor, active_controller, clock, make_input):
    _struggle(active_controller, make_input)
    await advisor.evaluate_once()
    clock.advance(120_000)
    assert advisor.active() == []


@pytest.mark.asyncio
async def test_accept_records_usage(advisor, active_controller, clock, make_input):
    _struggle(active_controller, make_input)
    suggestion = await advisor.evaluate_once()
    clock.advance(2_000)

    usage = advisor.accept(suggestion.id, effectiveness=0.8)

    assert usage.accepted is True
    assert usage.user_response == SuggestionResponse.IMMEDIATE
    assert usage.effectiveness == 0.8
    assert active_controller.get_metrics().ai_interventions == 1
    assert advisor.suggestions == []
    assert advisor.accept(suggestion.id) is None


@pytest.mark.asyncio
async def test_late_accept_is_delayed(advisor, active_controller, clock, make_input):
    _struggle(active_controller, make_input)
    suggestion = await advisor.evaluate_once()
    clock.advance(60_000)
    assert advisor.accept(suggestion.id).user_response == SuggestionResponse.DELAYED


@pytest.mark.asyncio
async def test_dismiss(advisor, active_controller, make_input):
    _struggle(active_controller, make_input)
    suggestion = await advisor.evaluate_once()
    usage = advisor.dismiss(suggestion.id)
    assert usage.accepted is False
    assert usage.user_response == SuggestionResponse.IGNORED
    assert active_controller.snapshot().ai_suggestions == [usage]


@pytest.mark.asyncio
async def test_accept_difficulty_adjust_lowers_difficulty(controller, make_input):
    controller.start_session(SessionConfig(activity_id="a1", difficulty=Difficulty.HARD))
    advisor = ProactiveAdvisor(controller, ProactiveConfig())
    for ok in (True, False, True, False, True):
        controller.record_interaction(make_input(accuracy=0.1, successful=ok))

    suggestion = await advisor.evaluate_once()
    assert suggestion.recommendation.type == InterventionType.DIFFICULTY_ADJUST
    advisor.accept(suggestion.id)
    assert controller.get_metrics().difficulty_progression[-1].difficulty == Difficulty.MEDIUM


@pytest.mark.asyncio
async def test_accept_break_pauses(advisor, active_controller, make_input):
    for _ in range(3):
        active_controller.record_interaction(make_input(accuracy=0.9))
    active_controller.update_user_state(frustration=0.9)

    suggestion = await advisor.evaluate_once()
    assert suggestion.recommendation.type == InterventionType.BREAK
    advisor.accept(suggestion.id)
    assert active_controller.status == SessionStatus.PAUSED
    assert active_controller.snapshot().pause_intervals[-1].reason == PauseReason.AI_SUGGESTED


@pytest.mark.asyncio
async def test_postpone(advisor, active_controller, clock, make_input):
    _struggle(active_controller, make_input)
    suggestion = await advisor.evaluate_once()

    postponed = advisor.postpone(suggestion.id, 60_000)
    assert postponed.id == suggestion.id
    assert advisor.active() == []
    clock.advance(60_000)
    assert [s.id for s in advisor.active()] == [suggestion.id]
    assert advisor.postpone("missing", 1_000) is None


@pytest.mark.asyncio
async def test_session_end_cancels_loop(advisor, active_controller, make_input):
    advisor.start()
    assert advisor.running
    _struggle(active_controller, make_input)
    await advisor.evaluate_once()

    active_controller.end_session()
    await asyncio.sleep(0)

    assert not advisor.running
    assert advisor.suggestions == []


@pytest.mark.asyncio
async def test_loop_emits_on_interval(active_controller, make_input):
    advisor = ProactiveAdvisor(active_controller, ProactiveConfig(cooldown_ms=5))
    advisor.on_suggestion = AsyncMock()
    _struggle(active_controller, make_input)

    advisor.start()
    await asyncio.sleep(0.05)
    await advisor.stop()

    # The fake clock never moves, so the cooldown allows only one emission
    advisor.on_suggestion.assert_awaited_once()
    assert not advisor.running


@pytest.mark.asyncio
async def test_disabled_advisor_does_not_start(active_controller):
    advisor = ProactiveAdvisor(active_controller, ProactiveConfig(enabled=False))
    advisor.start()
    assert not advisor.running


@pytest.mark.asyncio
async def test_response_while_paused_keeps_suggestion(advisor, active_controller, make_input):
    _struggle(active_controller, make_input)
    suggestion = await advisor.evaluate_once()
    active_controller.pause_session()

    with pytest.raises(InvalidTransition):
        advisor.accept(suggestion.id)
    with pytest.raises(InvalidTransition):
        advisor.dismiss(suggestion.id)

    assert [s.id for s in advisor.suggestions] == [suggestion.id]
    assert active_controller.snapshot().ai_suggestions == []

    active_controller.resume_session()
    assert advisor.accept(suggestion.id).accepted is True
    assert advisor.suggestions == []


@pytest.mark.asyncio
async def test_evaluation_optimizes_difficulty(advisor, active_controller, make_input):
    for _ in range(5):
        active_controller.record_interaction(make_input(accuracy=0.9))

    assert await advisor.evaluate_once() is None
    step = active_controller.get_metrics().difficulty_progression[-1]
    assert step.difficulty == Difficulty.MEDIUM
    assert step.reason == DifficultyReason.SUCCESS


@pytest.mark.asyncio
async def test_difficulty_optimization_can_be_disabled(active_controller, make_input):
    advisor = ProactiveAdvisor(active_controller, ProactiveConfig(optimize_difficulty=False))
    for _ in range(5):
        active_controller.record_interaction(make_input(accuracy=0.9))

    await advisor.evaluate_once()
    assert len(active_controller.get_metrics().difficulty_progression) == 1
