import asyncio
import contextlib
import logging
from collections.abc import Callable, Coroutine
from dataclasses import replace
from typing import Any

from analytics.intervention import EASIER
from core.clock import Clock, new_id
from core.config import ProactiveConfig
from core.types import (
    AISuggestionUsage,
    DifficultyReason,
    InterventionType,
    PauseReason,
    ProactiveSuggestion,
    SessionData,
    SuggestionResponse,
)
from session.controller import SessionController

logger = logging.getLogger(__name__)

AsyncCallback = Callable[..., Coroutine[Any, Any, None]]

# Accepted within this window counts as an immediate response
IMMEDIATE_RESPONSE_MS = 10_000


class ProactiveAdvisor:
    """Polls the intervention policy in the background and keeps the list of open suggestions.

    At most one suggestion is emitted per cooldown period, and only one
    evaluation runs at a time. The loop is cancelled when the session ends.
    """

    def __init__(self, controller: SessionController, config: ProactiveConfig, clock: Clock | None = None):
        self.controller = controller
        self.config = config
        self.clock = clock or controller.clock
        self.suggestions: list[ProactiveSuggestion] = []
        self._lock = asyncio.Lock()
        self._last_emitted: int | None = None
        self._task: asyncio.Task | None = None

        # Set by the WebSocket handler
        self.on_suggestion: AsyncCallback | None = None

        controller.on_session_end = self._on_session_end

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.config.enabled or self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug("Proactive advisor started interval_ms=%d", self.config.cooldown_ms)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        interval = self.config.cooldown_ms / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                await self.evaluate_once()
            except Exception as e:
                logger.warning("Proactive evaluation failed: %s", e)

    async def evaluate_once(self) -> ProactiveSuggestion | None:
        """Run one evaluation. Returns None if one is already in flight or nothing is emitted."""
        if self._lock.locked():
            return None
        async with self._lock:
            now = self.clock()
            self._drop_expired(now)

            if self.controller.check_timeout() or not self.controller.is_active:
                return None
            session_config = self.controller.session_config
            if session_config is not None and not session_config.enable_ai:
                return None
            if self.config.optimize_difficulty:
                self.controller.optimize_difficulty()
            if self._last_emitted is not None and now - self._last_emitted < self.config.cooldown_ms:
                return None

            recommendation = self.controller.check_intervention_needed()
            if recommendation is None:
                return None

            suggestion = ProactiveSuggestion(
                id=new_id("suggestion"),
                timestamp=now,
                recommendation=recommendation,
                expires_at=now + self.config.suggestion_ttl_ms,
            )
            self.suggestions.append(suggestion)
            self._last_emitted = now
            logger.info(
                "Suggestion emitted id=%s type=%s urgency=%s",
                suggestion.id,
                recommendation.type,
                recommendation.urgency,
            )
            if self.on_suggestion:
                await self.on_suggestion(suggestion)
            return suggestion

    def active(self) -> list[ProactiveSuggestion]:
        """Suggestions currently visible: not expired and not postponed into the future."""
        now = self.clock()
        self._drop_expired(now)
        return [s for s in self.suggestions if s.timestamp <= now]

    def accept(self, suggestion_id: str, effectiveness: float | None = None) -> AISuggestionUsage | None:
        suggestion = self._find(suggestion_id)
        if suggestion is None:
            return None
        usage = self._record(suggestion, accepted=True, effectiveness=effectiveness)

        kind = suggestion.recommendation.type
        if kind == InterventionType.DIFFICULTY_ADJUST:
            current = self.controller.get_metrics().difficulty_progression[-1].difficulty
            self.controller.adjust_difficulty(EASIER[current], DifficultyReason.AI_ADJUSTMENT)
        elif kind == InterventionType.BREAK:
            self.controller.pause_session(PauseReason.AI_SUGGESTED)
        return usage

    def dismiss(self, suggestion_id: str) -> AISuggestionUsage | None:
        suggestion = self._find(suggestion_id)
        if suggestion is None:
            return None
        return self._record(suggestion, accepted=False, response=SuggestionResponse.IGNORED)

    def postpone(self, suggestion_id: str, duration_ms: int) -> ProactiveSuggestion | None:
        """Hide a suggestion for duration_ms; it reappears with a fresh expiry."""
        for i, s in enumerate(self.suggestions):
            if s.id == suggestion_id:
                shown_at = self.clock() + max(0, duration_ms)
                self.suggestions[i] = replace(
                    s, timestamp=shown_at, expires_at=shown_at + self.config.suggestion_ttl_ms
                )
                return self.suggestions[i]
        return None

    def _record(
        self,
        suggestion: ProactiveSuggestion,
        accepted: bool,
        effectiveness: float | None = None,
        response: SuggestionResponse | None = None,
    ) -> AISuggestionUsage:
        now = self.clock()
        if response is None:
            quick = now - suggestion.timestamp <= IMMEDIATE_RESPONSE_MS
            response = SuggestionResponse.IMMEDIATE if quick else SuggestionResponse.DELAYED
        usage = AISuggestionUsage(
            suggestion_id=suggestion.id,
            type=suggestion.recommendation.type,
            timestamp=now,
            accepted=accepted,
            effectiveness=effectiveness,
            user_response=response,
        )
        self.controller.record_ai_suggestion(usage)
        # A suggestion stays open until its response is recorded
        self.suggestions = [s for s in self.suggestions if s.id != suggestion.id]
        return usage

    def _find(self, suggestion_id: str) -> ProactiveSuggestion | None:
        return next((s for s in self.suggestions if s.id == suggestion_id), None)

    def _drop_expired(self, now: int) -> None:
        self.suggestions = [s for s in self.suggestions if s.expires_at > now]

    def _on_session_end(self, session: SessionData) -> None:
        self.suggestions.clear()
        self._last_emitted = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        logger.debug("Proactive advisor stopped for session_id=%s", session.id)
