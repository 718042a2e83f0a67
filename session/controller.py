import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import fields, replace
from datetime import datetime
from typing import Any

from analytics.buffer import EventBuffer
from analytics.heatmap import HeatmapAggregator
from analytics.intervention import evaluate, recommend_difficulty
from analytics.metrics import instant_metrics, performance_report
from analytics.patterns import detect_patterns
from analytics.prediction import predict
from core.clock import Clock, monotonic_ms, new_id
from core.config import Config
from core.errors import ConfigurationError, InvalidTransition
from core.types import (
    TERMINAL_STATUSES,
    AISuggestionUsage,
    Difficulty,
    DifficultyReason,
    DifficultyStep,
    ErrorPattern,
    FeedbackEvent,
    Heatmap,
    InstantMetrics,
    InteractionContext,
    InteractionEvent,
    InteractionInput,
    PatternType,
    PauseInterval,
    PauseReason,
    PerformanceReport,
    Prediction,
    Recommendation,
    SessionConfig,
    SessionData,
    SessionEnvironment,
    SessionMetrics,
    SessionStatus,
    SyncStatus,
    TrackingState,
    Urgency,
    UserState,
)
from session.export import export_session, export_stored_session
from storage.sink import AnalyticsSink, NullSink
from storage.store import SessionStore

logger = logging.getLogger(__name__)

# A 30 s gap since the previous interaction drives engagement to zero
ENGAGEMENT_DECAY_MS = 30_000
RECENT_SESSIONS = 10
USER_STATE_FIELDS = {f.name for f in fields(UserState)}


def time_of_day(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


def capture_environment() -> SessionEnvironment:
    return SessionEnvironment(time_of_day=time_of_day(datetime.now().hour))


def validate_session_config(config: SessionConfig) -> SessionConfig:
    if not config.activity_id:
        raise ConfigurationError("activity_id is required")
    if not config.user_id:
        raise ConfigurationError("user_id is required")
    try:
        difficulty = Difficulty(config.difficulty)
    except ValueError:
        raise ConfigurationError(f"invalid difficulty: {config.difficulty!r}") from None
    if config.duration_ms is not None and config.duration_ms <= 0:
        raise ConfigurationError("duration_ms must be positive")
    return replace(config, difficulty=difficulty)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class SessionController:
    """Single owner of one session's event buffer, user state and heatmap.

    Mutating calls go through this object; derived views (patterns,
    prediction, intervention, metrics) are computed from its state on read
    and memoized until the next mutation.
    """

    def __init__(
        self,
        config: Config,
        clock: Clock = monotonic_ms,
        store: SessionStore | None = None,
        sink: AnalyticsSink | None = None,
    ):
        self.config = config
        self.clock = clock
        self.store = store
        self.sink: AnalyticsSink = sink or NullSink()
        self.buffer = EventBuffer(config.tracking.buffer_size)
        self.heatmap = HeatmapAggregator(
            grid_size=config.tracking.grid_size,
            width=config.tracking.heatmap_width,
            height=config.tracking.heatmap_height,
        )
        self.user_state = UserState()
        self.status = SessionStatus.NOT_STARTED
        self.sync_status = SyncStatus.SYNCED
        self.session_id: str | None = None
        self.session_config: SessionConfig | None = None
        self.recent_sessions: list[SessionData] = []

        self._start_time = 0
        self._end_time: int | None = None
        self._metrics = SessionMetrics()
        self._pauses: list[PauseInterval] = []
        self._suggestions: list[AISuggestionUsage] = []
        self._environment = SessionEnvironment()
        self._last_interaction_time = 0
        self._interactions_at_difficulty = 0
        self._processing_times: deque[float] = deque(maxlen=100)
        self._version = 0
        self._cache: dict[str, Any] = {}
        self._cache_version = -1

        # Called with the final snapshot whenever a session ends
        self.on_session_end: Callable[[SessionData], None] | None = None

    # --- lifecycle ---

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    @property
    def auto_save(self) -> bool:
        return self.session_config is None or self.session_config.auto_save

    def start_session(self, session_config: SessionConfig) -> SessionData:
        session_config = validate_session_config(session_config)

        if self.status in (SessionStatus.ACTIVE, SessionStatus.PAUSED):
            self.end_session(SessionStatus.INTERRUPTED)

        now = self.clock()
        self.session_config = session_config
        self.session_id = new_id("session")
        self.status = SessionStatus.ACTIVE
        self.user_state = UserState()
        self.buffer = EventBuffer(self.config.tracking.buffer_size)
        self.heatmap.clear()
        self._start_time = now
        self._end_time = None
        self._last_interaction_time = now
        self._interactions_at_difficulty = 0
        self._pauses = []
        self._suggestions = []
        self._processing_times.clear()
        self._environment = session_config.environment or capture_environment()
        self._metrics = SessionMetrics(
            difficulty_progression=[
                DifficultyStep(timestamp=now, difficulty=session_config.difficulty, reason=DifficultyReason.INITIAL)
            ]
        )
        self._touch()

        logger.info(
            "Session started session_id=%s activity_id=%s user_id=%s",
            self.session_id,
            session_config.activity_id,
            session_config.user_id,
        )
        self._track("session_start", activity_id=session_config.activity_id)
        snapshot = self.snapshot()
        self._persist(snapshot)
        return snapshot

    def pause_session(self, reason: PauseReason | str = PauseReason.USER_INITIATED) -> None:
        self._require(SessionStatus.ACTIVE, operation="pause session")
        self._pauses.append(PauseInterval(start_time=self.clock(), reason=PauseReason(reason)))
        self.status = SessionStatus.PAUSED
        logger.info("Session paused session_id=%s reason=%s", self.session_id, reason)
        self._track("session_pause", reason=str(reason))
        self._persist(self.snapshot())

    def resume_session(self) -> int:
        """Resume a paused session. Returns the accumulated paused time in ms."""
        self._require(SessionStatus.PAUSED, operation="resume session")
        now = self.clock()
        self._close_pause(now)
        self.status = SessionStatus.ACTIVE
        self._last_interaction_time = now
        logger.info(
            "Session resumed session_id=%s paused_ms=%d", self.session_id, self._metrics.time_paused_ms
        )
        self._track("session_resume", time_paused_ms=self._metrics.time_paused_ms)
        self._persist(self.snapshot())
        return self._metrics.time_paused_ms

    def end_session(self, reason: SessionStatus | str = SessionStatus.COMPLETED) -> SessionData:
        reason = SessionStatus(reason)
        if reason not in TERMINAL_STATUSES:
            raise ValueError(f"{reason} is not a terminal status")
        if self.status not in (SessionStatus.ACTIVE, SessionStatus.PAUSED):
            raise InvalidTransition("end session", self.status)

        now = self.clock()
        if self.status == SessionStatus.PAUSED:
            self._close_pause(now)

        m = self._metrics
        m.time_active_ms = max(0, now - self._start_time - m.time_paused_ms)
        if reason == SessionStatus.COMPLETED:
            m.completion_rate = 1.0
        elif m.total_interactions:
            m.completion_rate = m.successful_interactions / m.total_interactions
        else:
            m.completion_rate = 0.0

        self.status = reason
        self._end_time = now
        self._touch()

        final = self.snapshot()
        logger.info(
            "Session ended session_id=%s status=%s interactions=%d",
            self.session_id,
            reason,
            m.total_interactions,
        )
        self._track("session_end", status=str(reason), completion_rate=m.completion_rate)
        self._persist(final)
        self.recent_sessions = [final, *self.recent_sessions[: RECENT_SESSIONS - 1]]
        if self.on_session_end:
            self.on_session_end(final)
        return final

    def check_timeout(self) -> bool:
        """End the session with status timeout once its active time reaches the configured bound."""
        if self.status != SessionStatus.ACTIVE or not self.session_config:
            return False
        limit = self.session_config.duration_ms
        if limit is None or self.active_time_ms() < limit:
            return False
        self.end_session(SessionStatus.TIMEOUT)
        return True

    # --- recording ---

    def record_interaction(self, interaction: InteractionInput) -> InteractionEvent | None:
        """Record one interaction. Returns None when the event is rejected as malformed."""
        self._require(SessionStatus.ACTIVE, operation="record interaction")
        if self.check_timeout():
            raise InvalidTransition("record interaction", self.status)
        if self.session_config is None or self.session_id is None:
            raise InvalidTransition("record interaction", self.status)

        started = time.perf_counter()
        now = self.clock()
        event = InteractionEvent(
            id=new_id("int"),
            session_id=self.session_id,
            timestamp=now,
            kind=interaction.kind,
            start=interaction.start,
            end=interaction.end,
            path=list(interaction.path),
            duration_ms=interaction.duration_ms,
            accuracy=interaction.accuracy,
            response_time_ms=interaction.response_time_ms,
            successful=interaction.successful,
            target_id=interaction.target_id,
            context=InteractionContext(
                activity_id=self.session_config.activity_id,
                attempt_number=interaction.attempt_number,
                hints_shown=interaction.hints_shown,
                user_state=replace(self.user_state),
                phase_id=interaction.phase_id,
            ),
        )

        if not self.buffer.append(event):
            self._metrics.dropped_events = self.buffer.dropped_events
            return None

        m = self._metrics
        n = m.total_interactions
        m.total_interactions = n + 1
        m.successful_interactions += 1 if event.successful else 0
        m.success_rate = m.successful_interactions / m.total_interactions
        m.accuracy = (m.accuracy * n + event.accuracy) / (n + 1)
        m.avg_response_time_ms = (m.avg_response_time_ms * n + event.response_time_ms) / (n + 1)
        m.hints_requested = max(m.hints_requested, interaction.hints_shown)
        m.engagement_level = _clamp(1 - (now - self._last_interaction_time) / ENGAGEMENT_DECAY_MS)
        self._last_interaction_time = now

        if self.config.tracking.enable_heatmap:
            self.heatmap.ingest(event)
        self._touch()

        if self.config.tracking.enable_pattern_detection:
            self._nudge_user_state(self.get_error_patterns())
        m.frustration_level = self.user_state.frustration

        recommendation = self.check_intervention_needed()
        if recommendation is not None and recommendation.urgency == Urgency.HIGH:
            logger.warning(
                "Intervention needed session_id=%s type=%s reason=%s",
                self.session_id,
                recommendation.type,
                recommendation.reason,
            )

        self._track(
            "interaction",
            interaction_id=event.id,
            kind=str(event.kind),
            accuracy=event.accuracy,
            successful=event.successful,
        )
        self.sync_status = SyncStatus.PENDING
        self._processing_times.append((time.perf_counter() - started) * 1000)
        return event

    def record_feedback(self, event_id: str, feedback: FeedbackEvent) -> bool:
        attached = self.buffer.attach_feedback(event_id, feedback)
        if attached:
            self._touch()
        return attached

    def record_ai_suggestion(self, usage: AISuggestionUsage) -> None:
        self._require(SessionStatus.ACTIVE, operation="record AI suggestion")
        self._suggestions.append(usage)
        self._metrics.ai_interventions += 1
        self._track("ai_suggestion", suggestion_id=usage.suggestion_id, accepted=usage.accepted)
        self.sync_status = SyncStatus.PENDING

    def adjust_difficulty(
        self, difficulty: Difficulty | str, reason: DifficultyReason = DifficultyReason.AI_ADJUSTMENT
    ) -> None:
        self._require(SessionStatus.ACTIVE, operation="adjust difficulty")
        self._metrics.difficulty_progression.append(
            DifficultyStep(timestamp=self.clock(), difficulty=Difficulty(difficulty), reason=reason)
        )
        self._interactions_at_difficulty = self._metrics.total_interactions
        self.sync_status = SyncStatus.PENDING

    def optimize_difficulty(self) -> DifficultyStep | None:
        """Raise or lower difficulty one step from the success rate at the current level.

        Only interactions recorded since the last difficulty change count, so a
        fresh level needs a full intervention window before it moves again.
        """
        self._require(SessionStatus.ACTIVE, operation="optimize difficulty")
        since_change = self._metrics.total_interactions - self._interactions_at_difficulty
        thresholds = self.config.intervention
        if since_change < thresholds.window:
            return None

        current = self._metrics.difficulty_progression[-1].difficulty
        change = recommend_difficulty(self.buffer.recent(thresholds.window), current, thresholds)
        if change is None:
            return None
        difficulty, reason = change
        self.adjust_difficulty(difficulty, reason)
        logger.info(
            "Difficulty changed session_id=%s from=%s to=%s reason=%s",
            self.session_id,
            current,
            difficulty,
            reason,
        )
        self._track("difficulty_change", difficulty=str(difficulty), reason=str(reason))
        return self._metrics.difficulty_progression[-1]

    def update_user_state(self, **changes: float) -> UserState:
        unknown = set(changes) - USER_STATE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user state fields: {sorted(unknown)}")
        for name, value in changes.items():
            if name == "attention_span_ms":
                setattr(self.user_state, name, max(0, int(value)))
            else:
                setattr(self.user_state, name, _clamp(float(value)))
        self._metrics.frustration_level = self.user_state.frustration
        self._touch()
        return replace(self.user_state)

    def clear_buffer(self) -> None:
        self.buffer.clear()
        self.heatmap.clear()
        self._touch()

    # --- derived views ---

    def get_instant_metrics(self) -> InstantMetrics:
        return self._cached(
            "instant",
            lambda: instant_metrics(self.buffer.all(), self.user_state, self.config.tracking.metrics_window),
        )

    def get_error_patterns(self) -> list[ErrorPattern]:
        if not self.config.tracking.enable_pattern_detection:
            return []
        return self._cached("patterns", lambda: detect_patterns(self.buffer.all(), self.config.patterns))

    def get_prediction(self) -> Prediction:
        tracking = self.config.tracking
        return self._cached(
            "prediction",
            lambda: predict(
                self.buffer.all() if tracking.enable_prediction else [],
                self.user_state,
                self.config.intervention.frustration_level,
                self.config.prediction,
            ),
        )

    def check_intervention_needed(self) -> Recommendation | None:
        thresholds = self.config.intervention
        window = max(thresholds.window, thresholds.min_events)
        return self._cached("intervention", lambda: evaluate(self.buffer.recent(window), thresholds, self.user_state))

    def get_heatmap(self) -> Heatmap:
        end = self._end_time if self._end_time is not None else self.clock()
        return self.heatmap.snapshot(self._start_time, end)

    def active_time_ms(self) -> int:
        if self.status == SessionStatus.NOT_STARTED:
            return 0
        now = self._end_time if self._end_time is not None else self.clock()
        paused = self._metrics.time_paused_ms
        open_pause = self._open_pause()
        if open_pause is not None:
            paused += now - open_pause.start_time
        return max(0, now - self._start_time - paused)

    def get_metrics(self) -> SessionMetrics:
        metrics = replace(
            self._metrics,
            dropped_events=self.buffer.dropped_events,
            difficulty_progression=list(self._metrics.difficulty_progression),
        )
        if self.status not in TERMINAL_STATUSES:
            metrics.time_active_ms = self.active_time_ms()
        return metrics

    @property
    def state(self) -> TrackingState:
        return TrackingState(
            status=self.status,
            session_id=self.session_id,
            buffer_usage=self.buffer.usage,
            dropped_events=self.buffer.dropped_events,
            sync_status=self.sync_status,
            last_interaction=self.buffer.last(),
        )

    def get_performance_report(self) -> PerformanceReport:
        if self.status == SessionStatus.NOT_STARTED:
            duration = 0
        else:
            duration = (self._end_time if self._end_time is not None else self.clock()) - self._start_time
        return performance_report(
            duration_ms=duration,
            total_events=len(self.buffer),
            dropped_events=self.buffer.dropped_events,
            processing_times_ms=list(self._processing_times),
        )

    def snapshot(self) -> SessionData:
        if self.session_config is None or self.session_id is None:
            raise InvalidTransition("snapshot session", self.status)
        return SessionData(
            id=self.session_id,
            activity_id=self.session_config.activity_id,
            user_id=self.session_config.user_id,
            start_time=self._start_time,
            end_time=self._end_time,
            status=self.status,
            metrics=self.get_metrics(),
            environment=replace(self._environment),
            interactions=self.buffer.all(),
            pause_intervals=[replace(p) for p in self._pauses],
            ai_suggestions=[replace(s) for s in self._suggestions],
        )

    def export_session_data(self, session_id: str | None = None) -> str | None:
        """Export the live session, or a stored one by id.

        Without an id and without a live session the most recent stored
        session is exported. Returns None for an unknown id.
        """
        if self.session_id is not None and session_id in (None, self.session_id):
            return export_session(self)
        if session_id is None:
            sessions = self.history()
            if not sessions:
                raise InvalidTransition("export session", self.status)
            return export_stored_session(sessions[0], self.config)
        session = self.find_session(session_id)
        if session is None:
            return None
        return export_stored_session(session, self.config)

    # --- persistence ---

    def force_sync(self) -> bool:
        """Save the current snapshot now. Returns False if there is nothing to save or the save failed."""
        if self.session_id is None:
            return False
        self._persist(self.snapshot(), force=True)
        return self.sync_status == SyncStatus.SYNCED

    def history(self) -> list[SessionData]:
        if self.store is None:
            return list(self.recent_sessions)
        try:
            return self.store.load_all()
        except Exception as e:
            logger.warning("Loading session history failed: %s", e)
            return list(self.recent_sessions)

    def find_session(self, session_id: str) -> SessionData | None:
        if self.store is not None:
            try:
                return self.store.get(session_id)
            except Exception as e:
                logger.warning("Loading session failed session_id=%s: %s", session_id, e)
        return next((s for s in self.recent_sessions if s.id == session_id), None)

    def clear_history(self) -> bool:
        """Forget past sessions. Returns False if the store could not be cleared."""
        self.recent_sessions = []
        if self.store is None:
            return True
        try:
            self.store.clear()
        except Exception as e:
            logger.warning("Clearing session history failed: %s", e)
            return False
        logger.info("Session history cleared")
        return True

    # --- internals ---

    def _require(self, status: SessionStatus, operation: str) -> None:
        if self.status != status:
            raise InvalidTransition(operation, self.status)

    def _open_pause(self) -> PauseInterval | None:
        if self._pauses and self._pauses[-1].end_time is None:
            return self._pauses[-1]
        return None

    def _close_pause(self, now: int) -> None:
        pause = self._open_pause()
        if pause is None:
            return
        pause.end_time = now
        pause.duration_ms = now - pause.start_time
        self._metrics.time_paused_ms += pause.duration_ms

    def _nudge_user_state(self, patterns: list[ErrorPattern]) -> None:
        step = self.config.tracking.user_state_nudge
        if not patterns or step == 0:
            return
        s = self.user_state
        for pattern in patterns:
            if pattern.type == PatternType.ACCURACY:
                s.frustration = _clamp(s.frustration + step * pattern.severity)
            elif pattern.type == PatternType.TIMING:
                s.fatigue = _clamp(s.fatigue + step * pattern.severity)
            elif pattern.type == PatternType.SPATIAL:
                s.confidence = _clamp(s.confidence - step * pattern.severity)
        self._touch()

    def _touch(self) -> None:
        self._version += 1

    def _cached(self, key: str, compute: Callable[[], Any]) -> Any:
        if self._cache_version != self._version:
            self._cache.clear()
            self._cache_version = self._version
        if key not in self._cache:
            self._cache[key] = compute()
        return self._cache[key]

    def _persist(self, session: SessionData, force: bool = False) -> None:
        if self.store is None:
            return
        if not force and not self.auto_save:
            return
        try:
            self.store.save(session)
            self.sync_status = SyncStatus.SYNCED
        except Exception as e:
            self.sync_status = SyncStatus.ERROR
            logger.warning("Session save failed session_id=%s: %s", session.id, e)

    def _track(self, event_type: str, **payload: Any) -> None:
        if self.session_config is not None and not self.session_config.enable_analytics:
            return
        try:
            self.sink.track({"type": event_type, "session_id": self.session_id, "timestamp": self.clock(), **payload})
        except Exception as e:
            logger.warning("Analytics tracking failed type=%s: %s", event_type, e)
