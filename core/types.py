from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class SessionStatus(StrEnum):
    NOT_STARTED = "not-started"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    TIMEOUT = "timeout"


TERMINAL_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.INTERRUPTED, SessionStatus.TIMEOUT})


class InteractionKind(StrEnum):
    TAP = "tap"
    DOUBLE_TAP = "double-tap"
    LONG_PRESS = "long-press"
    DRAG = "drag"
    SWIPE = "swipe"
    PINCH = "pinch"
    ROTATE = "rotate"
    VOICE = "voice"
    GESTURE = "gesture"
    HOVER = "hover"
    MULTI_FINGER = "multi-finger"


class FeedbackKind(StrEnum):
    VISUAL = "visual"
    AUDITORY = "auditory"
    HAPTIC = "haptic"
    COMBINED = "combined"


class PatternType(StrEnum):
    ACCURACY = "accuracy"
    TIMING = "timing"
    SPATIAL = "spatial"


class PatternTrend(StrEnum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class MetricTrend(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class InterventionType(StrEnum):
    BREAK = "break"
    HINT = "hint"
    DIFFICULTY_ADJUST = "difficulty-adjust"


class Urgency(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IntensityBucket(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SyncStatus(StrEnum):
    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"


class PauseReason(StrEnum):
    USER_INITIATED = "user-initiated"
    AI_SUGGESTED = "ai-suggested"
    TIMEOUT = "timeout"
    PARENT_CONTROL = "parent-control"


class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class DifficultyReason(StrEnum):
    INITIAL = "initial"
    SUCCESS = "success"
    STRUGGLE = "struggle"
    AI_ADJUSTMENT = "ai-adjustment"


class SuggestionResponse(StrEnum):
    IMMEDIATE = "immediate"
    DELAYED = "delayed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class Position:
    x: float
    y: float
    pressure: float | None = None


@dataclass
class UserState:
    engagement: float = 1.0
    frustration: float = 0.0
    confidence: float = 0.8
    fatigue: float = 0.0
    attention_span_ms: int = 600_000


@dataclass(frozen=True)
class FeedbackEvent:
    kind: FeedbackKind
    intensity: float
    duration_ms: float
    delay_ms: float = 0.0
    effectiveness: float | None = None


@dataclass(frozen=True)
class InteractionContext:
    activity_id: str
    attempt_number: int
    hints_shown: int
    user_state: UserState
    phase_id: str | None = None


@dataclass(frozen=True)
class InteractionEvent:
    id: str
    session_id: str
    timestamp: int  # monotonic ms
    kind: InteractionKind
    start: Position
    duration_ms: float
    accuracy: float
    response_time_ms: float
    successful: bool
    context: InteractionContext
    end: Position | None = None
    path: list[Position] = field(default_factory=list)
    target_id: str | None = None
    feedback: FeedbackEvent | None = None


@dataclass
class InteractionInput:
    """What the UI boundary supplies; id, timestamp and context are filled in on record."""

    kind: InteractionKind
    start: Position
    duration_ms: float
    accuracy: float
    response_time_ms: float
    successful: bool
    attempt_number: int = 1
    hints_shown: int = 0
    end: Position | None = None
    path: list[Position] = field(default_factory=list)
    target_id: str | None = None
    phase_id: str | None = None


@dataclass
class PauseInterval:
    start_time: int
    reason: PauseReason = PauseReason.USER_INITIATED
    end_time: int | None = None
    duration_ms: int | None = None


@dataclass
class SessionEnvironment:
    device_type: str = "tablet"
    orientation: str = "landscape"
    screen_width: int = 1920
    screen_height: int = 1080
    volume: float = 0.8
    is_online: bool = True
    battery_level: float | None = None
    time_of_day: str = "morning"


@dataclass
class SessionConfig:
    activity_id: str
    user_id: str = "default"
    difficulty: Difficulty = Difficulty.EASY
    duration_ms: int | None = None  # None = unbounded
    enable_ai: bool = True
    enable_analytics: bool = True
    auto_save: bool = True  # False skips lifecycle and periodic saves; force_sync still saves
    environment: SessionEnvironment | None = None


@dataclass
class DifficultyStep:
    timestamp: int
    difficulty: Difficulty
    reason: DifficultyReason


@dataclass
class AISuggestionUsage:
    suggestion_id: str
    type: InterventionType
    timestamp: int
    accepted: bool
    effectiveness: float | None = None
    user_response: SuggestionResponse | None = None


@dataclass
class SessionMetrics:
    total_interactions: int = 0
    successful_interactions: int = 0
    success_rate: float = 0.0
    accuracy: float = 0.0
    avg_response_time_ms: float = 0.0
    engagement_level: float = 1.0
    frustration_level: float = 0.0
    completion_rate: float = 0.0
    time_active_ms: int = 0
    time_paused_ms: int = 0
    hints_requested: int = 0
    ai_interventions: int = 0
    dropped_events: int = 0
    difficulty_progression: list[DifficultyStep] = field(default_factory=list)


@dataclass
class SessionData:
    id: str
    activity_id: str
    user_id: str
    start_time: int
    status: SessionStatus
    metrics: SessionMetrics
    environment: SessionEnvironment
    interactions: list[InteractionEvent] = field(default_factory=list)
    pause_intervals: list[PauseInterval] = field(default_factory=list)
    ai_suggestions: list[AISuggestionUsage] = field(default_factory=list)
    end_time: int | None = None


@dataclass
class ErrorPattern:
    type: PatternType
    frequency: float
    severity: float
    trend: PatternTrend
    recommendation: str
    hotspots: list[Position] = field(default_factory=list)


@dataclass
class HeatmapPoint:
    x: float  # grid-cell origin
    y: float
    intensity: float
    interaction_count: int
    avg_accuracy: float
    avg_response_time_ms: float


@dataclass
class Heatmap:
    points: list[HeatmapPoint]
    width: int
    height: int
    intensity: IntensityBucket
    start_time: int
    end_time: int


@dataclass
class Prediction:
    next_success_probability: float
    estimated_frustration_ms: float
    confidence: float
    sample_count: int
    recommended_intervention: InterventionType | None = None


@dataclass
class Recommendation:
    type: InterventionType
    urgency: Urgency
    reason: str
    suggested_action: str
    confidence: float


@dataclass
class InstantMetrics:
    current_accuracy: float
    recent_response_time_ms: float
    engagement_level: float
    interaction_rate: float  # per minute
    trend: MetricTrend


@dataclass
class TrackingState:
    status: SessionStatus
    session_id: str | None
    buffer_usage: float
    dropped_events: int
    sync_status: SyncStatus
    last_interaction: InteractionEvent | None = None


@dataclass
class PerformanceReport:
    tracking_duration_ms: int
    total_events: int
    events_per_second: float
    average_latency_ms: float
    error_rate: float
    memory_mb: float
    recommendations: list[str] = field(default_factory=list)


@dataclass
class ProactiveSuggestion:
    id: str
    timestamp: int
    recommendation: Recommendation
    expires_at: int
    action_required: bool = True


@dataclass
class ExportDocument:
    version: str
    exported_at: str
    session: SessionData
    metrics: SessionMetrics
    user_state: UserState
    heatmap: Heatmap
    patterns: list[ErrorPattern]
    prediction: Prediction
    config: dict[str, Any] = field(default_factory=dict)
