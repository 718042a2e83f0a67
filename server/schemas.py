from typing import Literal

from pydantic import BaseModel, Field

from core.types import (
    Difficulty,
    DifficultyReason,
    FeedbackEvent,
    FeedbackKind,
    InteractionInput,
    InteractionKind,
    PauseReason,
    Position,
    SessionConfig,
    SessionEnvironment,
)


class PositionModel(BaseModel):
    x: float
    y: float
    pressure: float | None = None

    def to_position(self) -> Position:
        return Position(x=self.x, y=self.y, pressure=self.pressure)


class EnvironmentModel(BaseModel):
    device_type: str = "tablet"
    orientation: str = "landscape"
    screen_width: int = 1920
    screen_height: int = 1080
    volume: float = 0.8
    is_online: bool = True
    battery_level: float | None = None
    time_of_day: str = "morning"


class StartSessionRequest(BaseModel):
    activity_id: str
    user_id: str = "default"
    difficulty: Difficulty = Difficulty.EASY
    duration_ms: int | None = None
    enable_ai: bool = True
    enable_analytics: bool = True
    auto_save: bool = True
    environment: EnvironmentModel | None = None

    def to_session_config(self) -> SessionConfig:
        env = SessionEnvironment(**self.environment.model_dump()) if self.environment else None
        return SessionConfig(
            activity_id=self.activity_id,
            user_id=self.user_id,
            difficulty=self.difficulty,
            duration_ms=self.duration_ms,
            enable_ai=self.enable_ai,
            enable_analytics=self.enable_analytics,
            auto_save=self.auto_save,
            environment=env,
        )


class PauseRequest(BaseModel):
    reason: PauseReason = PauseReason.USER_INITIATED


class EndSessionRequest(BaseModel):
    status: Literal["completed", "interrupted", "timeout"] = "completed"


class InteractionRequest(BaseModel):
    kind: InteractionKind
    start: PositionModel
    duration_ms: float
    accuracy: float
    response_time_ms: float
    successful: bool
    attempt_number: int = 1
    hints_shown: int = 0
    end: PositionModel | None = None
    path: list[PositionModel] = Field(default_factory=list)
    target_id: str | None = None
    phase_id: str | None = None

    def to_input(self) -> InteractionInput:
        # Range checks happen in the buffer so rejects are counted, not 422'd
        return InteractionInput(
            kind=self.kind,
            start=self.start.to_position(),
            duration_ms=self.duration_ms,
            accuracy=self.accuracy,
            response_time_ms=self.response_time_ms,
            successful=self.successful,
            attempt_number=self.attempt_number,
            hints_shown=self.hints_shown,
            end=self.end.to_position() if self.end else None,
            path=[p.to_position() for p in self.path],
            target_id=self.target_id,
            phase_id=self.phase_id,
        )


class FeedbackRequest(BaseModel):
    kind: FeedbackKind
    intensity: float = Field(ge=0, le=1)
    duration_ms: float = Field(ge=0)
    delay_ms: float = Field(default=0.0, ge=0)
    effectiveness: float | None = Field(default=None, ge=0, le=1)

    def to_feedback(self) -> FeedbackEvent:
        return FeedbackEvent(**self.model_dump())


class UserStateUpdate(BaseModel):
    engagement: float | None = None
    frustration: float | None = None
    confidence: float | None = None
    fatigue: float | None = None
    attention_span_ms: int | None = None


class DifficultyRequest(BaseModel):
    difficulty: Difficulty
    reason: DifficultyReason = DifficultyReason.AI_ADJUSTMENT


class PostponeRequest(BaseModel):
    duration_ms: int = Field(default=60_000, ge=0)
