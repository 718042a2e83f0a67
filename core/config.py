import tomli
from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 7860


class TrackingConfig(BaseModel):
    buffer_size: int = Field(default=1000, gt=0)
    enable_heatmap: bool = True
    enable_pattern_detection: bool = True
    enable_prediction: bool = True
    grid_size: int = Field(default=20, gt=0)
    heatmap_width: int = 1920
    heatmap_height: int = 1080
    metrics_window: int = Field(default=5, gt=0)
    user_state_nudge: float = Field(default=0.05, ge=0, le=1)


class PatternConfig(BaseModel):
    min_events: int = Field(default=5, gt=0)
    window: int = Field(default=20, gt=1)
    accuracy_slope: float = -0.1
    timing_slope: float = 200.0
    min_spatial_errors: int = Field(default=3, gt=0)
    cluster_radius: float = Field(default=40.0, gt=0)
    cluster_min_points: int = Field(default=3, gt=0)
    spatial_severity: float = Field(default=0.6, ge=0, le=1)


class PredictionConfig(BaseModel):
    min_events: int = Field(default=3, gt=0)
    window: int = Field(default=10, gt=0)
    default_frustration_ms: float = 300_000
    base_frustration_ms: float = 30_000
    min_frustration_ms: float = 1_000
    confidence_cap: float = Field(default=0.9, ge=0, le=1)
    confidence_samples: int = Field(default=20, gt=0)
    default_confidence: float = Field(default=0.1, ge=0, le=1)


class InterventionConfig(BaseModel):
    consecutive_errors: int = Field(default=3, gt=0)
    frustration_level: float = Field(default=0.7, ge=0, le=1)
    accuracy_floor: float = Field(default=0.3, ge=0, le=1)
    window: int = Field(default=5, gt=0)
    min_events: int = Field(default=3, gt=0)
    raise_success_rate: float = Field(default=0.85, ge=0, le=1)
    lower_success_rate: float = Field(default=0.4, ge=0, le=1)


class ProactiveConfig(BaseModel):
    enabled: bool = True
    cooldown_ms: int = Field(default=30_000, gt=0)
    suggestion_ttl_ms: int = Field(default=120_000, gt=0)
    optimize_difficulty: bool = True


class StorageConfig(BaseModel):
    enabled: bool = True
    db_path: str = "~/.lince/sessions.db"
    sync_interval_ms: int = Field(default=30_000, gt=0)


class AnalyticsConfig(BaseModel):
    backend: str = "log"
    url: str = "http://localhost:8080/v1/events"
    api_key_env: str = "LINCE_ANALYTICS_KEY"
    timeout_s: float = 5.0
    max_queue: int = Field(default=500, gt=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"


class Config(BaseModel):
    server: ServerConfig = ServerConfig()
    tracking: TrackingConfig = TrackingConfig()
    patterns: PatternConfig = PatternConfig()
    prediction: PredictionConfig = PredictionConfig()
    intervention: InterventionConfig = InterventionConfig()
    proactive: ProactiveConfig = ProactiveConfig()
    storage: StorageConfig = StorageConfig()
    analytics: AnalyticsConfig = AnalyticsConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(path: str = "config/default.toml") -> Config:
    """Load config from TOML file, validate with Pydantic."""
    with open(path, "rb") as f:
        data = tomli.load(f)
    return Config(**data)
