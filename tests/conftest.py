import itertools

import pytest

from core.config import Config, load_config
from core.types import (
    InteractionContext,
    InteractionEvent,
    InteractionInput,
    InteractionKind,
    Position,
    SessionConfig,
    UserState,
)
from session.controller import SessionController
from storage.store import SessionStore


class FakeClock:
    """Manual millisecond clock. Time moves only through advance()."""

    def __init__(self, start: int = 1_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def config() -> Config:
    """Load default config for tests."""
    return load_config()


@pytest.fixture
def temp_config(tmp_path):
    """Create a temp config TOML for isolated tests."""
    toml_content = """
[server]
host = "127.0.0.1"
port = 9000
[tracking]
buffer_size = 50
grid_size = 10
[intervention]
consecutive_errors = 4
[proactive]
cooldown_ms = 1000
[storage]
enabled = false
[analytics]
backend = "disabled"
"""
    config_path = tmp_path / "test.toml"
    config_path.write_text(toml_content)
    return load_config(str(config_path))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def controller(config, clock) -> SessionController:
    return SessionController(config, clock=clock)


@pytest.fixture
def active_controller(controller) -> SessionController:
    controller.start_session(SessionConfig(activity_id="a1", user_id="child-1"))
    return controller


@pytest.fixture
def store(tmp_path):
    s = SessionStore(str(tmp_path / "sessions.db"))
    yield s
    s.close()


@pytest.fixture
def make_event():
    """Factory for buffer-ready events with increasing ids and timestamps."""
    counter = itertools.count()

    def _make(
        accuracy: float = 0.8,
        successful: bool = True,
        response_time_ms: float = 500.0,
        x: float = 100.0,
        y: float = 100.0,
        duration_ms: float = 120.0,
        timestamp: int | None = None,
        event_id: str | None = None,
    ) -> InteractionEvent:
        n = next(counter)
        return InteractionEvent(
            id=event_id or f"evt_{n}",
            session_id="session_test",
            timestamp=timestamp if timestamp is not None else n * 1_000,
            kind=InteractionKind.TAP,
            start=Position(x=x, y=y),
            duration_ms=duration_ms,
            accuracy=accuracy,
            response_time_ms=response_time_ms,
            successful=successful,
            context=InteractionContext(
                activity_id="a1", attempt_number=1, hints_shown=0, user_state=UserState()
            ),
        )

    return _make


@pytest.fixture
def make_input():
    def _make(
        accuracy: float = 0.8,
        successful: bool = True,
        response_time_ms: float = 500.0,
        x: float = 100.0,
        y: float = 100.0,
        duration_ms: float = 120.0,
        hints_shown: int = 0,
    ) -> InteractionInput:
        return InteractionInput(
            kind=InteractionKind.TAP,
            start=Position(x=x, y=y),
            duration_ms=duration_ms,
            accuracy=accuracy,
            response_time_ms=response_time_ms,
            successful=successful,
            hints_shown=hints_shown,
        )

    return _make
