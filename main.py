import logging
import sys

import uvicorn

from core.config import Config, load_config
from core.types import InteractionInput, InteractionKind, Position, SessionConfig
from session.controller import SessionController
from storage.sink import LoggingSink


class StepClock:
    """Deterministic clock for the scripted session: time only moves when told to."""

    def __init__(self) -> None:
        self.now = 0

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def setup_logging(config: Config) -> None:
    logging.basicConfig(
        level=config.logging.level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def simulate(config: Config) -> None:
    """Run a scripted session where the child starts well and then struggles."""
    clock = StepClock()
    controller = SessionController(config, clock=clock, sink=LoggingSink())
    controller.start_session(SessionConfig(activity_id="shapes-1", user_id="demo"))

    script = [(0.9, True)] * 5 + [(0.25, False)] * 5
    for i, (accuracy, successful) in enumerate(script):
        clock.advance(2_000)
        controller.record_interaction(
            InteractionInput(
                kind=InteractionKind.TAP,
                start=Position(x=100 + (i % 3) * 10, y=100),
                duration_ms=150,
                accuracy=accuracy,
                response_time_ms=800 + i * 150,
                successful=successful,
            )
        )

    metrics = controller.get_instant_metrics()
    prediction = controller.get_prediction()
    recommendation = controller.check_intervention_needed()

    print(f"Accuracy (recent): {metrics.current_accuracy:.2f}  trend: {metrics.trend}")
    print(f"Interaction rate: {metrics.interaction_rate:.1f}/min")
    for pattern in controller.get_error_patterns():
        print(f"Pattern: {pattern.type} severity={pattern.severity:.2f} -> {pattern.recommendation}")
    print(
        f"Next success: {prediction.next_success_probability:.2f}  "
        f"frustration in: {prediction.estimated_frustration_ms / 1000:.0f}s  "
        f"confidence: {prediction.confidence:.2f}"
    )
    if recommendation:
        print(f"Intervention: {recommendation.type} ({recommendation.urgency}) {recommendation.suggested_action}")
    else:
        print("Intervention: none")

    final = controller.end_session()
    print(f"Session {final.id} {final.status}: {final.metrics.total_interactions} interactions")


def server(config: Config) -> None:
    """Start the FastAPI server."""
    print(f"Server: http://{config.server.host}:{config.server.port}")
    uvicorn.run(
        "server.app:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
    )


if __name__ == "__main__":
    config = load_config()
    setup_logging(config)
    if "--simulate" in sys.argv:
        simulate(config)
    else:
        server(config)
