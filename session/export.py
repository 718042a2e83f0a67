from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from analytics.heatmap import HeatmapAggregator
from analytics.patterns import detect_patterns
from analytics.prediction import predict
from core.config import Config
from core.serialization import document_from_json, document_to_json, to_jsonable
from core.types import ExportDocument, SessionData, UserState

if TYPE_CHECKING:
    from session.controller import SessionController

EXPORT_VERSION = "1.0"


def build_export_document(controller: "SessionController") -> ExportDocument:
    session = controller.snapshot()
    config = controller.config.model_dump(mode="json")
    if controller.session_config is not None:
        config["session"] = to_jsonable(controller.session_config)
    return ExportDocument(
        version=EXPORT_VERSION,
        exported_at=datetime.now(timezone.utc).isoformat(),
        session=session,
        metrics=session.metrics,
        user_state=replace(controller.user_state),
        heatmap=controller.get_heatmap(),
        patterns=controller.get_error_patterns(),
        prediction=controller.get_prediction(),
        config=config,
    )


def build_stored_document(session: SessionData, config: Config) -> ExportDocument:
    """Rebuild the derived views of a stored session from its interactions.

    The user state is the snapshot carried by the last interaction.
    """
    tracking = config.tracking
    events = session.interactions
    user_state = replace(events[-1].context.user_state) if events else UserState()

    heatmap = HeatmapAggregator(tracking.grid_size, tracking.heatmap_width, tracking.heatmap_height)
    for event in events:
        heatmap.ingest(event)
    end_time = session.end_time
    if end_time is None:
        end_time = events[-1].timestamp if events else session.start_time

    return ExportDocument(
        version=EXPORT_VERSION,
        exported_at=datetime.now(timezone.utc).isoformat(),
        session=session,
        metrics=session.metrics,
        user_state=user_state,
        heatmap=heatmap.snapshot(session.start_time, end_time),
        patterns=detect_patterns(events, config.patterns),
        prediction=predict(events, user_state, config.intervention.frustration_level, config.prediction),
        config=config.model_dump(mode="json"),
    )


def export_session(controller: "SessionController") -> str:
    """Serialize the session, its interactions, heatmap, metrics and config as JSON text."""
    return document_to_json(build_export_document(controller))


def export_stored_session(session: SessionData, config: Config) -> str:
    return document_to_json(build_stored_document(session, config))


def parse_export(text: str | bytes) -> ExportDocument:
    return document_from_json(text)
