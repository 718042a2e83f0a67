from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response

from core.config import Config, load_config
from core.errors import ConfigurationError, InvalidTransition
from core.serialization import to_jsonable
from server.schemas import (
    DifficultyRequest,
    EndSessionRequest,
    FeedbackRequest,
    InteractionRequest,
    PauseRequest,
    PostponeRequest,
    StartSessionRequest,
    UserStateUpdate,
)
from server.suggestion_handler import SuggestionHandler
from session.advisor import ProactiveAdvisor
from session.controller import SessionController
from session.history import summarize_sessions
from storage import create_storage
from storage.sync import AutoSync


def create_app(config: Config | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        cfg = config or load_config()
        store, sink = create_storage(cfg)
        controller = SessionController(cfg, store=store, sink=sink)
        advisor = ProactiveAdvisor(controller, cfg.proactive)
        autosync = AutoSync(controller, sink, cfg.storage.sync_interval_ms)
        autosync.start()

        app.state.controller = controller
        app.state.advisor = advisor
        app.state.autosync = autosync

        yield

        # Cleanup
        await advisor.stop()
        await autosync.stop()
        if store is not None:
            store.close()

    app = FastAPI(title="Lince", lifespan=lifespan)

    @app.exception_handler(InvalidTransition)
    async def invalid_transition(request: Request, exc: InvalidTransition) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    def controller() -> SessionController:
        return app.state.controller

    def advisor() -> ProactiveAdvisor:
        return app.state.advisor

    @app.get("/health")
    async def health() -> dict[str, Any]:
        c = controller()
        return {
            "status": "ok",
            "session": c.status.value,
            "sync": c.sync_status.value,
            "advisor_running": advisor().running,
        }

    @app.get("/state")
    async def state() -> Any:
        return to_jsonable(controller().state)

    # --- session lifecycle ---

    @app.post("/sessions")
    async def start_session(body: StartSessionRequest) -> Any:
        session = controller().start_session(body.to_session_config())
        if body.enable_ai:
            advisor().start()
        return to_jsonable(session)

    @app.post("/sessions/pause")
    async def pause_session(body: PauseRequest | None = None) -> dict[str, Any]:
        controller().pause_session(body.reason if body else PauseRequest().reason)
        return {"status": controller().status.value}

    @app.post("/sessions/resume")
    async def resume_session() -> dict[str, Any]:
        paused_ms = controller().resume_session()
        return {"status": controller().status.value, "time_paused_ms": paused_ms}

    @app.post("/sessions/end")
    async def end_session(body: EndSessionRequest | None = None) -> Any:
        session = controller().end_session(body.status if body else "completed")
        return to_jsonable(session)

    @app.post("/sessions/sync")
    async def force_sync() -> dict[str, Any]:
        return {"saved": controller().force_sync(), "sync": controller().sync_status.value}

    @app.get("/sessions/history")
    async def history() -> Any:
        sessions = controller().history()
        return {
            "sessions": [to_jsonable(s) for s in sessions],
            "summary": to_jsonable(summarize_sessions(sessions)),
        }

    @app.delete("/sessions/history")
    async def clear_history() -> dict[str, Any]:
        return {"cleared": controller().clear_history()}

    # --- recording ---

    @app.post("/interactions")
    async def record_interaction(body: InteractionRequest) -> dict[str, Any]:
        c = controller()
        event = c.record_interaction(body.to_input())
        if event is None:
            return {"accepted": False, "dropped_events": c.buffer.dropped_events}
        return {"accepted": True, "event": to_jsonable(event)}

    @app.post("/interactions/{event_id}/feedback")
    async def record_feedback(event_id: str, body: FeedbackRequest) -> dict[str, Any]:
        if not controller().record_feedback(event_id, body.to_feedback()):
            raise HTTPException(status_code=404, detail=f"Unknown interaction: {event_id}")
        return {"ok": True}

    @app.patch("/user-state")
    async def update_user_state(body: UserStateUpdate) -> Any:
        return to_jsonable(controller().update_user_state(**body.model_dump(exclude_none=True)))

    @app.post("/difficulty")
    async def adjust_difficulty(body: DifficultyRequest) -> dict[str, Any]:
        controller().adjust_difficulty(body.difficulty, body.reason)
        return {"ok": True}

    @app.post("/difficulty/optimize")
    async def optimize_difficulty() -> dict[str, Any]:
        step = controller().optimize_difficulty()
        return {"changed": step is not None, "step": to_jsonable(step) if step else None}

    @app.delete("/buffer")
    async def clear_buffer() -> dict[str, Any]:
        controller().clear_buffer()
        return {"ok": True}

    # --- derived views ---

    @app.get("/metrics/instant")
    async def instant_metrics() -> Any:
        return to_jsonable(controller().get_instant_metrics())

    @app.get("/metrics")
    async def metrics() -> Any:
        return to_jsonable(controller().get_metrics())

    @app.get("/patterns")
    async def patterns() -> Any:
        return [to_jsonable(p) for p in controller().get_error_patterns()]

    @app.get("/prediction")
    async def prediction() -> Any:
        return to_jsonable(controller().get_prediction())

    @app.get("/intervention")
    async def intervention() -> Any:
        rec = controller().check_intervention_needed()
        return {"recommendation": to_jsonable(rec) if rec else None}

    @app.get("/heatmap")
    async def heatmap() -> Any:
        return to_jsonable(controller().get_heatmap())

    @app.get("/performance")
    async def performance() -> Any:
        return to_jsonable(controller().get_performance_report())

    @app.get("/export")
    async def export(session_id: str | None = None) -> Response:
        content = controller().export_session_data(session_id)
        if content is None:
            raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
        return Response(content=content, media_type="application/json")

    # --- proactive suggestions ---

    @app.get("/suggestions")
    async def suggestions() -> Any:
        return [to_jsonable(s) for s in advisor().active()]

    @app.post("/suggestions/{suggestion_id}/accept")
    async def accept_suggestion(suggestion_id: str) -> Any:
        usage = advisor().accept(suggestion_id)
        if usage is None:
            raise HTTPException(status_code=404, detail=f"Unknown suggestion: {suggestion_id}")
        return to_jsonable(usage)

    @app.post("/suggestions/{suggestion_id}/dismiss")
    async def dismiss_suggestion(suggestion_id: str) -> Any:
        usage = advisor().dismiss(suggestion_id)
        if usage is None:
            raise HTTPException(status_code=404, detail=f"Unknown suggestion: {suggestion_id}")
        return to_jsonable(usage)

    @app.post("/suggestions/{suggestion_id}/postpone")
    async def postpone_suggestion(suggestion_id: str, body: PostponeRequest | None = None) -> Any:
        postponed = advisor().postpone(suggestion_id, body.duration_ms if body else PostponeRequest().duration_ms)
        if postponed is None:
            raise HTTPException(status_code=404, detail=f"Unknown suggestion: {suggestion_id}")
        return to_jsonable(postponed)

    @app.websocket("/ws/suggestions")
    async def websocket_suggestions(ws: WebSocket) -> None:
        await ws.accept()
        handler = SuggestionHandler(ws, advisor())
        try:
            await handler.run()
        except WebSocketDisconnect:
            pass

    return app


app = create_app()
