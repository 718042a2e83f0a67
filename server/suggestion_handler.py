import json
from typing import Any

from fastapi import WebSocket

from core.errors import InvalidTransition
from core.serialization import to_jsonable
from core.types import ProactiveSuggestion
from session.advisor import ProactiveAdvisor


class SuggestionHandler:
    """WebSocket protocol handler: pushes proactive suggestions, receives the child's responses."""

    def __init__(self, ws: WebSocket, advisor: ProactiveAdvisor):
        self.ws = ws
        self.advisor = advisor
        self._setup_callbacks()

    def _setup_callbacks(self) -> None:
        self.advisor.on_suggestion = self._on_suggestion

    def detach(self) -> None:
        if self.advisor.on_suggestion == self._on_suggestion:
            self.advisor.on_suggestion = None

    async def _on_suggestion(self, suggestion: ProactiveSuggestion) -> None:
        await self.ws.send_json({"type": "suggestion", "suggestion": to_jsonable(suggestion)})

    async def run(self) -> None:
        """Main loop, receive control messages until the client disconnects."""
        try:
            while True:
                message = await self.ws.receive()
                if message["type"] == "websocket.receive":
                    if message.get("text"):
                        await self._handle_text(message["text"])
                elif message["type"] == "websocket.disconnect":
                    break
        finally:
            self.detach()

    async def _handle_text(self, text: str) -> None:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            await self.ws.send_json({"type": "error", "message": "Invalid JSON"})
            return
        if not isinstance(data, dict):
            await self.ws.send_json({"type": "error", "message": "Expected a JSON object"})
            return
        await self._handle_control(data)

    async def _handle_control(self, data: dict[str, Any]) -> None:
        msg_type = data.get("type")
        suggestion_id = data.get("id", "")

        try:
            if msg_type == "accept":
                usage = self.advisor.accept(suggestion_id, data.get("effectiveness"))
                await self._ack("accepted", suggestion_id, usage is not None)

            elif msg_type == "dismiss":
                usage = self.advisor.dismiss(suggestion_id)
                await self._ack("dismissed", suggestion_id, usage is not None)

            elif msg_type == "postpone":
                postponed = self.advisor.postpone(suggestion_id, int(data.get("duration_ms", 60_000)))
                await self._ack("postponed", suggestion_id, postponed is not None)

            elif msg_type == "evaluate":
                suggestion = await self.advisor.evaluate_once()
                if suggestion is None:
                    await self.ws.send_json({"type": "no_suggestion"})

            elif msg_type == "list":
                await self.ws.send_json({
                    "type": "suggestions",
                    "suggestions": [to_jsonable(s) for s in self.advisor.active()],
                })

            else:
                await self.ws.send_json({"type": "error", "message": f"Unknown message type: {msg_type}"})

        except InvalidTransition as e:
            await self.ws.send_json({"type": "error", "message": str(e)})

    async def _ack(self, action: str, suggestion_id: str, ok: bool) -> None:
        await self.ws.send_json({"type": action, "id": suggestion_id, "ok": ok})
