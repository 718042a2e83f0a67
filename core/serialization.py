from typing import Any

from pydantic import TypeAdapter

from core.types import ExportDocument, SessionData

_session_adapter = TypeAdapter(SessionData)
_document_adapter = TypeAdapter(ExportDocument)


def session_to_json(session: SessionData) -> str:
    return _session_adapter.dump_json(session).decode()


def session_from_json(text: str | bytes) -> SessionData:
    return _session_adapter.validate_json(text)


def session_to_dict(session: SessionData) -> dict[str, Any]:
    return _session_adapter.dump_python(session, mode="json")


def document_to_json(document: ExportDocument, indent: int | None = 2) -> str:
    return _document_adapter.dump_json(document, indent=indent).decode()


def document_from_json(text: str | bytes) -> ExportDocument:
    return _document_adapter.validate_json(text)


def to_jsonable(value: Any) -> Any:
    """Convert any of the dataclass value types into JSON-compatible python objects."""
    return TypeAdapter(type(value)).dump_python(value, mode="json")
