"""Bridge frame envelopes and their JSON encoding."""

from __future__ import annotations

import dataclasses
import json
from pathlib import PurePath
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from emulator_shell.errors import InvalidArgumentError


class ErrorPayload(BaseModel):
    """Serialized form of an exception raised by a handler."""

    kind: str
    message: str
    command: str
    details: Any = None

    @classmethod
    def from_exception(cls, exc: BaseException, *, command: str) -> "ErrorPayload":
        details = getattr(exc, "details", None)
        filename = getattr(exc, "filename", None)
        if details is None and filename is not None:
            details = {"path": str(filename)}
        try:
            json.dumps(details)
        except (TypeError, ValueError):
            details = None
        return cls(kind=type(exc).__name__, message=str(exc), command=command, details=details)


class CallMessage(BaseModel):
    type: Literal["call"] = "call"
    id: str
    name: str
    args: List[Any] = Field(default_factory=list)


class ResultMessage(BaseModel):
    type: Literal["result"] = "result"
    id: str
    value: Any = None


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    id: str
    error: ErrorPayload


Message = Union[CallMessage, ResultMessage, ErrorMessage]

_message_adapter: TypeAdapter = TypeAdapter(
    Union[CallMessage, ResultMessage, ErrorMessage]
)


class FrameError(ValueError):
    """Raised when an inbound frame is not a valid bridge message."""


def _plain(obj: Any) -> Any:
    """json.dumps `default` hook: turn models and paths into plain data, refuse the rest."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, PurePath):
        return str(obj)
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    raise TypeError(f"Object of type {type(obj).__name__} cannot cross the bridge")


def encode_value(value: Any) -> str:
    try:
        return json.dumps(value, default=_plain)
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"Value is not representable as plain data: {exc}") from exc


def encode(message: Message) -> str:
    """Encode an envelope; raises InvalidArgumentError for non-plain payloads."""
    payload: Dict[str, Any] = {"type": message.type, "id": message.id}
    if isinstance(message, CallMessage):
        payload["name"] = message.name
        payload["args"] = message.args
    elif isinstance(message, ResultMessage):
        payload["value"] = message.value
    else:
        payload["error"] = message.error.model_dump(mode="json")
    return encode_value(payload)


def decode(frame: str) -> Message:
    try:
        raw = json.loads(frame)
    except (json.JSONDecodeError, TypeError) as exc:
        raise FrameError(f"Frame is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise FrameError("Frame must be a JSON object")
    try:
        return _message_adapter.validate_python(raw)
    except ValidationError as exc:
        raise FrameError(f"Frame is not a bridge message: {exc.error_count()} error(s)") from exc


def frame_id(frame: str) -> Optional[str]:
    """Best-effort correlation id of a frame that failed to decode."""
    try:
        raw = json.loads(frame)
    except (json.JSONDecodeError, TypeError):
        return None
    if isinstance(raw, dict) and isinstance(raw.get("id"), str):
        return raw["id"]
    return None
