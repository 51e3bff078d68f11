# vox_smoke/events.py
"""
Webhook Event Parsing

Validates raw provider callbacks at the HTTP boundary and turns them into
a closed set of event kinds the tracker understands. Anything the provider
sends that we do not recognise becomes an ``UnrecognizedEvent`` so it can be
logged without touching tracker state.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .protocol import TerminalStatus

PROGRESS_EVENTS = {"progress", "ringing"}
CONNECTED_EVENTS = {"connected", "answer"}
TERMINAL_EVENTS: dict[str, TerminalStatus] = {
    "disconnected": "disconnected",
    "hangup": "disconnected",
    "failed": "failed",
    "busy": "busy",
    "no_answer": "no_answer",
}


class EventValidationError(Exception):
    """Raised when an inbound webhook payload is malformed."""
    pass


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z`` for UTC."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class WebhookPayload(BaseModel):
    """Raw Voximplant scenario callback body."""

    model_config = ConfigDict(extra="allow")

    call_id: str = Field(min_length=1)
    event: str = Field(min_length=1)
    ts: str = Field(min_length=1)
    to: str | None = None
    vox_call_id: str | None = None
    details: dict[str, Any] | None = None

    @field_validator("ts")
    @classmethod
    def _check_ts(cls, v: str) -> str:
        try:
            parse_timestamp(v)
        except ValueError as e:
            raise ValueError(f"ts is not an ISO-8601 timestamp: {v!r}") from e
        return v


@dataclass(frozen=True)
class _BaseEvent:
    call_id: str
    ts: str
    to: str | None = None
    provider_call_id: str | None = None


@dataclass(frozen=True)
class ProgressEvent(_BaseEvent):
    pass


@dataclass(frozen=True)
class ConnectedEvent(_BaseEvent):
    pass


@dataclass(frozen=True)
class EndedEvent(_BaseEvent):
    status: TerminalStatus = "disconnected"


@dataclass(frozen=True)
class UnrecognizedEvent(_BaseEvent):
    event: str = ""


CallEvent = ProgressEvent | ConnectedEvent | EndedEvent | UnrecognizedEvent


def parse_event(data: Any) -> CallEvent:
    """
    Validate a webhook body and classify it.

    Args:
        data: The decoded JSON body.

    Returns:
        CallEvent: One of the recognised event kinds.

    Raises:
        EventValidationError: If required fields are missing or malformed.
    """
    if not isinstance(data, dict):
        raise EventValidationError("Invalid Vox event payload: body must be a JSON object")
    try:
        payload = WebhookPayload.model_validate(data)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise EventValidationError(
            f"Invalid Vox event payload: {', '.join(fields) or 'body'}"
        ) from e

    common = dict(
        call_id=payload.call_id,
        ts=payload.ts,
        to=payload.to or None,
        provider_call_id=payload.vox_call_id or None,
    )
    name = payload.event.lower()

    if name in PROGRESS_EVENTS:
        return ProgressEvent(**common)
    if name in CONNECTED_EVENTS:
        return ConnectedEvent(**common)
    if name in TERMINAL_EVENTS:
        return EndedEvent(**common, status=TERMINAL_EVENTS[name])
    return UnrecognizedEvent(**common, event=payload.event)
