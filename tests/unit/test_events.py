import pytest

from vox_smoke.events import (
    ConnectedEvent,
    EndedEvent,
    EventValidationError,
    ProgressEvent,
    UnrecognizedEvent,
    parse_event,
)

TS = "2025-01-01T10:00:00.000Z"


@pytest.mark.parametrize("name", ["progress", "RINGING", "Progress"])
def test_progress_events(name):
    event = parse_event({"call_id": "c1", "event": name, "ts": TS})
    assert isinstance(event, ProgressEvent)

@pytest.mark.parametrize("name", ["connected", "ANSWER"])
def test_connected_events(name):
    assert isinstance(parse_event({"call_id": "c1", "event": name, "ts": TS}), ConnectedEvent)

@pytest.mark.parametrize(
    "name,status",
    [("busy", "busy"), ("No_Answer", "no_answer"), ("failed", "failed"),
     ("hangup", "disconnected"), ("disconnected", "disconnected")],
)
def test_terminal_events(name, status):
    event = parse_event({"call_id": "c1", "event": name, "ts": TS})
    assert isinstance(event, EndedEvent)
    assert event.status == status

def test_unrecognized_event_keeps_name():
    event = parse_event({"call_id": "c1", "event": "Recording_Started", "ts": TS})
    assert isinstance(event, UnrecognizedEvent)
    assert event.event == "Recording_Started"

def test_optional_fields_are_carried():
    event = parse_event({
        "call_id": "c1", "event": "progress", "ts": TS,
        "to": "+15551234", "vox_call_id": "vox-1", "details": {"code": 180},
    })
    assert event.to == "+15551234"
    assert event.provider_call_id == "vox-1"

def test_empty_optional_fields_become_none():
    event = parse_event({"call_id": "c1", "event": "progress", "ts": TS, "to": "", "vox_call_id": ""})
    assert event.to is None
    assert event.provider_call_id is None

@pytest.mark.parametrize("missing", ["call_id", "event", "ts"])
def test_missing_required_field(missing):
    data = {"call_id": "c1", "event": "progress", "ts": TS}
    del data[missing]
    with pytest.raises(EventValidationError, match=missing):
        parse_event(data)

def test_empty_required_field():
    with pytest.raises(EventValidationError):
        parse_event({"call_id": "", "event": "progress", "ts": TS})

def test_bad_timestamp():
    with pytest.raises(EventValidationError, match="ts"):
        parse_event({"call_id": "c1", "event": "progress", "ts": "yesterday"})

def test_non_object_body():
    with pytest.raises(EventValidationError):
        parse_event(["call_id", "c1"])
