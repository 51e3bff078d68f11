"""Tests for the FastAPI service in vox_smoke.server."""

import json
from datetime import date

import pytest
from fastapi.testclient import TestClient

from vox_smoke.batch import BatchRunner
from vox_smoke.caller import OutboundCaller
from vox_smoke.caps import DailyCapStore
from vox_smoke.server import create_app
from vox_smoke.sink import EVENTS_FILE

TS = "2025-01-01T10:00:00Z"


async def no_sleep(seconds):
    return None


@pytest.fixture
def provider(make_provider):
    return make_provider(fail_for={"+15550666"})


@pytest.fixture
def store(tmp_path):
    return DailyCapStore(tmp_path / "caps.json", today=lambda: date(2025, 1, 1))


@pytest.fixture
def app(sample_config, sink, tracker, provider, store):
    caller = OutboundCaller(sample_config, tracker, sink, provider=provider)
    return create_app(
        sample_config,
        sink=sink,
        tracker=tracker,
        caller=caller,
        batches=BatchRunner(store, sleep=no_sleep),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def read_events(sink):
    return [json.loads(line) for line in sink.path(EVENTS_FILE).read_text().splitlines()]


class TestInfoEndpoints:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_config_hides_secrets(self, client):
        data = client.get("/config").json()
        assert data["event_url"] == "https://smoke.example.com/webhooks/vox"
        assert data["rule"] == "smoke_test_rule"
        assert "vox-key" not in json.dumps(data)

    def test_test_numbers(self, client):
        data = client.get("/test-numbers").json()
        assert data["test_numbers"] == ["+79990000001", "+79990000002"]
        assert data["default_to"] == "+79990000001"


class TestCall:
    def test_places_call(self, client, provider, tracker):
        resp = client.post("/call", json={"to": "+1 555 000 1111", "tag": "x"})
        assert resp.status_code == 200
        call_id = resp.json()["call_id"]
        assert tracker.get(call_id).destination == "+15550001111"
        assert provider.requests[0].tag == "x"

    def test_defaults_to_test_number(self, client, provider):
        assert client.post("/call", json={}).status_code == 200
        assert provider.requests[0].destination == "+79990000001"

    def test_no_target(self, client, app):
        app.state.services.config.test_numbers = []
        resp = client.post("/call", json={})
        assert resp.status_code == 400

    def test_provider_failure_is_surfaced(self, client):
        resp = client.post("/call", json={"to": "+15550666"})
        assert resp.status_code == 502
        assert "HTTP 500" in resp.json()["detail"]

    def test_api_key_required_when_configured(self, client, app):
        app.state.services.config.api_key = "s3cret"
        assert client.post("/call", json={"to": "+1"}).status_code == 401
        resp = client.post("/call", json={"to": "+1"}, headers={"Authorization": "Bearer s3cret"})
        assert resp.status_code == 200


class TestBatch:
    def test_schedules_and_completes(self, client, provider):
        resp = client.post("/batch", json={"numbers": ["+15550001", "+15550666"], "repeat": 1})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "scheduled"
        assert data["count"] == 2

        job = client.get(f"/batches/{data['job_id']}").json()
        assert job["status"] == "completed"
        assert job["result"] == {"scheduled": 2, "skipped": 0, "attempted": 2, "failed": 1}
        assert [r.destination for r in provider.requests] == ["+15550001", "+15550666"]

    def test_dry_run_dials_nothing(self, client, provider):
        resp = client.post("/batch", json={"use_test_numbers": True, "dry_run": True})
        assert resp.json()["count"] == 2
        job = client.get(f"/batches/{resp.json()['job_id']}").json()
        assert job["status"] == "completed"
        assert provider.requests == []

    def test_numbers_from_file(self, client, provider, tmp_path):
        path = tmp_path / "numbers.txt"
        path.write_text("# list\n15550001\n")
        resp = client.post("/batch", json={"file": str(path), "numbers": ["+19990000"]})
        assert resp.json()["count"] == 1
        client.get(f"/batches/{resp.json()['job_id']}")
        assert [r.destination for r in provider.requests] == ["+15550001"]

    def test_missing_file(self, client, tmp_path):
        resp = client.post("/batch", json={"file": str(tmp_path / "nope.txt")})
        assert resp.status_code == 400

    def test_no_numbers(self, client):
        assert client.post("/batch", json={}).status_code == 400

    def test_bad_delay_bounds(self, client):
        resp = client.post("/batch", json={"numbers": ["+1"], "min_delay_sec": 9, "max_delay_sec": 1})
        assert resp.status_code == 400

    def test_unknown_job(self, client):
        assert client.get("/batches/nope").status_code == 404


class TestWebhook:
    def test_busy_on_untracked_call(self, client, tracker, sink):
        payload = {"call_id": "c9", "to": "+15550009", "event": "BUSY", "ts": TS, "vox_call_id": "v9"}
        resp = client.post("/webhooks/vox", json=payload)
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

        record = client.get("/calls/c9").json()
        assert record["final_status"] == "busy"
        assert record["destination"] == "+15550009"
        assert record["provider_call_id"] == "v9"
        assert read_events(sink) == [payload]

    @pytest.mark.parametrize("missing", ["call_id", "event", "ts"])
    def test_missing_field_is_rejected(self, client, tracker, missing):
        payload = {"call_id": "c1", "event": "progress", "ts": TS}
        del payload[missing]
        assert client.post("/webhooks/vox", json=payload).status_code == 400
        assert tracker.get_all() == []

    def test_invalid_json(self, client):
        resp = client.post("/webhooks/vox", content=b"{nope", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400

    def test_unrecognized_event_is_accepted(self, client, tracker, sink):
        resp = client.post("/webhooks/vox", json={"call_id": "c1", "event": "log", "ts": TS})
        assert resp.status_code == 200
        assert tracker.get("c1") is None
        assert len(read_events(sink)) == 1

    def test_unknown_call(self, client):
        assert client.get("/calls/nope").status_code == 404


def test_stats_after_calls(client):
    client.post("/webhooks/vox", json={"call_id": "a", "event": "ringing", "ts": "2025-01-01T10:00:00Z"})
    client.post("/webhooks/vox", json={"call_id": "a", "event": "connected", "ts": "2025-01-01T10:00:01Z"})
    client.post("/webhooks/vox", json={"call_id": "a", "event": "hangup", "ts": "2025-01-01T10:00:09Z"})
    client.post("/webhooks/vox", json={"call_id": "b", "event": "no_answer", "ts": "2025-01-01T10:00:00Z"})

    stats = client.get("/stats").json()
    assert stats["total"] == 2
    assert stats["delivered_count"] == 1
    assert stats["delivered_rate"] == 0.5
    assert stats["status_distribution"] == {"disconnected": 1, "no_answer": 1}
    assert stats["avg_answer_delay_ms"] == 1000
