# ============================================================================
# tests/unit/test_api.py
# ============================================================================
"""
Tests for the HTTP API (FastAPI TestClient over an in-memory container)
"""

from datetime import date

import pytest
from fastapi.testclient import TestClient
from langgraph.checkpoint.memory import InMemorySaver

from mediminder.api.deps import build_container
from mediminder.core.errors import ChatProviderError
from mediminder.main import create_app
from mediminder.services.chat import ChatService, RetryPolicy
from mediminder.services.platforms import InMemoryNotificationPlatform


class EchoProvider:
    name = "echo"

    def __init__(self, error=None):
        self.error = error

    def generate(self, prompt, max_tokens=None):
        if self.error:
            raise self.error
        return f"About your question: {prompt}"


@pytest.fixture
def container(kv, clock, tz):
    chat = ChatService(EchoProvider(), policy=RetryPolicy(max_attempts=1, backoff_ms=0), clock=lambda: 0.0)
    return build_container(
        kv,
        InMemorySaver(),
        platform=InMemoryNotificationPlatform(),
        chat=chat,
        clock=clock,
        today=lambda: date(2026, 1, 5),
        tz=tz,
    )


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as c:
        yield c


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"ok": True}


class TestMedications:
    """Test medication and dose routes"""

    def test_add_with_pattern(self, client):
        res = client.post("/medications/pattern", json={"name": "Amoxicillin", "pattern": "1-0-1", "days": 2})
        assert res.status_code == 200
        body = res.json()
        assert body["medication"]["name"] == "Amoxicillin"
        assert len(body["doses"]) == 4
        assert body["scheduled"] == 4

        assert [m["name"] for m in client.get("/medications").json()] == ["Amoxicillin"]
        assert len(client.get("/doses").json()) == 4

    def test_add_with_explicit_times(self, client):
        res = client.post("/medications/explicit", json={
            "name": "Vitamin D",
            "dates": ["2026-01-06", "2026-01-05"],
            "times": ["08:00"],
        })
        assert res.status_code == 200
        assert [d["when_iso"] for d in res.json()["doses"]] == [
            "2026-01-05T08:00:00+05:30",
            "2026-01-06T08:00:00+05:30",
        ]

    def test_validation_errors(self, client):
        assert client.post("/medications/pattern", json={"name": " ", "pattern": "1-0-1"}).status_code == 400
        assert client.post("/medications/explicit", json={"name": "X", "dates": [], "times": ["08:00"]}).status_code == 400
        assert client.post("/medications/pattern", json={"name": "X", "pattern": "1-0-1", "days": 0}).status_code == 422

    def test_storage_failure_is_503(self, failing_kv, clock, tz):
        container = build_container(failing_kv, InMemorySaver(), clock=clock, tz=tz,
                                    chat=ChatService(EchoProvider()))
        with TestClient(create_app(container)) as client:
            res = client.post("/medications/pattern", json={"name": "Amoxicillin", "pattern": "1-0-1"})
        assert res.status_code == 503
        assert "try again" in res.json()["detail"]

    def test_mark_and_summary(self, client, clock):
        dose_id = client.post(
            "/medications/pattern", json={"name": "Amoxicillin", "pattern": "1-0-1", "days": 1},
        ).json()["doses"][0]["dose_id"]

        res = client.post("/doses/mark", json={"dose_id": dose_id, "status": "taken"})
        assert res.status_code == 200
        assert res.json()["status"] == "taken"

        clock.advance(days=1)
        summary = client.get("/doses/summary", params={"days": 7}).json()
        assert summary["taken"] == 1
        assert summary["scheduled"] == 1
        assert summary["adherence_rate"] == 0.5

    def test_mark_unknown_dose(self, client):
        assert client.post("/doses/mark", json={"dose_id": "nope", "status": "missed"}).status_code == 404

    def test_mark_rejects_scheduled_status(self, client):
        assert client.post("/doses/mark", json={"dose_id": "x", "status": "scheduled"}).status_code == 422


class TestPrescriptions:
    """Test the review / confirm flow"""

    def test_review_confirm_audit(self, client, prescription_lines):
        res = client.post("/prescriptions/review", json={"lines": prescription_lines, "patient_id": "p-7"})
        assert res.status_code == 200
        review = res.json()
        assert review["next_step"] == "NEEDS_CONFIRMATION"
        assert review["patient_name"] == "Ravi Kumar"
        assert len(review["candidates"]) == 3
        assert review["safety_note"]

        res = client.post("/prescriptions/confirm", json={
            "review_id": review["review_id"],
            "medications": [{"name": "Amoxicillin", "pattern": "1-0-1", "days": 2}],
        })
        assert res.status_code == 200
        body = res.json()
        assert body["next_step"] == "DONE"
        assert body["outcomes"][0]["ok"] is True
        assert body["outcomes"][0]["dose_count"] == 4

        again = client.post("/prescriptions/confirm", json={"review_id": review["review_id"], "medications": []})
        assert again.status_code == 409

        audit = client.get("/prescriptions/audit", params={"review_id": review["review_id"]}).json()
        assert [a["event"] for a in audit["audit"]] == ["extract.done", "review.resumed", "schedule.done"]

    def test_review_from_textract_payload(self, client):
        payload = {"Blocks": [{"BlockType": "LINE", "Text": "Metformin 500mg BD"}]}
        res = client.post("/prescriptions/review", json={"ocr_payload": payload})
        assert res.status_code == 200
        assert res.json()["candidates"][0]["suggested_pattern"] == "1-0-1"

    def test_review_rejects_unknown_payload(self, client):
        assert client.post("/prescriptions/review", json={"ocr_payload": {"pages": []}}).status_code == 422

    def test_review_requires_input(self, client):
        assert client.post("/prescriptions/review", json={}).status_code == 400

    def test_unknown_review(self, client):
        assert client.post("/prescriptions/confirm", json={"review_id": "nope"}).status_code == 404
        assert client.get("/prescriptions/audit", params={"review_id": "nope"}).status_code == 404


class TestChat:
    """Test the chat route"""

    def test_health_question(self, client):
        res = client.post("/chat", json={"question": "What dose of paracetamol for fever?"})
        assert res.status_code == 200
        assert res.json()["answer"].startswith("About your question")

    def test_off_topic_question(self, client):
        res = client.post("/chat", json={"question": "Tell me a joke"})
        assert res.status_code == 200
        assert "health and medication" in res.json()["answer"]

    def test_cooldown_is_429(self, client):
        client.post("/chat", json={"question": "What dose of paracetamol for fever?"})
        res = client.post("/chat", json={"question": "Is ibuprofen ok for back pain?"})
        assert res.status_code == 429

    def test_provider_failure_is_502(self, kv, clock, tz):
        chat = ChatService(EchoProvider(error=ChatProviderError("bad request")), clock=lambda: 0.0)
        container = build_container(kv, InMemorySaver(), clock=clock, tz=tz, chat=chat)
        with TestClient(create_app(container)) as client:
            res = client.post("/chat", json={"question": "What dose of paracetamol for fever?"})
        assert res.status_code == 502


class TestDevRoutes:
    """Test the key-guarded dev routes"""

    def test_requires_key(self, client, monkeypatch):
        monkeypatch.setenv("INTERNAL_SERVICE_SECRET", "s3cret")
        assert client.post("/dev/reset").status_code == 401
        assert client.post("/dev/reset", headers={"X-Internal-Key": "wrong"}).status_code == 401

    def test_disabled_without_secret(self, client, monkeypatch):
        monkeypatch.delenv("INTERNAL_SERVICE_SECRET", raising=False)
        assert client.post("/dev/reset", headers={"X-Internal-Key": "x"}).status_code == 503

    def test_seed_reset_and_reschedule(self, client, container, monkeypatch):
        monkeypatch.setenv("INTERNAL_SERVICE_SECRET", "s3cret")
        headers = {"X-Internal-Key": "s3cret"}

        seeded = client.post("/dev/seed", headers=headers).json()
        assert seeded["scheduled"] == 2
        assert len(client.get("/notifications").json()) == 2

        res = client.post("/notifications/reschedule").json()
        assert res["scheduled"] == 2
        assert len(client.get("/notifications").json()) == 2

        assert client.post("/dev/reset", headers=headers).json() == {"ok": True}
        assert client.get("/medications").json() == []
        assert client.get("/notifications").json() == []
