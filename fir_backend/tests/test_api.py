"""
Tests for API Contract
======================

Exercises the HTTP surface end to end against a temporary SQLite database:
camelCase bodies, status codes and the {message, code} error shape.
"""

import json
from datetime import datetime, timedelta

import pytest

from fir_backend import store as store_module
from fir_backend.api import app, get_extractor, get_legal_assistant
from fir_backend.extraction import FirExtractor
from fir_backend.identifiers import is_valid_fir_id
from fir_backend.legal_assistant import LegalAssistant
from fir_backend.llm_client import LLMResponse


class CannedClient:

    def __init__(self, content):
        self.content = content
        self.calls = 0

    async def generate(self, prompt, **kwargs):
        self.calls += 1
        if self.content is None:
            return None
        return LLMResponse(content=self.content, model="fake")


async def _no_sleep(seconds):
    return None


@pytest.fixture
def use_llm():
    """Install an extractor backed by a canned LLM response"""
    def _install(content):
        llm = CannedClient(content)
        app.dependency_overrides[get_extractor] = lambda: FirExtractor(
            client=llm, max_attempts=3, retry_delay=1.0, sleep=_no_sleep
        )
        return llm

    yield _install
    app.dependency_overrides.pop(get_extractor, None)


@pytest.fixture
def use_assistant():
    """Install a legal assistant backed by a canned LLM answer"""
    def _install(content):
        llm = CannedClient(content)
        app.dependency_overrides[get_legal_assistant] = lambda: LegalAssistant(
            client=llm, max_attempts=3, retry_delay=1.0, sleep=_no_sleep
        )
        return llm

    yield _install
    app.dependency_overrides.pop(get_legal_assistant, None)


def _create(client, payload, headers=None):
    response = client.post("/api/firs", json=payload, headers=headers or {})
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# Health Check Tests
# =============================================================================

class TestHealthEndpoint:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data
        assert "llmMode" in data
        assert isinstance(data["llmAvailable"], bool)
        assert "timestamp" in data


# =============================================================================
# FIR lifecycle
# =============================================================================

class TestFirEndpoints:

    def test_create_returns_camel_case_record(self, client, fir_payload):
        data = _create(client, fir_payload(metadata={"channel": "web"}))

        assert is_valid_fir_id(data["firId"])
        assert data["status"] == "REGISTERED"
        assert data["ipcSections"] == ["IPC 379"]
        assert data["closedAt"] is None
        assert data["metadata"] == {"channel": "web"}
        assert "createdAt" in data

    def test_timestamps_are_utc(self, client, fir_payload):
        data = _create(client, fir_payload())

        created_at = datetime.fromisoformat(data["createdAt"].replace("Z", "+00:00"))
        updated_at = datetime.fromisoformat(data["updatedAt"].replace("Z", "+00:00"))
        assert created_at.utcoffset() == timedelta(0)
        assert updated_at.utcoffset() == timedelta(0)

    def test_string_priority_is_400(self, client, fir_payload):
        response = client.post("/api/firs", json=fir_payload(priority="3"))
        assert response.status_code == 400

    def test_create_then_get(self, client, fir_payload):
        created = _create(client, fir_payload())

        response = client.get(f"/api/firs/{created['firId']}")

        assert response.status_code == 200
        assert response.json()["summary"] == created["summary"]

    def test_get_unknown_is_404(self, client):
        response = client.get("/api/firs/FIR-20240101-100")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"
        assert "message" in response.json()

    def test_invalid_body_is_400_with_field_errors(self, client, fir_payload):
        response = client.post("/api/firs", json=fir_payload(priority=9))

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == "validation_error"
        assert any("priority" in e["field"] for e in data["errors"])

    def test_duplicate_supplied_identifier_is_409(self, client, fir_payload):
        _create(client, fir_payload(firId="FIR-20240315-482"))

        response = client.post("/api/firs", json=fir_payload(firId="FIR-20240315-482"))

        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    def test_generated_identifier_collision_retried_once(self, client, fir_payload, monkeypatch):
        _create(client, fir_payload(firId="FIR-20240315-482"))
        ids = iter(["FIR-20240315-482", "FIR-20240315-483"])
        monkeypatch.setattr(store_module, "generate_fir_id", lambda: next(ids))

        data = _create(client, fir_payload())

        assert data["firId"] == "FIR-20240315-483"

    def test_generated_identifier_collision_twice_is_409(self, client, fir_payload, monkeypatch):
        _create(client, fir_payload(firId="FIR-20240315-482"))
        monkeypatch.setattr(store_module, "generate_fir_id", lambda: "FIR-20240315-482")

        response = client.post("/api/firs", json=fir_payload())

        assert response.status_code == 409

    def test_list_paginated(self, client, fir_payload):
        for i in range(3):
            _create(client, fir_payload(crime=f"crime {i}"))

        response = client.get("/api/firs", params={"page": 1, "limit": 2})

        assert response.status_code == 200
        assert [f["crime"] for f in response.json()] == ["crime 2", "crime 1"]

    def test_patch_fir(self, client, fir_payload):
        created = _create(client, fir_payload())

        response = client.patch(f"/api/firs/{created['firId']}", json={"priority": 5, "tags": ["urgent"]})

        assert response.status_code == 200
        assert response.json()["priority"] == 5
        assert response.json()["tags"] == ["urgent"]

    def test_patch_protected_field_is_400(self, client, fir_payload):
        created = _create(client, fir_payload())
        response = client.patch(f"/api/firs/{created['firId']}", json={"firId": "FIR-20000101-100"})
        assert response.status_code == 400

    def test_delete(self, client, fir_payload):
        created = _create(client, fir_payload())

        assert client.delete(f"/api/firs/{created['firId']}").status_code == 204
        assert client.get(f"/api/firs/{created['firId']}").status_code == 404
        assert client.delete(f"/api/firs/{created['firId']}").status_code == 404


class TestStatusEndpoints:

    def test_status_change_and_history(self, client, fir_payload):
        created = _create(client, fir_payload())
        fir_id = created["firId"]

        response = client.patch(f"/api/firs/{fir_id}/status", json={"status": "CLOSED"})
        assert response.status_code == 200
        assert response.json()["status"] == "CLOSED"
        assert response.json()["closedAt"] is not None

        history = client.get(f"/api/firs/{fir_id}/status-updates").json()
        assert [h["status"] for h in history] == ["REGISTERED", "CLOSED"]
        assert history[1]["description"] == "Status updated to CLOSED"

    def test_post_status_update_uses_header_actor(self, client, fir_payload):
        officer = client.post("/api/users", json={
            "username": "si_rana", "password": "correct-horse", "role": "officer"
        }).json()
        fir_id = _create(client, fir_payload())["firId"]

        response = client.post(
            f"/api/firs/{fir_id}/status-updates",
            json={"status": "EVIDENCE_COLLECTION", "description": "CCTV requested"},
            headers={"X-User-Id": str(officer["id"])},
        )

        assert response.status_code == 201
        assert response.json()["updatedBy"] == officer["id"]
        assert client.get(f"/api/firs/{fir_id}").json()["status"] == "EVIDENCE_COLLECTION"

    def test_status_for_unknown_fir_is_404(self, client):
        response = client.patch("/api/firs/FIR-20240101-100/status", json={"status": "CLOSED"})
        assert response.status_code == 404
        assert client.get("/api/firs/FIR-20240101-100/status-updates").status_code == 404

    def test_empty_status_is_400(self, client, fir_payload):
        fir_id = _create(client, fir_payload())["firId"]
        response = client.patch(f"/api/firs/{fir_id}/status", json={"status": ""})
        assert response.status_code == 400


class TestPdfEndpoint:

    def test_pdf(self, client, fir_payload):
        fir_id = _create(client, fir_payload())["firId"]

        response = client.get(f"/api/firs/{fir_id}/pdf")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert fir_id in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    def test_pdf_unknown(self, client):
        assert client.get("/api/firs/FIR-20240101-100/pdf").status_code == 404


# =============================================================================
# Search & analytics
# =============================================================================

class TestSearchEndpoint:

    def test_search_with_repeated_params(self, client, fir_payload):
        _create(client, fir_payload(crime="theft", priority=2, tags=["urgent"]))
        _create(client, fir_payload(crime="assault", priority=5, tags=["violent"]))
        _create(client, fir_payload(crime="fraud", priority=3))

        response = client.get("/api/firs/search", params=[("priority", 2), ("priority", 5), ("limit", 1)])

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert len(data["items"]) == 1

    def test_search_by_tag_and_ipc_section(self, client, fir_payload):
        first = _create(client, fir_payload(tags=["urgent"], ipcSections=["IPC 379", "IPC 411"]))
        _create(client, fir_payload(ipcSections=["IPC 420"]))

        by_tag = client.get("/api/firs/search", params={"tags": "urgent"}).json()
        by_section = client.get("/api/firs/search", params={"ipcSection": "IPC 411"}).json()

        assert [i["firId"] for i in by_tag["items"]] == [first["firId"]]
        assert [i["firId"] for i in by_section["items"]] == [first["firId"]]

    def test_search_limit_too_large_is_400(self, client):
        assert client.get("/api/firs/search", params={"limit": 500}).status_code == 400

    def test_search_bad_sort_is_400(self, client):
        assert client.get("/api/firs/search", params={"sortBy": "nope"}).status_code == 400


class TestAnalyticsEndpoints:

    def test_distributions(self, client, fir_payload):
        _create(client, fir_payload(crime="theft", priority=2))
        _create(client, fir_payload(crime="theft", priority=4))
        _create(client, fir_payload(crime="assault", priority=4))

        crimes = client.get("/api/analytics/crime-distribution").json()
        statuses = client.get("/api/analytics/status-distribution").json()
        priorities = client.get("/api/analytics/priority-distribution").json()

        assert crimes[0] == {"crimeType": "theft", "count": 2}
        assert statuses == [{"status": "REGISTERED", "count": 3}]
        assert priorities == [{"priority": 2, "count": 1}, {"priority": 4, "count": 2}]

    def test_monthly_stats(self, client):
        response = client.get("/api/analytics/monthly-stats/2023")
        assert response.status_code == 200
        assert len(response.json()) == 12
        assert all(m["count"] == 0 for m in response.json())

    def test_time_range_defaults_to_recent(self, client, fir_payload):
        _create(client, fir_payload())

        data = client.get("/api/analytics/time-range").json()

        assert data["totalFirs"] == 1
        assert data["averageProcessingTimeDays"] == 0.0

    def test_time_range_inverted_is_400(self, client):
        response = client.get("/api/analytics/time-range", params={
            "startDate": "2024-02-01T00:00:00",
            "endDate": "2024-01-01T00:00:00",
        })
        assert response.status_code == 400


# =============================================================================
# Users, evidence, notifications
# =============================================================================

class TestUserEndpoints:

    def test_create_get_patch(self, client):
        response = client.post("/api/users", json={
            "username": "asha", "password": "correct-horse", "email": "asha@example.org"
        })
        assert response.status_code == 201
        user = response.json()
        assert "password" not in user
        assert "passwordHash" not in user

        assert client.get(f"/api/users/{user['id']}").json()["username"] == "asha"

        patched = client.patch(f"/api/users/{user['id']}", json={"fullName": "Asha Verma"})
        assert patched.json()["fullName"] == "Asha Verma"

    def test_duplicate_username_is_409(self, client):
        body = {"username": "asha", "password": "correct-horse"}
        assert client.post("/api/users", json=body).status_code == 201
        assert client.post("/api/users", json=body).status_code == 409

    def test_unknown_user_is_404(self, client):
        assert client.get("/api/users/999").status_code == 404


class TestEvidenceEndpoints:

    def test_attach_list_get(self, client, fir_payload):
        fir_id = _create(client, fir_payload())["firId"]

        response = client.post(f"/api/firs/{fir_id}/evidence", json={
            "fileUrl": "https://files.example.org/ev/1.jpg",
            "fileType": "image/jpeg",
            "fileName": "scooter.jpg",
            "fileSize": 2048,
        })
        assert response.status_code == 201
        evidence = response.json()

        listed = client.get(f"/api/firs/{fir_id}/evidence").json()
        assert [e["id"] for e in listed] == [evidence["id"]]
        assert client.get(f"/api/evidence/{evidence['id']}").json()["fileName"] == "scooter.jpg"
        assert client.get("/api/evidence/999").status_code == 404


class TestNotificationEndpoints:

    def test_status_change_notifies_reporter(self, client, fir_payload):
        reporter = client.post("/api/users", json={"username": "asha", "password": "correct-horse"}).json()
        headers = {"X-User-Id": str(reporter["id"])}
        fir_id = _create(client, fir_payload(userId=reporter["id"]), headers=headers)["firId"]

        client.patch(f"/api/firs/{fir_id}/status", json={"status": "UNDER_INVESTIGATION"})

        notifications = client.get("/api/notifications", headers=headers).json()
        assert len(notifications) == 1
        assert notifications[0]["firId"] == fir_id
        assert notifications[0]["isRead"] is False

        assert client.post(f"/api/notifications/{notifications[0]['id']}/read").status_code == 200
        unread = client.get("/api/notifications", params={"unreadOnly": True}, headers=headers).json()
        assert unread == []

    def test_read_all(self, client):
        user = client.post("/api/users", json={"username": "asha", "password": "correct-horse"}).json()
        for title in ["one", "two"]:
            client.post("/api/notifications", json={"userId": user["id"], "title": title, "message": "hello"})

        response = client.post("/api/notifications/read-all", headers={"X-User-Id": str(user["id"])})

        assert response.json()["updated"] == 2

    def test_missing_user_header_is_400(self, client):
        assert client.get("/api/notifications").status_code == 400


# =============================================================================
# Extraction
# =============================================================================

class TestExtractEndpoint:

    def test_extract_success(self, client, use_llm):
        use_llm(json.dumps({
            "crime": "theft",
            "ipcSections": ["IPC 379"],
            "summary": "Phone stolen at the bus stand",
            "priority": 3,
            "dateTime": "",
            "location": "ISBT Sector 43",
        }))

        response = client.post("/api/extract", json={"userInput": "My phone was stolen at ISBT"})

        assert response.status_code == 200
        data = response.json()
        assert data["crime"] == "theft"
        assert data["dateTime"] is None
        assert is_valid_fir_id(data["firId"])

    def test_extract_does_not_persist(self, client, use_llm):
        use_llm(json.dumps({
            "crime": "theft", "ipcSections": ["IPC 379"], "summary": "Phone stolen", "priority": 3,
        }))

        fir_id = client.post("/api/gemini/process", json={"userInput": "phone stolen"}).json()["firId"]

        assert client.get(f"/api/firs/{fir_id}").status_code == 404
        assert client.get("/api/firs").json() == []

    def test_extract_failure_is_503_with_input(self, client, use_llm):
        llm = use_llm("I'm sorry, I can't do that.")

        response = client.post("/api/extract", json={"userInput": "phone stolen"})

        assert response.status_code == 503
        data = response.json()
        assert data["code"] == "extraction_failed"
        assert data["userInput"] == "phone stolen"
        assert llm.calls == 3

    def test_extract_empty_input_is_400(self, client, use_llm):
        llm = use_llm(None)

        response = client.post("/api/extract", json={"userInput": ""})

        assert response.status_code == 400
        assert llm.calls == 0


# =============================================================================
# Legal assistant
# =============================================================================

class TestLegalAssistantEndpoint:

    def test_ask_returns_answer_and_question(self, client, use_assistant):
        llm = use_assistant("You can approach the Superintendent of Police under Section 154(3) CrPC.")

        response = client.post("/api/ai-lawyer/ask", json={"question": "The station refused my FIR. What now?"})

        assert response.status_code == 200
        assert response.json() == {
            "answer": "You can approach the Superintendent of Police under Section 154(3) CrPC.",
            "question": "The station refused my FIR. What now?",
        }
        assert llm.calls == 1

    def test_ask_failure_is_503(self, client, use_assistant):
        llm = use_assistant(None)

        response = client.post("/api/ai-lawyer/ask", json={"question": "Is a zero FIR valid?"})

        assert response.status_code == 503
        data = response.json()
        assert data["code"] == "assistant_unavailable"
        assert data["question"] == "Is a zero FIR valid?"
        assert llm.calls == 3

    @pytest.mark.parametrize("body", [{}, {"question": ""}, {"question": "  "}])
    def test_ask_missing_question_is_400(self, client, use_assistant, body):
        llm = use_assistant("unused")

        response = client.post("/api/ai-lawyer/ask", json=body)

        assert response.status_code == 400
        assert llm.calls == 0
