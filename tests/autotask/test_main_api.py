"""HTTP-level tests for the FastAPI application.

Requests go through the real router and TaskOrchestrator; only the LLM
generator, the Linear client and the mapper are mocked.
"""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from src.autotask.analysis import (
    AnalysisMetadata,
    AnalysisResult,
    LLMNoResponseError,
    TaskAction,
    TaskSuggestion,
)
from src.autotask.events import NullEventEmitter
from src.autotask.main import create_app
from src.autotask.orchestrator import TaskOrchestrator
from src.autotask.tracker import OperationOutcome, TrackerAPIError, TrackerIssue
from src.autotask.webhook import EventNormalizer, compute_signature

SECRET = "test-webhook-secret-0123456789"

PUSH_PAYLOAD = {
    "repository": {"name": "widgets", "full_name": "acme/widgets", "description": ""},
    "commits": [{"id": "c1", "message": "Fix login bug", "author": {"name": "Jane"}}],
}


def _analysis() -> AnalysisResult:
    return AnalysisResult(
        summary="Login fix",
        should_create_tasks=True,
        suggestions=[
            TaskSuggestion(action=TaskAction.CREATE, title="Verify login", confidence=0.9)
        ],
        metadata=AnalysisMetadata(model="gpt-4o-mini", provider="openai"),
    )


@pytest.fixture
def deps():
    generator = AsyncMock()
    generator.analyze.return_value = _analysis()
    generator.is_configured = True

    tracker_client = AsyncMock()
    tracker_client.list_issues.return_value = []

    mapper = AsyncMock()
    mapper.process_suggestions.return_value = OperationOutcome(
        created=[TrackerIssue(id="uuid-1", identifier="ENG-7", title="Verify login")],
        errors=['Failed to update task "Old": boom'],
    )
    return {"generator": generator, "tracker_client": tracker_client, "mapper": mapper}


@pytest.fixture
def client(app_settings, deps):
    orchestrator = TaskOrchestrator(
        normalizer=EventNormalizer(),
        event_emitter=NullEventEmitter(),
        team_id="team-1",
        **deps,
    )
    app = create_app(settings=app_settings, orchestrator=orchestrator)
    with TestClient(app) as test_client:
        yield test_client


def _post(client, payload, event="push", secret=SECRET, signature=None, raw=None):
    body = raw if raw is not None else json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if event is not None:
        headers["X-GitHub-Event"] = event
    if signature is None and secret is not None:
        signature = compute_signature(secret, body)
    if signature is not None:
        headers["X-Hub-Signature-256"] = signature
    return client.post("/webhooks/github", content=body, headers=headers)


class TestWebhookAuthentication:
    def test_missing_event_header(self, client):
        response = _post(client, PUSH_PAYLOAD, event=None)

        assert response.status_code == 400

    def test_missing_signature(self, client, deps):
        response = _post(client, PUSH_PAYLOAD, secret=None)

        assert response.status_code == 401
        assert response.json() == {"error": "Missing X-Hub-Signature-256 header"}
        deps["generator"].analyze.assert_not_called()

    def test_wrong_secret(self, client, deps):
        response = _post(client, PUSH_PAYLOAD, secret="some-other-secret")

        assert response.status_code == 401
        assert response.json()["error"] == "Webhook signature verification failed"
        deps["generator"].analyze.assert_not_called()

    def test_signature_over_different_body(self, client):
        signature = compute_signature(SECRET, b"{}")

        response = _post(client, PUSH_PAYLOAD, signature=signature)

        assert response.status_code == 401


class TestWebhookProcessing:
    def test_push_creates_tasks(self, client, deps):
        response = _post(client, PUSH_PAYLOAD)

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "processed": True,
            "created": ["ENG-7"],
            "updated": [],
            "errors": ['Failed to update task "Old": boom'],
        }
        deps["mapper"].process_suggestions.assert_awaited_once()

    def test_unsupported_event_acknowledged(self, client, deps):
        response = _post(client, {"zen": "Keep it simple"}, event="ping")

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed": False}
        deps["generator"].analyze.assert_not_called()

    def test_invalid_json_body(self, client):
        response = _post(client, None, raw=b"{not json")

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON payload"

    def test_malformed_payload(self, client):
        response = _post(client, {"commits": [{"id": "c1"}]})

        assert response.status_code == 400
        assert response.json()["error"] == "Malformed payload"

    def test_analysis_error_reports_code(self, client, deps):
        deps["generator"].analyze.side_effect = LLMNoResponseError("No response from LLM")

        response = _post(client, PUSH_PAYLOAD)

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Internal server error"
        assert body["code"] == "LLMNoResponse"
        deps["mapper"].process_suggestions.assert_not_called()

    def test_get_not_allowed(self, client):
        assert client.get("/webhooks/github").status_code == 405


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"] == {"linear": "healthy", "llm": "healthy"}
        assert "timestamp" in body
        assert body["version"]

    def test_tracker_failure_returns_503(self, client, deps):
        deps["tracker_client"].list_issues.side_effect = TrackerAPIError("unauthorized")

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["services"]["linear"] == "error"


class TestConfigAndMetrics:
    def test_config_report_hides_secrets(self, client):
        response = client.get("/config")

        assert response.status_code == 200
        assert SECRET not in response.text
        assert "lin_api_test_key" not in response.text

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
