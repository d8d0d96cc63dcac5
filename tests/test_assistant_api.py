"""Tests for POST /v1/assistant/dispatch via FastAPI TestClient."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from portal_assistant.core.auth import AuthContext, get_current_user
from portal_assistant.core.errors import ConfigurationError, QuotaError, UpstreamError
from portal_assistant.main import app
from tests.fakes.fake_workspace import USER_ID

DISPATCH_URL = "/v1/assistant/dispatch"


def _auth() -> AuthContext:
    return AuthContext(user_id=USER_ID, email="rina@example.com", token="jwt-token")


@pytest.fixture
def client():
    app.dependency_overrides[get_current_user] = _auth
    yield TestClient(app)
    app.dependency_overrides.clear()


def _pipeline(result=None, error=None) -> MagicMock:
    pipeline = MagicMock()
    pipeline.run_turn = AsyncMock(return_value=result, side_effect=error)
    return pipeline


def test_health():
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_missing_auth_is_401():
    response = TestClient(app).post(DISPATCH_URL, json={"feature": "analyze-projects", "payload": {"request": "hi"}})
    assert response.status_code == 401
    assert response.json()["kind"] == "authentication"


def test_analyze_projects_returns_result(client):
    pipeline = _pipeline(result="You have 3 projects.")
    with patch("portal_assistant.api.assistant.build_pipeline", return_value=pipeline):
        response = client.post(
            DISPATCH_URL,
            json={"feature": "analyze-projects", "payload": {"request": "How many projects?"}},
        )

    assert response.status_code == 200
    assert response.json() == {"result": "You have 3 projects."}
    user_id, payload = pipeline.run_turn.call_args.args
    assert user_id == USER_ID
    assert payload.request == "How many projects?"


def test_attachment_fields_use_camel_case(client):
    pipeline = _pipeline(result="ok")
    with patch("portal_assistant.api.assistant.build_pipeline", return_value=pipeline):
        client.post(
            DISPATCH_URL,
            json={
                "feature": "analyze-projects",
                "payload": {"attachmentUrl": "https://storage/a.png", "attachmentType": "image/png"},
            },
        )

    payload = pipeline.run_turn.call_args.args[1]
    assert payload.attachment_url == "https://storage/a.png"
    assert payload.attachment_type == "image/png"


def test_unknown_feature_is_400(client):
    response = client.post(DISPATCH_URL, json={"feature": "make-coffee", "payload": {}})
    assert response.status_code == 400
    assert response.json()["kind"] == "invalid_request"


def test_malformed_body_is_400(client):
    response = client.post(DISPATCH_URL, content="not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400


def test_empty_request_is_400(client):
    pipeline = _pipeline(error=ValueError("An analysis request is required."))
    with patch("portal_assistant.api.assistant.build_pipeline", return_value=pipeline):
        response = client.post(DISPATCH_URL, json={"feature": "analyze-projects", "payload": {}})

    assert response.status_code == 400
    assert response.json()["error"] == "An analysis request is required."


@pytest.mark.parametrize(
    "error,status,kind",
    [
        (ConfigurationError("No AI provider is configured."), 503, "configuration"),
        (QuotaError("You've exceeded your Anthropic quota."), 429, "quota"),
        (RuntimeError("boom"), 500, "failure"),
    ],
)
def test_error_status_mapping(client, error, status, kind):
    with patch("portal_assistant.api.assistant.build_pipeline", return_value=_pipeline(error=error)):
        response = client.post(DISPATCH_URL, json={"feature": "analyze-projects", "payload": {"request": "hi"}})

    assert response.status_code == status
    assert response.json()["kind"] == kind


def test_upstream_error_is_a_normal_result(client):
    error = UpstreamError("I couldn't reach the AI service just now. Please try again in a moment.")
    with patch("portal_assistant.api.assistant.build_pipeline", return_value=_pipeline(error=error)):
        response = client.post(DISPATCH_URL, json={"feature": "analyze-projects", "payload": {"request": "hi"}})

    assert response.status_code == 200
    assert response.json()["result"] == error.message


def test_writer_feature_dispatch(client):
    with patch(
        "portal_assistant.api.assistant.run_writer_feature", new=AsyncMock(return_value="<p>Summary</p>")
    ) as run, patch("portal_assistant.api.assistant.CompletionClient"):
        response = client.post(
            DISPATCH_URL,
            json={"feature": "summarize-article-content", "payload": {"content": "<p>Long</p>"}},
        )

    assert response.status_code == 200
    assert response.json() == {"result": "<p>Summary</p>"}
    _, feature, payload, user_id = run.call_args.args
    assert feature == "summarize-article-content"
    assert payload == {"content": "<p>Long</p>"}
    assert user_id == USER_ID


def test_writer_feature_missing_field_is_400(client):
    with patch("portal_assistant.api.assistant.CompletionClient"):
        response = client.post(DISPATCH_URL, json={"feature": "generate-article-from-title", "payload": {}})

    assert response.status_code == 400
    body = response.json()
    assert body["kind"] == "invalid_request"
    assert "title" in body["error"]


def test_error_body_is_json(client):
    response = client.post(DISPATCH_URL, json={"feature": "", "payload": {}})
    assert json.loads(response.text)["error"].startswith("Unknown or missing feature")
