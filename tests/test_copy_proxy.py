from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

import copy_proxy
from copy_payload import RequestPayload
from system_prompt import SYSTEM_PROMPT

BODY = {
    "projectContext": "Course catalogue refresh",
    "audience": "Learner (use Motivating Mentor tone: warm, vibrant, honest, playful)",
    "elementContext": 'Layer: "CTA"',
    "surroundingCopyContext": 'Level 1 • Ancestor Frame "Card": "12 lessons"',
    "generationHistory": "",
    "currentText": "Begin",
    "userRequest": "Make the button clearer",
}


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def calls(monkeypatch):
    recorded = []

    async def fake_acompletion(**kwargs):
        recorded.append(kwargs)
        return completion("  Start course \n")

    monkeypatch.setattr(copy_proxy.litellm, "acompletion", fake_acompletion)
    monkeypatch.delenv("PLUGIN_API_SECRET", raising=False)
    monkeypatch.delenv("LITELLM_MODEL", raising=False)
    monkeypatch.delenv("LITELLM_API_KEY", raising=False)
    return recorded


@pytest.fixture
def client():
    return TestClient(copy_proxy.create_app())


def test_generate_returns_stripped_text(client, calls):
    response = client.post("/api/generate", json=BODY)
    assert response.status_code == 200
    assert response.json() == {"text": "Start course"}

    (kwargs,) = calls
    assert kwargs["model"] == copy_proxy.DEFAULT_MODEL
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 500
    assert "api_key" not in kwargs
    system, user = kwargs["messages"]
    assert system == {"role": "system", "content": SYSTEM_PROMPT}
    assert "SURROUNDING COPY NEAR THE SELECTED TEXT:\nLevel 1 • Ancestor Frame \"Card\": \"12 lessons\"" in user["content"]
    assert "RECENT GENERATION HISTORY (newest first):\nNo previous generations stored." in user["content"]
    assert user["content"].endswith("USER REQUEST:\nMake the button clearer")


def test_model_and_key_come_from_environment(client, calls, monkeypatch):
    monkeypatch.setenv("LITELLM_MODEL", "anthropic/claude-3-haiku")
    monkeypatch.setenv("LITELLM_API_KEY", "sk-test")
    assert client.post("/api/generate", json=BODY).status_code == 200
    assert calls[0]["model"] == "anthropic/claude-3-haiku"
    assert calls[0]["api_key"] == "sk-test"


def test_secret_is_enforced_when_configured(client, calls, monkeypatch):
    monkeypatch.setenv("PLUGIN_API_SECRET", "s3cret")
    denied = client.post("/api/generate", json=BODY, headers={"Authorization": "Bearer nope"})
    missing = client.post("/api/generate", json=BODY)
    allowed = client.post("/api/generate", json=BODY, headers={"Authorization": "Bearer s3cret"})
    assert denied.status_code == 401
    assert denied.json() == {"error": "Unauthorized"}
    assert missing.status_code == 401
    assert allowed.status_code == 200
    assert len(calls) == 1


def test_missing_user_request_is_rejected(client, calls):
    response = client.post("/api/generate", json={**BODY, "userRequest": ""})
    assert response.status_code == 400
    assert response.json() == {"error": "Missing user request"}
    assert calls == []


def test_null_optional_fields_use_fallbacks(client, calls):
    body = {**BODY, "audience": None, "elementContext": None, "surroundingCopyContext": None, "generationHistory": None}
    response = client.post("/api/generate", json=body)
    assert response.status_code == 200
    user = calls[0]["messages"][1]["content"]
    assert "TARGET AUDIENCE:\nNot specified (default to Learner tone)" in user
    assert "UI ELEMENT:\nNo element context available." in user
    assert "SURROUNDING COPY NEAR THE SELECTED TEXT:\nNo nearby copy detected." in user


def test_unparseable_body_is_rejected(client, calls):
    response = client.post("/api/generate", content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body"}


def test_llm_failure_is_a_500(client, monkeypatch):
    async def failing(**kwargs):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(copy_proxy.litellm, "acompletion", failing)
    monkeypatch.delenv("PLUGIN_API_SECRET", raising=False)
    response = client.post("/api/generate", json=BODY)
    assert response.status_code == 500
    assert response.json() == {"error": "rate limited"}


def test_preflight_allows_authorization_header(client):
    response = client.options(
        "/api/generate",
        headers={
            "Origin": "https://www.figma.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_health(client, monkeypatch):
    monkeypatch.delenv("PLUGIN_API_SECRET", raising=False)
    assert client.get("/health").json()["status"] == "ok"


def test_user_message_fallbacks():
    message = copy_proxy.build_user_message(RequestPayload(user_request="Write a title"))
    assert "PROJECT CONTEXT:\nNo project context provided." in message
    assert "TARGET AUDIENCE:\nNot specified (default to Learner tone)" in message
    assert "CURRENT TEXT (if any):\n(No existing text)" in message
