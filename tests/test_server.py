import pytest
from fastapi.testclient import TestClient

from apps.pipeline.errors import ApiKeyNotConfiguredError, UpstreamError
from bot import GREETING, UPSTREAM_APOLOGY, JarvisBot
from config import JarvisConfig
from server import create_app
from tests.support import StubCompleter, intent_event, slot


@pytest.fixture
def stub() -> StubCompleter:
    return StubCompleter(answer="**Kafka** is a log.\n- durable\n- ordered", fragments=["Kafka ", "is ", "a log."])


@pytest.fixture
def client(stub):
    app = create_app(JarvisBot(stub, JarvisConfig()))
    with TestClient(app) as test_client:
        yield test_client


def test_webhook_launch(client):
    response = client.post("/alexa/webhook", json={"version": "1.0", "request": {"type": "LaunchRequest"}})

    assert response.status_code == 200
    body = response.json()
    assert body["response"]["outputSpeech"]["text"] == GREETING
    assert body["response"]["shouldEndSession"] is False


def test_webhook_question(client, stub):
    event = intent_event("AskJarvisIntent", {"question": slot("what is kafka")}, attributes={"theme": "dark"})

    body = client.post("/alexa/webhook", json=event).json()

    assert body["version"] == "1.0"
    assert body["response"]["outputSpeech"]["text"] == "Kafka is a log. durable ordered"
    assert body["sessionAttributes"]["theme"] == "dark"
    assert body["sessionAttributes"]["lastQuestion"] == "what is kafka"


def test_webhook_invalid_json_still_returns_envelope(client):
    response = client.post("/alexa/webhook", content=b"{oops", headers={"content-type": "application/json"})

    assert response.status_code == 200
    body = response.json()
    assert body["version"] == "1.0"
    assert body["response"]["shouldEndSession"] is True


def test_webhook_session_ended(client):
    body = client.post("/alexa/webhook", json={"request": {"type": "SessionEndedRequest"}}).json()
    assert body == {"version": "1.0", "response": {"shouldEndSession": True}}


def test_ask_endpoint(client):
    response = client.post("/ask", json={"question": "Explain Kafka in one sentence", "conversationId": "c-9"})

    assert response.status_code == 200
    body = response.json()
    assert body["answer"] == "Kafka is a log. durable ordered"
    assert body["conversationId"] == "c-9"
    assert body["model"] == "stub-model"
    assert body["mode"] == "short"
    assert body["timestamp"]


def test_ask_endpoint_rejects_blank_question(client, stub):
    response = client.post("/ask", json={"question": "   "})
    assert response.status_code == 400
    assert stub.calls == []


def test_ask_endpoint_maps_upstream_error_to_502(client, stub):
    stub.error = UpstreamError("provider down: token xyz")
    response = client.post("/ask", json={"question": "what is kafka"})

    assert response.status_code == 502
    assert response.json()["detail"] == UPSTREAM_APOLOGY


def test_ask_stream_endpoint(client):
    response = client.post("/ask/stream", json={"question": "what is kafka"})

    assert response.status_code == 200
    assert response.text == "Kafka is a log."


def test_ask_stream_endpoint_apologizes_on_failure(client, stub):
    stub.error = UpstreamError("provider down")
    response = client.post("/ask/stream", json={"question": "what is kafka"})

    assert response.status_code == 200
    assert response.text == UPSTREAM_APOLOGY


def test_ask_and_ask_stream_report_completer_crash_the_same_way(client, stub):
    stub.error = RuntimeError("socket closed")

    streamed = client.post("/ask/stream", json={"question": "what is kafka"})
    assert streamed.status_code == 200
    assert streamed.text == UPSTREAM_APOLOGY

    direct = client.post("/ask", json={"question": "what is kafka"})
    assert direct.status_code == 502
    assert direct.json()["detail"] == UPSTREAM_APOLOGY


def test_health_and_config(client):
    health = client.get("/health").json()
    assert health == {"status": "ok", "model": "stub-model"}

    config = client.get("/config").json()
    assert config["groq"]["model"] == "llama-3.3-70b-versatile"
    assert "api_key" not in str(config).lower()


def test_startup_refuses_without_api_key(monkeypatch):
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("JARVIS_CONFIG_PATH", raising=False)
    app = create_app()

    with pytest.raises(ApiKeyNotConfiguredError):
        with TestClient(app):
            pass
