"""
API tests for `api/chat.py` and `api/health.py` using FastAPI's TestClient.

Covers:
- POST /api/chat/message: success envelope for a plain message and for a message with
  an uploaded PDF that the model analyzes; error envelopes (still HTTP 200) for
  validation failures, model failures and unexpected exceptions
- GET /health: static status plus the number of live conversations

The application's orchestrator is replaced with one wired to a scripted LLM client and
the mock capability backends, so no request leaves the process. The TestClient is not
used as a context manager, so the startup hook (and its background sweep) never runs.
"""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from main import app
from services.session_manager import ConversationStateManager

client = TestClient(app)


@pytest.fixture
def use_orchestrator():
    previous = getattr(app.state, "orchestrator", None)

    def _use(orchestrator):
        app.state.orchestrator = orchestrator
        return orchestrator
    yield _use
    app.state.orchestrator = previous


def test_plain_message_success(use_orchestrator, build_test_orchestrator, scripted_client, make_completion):
    use_orchestrator(build_test_orchestrator(scripted_client(make_completion("Hello Alex!"))))

    resp = client.post("/api/chat/message", data={"message": "My name is Alex", "conversationId": "c1"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "success"
    assert body["response"] == "Hello Alex!"
    assert body["conversationId"] == "c1"
    assert body["toolsUsed"] == []
    assert body["error"] is None
    assert body["processingTimeMs"] >= 0
    assert body["timestamp"]


def test_upload_is_analyzed(use_orchestrator, build_test_orchestrator, scripted_client, make_completion,
                            make_tool_call, sample_pdf_bytes):
    llm = scripted_client(
        make_completion(tool_calls=[make_tool_call("analyze_pdf", {"file_path": "/uploaded/c1/report.pdf"})]),
        make_completion("Your report has two pages."),
    )
    use_orchestrator(build_test_orchestrator(llm))

    resp = client.post(
        "/api/chat/message",
        data={"message": "Summarize this", "conversationId": "c1"},
        files=[("files", ("report.pdf", sample_pdf_bytes, "application/pdf"))],
    )

    body = resp.json()
    assert body["status"] == "success"
    assert body["response"] == "Your report has two pages."
    assert body["toolsUsed"] == ["analyze_pdf"]
    first_call = llm.chat.completions.create.call_args_list[0].kwargs["messages"]
    assert "Available at path: /uploaded/c1/report.pdf" in first_call[-1]["content"]


def test_conversation_id_is_generated(use_orchestrator, build_test_orchestrator, scripted_client, make_completion):
    use_orchestrator(build_test_orchestrator(scripted_client(make_completion("Hi!"))))

    body = client.post("/api/chat/message", data={"message": "Hello"}).json()

    assert body["status"] == "success"
    assert body["conversationId"]


def test_missing_message_returns_error_envelope(use_orchestrator, build_test_orchestrator, scripted_client):
    use_orchestrator(build_test_orchestrator(scripted_client()))

    resp = client.post("/api/chat/message", data={"conversationId": "c2"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "error"
    assert body["response"] is None
    assert body["conversationId"] == "c2"
    assert body["error"]["code"] == "INVALID_MESSAGE"
    assert body["error"]["message"]


def test_disallowed_file_type(use_orchestrator, build_test_orchestrator, scripted_client):
    use_orchestrator(build_test_orchestrator(scripted_client()))

    resp = client.post(
        "/api/chat/message",
        data={"message": "Read this", "conversationId": "c3"},
        files=[("files", ("notes.txt", b"plain text", "text/plain"))],
    )

    assert resp.json()["error"]["code"] == "FILE_VALIDATION_FAILED"


def test_model_failure_returns_classified_error(use_orchestrator, build_test_orchestrator, scripted_client):
    use_orchestrator(build_test_orchestrator(scripted_client(RuntimeError("Service Unavailable (503)"))))

    resp = client.post("/api/chat/message", data={"message": "Hello", "conversationId": "c4"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "error"
    assert body["error"]["code"] == "SERVICE_UNAVAILABLE"
    assert "503" not in body["error"]["message"]


def test_unexpected_exception_is_internal_error(use_orchestrator):
    orchestrator = MagicMock()
    orchestrator.process_turn.side_effect = RuntimeError("kaboom")
    use_orchestrator(orchestrator)

    resp = client.post("/api/chat/message", data={"message": "Hello", "conversationId": "c5"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "error"
    assert body["conversationId"] == "c5"
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert "kaboom" not in body["error"]["message"]


def test_health():
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "UP"
    assert body["service"] == "Policy Assistant"
    assert body["version"]
    assert "timestamp" in body


def test_health_reports_active_conversations():
    manager = ConversationStateManager()
    manager.get_or_create("a")
    manager.get_or_create("b")
    previous = getattr(app.state, "session_manager", None)
    app.state.session_manager = manager
    try:
        assert client.get("/health").json()["activeConversations"] == 2
    finally:
        app.state.session_manager = previous


def test_orchestrator_setup_failure_returns_error_envelope(use_orchestrator):
    use_orchestrator(None)

    with patch("llm_cloud.provider.get_client", side_effect=RuntimeError("Missing env var: NEBIUS_API_KEY")):
        resp = client.post("/api/chat/message", data={"message": "hi", "conversationId": "c6"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "error"
    assert body["conversationId"] == "c6"
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert "NEBIUS_API_KEY" not in body["error"]["message"]
    assert app.state.orchestrator is None
