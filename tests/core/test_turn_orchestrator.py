"""
Tests for the ConversationOrchestrator.

The orchestrator is wired with real components (session manager, staging cache, tool
registry, tool executor, chat model, mock capability backends); only the LLM client
is a scripted fake whose responses are consumed in order. The scenarios cover:
- plain turns without tools and history growth across turns
- uploads staged under their logical paths and resolved by a tool call
- the reported tool list, taken from the dispatch record in invocation order
- capability failures that are explained to the user without failing the turn
- request validation and model failures that do fail the turn with a classified code
"""

import threading
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from capabilities.base import CapabilityClients, DeliveryErrorCode
from capabilities.mock_client import MockDocumentAnalyzer, MockImageAnalyzer, MockNotifier
from core.orchestrator import FILES_FOOTER, FILES_HEADER, TurnProcessingError, augment_message
from services.session_manager import ConversationStateManager
from shared.models import StagedFile, UploadedFile

EMAIL_ARGS = {
    "email_address": "alex@example.com",
    "first_name": "Alex",
    "last_name": "Doe",
    "policy_number": "POL-123",
    "vin": "1HGCM82633A004352",
}


def _sent_messages(client, call_index):
    return client.chat.completions.create.call_args_list[call_index].kwargs["messages"]


def _tool_messages(messages):
    return [m for m in messages if m["role"] == "tool"]


def test_turn_without_tools_and_history_growth(scripted_client, make_completion, make_tool_call,
                                               build_test_orchestrator, sample_pdf_bytes):
    manager = ConversationStateManager()
    client = scripted_client(
        make_completion("Nice to meet you, Alex!"),
        make_completion(tool_calls=[make_tool_call("analyze_pdf", {"file_path": "/uploaded/c1/report.pdf"})]),
        make_completion("Here is the summary of your report."),
    )
    orchestrator = build_test_orchestrator(client, session_manager=manager)

    first = orchestrator.process_turn("c1", "My name is Alex")

    assert first.conversation_id == "c1"
    assert first.reply_text == "Nice to meet you, Alex!"
    assert first.tools_used == []
    assert len(manager.get_or_create("c1")) == 1

    upload = UploadedFile(filename="report.pdf", content=sample_pdf_bytes, media_type="application/pdf")
    second = orchestrator.process_turn("c1", "Summarize this", [upload])

    assert second.reply_text == "Here is the summary of your report."
    assert second.tools_used == ["analyze_pdf"]
    assert len(manager.get_or_create("c1")) == 2

    # The second turn's first model call carries the earlier exchange and the augmented message
    sent = _sent_messages(client, 1)
    assert sent[0]["role"] == "system"
    assert sent[1] == {"role": "user", "content": "My name is Alex"}
    assert sent[2] == {"role": "assistant", "content": "Nice to meet you, Alex!"}
    assert "Available at path: /uploaded/c1/report.pdf" in sent[-1]["content"]

    # The tool result fed back to the model comes from the staged bytes
    tool_results = _tool_messages(_sent_messages(client, 2))
    assert len(tool_results) == 1
    assert tool_results[0]["tool_call_id"] == "call_analyze_pdf"
    assert "Pages: 2" in tool_results[0]["content"]
    assert "- File: report.pdf" in tool_results[0]["content"]


def test_history_stores_augmented_message(scripted_client, make_completion, build_test_orchestrator,
                                          sample_pdf_bytes):
    manager = ConversationStateManager()
    orchestrator = build_test_orchestrator(scripted_client(make_completion("Got it.")), session_manager=manager)
    upload = UploadedFile(filename="report.pdf", content=sample_pdf_bytes, media_type="application/pdf")

    orchestrator.process_turn("c2", "Keep this", [upload])

    stored = manager.get_or_create("c2").turns()[0]
    assert stored.user_message.startswith("Keep this" + FILES_HEADER)
    assert stored.assistant_message == "Got it."


def test_tools_used_preserves_order_and_repeats(scripted_client, make_completion, make_tool_call,
                                                build_test_orchestrator, sample_pdf_bytes):
    notifier = MockNotifier()
    capabilities = CapabilityClients(documents=MockDocumentAnalyzer(), images=MockImageAnalyzer(), notifier=notifier)
    client = scripted_client(
        make_completion(tool_calls=[
            make_tool_call("analyze_pdf", {"file_path": "/uploaded/c3/a.pdf"}, call_id="call_1"),
            make_tool_call("analyze_pdf", {"file_path": "/uploaded/c3/b.pdf"}, call_id="call_2"),
        ]),
        make_completion(tool_calls=[make_tool_call("send_policy_email", EMAIL_ARGS, call_id="call_3")]),
        make_completion("Both documents analyzed and the email is on its way."),
    )
    orchestrator = build_test_orchestrator(client, capabilities=capabilities)
    files = [
        UploadedFile(filename="a.pdf", content=sample_pdf_bytes, media_type="application/pdf"),
        UploadedFile(filename="b.pdf", content=sample_pdf_bytes, media_type="application/pdf"),
    ]

    result = orchestrator.process_turn("c3", "Analyze both and email me", files)

    assert result.tools_used == ["analyze_pdf", "analyze_pdf", "send_policy_email"]
    assert len(notifier.sent) == 1
    assert notifier.sent[0].policy_number == "POL-123"
    tool_results = _tool_messages(_sent_messages(client, 2))
    assert [m["tool_call_id"] for m in tool_results] == ["call_1", "call_2", "call_3"]
    assert "Message ID: mock-000001" in tool_results[2]["content"]


def test_delivery_failure_is_explained_not_raised(scripted_client, make_completion, make_tool_call,
                                                  build_test_orchestrator):
    capabilities = CapabilityClients(
        documents=MockDocumentAnalyzer(),
        images=MockImageAnalyzer(),
        notifier=MockNotifier(failure_code=DeliveryErrorCode.AUTHENTICATION_FAILED),
    )
    client = scripted_client(
        make_completion(tool_calls=[make_tool_call("send_policy_email", EMAIL_ARGS)]),
        make_completion("I'm sorry, I could not send the email right now."),
    )
    orchestrator = build_test_orchestrator(client, capabilities=capabilities)

    result = orchestrator.process_turn("c4", "Email my policy")

    assert result.reply_text == "I'm sorry, I could not send the email right now."
    assert result.tools_used == ["send_policy_email"]
    tool_result = _tool_messages(_sent_messages(client, 1))[0]["content"]
    assert "authentication issue" in tool_result
    assert "Mock delivery failure" not in tool_result


def test_files_are_not_visible_to_later_turns(scripted_client, make_completion, make_tool_call,
                                              build_test_orchestrator, sample_pdf_bytes):
    client = scripted_client(
        make_completion("Thanks for the file."),
        make_completion(tool_calls=[make_tool_call("analyze_pdf", {"file_path": "/uploaded/c5/report.pdf"})]),
        make_completion("I can no longer see that file, please upload it again."),
    )
    orchestrator = build_test_orchestrator(client)
    upload = UploadedFile(filename="report.pdf", content=sample_pdf_bytes, media_type="application/pdf")

    orchestrator.process_turn("c5", "Here is my report", [upload])
    result = orchestrator.process_turn("c5", "Now summarize it")

    assert result.tools_used == ["analyze_pdf"]
    tool_result = _tool_messages(_sent_messages(client, 2))[0]["content"]
    assert tool_result.startswith("Sorry, I couldn't access the PDF file at '/uploaded/c5/report.pdf'")


def test_concurrent_turns_keep_files_and_tools_apart(make_completion, make_tool_call, build_test_orchestrator,
                                                   sample_pdf_bytes):
    barrier = threading.Barrier(2, timeout=5)
    tool_outputs = {}

    def respond(**kwargs):
        messages = kwargs["messages"]
        conversation = "a" if any("/uploaded/a/" in (m.get("content") or "") for m in messages) else "b"
        if messages[-1]["role"] == "tool":
            tool_outputs[conversation] = messages[-1]["content"]
            return make_completion(f"Done with {conversation}.")
        # Both turns hold their staged files before either dispatches a tool
        barrier.wait()
        if conversation == "a":
            return make_completion(tool_calls=[make_tool_call("analyze_pdf", {"file_path": "/uploaded/a/doc.pdf"})])
        return make_completion(tool_calls=[make_tool_call("analyze_image", {"file_path": "/uploaded/b/car.png"})])

    client = MagicMock()
    client.chat.completions.create.side_effect = respond
    orchestrator = build_test_orchestrator(client)
    uploads = {
        "a": [UploadedFile(filename="doc.pdf", content=sample_pdf_bytes, media_type="application/pdf")],
        "b": [UploadedFile(filename="car.png", content=b"\x89PNG fake", media_type="image/png")],
    }
    results, errors = {}, []

    def run(conversation_id):
        try:
            results[conversation_id] = orchestrator.process_turn(conversation_id, "Analyze this",
                                                                 uploads[conversation_id])
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=run, args=(cid,)) for cid in ("a", "b")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    assert results["a"].tools_used == ["analyze_pdf"]
    assert results["b"].tools_used == ["analyze_image"]
    assert results["a"].reply_text == "Done with a."
    assert results["b"].reply_text == "Done with b."
    assert tool_outputs["a"].startswith("PDF Analysis Results:")
    assert tool_outputs["b"].startswith("Image Analysis Results:")


def test_unknown_tool_is_not_reported(scripted_client, make_completion, make_tool_call, build_test_orchestrator):
    client = scripted_client(
        make_completion(tool_calls=[make_tool_call("delete_everything", {})]),
        make_completion("I can't do that."),
    )
    result = build_test_orchestrator(client).process_turn("c6", "Delete my data")

    assert result.tools_used == []
    assert _tool_messages(_sent_messages(client, 1))[0]["content"] == "Unknown tool 'delete_everything'"


def test_missing_conversation_id_is_minted(scripted_client, make_completion, build_test_orchestrator):
    manager = ConversationStateManager()
    orchestrator = build_test_orchestrator(scripted_client(make_completion("Hello!")), session_manager=manager)

    result = orchestrator.process_turn(None, "Hi")

    assert isinstance(result.conversation_id, str) and result.conversation_id
    assert manager.get_session(result.conversation_id) is not None
    assert result.turn_id


@pytest.mark.parametrize("message, files, expected_code", [
    ("", None, "INVALID_MESSAGE"),
    ("   ", None, "INVALID_MESSAGE"),
    ("x" * 2001, None, "MESSAGE_TOO_LONG"),
    ("hi", [UploadedFile("empty.pdf", b"", "application/pdf")], "EMPTY_FILE"),
    ("hi", [UploadedFile("notes.txt", b"text", "text/plain")], "FILE_VALIDATION_FAILED"),
    ("hi", [UploadedFile(f"f{i}.pdf", b"%PDF", "application/pdf") for i in range(6)], "TOO_MANY_FILES"),
])
def test_invalid_requests_fail_before_model_call(scripted_client, build_test_orchestrator,
                                                 message, files, expected_code):
    manager = ConversationStateManager()
    client = scripted_client()
    orchestrator = build_test_orchestrator(client, session_manager=manager)

    with pytest.raises(TurnProcessingError) as exc_info:
        orchestrator.process_turn("c7", message, files)

    assert exc_info.value.classified.code == expected_code
    assert exc_info.value.conversation_id == "c7"
    client.chat.completions.create.assert_not_called()
    assert manager.get_session("c7") is None


def test_model_failure_is_classified(scripted_client, build_test_orchestrator):
    manager = ConversationStateManager()
    request = httpx.Request("POST", "https://llm.example.test/v1/chat/completions")
    rate_limited = openai.RateLimitError(
        "Error code: 429", response=httpx.Response(429, request=request), body=None,
    )
    orchestrator = build_test_orchestrator(scripted_client(rate_limited), session_manager=manager)

    with pytest.raises(TurnProcessingError) as exc_info:
        orchestrator.process_turn("c8", "Hello")

    assert exc_info.value.classified.code == "API_RATE_LIMIT"
    assert "429" not in exc_info.value.classified.message
    assert exc_info.value.elapsed_ms >= 0
    # Failed turns leave no trace in history
    assert len(manager.get_or_create("c8")) == 0


def test_untyped_model_failure_is_classified_by_message(scripted_client, build_test_orchestrator):
    orchestrator = build_test_orchestrator(scripted_client(RuntimeError("upstream request timed out")))

    with pytest.raises(TurnProcessingError) as exc_info:
        orchestrator.process_turn("c9", "Hello")

    assert exc_info.value.classified.code == "API_TIMEOUT"


def test_tool_round_limit_forces_final_answer(scripted_client, make_completion, make_tool_call,
                                              build_test_orchestrator):
    client = scripted_client(
        make_completion(tool_calls=[make_tool_call("send_policy_email", {}, call_id="r1")]),
        make_completion(tool_calls=[make_tool_call("send_policy_email", {}, call_id="r2")]),
        make_completion("Please share your details."),
    )
    result = build_test_orchestrator(client, max_tool_rounds=2).process_turn("c10", "Email me")

    assert result.reply_text == "Please share your details."
    assert result.tools_used == ["send_policy_email", "send_policy_email"]
    assert "tools" not in client.chat.completions.create.call_args_list[2].kwargs


def test_augment_message_lists_every_file():
    staged = [
        StagedFile(path="/uploaded/c1/report.pdf", filename="report.pdf", content=b"x", media_type="application/pdf"),
        StagedFile(path="/uploaded/c1/car.png", filename="car.png", content=b"y", media_type="image/png"),
    ]

    augmented = augment_message("Summarize this", staged)

    assert augmented == (
        "Summarize this"
        + FILES_HEADER
        + "\n- File: report.pdf (application/pdf) - Available at path: /uploaded/c1/report.pdf"
        + "\n- File: car.png (image/png) - Available at path: /uploaded/c1/car.png"
        + FILES_FOOTER
    )


def test_augment_message_without_files_is_unchanged():
    assert augment_message("Hello", []) == "Hello"
