"""
conftest.py – central pytest configuration, test bootstrap and shared fixtures.

Pytest imports this module before it collects any test files, which lets us prepare
the environment so that imports and test collection succeed consistently:
  1) Extend `sys.path` with the project root so absolute imports like `from core ...`
     and `from services ...` resolve without an editable install.
  2) Define safe default environment variables read at import time by the
     configuration layer: an LLM key (validated by `config`), the mock capability
     backend, and an empty log file path so tests never write log files.

Shared fixtures build fake OpenAI chat completion responses and tool calls, and a
fully wired orchestrator whose LLM client is a scripted fake. Nothing in the test
suite performs network I/O.
"""

import json
import os
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

# Ensure project root is on sys.path for direct imports like `core`, `shared`, etc.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Provide required environment defaults for tests
os.environ.setdefault("LLM_API_KEY", "test-key")
os.environ.setdefault("CAPABILITY_BACKEND", "mock")
os.environ.setdefault("LOG_FILE_PATH", "")


def _tool_call(name, arguments=None, call_id=None):
    if isinstance(arguments, str):
        raw = arguments
    else:
        raw = json.dumps(arguments or {})
    return SimpleNamespace(
        id=call_id or f"call_{name}",
        type="function",
        function=SimpleNamespace(name=name, arguments=raw),
    )


def _completion(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def make_tool_call():
    """Factory for tool call objects shaped like the OpenAI SDK's."""
    return _tool_call


@pytest.fixture
def make_completion():
    """Factory for chat completion responses shaped like the OpenAI SDK's."""
    return _completion


@pytest.fixture
def scripted_client():
    """
    Factory for a fake OpenAI client whose `chat.completions.create` returns the given
    responses in order (an exception instance in the script is raised instead).
    """
    def _make(*responses):
        client = MagicMock()
        client.chat.completions.create.side_effect = list(responses)
        return client
    return _make


@pytest.fixture
def build_test_orchestrator():
    """
    Factory for a ConversationOrchestrator wired with real components: session
    manager, tool registry, tool executor, chat model, and the mock capability
    backends (or the ones supplied). Only the LLM client is fake.
    """
    from capabilities.base import CapabilityClients
    from capabilities.mock_client import MockDocumentAnalyzer, MockImageAnalyzer, MockNotifier
    from core.error_classifier import ErrorClassifier
    from core.orchestrator import ConversationOrchestrator
    from llm_cloud.chat_model import ChatModel
    from llm_cloud.tools import build_tool_executor, tool_manager
    from services.session_manager import ConversationStateManager

    def _make(client, capabilities=None, session_manager=None, history_window=20, max_tool_rounds=5):
        capabilities = capabilities or CapabilityClients(
            documents=MockDocumentAnalyzer(),
            images=MockImageAnalyzer(),
            notifier=MockNotifier(),
        )
        classifier = ErrorClassifier()
        executor = build_tool_executor(capabilities, classifier)
        chat_model = ChatModel(client, tool_manager, executor, max_tool_rounds=max_tool_rounds)
        return ConversationOrchestrator(
            session_manager=session_manager or ConversationStateManager(history_window=history_window),
            chat_model=chat_model,
            system_prompt="You are a test assistant.",
            classifier=classifier,
        )
    return _make


@pytest.fixture
def sample_pdf_bytes():
    """Minimal two-page PDF-like payload understood by the mock document analyzer."""
    return (
        b"%PDF-1.4\n"
        b"1 0 obj << /Type /Catalog /Pages 2 0 R >> endobj\n"
        b"2 0 obj << /Type /Pages /Kids [3 0 R 4 0 R] /Count 2 >> endobj\n"
        b"3 0 obj << /Type /Page /Parent 2 0 R >> endobj\n"
        b"4 0 obj << /Type /Page /Parent 2 0 R >> endobj\n"
        b"%%EOF\n"
    )
