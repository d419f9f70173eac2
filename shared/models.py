"""
shared/models.py

Common data models and type definitions used across the orchestration core.

This module contains the shared data structures that standardize communication
between the HTTP layer, the request orchestrator, the tool dispatcher and the
error classifier:

- ErrorCategory / ClassifiedError: the closed, user-presentable error taxonomy.
- UploadedFile / StagedFile: uploaded bytes before and after staging.
- TurnState / TurnContext: the per-turn arena that carries the staged-file index
  and the dispatch record for exactly one in-flight turn.
- TurnResult: what a completed turn hands back to the caller.
- ErrorDetail / ChatResponse: the response envelope returned by the chat endpoint.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ErrorCategory(Enum):
    """
    Stable error codes presented to callers.

    The value of each member is the code that appears in the response envelope,
    so these strings are part of the public contract and must not change.
    """
    FILE_ACCESS_ERROR = "FILE_ACCESS_ERROR"
    PDF_PROCESSING_ERROR = "PDF_PROCESSING_ERROR"
    IMAGE_PROCESSING_ERROR = "IMAGE_PROCESSING_ERROR"
    EMAIL_SENDING_ERROR = "EMAIL_SENDING_ERROR"
    API_KEY_INVALID = "API_KEY_INVALID"
    API_RATE_LIMIT = "API_RATE_LIMIT"
    API_TIMEOUT = "API_TIMEOUT"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class ClassifiedError:
    """A failure mapped onto the taxonomy: a stable code plus a non-technical message."""
    code: str
    message: str
    category: Optional[ErrorCategory] = None

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass
class UploadedFile:
    """A file as received from the caller, before staging."""
    filename: str
    content: bytes
    media_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class StagedFile:
    """
    An uploaded file registered under its standardized logical path.

    The path is a pure function of the conversation id and the original filename,
    see `services.file_staging.build_file_path`.
    """
    path: str
    filename: str
    content: bytes
    media_type: str

    @property
    def size(self) -> int:
        return len(self.content)


class TurnState(Enum):
    """Lifecycle of a single turn inside the orchestrator."""
    STAGING = "staging"
    HISTORY_BOUND = "history_bound"
    MODEL_CALL = "model_call"
    TOOL_DISPATCH = "tool_dispatch"
    REPLY_READY = "reply_ready"
    FAILED = "failed"


@dataclass
class TurnContext:
    """
    Per-turn arena created by the orchestrator at the start of every turn.

    It owns the two pieces of state that must never outlive or escape the turn:
    the staged-file index (`files`, a `FileStagingCache`) and the dispatch record
    (`tools_used`). The dispatcher appends to the dispatch record through
    `record_tool`, which is safe to call from whichever thread the model layer
    uses for tool execution.
    """
    conversation_id: str
    files: Any
    turn_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: TurnState = TurnState.STAGING
    _tools_used: List[str] = field(default_factory=list, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_tool(self, tool_name: str) -> None:
        with self._lock:
            self._tools_used.append(tool_name)

    @property
    def tools_used(self) -> List[str]:
        """Snapshot of the dispatch record in invocation order."""
        with self._lock:
            return list(self._tools_used)


@dataclass
class TurnResult:
    """Outcome of a successfully completed turn."""
    conversation_id: str
    reply_text: str
    tools_used: List[str]
    turn_id: str
    elapsed_ms: int = 0


# ---------------------------------------------------------------------------
# Response envelope (API layer)
# ---------------------------------------------------------------------------

def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorDetail(BaseModel):
    """Error block of the chat response envelope."""
    code: str = Field(..., description="Stable error code")
    message: str = Field(..., description="Non-technical explanation for the user")
    timestamp: str = Field(default_factory=_utc_now_iso)


class ChatResponse(BaseModel):
    """
    Response envelope returned by POST /api/chat/message.

    The same shape is used for both outcomes; `status` tells them apart and the
    HTTP status code is always 200.
    """
    status: str = Field(..., description="'success' or 'error'")
    response: Optional[str] = None
    conversationId: Optional[str] = None
    timestamp: str = Field(default_factory=_utc_now_iso)
    processingTimeMs: Optional[int] = None
    toolsUsed: List[str] = Field(default_factory=list)
    error: Optional[ErrorDetail] = None

    @classmethod
    def success(cls, result: TurnResult) -> "ChatResponse":
        return cls(
            status="success",
            response=result.reply_text,
            conversationId=result.conversation_id,
            processingTimeMs=result.elapsed_ms,
            toolsUsed=result.tools_used,
        )

    @classmethod
    def failure(cls, code: str, message: str, conversation_id: Optional[str] = None,
                elapsed_ms: Optional[int] = None) -> "ChatResponse":
        return cls(
            status="error",
            conversationId=conversation_id,
            processingTimeMs=elapsed_ms,
            error=ErrorDetail(code=code, message=message),
        )
