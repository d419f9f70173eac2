"""
api/chat.py

Chat endpoint: one conversational turn per request.

Endpoints:
  - POST /chat/message: Receives a user message with optional file uploads and an
                        optional conversation id, runs the turn through the
                        ConversationOrchestrator, and returns the response envelope.

The endpoint always answers with HTTP 200; success and failure are distinguished
by the envelope's `status` field. Turn processing is blocking (model and
capability calls), so it runs in the worker thread pool rather than on the event loop.
"""

from typing import List, Optional

import logging
from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from core.error_classifier import ErrorClassifier
from core.orchestrator import (
    ConversationOrchestrator,
    TurnProcessingError,
    build_orchestrator,
    build_session_manager,
)
from shared.models import ChatResponse, ErrorCategory, UploadedFile

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_MEDIA_TYPE = "application/octet-stream"


def get_orchestrator(request: Request) -> ConversationOrchestrator:
    """
    Return the application's orchestrator, building it on first use.

    The orchestrator shares the session manager stored on `app.state` (created at
    startup, where the idle sweep is attached to it).
    """
    state = request.app.state
    orchestrator = getattr(state, "orchestrator", None)
    if orchestrator is None:
        session_manager = getattr(state, "session_manager", None)
        if session_manager is None:
            session_manager = build_session_manager()
            state.session_manager = session_manager
        orchestrator = build_orchestrator(session_manager=session_manager)
        state.orchestrator = orchestrator
    return orchestrator


async def _read_uploads(files: Optional[List[UploadFile]]) -> List[UploadedFile]:
    uploads: List[UploadedFile] = []
    for upload in files or []:
        content = await upload.read()
        # Browsers submit an empty part for an untouched file input
        if not upload.filename and not content:
            continue
        uploads.append(UploadedFile(
            filename=upload.filename or "",
            content=content,
            media_type=upload.content_type or DEFAULT_MEDIA_TYPE,
        ))
    return uploads


@router.post("/chat/message", response_model=ChatResponse)
async def send_message(
    request: Request,
    message: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    conversationId: Optional[str] = Form(None),
):
    """
    Process one chat turn.

    Args:
        message (str): The user's message (validated by the orchestrator).
        files (List[UploadFile], optional): Up to the configured number of PDF or image uploads.
        conversationId (str, optional): Existing conversation id; a new one is generated when omitted.

    Returns:
        JSONResponse: The ChatResponse envelope with HTTP 200. On success it carries the reply,
            the conversation id and the tools that ran; on failure a stable error code and a
            user-presentable message.
    """
    uploads = await _read_uploads(files)
    try:
        orchestrator = get_orchestrator(request)
        result = await run_in_threadpool(orchestrator.process_turn, conversationId, message, uploads)
        body = ChatResponse.success(result)
    except TurnProcessingError as exc:
        body = ChatResponse.failure(
            exc.classified.code, exc.classified.message, exc.conversation_id, exc.elapsed_ms
        )
    except Exception as exc:
        logger.exception(f"[send_message] Unexpected error: {exc}\n")
        classified = ErrorClassifier.for_category(ErrorCategory.INTERNAL_ERROR)
        body = ChatResponse.failure(classified.code, classified.message, conversationId)
    return JSONResponse(status_code=200, content=body.model_dump())
