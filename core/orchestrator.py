"""
core/orchestrator.py

Per-turn coordinator for conversations.

This module contains the logic that turns one user message (plus optional
uploads) into one assistant reply:
1. Validates the request
2. Creates a fresh turn context (empty dispatch record, empty staging cache)
3. Stages the uploaded files under their logical paths
4. Binds the conversation history (created on first use)
5. Augments the message with the list of staged files
6. Runs the chat model with the tool registry bound
7. Appends the completed turn to history and reports the reply together with
   the tools that actually ran, read from the dispatch record

Any failure before the reply is ready is classified and raised as
`TurnProcessingError`; the caller never sees a raw exception.
"""

import time
from typing import Any, Dict, List, Optional

from config import CONFIG
from config.logging_config import get_logger
from capabilities import build_capabilities
from capabilities.base import CapabilityClients
from llm_cloud.chat_model import ChatModel
from llm_cloud.tools import build_tool_executor, tool_manager
from monitoring.metrics import TURN_PROCESSING_TIME, track_errors, track_latency
from services.file_staging import FileStagingCache
from services.session_manager import ConversationStateManager, ConversationTurn
from shared.models import ClassifiedError, StagedFile, TurnContext, TurnResult, TurnState, UploadedFile
from shared.utils import elapsed_ms, generate_conversation_id, truncate_message_for_logging
from .error_classifier import ErrorClassifier
from .validation import TurnValidationError, validate_turn_request

logger = get_logger(__name__)

FILES_HEADER = "\n\n[UPLOADED FILES AVAILABLE FOR ANALYSIS:"
FILES_FOOTER = "\nYou can use your analysis tools on these files if the user requests analysis.]"


class TurnProcessingError(Exception):
    """A turn that ended in the FAILED state. `classified` is safe to return to the caller."""

    def __init__(self, classified: ClassifiedError, conversation_id: str, elapsed_ms: int) -> None:
        super().__init__(f"{classified.code}: {classified.message}")
        self.classified = classified
        self.conversation_id = conversation_id
        self.elapsed_ms = elapsed_ms


def augment_message(message: str, staged_files: List[StagedFile]) -> str:
    """
    Append the list of staged files to the user message so the model can reference them by path.

    Args:
        message (str): The user's message.
        staged_files (List[StagedFile]): Files staged for this turn.

    Returns:
        str: The message unchanged when nothing was staged, otherwise the message
        followed by one line per file with its logical path and media type.
    """
    if not staged_files:
        return message
    lines = [message, FILES_HEADER]
    for staged in staged_files:
        lines.append(f"\n- File: {staged.filename} ({staged.media_type}) - Available at path: {staged.path}")
    lines.append(FILES_FOOTER)
    return "".join(lines)


class ConversationOrchestrator:
    """
    Coordinates one turn at a time for any number of concurrent conversations.

    The orchestrator itself is stateless between turns: conversation state lives in the
    `ConversationStateManager`, and everything scoped to a turn lives on the
    `TurnContext` created at the start of `process_turn`.

    Args:
        session_manager (ConversationStateManager): Owner of conversation histories.
        chat_model (ChatModel): Model call with the tool registry bound.
        system_prompt (str): Fixed system instruction sent with every turn.
        classifier (ErrorClassifier, optional): Maps failures to user-presentable errors.
        limits (dict, optional): Request validation limits (the `chat` config section).
    """

    def __init__(self, session_manager: ConversationStateManager, chat_model: ChatModel, system_prompt: str,
                 classifier: Optional[ErrorClassifier] = None, limits: Optional[Dict[str, Any]] = None) -> None:
        self.session_manager = session_manager
        self.chat_model = chat_model
        self.system_prompt = system_prompt
        self.classifier = classifier or ErrorClassifier()
        self.limits = limits or {}

    @track_errors('turn', 'orchestrator')
    @track_latency(TURN_PROCESSING_TIME)
    def process_turn(self, conversation_id: Optional[str], message: str,
                     files: Optional[List[UploadedFile]] = None) -> TurnResult:
        """
        Process one user turn.

        Args:
            conversation_id (str, optional): Existing conversation id; a new one is minted when empty.
            message (str): The user's message.
            files (List[UploadedFile], optional): Uploads attached to this turn.

        Returns:
            TurnResult: Reply text, the ordered list of tools that ran, and timing.

        Raises:
            TurnProcessingError: If the turn fails before the reply is ready.
        """
        start_time = time.monotonic()
        conversation_id = conversation_id or generate_conversation_id()
        turn = TurnContext(conversation_id=conversation_id, files=FileStagingCache(conversation_id))
        log = logger.bind(conversation_id=conversation_id, turn_id=turn.turn_id)
        log.info(
            f"[process_turn] Processing message ({len(files or [])} file(s)): "
            f"{truncate_message_for_logging(message)}\n"
        )

        try:
            validate_turn_request(message, files, self.limits)

            staged = turn.files.stage(files or [])
            history = self.session_manager.get_or_create(conversation_id)
            turn.state = TurnState.HISTORY_BOUND

            augmented = augment_message(message, list(staged.values()))
            turn.state = TurnState.MODEL_CALL
            reply = self.chat_model.chat(self.system_prompt, history.messages(), augmented, turn)

            tools_used = turn.tools_used
            history.append(ConversationTurn(user_message=augmented, assistant_message=reply, tools_used=tools_used))
            turn.state = TurnState.REPLY_READY
        except TurnValidationError as exc:
            turn.state = TurnState.FAILED
            duration = elapsed_ms(start_time)
            log.warning(
                f"[process_turn] Request rejected: {exc.message}\n",
                extra={'error_code': exc.code, 'elapsed_ms': duration},
            )
            raise TurnProcessingError(ClassifiedError(code=exc.code, message=exc.message), conversation_id, duration) from exc
        except Exception as exc:
            turn.state = TurnState.FAILED
            duration = elapsed_ms(start_time)
            classified = self.classifier.classify(exc)
            log.error(
                f"[process_turn] Turn failed: {type(exc).__name__}: {exc}\n",
                extra={'error_code': classified.code, 'elapsed_ms': duration},
                exc_info=True,
            )
            raise TurnProcessingError(classified, conversation_id, duration) from exc

        duration = elapsed_ms(start_time)
        log.info(
            f"[process_turn] Reply ready, tools used: {tools_used or 'none'}\n",
            extra={'elapsed_ms': duration},
        )
        return TurnResult(
            conversation_id=conversation_id,
            reply_text=reply,
            tools_used=tools_used,
            turn_id=turn.turn_id,
            elapsed_ms=duration,
        )


def build_session_manager(config: Optional[Dict[str, Any]] = None) -> ConversationStateManager:
    config = CONFIG if config is None else config
    conversation = config.get('conversation', {})
    return ConversationStateManager(
        history_window=int(conversation.get('history_window', 20)),
        idle_timeout_seconds=float(conversation.get('idle_timeout_minutes', 30)) * 60,
    )


def build_orchestrator(config: Optional[Dict[str, Any]] = None, client=None,
                       capabilities: Optional[CapabilityClients] = None,
                       session_manager: Optional[ConversationStateManager] = None) -> ConversationOrchestrator:
    """
    Wire a ConversationOrchestrator from configuration.

    Every dependency can be injected; anything omitted is built from `config`
    (the global CONFIG by default). The LLM client is created lazily through
    `llm_cloud.provider.get_client` only when not supplied.
    """
    config = CONFIG if config is None else config
    if client is None:
        from llm_cloud.provider import get_client
        client = get_client()
    capabilities = capabilities or build_capabilities(config.get('capabilities', {}).get('backend'), client)
    classifier = ErrorClassifier()
    executor = build_tool_executor(capabilities, classifier)
    chat_model = ChatModel(client, tool_manager, executor, config.get('llm', {}).get('max_tool_rounds'))
    orchestrator = ConversationOrchestrator(
        session_manager=session_manager or build_session_manager(config),
        chat_model=chat_model,
        system_prompt=config.get('system_prompt', ''),
        classifier=classifier,
        limits=config.get('chat', {}),
    )
    logger.info("[build_orchestrator] Orchestrator ready with tools: %s", ", ".join(tool_manager.names()))
    return orchestrator
