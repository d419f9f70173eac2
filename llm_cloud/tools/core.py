# llm_cloud/tools/core.py
"""
core.py – Defines the core data structures and classes for tool management and execution.
--------------------------------------------------------------------------------------
This module provides the fundamental building blocks for the tool system:
- Tool: Represents a single capability that the LLM can call.
- ToolManager: Manages the registration and retrieval of tool definitions.
- ToolExecutor: Handles the execution of tools based on LLM requests.

Design notes:
1. Dependency Injection:
   - Capability backends are passed to tool handlers (not imported directly)
   - ToolManager, capabilities and the error classifier are passed to ToolExecutor
   This makes testing easier and dependencies explicit.

2. Single Responsibility:
   - ToolManager: handles registration and metadata (fixed at startup, same for every turn)
   - ToolExecutor: handles execution, file resolution and error handling

3. Per-turn state:
   - The executor holds no per-turn state. Everything that belongs to a turn (the
     staged-file index and the dispatch record) lives on the `TurnContext` passed
     to `run_tool`, so concurrent turns sharing one executor never see each
     other's files or tool lists.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional

from config.logging_config import get_logger
from capabilities.base import CapabilityClients
from core.error_classifier import ErrorClassifier
from monitoring.metrics import TOOL_EXECUTION_TIME, TOOL_INVOCATIONS
from services.file_staging import StagedFileNotFoundError
from shared.models import ClassifiedError, ErrorCategory, StagedFile, TurnContext, TurnState
from shared.utils import elapsed_ms

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Core data-structures
# ---------------------------------------------------------------------------

class Tool:
    """Metadata wrapper around a callable capability. Represents a tool that can be called by the LLM.

    Args:
        name:     Name of the tool. Unique identifier shown to the LLM.
        handler:  Function that performs the work. Signature:
                  (args: dict, staged_file: Optional[StagedFile], capabilities: CapabilityClients) -> str.
        description:  Short text shown to the LLM.
        parameters:   JSON schema describing *args* for the handler.
        file_parameter:  Name of the argument holding a staged-file path, if the tool takes a file.
                         The executor resolves it before the handler runs.
        not_found_formatter:  (path) -> str apology when the file cannot be resolved.
        error_formatter:  (args, staged_file, exc, classified) -> str apology when the handler raises.
    """

    def __init__(self, name, handler, description, parameters, file_parameter=None,
                 not_found_formatter=None, error_formatter=None):
        self.name = name
        self.handler = handler
        self.description = description
        self.parameters = parameters
        self.file_parameter = file_parameter
        self.not_found_formatter = not_found_formatter
        self.error_formatter = error_formatter


class ToolManager:
    """Manages tool registration and metadata retrieval."""

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Add or replace a tool in the registry, keyed by its name."""
        self._tools[tool.name] = tool

    def get_definitions(self) -> List[Dict[str, Any]]:
        """Return the list of function descriptions expected by the chat completions `tools` parameter."""
        return [
            {
                "type": "function",
                "function": {
                    "name": t.name,
                    "description": t.description,
                    "parameters": t.parameters,
                },
            }
            for t in self._tools.values()
        ]

    def get_tool(self, tool_name: str) -> Tool:
        """Retrieve a registered tool by name.

        Raises:
            KeyError: If no tool with the given name is registered. The caller
                      (e.g., ToolExecutor) is responsible for handling this.
        """
        return self._tools[tool_name]

    def names(self) -> List[str]:
        return list(self._tools.keys())


class ToolExecutor:
    """Runs tools requested by the LLM on behalf of one turn.

    For every call the executor:
    1. Looks the tool up (an unknown name yields a short message and is not recorded).
    2. Records the tool name in the turn's dispatch record.
    3. Parses the JSON arguments.
    4. Resolves the file argument through the turn's staging cache, if the tool takes one.
    5. Invokes the handler with the injected capability backends.
    6. Turns any failure into a short, non-technical explanation via the error classifier.

    `run_tool` always returns a string for the model and never raises.
    """

    def __init__(self, tool_manager: ToolManager, capabilities: CapabilityClients,
                 classifier: Optional[ErrorClassifier] = None) -> None:
        self.tool_manager = tool_manager
        self.capabilities = capabilities
        self.classifier = classifier or ErrorClassifier()

    def run_tool(self, tool_call: Any, turn: TurnContext) -> str:
        """Execute one tool call from the LLM within `turn`.

        Args:
            tool_call (Any): Tool call object from the LLM client library, with a `function`
                             attribute holding `name` and `arguments` (a JSON string).
            turn (TurnContext): The in-flight turn. Provides the staged files and receives
                                the dispatch record entry.

        Returns:
            str: The result text passed back to the model, or an apology on failure.
        """
        tool_name = tool_call.function.name
        raw_arguments = tool_call.function.arguments or "{}"
        log = logger.bind(conversation_id=turn.conversation_id, turn_id=turn.turn_id, tool_name=tool_name)

        try:
            tool = self.tool_manager.get_tool(tool_name)
        except KeyError:
            log.error(f"[run_tool] Unknown tool requested: '{tool_name}'. Raw arguments: {raw_arguments}\n")
            TOOL_INVOCATIONS.labels(tool_name="unknown", outcome="unknown_tool").inc()
            return f"Unknown tool '{tool_name}'"

        turn.record_tool(tool_name)
        turn.state = TurnState.TOOL_DISPATCH
        log.info(f"[run_tool] Dispatching tool '{tool_name}'\n")
        start_time = time.monotonic()
        try:
            return self._execute(tool, raw_arguments, turn, log, start_time)
        finally:
            TOOL_EXECUTION_TIME.labels(tool_name=tool_name).observe(time.monotonic() - start_time)
            turn.state = TurnState.MODEL_CALL

    def _execute(self, tool: Tool, raw_arguments: str, turn: TurnContext, log, start_time: float) -> str:
        try:
            args = json.loads(raw_arguments)
            if not isinstance(args, dict):
                raise json.JSONDecodeError("Arguments must be a JSON object", raw_arguments, 0)
        except json.JSONDecodeError as exc:
            log.error(
                f"[run_tool] Failed to parse JSON arguments for tool '{tool.name}': {exc}\n",
                extra={'error_code': ErrorCategory.INTERNAL_ERROR.value, 'elapsed_ms': elapsed_ms(start_time)},
            )
            TOOL_INVOCATIONS.labels(tool_name=tool.name, outcome="bad_arguments").inc()
            return f"Error: Malformed arguments provided for tool '{tool.name}'. Arguments must be a valid JSON string."

        staged_file: Optional[StagedFile] = None
        if tool.file_parameter:
            path = str(args.get(tool.file_parameter) or "")
            try:
                staged_file = turn.files.resolve(path)
            except StagedFileNotFoundError:
                log.warning(
                    f"[run_tool] File '{path}' is not staged in this turn\n",
                    extra={'error_code': ErrorCategory.FILE_ACCESS_ERROR.value, 'elapsed_ms': elapsed_ms(start_time)},
                )
                TOOL_INVOCATIONS.labels(tool_name=tool.name, outcome="file_not_found").inc()
                if tool.not_found_formatter:
                    return tool.not_found_formatter(path)
                return self.classifier.classify(StagedFileNotFoundError(path)).message

        try:
            result = tool.handler(args, staged_file, self.capabilities)
        except Exception as exc:
            classified = self.classifier.classify(exc)
            log.error(
                f"[run_tool] Tool '{tool.name}' failed: {type(exc).__name__}: {exc}\n",
                extra={'error_code': classified.code, 'elapsed_ms': elapsed_ms(start_time)},
            )
            TOOL_INVOCATIONS.labels(tool_name=tool.name, outcome="error").inc()
            return self._format_error(tool, args, staged_file, exc, classified)

        TOOL_INVOCATIONS.labels(tool_name=tool.name, outcome="success").inc()
        log.info(f"[run_tool] Successfully executed tool '{tool.name}'\n")
        log.debug(f"[run_tool] Result: {result}\n")
        return result

    def _format_error(self, tool: Tool, args: Dict[str, Any], staged_file: Optional[StagedFile],
                      exc: Exception, classified: ClassifiedError) -> str:
        if tool.error_formatter is None:
            return classified.message
        try:
            return tool.error_formatter(args, staged_file, exc, classified)
        except Exception as format_exc:
            logger.error(f"[run_tool] Error formatter for '{tool.name}' failed: {format_exc}\n")
            return classified.message
