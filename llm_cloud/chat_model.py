"""
chat_model.py – One model call per turn, with the tool registry bound.
-----------------------------------------------------------------------
`ChatModel.chat` sends the system prompt, the conversation history and the new
user message to the chat model together with the tool definitions. Whenever the
model answers with tool calls, each call is dispatched synchronously through the
`ToolExecutor` (in the order the model listed them), the results are appended as
`tool` messages, and the model is called again. The loop is bounded by
`llm.max_tool_rounds`; when the bound is reached a last call without tools forces
a plain text reply.

From the orchestrator's point of view this whole exchange is a single model call:
it gets back the final reply text, and the tool dispatches have been recorded on
the turn context along the way.
"""

from typing import Any, Dict, List, Optional

from openai import OpenAI

from config import CONFIG
from config.logging_config import get_logger
from monitoring.metrics import LLM_REQUEST_TIME, track_latency
from shared.models import TurnContext, TurnState
from shared.utils import build_completion_kwargs
from .tools.core import ToolExecutor, ToolManager

logger = get_logger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 5


class ChatModel:
    """
    Drives the chat completion and tool-calling loop for one turn.

    Args:
        client (OpenAI): OpenAI-compatible client.
        tool_manager (ToolManager): Registry whose definitions are sent with every call.
        tool_executor (ToolExecutor): Dispatcher for the model's tool calls.
        max_tool_rounds (int, optional): Maximum number of tool-calling rounds per turn.
        model_key (str): Model entry under CONFIG['llm']['models'].
    """

    def __init__(self, client: OpenAI, tool_manager: ToolManager, tool_executor: ToolExecutor,
                 max_tool_rounds: Optional[int] = None, model_key: str = "chat") -> None:
        self.client = client
        self.tool_manager = tool_manager
        self.tool_executor = tool_executor
        self.max_tool_rounds = max_tool_rounds or CONFIG['llm'].get('max_tool_rounds', DEFAULT_MAX_TOOL_ROUNDS)
        self.model_key = model_key
        self.model_name = CONFIG['llm']['models'][model_key]['name']

    def chat(self, system_prompt: str, history_messages: List[Dict[str, str]],
             user_message: str, turn: TurnContext) -> str:
        """
        Run the model for one turn and return the final reply text.

        Args:
            system_prompt (str): Fixed system instruction.
            history_messages (List[Dict[str, str]]): Prior turns as role/content messages.
            user_message (str): The (augmented) user message of this turn.
            turn (TurnContext): The in-flight turn; tool dispatches are recorded on it.

        Returns:
            str: The assistant's final text.
        """
        log = logger.bind(conversation_id=turn.conversation_id, turn_id=turn.turn_id)
        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        messages.extend(history_messages)
        messages.append({"role": "user", "content": user_message})
        tool_definitions = self.tool_manager.get_definitions()

        for round_number in range(1, self.max_tool_rounds + 1):
            turn.state = TurnState.MODEL_CALL
            response = self._complete(messages, tools=tool_definitions)
            message = response.choices[0].message
            tool_calls = message.tool_calls or []
            if not tool_calls:
                return (message.content or "").strip()

            log.info(f"[chat] Round {round_number}: model requested {len(tool_calls)} tool call(s)\n")
            messages.append(self._assistant_tool_message(message))
            for tool_call in tool_calls:
                result = self.tool_executor.run_tool(tool_call, turn)
                messages.append({
                    "role": "tool",
                    "tool_call_id": tool_call.id,
                    "content": result,
                })

        log.warning(f"[chat] Tool round limit ({self.max_tool_rounds}) reached; requesting a final answer\n")
        turn.state = TurnState.MODEL_CALL
        response = self._complete(messages)
        return (response.choices[0].message.content or "").strip()

    @track_latency(LLM_REQUEST_TIME, labels=lambda self: {'model': self.model_name})
    def _complete(self, messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]] = None):
        kwargs = build_completion_kwargs(self.model_key)
        if tools:
            kwargs['tools'] = tools
            kwargs['tool_choice'] = "auto"
        return self.client.chat.completions.create(messages=list(messages), **kwargs)

    @staticmethod
    def _assistant_tool_message(message: Any) -> Dict[str, Any]:
        return {
            "role": "assistant",
            "content": message.content or "",
            "tool_calls": [
                {
                    "id": tool_call.id,
                    "type": "function",
                    "function": {
                        "name": tool_call.function.name,
                        "arguments": tool_call.function.arguments,
                    },
                }
                for tool_call in message.tool_calls
            ],
        }
