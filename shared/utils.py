"""
shared/utils.py

Shared utility functions used across multiple modules.

This module contains small helpers used by the orchestrator, the chat model and
the LLM-backed capabilities, so that id generation, timing and model call
parameters stay consistent across the system.
"""

import logging
import time
import uuid
from typing import Any, Dict

from config import CONFIG

logger = logging.getLogger(__name__)


def generate_conversation_id() -> str:
    """
    Mint a new opaque conversation identifier.

    Returns:
        str: A random UUID4 string, used when the caller does not supply an id.
    """
    return str(uuid.uuid4())


def elapsed_ms(start_time: float) -> int:
    """Milliseconds elapsed since `start_time` (a `time.monotonic()` reading)."""
    return int((time.monotonic() - start_time) * 1000)


def truncate_message_for_logging(message: str, max_length: int = 100) -> str:
    """
    Truncate long messages for logging purposes.

    Args:
        message (str): Message to truncate
        max_length (int): Maximum length before truncation (default: 100)

    Returns:
        str: Truncated message with ellipsis if needed
    """
    if message is None:
        return ""
    if len(message) <= max_length:
        return message
    return message[:max_length] + "..."


def build_completion_kwargs(model_key: str) -> Dict[str, Any]:
    """
    Build the keyword arguments for `client.chat.completions.create` from a model entry in config.

    The `top_k` sampling setting is not part of the OpenAI API, so it is only sent
    (through `extra_body`) when the configured provider is not OpenAI.

    Args:
        model_key (str): Key under CONFIG['llm']['models'], e.g. "chat" or "image_analysis".

    Returns:
        Dict[str, Any]: model, max_tokens, temperature, top_p and, when supported, extra_body.
    """
    model_config = CONFIG['llm']['models'][model_key]
    settings = model_config.get('settings', {})
    kwargs: Dict[str, Any] = {
        'model': model_config['name'],
        'max_tokens': settings.get('max_tokens', 1000),
        'temperature': settings.get('temperature', 0.3),
        'top_p': settings.get('top_p', 0.9),
    }
    provider = CONFIG['llm'].get('provider', 'nebius').strip().lower()
    if provider != 'openai' and 'top_k' in settings:
        kwargs['extra_body'] = {'top_k': settings['top_k']}
    return kwargs
