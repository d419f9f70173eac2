"""
provider.py – Build and return a configured OpenAI-compatible client (Nebius or OpenAI).
----------------------------------------------------------------------------------------
This is the single place where the application constructs the SDK client for the
external LLM platform. The chat model and the LLM-backed capabilities simply ask
for a client; they do not need to know about base URLs, API keys or timeouts.

Client creation is wrapped in a function rather than a module-level global, so
importing this module has no side effects, tests can inject a fake client, and
the API key is validated when the client is actually needed.

Provider routing (CONFIG["llm"]["provider"]):
- "nebius": Nebius-compatible endpoint from config, key from LLM_API_KEY or NEBIUS_API_KEY
- "openai": OpenAI's official endpoint, key from OPENAI_API_KEY
- anything else raises ValueError
"""

import logging
import os
from typing import Dict, List, Optional, Tuple

from openai import OpenAI
from config import CONFIG

logger = logging.getLogger(__name__)

PROVIDER_KEYS = {
    "nebius": ["LLM_API_KEY", "NEBIUS_API_KEY"],
    "openai": ["OPENAI_API_KEY"],
}
OPENAI_BASE_URL = "https://api.openai.com/v1"
NEBIUS_BASE_URL = "https://api.studio.nebius.com/v1/"


def require_any_env(var_names: List[str]) -> Tuple[str, str]:
    """
    Return the first of `var_names` that is set to a non-empty value.

    Only the variable name is ever logged, never the secret.

    Returns:
        Tuple[str, str]: (selected_var_name, value)

    Raises:
        RuntimeError: If none of the variables is set.
    """
    for var_name in var_names:
        value = os.getenv(var_name, "")
        if value:
            return var_name, value
    raise RuntimeError(
        f"Missing required environment variable. Set one of: {', '.join(var_names)}"
    )


def selected_provider(config: Optional[Dict] = None) -> str:
    config = CONFIG if config is None else config
    provider = config.get("llm", {}).get("provider", "nebius").strip().lower()
    if provider not in PROVIDER_KEYS:
        raise ValueError(f"Unsupported LLM provider: {provider}")
    return provider


def get_client() -> OpenAI:
    """
    Build an OpenAI-compatible client for the configured provider.

    Returns:
        OpenAI: A ready-to-use client with the configured request timeout.

    Raises:
        RuntimeError: If the API key for the provider is missing.
        ValueError: If an unsupported provider is configured.
    """
    llm_config = CONFIG.get("llm", {})
    provider = selected_provider()
    selected_var, api_key = require_any_env(PROVIDER_KEYS[provider])

    if provider == "openai":
        base_url = OPENAI_BASE_URL
    else:
        base_url = llm_config.get("base_url", NEBIUS_BASE_URL)
    logger.info("LLM provider selected: %s | base_url=%s | key from %s", provider, base_url, selected_var)

    return OpenAI(
        base_url=base_url,
        api_key=api_key,
        timeout=llm_config.get("timeout", 60),
    )
