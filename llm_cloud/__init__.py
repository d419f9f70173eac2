"""
llm_cloud package: everything that talks to the external LLM platform.

- provider: builds the OpenAI-compatible client (Nebius or OpenAI)
- chat_model: runs one model call per turn, including the tool-calling loop
- tools: the static tool registry and the per-turn tool dispatcher
"""
