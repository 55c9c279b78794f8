"""
LLM module - embedding provider abstraction.

Providers:
- litellm: OpenAI-compatible embeddings via LiteLLM
"""
