"""LLM adapter layer used to summarize READMEs into structured JSON."""

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.factory import SUPPORTED_PROVIDERS, create_llm_client
from app.adapters.llm.openai_client import DEFAULT_SYSTEM_PROMPT, OpenAIClient

__all__ = [
    "AbstractLLMClient",
    "DEFAULT_SYSTEM_PROMPT",
    "OpenAIClient",
    "SUPPORTED_PROVIDERS",
    "create_llm_client",
]
