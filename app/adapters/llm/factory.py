"""Factory for creating LLM client instances."""

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.openai_client import OpenAIClient
from app.core.config import LLMSettings, settings
from app.core.errors import ValidationAppError

SUPPORTED_PROVIDERS = ("openai",)


def create_llm_client(llm_settings: LLMSettings | None = None) -> AbstractLLMClient:
    """Instantiate the summarizer's LLM client.

    Args:
        llm_settings: Provider settings; defaults to ``settings.llm``.

    Returns:
        AbstractLLMClient: Configured LLM client instance.

    Raises:
        ValidationAppError: If the provider is unknown or lacks credentials.
    """
    cfg = llm_settings or settings.llm
    provider = cfg.provider.lower()

    if provider not in SUPPORTED_PROVIDERS:
        raise ValidationAppError(
            code="llm_unknown_provider",
            message=(
                f"Unknown LLM provider: '{provider}'. "
                f"Supported providers: {', '.join(SUPPORTED_PROVIDERS)}"
            ),
        )

    if not cfg.api_key:
        raise ValidationAppError(
            code="llm_missing_api_key",
            message="OpenAI provider requires LLM_API_KEY environment variable",
        )

    return OpenAIClient(
        api_key=cfg.api_key,
        model=cfg.model,
        base_url=cfg.base_url,
        timeout_seconds=cfg.timeout_seconds,
        temperature=cfg.temperature,
    )
