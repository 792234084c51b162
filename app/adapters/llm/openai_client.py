"""OpenAI LLM client adapter."""

import json
from typing import Any

from openai import AsyncOpenAI

from app.adapters.llm.base import AbstractLLMClient
from app.core.errors import LLMAppError

DEFAULT_SYSTEM_PROMPT = "Output JSON only. No extra text or markdown formatting."


class OpenAIClient(AbstractLLMClient):
    """Client for calling OpenAI chat completions and returning JSON.

    Works with any OpenAI-compatible endpoint via ``base_url``.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 45.0,
        temperature: float = 0.8,
    ) -> None:
        """Initialize OpenAI async client.

        Args:
            api_key: OpenAI API key for authentication.
            model: Model name (e.g., "gpt-4o-mini").
            base_url: Optional custom base URL for OpenAI API.
            timeout_seconds: Timeout for requests in seconds.
            temperature: Default sampling temperature.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model
        self.temperature = temperature

    async def generate_json(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        schema: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Generate structured JSON using OpenAI chat completions.

        Args:
            prompt: User prompt to send to the model.
            system_prompt: System instructions (defaults to JSON-only output).
            schema: Optional JSON schema (enables json_object mode).
            **kwargs: Provider options (temperature, max_tokens, top_p, seed).

        Returns:
            dict[str, Any]: Parsed JSON object from the LLM response.

        Raises:
            LLMAppError: If the API call fails or the response is not a JSON object.
        """
        messages = [
            {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": kwargs.pop("temperature", self.temperature),
        }

        if schema is not None:
            request_params["response_format"] = {"type": "json_object"}

        for param in ("max_tokens", "top_p", "seed"):
            if param in kwargs:
                request_params[param] = kwargs[param]

        try:
            response = await self.client.chat.completions.create(**request_params)
        except Exception as exc:
            raise LLMAppError(
                code="llm_provider_error",
                message="LLM provider request failed",
                details={"model": self.model, "hint": type(exc).__name__},
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise LLMAppError(
                code="llm_empty_response",
                message="LLM returned empty response",
                details={"model": self.model},
            )

        try:
            parsed = json.loads(content.strip())
        except json.JSONDecodeError as exc:
            raise LLMAppError(
                code="llm_invalid_json",
                message="LLM returned invalid JSON",
                details={"model": self.model},
            ) from exc

        if not isinstance(parsed, dict):
            raise LLMAppError(
                code="llm_invalid_json",
                message="LLM returned JSON that is not an object",
                details={"model": self.model},
            )
        return parsed
