"""
Google provider implementation for Gemini models.

Used as the generative evaluation provider: a prompt goes in, raw text
(expected to be a JSON object) comes out.
"""

from __future__ import annotations

from typing import Any

import google.generativeai as genai
from google.generativeai.types import GenerationConfig

from elitespeaks.core.models import ProviderName
from elitespeaks.providers.base import (
    BaseProvider,
    ProviderError,
    RateLimitError,
    AuthenticationError,
)
from elitespeaks.utils.retry import get_status_code, is_retryable_error

RATE_LIMIT_HINTS = ("quota", "rate limit", "too many requests", "resource exhausted")


class GeminiProvider(BaseProvider):
    """Gemini text generation client."""

    provider = ProviderName.GEMINI

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gemini-1.5-flash",
        temperature: float = 0.4,
        **kwargs: Any,
    ):
        super().__init__(api_key, **kwargs)
        self.model = model
        self.temperature = temperature

        if api_key:
            genai.configure(api_key=api_key)

        self._model: genai.GenerativeModel | None = None

    def _get_model(self) -> genai.GenerativeModel:
        if self._model is None:
            self._model = genai.GenerativeModel(self.model)
        return self._model

    async def generate(self, prompt: str) -> str:
        """
        Send a prompt and return the raw response text.

        Raises:
            ProviderNotConfiguredError: No API key was supplied
            RateLimitError: Quota or rate limit hit (retryable)
            AuthenticationError: The key was rejected
            ProviderError: Any other failure, with the vendor status attached
        """
        self._require_key()

        try:
            response = await self._get_model().generate_content_async(
                prompt,
                generation_config=GenerationConfig(
                    temperature=self.temperature,
                    response_mime_type="application/json",
                ),
            )
            return response.text

        except Exception as e:
            raise self._map_error(e) from e

    def _map_error(self, error: Exception) -> ProviderError:
        """Translate a vendor exception, keeping its message and status."""
        message = str(error)
        lowered = message.lower()
        status = get_status_code(error)
        retryable = is_retryable_error(error)

        # RateLimitError only for failures that are already retryable
        if status == 429 or (
            status is None and retryable and any(h in lowered for h in RATE_LIMIT_HINTS)
        ):
            return RateLimitError(message, provider=self.provider)
        if status in (401, 403) or "api key" in lowered or "authentication" in lowered:
            return AuthenticationError(message, provider=self.provider)
        return ProviderError(
            message,
            provider=self.provider,
            status_code=status,
            retryable=retryable,
        )
