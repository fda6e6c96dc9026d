"""
Base provider interface and error taxonomy.

Provider errors keep the vendor's original message and HTTP status so the
evaluation queue can classify them as transient or terminal.
"""

from __future__ import annotations

from abc import ABC
from typing import Any

from elitespeaks.core.models import ProviderName


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(
        self,
        message: str,
        provider: ProviderName | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable


class RateLimitError(ProviderError):
    """Raised when rate limit or quota is exceeded."""

    def __init__(self, message: str, provider: ProviderName | None = None):
        super().__init__(message, provider, status_code=429, retryable=True)


class AuthenticationError(ProviderError):
    """Raised when authentication fails."""

    def __init__(self, message: str, provider: ProviderName | None = None):
        super().__init__(message, provider, status_code=401, retryable=False)


class ProviderNotConfiguredError(ProviderError):
    """Raised when a provider is used without an API key."""

    def __init__(self, message: str, provider: ProviderName | None = None):
        super().__init__(message, provider, status_code=None, retryable=False)


class BaseProvider(ABC):
    """
    Abstract base class for external providers.

    Subclasses set ``provider`` and receive their API key at construction.
    """

    provider: ProviderName

    def __init__(self, api_key: str | None = None, **kwargs: Any):
        """Initialize the provider with optional API key."""
        self.api_key = api_key

    @property
    def is_configured(self) -> bool:
        """Whether an API key is available."""
        return bool(self.api_key)

    def _require_key(self) -> str:
        if not self.api_key:
            raise ProviderNotConfiguredError(
                f"{self.provider.value} API key not set",
                provider=self.provider,
            )
        return self.api_key
