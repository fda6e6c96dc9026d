"""External provider clients."""

from elitespeaks.providers.base import (
    BaseProvider,
    ProviderError,
    RateLimitError,
    AuthenticationError,
    ProviderNotConfiguredError,
)
from elitespeaks.providers.gemini_provider import GeminiProvider
from elitespeaks.providers.deepgram_provider import (
    DeepgramProvider,
    TranscriptionError,
    AudioTooLargeError,
    InvalidAudioError,
    EmptyTranscriptError,
)

__all__ = [
    "BaseProvider",
    "ProviderError",
    "RateLimitError",
    "AuthenticationError",
    "ProviderNotConfiguredError",
    "GeminiProvider",
    "DeepgramProvider",
    "TranscriptionError",
    "AudioTooLargeError",
    "InvalidAudioError",
    "EmptyTranscriptError",
]
