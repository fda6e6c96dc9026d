"""Tests for provider implementations."""

import json

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from elitespeaks.core.models import ProviderName
from elitespeaks.providers.base import (
    ProviderError,
    RateLimitError,
    AuthenticationError,
    ProviderNotConfiguredError,
)
from elitespeaks.providers.gemini_provider import GeminiProvider
from elitespeaks.providers.deepgram_provider import (
    MAX_AUDIO_BYTES,
    AudioTooLargeError,
    DeepgramProvider,
    EmptyTranscriptError,
    InvalidAudioError,
    TranscriptionError,
)
from elitespeaks.utils.retry import RetryConfig, is_retryable_error


DEEPGRAM_RESPONSE = {
    "metadata": {"duration": 3.2},
    "results": {
        "channels": [
            {
                "detected_language": "en",
                "alternatives": [
                    {
                        "transcript": "Um, hello everyone.",
                        "confidence": 0.97,
                        "words": [
                            {"word": "um", "punctuated_word": "Um,", "start": 0.1, "end": 0.3},
                            {"word": "hello", "punctuated_word": "hello", "start": 0.4, "end": 0.8},
                            {"word": "everyone", "start": 0.9, "end": 1.4},
                        ],
                    }
                ],
            }
        ]
    },
}


def make_deepgram(handler, api_key="test-key", max_retries=2):
    """Build a Deepgram provider whose HTTP calls go to ``handler``."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DeepgramProvider(
        api_key=api_key,
        base_url="https://deepgram.test/v1",
        client=client,
        retry_config=RetryConfig(max_retries=max_retries, base_delay=0.0),
    )


class TestProviderErrors:
    """Tests for provider error classes."""

    def test_provider_error(self):
        error = ProviderError(
            "Test error",
            provider=ProviderName.GEMINI,
            status_code=500,
            retryable=True,
        )
        assert str(error) == "Test error"
        assert error.provider == ProviderName.GEMINI
        assert error.status_code == 500
        assert error.retryable is True

    def test_rate_limit_error(self):
        error = RateLimitError("Rate limited", provider=ProviderName.GEMINI)
        assert error.status_code == 429
        assert error.retryable is True

    def test_authentication_error(self):
        error = AuthenticationError("Invalid API key", provider=ProviderName.GEMINI)
        assert error.status_code == 401
        assert error.retryable is False

    def test_not_configured_is_terminal(self):
        error = ProviderNotConfiguredError("gemini API key not set", ProviderName.GEMINI)
        assert error.status_code is None
        assert not is_retryable_error(error)

    def test_transcription_error_codes(self):
        assert AudioTooLargeError(MAX_AUDIO_BYTES + 1).error_code == "FILE_TOO_LARGE"
        assert InvalidAudioError("text/plain").error_code == "INVALID_FILE_TYPE"
        assert EmptyTranscriptError().error_code == "EMPTY_TRANSCRIPT"
        assert TranscriptionError("boom").error_code == "UNKNOWN_ERROR"


class TestGeminiProvider:
    """Tests for Gemini provider."""

    def test_init(self):
        provider = GeminiProvider(api_key="test-key")
        assert provider.provider == ProviderName.GEMINI
        assert provider.model == "gemini-1.5-flash"
        assert provider.is_configured

    @pytest.mark.asyncio
    async def test_generate_without_key(self):
        provider = GeminiProvider()
        assert not provider.is_configured

        with pytest.raises(ProviderNotConfiguredError, match="gemini API key not set"):
            await provider.generate("prompt")

    @pytest.mark.asyncio
    async def test_generate_returns_text(self):
        provider = GeminiProvider(api_key="test-key")
        model = MagicMock()
        model.generate_content_async = AsyncMock(
            return_value=MagicMock(text='{"overallScore": 80}')
        )
        provider._model = model

        assert await provider.generate("Evaluate this") == '{"overallScore": 80}'
        model.generate_content_async.assert_awaited_once()
        assert model.generate_content_async.call_args.args[0] == "Evaluate this"

    @pytest.mark.asyncio
    async def test_generate_maps_quota_error(self):
        provider = GeminiProvider(api_key="test-key")
        exhausted = Exception("Resource has been exhausted (e.g. check quota).")
        exhausted.code = 429
        model = MagicMock()
        model.generate_content_async = AsyncMock(side_effect=exhausted)
        provider._model = model

        with pytest.raises(RateLimitError) as exc_info:
            await provider.generate("prompt")

        assert exc_info.value.provider == ProviderName.GEMINI
        assert "quota" in str(exc_info.value)
        assert exc_info.value.__cause__ is exhausted
        assert is_retryable_error(exc_info.value)

    def test_map_quota_exceeded_message(self):
        provider = GeminiProvider(api_key="test-key")
        error = provider._map_error(Exception("Quota exceeded for quota metric 'requests'"))
        assert isinstance(error, RateLimitError)

    def test_quota_mention_keeps_terminal_classification(self):
        provider = GeminiProvider(api_key="test-key")
        original = Exception("Quota project not configured for this credential")
        assert not is_retryable_error(original)

        error = provider._map_error(original)

        assert not isinstance(error, RateLimitError)
        assert error.status_code is None
        assert error.retryable is False
        assert not is_retryable_error(error)

    def test_quota_mention_with_client_status_is_terminal(self):
        provider = GeminiProvider(api_key="test-key")
        original = Exception("Invalid quota configuration")
        original.code = 400

        error = provider._map_error(original)

        assert not isinstance(error, RateLimitError)
        assert error.status_code == 400
        assert not is_retryable_error(error)

    def test_map_auth_error(self):
        provider = GeminiProvider(api_key="test-key")
        error = provider._map_error(Exception("API key not valid. Please pass a valid API key."))
        assert isinstance(error, AuthenticationError)

    def test_map_status_error(self):
        provider = GeminiProvider(api_key="test-key")

        unavailable = Exception("upstream")
        unavailable.code = 503
        error = provider._map_error(unavailable)
        assert type(error) is ProviderError
        assert error.status_code == 503
        assert error.retryable is True

        invalid = Exception("Invalid argument")
        invalid.code = 400
        error = provider._map_error(invalid)
        assert error.status_code == 400
        assert not is_retryable_error(error)


class TestDeepgramProvider:
    """Tests for Deepgram provider."""

    @pytest.mark.asyncio
    async def test_transcribe_url(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=DEEPGRAM_RESPONSE)

        provider = make_deepgram(handler)
        result = await provider.transcribe_url("https://storage.test/talk.webm")
        await provider.aclose()

        assert result.transcript == "Um, hello everyone."
        assert result.confidence == 0.97
        assert result.duration == 3.2
        assert result.language == "en"
        assert [s.text for s in result.segments] == ["Um,", "hello", "everyone"]

        assert seen["url"].startswith("https://deepgram.test/v1/listen?")
        assert "model=nova-2" in seen["url"]
        assert "filler_words=true" in seen["url"]
        assert seen["auth"] == "Token test-key"
        assert seen["body"] == {"url": "https://storage.test/talk.webm"}

    @pytest.mark.asyncio
    async def test_transcribe_bytes(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["content_type"] = request.headers["Content-Type"]
            seen["body"] = request.content
            return httpx.Response(200, json=DEEPGRAM_RESPONSE)

        provider = make_deepgram(handler)
        result = await provider.transcribe_bytes(b"RIFF....WAVE", "audio/webm")

        assert result.transcript == "Um, hello everyone."
        assert seen["content_type"] == "audio/webm"
        assert seen["body"] == b"RIFF....WAVE"

    @pytest.mark.asyncio
    async def test_transcribe_bytes_defaults_to_wav(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["content_type"] = request.headers["Content-Type"]
            return httpx.Response(200, json=DEEPGRAM_RESPONSE)

        provider = make_deepgram(handler)
        await provider.transcribe_bytes(b"data")

        assert seen["content_type"] == "audio/wav"

    @pytest.mark.asyncio
    async def test_rejects_large_audio(self):
        handler = MagicMock()
        provider = make_deepgram(handler)

        with pytest.raises(AudioTooLargeError):
            await provider.transcribe_bytes(b"\0" * (MAX_AUDIO_BYTES + 1), "audio/wav")
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejects_non_audio(self):
        handler = MagicMock()
        provider = make_deepgram(handler)

        with pytest.raises(InvalidAudioError):
            await provider.transcribe_bytes(b"hello", "text/plain")
        handler.assert_not_called()

    def test_validate_audio(self):
        DeepgramProvider.validate_audio(MAX_AUDIO_BYTES, "audio/mpeg")
        DeepgramProvider.validate_audio(None, None)

        with pytest.raises(AudioTooLargeError):
            DeepgramProvider.validate_audio(MAX_AUDIO_BYTES + 1, "audio/mpeg")
        with pytest.raises(InvalidAudioError):
            DeepgramProvider.validate_audio(10, "application/pdf")

    @pytest.mark.asyncio
    async def test_requires_key(self):
        provider = make_deepgram(MagicMock(), api_key=None)

        with pytest.raises(ProviderNotConfiguredError, match="deepgram API key not set"):
            await provider.transcribe_url("https://storage.test/talk.webm")

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400, json={"err_msg": "Bad Request: failed to process audio"})

        provider = make_deepgram(handler)

        with pytest.raises(TranscriptionError) as exc_info:
            await provider.transcribe_url("https://storage.test/broken.webm")

        assert calls == 1
        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "API_ERROR"
        assert str(exc_info.value) == "Bad Request: failed to process audio"

    @pytest.mark.asyncio
    async def test_unavailable_is_retried(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls == 1:
                return httpx.Response(503, text="unavailable")
            return httpx.Response(200, json=DEEPGRAM_RESPONSE)

        provider = make_deepgram(handler)
        result = await provider.transcribe_url("https://storage.test/talk.webm")

        assert calls == 2
        assert result.transcript == "Um, hello everyone."

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider = make_deepgram(handler)

        with pytest.raises(TranscriptionError) as exc_info:
            await provider.transcribe_url("https://storage.test/talk.webm")
        assert exc_info.value.error_code == "NETWORK_ERROR"

    @pytest.mark.asyncio
    async def test_empty_transcript(self):
        body = json.loads(json.dumps(DEEPGRAM_RESPONSE))
        body["results"]["channels"][0]["alternatives"][0]["transcript"] = "   "

        provider = make_deepgram(lambda request: httpx.Response(200, json=body))

        with pytest.raises(EmptyTranscriptError):
            await provider.transcribe_url("https://storage.test/silence.webm")

    @pytest.mark.asyncio
    async def test_missing_channels(self):
        provider = make_deepgram(lambda request: httpx.Response(200, json={"results": {}}))

        with pytest.raises(EmptyTranscriptError):
            await provider.transcribe_url("https://storage.test/silence.webm")
