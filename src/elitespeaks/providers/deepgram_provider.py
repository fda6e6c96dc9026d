"""
Deepgram provider implementation for speech-to-text.

Talks to the Deepgram REST API directly with httpx. Transcription calls do
not go through the evaluation queue; transient failures are retried inline.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from elitespeaks.core.models import ProviderName, TranscriptionResult, TranscriptSegment
from elitespeaks.providers.base import BaseProvider, ProviderError
from elitespeaks.utils.retry import RetryConfig, retry_async

logger = structlog.get_logger()

MAX_AUDIO_BYTES = 25 * 1024 * 1024


class TranscriptionError(ProviderError):
    """Raised when audio cannot be transcribed."""

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        status_code: int | None = None,
    ):
        super().__init__(message, ProviderName.DEEPGRAM, status_code=status_code)
        self.error_code = error_code


class AudioTooLargeError(TranscriptionError):
    def __init__(self, size: int):
        super().__init__(
            f"Audio file is too large ({size} bytes). Maximum size is 25MB.",
            error_code="FILE_TOO_LARGE",
        )


class InvalidAudioError(TranscriptionError):
    def __init__(self, mimetype: str | None):
        super().__init__(
            f"Invalid file type {mimetype!r}. Please upload an audio or video file.",
            error_code="INVALID_FILE_TYPE",
        )


class EmptyTranscriptError(TranscriptionError):
    def __init__(self) -> None:
        super().__init__("No transcript received from API", error_code="EMPTY_TRANSCRIPT")


class DeepgramProvider(BaseProvider):
    """
    Deepgram prerecorded transcription client.

    Example:
        provider = DeepgramProvider(api_key="...")
        result = await provider.transcribe_url("https://storage/.../talk.webm")
        print(result.transcript)
    """

    provider = ProviderName.DEEPGRAM

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://api.deepgram.com/v1",
        model: str = "nova-2",
        client: httpx.AsyncClient | None = None,
        retry_config: RetryConfig | None = None,
        timeout: float = 60.0,
        **kwargs: Any,
    ):
        super().__init__(api_key, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.retry_config = retry_config or RetryConfig(max_retries=2)
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def listen_params(self) -> dict[str, str]:
        return {
            "model": self.model,
            "smart_format": "true",
            "filler_words": "true",
            "punctuate": "true",
        }

    async def transcribe_url(self, audio_url: str) -> TranscriptionResult:
        """Transcribe audio that is reachable at a public URL."""
        key = self._require_key()
        payload = await retry_async(
            self._post_listen,
            key,
            config=self.retry_config,
            json={"url": audio_url},
        )
        return self._parse_result(payload)

    @staticmethod
    def validate_audio(size: int | None, mimetype: str | None) -> None:
        """Reject uploads that are too large or not audio/video."""
        if size is not None and size > MAX_AUDIO_BYTES:
            raise AudioTooLargeError(size)
        if mimetype and not mimetype.startswith(("audio/", "video/")):
            raise InvalidAudioError(mimetype)

    async def transcribe_bytes(
        self,
        data: bytes,
        mimetype: str | None = None,
    ) -> TranscriptionResult:
        """
        Transcribe an uploaded audio (or video) file.

        Raises:
            AudioTooLargeError: The file exceeds 25MB
            InvalidAudioError: The content type is not audio/* or video/*
        """
        key = self._require_key()
        self.validate_audio(len(data), mimetype)

        payload = await retry_async(
            self._post_listen,
            key,
            config=self.retry_config,
            content=data,
            content_type=mimetype or "audio/wav",
        )
        return self._parse_result(payload)

    async def _post_listen(
        self,
        key: str,
        *,
        json: dict[str, Any] | None = None,
        content: bytes | None = None,
        content_type: str = "application/json",
    ) -> dict[str, Any]:
        headers = {
            "Authorization": f"Token {key}",
            "Content-Type": content_type,
        }

        try:
            response = await self._client.post(
                f"{self.base_url}/listen",
                params=self.listen_params,
                headers=headers,
                json=json,
                content=content,
            )
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            raise TranscriptionError(
                self._error_message(e.response),
                error_code="API_ERROR",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            raise TranscriptionError(
                "Request timeout: Transcription took too long",
                error_code="TIMEOUT_ERROR",
                status_code=408,
            ) from e
        except httpx.RequestError as e:
            raise TranscriptionError(
                f"Network error: Unable to connect to transcription service ({e})",
                error_code="NETWORK_ERROR",
            ) from e
        except ValueError as e:
            raise TranscriptionError(
                "Transcription service returned invalid JSON",
                error_code="API_ERROR",
            ) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"Transcription API error: {response.status_code}"
        if isinstance(body, dict):
            for key in ("err_msg", "error", "message", "detail"):
                if body.get(key):
                    return str(body[key])
        return f"Transcription API error: {response.status_code}"

    def _parse_result(self, payload: dict[str, Any]) -> TranscriptionResult:
        """Normalize a Deepgram listen response."""
        try:
            channel = payload["results"]["channels"][0]
            alternative = channel["alternatives"][0]
        except (KeyError, IndexError, TypeError):
            logger.warning("Unexpected Deepgram response", keys=list(payload or {}))
            raise EmptyTranscriptError()

        transcript = (alternative.get("transcript") or "").strip()
        if not transcript:
            raise EmptyTranscriptError()

        words = alternative.get("words") or []
        segments = [
            TranscriptSegment(
                start=w.get("start", 0.0),
                end=w.get("end", 0.0),
                text=w.get("punctuated_word") or w.get("word", ""),
            )
            for w in words
        ] or None

        return TranscriptionResult(
            transcript=transcript,
            confidence=alternative.get("confidence"),
            duration=(payload.get("metadata") or {}).get("duration"),
            language=channel.get("detected_language") or "auto",
            segments=segments,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
