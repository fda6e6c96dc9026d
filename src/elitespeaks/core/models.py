"""
Core data models for Elite Speaks.

Wire format is camelCase JSON, matching what the browser client sends and
expects; attribute names stay snake_case.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictFloat,
    StrictInt,
    field_validator,
)
from pydantic.alias_generators import to_camel


class ProviderName(str, Enum):
    """External providers the backend talks to."""

    GEMINI = "gemini"
    DEEPGRAM = "deepgram"


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class EvaluationRequest(CamelModel):
    """A transcript submitted for evaluation."""

    transcript: str | None = None
    topic: str | None = None


class FillerWords(CamelModel):
    """Filler words detected in a transcript."""

    count: StrictInt
    words: list[str]


class AlternativePhrase(CamelModel):
    """A better way to phrase part of the transcript."""

    original: str
    suggested: str


class EvaluationResult(CamelModel):
    """Structured evaluation returned by the generative provider."""

    overall_score: StrictInt | StrictFloat
    confidence: str
    filler_words: FillerWords
    grammar_feedback: str
    alternative_phrasing: list[AlternativePhrase]
    topic_adherence: StrictInt | StrictFloat | None = None

    @field_validator("topic_adherence", mode="before")
    @classmethod
    def collapse_topic_feedback(cls, v: Any) -> Any:
        # Providers sometimes answer with {"score": 7, "feedback": "..."}
        if isinstance(v, dict):
            return v.get("score")
        return v


class TranscriptSegment(BaseModel):
    """A timed slice of a transcript."""

    start: float
    end: float
    text: str


class TranscriptionUrlRequest(CamelModel):
    """Request to transcribe audio already stored at a public URL."""

    audio_url: str


class TranscriptionResult(CamelModel):
    """Normalized transcription output."""

    transcript: str
    confidence: float | None = None
    duration: float | None = None
    language: str = "auto"
    segments: list[TranscriptSegment] | None = None


class QueueStatus(CamelModel):
    """Snapshot of the evaluation queue for monitoring and admission."""

    queue_length: int
    active_count: int
    max_concurrent: int
    admission_threshold: int
    accepting: bool
    stats: dict[str, Any] = Field(default_factory=dict)
