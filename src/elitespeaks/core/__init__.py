"""Core configuration and data models."""

from elitespeaks.core.config import Settings, get_settings
from elitespeaks.core.models import (
    EvaluationRequest,
    EvaluationResult,
    FillerWords,
    AlternativePhrase,
    TranscriptionResult,
    QueueStatus,
)

__all__ = [
    "Settings",
    "get_settings",
    "EvaluationRequest",
    "EvaluationResult",
    "FillerWords",
    "AlternativePhrase",
    "TranscriptionResult",
    "QueueStatus",
]
