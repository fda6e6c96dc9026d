"""
Elite Speaks - speech practice backend

Transcribes practice recordings and evaluates them with a generative model,
with every evaluation call admitted through a single rate-limit-aware queue.
"""

__version__ = "1.0.0"
__author__ = "Elite Speaks Team"

from elitespeaks.queue.request_queue import RequestQueue
from elitespeaks.evaluation.service import SpeechEvaluator
from elitespeaks.core.models import (
    EvaluationRequest,
    EvaluationResult,
    TranscriptionResult,
)

__all__ = [
    "RequestQueue",
    "SpeechEvaluator",
    "EvaluationRequest",
    "EvaluationResult",
    "TranscriptionResult",
]
