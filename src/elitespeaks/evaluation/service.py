"""
Transcript evaluation service.

Puts every call to the generative provider through the shared request queue
and shapes the raw answer into an EvaluationResult.
"""

from __future__ import annotations

import time
from typing import Protocol

import structlog

from elitespeaks.core.models import EvaluationResult
from elitespeaks.evaluation.parser import parse_evaluation
from elitespeaks.evaluation.prompts import build_evaluation_prompt
from elitespeaks.queue.request_queue import RequestQueue
from elitespeaks.utils.metrics import Metrics

logger = structlog.get_logger()


class TextGenerator(Protocol):
    """Anything that turns a prompt into raw text."""

    async def generate(self, prompt: str) -> str: ...


class SpeechEvaluator:
    """
    Evaluate speech transcripts with admission control.

    Example:
        evaluator = SpeechEvaluator(GeminiProvider(api_key), RequestQueue())

        if not evaluator.accepting:
            ...  # 429, try again later

        result = await evaluator.evaluate(transcript, topic="My hometown")
    """

    def __init__(
        self,
        provider: TextGenerator,
        queue: RequestQueue,
        admission_threshold: int = 5,
        metrics: Metrics | None = None,
    ):
        self.provider = provider
        self.queue = queue
        self.admission_threshold = admission_threshold
        self.metrics = metrics

    @property
    def accepting(self) -> bool:
        """False once more than ``admission_threshold`` evaluations are waiting."""
        return self.queue.queue_length <= self.admission_threshold

    async def evaluate(self, transcript: str, topic: str | None = None) -> EvaluationResult:
        """
        Evaluate a transcript.

        The provider call waits its turn in the queue and may be retried
        there; shaping happens once the queue hands back the raw text.

        Raises:
            EvaluationParseError: The provider answer was not a valid evaluation
            ProviderError: The provider call failed for good
        """
        prompt = build_evaluation_prompt(transcript, topic)
        start_time = time.perf_counter()

        try:
            raw = await self.queue.enqueue(lambda: self.provider.generate(prompt))
            result = parse_evaluation(raw, topic)
        except Exception as e:
            if self.metrics:
                self.metrics.record_error(
                    "gemini",
                    "evaluate",
                    type(e).__name__,
                    latency_ms=(time.perf_counter() - start_time) * 1000,
                )
            raise

        latency_ms = (time.perf_counter() - start_time) * 1000
        if self.metrics:
            self.metrics.record_success("gemini", "evaluate", latency_ms)

        logger.info(
            "Transcript evaluated",
            overall_score=result.overall_score,
            has_topic=bool(topic),
            latency_ms=round(latency_ms, 1),
        )
        return result
