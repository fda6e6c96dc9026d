"""
Shaping of raw provider output into an EvaluationResult.

The provider is asked for bare JSON but often wraps it in markdown fences,
and under quota pressure it can answer with prose about rate limits instead.
"""

from __future__ import annotations

import json
import re

from pydantic import ValidationError

from elitespeaks.core.models import EvaluationResult

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)

BUSY_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"rate limit",
        r"quota",
        r"too many requests",
        r"resource exhausted",
        r"try again later",
    )
)


class EvaluationParseError(ValueError):
    """Raised when the provider response is not a valid evaluation."""

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(message)
        self.raw = raw


class EvaluationBusyError(EvaluationParseError):
    """Raised when the provider answered with rate-limit or quota prose."""


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` wrappers and surrounding whitespace."""
    return _FENCE_RE.sub("", text).strip()


def looks_rate_limited(text: str) -> bool:
    """Check whether text talks about rate limits or quota."""
    return any(p.search(text) for p in BUSY_PATTERNS)


def parse_evaluation(raw: str, topic: str | None = None) -> EvaluationResult:
    """
    Parse and validate a raw provider response.

    Args:
        raw: Response text from the generative provider
        topic: Topic the speaker was given; without one, topic adherence
            is forced to null

    Returns:
        Validated evaluation

    Raises:
        EvaluationBusyError: Response is not JSON and mentions rate limits
        EvaluationParseError: Response is not JSON or has the wrong shape
    """
    cleaned = strip_code_fences(raw or "")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        if looks_rate_limited(cleaned):
            raise EvaluationBusyError("Evaluation provider is rate limited", raw=raw) from e
        raise EvaluationParseError(f"Malformed evaluation JSON: {e.msg}", raw=raw) from e

    if not isinstance(data, dict):
        raise EvaluationParseError("Evaluation must be a JSON object", raw=raw)

    if not (topic or "").strip():
        data["topicAdherence"] = None

    try:
        return EvaluationResult.model_validate(data)
    except ValidationError as e:
        raise EvaluationParseError(
            f"Evaluation has unexpected shape: {e.error_count()} invalid field(s)",
            raw=raw,
        ) from e
