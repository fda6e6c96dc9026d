"""Transcript evaluation: prompt, result shaping and the queued evaluator."""

from elitespeaks.evaluation.parser import (
    EvaluationParseError,
    EvaluationBusyError,
    parse_evaluation,
    strip_code_fences,
    looks_rate_limited,
)
from elitespeaks.evaluation.prompts import build_evaluation_prompt
from elitespeaks.evaluation.service import SpeechEvaluator

__all__ = [
    "EvaluationParseError",
    "EvaluationBusyError",
    "parse_evaluation",
    "strip_code_fences",
    "looks_rate_limited",
    "build_evaluation_prompt",
    "SpeechEvaluator",
]
