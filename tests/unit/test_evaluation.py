"""Tests for transcript evaluation."""

import asyncio
import json

import pytest
from unittest.mock import AsyncMock

from elitespeaks.evaluation.parser import (
    EvaluationBusyError,
    EvaluationParseError,
    looks_rate_limited,
    parse_evaluation,
    strip_code_fences,
)
from elitespeaks.evaluation.prompts import build_evaluation_prompt
from elitespeaks.evaluation.service import SpeechEvaluator
from elitespeaks.providers.base import AuthenticationError, RateLimitError
from elitespeaks.queue.request_queue import RequestQueue
from elitespeaks.utils.metrics import Metrics
from elitespeaks.utils.retry import RetryConfig


EVALUATION = {
    "overallScore": 82,
    "confidence": "Confident delivery with one long pause.",
    "fillerWords": {"count": 1, "words": ["um"]},
    "grammarFeedback": "Good overall.",
    "alternativePhrasing": [{"original": "very big", "suggested": "enormous"}],
    "topicAdherence": 9,
}


@pytest.fixture
def queue():
    return RequestQueue(retry_config=RetryConfig(max_retries=3, base_delay=0.01))


class TestPrompts:
    """Tests for prompt construction."""

    def test_includes_topic(self):
        prompt = build_evaluation_prompt("  I love my city.  ", "My hometown")
        assert 'Speaking Topic: "My hometown"' in prompt
        assert 'Transcript: "I love my city."' in prompt
        assert "0-10" in prompt

    def test_without_topic(self):
        prompt = build_evaluation_prompt("I love my city.", None)
        assert "No specific topic was assigned." in prompt
        assert "set this to null" in prompt

    def test_blank_topic_treated_as_missing(self):
        assert "No specific topic" in build_evaluation_prompt("Hello", "   ")


class TestParser:
    """Tests for provider response parsing."""

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('```\n{"a": 1}```') == '{"a": 1}'

    def test_parse_plain_json(self):
        result = parse_evaluation(json.dumps(EVALUATION), topic="Travel")
        assert result.overall_score == 82
        assert result.topic_adherence == 9

    def test_parse_fenced_json(self):
        raw = f"```json\n{json.dumps(EVALUATION)}\n```"
        assert parse_evaluation(raw, topic="Travel").overall_score == 82

    def test_topic_adherence_nulled_without_topic(self):
        result = parse_evaluation(json.dumps(EVALUATION), topic=None)
        assert result.topic_adherence is None

    def test_topic_feedback_object(self):
        payload = dict(EVALUATION, topicAdherence={"score": 4, "feedback": "Off topic."})
        assert parse_evaluation(json.dumps(payload), topic="Travel").topic_adherence == 4

    def test_rate_limit_prose(self):
        raw = "I'm sorry, the rate limit for this API key has been reached. Try again later."
        assert looks_rate_limited(raw)

        with pytest.raises(EvaluationBusyError) as exc_info:
            parse_evaluation(raw)
        assert exc_info.value.raw == raw

    def test_malformed_json(self):
        with pytest.raises(EvaluationParseError) as exc_info:
            parse_evaluation('{"overallScore": 80,')
        assert not isinstance(exc_info.value, EvaluationBusyError)

    def test_non_object_json(self):
        with pytest.raises(EvaluationParseError):
            parse_evaluation("[1, 2, 3]")

    def test_wrong_shape(self):
        with pytest.raises(EvaluationParseError, match="unexpected shape"):
            parse_evaluation(json.dumps({"overallScore": "great"}))

    @pytest.mark.parametrize("overrides", [
        {"overallScore": "74"},
        {"overallScore": True},
        {"topicAdherence": "7"},
        {"fillerWords": {"count": "3", "words": ["um"]}},
    ])
    def test_wrongly_typed_numbers_rejected(self, overrides):
        raw = json.dumps(dict(EVALUATION, **overrides))
        with pytest.raises(EvaluationParseError, match="unexpected shape") as exc_info:
            parse_evaluation(raw, topic="Travel")
        assert not isinstance(exc_info.value, EvaluationBusyError)


class TestSpeechEvaluator:
    """Tests for SpeechEvaluator."""

    @pytest.mark.asyncio
    async def test_evaluate(self, queue):
        provider = AsyncMock()
        provider.generate.return_value = json.dumps(EVALUATION)
        metrics = Metrics()
        evaluator = SpeechEvaluator(provider, queue, metrics=metrics)

        result = await evaluator.evaluate("I went to Paris last summer.", topic="Travel")

        assert result.overall_score == 82
        prompt = provider.generate.await_args.args[0]
        assert "I went to Paris last summer." in prompt
        assert 'Speaking Topic: "Travel"' in prompt
        assert metrics.get_summary()["providers"]["gemini"]["total_requests"] == 1
        assert queue.stats.total_processed == 1

    @pytest.mark.asyncio
    async def test_provider_retried_through_queue(self, queue):
        provider = AsyncMock()
        provider.generate.side_effect = [
            RateLimitError("Rate limit exceeded"),
            json.dumps(EVALUATION),
        ]
        evaluator = SpeechEvaluator(provider, queue)

        result = await evaluator.evaluate("Hello there", topic="Greetings")

        assert result.overall_score == 82
        assert provider.generate.await_count == 2
        assert queue.stats.total_retries == 1

    @pytest.mark.asyncio
    async def test_terminal_error_propagates(self, queue):
        provider = AsyncMock()
        provider.generate.side_effect = AuthenticationError("API key not valid")
        metrics = Metrics()
        evaluator = SpeechEvaluator(provider, queue, metrics=metrics)

        with pytest.raises(AuthenticationError):
            await evaluator.evaluate("Hello there")

        assert provider.generate.await_count == 1
        errors = metrics.get_summary()["providers"]["gemini"]["errors"]
        assert errors == {"AuthenticationError": 1}

    @pytest.mark.asyncio
    async def test_parse_error_propagates(self, queue):
        provider = AsyncMock()
        provider.generate.return_value = "not json at all"
        evaluator = SpeechEvaluator(provider, queue)

        with pytest.raises(EvaluationParseError):
            await evaluator.evaluate("Hello there")

    @pytest.mark.asyncio
    async def test_accepting_tracks_queue_length(self, queue):
        gate = asyncio.Event()

        async def blocked(prompt):
            await gate.wait()
            return json.dumps(EVALUATION)

        provider = AsyncMock()
        provider.generate.side_effect = blocked
        evaluator = SpeechEvaluator(provider, queue, admission_threshold=2)

        # one running, three waiting
        tasks = [asyncio.create_task(evaluator.evaluate("Hello")) for _ in range(4)]
        await asyncio.sleep(0.01)

        assert queue.active_count == 1
        assert queue.queue_length == 3
        assert not evaluator.accepting

        gate.set()
        await asyncio.gather(*tasks)
        assert evaluator.accepting

    def test_accepting_at_threshold(self, queue):
        evaluator = SpeechEvaluator(AsyncMock(), queue, admission_threshold=0)
        assert evaluator.accepting
