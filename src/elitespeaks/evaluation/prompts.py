"""Prompt construction for transcript evaluation."""

from __future__ import annotations

EVALUATION_PROMPT = """\
As an expert English communication coach, analyze the following transcript. \
Provide a detailed evaluation in a valid JSON format.
The user is practicing their communication skills.

{topic_line}

Transcript: "{transcript}"

Your evaluation must include these fields:
1. "overallScore": An integer score out of 100, where 100 is perfect.
2. "confidence": A brief analysis of the speaker's confidence, noting hesitations or strong phrasing.
3. "fillerWords": An object containing a "count" (integer) and a "words" (array of strings) of filler words like "um", "uh", "like", etc.
4. "grammarFeedback": Constructive feedback on grammar and syntax, with specific examples from the transcript.
5. "alternativePhrasing": An array of objects, where each object has "original" and "suggested" keys, offering better ways to phrase parts of the transcript.
6. "topicAdherence": {topic_instruction}

Strictly return only the JSON object, with no extra text or markdown formatting.
"""


def build_evaluation_prompt(transcript: str, topic: str | None = None) -> str:
    """
    Build the coaching prompt sent to the generative provider.

    Args:
        transcript: The speech transcript to evaluate
        topic: The assigned speaking topic, if any

    Returns:
        Prompt text asking for a single JSON object
    """
    topic = (topic or "").strip()
    if topic:
        topic_line = f'Speaking Topic: "{topic}"'
        topic_instruction = (
            "A number from 0-10 scoring how well the speaker stayed on the assigned topic."
        )
    else:
        topic_line = "No specific topic was assigned."
        topic_instruction = "No topic was assigned, so set this to null."

    return EVALUATION_PROMPT.format(
        topic_line=topic_line,
        transcript=transcript.strip(),
        topic_instruction=topic_instruction,
    )
