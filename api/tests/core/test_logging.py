"""Tests for logging processors."""

from src.core.context import RequestContext
from src.core.logging import add_context_processor, truncate_free_text_processor


def test_free_text_answers_are_truncated():
    processor = truncate_free_text_processor(5)

    event = processor(
        None,
        "info",
        {"event": "answer_recorded", "answer": "a long free text", "attempt_id": "x" * 40},
    )

    assert event["answer"] == "a lon..."
    assert event["attempt_id"] == "x" * 40


def test_nested_responses_are_truncated():
    processor = truncate_free_text_processor(3)

    event = processor(None, "info", {"event": "e", "responses": {"q1": "abcdef", "q2": True}})

    assert event["responses"] == {"q1": "abc...", "q2": True}


def test_context_is_added():
    with RequestContext(request_id="req-1", learner_id="learner-1"):
        event = add_context_processor(None, "info", {"event": "e"})

    assert event["request_id"] == "req-1"
    assert event["learner_id"] == "learner-1"
