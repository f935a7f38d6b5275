"""Quiz scoring.

Pure, deterministic grading of learner responses. The same question and
response always produce the same result, so any attempt can be re-graded for
an audit.

Rules:
- single_choice: correct iff the response is the one correct choice
- multi_choice: correct iff the chosen set equals the correct set (no partial credit)
- true_false: correct iff the response equals the stored boolean
- free_text: never auto-graded; reported as requiring manual review
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from src.catalog.models import Question, QuestionType


_TWO_PLACES = Decimal("0.01")

_TRUE_STRINGS = {"true", "vrai", "1"}
_FALSE_STRINGS = {"false", "faux", "0"}


class InvalidAnswerError(ValueError):
    """Answer does not fit the question type or references unknown choices."""


@dataclass(frozen=True)
class ScoreResult:
    """Outcome of grading one question.

    ``is_correct`` is None for answers that require manual review.
    """

    question_id: UUID
    is_correct: bool | None
    points_awarded: int
    points_possible: int
    requires_review: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "question_id": str(self.question_id),
            "is_correct": self.is_correct,
            "points_awarded": self.points_awarded,
            "points_possible": self.points_possible,
            "requires_review": self.requires_review,
        }


@dataclass(frozen=True)
class AttemptScore:
    """Aggregate of all question results of one attempt."""

    raw_score: Decimal
    max_score: Decimal
    percent_score: Decimal
    pending_review: int
    details: list[ScoreResult] = field(default_factory=list)


# ==============================================================================
# Answer normalization
# ==============================================================================


def _as_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as e:
        raise InvalidAnswerError(f"not a choice id: {value!r}") from e


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise InvalidAnswerError(f"not a boolean: {value!r}")


def normalize_answer(question: Question, answer: Any) -> Any:
    """Normalize a raw answer to the canonical form for its question type.

    Returns a UUID (single_choice), a frozenset of UUIDs (multi_choice),
    a bool (true_false) or a str (free_text).

    Raises:
        InvalidAnswerError: If the answer cannot be read for this question
    """
    if answer is None:
        raise InvalidAnswerError("missing answer")

    match question.question_type:
        case QuestionType.SINGLE_CHOICE:
            if isinstance(answer, list | tuple | set | frozenset):
                raise InvalidAnswerError("single choice expects one choice id")
            choice_id = _as_uuid(answer)
            if choice_id not in question.choice_ids:
                raise InvalidAnswerError(f"unknown choice {choice_id}")
            return choice_id

        case QuestionType.MULTI_CHOICE:
            raw = answer if isinstance(answer, list | tuple | set | frozenset) else [answer]
            chosen = frozenset(_as_uuid(item) for item in raw)
            unknown = chosen - question.choice_ids
            if unknown:
                raise InvalidAnswerError(f"unknown choices {sorted(map(str, unknown))}")
            return chosen

        case QuestionType.TRUE_FALSE:
            return _as_bool(answer)

        case QuestionType.FREE_TEXT:
            if not isinstance(answer, str):
                raise InvalidAnswerError("free text expects a string")
            return answer

    raise InvalidAnswerError(f"unsupported question type {question.question_type}")


def serialize_answer(question: Question, answer: Any) -> Any:
    """JSON-friendly form of a normalized answer (for storage)."""
    normalized = normalize_answer(question, answer)
    if isinstance(normalized, UUID):
        return str(normalized)
    if isinstance(normalized, frozenset):
        return sorted(str(choice_id) for choice_id in normalized)
    return normalized


# ==============================================================================
# Scoring
# ==============================================================================


def score(question: Question, response: Any) -> ScoreResult:
    """Grade one response. Missing or malformed responses score zero."""
    possible = question.points

    if question.question_type == QuestionType.FREE_TEXT:
        return ScoreResult(
            question_id=question.id,
            is_correct=None,
            points_awarded=0,
            points_possible=possible,
            requires_review=response is not None,
        )

    try:
        normalized = normalize_answer(question, response)
    except InvalidAnswerError:
        return ScoreResult(question.id, False, 0, possible)

    match question.question_type:
        case QuestionType.SINGLE_CHOICE:
            correct = question.correct_choice_ids == frozenset({normalized})
        case QuestionType.MULTI_CHOICE:
            correct = normalized == question.correct_choice_ids
        case QuestionType.TRUE_FALSE:
            correct = (
                question.correct_boolean is not None
                and normalized == question.correct_boolean
            )
        case _:
            correct = False

    return ScoreResult(
        question_id=question.id,
        is_correct=correct,
        points_awarded=possible if correct else 0,
        points_possible=possible,
    )


def percent_of(raw: Decimal, maximum: Decimal) -> Decimal:
    """Percentage rounded to two places; 0 when there is nothing to score."""
    if maximum <= 0:
        return Decimal(0)
    return (raw / maximum * 100).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def score_attempt(questions: list[Question], responses: dict[str, Any]) -> AttemptScore:
    """Grade every question of a quiz; unanswered questions count as wrong.

    Free-text points remain in the maximum, so an unreviewed answer can never
    help a learner pass.
    """
    details = [score(q, responses.get(str(q.id))) for q in questions]

    raw = Decimal(sum(d.points_awarded for d in details))
    maximum = Decimal(sum(d.points_possible for d in details))

    return AttemptScore(
        raw_score=raw,
        max_score=maximum,
        percent_score=percent_of(raw, maximum),
        pending_review=sum(1 for d in details if d.requires_review),
        details=details,
    )
