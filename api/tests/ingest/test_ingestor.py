"""Tests for event validation and dispatch."""

import asyncio
from uuid import uuid4

import pytest

from src.assessment.models import AttemptState
from src.assessment.service import AttemptInProgressError
from src.ingest.schemas import ProgressEventIn, QuizAction, QuizEventIn
from src.ingest.service import EventIngestor, EventValidationError
from src.progress.service import PartLockedError

from ..fakes import complete_content


@pytest.fixture
def learner_id():
    return uuid4()


def progress_event(learner_id, part, **kwargs) -> ProgressEventIn:
    return ProgressEventIn(learner_id=learner_id, part_id=part.id, **kwargs)


def quiz_event(learner_id, quiz, action, **kwargs) -> QuizEventIn:
    return QuizEventIn(learner_id=learner_id, quiz_id=quiz.id, action=action, **kwargs)


class TestParseEvent:
    """Raw payload parsing."""

    def test_quiz_payload(self):
        event = EventIngestor.parse_event(
            {"learner_id": str(uuid4()), "quiz_id": str(uuid4()), "action": "start"}
        )
        assert isinstance(event, QuizEventIn)

    def test_progress_payload(self):
        event = EventIngestor.parse_event(
            {"learner_id": str(uuid4()), "part_id": str(uuid4()), "position": 12.5}
        )
        assert isinstance(event, ProgressEventIn)

    @pytest.mark.parametrize(
        "payload",
        [
            {"part_id": str(uuid4()), "position": 1},
            {"learner_id": str(uuid4()), "part_id": str(uuid4())},
            {"learner_id": str(uuid4()), "part_id": str(uuid4()), "position": -1},
            {"learner_id": "nope", "part_id": str(uuid4()), "position": 1},
            {"learner_id": str(uuid4()), "part_id": str(uuid4()), "position": float("inf")},
            {"learner_id": str(uuid4()), "part_id": str(uuid4()), "position": float("nan")},
            {
                "learner_id": str(uuid4()),
                "part_id": str(uuid4()),
                "position": float("inf"),
                "duration": float("inf"),
            },
            {"learner_id": str(uuid4()), "quiz_id": str(uuid4()), "action": "answer"},
            {"learner_id": str(uuid4()), "quiz_id": str(uuid4()), "action": "pause"},
        ],
    )
    def test_malformed_payloads(self, payload):
        with pytest.raises(EventValidationError) as exc_info:
            EventIngestor.parse_event(payload)
        assert exc_info.value.code == "invalid_event"


class TestProgressEvents:
    """Progress event validation and dispatch."""

    @pytest.mark.asyncio
    async def test_unknown_part(self, engine, learner_id):
        event = ProgressEventIn(learner_id=learner_id, part_id=uuid4(), position=1)

        with pytest.raises(EventValidationError) as exc_info:
            await engine.ingestor.ingest_progress(event)

        assert exc_info.value.code == "unknown_part"

    @pytest.mark.asyncio
    async def test_not_enrolled(self, engine, course, learner_id):
        with pytest.raises(EventValidationError) as exc_info:
            await engine.ingestor.ingest_progress(
                progress_event(learner_id, course.video, position=10)
            )

        assert exc_info.value.code == "not_enrolled"
        assert engine.progress_repo.parts == {}

    @pytest.mark.asyncio
    async def test_quiz_part_takes_quiz_events(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        with pytest.raises(EventValidationError) as exc_info:
            await engine.ingestor.ingest_progress(
                progress_event(learner_id, course.quiz_part, position=1)
            )

        assert exc_info.value.code == "wrong_part_type"

    @pytest.mark.asyncio
    async def test_acknowledging_a_video(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        with pytest.raises(EventValidationError) as exc_info:
            await engine.ingestor.ingest_progress(
                progress_event(learner_id, course.video, acknowledged=True)
            )

        assert exc_info.value.code == "wrong_part_type"

    @pytest.mark.asyncio
    async def test_position_report(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        progress = await engine.ingestor.ingest_progress(
            progress_event(learner_id, course.video, position=560, duration=600)
        )

        assert progress.completed is True
        assert len(engine.locks) == 0

    @pytest.mark.asyncio
    async def test_document_acknowledgement(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        await engine.progress.report_progress(learner_id, course.video, position=600)

        progress = await engine.ingestor.ingest(
            {
                "learner_id": str(learner_id),
                "part_id": str(course.document.id),
                "acknowledged": True,
            }
        )

        assert progress.completed is True

    @pytest.mark.asyncio
    async def test_locked_part_is_a_policy_conflict(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        with pytest.raises(PartLockedError):
            await engine.ingestor.ingest_progress(
                progress_event(learner_id, course.video2, position=10)
            )

    @pytest.mark.asyncio
    async def test_duplicate_events_in_parallel(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        event = progress_event(learner_id, course.video, position=300)

        results = await asyncio.gather(
            *(engine.ingestor.ingest_progress(event) for _ in range(5))
        )

        assert {r.furthest_position for r in results} == {300}
        assert engine.progress_repo.part_saves == 1


class TestQuizEvents:
    """Quiz event validation and dispatch."""

    @pytest.mark.asyncio
    async def test_unknown_quiz(self, engine, learner_id):
        event = QuizEventIn(learner_id=learner_id, quiz_id=uuid4(), action=QuizAction.START)

        with pytest.raises(EventValidationError) as exc_info:
            await engine.ingestor.ingest_quiz(event)

        assert exc_info.value.code == "unknown_quiz"

    @pytest.mark.asyncio
    async def test_unknown_attempt(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        with pytest.raises(EventValidationError) as exc_info:
            await engine.ingestor.ingest_quiz(
                quiz_event(learner_id, course.quiz, QuizAction.SUBMIT, attempt_id=uuid4())
            )

        assert exc_info.value.code == "unknown_attempt"

    @pytest.mark.asyncio
    async def test_start_answer_submit(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        await complete_content(engine, course, learner_id)

        attempt = await engine.ingestor.ingest_quiz(
            quiz_event(learner_id, course.quiz, QuizAction.START)
        )
        for question_id, answer in course.correct_answers().items():
            await engine.ingestor.ingest_quiz(
                quiz_event(
                    learner_id,
                    course.quiz,
                    QuizAction.ANSWER,
                    attempt_id=attempt.id,
                    question_id=question_id,
                    answer=answer,
                )
            )
        submitted = await engine.ingestor.ingest_quiz(
            quiz_event(learner_id, course.quiz, QuizAction.SUBMIT, attempt_id=attempt.id)
        )

        assert submitted.state == AttemptState.SUBMITTED.value
        assert submitted.passed is True

    @pytest.mark.asyncio
    async def test_answer_validation(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        await complete_content(engine, course, learner_id)
        attempt = await engine.ingestor.ingest_quiz(
            quiz_event(learner_id, course.quiz, QuizAction.START)
        )

        with pytest.raises(EventValidationError) as exc_info:
            await engine.ingestor.ingest_quiz(
                quiz_event(
                    learner_id,
                    course.quiz,
                    QuizAction.ANSWER,
                    attempt_id=attempt.id,
                    question_id=uuid4(),
                    answer=True,
                )
            )
        assert exc_info.value.code == "unknown_question"

        with pytest.raises(EventValidationError) as exc_info:
            await engine.ingestor.ingest_quiz(
                quiz_event(
                    learner_id,
                    course.quiz,
                    QuizAction.ANSWER,
                    attempt_id=attempt.id,
                    question_id=course.multi.id,
                    answer=[str(uuid4())],
                )
            )
        assert exc_info.value.code == "invalid_answer"

        stored = await engine.attempts.get_attempt(learner_id, attempt.id)
        assert stored.responses == {}

    @pytest.mark.asyncio
    async def test_answer_on_locked_quiz(self, engine, course, learner_id):
        """Quiz answers before the video is completed are refused."""
        await engine.progress.enroll(learner_id, course.course.id)

        with pytest.raises(PartLockedError):
            await engine.ingestor.ingest_quiz(
                quiz_event(learner_id, course.quiz, QuizAction.START)
            )

    @pytest.mark.asyncio
    async def test_concurrent_starts_create_one_attempt(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        await complete_content(engine, course, learner_id)
        event = quiz_event(learner_id, course.quiz, QuizAction.START)

        results = await asyncio.gather(
            *(engine.ingestor.ingest_quiz(event) for _ in range(3)),
            return_exceptions=True,
        )

        started = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, AttemptInProgressError)]
        assert len(started) == 1
        assert len(refused) == 2
        assert len(engine.attempt_repo.rows) == 1
