"""Tests for ProgressService over in-memory storage."""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from src.catalog.models import PartType
from src.catalog.service import CourseNotFoundError
from src.progress.models import EnrollmentStatus, ModuleStatus
from src.progress.service import (
    MissingDurationError,
    NotEnrolledError,
    PartLockedError,
    WrongPartTypeError,
)
from src.signals.models import SignalType

from ..fakes import FakeCatalog, build_engine, complete_content, take_quiz


@pytest.fixture
def learner_id():
    return uuid4()


class TestEnrollment:
    """Enrollment operations."""

    @pytest.mark.asyncio
    async def test_enroll_seeds_modules(self, engine, course, learner_id, clock):
        enrollment = await engine.progress.enroll(learner_id, course.course.id)

        assert enrollment.status == EnrollmentStatus.NOT_STARTED.value
        assert enrollment.enrolled_at == clock.now

        modules = await engine.progress_repo.list_module_progress(learner_id, course.course.id)
        assert modules[course.module1.id].status == ModuleStatus.AVAILABLE.value
        assert modules[course.module2.id].status == ModuleStatus.LOCKED.value

    @pytest.mark.asyncio
    async def test_enroll_twice_returns_existing(self, engine, course, learner_id, clock):
        first = await engine.progress.enroll(learner_id, course.course.id)
        clock.advance(days=1)
        second = await engine.progress.enroll(learner_id, course.course.id)

        assert second.enrolled_at == first.enrolled_at
        assert await engine.progress.list_enrollments(learner_id) != []
        assert len(await engine.progress.list_enrollments(learner_id)) == 1

    @pytest.mark.asyncio
    async def test_enroll_unknown_course(self, engine, learner_id):
        with pytest.raises(CourseNotFoundError):
            await engine.progress.enroll(learner_id, uuid4())

    @pytest.mark.asyncio
    async def test_progress_requires_enrollment(self, engine, course, learner_id):
        with pytest.raises(NotEnrolledError):
            await engine.progress.report_progress(learner_id, course.video, position=10)

        assert engine.progress_repo.parts == {}


class TestReportProgress:
    """Video and document progress."""

    @pytest.mark.asyncio
    async def test_report_merges_and_recomputes(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        progress = await engine.progress.report_progress(learner_id, course.video, position=300)

        assert progress.percent_watched == Decimal(50)
        assert progress.completed is False
        enrollment = await engine.progress.get_enrollment(learner_id, course.course.id)
        assert enrollment.status == EnrollmentStatus.IN_PROGRESS.value

    @pytest.mark.asyncio
    async def test_catalog_duration_wins(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        progress = await engine.progress.report_progress(
            learner_id, course.video, position=300, duration=300
        )

        assert progress.duration == 600
        assert progress.completed is False

    @pytest.mark.asyncio
    async def test_replayed_report_is_not_persisted(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        await engine.progress.report_progress(learner_id, course.video, position=300)
        saves = engine.progress_repo.part_saves

        await engine.progress.report_progress(learner_id, course.video, position=300)
        await engine.progress.report_progress(learner_id, course.video, position=120)

        assert engine.progress_repo.part_saves == saves

    @pytest.mark.asyncio
    async def test_next_part_locked_until_previous_completed(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        await engine.progress.report_progress(learner_id, course.video, position=500)

        with pytest.raises(PartLockedError):
            await engine.progress.acknowledge_document(learner_id, course.document)

        await engine.progress.report_progress(learner_id, course.video, position=560)
        progress = await engine.progress.acknowledge_document(learner_id, course.document)
        assert progress.completed is True

    @pytest.mark.asyncio
    async def test_second_module_locked(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        with pytest.raises(PartLockedError):
            await engine.progress.report_progress(learner_id, course.video2, position=10)

    @pytest.mark.asyncio
    async def test_quiz_part_rejects_position(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        with pytest.raises(WrongPartTypeError):
            await engine.progress.report_progress(learner_id, course.quiz_part, position=1)

    @pytest.mark.asyncio
    async def test_video_cannot_be_acknowledged(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        with pytest.raises(WrongPartTypeError):
            await engine.progress.acknowledge_document(learner_id, course.video)

    @pytest.mark.asyncio
    async def test_unknown_duration(self, learner_id):
        catalog = FakeCatalog()
        course = catalog.add_course()
        module = catalog.add_module(course)
        video = catalog.add_part(module, PartType.VIDEO)
        engine = build_engine(catalog)
        await engine.progress.enroll(learner_id, course.id)

        with pytest.raises(MissingDurationError):
            await engine.progress.report_progress(learner_id, video, position=10)

        progress = await engine.progress.report_progress(
            learner_id, video, position=10, duration=20
        )
        assert progress.percent_watched == Decimal(50)

    @pytest.mark.asyncio
    async def test_modules_open_together_when_not_sequential(self, course, clock, learner_id):
        engine = build_engine(course.catalog, clock, sequential_modules=False)
        await engine.progress.enroll(learner_id, course.course.id)

        progress = await engine.progress.report_progress(
            learner_id, course.video2, position=10
        )

        assert progress.furthest_position == 10

    @pytest.mark.asyncio
    async def test_part_threshold_override(self, learner_id):
        catalog = FakeCatalog()
        course = catalog.add_course()
        module = catalog.add_module(course)
        video = catalog.add_part(
            module, PartType.VIDEO, duration_seconds=100, completion_threshold=Decimal(50)
        )
        engine = build_engine(catalog)
        await engine.progress.enroll(learner_id, course.id)

        progress = await engine.progress.report_progress(learner_id, video, position=50)

        assert progress.completed is True


class TestCourseCompletion:
    """End-to-end completion, certification and signals."""

    @pytest.mark.asyncio
    async def test_full_course_certifies(self, engine, course, learner_id, clock):
        await engine.progress.enroll(learner_id, course.course.id)
        await complete_content(engine, course, learner_id)
        await take_quiz(engine, course, learner_id, course.correct_answers())

        clock.advance(minutes=10)
        await engine.progress.report_progress(learner_id, course.video2, position=300)

        enrollment = await engine.progress.get_enrollment(learner_id, course.course.id)
        assert enrollment.status == EnrollmentStatus.COMPLETED.value
        assert enrollment.percent_complete == Decimal(100)
        assert enrollment.certified is True
        assert enrollment.certified_at == clock.now
        assert enrollment.final_score == Decimal(100)
        # 600s + 120s + 300s of content
        assert enrollment.total_minutes_spent == Decimal(17)

        assert [s.module_id for s in engine.signals.of_type(SignalType.MODULE_COMPLETED)] == [
            course.module1.id,
            course.module2.id,
        ]
        assert len(engine.signals.of_type(SignalType.COURSE_COMPLETED)) == 1
        certified = engine.signals.of_type(SignalType.COURSE_CERTIFIED)
        assert len(certified) == 1
        assert certified[0].final_score == Decimal(100)

    @pytest.mark.asyncio
    async def test_signals_not_repeated(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        await complete_content(engine, course, learner_id)
        await take_quiz(engine, course, learner_id, course.correct_answers())
        await engine.progress.report_progress(learner_id, course.video2, position=300)
        emitted = len(engine.signals.emitted)

        await engine.progress.recompute_enrollment(learner_id, course.course.id)
        await engine.progress.acknowledge_document(learner_id, course.document)

        assert len(engine.signals.emitted) == emitted

    @pytest.mark.asyncio
    async def test_failed_quiz_keeps_module_open(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        await complete_content(engine, course, learner_id)
        await take_quiz(engine, course, learner_id, course.wrong_answers())

        result = await engine.progress.evaluate_module(
            learner_id, course.course.id, course.module1.id
        )
        module, evaluation = result

        assert module.status == ModuleStatus.IN_PROGRESS.value
        assert evaluation.parts_completed == 2
        assert evaluation.part_state(course.quiz_part.id).completed is False

    @pytest.mark.asyncio
    async def test_retake_pass_completes_module(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        await complete_content(engine, course, learner_id)
        await take_quiz(engine, course, learner_id, course.wrong_answers())
        await take_quiz(engine, course, learner_id, course.correct_answers())

        modules = await engine.progress_repo.list_module_progress(learner_id, course.course.id)
        assert modules[course.module1.id].status == ModuleStatus.COMPLETED.value
        assert modules[course.module2.id].status == ModuleStatus.AVAILABLE.value

    @pytest.mark.asyncio
    async def test_recompute_requires_enrollment(self, engine, course, learner_id):
        with pytest.raises(NotEnrolledError):
            await engine.progress.recompute_enrollment(learner_id, course.course.id)

    @pytest.mark.asyncio
    async def test_course_snapshot_is_read_only(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)
        saves = engine.progress_repo.enrollment_saves

        enrollment, state = await engine.progress.get_course_progress(
            learner_id, course.course.id
        )

        assert enrollment.learner_id == learner_id
        assert list(state.evaluations) == [course.module1.id, course.module2.id]
        assert engine.progress_repo.enrollment_saves == saves


class TestConcurrency:
    """Concurrent reports on the same part."""

    @pytest.mark.asyncio
    async def test_concurrent_reports_keep_maximum(self, engine, course, learner_id):
        await engine.progress.enroll(learner_id, course.course.id)

        async def report(position: float):
            async with engine.locks.hold("part", learner_id, course.video.id):
                await engine.progress.report_progress(
                    learner_id, course.video, position=position
                )

        await asyncio.gather(*(report(p) for p in [100, 560, 20, 300, 450]))

        stored = await engine.progress_repo.get_part_progress(
            learner_id, course.course.id, course.video.id
        )
        assert stored.furthest_position == 560
        assert stored.completed is True
        assert len(engine.locks) == 0
