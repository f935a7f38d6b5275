"""Tests for enrollment aggregation and certification."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from src.catalog.models import PartType
from src.progress.aggregator import (
    compute_course_percent,
    compute_final_score,
    module_weights,
    recompute_enrollment,
)
from src.progress.models import Enrollment, EnrollmentStatus, ModuleProgress, ModuleStatus

from ..fakes import FakeCatalog


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


def module_record(course, module, status=ModuleStatus.AVAILABLE, percent=0, minutes=0):
    return ModuleProgress(
        learner_id=uuid4(),
        course_id=course.id,
        module_id=module.id,
        status=status.value,
        percent_complete=Decimal(percent),
        minutes_spent=Decimal(minutes),
    )


def enrollment_for(course) -> Enrollment:
    return Enrollment(course_id=course.id, learner_id=uuid4(), enrolled_at=NOW)


async def two_module_course(catalog: FakeCatalog, threshold=70, weighted=False):
    course = catalog.add_course(
        certification_threshold=Decimal(threshold), weight_modules_by_duration=weighted
    )
    m1 = catalog.add_module(course)
    catalog.add_part(m1, PartType.VIDEO, duration_seconds=900)
    quiz_part = catalog.add_part(m1, PartType.QUIZ)
    catalog.add_quiz(quiz_part)
    m2 = catalog.add_module(course)
    catalog.add_part(m2, PartType.VIDEO, duration_seconds=300)
    structure = await catalog.load_course_structure(course.id)
    return structure, quiz_part


class TestCoursePercent:
    """Percentage and weights."""

    @pytest.mark.asyncio
    async def test_equal_weights(self, catalog):
        structure, _ = await two_module_course(catalog)
        m1, m2 = structure.modules
        records = {
            m1.id: module_record(structure.course, m1, percent=50),
            m2.id: module_record(structure.course, m2, percent=100),
        }

        assert compute_course_percent(structure, records) == Decimal(75)

    @pytest.mark.asyncio
    async def test_missing_module_counts_as_zero(self, catalog):
        structure, _ = await two_module_course(catalog)
        m1 = structure.modules[0]

        percent = compute_course_percent(
            structure, {m1.id: module_record(structure.course, m1, percent=100)}
        )

        assert percent == Decimal(50)

    @pytest.mark.asyncio
    async def test_duration_weights(self, catalog):
        structure, _ = await two_module_course(catalog, weighted=True)
        m1, m2 = structure.modules

        weights = module_weights(structure)
        percent = compute_course_percent(
            structure, {m2.id: module_record(structure.course, m2, percent=100)}
        )

        assert weights == {m1.id: Decimal(900), m2.id: Decimal(300)}
        assert percent == Decimal(25)


class TestFinalScore:
    """Final score over mandatory quizzes."""

    @pytest.mark.asyncio
    async def test_mean_of_best_passing_scores(self, catalog):
        structure, quiz_part = await two_module_course(catalog)

        assert compute_final_score(structure, {quiz_part.id: Decimal("85.5")}) == Decimal("85.50")

    @pytest.mark.asyncio
    async def test_missing_passing_score(self, catalog):
        structure, _ = await two_module_course(catalog)

        assert compute_final_score(structure, {}) is None


class TestRecomputeEnrollment:
    """recompute_enrollment."""

    @pytest.mark.asyncio
    async def test_not_started(self, catalog):
        structure, _ = await two_module_course(catalog)
        enrollment = enrollment_for(structure.course)

        update = recompute_enrollment(enrollment, structure, {}, {}, NOW)

        assert update.enrollment.status == EnrollmentStatus.NOT_STARTED.value
        assert update.changed is False

    @pytest.mark.asyncio
    async def test_in_progress(self, catalog):
        structure, _ = await two_module_course(catalog)
        m1, _ = structure.modules
        records = {
            m1.id: module_record(
                structure.course, m1, ModuleStatus.IN_PROGRESS, percent=50, minutes=12
            )
        }

        update = recompute_enrollment(enrollment_for(structure.course), structure, records, {}, NOW)

        assert update.enrollment.status == EnrollmentStatus.IN_PROGRESS.value
        assert update.enrollment.percent_complete == Decimal(25)
        assert update.enrollment.total_minutes_spent == Decimal(12)
        assert update.enrollment.started_at == NOW

    @pytest.mark.asyncio
    async def test_certifies_once(self, catalog):
        structure, quiz_part = await two_module_course(catalog)
        records = {
            m.id: module_record(structure.course, m, ModuleStatus.COMPLETED, percent=100)
            for m in structure.modules
        }

        first = recompute_enrollment(
            enrollment_for(structure.course), structure, records, {quiz_part.id: Decimal(80)}, NOW
        )
        assert first.newly_completed and first.newly_certified
        assert first.enrollment.certified_at == NOW
        assert first.enrollment.final_score == Decimal(80)

        second = recompute_enrollment(
            first.enrollment,
            structure,
            records,
            {quiz_part.id: Decimal(95)},
            NOW + timedelta(days=1),
        )
        assert not second.newly_completed and not second.newly_certified
        assert second.enrollment.certified_at == NOW
        assert second.enrollment.final_score == Decimal(80)
        assert second.changed is False

    @pytest.mark.asyncio
    async def test_completed_below_threshold_not_certified(self, catalog):
        structure, quiz_part = await two_module_course(catalog, threshold=90)
        records = {
            m.id: module_record(structure.course, m, ModuleStatus.COMPLETED, percent=100)
            for m in structure.modules
        }

        update = recompute_enrollment(
            enrollment_for(structure.course), structure, records, {quiz_part.id: Decimal(75)}, NOW
        )

        assert update.enrollment.is_completed
        assert update.enrollment.certified is False
        assert update.enrollment.final_score == Decimal(75)

    @pytest.mark.asyncio
    async def test_completion_alone_certifies_without_quizzes(self, catalog):
        course = catalog.add_course(certification_threshold=Decimal(0))
        module = catalog.add_module(course)
        catalog.add_part(module, PartType.DOCUMENT, duration_seconds=60)
        structure = await catalog.load_course_structure(course.id)
        records = {module.id: module_record(course, module, ModuleStatus.COMPLETED, 100)}

        update = recompute_enrollment(enrollment_for(course), structure, records, {}, NOW)

        assert update.enrollment.certified is True
        assert update.enrollment.final_score is None

    @pytest.mark.asyncio
    async def test_empty_course_never_completes(self, catalog):
        course = catalog.add_course()
        structure = await catalog.load_course_structure(course.id)

        update = recompute_enrollment(enrollment_for(course), structure, {}, {}, NOW)

        assert update.enrollment.status == EnrollmentStatus.NOT_STARTED.value
        assert update.enrollment.certified is False

    @pytest.mark.asyncio
    async def test_certified_implies_all_modules_completed(self, catalog):
        structure, quiz_part = await two_module_course(catalog, threshold=0)
        m1, m2 = structure.modules
        records = {
            m1.id: module_record(structure.course, m1, ModuleStatus.COMPLETED, 100),
            m2.id: module_record(structure.course, m2, ModuleStatus.IN_PROGRESS, 0),
        }

        update = recompute_enrollment(
            enrollment_for(structure.course), structure, records, {quiz_part.id: Decimal(100)}, NOW
        )

        assert update.enrollment.certified is False
        assert update.enrollment.status == EnrollmentStatus.IN_PROGRESS.value
