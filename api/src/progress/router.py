"""Enrollment and progress snapshot endpoints.

Provides routes for:
- Course enrollment (called by the sign-up collaborator)
- Learner enrollments listing
- Course and module progress snapshots (read-only)

Progress itself changes only through the event endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from src.catalog.service import CatalogError

from .dependencies import ProgressServiceDep, handle_progress_error
from .schemas import (
    CourseProgressResponse,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
    ModuleProgressResponse,
)
from .service import CourseState, ProgressError


enrollments_router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


def _module_response(state: CourseState, module_id: UUID) -> ModuleProgressResponse:
    module = state.structure.module(module_id)
    return ModuleProgressResponse.from_entity(
        state.modules[module_id],
        state.evaluations[module_id],
        position=module.position,
        title=module.title,
        part_progress=state.part_progress,
    )


@enrollments_router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll learner in course",
)
async def enroll(
    data: EnrollRequest,
    progress_service: ProgressServiceDep,
) -> EnrollmentResponse:
    """Enroll a learner. Enrolling again returns the existing enrollment."""
    try:
        enrollment = await progress_service.enroll(data.learner_id, data.course_id)
    except (ProgressError, CatalogError) as e:
        raise handle_progress_error(e) from e
    return EnrollmentResponse.from_entity(enrollment)


@enrollments_router.get(
    "/{learner_id}",
    response_model=EnrollmentListResponse,
    summary="List learner enrollments",
)
async def list_enrollments(
    learner_id: UUID,
    progress_service: ProgressServiceDep,
) -> EnrollmentListResponse:
    enrollments = await progress_service.list_enrollments(learner_id)
    return EnrollmentListResponse(
        items=[EnrollmentResponse.from_entity(e) for e in enrollments],
        total=len(enrollments),
    )


@enrollments_router.get(
    "/{learner_id}/{course_id}",
    response_model=CourseProgressResponse,
    summary="Get course progress",
)
async def get_course_progress(
    learner_id: UUID,
    course_id: UUID,
    progress_service: ProgressServiceDep,
) -> CourseProgressResponse:
    """Enrollment with every module and part of the course."""
    try:
        enrollment, state = await progress_service.get_course_progress(
            learner_id, course_id
        )
    except (ProgressError, CatalogError) as e:
        raise handle_progress_error(e) from e

    return CourseProgressResponse(
        course_id=course_id,
        enrollment=EnrollmentResponse.from_entity(enrollment),
        modules=[_module_response(state, m.id) for m in state.structure.modules],
    )


@enrollments_router.get(
    "/{learner_id}/{course_id}/modules/{module_id}",
    response_model=ModuleProgressResponse,
    summary="Get module progress",
)
async def get_module_progress(
    learner_id: UUID,
    course_id: UUID,
    module_id: UUID,
    progress_service: ProgressServiceDep,
) -> ModuleProgressResponse:
    try:
        _, state = await progress_service.get_course_progress(learner_id, course_id)
    except (ProgressError, CatalogError) as e:
        raise handle_progress_error(e) from e

    if state.structure.module(module_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Module not found in course",
        )
    return _module_response(state, module_id)
