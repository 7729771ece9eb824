"""Assessment API endpoints.

Provides routes for:
- Assessment status with the video unlock gate
- Authoring the course assessment (owner or admin)
- Starting and submitting attempts (students)
"""

from uuid import UUID

from fastapi import APIRouter, status

from src.auth.dependencies import CurrentUser, InstructorUser, StudentUser
from src.core.context import set_course_id
from src.courses.dependencies import CourseServiceDep, handle_course_error
from src.courses.service import CourseError
from src.progress.dependencies import handle_progress_error
from src.progress.service import ProgressError

from .dependencies import AssessmentServiceDep, handle_assessment_error
from .schemas import (
    AssessmentDefinitionRequest,
    AssessmentSavedResponse,
    AssessmentStatusResponse,
    AssessmentView,
    StartAttemptResponse,
    SubmissionRequest,
    SubmissionResponse,
    VideoProgress,
)
from .service import AssessmentError


router = APIRouter(prefix="/api/courses", tags=["assessments"])


@router.get(
    "/{course_id}/assessment",
    response_model=AssessmentStatusResponse,
    summary="Get assessment and unlock status",
)
async def get_assessment_status(
    course_id: UUID,
    user: CurrentUser,
    course_service: CourseServiceDep,
    assessment_service: AssessmentServiceDep,
) -> AssessmentStatusResponse:
    """Definition (if any), unlock gate and video progress of the caller."""
    set_course_id(course_id)
    try:
        course = await course_service.require_course(course_id)
    except CourseError as e:
        raise handle_course_error(e) from e

    result = await assessment_service.get_status(course, user)
    return AssessmentStatusResponse(
        assessment=(
            AssessmentView.from_entity(result.definition, result.include_answers)
            if result.definition
            else None
        ),
        assessment_enabled=result.assessment_enabled,
        video_progress=VideoProgress(completed=result.completed, total=result.total),
        completed_lessons=result.completed_lessons,
        is_enrolled=result.is_enrolled,
        attempts_used=result.attempts_used,
    )


@router.post(
    "/{course_id}/assessment",
    response_model=AssessmentSavedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create or replace the course assessment",
)
async def upsert_assessment(
    course_id: UUID,
    data: AssessmentDefinitionRequest,
    user: InstructorUser,
    course_service: CourseServiceDep,
    assessment_service: AssessmentServiceDep,
) -> AssessmentSavedResponse:
    """Replace the definition. Only the course's instructor or an admin."""
    set_course_id(course_id)
    try:
        course = await course_service.require_course(course_id)
        definition = await assessment_service.upsert_definition(course, user, data)
    except CourseError as e:
        raise handle_course_error(e) from e
    except AssessmentError as e:
        raise handle_assessment_error(e) from e

    return AssessmentSavedResponse(
        assessment=AssessmentView.from_entity(definition, include_answers=True)
    )


@router.post(
    "/{course_id}/assessment/start",
    response_model=StartAttemptResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a tracked attempt",
)
async def start_attempt(
    course_id: UUID,
    user: StudentUser,
    course_service: CourseServiceDep,
    assessment_service: AssessmentServiceDep,
) -> StartAttemptResponse:
    set_course_id(course_id)
    try:
        course = await course_service.require_course(course_id)
        ticket = await assessment_service.start_attempt(course, user.id)
    except CourseError as e:
        raise handle_course_error(e) from e
    except ProgressError as e:
        raise handle_progress_error(e) from e
    except AssessmentError as e:
        raise handle_assessment_error(e) from e

    return StartAttemptResponse(
        attempt_id=ticket.attempt_id,
        started_at=ticket.started_at,
        expires_in=ticket.expires_in,
        assessment_version=ticket.definition_version,
        duration=ticket.duration_minutes,
    )


@router.post(
    "/{course_id}/assessment/submit",
    response_model=SubmissionResponse,
    summary="Submit answers",
)
async def submit_assessment(
    course_id: UUID,
    data: SubmissionRequest,
    user: StudentUser,
    course_service: CourseServiceDep,
    assessment_service: AssessmentServiceDep,
) -> SubmissionResponse:
    """Score against the stored definition and record the outcome.

    Fails with 403 and ``videoProgress`` while the video gate is closed.
    """
    set_course_id(course_id)
    try:
        course = await course_service.require_course(course_id)
        outcome = await assessment_service.submit(course, user.id, data)
    except CourseError as e:
        raise handle_course_error(e) from e
    except ProgressError as e:
        raise handle_progress_error(e) from e
    except AssessmentError as e:
        raise handle_assessment_error(e) from e

    return SubmissionResponse.from_result(
        outcome.result,
        attempts_used=outcome.enrollment.assessment_attempts,
        time_taken=outcome.time_taken,
    )
