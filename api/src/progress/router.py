"""Progress ledger API endpoints.

Provides routes for:
- Course enrollment and unenrollment
- Video completion reports from the playback observer
- Student progress overview
- Course rosters for instructors
"""

from uuid import UUID

from fastapi import APIRouter, status

from src.assessments.dependencies import AssessmentServiceDep
from src.auth.dependencies import InstructorUser, StudentUser
from src.core.context import set_course_id
from src.core.schemas import MessageResponse
from src.courses.dependencies import CourseServiceDep, handle_course_error
from src.courses.service import CourseError

from .dependencies import ProgressServiceDep, handle_progress_error
from .schemas import (
    CourseStudentEntry,
    CourseStudentsResponse,
    EnrollmentResponse,
    StudentProgressResponse,
    VideoProgressRequest,
    VideoProgressResponse,
)
from .service import ProgressError


router = APIRouter(prefix="/api/courses", tags=["progress"])


# Declared before the /{course_id} routes so "me" is not parsed as a course id
@router.get(
    "/me/progress",
    response_model=StudentProgressResponse,
    summary="List progress across enrolled courses",
)
async def get_my_progress(
    user: StudentUser,
    progress_service: ProgressServiceDep,
) -> StudentProgressResponse:
    courses = await progress_service.list_student_progress(user.id)
    return StudentProgressResponse(courses=courses, total=len(courses))


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@router.post(
    "/{course_id}/enroll",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in course",
)
async def enroll(
    course_id: UUID,
    user: StudentUser,
    course_service: CourseServiceDep,
    progress_service: ProgressServiceDep,
) -> EnrollmentResponse:
    """Create an empty completion record for the caller."""
    set_course_id(course_id)
    try:
        await course_service.require_course(course_id)
        enrollment = await progress_service.enroll_user(user.id, course_id)
    except CourseError as e:
        raise handle_course_error(e) from e
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return EnrollmentResponse.from_entity(enrollment)


@router.delete(
    "/{course_id}/unenroll",
    response_model=MessageResponse,
    summary="Unenroll from course",
)
async def unenroll(
    course_id: UUID,
    user: StudentUser,
    progress_service: ProgressServiceDep,
) -> MessageResponse:
    """Delete the caller's completion record for the course."""
    set_course_id(course_id)
    try:
        await progress_service.unenroll_user(user.id, course_id)
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return MessageResponse(message="Unenrolled from course")


# ==============================================================================
# Video Progress Endpoints
# ==============================================================================


@router.put(
    "/{course_id}/video-progress",
    response_model=VideoProgressResponse,
    summary="Record a watched video",
)
async def record_video_progress(
    course_id: UUID,
    data: VideoProgressRequest,
    user: StudentUser,
    course_service: CourseServiceDep,
    progress_service: ProgressServiceDep,
    assessment_service: AssessmentServiceDep,
) -> VideoProgressResponse:
    """Mark a lesson unit as watched.

    Called once per video by the playback observer when the watch threshold
    is reached. Repeating the call is harmless.
    """
    set_course_id(course_id)
    try:
        course = await course_service.require_course(course_id)
        result = await progress_service.record_unit_complete(
            user_id=user.id,
            course=course,
            module_index=data.module_index,
            video_index=data.video_index,
            watch_time_seconds=data.watch_time,
            completed_at=data.completed_at,
            has_assessment=await assessment_service.has_assessment(course_id),
        )
    except CourseError as e:
        raise handle_course_error(e) from e
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return VideoProgressResponse(
        video_key=result.video_key,
        progress=result.progress,
        completed_videos=result.completed_videos,
        total_videos=result.total_videos,
        assessment_enabled=result.assessment_enabled,
        completed_lessons=result.completed_lessons,
    )


# ==============================================================================
# Roster Endpoints
# ==============================================================================


@router.get(
    "/{course_id}/students",
    response_model=CourseStudentsResponse,
    summary="List enrolled students with their progress",
)
async def list_course_students(
    course_id: UUID,
    user: InstructorUser,
    course_service: CourseServiceDep,
    progress_service: ProgressServiceDep,
) -> CourseStudentsResponse:
    """Roster of the course for its instructor or an admin."""
    set_course_id(course_id)
    try:
        course = await course_service.require_course(course_id)
        enrollments = await progress_service.list_course_students(course, user)
    except CourseError as e:
        raise handle_course_error(e) from e
    except ProgressError as e:
        raise handle_progress_error(e) from e

    return CourseStudentsResponse(
        course_id=course.id,
        course_title=course.title,
        total_students=len(enrollments),
        students=[CourseStudentEntry.from_entity(e) for e in enrollments],
    )
