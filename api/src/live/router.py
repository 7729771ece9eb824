"""Live session API endpoints."""

from uuid import UUID

from fastapi import APIRouter

from src.auth.dependencies import CurrentUser, InstructorUser
from src.courses.dependencies import CourseServiceDep, handle_course_error
from src.courses.service import CourseError

from .dependencies import LiveSessionServiceDep, handle_live_session_error
from .schemas import LiveSessionInfo, LiveStatusResponse
from .service import LiveSessionError


router = APIRouter(prefix="/api/courses", tags=["live"])


@router.post("/{course_id}/live/start", response_model=LiveStatusResponse)
async def start_live_session(
    course_id: UUID,
    user: InstructorUser,
    course_service: CourseServiceDep,
    live_service: LiveSessionServiceDep,
) -> LiveStatusResponse:
    try:
        course = await course_service.require_course(course_id)
        session = await live_service.start(course, user)
    except CourseError as e:
        raise handle_course_error(e) from e
    except LiveSessionError as e:
        raise handle_live_session_error(e) from e

    return LiveStatusResponse(
        message="Live session started",
        live=True,
        session=LiveSessionInfo.model_validate(session),
    )


@router.post("/{course_id}/live/stop", response_model=LiveStatusResponse)
async def stop_live_session(
    course_id: UUID,
    user: InstructorUser,
    course_service: CourseServiceDep,
    live_service: LiveSessionServiceDep,
) -> LiveStatusResponse:
    try:
        course = await course_service.require_course(course_id)
        await live_service.stop(course, user)
    except CourseError as e:
        raise handle_course_error(e) from e
    except LiveSessionError as e:
        raise handle_live_session_error(e) from e

    return LiveStatusResponse(message="Live session stopped", live=False)


@router.get("/{course_id}/live/status", response_model=LiveStatusResponse)
async def get_live_status(
    course_id: UUID,
    user: CurrentUser,
    live_service: LiveSessionServiceDep,
) -> LiveStatusResponse:
    session = await live_service.status(course_id)
    return LiveStatusResponse(
        live=session is not None,
        session=LiveSessionInfo.model_validate(session) if session else None,
    )
