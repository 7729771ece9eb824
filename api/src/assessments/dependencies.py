"""FastAPI dependencies for assessments."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.core.exceptions import APIError

from .service import AssessmentError, AssessmentService


async def get_assessment_service(request: Request) -> AssessmentService:
    """Get assessment service from app state."""
    service = getattr(request.app.state, "assessment_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assessment service not available",
        )
    return service


AssessmentServiceDep = Annotated[AssessmentService, Depends(get_assessment_service)]


def handle_assessment_error(error: AssessmentError) -> APIError:
    """Convert assessment errors to HTTP errors, keeping their context fields."""
    status_map = {
        "validation_error": status.HTTP_400_BAD_REQUEST,
        "assessment_locked": status.HTTP_403_FORBIDDEN,
        "attempt_limit_reached": status.HTTP_403_FORBIDDEN,
        "not_course_owner": status.HTTP_403_FORBIDDEN,
        "assessment_not_found": status.HTTP_404_NOT_FOUND,
        "attempt_not_found": status.HTTP_404_NOT_FOUND,
        "stale_assessment": status.HTTP_409_CONFLICT,
        "assessment_conflict": status.HTTP_409_CONFLICT,
    }

    return APIError(
        status_code=status_map.get(error.code, status.HTTP_400_BAD_REQUEST),
        detail=error.message,
        extra=error.extra,
    )
