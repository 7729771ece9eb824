"""FastAPI dependencies for live sessions."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import LiveSessionError, LiveSessionService


async def get_live_session_service(request: Request) -> LiveSessionService:
    service = getattr(request.app.state, "live_session_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Live session service not available",
        )
    return service


LiveSessionServiceDep = Annotated[LiveSessionService, Depends(get_live_session_service)]


def handle_live_session_error(error: LiveSessionError) -> HTTPException:
    status_map = {
        "not_course_owner": status.HTTP_403_FORBIDDEN,
    }
    return HTTPException(
        status_code=status_map.get(error.code, status.HTTP_400_BAD_REQUEST),
        detail=error.message,
    )
