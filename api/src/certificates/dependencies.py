"""FastAPI dependencies for certificates."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.core.exceptions import APIError

from .service import CertificateError, CertificateService


async def get_certificate_service(request: Request) -> CertificateService:
    """Get certificate service from app state."""
    service = getattr(request.app.state, "certificate_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Certificate service not available",
        )
    return service


CertificateServiceDep = Annotated[CertificateService, Depends(get_certificate_service)]


def handle_certificate_error(error: CertificateError) -> APIError:
    status_map = {
        "not_enrolled": status.HTTP_404_NOT_FOUND,
        "certificate_not_found": status.HTTP_404_NOT_FOUND,
        "not_eligible": status.HTTP_400_BAD_REQUEST,
    }
    return APIError(
        status_code=status_map.get(error.code, status.HTTP_400_BAD_REQUEST),
        detail=error.message,
        extra=error.extra,
    )
