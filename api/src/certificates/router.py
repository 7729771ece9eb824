"""Certificate API endpoints."""

from uuid import UUID

from fastapi import APIRouter

from src.auth.dependencies import StudentUser

from .dependencies import CertificateServiceDep, handle_certificate_error
from .schemas import CertificateResponse, CertificateValidationResponse
from .service import CertificateError


router = APIRouter(prefix="/api/certificates", tags=["certificates"])


@router.post(
    "/enrollment/{enrollment_id}",
    response_model=CertificateResponse,
    summary="Issue certificate for an enrollment",
)
async def issue_certificate(
    enrollment_id: UUID,
    user: StudentUser,
    certificate_service: CertificateServiceDep,
) -> CertificateResponse:
    """Mint (or return) the certificate of an eligible enrollment.

    Repeated calls return the same certificate id.
    """
    try:
        certificate = await certificate_service.issue(user.id, enrollment_id)
    except CertificateError as e:
        raise handle_certificate_error(e) from e

    return CertificateResponse(
        certificate_id=certificate.certificate_id,
        enrollment_id=certificate.enrollment_id,
        course_id=certificate.course_id,
        course_title=certificate.course_title,
        issued_at=certificate.issued_at,
    )


@router.get(
    "/{certificate_id}/validate",
    response_model=CertificateValidationResponse,
    summary="Validate a certificate id",
)
async def validate_certificate(
    certificate_id: UUID,
    certificate_service: CertificateServiceDep,
) -> CertificateValidationResponse:
    """Public check used by employers and other third parties. No auth."""
    try:
        certificate = await certificate_service.validate(certificate_id)
    except CertificateError as e:
        raise handle_certificate_error(e) from e

    return CertificateValidationResponse(
        certificate_id=certificate.certificate_id,
        course_title=certificate.course_title,
        issued_at=certificate.issued_at,
    )
