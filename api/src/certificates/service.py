"""Certificate issuance.

Mints a stable certificate id for an eligible completion record and
validates ids presented by third parties. Rendering (PDF, QR codes)
belongs to another service.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

import structlog


if TYPE_CHECKING:
    from src.courses.service import CourseService
    from src.progress.service import ProgressService

logger = structlog.get_logger(__name__)


class CertificateError(Exception):
    """Base certificate error.

    ``extra`` is merged into the error response body.
    """

    def __init__(
        self,
        message: str,
        code: str = "certificate_error",
        extra: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.extra = extra or {}
        super().__init__(message)


class EnrollmentNotFoundError(CertificateError):
    def __init__(self, message: str = "Enrollment not found"):
        super().__init__(message, "not_enrolled")


class NotEligibleError(CertificateError):
    def __init__(
        self,
        message: str = (
            "Not eligible for certificate. Complete the course and pass the assessment."
        ),
    ):
        super().__init__(message, "not_eligible")


class CertificateNotFoundError(CertificateError):
    def __init__(self, message: str = "Certificate not found"):
        super().__init__(message, "certificate_not_found", extra={"valid": False})


@dataclass(frozen=True)
class IssuedCertificate:
    certificate_id: UUID
    enrollment_id: UUID
    course_id: UUID
    course_title: str
    issued_at: datetime


class CertificateService:
    """Issues and validates certificates of eligible enrollments."""

    def __init__(
        self,
        progress_service: "ProgressService",
        course_service: "CourseService",
    ):
        self.progress_service = progress_service
        self.course_service = course_service

    async def issue(self, user_id: UUID, enrollment_id: UUID) -> IssuedCertificate:
        """Return the enrollment's certificate, minting it on first call.

        Raises:
            EnrollmentNotFoundError: Unknown enrollment or owned by someone else
            NotEligibleError: The assessment has not been passed
        """
        enrollment = await self.progress_service.get_enrollment_by_id(enrollment_id)
        if enrollment is None or enrollment.user_id != user_id:
            raise EnrollmentNotFoundError

        if not enrollment.certificate_eligible:
            raise NotEligibleError

        if enrollment.certificate_id is None:
            enrollment = await self.progress_service.set_certificate(
                enrollment, uuid4(), datetime.now(UTC)
            )
            logger.info(
                "certificate_issued",
                enrollment_id=str(enrollment_id),
                certificate_id=str(enrollment.certificate_id),
            )

        course = await self.course_service.get_course(enrollment.course_id)
        return IssuedCertificate(
            certificate_id=enrollment.certificate_id,
            enrollment_id=enrollment.enrollment_id,
            course_id=enrollment.course_id,
            course_title=course.title if course else "",
            issued_at=enrollment.certificate_issued_at or datetime.now(UTC),
        )

    async def validate(self, certificate_id: UUID) -> IssuedCertificate:
        """Confirm a certificate id was issued and is still on its record.

        Raises:
            CertificateNotFoundError: Unknown id, or its enrollment was removed
        """
        enrollment = await self.progress_service.get_enrollment_by_certificate(
            certificate_id
        )
        if enrollment is None:
            logger.info("certificate_not_found", certificate_id=str(certificate_id))
            raise CertificateNotFoundError

        course = await self.course_service.get_course(enrollment.course_id)
        return IssuedCertificate(
            certificate_id=certificate_id,
            enrollment_id=enrollment.enrollment_id,
            course_id=enrollment.course_id,
            course_title=course.title if course else "",
            issued_at=enrollment.certificate_issued_at or enrollment.enrolled_at,
        )
