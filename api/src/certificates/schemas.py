"""Pydantic schemas for certificates."""

from datetime import datetime
from uuid import UUID

from src.core.schemas import ApiModel


class CertificateResponse(ApiModel):
    certificate_id: UUID
    enrollment_id: UUID
    course_id: UUID
    course_title: str
    issued_at: datetime
    valid: bool = True


class CertificateValidationResponse(ApiModel):
    """Public view of a certificate: enough to confirm it, nothing personal."""

    valid: bool = True
    certificate_id: UUID
    course_title: str
    issued_at: datetime
    message: str = "Certificate is valid"
