"""Database models for the progress ledger.

Cassandra table definitions for:
- Enrollments: One completion record per (course, student)
- Lookup tables: Enrollments by student, by enrollment id and by certificate id
- Lesson completions: Audit of each watched lesson unit

Architecture: Dual-write pattern for efficient queries by course, student
and enrollment id. Completed lesson keys live in a SET column so that
concurrent completions append instead of overwriting each other.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from src.courses.models import ensure_utc_aware


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Completion record - partitioned by course_id
ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments (
    course_id UUID,
    user_id UUID,
    enrollment_id UUID,
    enrolled_at TIMESTAMP,
    completed_lessons SET<TEXT>,
    progress_percent INT,
    is_completed BOOLEAN,
    certificate_eligible BOOLEAN,
    certificate_id UUID,
    certificate_issued_at TIMESTAMP,
    assessment_attempts INT,
    last_assessment_score INT,
    last_assessment_passed BOOLEAN,
    last_assessment_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (course_id, user_id)
)
"""

# Lookup: courses per student
ENROLLMENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_user (
    user_id UUID,
    course_id UUID,
    enrollment_id UUID,
    enrolled_at TIMESTAMP,
    PRIMARY KEY (user_id, course_id)
)
"""

# Lookup: enrollment id -> (course, student), used by certificate issuance
ENROLLMENTS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_id (
    enrollment_id UUID PRIMARY KEY,
    course_id UUID,
    user_id UUID
)
"""

# Lookup: certificate id -> (course, student), used by public validation
CERTIFICATES_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.certificates_by_id (
    certificate_id UUID PRIMARY KEY,
    course_id UUID,
    user_id UUID,
    issued_at TIMESTAMP
)
"""

LESSON_COMPLETIONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_completions (
    user_id UUID,
    course_id UUID,
    video_key TEXT,
    module_index INT,
    video_index INT,
    watch_time_seconds DOUBLE,
    completed_at TIMESTAMP,
    PRIMARY KEY ((user_id, course_id), video_key)
)
"""

PROGRESS_TABLES_CQL = [
    ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_USER_TABLE_CQL,
    ENROLLMENTS_BY_ID_TABLE_CQL,
    CERTIFICATES_BY_ID_TABLE_CQL,
    LESSON_COMPLETIONS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Enrollment:
    """Completion record of one student in one course.

    Attributes:
        course_id: Course UUID (partition key)
        user_id: Student UUID
        enrollment_id: Stable public id of the enrollment
        completed_lessons: Watched lesson unit keys ("m-v")
        progress_percent: Stored progress (0-100), never decreases
        is_completed: True once progress reached 100
        certificate_eligible: True once an assessment was passed
        certificate_id: Minted certificate id, if any
        assessment_attempts: Accepted assessment submissions
    """

    def __init__(
        self,
        course_id: UUID,
        user_id: UUID,
        enrollment_id: UUID | None = None,
        enrolled_at: datetime | None = None,
        completed_lessons: set[str] | None = None,
        progress_percent: int = 0,
        is_completed: bool = False,
        certificate_eligible: bool = False,
        certificate_id: UUID | None = None,
        certificate_issued_at: datetime | None = None,
        assessment_attempts: int = 0,
        last_assessment_score: int | None = None,
        last_assessment_passed: bool | None = None,
        last_assessment_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.course_id = course_id
        self.user_id = user_id
        self.enrollment_id = enrollment_id or uuid4()
        self.enrolled_at = ensure_utc_aware(enrolled_at) or datetime.now(UTC)
        self.completed_lessons = set(completed_lessons or ())
        self.progress_percent = progress_percent
        self.is_completed = is_completed
        self.certificate_eligible = certificate_eligible
        self.certificate_id = certificate_id
        self.certificate_issued_at = ensure_utc_aware(certificate_issued_at)
        self.assessment_attempts = assessment_attempts
        self.last_assessment_score = last_assessment_score
        self.last_assessment_passed = last_assessment_passed
        self.last_assessment_at = ensure_utc_aware(last_assessment_at)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        return cls(
            course_id=row.course_id,
            user_id=row.user_id,
            enrollment_id=row.enrollment_id,
            enrolled_at=row.enrolled_at,
            completed_lessons=set(row.completed_lessons or ()),
            progress_percent=row.progress_percent or 0,
            is_completed=bool(row.is_completed),
            certificate_eligible=bool(row.certificate_eligible),
            certificate_id=row.certificate_id,
            certificate_issued_at=row.certificate_issued_at,
            assessment_attempts=row.assessment_attempts or 0,
            last_assessment_score=row.last_assessment_score,
            last_assessment_passed=row.last_assessment_passed,
            last_assessment_at=row.last_assessment_at,
            updated_at=row.updated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<Enrollment user={self.user_id} course={self.course_id} "
            f"{self.progress_percent}%>"
        )
