"""Pydantic schemas for progress tracking and enrollment."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from src.core.schemas import ApiModel
from src.progress.models import Enrollment


# ==============================================================================
# Request Schemas
# ==============================================================================


class VideoProgressRequest(ApiModel):
    """A watched video reported by the playback observer.

    Index range is checked against the course outline by the service.
    """

    module_index: int
    video_index: int
    watch_time: float = Field(0, ge=0, description="Observed watch seconds")
    completed_at: datetime | None = None


# ==============================================================================
# Response Schemas
# ==============================================================================


class VideoProgressResponse(ApiModel):
    message: str = "Video progress updated"
    video_key: str
    progress: int
    completed_videos: int
    total_videos: int
    assessment_enabled: bool
    completed_lessons: list[str]


class EnrollmentResponse(ApiModel):
    """Completion record as seen by its student."""

    enrollment_id: UUID
    course_id: UUID
    enrolled_at: datetime
    progress: int
    is_completed: bool
    certificate_eligible: bool
    certificate_id: UUID | None = None
    completed_lessons: list[str]

    @classmethod
    def from_entity(cls, enrollment: Enrollment) -> "EnrollmentResponse":
        return cls(
            enrollment_id=enrollment.enrollment_id,
            course_id=enrollment.course_id,
            enrolled_at=enrollment.enrolled_at,
            progress=enrollment.progress_percent,
            is_completed=enrollment.is_completed,
            certificate_eligible=enrollment.certificate_eligible,
            certificate_id=enrollment.certificate_id,
            completed_lessons=sorted(enrollment.completed_lessons),
        )


class CourseProgressSummary(ApiModel):
    enrollment_id: UUID
    course_id: UUID
    title: str
    progress: int
    is_completed: bool
    certificate_eligible: bool
    certificate_id: UUID | None = None
    last_assessment_score: int | None = None


class StudentProgressResponse(ApiModel):
    courses: list[CourseProgressSummary]
    total: int


class CourseStudentEntry(ApiModel):
    """One row of an instructor's roster.

    Names and emails live with the identity provider; the roster carries ids.
    """

    student_id: UUID
    enrollment_id: UUID
    progress: int
    is_completed: bool
    certificate_eligible: bool
    assessment_attempts: int
    last_assessment_score: int | None = None
    enrolled_date: datetime
    last_updated: datetime | None = None

    @classmethod
    def from_entity(cls, enrollment: Enrollment) -> "CourseStudentEntry":
        return cls(
            student_id=enrollment.user_id,
            enrollment_id=enrollment.enrollment_id,
            progress=enrollment.progress_percent,
            is_completed=enrollment.is_completed,
            certificate_eligible=enrollment.certificate_eligible,
            assessment_attempts=enrollment.assessment_attempts,
            last_assessment_score=enrollment.last_assessment_score,
            enrolled_date=enrollment.enrolled_at,
            last_updated=enrollment.updated_at,
        )


class CourseStudentsResponse(ApiModel):
    course_id: UUID
    course_title: str
    total_students: int
    students: list[CourseStudentEntry]
