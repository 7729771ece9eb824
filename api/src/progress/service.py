"""Progress ledger service layer.

Business logic for:
- Course enrollment management
- Lesson unit completion and progress derivation
- Recording assessment outcomes and certificate ids on the record
- Course rosters and certificate lookups
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.auth.permissions import can_manage_course
from src.auth.schemas import AuthenticatedUser
from src.courses.models import Course, LessonUnit
from src.progress.models import Enrollment
from src.progress.policy import (
    calculate_progress,
    count_completed,
    is_assessment_enabled,
)
from src.progress.schemas import CourseProgressSummary


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from src.courses.service import CourseService

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotEnrolledError(ProgressError):
    """User not enrolled in course."""

    def __init__(self, message: str = "You are not enrolled in this course"):
        super().__init__(message, "not_enrolled")


class AlreadyEnrolledError(ProgressError):
    """User already enrolled."""

    def __init__(self, message: str = "Already enrolled in this course"):
        super().__init__(message, "already_enrolled")


class InvalidLessonUnitError(ProgressError):
    """Module/video indices do not address a lesson unit of the course."""

    def __init__(self, message: str = "Invalid module or video index"):
        super().__init__(message, "validation_error")


class NotCourseOwnerError(ProgressError):
    """Roster requested by someone who neither owns the course nor is admin."""

    def __init__(self, message: str = "Course not owned by you"):
        super().__init__(message, "not_course_owner")


# ==============================================================================
# Results
# ==============================================================================


@dataclass
class UnitCompletionResult:
    """Outcome of recording a watched lesson unit."""

    video_key: str
    progress: int
    completed_videos: int
    total_videos: int
    assessment_enabled: bool
    completed_lessons: list[str] = field(default_factory=list)


# ==============================================================================
# Progress Service
# ==============================================================================


class ProgressService:
    """Authoritative record of watched lesson units per enrollment."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        course_service: "CourseService",
    ):
        self.session = session
        self.keyspace = keyspace
        self.course_service = course_service
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE course_id = ? AND user_id = ?
        """)

        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments
            (course_id, user_id, enrollment_id, enrolled_at, completed_lessons,
             progress_percent, is_completed, certificate_eligible,
             assessment_attempts, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._delete_enrollment = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments
            WHERE course_id = ? AND user_id = ?
        """)

        # Set addition never drops keys added concurrently from another tab
        self._add_completed_lesson = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET completed_lessons = completed_lessons + ?, updated_at = ?
            WHERE course_id = ? AND user_id = ?
        """)

        self._update_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET progress_percent = ?, is_completed = ?, updated_at = ?
            WHERE course_id = ? AND user_id = ?
        """)

        self._record_attempt = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET assessment_attempts = ?, last_assessment_score = ?,
                last_assessment_passed = ?, last_assessment_at = ?, updated_at = ?
            WHERE course_id = ? AND user_id = ?
        """)

        self._record_pass = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET progress_percent = 100, is_completed = true,
                certificate_eligible = true, updated_at = ?
            WHERE course_id = ? AND user_id = ?
        """)

        self._set_certificate = self.session.prepare(f"""
            UPDATE {self.keyspace}.enrollments
            SET certificate_id = ?, certificate_issued_at = ?
            WHERE course_id = ? AND user_id = ?
            IF certificate_id = null
        """)

        # Lookups
        self._get_user_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments_by_user
            WHERE user_id = ?
        """)

        self._insert_enrollment_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_user
            (user_id, course_id, enrollment_id, enrolled_at)
            VALUES (?, ?, ?, ?)
        """)

        self._delete_enrollment_by_user = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments_by_user
            WHERE user_id = ? AND course_id = ?
        """)

        self._get_enrollment_by_id = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments_by_id
            WHERE enrollment_id = ?
        """)

        self._insert_enrollment_by_id = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_id
            (enrollment_id, course_id, user_id)
            VALUES (?, ?, ?)
        """)

        self._delete_enrollment_by_id = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.enrollments_by_id
            WHERE enrollment_id = ?
        """)

        self._get_course_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.enrollments
            WHERE course_id = ?
        """)

        self._get_certificate_by_id = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.certificates_by_id
            WHERE certificate_id = ?
        """)

        self._insert_certificate_by_id = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.certificates_by_id
            (certificate_id, course_id, user_id, issued_at)
            VALUES (?, ?, ?, ?)
        """)

        self._delete_certificate_by_id = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.certificates_by_id
            WHERE certificate_id = ?
        """)

        # Lesson completions
        self._insert_lesson_completion = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_completions
            (user_id, course_id, video_key, module_index, video_index,
             watch_time_seconds, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)

        self._delete_lesson_completions = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.lesson_completions
            WHERE user_id = ? AND course_id = ?
        """)

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def enroll_user(self, user_id: UUID, course_id: UUID) -> Enrollment:
        """Create an empty completion record.

        Raises:
            AlreadyEnrolledError: If user already enrolled
        """
        existing = await self.get_enrollment(user_id, course_id)
        if existing:
            raise AlreadyEnrolledError

        now = datetime.now(UTC)
        enrollment = Enrollment(
            course_id=course_id,
            user_id=user_id,
            enrolled_at=now,
            updated_at=now,
        )

        await self.session.aexecute(
            self._insert_enrollment,
            [
                enrollment.course_id,
                enrollment.user_id,
                enrollment.enrollment_id,
                enrollment.enrolled_at,
                set(),
                0,
                False,
                False,
                0,
                now,
            ],
        )
        await self.session.aexecute(
            self._insert_enrollment_by_user,
            [user_id, course_id, enrollment.enrollment_id, now],
        )
        await self.session.aexecute(
            self._insert_enrollment_by_id,
            [enrollment.enrollment_id, course_id, user_id],
        )

        logger.info(
            "user_enrolled",
            user_id=str(user_id),
            course_id=str(course_id),
            enrollment_id=str(enrollment.enrollment_id),
        )
        return enrollment

    async def unenroll_user(self, user_id: UUID, course_id: UUID) -> None:
        """Delete the completion record and its lookups.

        Raises:
            NotEnrolledError: If there is nothing to delete
        """
        enrollment = await self.get_enrollment(user_id, course_id)
        if not enrollment:
            raise NotEnrolledError

        await self.session.aexecute(self._delete_enrollment, [course_id, user_id])
        await self.session.aexecute(
            self._delete_enrollment_by_user, [user_id, course_id]
        )
        await self.session.aexecute(
            self._delete_enrollment_by_id, [enrollment.enrollment_id]
        )
        await self.session.aexecute(
            self._delete_lesson_completions, [user_id, course_id]
        )
        if enrollment.certificate_id:
            await self.session.aexecute(
                self._delete_certificate_by_id, [enrollment.certificate_id]
            )

        logger.info("user_unenrolled", user_id=str(user_id), course_id=str(course_id))

    async def get_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment | None:
        """Get enrollment by user and course."""
        result = await self.session.aexecute(self._get_enrollment, [course_id, user_id])
        row = result.one()
        return Enrollment.from_row(row) if row else None

    async def require_enrollment(self, user_id: UUID, course_id: UUID) -> Enrollment:
        enrollment = await self.get_enrollment(user_id, course_id)
        if enrollment is None:
            raise NotEnrolledError
        return enrollment

    async def get_enrollment_by_id(self, enrollment_id: UUID) -> Enrollment | None:
        """Resolve an enrollment from its public id."""
        result = await self.session.aexecute(
            self._get_enrollment_by_id, [enrollment_id]
        )
        row = result.one()
        if not row:
            return None
        return await self.get_enrollment(row.user_id, row.course_id)

    async def get_user_enrollments(self, user_id: UUID) -> list[Enrollment]:
        """Get all completion records of a student."""
        rows = await self.session.aexecute(self._get_user_enrollments, [user_id])
        enrollments = []
        for row in rows:
            enrollment = await self.get_enrollment(user_id, row.course_id)
            if enrollment:
                enrollments.append(enrollment)
        return enrollments

    async def list_student_progress(self, user_id: UUID) -> list[CourseProgressSummary]:
        """One summary per enrollment, skipping courses that no longer exist."""
        summaries = []
        for enrollment in await self.get_user_enrollments(user_id):
            course = await self.course_service.get_course(enrollment.course_id)
            if course is None:
                logger.debug(
                    "enrollment_course_missing",
                    course_id=str(enrollment.course_id),
                )
                continue
            summaries.append(
                CourseProgressSummary(
                    enrollment_id=enrollment.enrollment_id,
                    course_id=enrollment.course_id,
                    title=course.title,
                    progress=enrollment.progress_percent,
                    is_completed=enrollment.is_completed,
                    certificate_eligible=enrollment.certificate_eligible,
                    certificate_id=enrollment.certificate_id,
                    last_assessment_score=enrollment.last_assessment_score,
                )
            )
        return summaries

    async def list_course_students(
        self, course: Course, user: AuthenticatedUser
    ) -> list[Enrollment]:
        """Completion records of every student of a course, newest first.

        Raises:
            NotCourseOwnerError: If the caller neither owns the course nor is admin
        """
        if not can_manage_course(user.role, str(user.id), course.instructor_id):
            raise NotCourseOwnerError

        rows = await self.session.aexecute(self._get_course_enrollments, [course.id])
        enrollments = [Enrollment.from_row(row) for row in rows]
        enrollments.sort(key=lambda e: e.enrolled_at, reverse=True)
        return enrollments

    async def get_enrollment_by_certificate(
        self, certificate_id: UUID
    ) -> Enrollment | None:
        """Resolve the record a certificate was issued on.

        None when the id is unknown or the record no longer carries it.
        """
        result = await self.session.aexecute(
            self._get_certificate_by_id, [certificate_id]
        )
        row = result.one()
        if not row:
            return None
        enrollment = await self.get_enrollment(row.user_id, row.course_id)
        if enrollment is None or enrollment.certificate_id != certificate_id:
            return None
        return enrollment

    # ==========================================================================
    # Lesson Unit Completion
    # ==========================================================================

    async def record_unit_complete(
        self,
        user_id: UUID,
        course: Course,
        module_index: int,
        video_index: int,
        watch_time_seconds: float = 0,
        completed_at: datetime | None = None,
        has_assessment: bool = False,
    ) -> UnitCompletionResult:
        """Mark a lesson unit as watched and recompute progress.

        Idempotent: a key already in the set is not re-added, but progress
        is still recomputed and stored as max(previous, recomputed).

        Raises:
            InvalidLessonUnitError: If the indices address no lesson unit
            NotEnrolledError: If the student has no completion record
        """
        if not course.has_unit(module_index, video_index):
            raise InvalidLessonUnitError

        enrollment = await self.require_enrollment(user_id, course.id)
        unit = LessonUnit(module_index, video_index)
        now = datetime.now(UTC)

        if unit.key not in enrollment.completed_lessons:
            await self.session.aexecute(
                self._add_completed_lesson,
                [{unit.key}, now, course.id, user_id],
            )
            await self.session.aexecute(
                self._insert_lesson_completion,
                [
                    user_id,
                    course.id,
                    unit.key,
                    module_index,
                    video_index,
                    float(watch_time_seconds),
                    completed_at or now,
                ],
            )
            # Re-read to pick up keys appended concurrently
            enrollment = await self.require_enrollment(user_id, course.id)
            enrollment.completed_lessons.add(unit.key)

        total = course.total_units
        completed = count_completed(enrollment.completed_lessons, course.unit_keys)
        progress = max(enrollment.progress_percent, calculate_progress(completed, total))
        is_completed = enrollment.is_completed or progress >= 100

        await self.session.aexecute(
            self._update_progress,
            [progress, is_completed, now, course.id, user_id],
        )

        logger.info(
            "unit_completed",
            course_id=str(course.id),
            video_key=unit.key,
            completed=completed,
            total=total,
            progress=progress,
        )

        return UnitCompletionResult(
            video_key=unit.key,
            progress=progress,
            completed_videos=completed,
            total_videos=total,
            assessment_enabled=is_assessment_enabled(has_assessment, completed, total),
            completed_lessons=sorted(enrollment.completed_lessons),
        )

    # ==========================================================================
    # Assessment Outcomes and Certificates
    # ==========================================================================

    async def record_assessment_outcome(
        self,
        enrollment: Enrollment,
        score: int,
        passed: bool,
        attempted_at: datetime | None = None,
    ) -> Enrollment:
        """Store the last attempt and, on a pass, complete the record.

        Eligibility is only ever granted here, never revoked.
        """
        attempted_at = attempted_at or datetime.now(UTC)

        enrollment.assessment_attempts += 1
        enrollment.last_assessment_score = score
        enrollment.last_assessment_passed = passed
        enrollment.last_assessment_at = attempted_at
        enrollment.updated_at = attempted_at

        await self.session.aexecute(
            self._record_attempt,
            [
                enrollment.assessment_attempts,
                score,
                passed,
                attempted_at,
                attempted_at,
                enrollment.course_id,
                enrollment.user_id,
            ],
        )

        if passed:
            await self.session.aexecute(
                self._record_pass,
                [attempted_at, enrollment.course_id, enrollment.user_id],
            )
            enrollment.progress_percent = 100
            enrollment.is_completed = True
            enrollment.certificate_eligible = True

        logger.info(
            "assessment_outcome_recorded",
            course_id=str(enrollment.course_id),
            score=score,
            passed=passed,
            attempts=enrollment.assessment_attempts,
        )
        return enrollment

    async def set_certificate(
        self,
        enrollment: Enrollment,
        certificate_id: UUID,
        issued_at: datetime,
    ) -> Enrollment:
        """Attach a certificate id unless one is already set.

        Returns the record carrying whichever id won.
        """
        result = await self.session.aexecute(
            self._set_certificate,
            [certificate_id, issued_at, enrollment.course_id, enrollment.user_id],
        )
        if result.was_applied:
            await self.session.aexecute(
                self._insert_certificate_by_id,
                [certificate_id, enrollment.course_id, enrollment.user_id, issued_at],
            )
            enrollment.certificate_id = certificate_id
            enrollment.certificate_issued_at = issued_at
            return enrollment

        current = await self.require_enrollment(enrollment.user_id, enrollment.course_id)
        logger.debug(
            "certificate_already_set",
            enrollment_id=str(enrollment.enrollment_id),
        )
        return current
