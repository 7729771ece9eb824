"""Assessment service layer.

Business logic for:
- Replacing a course's assessment definition (owner or admin)
- Assessment status with the video unlock gate
- Starting tracked attempts
- Scoring submissions and recording the outcome on the progress ledger
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from src.assessments.attempts import AttemptStore, AttemptTicket
from src.assessments.models import AssessmentDefinition, Question
from src.assessments.schemas import AssessmentDefinitionRequest, SubmissionRequest
from src.assessments.scoring import ScoreResult, score_answers
from src.auth.permissions import UserRole, can_manage_course
from src.auth.schemas import AuthenticatedUser
from src.config.settings import Settings, get_settings
from src.courses.models import Course
from src.progress.models import Enrollment
from src.progress.policy import count_completed, is_assessment_enabled


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from src.progress.service import ProgressService

logger = structlog.get_logger(__name__)

MIN_OPTIONS = 2
MAX_SAVE_ATTEMPTS = 3


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class AssessmentError(Exception):
    """Base assessment error.

    ``extra`` is merged into the error response body.
    """

    def __init__(
        self,
        message: str,
        code: str = "assessment_error",
        extra: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.extra = extra or {}
        super().__init__(message)


class AssessmentNotFoundError(AssessmentError):
    def __init__(self, message: str = "No assessment for this course"):
        super().__init__(message, "assessment_not_found")


class AssessmentLockedError(AssessmentError):
    """Video gate not satisfied."""

    def __init__(
        self,
        completed: int,
        total: int,
        message: str = "You must watch all course videos before taking the assessment.",
    ):
        super().__init__(
            message,
            "assessment_locked",
            extra={"videoProgress": {"completed": completed, "total": total}},
        )


class AttemptLimitReachedError(AssessmentError):
    def __init__(self, used: int, allowed: int):
        super().__init__(
            "Maximum number of attempts reached",
            "attempt_limit_reached",
            extra={"attemptsUsed": used, "maxAttempts": allowed},
        )


class NotCourseOwnerError(AssessmentError):
    def __init__(self, message: str = "Course not owned by you"):
        super().__init__(message, "not_course_owner")


class StaleAssessmentError(AssessmentError):
    """The definition changed after the attempt began."""

    def __init__(self, current_version: int):
        super().__init__(
            "The assessment was updated after this attempt started",
            "stale_assessment",
            extra={"assessmentVersion": current_version},
        )


class AttemptNotFoundError(AssessmentError):
    def __init__(self, message: str = "Attempt not found or already submitted"):
        super().__init__(message, "attempt_not_found")


class InvalidAssessmentError(AssessmentError):
    def __init__(self, message: str):
        super().__init__(message, "validation_error")


class AssessmentConflictError(AssessmentError):
    """Concurrent replaces kept winning the version compare-and-set."""

    def __init__(
        self, message: str = "The assessment is being edited concurrently, retry"
    ):
        super().__init__(message, "assessment_conflict")


# ==============================================================================
# Results
# ==============================================================================


@dataclass
class AssessmentStatus:
    """Definition plus the derived unlock gate for one caller."""

    definition: AssessmentDefinition | None
    assessment_enabled: bool
    completed: int
    total: int
    completed_lessons: list[str] = field(default_factory=list)
    is_enrolled: bool = False
    attempts_used: int = 0
    include_answers: bool = False


@dataclass
class SubmissionOutcome:
    result: ScoreResult
    enrollment: Enrollment
    time_taken: float | None


# ==============================================================================
# Assessment Service
# ==============================================================================


class AssessmentService:
    """Assessment definitions, attempts and scoring."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        progress_service: "ProgressService",
        attempt_store: AttemptStore,
        settings: Settings | None = None,
    ):
        self.session = session
        self.keyspace = keyspace
        self.progress_service = progress_service
        self.attempt_store = attempt_store
        self.settings = settings or get_settings()
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_definition = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_assessments
            WHERE course_id = ?
        """)

        # Version changes are compare-and-set so concurrent replaces never
        # share a version number
        self._insert_definition = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_assessments
            (course_id, version, title, description, questions, passing_score,
             duration_minutes, max_attempts, updated_by, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._replace_definition = self.session.prepare(f"""
            UPDATE {self.keyspace}.course_assessments
            SET version = ?, title = ?, description = ?, questions = ?,
                passing_score = ?, duration_minutes = ?, max_attempts = ?,
                updated_by = ?, updated_at = ?
            WHERE course_id = ?
            IF version = ?
        """)

    # ==========================================================================
    # Definitions
    # ==========================================================================

    async def get_definition(self, course_id: UUID) -> AssessmentDefinition | None:
        result = await self.session.aexecute(self._get_definition, [course_id])
        row = result.one()
        if not row:
            return None
        return AssessmentDefinition.from_row(
            row,
            default_passing_score=self.settings.assessment_default_passing_score,
            default_max_attempts=self.settings.assessment_default_max_attempts,
        )

    async def has_assessment(self, course_id: UUID) -> bool:
        return await self.get_definition(course_id) is not None

    async def upsert_definition(
        self,
        course: Course,
        user: AuthenticatedUser,
        data: AssessmentDefinitionRequest,
    ) -> AssessmentDefinition:
        """Replace the course's definition, bumping its version.

        Raises:
            NotCourseOwnerError: If the caller neither owns the course nor is admin
            InvalidAssessmentError: If a question is malformed
            AssessmentConflictError: If every compare-and-set lost to another writer
        """
        if not can_manage_course(user.role, str(user.id), course.instructor_id):
            raise NotCourseOwnerError

        questions = []
        for index, item in enumerate(data.questions):
            if len(item.options) < MIN_OPTIONS:
                msg = f"Question {index + 1} needs at least {MIN_OPTIONS} options"
                raise InvalidAssessmentError(msg)
            if not 0 <= item.correct_option_index < len(item.options):
                msg = f"Question {index + 1} has an invalid correct option index"
                raise InvalidAssessmentError(msg)
            questions.append(
                Question(
                    question=item.question,
                    options=tuple(item.options),
                    correct_index=item.correct_option_index,
                )
            )

        for _ in range(MAX_SAVE_ATTEMPTS):
            existing = await self.get_definition(course.id)
            definition = AssessmentDefinition(
                course_id=course.id,
                version=(existing.version + 1) if existing else 1,
                title=data.title,
                description=data.description,
                questions=questions,
                passing_score=(
                    data.passing_score
                    if data.passing_score is not None
                    else self.settings.assessment_default_passing_score
                ),
                duration_minutes=data.duration,
                max_attempts=data.max_attempts
                or self.settings.assessment_default_max_attempts,
                updated_by=user.id,
                updated_at=datetime.now(UTC),
            )

            if await self._save_definition(definition, existing):
                logger.info(
                    "assessment_definition_saved",
                    course_id=str(course.id),
                    version=definition.version,
                    questions=len(questions),
                )
                return definition

            logger.info(
                "assessment_definition_conflict",
                course_id=str(course.id),
                version=definition.version,
            )

        raise AssessmentConflictError

    async def _save_definition(
        self,
        definition: AssessmentDefinition,
        existing: AssessmentDefinition | None,
    ) -> bool:
        """Write ``definition`` only if the stored version is still ``existing``'s."""
        values = [
            definition.title,
            definition.description,
            definition.questions_json(),
            definition.passing_score,
            definition.duration_minutes,
            definition.max_attempts,
            definition.updated_by,
            definition.updated_at,
        ]
        if existing is None:
            result = await self.session.aexecute(
                self._insert_definition,
                [definition.course_id, definition.version, *values],
            )
        else:
            result = await self.session.aexecute(
                self._replace_definition,
                [
                    definition.version,
                    *values,
                    definition.course_id,
                    existing.version,
                ],
            )
        return result.was_applied

    # ==========================================================================
    # Status and gate
    # ==========================================================================

    async def get_status(
        self, course: Course, user: AuthenticatedUser
    ) -> AssessmentStatus:
        """Definition (if any) and the unlock gate for this caller.

        Not enrolled: counters are zero and the gate is closed, but the
        definition is still returned so it can be shown as locked.
        """
        definition = await self.get_definition(course.id)
        include_answers = can_manage_course(
            user.role, str(user.id), course.instructor_id
        )

        enrollment = None
        if user.role == UserRole.STUDENT:
            enrollment = await self.progress_service.get_enrollment(user.id, course.id)

        if enrollment is None:
            return AssessmentStatus(
                definition=definition,
                assessment_enabled=False,
                completed=0,
                total=0,
                include_answers=include_answers,
            )

        total = course.total_units
        completed = count_completed(enrollment.completed_lessons, course.unit_keys)
        return AssessmentStatus(
            definition=definition,
            assessment_enabled=is_assessment_enabled(
                definition is not None, completed, total
            ),
            completed=completed,
            total=total,
            completed_lessons=sorted(enrollment.completed_lessons),
            is_enrolled=True,
            attempts_used=enrollment.assessment_attempts,
            include_answers=include_answers,
        )

    def _check_gate(self, course: Course, enrollment: Enrollment) -> None:
        total = course.total_units
        completed = count_completed(enrollment.completed_lessons, course.unit_keys)
        if not is_assessment_enabled(True, completed, total):
            logger.info(
                "assessment_locked",
                course_id=str(course.id),
                completed=completed,
                total=total,
            )
            raise AssessmentLockedError(completed, total)

    def _check_attempt_limit(
        self, definition: AssessmentDefinition, enrollment: Enrollment
    ) -> None:
        if not self.settings.assessment_enforce_max_attempts:
            return
        if enrollment.assessment_attempts >= definition.max_attempts:
            raise AttemptLimitReachedError(
                enrollment.assessment_attempts, definition.max_attempts
            )

    def _attempt_ttl(self, definition: AssessmentDefinition) -> int:
        if definition.is_timed:
            return (
                definition.duration_seconds
                + self.settings.assessment_attempt_ttl_padding_seconds
            )
        return self.settings.assessment_untimed_attempt_ttl_seconds

    # ==========================================================================
    # Attempts
    # ==========================================================================

    async def start_attempt(self, course: Course, user_id: UUID) -> AttemptTicket:
        """Record a started attempt bound to the current definition version.

        Raises:
            AssessmentNotFoundError: No definition
            NotEnrolledError: No completion record
            AssessmentLockedError: Video gate closed
            AttemptLimitReachedError: maxAttempts used up
        """
        definition = await self.get_definition(course.id)
        if definition is None:
            raise AssessmentNotFoundError

        enrollment = await self.progress_service.require_enrollment(user_id, course.id)
        self._check_gate(course, enrollment)
        self._check_attempt_limit(definition, enrollment)

        return await self.attempt_store.start(
            user_id=user_id,
            course_id=course.id,
            definition_version=definition.version,
            ttl_seconds=self._attempt_ttl(definition),
            duration_minutes=definition.duration_minutes,
        )

    async def submit(
        self,
        course: Course,
        user_id: UUID,
        submission: SubmissionRequest,
    ) -> SubmissionOutcome:
        """Score a submission and record the outcome.

        The gate is re-checked here; it is the only enforcement point.
        Nothing is written when any check fails.

        Raises:
            AssessmentNotFoundError, NotEnrolledError, AssessmentLockedError,
            AttemptLimitReachedError, StaleAssessmentError,
            AttemptNotFoundError, InvalidAssessmentError
        """
        definition = await self.get_definition(course.id)
        if definition is None:
            raise AssessmentNotFoundError

        enrollment = await self.progress_service.require_enrollment(user_id, course.id)
        self._check_gate(course, enrollment)
        self._check_attempt_limit(definition, enrollment)

        if (
            submission.assessment_version is not None
            and submission.assessment_version != definition.version
        ):
            raise StaleAssessmentError(definition.version)

        selected = submission.selected_indices
        if len(selected) > len(definition.questions):
            msg = (
                f"Expected at most {len(definition.questions)} answers, "
                f"got {len(selected)}"
            )
            raise InvalidAssessmentError(msg)

        time_taken = submission.time_taken
        if submission.attempt_id is not None:
            ticket = await self.attempt_store.consume(
                submission.attempt_id, user_id, course.id
            )
            if ticket is None:
                raise AttemptNotFoundError
            if ticket.definition_version != definition.version:
                raise StaleAssessmentError(definition.version)
            time_taken = round(ticket.elapsed_seconds(), 3)

        result = score_answers(definition.questions, selected, definition.passing_score)
        enrollment = await self.progress_service.record_assessment_outcome(
            enrollment, score=result.score, passed=result.passed
        )

        logger.info(
            "assessment_submitted",
            course_id=str(course.id),
            version=definition.version,
            score=result.score,
            passed=result.passed,
            time_taken=time_taken,
        )
        return SubmissionOutcome(
            result=result, enrollment=enrollment, time_taken=time_taken
        )
