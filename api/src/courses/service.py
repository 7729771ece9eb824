"""Course catalog lookups."""

from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from src.courses.models import Course


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class CourseError(Exception):
    """Base course error."""

    def __init__(self, message: str, code: str = "course_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class CourseNotFoundError(CourseError):
    """Course not found."""

    def __init__(self, message: str = "Course not found"):
        super().__init__(message, "course_not_found")


# ==============================================================================
# Course Service
# ==============================================================================


class CourseService:
    """Read access to courses and their lesson outline."""

    def __init__(self, session: "Session", keyspace: str):
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_course = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses WHERE id = ?"
        )
        self._get_course_videos = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_videos
            WHERE course_id = ?
        """)

    async def get_course(self, course_id: UUID) -> Course | None:
        """Get a course with its modules and videos, or None."""
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        if not row:
            return None

        video_rows = await self.session.aexecute(self._get_course_videos, [course_id])
        return Course.from_rows(row, list(video_rows))

    async def require_course(self, course_id: UUID) -> Course:
        """Get a course or raise.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        course = await self.get_course(course_id)
        if course is None:
            logger.debug("course_not_found", course_id=str(course_id))
            raise CourseNotFoundError
        return course
