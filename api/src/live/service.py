"""Live session flags per course.

A live session is a short-lived marker set by the course instructor. It
lives in the injected TTL store, so it expires on its own and is shared by
every API process that uses the same Redis.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog

from src.auth.permissions import can_manage_course
from src.auth.schemas import AuthenticatedUser
from src.core.redis import live_session_key
from src.core.store import TTLStore
from src.courses.models import Course


logger = structlog.get_logger(__name__)


class LiveSessionError(Exception):
    """Base live session error."""

    def __init__(self, message: str, code: str = "live_session_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotCourseOwnerError(LiveSessionError):
    def __init__(self, message: str = "Course not owned by you"):
        super().__init__(message, "not_course_owner")


class LiveSessionService:
    def __init__(self, store: TTLStore, ttl_seconds: int = 14400):
        self.store = store
        self.ttl_seconds = ttl_seconds

    def _check_owner(self, course: Course, user: AuthenticatedUser) -> None:
        if not can_manage_course(user.role, str(user.id), course.instructor_id):
            raise NotCourseOwnerError

    async def start(self, course: Course, user: AuthenticatedUser) -> dict[str, Any]:
        """Mark the course live. Restarting refreshes the session."""
        self._check_owner(course, user)
        session = {
            "startedAt": datetime.now(UTC).isoformat(),
            "instructorId": str(user.id),
        }
        await self.store.put(live_session_key(str(course.id)), session, self.ttl_seconds)
        logger.info("live_session_started", course_id=str(course.id))
        return session

    async def stop(self, course: Course, user: AuthenticatedUser) -> bool:
        """Clear the live marker. Returns False if none was active."""
        self._check_owner(course, user)
        removed = await self.store.delete(live_session_key(str(course.id)))
        logger.info("live_session_stopped", course_id=str(course.id), was_live=removed)
        return removed

    async def status(self, course_id: UUID) -> dict[str, Any] | None:
        return await self.store.get(live_session_key(str(course_id)))
