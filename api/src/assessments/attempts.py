"""Server-side tracking of started assessment attempts.

A ticket is recorded when a student starts an attempt and consumed when the
attempt is submitted. Tickets expire with the store TTL, so an attempt that
is never submitted simply disappears.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID, uuid4

import structlog

from src.core.redis import assessment_attempt_key
from src.core.store import TTLStore


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AttemptTicket:
    attempt_id: UUID
    user_id: UUID
    course_id: UUID
    definition_version: int
    started_at: datetime
    expires_in: int
    duration_minutes: int | None = None

    def to_dict(self) -> dict:
        return {
            "attempt_id": str(self.attempt_id),
            "user_id": str(self.user_id),
            "course_id": str(self.course_id),
            "definition_version": self.definition_version,
            "started_at": self.started_at.isoformat(),
            "expires_in": self.expires_in,
            "duration_minutes": self.duration_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AttemptTicket":
        return cls(
            attempt_id=UUID(data["attempt_id"]),
            user_id=UUID(data["user_id"]),
            course_id=UUID(data["course_id"]),
            definition_version=int(data["definition_version"]),
            started_at=datetime.fromisoformat(data["started_at"]),
            expires_in=int(data["expires_in"]),
            duration_minutes=data.get("duration_minutes"),
        )

    def elapsed_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(UTC)
        return max(0.0, (now - self.started_at).total_seconds())


class AttemptStore:
    """Issues and consumes attempt tickets."""

    def __init__(self, store: TTLStore):
        self.store = store

    async def start(
        self,
        user_id: UUID,
        course_id: UUID,
        definition_version: int,
        ttl_seconds: int,
        duration_minutes: int | None = None,
    ) -> AttemptTicket:
        ticket = AttemptTicket(
            attempt_id=uuid4(),
            user_id=user_id,
            course_id=course_id,
            definition_version=definition_version,
            started_at=datetime.now(UTC),
            expires_in=ttl_seconds,
            duration_minutes=duration_minutes,
        )
        await self.store.put(
            assessment_attempt_key(str(ticket.attempt_id)),
            ticket.to_dict(),
            ttl_seconds,
        )
        logger.info(
            "assessment_attempt_started",
            attempt_id=str(ticket.attempt_id),
            course_id=str(course_id),
            definition_version=definition_version,
            ttl_seconds=ttl_seconds,
            backend=self.store.backend,
        )
        return ticket

    async def consume(
        self,
        attempt_id: UUID,
        user_id: UUID,
        course_id: UUID,
    ) -> AttemptTicket | None:
        """Take a ticket out of the store, at most once.

        Returns None when the ticket is unknown, expired, already consumed or
        belongs to another student or course. A foreign ticket is left intact.
        """
        key = assessment_attempt_key(str(attempt_id))
        data = await self.store.get(key)
        if data is None:
            return None

        ticket = AttemptTicket.from_dict(data)
        if ticket.user_id != user_id or ticket.course_id != course_id:
            logger.warning(
                "assessment_attempt_foreign",
                attempt_id=str(attempt_id),
                course_id=str(course_id),
            )
            return None

        if await self.store.pop(key) is None:
            # Consumed concurrently
            return None
        return ticket
