"""Database models for assessment definitions.

One definition per course. Questions are stored as a JSON document in a
single column so a definition is always replaced as a whole; ``version``
increases on every replace.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

import orjson

from src.courses.models import ensure_utc_aware


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_ASSESSMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_assessments (
    course_id UUID PRIMARY KEY,
    version INT,
    title TEXT,
    description TEXT,
    questions TEXT,
    passing_score INT,
    duration_minutes INT,
    max_attempts INT,
    updated_by UUID,
    updated_at TIMESTAMP
)
"""

ASSESSMENTS_TABLES_CQL = [
    COURSE_ASSESSMENTS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class Question:
    """Multiple-choice question with the index of its correct option."""

    question: str
    options: tuple[str, ...]
    correct_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "options": list(self.options),
            "correctOptionIndex": self.correct_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Question":
        return cls(
            question=data.get("question", ""),
            options=tuple(data.get("options") or ()),
            correct_index=int(data.get("correctOptionIndex", -1)),
        )


class AssessmentDefinition:
    """Instructor-authored question bank of a course.

    Attributes:
        course_id: Owning course (partition key)
        version: Incremented on every replace
        questions: Ordered questions
        passing_score: Percent needed to pass
        duration_minutes: Time limit, None when untimed
        max_attempts: Accepted submissions allowed per enrollment
    """

    def __init__(
        self,
        course_id: UUID,
        title: str,
        questions: list[Question],
        passing_score: int,
        max_attempts: int,
        version: int = 1,
        description: str = "",
        duration_minutes: int | None = None,
        updated_by: UUID | None = None,
        updated_at: datetime | None = None,
    ):
        self.course_id = course_id
        self.version = version
        self.title = title
        self.description = description
        self.questions = questions
        self.passing_score = passing_score
        self.duration_minutes = duration_minutes
        self.max_attempts = max_attempts
        self.updated_by = updated_by
        self.updated_at = ensure_utc_aware(updated_at)

    @property
    def is_timed(self) -> bool:
        return bool(self.duration_minutes)

    @property
    def duration_seconds(self) -> int | None:
        return self.duration_minutes * 60 if self.duration_minutes else None

    def questions_json(self) -> str:
        return orjson.dumps([q.to_dict() for q in self.questions]).decode()

    @classmethod
    def from_row(
        cls,
        row: Any,
        default_passing_score: int = 70,
        default_max_attempts: int = 3,
    ) -> "AssessmentDefinition":
        """Create AssessmentDefinition instance from Cassandra row."""
        raw_questions = orjson.loads(row.questions) if row.questions else []
        return cls(
            course_id=row.course_id,
            version=row.version or 1,
            title=row.title or "Assessment",
            description=row.description or "",
            questions=[Question.from_dict(q) for q in raw_questions],
            passing_score=(
                row.passing_score
                if row.passing_score is not None
                else default_passing_score
            ),
            duration_minutes=row.duration_minutes or None,
            max_attempts=row.max_attempts or default_max_attempts,
            updated_by=row.updated_by,
            updated_at=row.updated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<AssessmentDefinition course={self.course_id} v{self.version} "
            f"questions={len(self.questions)}>"
        )
