"""Database models for the course catalog.

The catalog is owned by the content service; this API only reads it to
resolve lesson units and course ownership.

Cassandra table definitions for:
- Courses: Course header (title, owning instructor)
- Course videos: Ordered videos of each module, clustered by position
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    instructor_id UUID,
    is_published BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# One row per lesson unit; module titles are denormalized onto each video
COURSE_VIDEOS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_videos (
    course_id UUID,
    module_index INT,
    video_index INT,
    module_title TEXT,
    title TEXT,
    url TEXT,
    duration_seconds INT,
    PRIMARY KEY (course_id, module_index, video_index)
) WITH CLUSTERING ORDER BY (module_index ASC, video_index ASC)
"""

COURSES_TABLES_CQL = [
    COURSES_TABLE_CQL,
    COURSE_VIDEOS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class LessonUnit:
    """Coordinate of one video inside one module.

    Encoded on the wire and in storage as ``"<moduleIndex>-<videoIndex>"``.
    """

    module_index: int
    video_index: int

    @property
    def key(self) -> str:
        return f"{self.module_index}-{self.video_index}"

    @classmethod
    def parse(cls, key: str) -> "LessonUnit":
        """Parse a ``"m-v"`` key.

        Raises:
            ValueError: If the key is not two non-negative integers
        """
        module_part, sep, video_part = key.partition("-")
        if not sep or not module_part.isdigit() or not video_part.isdigit():
            msg = f"Invalid lesson unit key: {key!r}"
            raise ValueError(msg)
        return cls(int(module_part), int(video_part))


class CourseVideo:
    """A video lesson inside a course module."""

    def __init__(
        self,
        module_index: int,
        video_index: int,
        title: str,
        url: str | None = None,
        duration_seconds: int | None = None,
    ):
        self.module_index = module_index
        self.video_index = video_index
        self.title = title
        self.url = url
        self.duration_seconds = duration_seconds

    @property
    def unit(self) -> LessonUnit:
        return LessonUnit(self.module_index, self.video_index)


class CourseModule:
    """Ordered group of videos."""

    def __init__(self, index: int, title: str, videos: list[CourseVideo] | None = None):
        self.index = index
        self.title = title
        self.videos = videos or []


class Course:
    """Course entity with its module/video outline.

    Attributes:
        id: Course UUID
        title: Display title
        instructor_id: Owning instructor (may author the assessment)
        modules: Modules in order, each with its videos in order
    """

    def __init__(
        self,
        id: UUID,
        title: str,
        description: str | None = None,
        instructor_id: UUID | None = None,
        is_published: bool = True,
        modules: list[CourseModule] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        self.id = id
        self.title = title
        self.description = description
        self.instructor_id = instructor_id
        self.is_published = is_published
        self.modules = modules or []
        self.created_at = ensure_utc_aware(created_at)
        self.updated_at = ensure_utc_aware(updated_at)

    @property
    def total_units(self) -> int:
        """Number of lesson units (videos across all modules)."""
        return sum(len(module.videos) for module in self.modules)

    @property
    def unit_keys(self) -> frozenset[str]:
        """Keys of every lesson unit that exists in this course."""
        return frozenset(
            video.unit.key for module in self.modules for video in module.videos
        )

    def has_unit(self, module_index: int, video_index: int) -> bool:
        if not 0 <= module_index < len(self.modules):
            return False
        return 0 <= video_index < len(self.modules[module_index].videos)

    @classmethod
    def from_rows(cls, row: Any, video_rows: list[Any]) -> "Course":
        """Build a course from its header row and its clustered video rows.

        Module and video positions are renumbered densely so that indices on
        the wire always address the n-th module and n-th video.
        """
        grouped: dict[int, CourseModule] = {}
        for video_row in video_rows:
            module = grouped.get(video_row.module_index)
            if module is None:
                module = CourseModule(
                    index=len(grouped), title=video_row.module_title or ""
                )
                grouped[video_row.module_index] = module
            module.videos.append(
                CourseVideo(
                    module_index=module.index,
                    video_index=len(module.videos),
                    title=video_row.title or "",
                    url=video_row.url,
                    duration_seconds=video_row.duration_seconds,
                )
            )

        return cls(
            id=row.id,
            title=row.title or "",
            description=row.description,
            instructor_id=row.instructor_id,
            is_published=row.is_published if row.is_published is not None else True,
            modules=list(grouped.values()),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def __repr__(self) -> str:
        return f"<Course {self.id} units={self.total_units}>"
