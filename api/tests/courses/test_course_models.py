"""Tests for the course outline and lesson unit coordinates."""

from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session
from conftest import make_course, query_result

from src.courses.models import Course
from src.courses.service import CourseNotFoundError, CourseService


def course_row(**overrides):
    fields = {
        "id": uuid4(),
        "title": "Pharmacology 101",
        "description": None,
        "instructor_id": uuid4(),
        "is_published": None,
        "created_at": datetime(2026, 1, 1, 8, 0),
        "updated_at": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def video_row(module_index: int, video_index: int, module_title: str = "Intro"):
    return SimpleNamespace(
        module_index=module_index,
        video_index=video_index,
        module_title=module_title,
        title=f"Video {module_index}.{video_index}",
        url=None,
        duration_seconds=120,
    )


class TestCourseFromRows:
    def test_positions_renumbered_densely(self):
        """Gaps left by deleted modules and videos do not shift keys."""
        rows = [
            video_row(0, 0, "Basics"),
            video_row(0, 3, "Basics"),
            video_row(4, 1, "Advanced"),
        ]

        course = Course.from_rows(course_row(), rows)

        assert [m.title for m in course.modules] == ["Basics", "Advanced"]
        assert course.unit_keys == frozenset({"0-0", "0-1", "1-0"})
        assert course.total_units == 3
        assert course.modules[0].videos[1].title == "Video 0.3"

    def test_header_defaults(self):
        course = Course.from_rows(course_row(title=None), [])

        assert course.title == ""
        assert course.is_published is True
        assert course.total_units == 0
        assert course.created_at.tzinfo is not None


class TestHasUnit:
    @pytest.mark.parametrize(
        "module_index,video_index,expected",
        [(0, 0, True), (0, 1, True), (1, 0, True), (1, 1, False), (2, 0, False)],
    )
    def test_bounds(self, module_index, video_index, expected):
        course = make_course([2, 1])

        assert course.has_unit(module_index, video_index) is expected

    def test_negative_indices(self):
        assert make_course([1]).has_unit(-1, 0) is False


class TestCourseService:
    @pytest.fixture
    def mock_session(self):
        session = Mock(spec=Session)
        session.prepare = Mock(side_effect=lambda query: query)
        session.aexecute = AsyncMock()
        return session

    @pytest.mark.asyncio
    async def test_get_course(self, mock_session):
        row = course_row()
        mock_session.aexecute.side_effect = [
            query_result(row),
            query_result(video_row(0, 0), video_row(0, 1)),
        ]
        service = CourseService(mock_session, "test_keyspace")

        course = await service.get_course(row.id)

        assert course.id == row.id
        assert course.unit_keys == frozenset({"0-0", "0-1"})

    @pytest.mark.asyncio
    async def test_require_missing_course(self, mock_session):
        mock_session.aexecute.return_value = query_result()
        service = CourseService(mock_session, "test_keyspace")

        with pytest.raises(CourseNotFoundError):
            await service.require_course(uuid4())

        # Video rows are not read for a missing course
        assert mock_session.aexecute.call_count == 1
