"""Tests for the progress ledger service.

Statements are prepared as their CQL text so tests can tell which query
each ``aexecute`` call ran.
"""

from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest
from cassandra.cluster import Session
from conftest import make_course, query_result

from src.courses.models import Course
from src.progress.models import Enrollment
from src.progress.service import (
    AlreadyEnrolledError,
    InvalidLessonUnitError,
    NotCourseOwnerError,
    NotEnrolledError,
    ProgressService,
)


# ==============================================================================
# Fixtures
# ==============================================================================


def enrollment_row(
    course_id: UUID,
    user_id: UUID,
    completed: set[str] | None = None,
    progress: int = 0,
    **overrides: Any,
) -> SimpleNamespace:
    fields = {
        "course_id": course_id,
        "user_id": user_id,
        "enrollment_id": uuid4(),
        "enrolled_at": datetime(2026, 1, 5, 12, 0),
        "completed_lessons": completed,
        "progress_percent": progress,
        "is_completed": progress >= 100,
        "certificate_eligible": False,
        "certificate_id": None,
        "certificate_issued_at": None,
        "assessment_attempts": 0,
        "last_assessment_score": None,
        "last_assessment_passed": None,
        "last_assessment_at": None,
        "updated_at": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def mock_session():
    """Mock Cassandra session; prepared statements are their CQL text."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda query: query)
    session.aexecute = AsyncMock(return_value=query_result())
    return session


@pytest.fixture
def course_service():
    return AsyncMock()


@pytest.fixture
def progress_service(mock_session, course_service) -> ProgressService:
    return ProgressService(
        session=mock_session, keyspace="test_keyspace", course_service=course_service
    )


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def course() -> Course:
    # Module 0 has two videos, module 1 has one
    return make_course([2, 1])


def executed(mock_session) -> list[str]:
    return [call.args[0] for call in mock_session.aexecute.call_args_list]


def params_of(mock_session, fragment: str) -> list[Any]:
    for call in mock_session.aexecute.call_args_list:
        if fragment in call.args[0]:
            return call.args[1]
    msg = f"No statement containing {fragment!r} was executed"
    raise AssertionError(msg)


# ==============================================================================
# Enrollment
# ==============================================================================


class TestEnrollment:
    @pytest.mark.asyncio
    async def test_enroll_creates_empty_record(
        self, progress_service, mock_session, user_id, course
    ):
        mock_session.aexecute.return_value = query_result()

        enrollment = await progress_service.enroll_user(user_id, course.id)

        assert enrollment.completed_lessons == set()
        assert enrollment.progress_percent == 0
        assert enrollment.certificate_eligible is False
        # lookup + record + two lookup tables
        assert mock_session.aexecute.call_count == 4
        insert_params = params_of(
            mock_session, "INSERT INTO test_keyspace.enrollments\n"
        )
        assert insert_params[4] == set()

    @pytest.mark.asyncio
    async def test_enroll_twice_rejected(
        self, progress_service, mock_session, user_id, course
    ):
        mock_session.aexecute.return_value = query_result(
            enrollment_row(course.id, user_id)
        )

        with pytest.raises(AlreadyEnrolledError):
            await progress_service.enroll_user(user_id, course.id)

        assert mock_session.aexecute.call_count == 1

    @pytest.mark.asyncio
    async def test_unenroll_not_enrolled(self, progress_service, user_id, course):
        with pytest.raises(NotEnrolledError):
            await progress_service.unenroll_user(user_id, course.id)

    @pytest.mark.asyncio
    async def test_unenroll_removes_completions(
        self, progress_service, mock_session, user_id, course
    ):
        mock_session.aexecute.return_value = query_result(
            enrollment_row(course.id, user_id, {"0-0"})
        )

        await progress_service.unenroll_user(user_id, course.id)

        statements = executed(mock_session)
        assert any("lesson_completions" in s for s in statements if "DELETE" in s)
        assert any("DELETE FROM test_keyspace.enrollments\n" in s for s in statements)
        assert not any("certificates_by_id" in s for s in statements)

    @pytest.mark.asyncio
    async def test_unenroll_drops_certificate_lookup(
        self, progress_service, mock_session, user_id, course
    ):
        certificate_id = uuid4()
        mock_session.aexecute.return_value = query_result(
            enrollment_row(course.id, user_id, certificate_id=certificate_id)
        )

        await progress_service.unenroll_user(user_id, course.id)

        assert params_of(
            mock_session, "DELETE FROM test_keyspace.certificates_by_id"
        ) == [certificate_id]


# ==============================================================================
# Lesson Unit Completion
# ==============================================================================


class TestRecordUnitComplete:
    @pytest.mark.asyncio
    async def test_watching_every_video_unlocks_assessment(
        self, progress_service, mock_session, user_id, course
    ):
        """Three videos watched in order: 33, 67, then 100 with the gate open."""
        watched: set[str] = set()
        progress = 0
        expected = [("0-0", 33, False), ("0-1", 67, False), ("1-0", 100, True)]

        for key, expected_progress, expected_enabled in expected:
            module_index, video_index = (int(part) for part in key.split("-"))
            before = enrollment_row(course.id, user_id, set(watched), progress)
            after = enrollment_row(course.id, user_id, watched | {key}, progress)
            mock_session.aexecute.reset_mock()
            mock_session.aexecute.side_effect = [
                query_result(before),
                query_result(),
                query_result(),
                query_result(after),
                query_result(),
            ]

            result = await progress_service.record_unit_complete(
                user_id=user_id,
                course=course,
                module_index=module_index,
                video_index=video_index,
                watch_time_seconds=42.0,
                has_assessment=True,
            )

            assert result.video_key == key
            assert result.progress == expected_progress
            assert result.assessment_enabled is expected_enabled
            assert params_of(mock_session, "completed_lessons + ?")[0] == {key}
            watched.add(key)
            progress = result.progress

        assert result.completed_videos == 3
        assert result.total_videos == 3
        assert result.completed_lessons == ["0-0", "0-1", "1-0"]
        assert params_of(mock_session, "SET progress_percent = ?")[:2] == [100, True]

    @pytest.mark.asyncio
    async def test_repeat_report_is_idempotent(
        self, progress_service, mock_session, user_id, course
    ):
        mock_session.aexecute.return_value = query_result(
            enrollment_row(course.id, user_id, {"0-0"}, 33)
        )

        result = await progress_service.record_unit_complete(
            user_id=user_id, course=course, module_index=0, video_index=0
        )

        assert result.progress == 33
        assert result.completed_videos == 1
        statements = executed(mock_session)
        assert not any("completed_lessons + ?" in s for s in statements)
        assert not any("lesson_completions" in s for s in statements)

    @pytest.mark.asyncio
    async def test_progress_never_decreases(
        self, progress_service, mock_session, user_id
    ):
        """Videos added to the course later do not lower the stored value."""
        grown_course = make_course([2, 3])
        mock_session.aexecute.return_value = query_result(
            enrollment_row(grown_course.id, user_id, {"0-0", "0-1"}, 100)
        )

        result = await progress_service.record_unit_complete(
            user_id=user_id, course=grown_course, module_index=0, video_index=1
        )

        assert result.completed_videos == 2
        assert result.total_videos == 5
        assert result.progress == 100
        assert params_of(mock_session, "SET progress_percent = ?")[0] == 100

    @pytest.mark.asyncio
    async def test_gate_stays_closed_without_assessment(
        self, progress_service, mock_session, user_id
    ):
        single = make_course([1])
        mock_session.aexecute.return_value = query_result(
            enrollment_row(single.id, user_id, {"0-0"}, 100)
        )

        result = await progress_service.record_unit_complete(
            user_id=user_id,
            course=single,
            module_index=0,
            video_index=0,
            has_assessment=False,
        )

        assert result.progress == 100
        assert result.assessment_enabled is False

    @pytest.mark.parametrize("module_index,video_index", [(0, 2), (2, 0), (-1, 0)])
    @pytest.mark.asyncio
    async def test_invalid_unit_rejected_without_writes(
        self, progress_service, mock_session, user_id, course, module_index, video_index
    ):
        with pytest.raises(InvalidLessonUnitError):
            await progress_service.record_unit_complete(
                user_id=user_id,
                course=course,
                module_index=module_index,
                video_index=video_index,
            )

        mock_session.aexecute.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_enrolled(self, progress_service, user_id, course):
        with pytest.raises(NotEnrolledError):
            await progress_service.record_unit_complete(
                user_id=user_id, course=course, module_index=0, video_index=0
            )


# ==============================================================================
# Assessment Outcomes and Certificates
# ==============================================================================


class TestRecordAssessmentOutcome:
    @pytest.mark.asyncio
    async def test_pass_completes_record(self, progress_service, mock_session, user_id):
        enrollment = Enrollment(
            course_id=uuid4(), user_id=user_id, progress_percent=100
        )

        updated = await progress_service.record_assessment_outcome(
            enrollment, score=100, passed=True
        )

        assert updated.assessment_attempts == 1
        assert updated.certificate_eligible is True
        assert updated.is_completed is True
        assert updated.last_assessment_score == 100
        assert any("certificate_eligible = true" in s for s in executed(mock_session))

    @pytest.mark.asyncio
    async def test_fail_keeps_existing_eligibility(
        self, progress_service, mock_session, user_id
    ):
        enrollment = Enrollment(
            course_id=uuid4(),
            user_id=user_id,
            certificate_eligible=True,
            assessment_attempts=1,
        )

        updated = await progress_service.record_assessment_outcome(
            enrollment, score=40, passed=False
        )

        assert updated.assessment_attempts == 2
        assert updated.last_assessment_passed is False
        assert updated.certificate_eligible is True
        assert mock_session.aexecute.call_count == 1


class TestSetCertificate:
    @pytest.mark.asyncio
    async def test_first_issue_applied(self, progress_service, mock_session, user_id):
        enrollment = Enrollment(course_id=uuid4(), user_id=user_id)
        certificate_id = uuid4()
        mock_session.aexecute.return_value = query_result(was_applied=True)
        issued_at = datetime(2026, 4, 1, tzinfo=UTC)

        result = await progress_service.set_certificate(
            enrollment, certificate_id, issued_at
        )

        assert result.certificate_id == certificate_id
        assert params_of(
            mock_session, "INSERT INTO test_keyspace.certificates_by_id"
        ) == [certificate_id, enrollment.course_id, user_id, issued_at]

    @pytest.mark.asyncio
    async def test_concurrent_issue_keeps_winner(
        self, progress_service, mock_session, user_id
    ):
        course_id = uuid4()
        enrollment = Enrollment(course_id=course_id, user_id=user_id)
        winner = uuid4()
        mock_session.aexecute.side_effect = [
            query_result(was_applied=False),
            query_result(enrollment_row(course_id, user_id, certificate_id=winner)),
        ]

        result = await progress_service.set_certificate(
            enrollment, uuid4(), datetime.now(UTC)
        )

        assert result.certificate_id == winner
        assert not any("certificates_by_id" in s for s in executed(mock_session))


class TestStudentProgress:
    @pytest.mark.asyncio
    async def test_skips_deleted_courses(
        self, progress_service, mock_session, course_service, user_id
    ):
        live_course = make_course([1])
        gone_id = uuid4()
        mock_session.aexecute.side_effect = [
            query_result(
                SimpleNamespace(course_id=live_course.id),
                SimpleNamespace(course_id=gone_id),
            ),
            query_result(enrollment_row(live_course.id, user_id, {"0-0"}, 100)),
            query_result(enrollment_row(gone_id, user_id)),
        ]
        course_service.get_course.side_effect = lambda cid: (
            live_course if cid == live_course.id else None
        )

        summaries = await progress_service.list_student_progress(user_id)

        assert len(summaries) == 1
        assert summaries[0].course_id == live_course.id
        assert summaries[0].progress == 100


# ==============================================================================
# Rosters and certificate lookups
# ==============================================================================


class TestCourseRoster:
    @pytest.mark.asyncio
    async def test_owner_lists_newest_first(
        self, progress_service, mock_session, instructor
    ):
        course = make_course([2], instructor_id=instructor.id)
        early = enrollment_row(course.id, uuid4(), enrolled_at=datetime(2026, 1, 1))
        late = enrollment_row(
            course.id, uuid4(), {"0-0"}, 50, enrolled_at=datetime(2026, 3, 1)
        )
        mock_session.aexecute.return_value = query_result(early, late)

        students = await progress_service.list_course_students(course, instructor)

        assert [s.user_id for s in students] == [late.user_id, early.user_id]
        assert students[0].progress_percent == 50
        assert params_of(mock_session, "FROM test_keyspace.enrollments\n") == [
            course.id
        ]

    @pytest.mark.asyncio
    async def test_admin_may_list(self, progress_service, mock_session, admin):
        course = make_course([1])

        assert await progress_service.list_course_students(course, admin) == []

    @pytest.mark.asyncio
    async def test_other_instructor_rejected(
        self, progress_service, mock_session, instructor
    ):
        course = make_course([1], instructor_id=uuid4())

        with pytest.raises(NotCourseOwnerError):
            await progress_service.list_course_students(course, instructor)

        mock_session.aexecute.assert_not_called()


class TestCertificateLookup:
    @pytest.mark.asyncio
    async def test_resolves_issued_certificate(
        self, progress_service, mock_session, user_id, course
    ):
        certificate_id = uuid4()
        mock_session.aexecute.side_effect = [
            query_result(
                SimpleNamespace(
                    certificate_id=certificate_id,
                    course_id=course.id,
                    user_id=user_id,
                )
            ),
            query_result(
                enrollment_row(course.id, user_id, certificate_id=certificate_id)
            ),
        ]

        enrollment = await progress_service.get_enrollment_by_certificate(
            certificate_id
        )

        assert enrollment.user_id == user_id
        assert executed(mock_session)[0].strip().startswith(
            "SELECT * FROM test_keyspace.certificates_by_id"
        )

    @pytest.mark.asyncio
    async def test_unknown_id(self, progress_service, mock_session):
        assert await progress_service.get_enrollment_by_certificate(uuid4()) is None
        assert mock_session.aexecute.call_count == 1

    @pytest.mark.asyncio
    async def test_record_without_that_certificate(
        self, progress_service, mock_session, user_id, course
    ):
        certificate_id = uuid4()
        mock_session.aexecute.side_effect = [
            query_result(
                SimpleNamespace(
                    certificate_id=certificate_id,
                    course_id=course.id,
                    user_id=user_id,
                )
            ),
            query_result(enrollment_row(course.id, user_id, certificate_id=uuid4())),
        ]

        assert (
            await progress_service.get_enrollment_by_certificate(certificate_id)
            is None
        )
