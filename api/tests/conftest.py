"""Shared fixtures for API tests."""

from collections.abc import Iterator
from typing import Any
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from src.auth.permissions import UserRole
from src.auth.schemas import AuthenticatedUser
from src.auth.security import create_access_token
from src.courses.models import Course, CourseModule, CourseVideo
from src.main import app


# ==============================================================================
# Helpers
# ==============================================================================


def make_course(
    videos_per_module: list[int],
    instructor_id: UUID | None = None,
    course_id: UUID | None = None,
) -> Course:
    """Course whose n-th module holds ``videos_per_module[n]`` videos."""
    modules = [
        CourseModule(
            index=m,
            title=f"Module {m + 1}",
            videos=[
                CourseVideo(module_index=m, video_index=v, title=f"Video {m}-{v}")
                for v in range(count)
            ],
        )
        for m, count in enumerate(videos_per_module)
    ]
    return Course(
        id=course_id or uuid4(),
        title="Pharmacology 101",
        instructor_id=instructor_id or uuid4(),
        modules=modules,
    )


def query_result(*rows: Any, was_applied: bool = True) -> MagicMock:
    """Mimic a cassandra ResultSet: iterable, ``one()`` and ``was_applied``."""
    result = MagicMock()
    result.one.return_value = rows[0] if rows else None
    result.__iter__ = lambda _self: iter(rows)
    result.was_applied = was_applied
    return result


def auth_headers(user_id: UUID, role: UserRole = UserRole.STUDENT) -> dict[str, str]:
    token = create_access_token(
        {"sub": str(user_id), "email": f"{role.value}@test.com", "role": role.value}
    )
    return {"Authorization": f"Bearer {token}"}


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def client() -> Iterator[TestClient]:
    """Test client without lifespan: no database or Redis connections.

    Services are placed on ``app.state`` by the tests that need them.
    """
    service_names = (
        "cassandra_session",
        "ttl_store",
        "course_service",
        "progress_service",
        "assessment_service",
        "certificate_service",
        "live_session_service",
    )
    for name in service_names:
        setattr(app.state, name, None)
    yield TestClient(app)
    for name in service_names:
        setattr(app.state, name, None)


@pytest.fixture
def student() -> AuthenticatedUser:
    return AuthenticatedUser(
        id=uuid4(), email="student@test.com", role=UserRole.STUDENT
    )


@pytest.fixture
def instructor() -> AuthenticatedUser:
    return AuthenticatedUser(
        id=uuid4(), email="instructor@test.com", role=UserRole.INSTRUCTOR
    )


@pytest.fixture
def admin() -> AuthenticatedUser:
    return AuthenticatedUser(id=uuid4(), email="admin@test.com", role=UserRole.ADMIN)
