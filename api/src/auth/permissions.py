"""Role-based access control for LearnHub.

Hierarchical roles:
- ADMIN (level 2): Full access, manages every course
- INSTRUCTOR (level 1): Authors assessments and runs live sessions for own courses
- STUDENT (level 0): Enrolls, watches lessons and takes assessments
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles with hierarchical levels."""

    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.STUDENT: 0,
    UserRole.INSTRUCTOR: 1,
    UserRole.ADMIN: 2,
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role.

    Unknown roles get -1 so they never satisfy any requirement.
    """
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return -1
    return ROLE_HIERARCHY.get(role, -1)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.INSTRUCTOR)
        True
        >>> has_permission("student", "instructor")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_admin(role: UserRole | str) -> bool:
    """Check if role is ADMIN."""
    return get_role_level(role) == ROLE_HIERARCHY[UserRole.ADMIN]


def can_manage_course(
    role: UserRole | str, user_id: str, instructor_id: str | None
) -> bool:
    """Course owners and admins may manage a course's assessment and live session."""
    if is_admin(role):
        return True
    return (
        has_permission(role, UserRole.INSTRUCTOR)
        and instructor_id is not None
        and str(instructor_id) == str(user_id)
    )
