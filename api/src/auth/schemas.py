"""Pydantic schemas for the authenticated caller."""

from uuid import UUID

from pydantic import BaseModel, Field

from src.auth.permissions import UserRole, is_admin


class AuthenticatedUser(BaseModel):
    """Caller identity decoded from the access token."""

    id: UUID
    email: str = ""
    role: UserRole = Field(default=UserRole.STUDENT)

    @property
    def is_admin(self) -> bool:
        return is_admin(self.role)
