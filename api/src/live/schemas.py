"""Pydantic schemas for live sessions."""

from src.core.schemas import ApiModel


class LiveSessionInfo(ApiModel):
    started_at: str
    instructor_id: str


class LiveStatusResponse(ApiModel):
    message: str | None = None
    live: bool
    session: LiveSessionInfo | None = None
