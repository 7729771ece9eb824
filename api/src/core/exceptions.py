"""HTTP exception carrying extra response fields."""

from typing import Any

from fastapi import HTTPException


class APIError(HTTPException):
    """HTTPException whose ``extra`` mapping is merged into the error body.

    Used when the client needs structured context next to the message, e.g.
    the video progress counters of a locked assessment.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        extra: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.extra = extra or {}
