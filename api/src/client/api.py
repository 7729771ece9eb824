"""Async HTTP client for the LearnHub API.

Used by the assessment session controller and the playback observer.
"""

from typing import Any
from uuid import UUID

import httpx
import structlog


logger = structlog.get_logger(__name__)


class ClientError(Exception):
    """Failed API call.

    ``status_code`` is None for transport failures. ``payload`` holds the
    decoded error body when there is one.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Transport failures and server errors may succeed when repeated."""
        return self.status_code is None or self.status_code >= 500


class LearnHubClient:
    """Thin wrapper over ``httpx.AsyncClient`` with bearer auth."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "LearnHubClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self, method: str, path: str, json: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method, path, json=json, headers=self._headers
            )
        except httpx.TimeoutException as e:
            logger.error("api_request_timeout", method=method, path=path)
            raise ClientError("Request timed out") from e
        except httpx.RequestError as e:
            logger.error("api_request_error", method=method, path=path, error=str(e))
            raise ClientError(f"Request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.is_error:
            message = data.get("message") or f"HTTP {response.status_code}"
            logger.warning(
                "api_request_rejected",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise ClientError(message, status_code=response.status_code, payload=data)

        return data

    # ==========================================================================
    # Endpoints
    # ==========================================================================

    async def get_assessment_status(self, course_id: UUID | str) -> dict[str, Any]:
        return await self._request("GET", f"/api/courses/{course_id}/assessment")

    async def record_video_complete(
        self,
        course_id: UUID | str,
        module_index: int,
        video_index: int,
        watch_time: float,
        completed_at: str,
    ) -> dict[str, Any]:
        return await self._request(
            "PUT",
            f"/api/courses/{course_id}/video-progress",
            json={
                "moduleIndex": module_index,
                "videoIndex": video_index,
                "watchTime": watch_time,
                "completedAt": completed_at,
            },
        )

    async def start_assessment(self, course_id: UUID | str) -> dict[str, Any]:
        return await self._request("POST", f"/api/courses/{course_id}/assessment/start")

    async def submit_assessment(
        self,
        course_id: UUID | str,
        answers: list[int],
        time_taken: float | None = None,
        attempt_id: str | None = None,
        assessment_version: int | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "answers": [{"selectedIndex": index} for index in answers],
            "timeTaken": time_taken,
        }
        if attempt_id is not None:
            body["attemptId"] = attempt_id
        if assessment_version is not None:
            body["assessmentVersion"] = assessment_version
        return await self._request(
            "POST", f"/api/courses/{course_id}/assessment/submit", json=body
        )

    async def request_certificate(self, enrollment_id: UUID | str) -> dict[str, Any]:
        return await self._request(
            "POST", f"/api/certificates/enrollment/{enrollment_id}"
        )
