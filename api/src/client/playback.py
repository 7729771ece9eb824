"""Playback observer: reports a video as watched exactly once."""

from collections.abc import Callable
from datetime import UTC, datetime
from uuid import UUID

import structlog

from src.client.api import LearnHubClient
from src.progress.policy import completion_threshold


logger = structlog.get_logger(__name__)


class WatchTracker:
    """Accumulates observed watch time for one lesson unit.

    Completion is reported once cumulative watch time reaches
    ``max(min_seconds, ratio * duration)``. A failed report is retried on
    the next observation.
    """

    def __init__(
        self,
        client: LearnHubClient,
        course_id: UUID | str,
        module_index: int,
        video_index: int,
        duration_seconds: float | None = None,
        min_seconds: float = 15.0,
        ratio: float = 0.9,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.client = client
        self.course_id = course_id
        self.module_index = module_index
        self.video_index = video_index
        self.duration_seconds = duration_seconds
        self.min_seconds = min_seconds
        self.ratio = ratio
        self._now = now
        self.watched_seconds = 0.0
        self.completed = False
        self._reporting = False

    @property
    def threshold(self) -> float:
        return completion_threshold(self.duration_seconds, self.min_seconds, self.ratio)

    def set_duration(self, duration_seconds: float) -> None:
        """Player metadata arrived late."""
        if duration_seconds > 0:
            self.duration_seconds = duration_seconds

    async def observe(self, seconds: float) -> dict | None:
        """Add observed playback time. Returns the server response on completion."""
        if self.completed or seconds <= 0:
            return None
        self.watched_seconds += seconds
        if self.watched_seconds < self.threshold or self._reporting:
            return None

        self._reporting = True
        try:
            response = await self.client.record_video_complete(
                self.course_id,
                self.module_index,
                self.video_index,
                watch_time=round(self.watched_seconds, 3),
                completed_at=self._now().isoformat(),
            )
        finally:
            self._reporting = False

        self.completed = True
        logger.info(
            "video_completion_reported",
            course_id=str(self.course_id),
            video_key=response.get("videoKey"),
            progress=response.get("progress"),
        )
        return response
