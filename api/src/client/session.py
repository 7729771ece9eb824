"""Assessment session controller.

Drives one attempt through its lifecycle::

    LOCKED -> READY -> IN_PROGRESS <-> GRACE_PERIOD -> SUBMITTED
                            \\-> ABANDONED (cancelled without submission)

Everything acquired by ``start()`` (exam timer, grace timer, proctoring
listeners, fullscreen) is registered on one ``AsyncExitStack`` and released
by ``teardown()`` on every exit path.
"""

import time
from collections.abc import Callable
from contextlib import AsyncExitStack
from enum import Enum
from typing import Any
from uuid import UUID

import structlog

from src.client.api import ClientError, LearnHubClient
from src.client.proctoring import (
    CANCEL_KEY,
    KeyEvent,
    ProctoringPort,
    should_block_key,
)
from src.client.timers import IntervalTimer, Timer, TimerFactory


logger = structlog.get_logger(__name__)

UNANSWERED = -1

LOCKED_MESSAGE = "You must watch all course videos before taking the assessment."
QUIT_CONFIRM_MESSAGE = "Quit the exam? Your answers will not be submitted."


class SessionState(str, Enum):
    LOCKED = "locked"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    GRACE_PERIOD = "grace_period"
    SUBMITTED = "submitted"
    ABANDONED = "abandoned"


ACTIVE_STATES = frozenset({SessionState.IN_PROGRESS, SessionState.GRACE_PERIOD})


class AssessmentSessionController:
    """Client-side state machine of a proctored assessment attempt.

    Args:
        client: API client of the signed-in student
        course_id: Course whose assessment is taken
        port: Host UI surface (fullscreen, listeners, dialogs)
        timer_factory: Builds the 1-second exam and grace timers
        grace_period_seconds: Time to restore fullscreen before auto-submit
        clock: Monotonic clock used for time taken
    """

    def __init__(
        self,
        client: LearnHubClient,
        course_id: UUID | str,
        port: ProctoringPort,
        timer_factory: TimerFactory = IntervalTimer,
        grace_period_seconds: int = 50,
        tick_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.course_id = course_id
        self.port = port
        self.timer_factory = timer_factory
        self.grace_period_seconds = grace_period_seconds
        self.tick_seconds = tick_seconds
        self._clock = clock

        self.state = SessionState.LOCKED
        self.assessment: dict[str, Any] | None = None
        self.video_progress: dict[str, int] = {"completed": 0, "total": 0}
        self.answers: list[int] = []
        self.time_left: int | None = None
        self.grace_left = 0
        self.warning = False
        self.submitting = False
        self.result: dict[str, Any] | None = None
        self.error: str | None = None
        self.attempt_id: str | None = None
        self.assessment_version: int | None = None

        self._started_at: float | None = None
        self._stack: AsyncExitStack | None = None
        self._exam_timer: Timer | None = None
        self._grace_timer: Timer | None = None

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    # ==========================================================================
    # Loading and answers
    # ==========================================================================

    async def load(self) -> SessionState:
        """Fetch the assessment and the unlock gate.

        Has no effect once an attempt has started.
        """
        if self.state not in (SessionState.LOCKED, SessionState.READY):
            return self.state

        status = await self.client.get_assessment_status(self.course_id)
        self.assessment = status.get("assessment")
        self.video_progress = status.get("videoProgress") or self.video_progress
        questions = (self.assessment or {}).get("questions") or []
        self.answers = [UNANSWERED] * len(questions)
        self.assessment_version = (self.assessment or {}).get("version")

        enabled = bool(status.get("assessmentEnabled")) and self.assessment is not None
        self.state = SessionState.READY if enabled else SessionState.LOCKED
        return self.state

    def select_answer(self, question_index: int, option_index: int) -> None:
        if not self.is_active:
            msg = "No attempt in progress"
            raise RuntimeError(msg)
        if not 0 <= question_index < len(self.answers):
            msg = f"Invalid question index {question_index}"
            raise IndexError(msg)
        self.answers[question_index] = option_index

    # ==========================================================================
    # Start
    # ==========================================================================

    async def start(self) -> bool:
        """Begin the attempt. Returns False (no state change) when blocked."""
        if self.state is SessionState.LOCKED:
            self.error = LOCKED_MESSAGE
            await self.port.notify(LOCKED_MESSAGE)
            return False
        if self.state is not SessionState.READY:
            return False

        try:
            ticket = await self.client.start_assessment(self.course_id)
        except ClientError as e:
            self.error = e.message
            if "videoProgress" in e.payload:
                self.video_progress = e.payload["videoProgress"]
                self.state = SessionState.LOCKED
            await self.port.notify(e.message)
            return False

        self.attempt_id = ticket.get("attemptId")
        self.assessment_version = ticket.get("assessmentVersion", self.assessment_version)
        duration = ticket.get("duration") or (self.assessment or {}).get("duration")

        stack = AsyncExitStack()
        self._stack = stack
        self.state = SessionState.IN_PROGRESS
        self._started_at = self._clock()
        self.error = None

        if duration:
            self.time_left = int(duration) * 60
            self._exam_timer = self.timer_factory(self.tick_seconds, self._on_exam_tick)
            self._exam_timer.start()
            stack.push_async_callback(self._exam_timer.cancel)

        stack.push_async_callback(self._cancel_grace_timer)
        stack.callback(self.port.attach(self))
        stack.push_async_callback(self._leave_fullscreen)

        await self._enter_fullscreen()

        logger.info(
            "assessment_session_started",
            course_id=str(self.course_id),
            attempt_id=self.attempt_id,
            time_left=self.time_left,
        )
        return True

    async def _enter_fullscreen(self) -> None:
        # Best-effort: the attempt continues without fullscreen
        try:
            await self.port.request_fullscreen()
        except Exception as e:
            logger.warning("fullscreen_request_failed", error=str(e))

    async def _leave_fullscreen(self) -> None:
        if not self.port.is_fullscreen():
            return
        try:
            await self.port.exit_fullscreen()
        except Exception as e:
            logger.warning("fullscreen_exit_failed", error=str(e))

    async def return_to_fullscreen(self) -> None:
        """User action offered during the grace period."""
        if self.is_active:
            await self._enter_fullscreen()

    # ==========================================================================
    # Timers
    # ==========================================================================

    async def _on_exam_tick(self) -> None:
        if not self.is_active or self.time_left is None:
            return
        if self.time_left > 0:
            self.time_left -= 1
        if self.time_left == 0:
            await self.submit(reason="timeout")

    async def _on_grace_tick(self) -> None:
        if self.state is not SessionState.GRACE_PERIOD:
            return
        if self.grace_left > 0:
            self.grace_left -= 1
        if self.grace_left > 0:
            return
        if self.port.is_fullscreen():
            await self._clear_warning()
            return
        # Keeps firing on later ticks if the submission fails
        await self.submit(reason="grace_expired")

    async def _cancel_grace_timer(self) -> None:
        timer, self._grace_timer = self._grace_timer, None
        if timer is not None:
            await timer.cancel()

    # ==========================================================================
    # Proctoring signals
    # ==========================================================================

    async def _start_grace_period(self, signal: str) -> None:
        if self.state is not SessionState.IN_PROGRESS:
            return
        self.state = SessionState.GRACE_PERIOD
        self.warning = True
        self.grace_left = self.grace_period_seconds
        self._grace_timer = self.timer_factory(self.tick_seconds, self._on_grace_tick)
        self._grace_timer.start()
        logger.warning(
            "proctoring_violation",
            course_id=str(self.course_id),
            signal=signal,
            grace_seconds=self.grace_period_seconds,
        )

    async def _clear_warning(self) -> None:
        await self._cancel_grace_timer()
        self.warning = False
        self.grace_left = 0
        if self.state is SessionState.GRACE_PERIOD:
            self.state = SessionState.IN_PROGRESS
        logger.info("proctoring_restored", course_id=str(self.course_id))

    async def on_fullscreen_change(self, is_fullscreen: bool) -> None:
        if not self.is_active:
            return
        if is_fullscreen:
            if self.state is SessionState.GRACE_PERIOD:
                await self._clear_warning()
        else:
            await self._start_grace_period("fullscreen_exit")

    async def on_visibility_change(self, hidden: bool) -> None:
        if hidden and self.is_active:
            await self._start_grace_period("tab_hidden")

    async def on_key(self, event: KeyEvent) -> bool:
        if not self.is_active:
            return False
        if event.key == CANCEL_KEY:
            if await self.port.confirm(QUIT_CONFIRM_MESSAGE):
                await self.abandon()
            return True
        return should_block_key(event)

    async def on_context_menu(self) -> bool:
        return self.is_active

    # ==========================================================================
    # Exit paths
    # ==========================================================================

    async def submit(self, reason: str = "manual") -> dict[str, Any] | None:
        """Submit the selected answers.

        Concurrent calls while one is in flight are ignored. On failure the
        attempt stays in progress unless the server returned a result, or an
        automatic submit was rejected with a 4xx, which locks the session.
        """
        if self.submitting or not self.is_active:
            return None

        self.submitting = True
        try:
            status = await self.client.get_assessment_status(self.course_id)
            if not status.get("assessmentEnabled"):
                self.video_progress = status.get("videoProgress") or self.video_progress
                self.error = LOCKED_MESSAGE
                self.state = SessionState.LOCKED
                await self.teardown()
                await self.port.notify(LOCKED_MESSAGE)
                return None

            result = await self.client.submit_assessment(
                self.course_id,
                list(self.answers),
                time_taken=self._elapsed(),
                attempt_id=self.attempt_id,
                assessment_version=self.assessment_version,
            )
        except ClientError as e:
            self.error = e.message
            logger.warning(
                "assessment_submit_failed",
                course_id=str(self.course_id),
                reason=reason,
                status_code=e.status_code,
            )
            await self.port.notify(f"Error submitting assessment: {e.message}")
            if "score" in e.payload:
                result = e.payload
            else:
                # Timer-driven submits keep firing; stop them when retrying cannot help
                if reason != "manual" and not e.retryable:
                    await self._lock_after_rejection(e)
                return None
        finally:
            self.submitting = False

        self.result = result
        self.state = SessionState.SUBMITTED
        await self.teardown()
        logger.info(
            "assessment_session_submitted",
            course_id=str(self.course_id),
            reason=reason,
            score=result.get("score"),
            passed=result.get("passed"),
        )
        return result

    async def _lock_after_rejection(self, error: ClientError) -> None:
        self.video_progress = error.payload.get("videoProgress") or self.video_progress
        self.state = SessionState.LOCKED
        await self.teardown()
        logger.warning(
            "assessment_session_rejected",
            course_id=str(self.course_id),
            status_code=error.status_code,
        )

    async def abandon(self) -> None:
        """Quit without submitting."""
        if not self.is_active:
            return
        self.state = SessionState.ABANDONED
        await self.teardown()
        logger.info("assessment_session_abandoned", course_id=str(self.course_id))

    async def teardown(self) -> None:
        """Release timers, listeners and fullscreen. Safe to call repeatedly."""
        stack, self._stack = self._stack, None
        if stack is not None:
            await stack.aclose()
        self._exam_timer = None
        self.warning = False

    async def close(self) -> None:
        """Host is going away: an unfinished attempt is abandoned."""
        if self.is_active:
            await self.abandon()
        else:
            await self.teardown()

    async def __aenter__(self) -> "AssessmentSessionController":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _elapsed(self) -> int:
        if self._started_at is None:
            return 0
        return int(self._clock() - self._started_at)
