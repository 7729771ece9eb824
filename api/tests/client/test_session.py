"""Tests for the assessment session state machine.

Timers are driven by hand and the host UI is a recording fake, so every
scenario runs without real time passing.
"""

import asyncio
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from src.client.api import ClientError, LearnHubClient
from src.client.proctoring import KeyEvent
from src.client.session import (
    LOCKED_MESSAGE,
    AssessmentSessionController,
    SessionState,
)


# ==============================================================================
# Fakes
# ==============================================================================


class ManualTimer:
    def __init__(self, interval: float, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    async def cancel(self) -> None:
        self.cancelled = True

    async def tick(self, count: int = 1) -> None:
        for _ in range(count):
            if self.cancelled:
                return
            await self.callback()


class ManualTimerFactory:
    def __init__(self) -> None:
        self.created: list[ManualTimer] = []

    def __call__(self, interval: float, callback) -> ManualTimer:
        timer = ManualTimer(interval, callback)
        self.created.append(timer)
        return timer


class FakeProctoringPort:
    def __init__(self) -> None:
        self.fullscreen = False
        self.listener = None
        self.detached = False
        self.confirm_answer = True
        self.confirmations: list[str] = []
        self.notifications: list[str] = []

    def is_fullscreen(self) -> bool:
        return self.fullscreen

    async def request_fullscreen(self) -> None:
        self.fullscreen = True

    async def exit_fullscreen(self) -> None:
        self.fullscreen = False

    def attach(self, listener) -> Callable[[], None]:
        self.listener = listener

        def detach() -> None:
            self.listener = None
            self.detached = True

        return detach

    async def confirm(self, message: str) -> bool:
        self.confirmations.append(message)
        return self.confirm_answer

    async def notify(self, message: str) -> None:
        self.notifications.append(message)

    # Simulated user actions

    async def user_leaves_fullscreen(self) -> None:
        self.fullscreen = False
        await self.listener.on_fullscreen_change(False)

    async def user_returns_fullscreen(self) -> None:
        self.fullscreen = True
        await self.listener.on_fullscreen_change(True)


def status_payload(enabled: bool = True, duration: int | None = 1) -> dict[str, Any]:
    return {
        "assessment": {
            "title": "Final exam",
            "questions": [
                {"question": "2 + 2?", "options": ["3", "4"]},
                {"question": "Capital of France?", "options": ["Paris", "Rome"]},
            ],
            "passingScore": 70,
            "duration": duration,
            "maxAttempts": 3,
            "version": 1,
        },
        "assessmentEnabled": enabled,
        "videoProgress": {"completed": 3 if enabled else 2, "total": 3},
        "completedLessons": [],
        "isEnrolled": True,
    }


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def client():
    api = AsyncMock(spec=LearnHubClient)
    api.get_assessment_status.return_value = status_payload()
    api.start_assessment.return_value = {
        "attemptId": "8f0e7a8e-2f58-4d7e-9a43-1f0d1c1a2b3c",
        "assessmentVersion": 1,
        "duration": 1,
    }
    api.submit_assessment.return_value = {"score": 100, "passed": True}
    return api


@pytest.fixture
def port() -> FakeProctoringPort:
    return FakeProctoringPort()


@pytest.fixture
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def controller(client, port, timers) -> AssessmentSessionController:
    return AssessmentSessionController(
        client=client,
        course_id="course-1",
        port=port,
        timer_factory=timers,
        grace_period_seconds=50,
    )


@pytest_asyncio.fixture
async def started(controller) -> AssessmentSessionController:
    await controller.load()
    assert await controller.start() is True
    return controller


# ==============================================================================
# Loading and starting
# ==============================================================================


class TestLoadAndStart:
    @pytest.mark.asyncio
    async def test_load_ready(self, controller):
        state = await controller.load()

        assert state is SessionState.READY
        assert controller.answers == [-1, -1]
        assert controller.assessment_version == 1

    @pytest.mark.asyncio
    async def test_load_locked(self, controller, client):
        client.get_assessment_status.return_value = status_payload(enabled=False)

        state = await controller.load()

        assert state is SessionState.LOCKED
        assert controller.video_progress == {"completed": 2, "total": 3}

    @pytest.mark.asyncio
    async def test_start_while_locked_only_notifies(self, controller, client, port):
        client.get_assessment_status.return_value = status_payload(enabled=False)
        await controller.load()

        assert await controller.start() is False

        assert controller.state is SessionState.LOCKED
        assert port.notifications == [LOCKED_MESSAGE]
        client.start_assessment.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_acquires_timer_listeners_and_fullscreen(
        self, started, port, timers
    ):
        assert started.state is SessionState.IN_PROGRESS
        assert started.time_left == 60
        assert started.attempt_id == "8f0e7a8e-2f58-4d7e-9a43-1f0d1c1a2b3c"
        assert port.fullscreen is True
        assert port.listener is started
        assert len(timers.created) == 1
        assert timers.created[0].started is True

    @pytest.mark.asyncio
    async def test_server_rejects_start_with_gate(self, controller, client, port):
        await controller.load()
        client.start_assessment.side_effect = ClientError(
            "You must watch all course videos before taking the assessment.",
            status_code=403,
            payload={"videoProgress": {"completed": 1, "total": 3}},
        )

        assert await controller.start() is False

        assert controller.state is SessionState.LOCKED
        assert controller.video_progress == {"completed": 1, "total": 3}
        assert port.listener is None

    @pytest.mark.asyncio
    async def test_untimed_assessment_has_no_exam_timer(
        self, controller, client, timers
    ):
        client.get_assessment_status.return_value = status_payload(duration=None)
        client.start_assessment.return_value = {"attemptId": "a", "duration": None}
        await controller.load()

        await controller.start()

        assert controller.time_left is None
        assert timers.created == []

    @pytest.mark.asyncio
    async def test_fullscreen_refusal_does_not_block_start(self, controller, port):
        port.request_fullscreen = AsyncMock(side_effect=RuntimeError("denied"))
        await controller.load()

        assert await controller.start() is True
        assert controller.state is SessionState.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_select_answer(self, started):
        started.select_answer(1, 0)
        assert started.answers == [-1, 0]

        with pytest.raises(IndexError):
            started.select_answer(5, 0)

    @pytest.mark.asyncio
    async def test_select_answer_requires_attempt(self, controller):
        await controller.load()
        with pytest.raises(RuntimeError):
            controller.select_answer(0, 0)


# ==============================================================================
# Timeout
# ==============================================================================


class TestTimeout:
    @pytest.mark.asyncio
    async def test_auto_submit_once_at_zero(self, started, client, port, timers):
        """One-minute exam: nothing at 59 ticks, exactly one submit at 60."""
        exam_timer = timers.created[0]
        started.select_answer(0, 1)

        await exam_timer.tick(59)
        assert started.time_left == 1
        client.submit_assessment.assert_not_called()

        await exam_timer.tick()

        client.submit_assessment.assert_awaited_once()
        assert client.submit_assessment.call_args.args[1] == [1, -1]
        assert started.state is SessionState.SUBMITTED
        assert started.result == {"score": 100, "passed": True}
        assert exam_timer.cancelled is True
        assert port.detached is True
        assert port.fullscreen is False

        await exam_timer.tick(5)
        client.submit_assessment.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_timeout_submit_retries_on_next_tick(
        self, started, client, port, timers
    ):
        exam_timer = timers.created[0]
        client.submit_assessment.side_effect = [
            ClientError("Request timed out"),
            {"score": 50, "passed": False},
        ]

        await exam_timer.tick(60)

        assert started.state is SessionState.IN_PROGRESS
        assert started.time_left == 0
        assert port.notifications == ["Error submitting assessment: Request timed out"]

        await exam_timer.tick()

        assert client.submit_assessment.await_count == 2
        assert started.state is SessionState.SUBMITTED

    @pytest.mark.asyncio
    async def test_server_error_on_timeout_submit_is_retried(
        self, started, client, timers
    ):
        exam_timer = timers.created[0]
        client.submit_assessment.side_effect = [
            ClientError("Service unavailable", status_code=503),
            {"score": 50, "passed": False},
        ]

        await exam_timer.tick(61)

        assert client.submit_assessment.await_count == 2
        assert started.state is SessionState.SUBMITTED

    @pytest.mark.asyncio
    async def test_rejected_timeout_submit_locks_session(
        self, started, client, port, timers
    ):
        exam_timer = timers.created[0]
        client.submit_assessment.side_effect = ClientError(
            "Maximum number of attempts reached",
            status_code=403,
            payload={"attemptsUsed": 3, "maxAttempts": 3},
        )

        await exam_timer.tick(60)

        assert started.state is SessionState.LOCKED
        assert exam_timer.cancelled is True
        assert port.detached is True
        assert port.fullscreen is False
        assert port.notifications == [
            "Error submitting assessment: Maximum number of attempts reached"
        ]

        await exam_timer.tick(5)
        client.submit_assessment.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejected_manual_submit_keeps_attempt(self, started, client):
        client.submit_assessment.side_effect = ClientError(
            "Validation error", status_code=400
        )

        assert await started.submit() is None

        assert started.state is SessionState.IN_PROGRESS
        assert started.error == "Validation error"


# ==============================================================================
# Proctoring and grace period
# ==============================================================================


class TestGracePeriod:
    @pytest.mark.asyncio
    async def test_leaving_fullscreen_auto_submits_after_grace(
        self, started, client, port, timers
    ):
        await port.user_leaves_fullscreen()

        assert started.state is SessionState.GRACE_PERIOD
        assert started.warning is True
        assert started.grace_left == 50
        grace_timer = timers.created[1]

        await grace_timer.tick(49)
        assert started.grace_left == 1
        client.submit_assessment.assert_not_called()

        await grace_timer.tick()

        client.submit_assessment.assert_awaited_once()
        assert started.state is SessionState.SUBMITTED
        assert started.warning is False
        assert grace_timer.cancelled is True

    @pytest.mark.asyncio
    async def test_returning_to_fullscreen_clears_warning(
        self, started, client, port, timers
    ):
        await port.user_leaves_fullscreen()
        grace_timer = timers.created[1]
        await grace_timer.tick(10)

        await port.user_returns_fullscreen()

        assert started.state is SessionState.IN_PROGRESS
        assert started.warning is False
        assert grace_timer.cancelled is True
        await grace_timer.tick(60)
        client.submit_assessment.assert_not_called()

    @pytest.mark.asyncio
    async def test_fullscreen_restored_without_event_at_expiry(
        self, started, client, port, timers
    ):
        await port.user_leaves_fullscreen()
        port.fullscreen = True

        await timers.created[1].tick(50)

        assert started.state is SessionState.IN_PROGRESS
        client.submit_assessment.assert_not_called()

    @pytest.mark.asyncio
    async def test_hidden_tab_starts_grace(self, started, port):
        await port.listener.on_visibility_change(True)

        assert started.state is SessionState.GRACE_PERIOD

    @pytest.mark.asyncio
    async def test_second_violation_does_not_restart_grace(self, started, port, timers):
        await port.user_leaves_fullscreen()
        await timers.created[1].tick(20)

        await port.listener.on_visibility_change(True)

        assert started.grace_left == 30
        assert len(timers.created) == 2

    @pytest.mark.asyncio
    async def test_return_to_fullscreen_action(self, started, port):
        await port.user_leaves_fullscreen()

        await started.return_to_fullscreen()

        assert port.fullscreen is True


class TestKeys:
    @pytest.mark.asyncio
    async def test_escape_confirmed_abandons(self, started, client, port):
        suppressed = await started.on_key(KeyEvent("Escape"))

        assert suppressed is True
        assert started.state is SessionState.ABANDONED
        assert port.detached is True
        assert len(port.confirmations) == 1
        client.submit_assessment.assert_not_called()

    @pytest.mark.asyncio
    async def test_escape_declined_keeps_attempt(self, started, port):
        port.confirm_answer = False

        await started.on_key(KeyEvent("Escape"))

        assert started.state is SessionState.IN_PROGRESS

    @pytest.mark.parametrize(
        "event,blocked",
        [
            (KeyEvent("F12"), True),
            (KeyEvent("F11"), True),
            (KeyEvent("r", ctrl=True), True),
            (KeyEvent("p", ctrl=True), True),
            (KeyEvent("I", ctrl=True, shift=True), True),
            (KeyEvent("j", ctrl=True, shift=True), True),
            (KeyEvent("i", ctrl=True), False),
            (KeyEvent("a"), False),
        ],
    )
    @pytest.mark.asyncio
    async def test_blocked_keys(self, started, event, blocked):
        assert await started.on_key(event) is blocked

    @pytest.mark.asyncio
    async def test_keys_pass_through_when_idle(self, controller):
        await controller.load()

        assert await controller.on_key(KeyEvent("F12")) is False
        assert await controller.on_context_menu() is False

    @pytest.mark.asyncio
    async def test_context_menu_suppressed_during_attempt(self, started):
        assert await started.on_context_menu() is True


# ==============================================================================
# Submission
# ==============================================================================


class TestSubmit:
    @pytest.mark.asyncio
    async def test_manual_submit_sends_ticket_fields(self, started, client):
        started.select_answer(0, 1)
        started.select_answer(1, 0)

        result = await started.submit()

        assert result == {"score": 100, "passed": True}
        kwargs = client.submit_assessment.call_args.kwargs
        assert kwargs["attempt_id"] == "8f0e7a8e-2f58-4d7e-9a43-1f0d1c1a2b3c"
        assert kwargs["assessment_version"] == 1
        assert client.submit_assessment.call_args.args[1] == [1, 0]

    @pytest.mark.asyncio
    async def test_gate_closed_at_submit_returns_to_locked(
        self, started, client, port
    ):
        client.get_assessment_status.return_value = status_payload(enabled=False)

        assert await started.submit() is None

        assert started.state is SessionState.LOCKED
        assert port.detached is True
        assert LOCKED_MESSAGE in port.notifications
        client.submit_assessment.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_submits_send_once(self, started, client):
        release = asyncio.Event()

        async def slow_submit(*args, **kwargs):
            await release.wait()
            return {"score": 100, "passed": True}

        client.submit_assessment.side_effect = slow_submit

        first = asyncio.create_task(started.submit())
        await asyncio.sleep(0)
        assert started.submitting is True

        assert await started.submit() is None

        release.set()
        assert await first == {"score": 100, "passed": True}
        client.submit_assessment.assert_awaited_once()
        assert started.submitting is False

    @pytest.mark.asyncio
    async def test_error_carrying_result_still_finishes(self, started, client):
        client.submit_assessment.side_effect = ClientError(
            "Partial failure",
            status_code=500,
            payload={"score": 50, "passed": False},
        )

        result = await started.submit()

        assert result == {"score": 50, "passed": False}
        assert started.state is SessionState.SUBMITTED

    @pytest.mark.asyncio
    async def test_submit_when_idle_is_ignored(self, controller, client):
        assert await controller.submit() is None
        client.get_assessment_status.assert_not_called()


# ==============================================================================
# Teardown
# ==============================================================================


class TestTeardown:
    @pytest.mark.asyncio
    async def test_close_abandons_active_attempt(self, started, port, timers):
        await port.user_leaves_fullscreen()

        await started.close()

        assert started.state is SessionState.ABANDONED
        assert all(timer.cancelled for timer in timers.created)
        assert port.detached is True
        assert port.fullscreen is False

    @pytest.mark.asyncio
    async def test_teardown_is_idempotent(self, started, port):
        await started.teardown()
        port.detached = False

        await started.teardown()

        assert port.detached is False

    @pytest.mark.asyncio
    async def test_context_manager(self, client, port, timers):
        async with AssessmentSessionController(
            client, "course-1", port, timer_factory=timers
        ) as session:
            await session.load()
            await session.start()

        assert session.state is SessionState.ABANDONED
        assert port.listener is None
