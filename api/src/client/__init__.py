"""Client tier: API client, playback observer and assessment session."""

from .api import ClientError, LearnHubClient
from .playback import WatchTracker
from .proctoring import KeyEvent, ProctoringPort, should_block_key
from .session import AssessmentSessionController, SessionState
from .timers import IntervalTimer


__all__ = [
    "AssessmentSessionController",
    "ClientError",
    "IntervalTimer",
    "KeyEvent",
    "LearnHubClient",
    "ProctoringPort",
    "SessionState",
    "WatchTracker",
    "should_block_key",
]
