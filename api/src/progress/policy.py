"""Pure progress and unlock rules.

Kept free of I/O so the ledger, the API and the client tier agree on the
same arithmetic.
"""

from collections.abc import Iterable


def calculate_progress(completed: int, total: int) -> int:
    """Percentage of completed units, rounded half up, clamped to 0..100."""
    if total <= 0:
        return 0
    completed = max(0, min(completed, total))
    return (200 * completed + total) // (2 * total)


def count_completed(keys: Iterable[str], unit_keys: Iterable[str]) -> int:
    """Count completed keys that address an existing lesson unit."""
    return len(set(keys) & set(unit_keys))


def is_assessment_enabled(has_assessment: bool, completed: int, total: int) -> bool:
    """The unlock gate.

    Open iff a definition exists, the course has units, and all are watched.
    """
    return has_assessment and total > 0 and completed >= total


def completion_threshold(
    duration_seconds: float | None,
    min_seconds: float = 15.0,
    ratio: float = 0.9,
) -> float:
    """Observed watch time after which a video counts as watched."""
    if not duration_seconds or duration_seconds <= 0:
        return min_seconds
    return max(min_seconds, ratio * duration_seconds)
