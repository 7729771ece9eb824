"""Proctoring surface used by the assessment session.

These signals are a deterrent only. The server-side unlock gate remains the
enforcement point.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class KeyEvent:
    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    meta: bool = False


CANCEL_KEY = "Escape"

BLOCKED_KEYS = frozenset({"F12", "F11"})

# (key, requires shift); all combos require ctrl
BLOCKED_CTRL_COMBOS = (
    ("r", False),
    ("i", True),
    ("j", True),
    ("p", False),
)


def should_block_key(event: KeyEvent) -> bool:
    """Devtools, print, refresh and fullscreen-toggle keys."""
    if event.key in BLOCKED_KEYS:
        return True
    if not event.ctrl:
        return False
    key = event.key.lower()
    return any(
        key == combo_key and (event.shift or not needs_shift)
        for combo_key, needs_shift in BLOCKED_CTRL_COMBOS
    )


class ProctoringListener(Protocol):
    async def on_fullscreen_change(self, is_fullscreen: bool) -> None: ...

    async def on_visibility_change(self, hidden: bool) -> None: ...

    async def on_key(self, event: KeyEvent) -> bool:
        """Return True when the key must be suppressed."""
        ...

    async def on_context_menu(self) -> bool:
        """Return True when the menu must be suppressed."""
        ...


class ProctoringPort(Protocol):
    """What the session needs from the host UI."""

    def is_fullscreen(self) -> bool: ...

    async def request_fullscreen(self) -> None: ...

    async def exit_fullscreen(self) -> None: ...

    def attach(self, listener: ProctoringListener) -> Callable[[], None]:
        """Start delivering events; returns the detach function."""
        ...

    async def confirm(self, message: str) -> bool: ...

    async def notify(self, message: str) -> None: ...
