"""Input synthesis adapters used by the replay engine."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Tuple

from mirror_testing.tools.coordinates import Point

from ..action import MOD_ALT, MOD_COMMAND, MOD_CONTROL, MOD_SHIFT
from .exceptions import AutomationError, PermissionDenied
from .permissions import PermissionGate

# Both need a display server; guarded so headless imports still work.
try:
    import pyautogui  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    pyautogui = None  # type: ignore
try:
    from pynput import keyboard  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)

_MODIFIER_NAMES = (
    (MOD_SHIFT, "shift"),
    (MOD_CONTROL, "ctrl"),
    (MOD_ALT, "alt"),
    (MOD_COMMAND, "cmd"),
)


class ActionExecutor(Protocol):
    def move_to(self, point: Point) -> None: ...

    def press(self, point: Point) -> None: ...

    def release(self, point: Point) -> None: ...

    def key_down(self, code: int, modifiers: int) -> None: ...

    def key_up(self, code: int, modifiers: int) -> None: ...


def modifier_names(modifiers: int) -> List[str]:
    """Names of the modifier bits set in ``modifiers``, in a stable order."""
    return [name for bit, name in _MODIFIER_NAMES if modifiers & bit]


class PyAutoGuiExecutor:
    """Drive the real pointer with pyautogui and the keyboard with pynput."""

    def __init__(self, permission_gate: Optional[PermissionGate] = None, button: str = "left") -> None:
        if pyautogui is None or keyboard is None:
            raise AutomationError(
                "pyautogui and pynput are required for input synthesis but could not be loaded."
            )
        self.permission_gate = permission_gate
        self.button = button
        self._authorized = permission_gate is None
        self._keyboard = keyboard.Controller()
        pyautogui.PAUSE = 0
        pyautogui.MINIMUM_DURATION = 0

    def _ensure_authorized(self) -> None:
        if self._authorized:
            return
        if not self.permission_gate.is_authorized():
            raise PermissionDenied()
        self._authorized = True

    def _modifier_keys(self, modifiers: int) -> List[Any]:
        return [getattr(keyboard.Key, name) for name in modifier_names(modifiers)]

    def move_to(self, point: Point) -> None:
        self._ensure_authorized()
        pyautogui.moveTo(point.x, point.y, duration=0, _pause=False)

    def press(self, point: Point) -> None:
        self._ensure_authorized()
        pyautogui.mouseDown(x=point.x, y=point.y, button=self.button, _pause=False)

    def release(self, point: Point) -> None:
        self._ensure_authorized()
        pyautogui.mouseUp(x=point.x, y=point.y, button=self.button, _pause=False)

    def key_down(self, code: int, modifiers: int) -> None:
        self._ensure_authorized()
        for key in self._modifier_keys(modifiers):
            self._keyboard.press(key)
        self._keyboard.press(keyboard.KeyCode.from_vk(code))

    def key_up(self, code: int, modifiers: int) -> None:
        self._ensure_authorized()
        try:
            self._keyboard.release(keyboard.KeyCode.from_vk(code))
        finally:
            for key in reversed(self._modifier_keys(modifiers)):
                try:
                    self._keyboard.release(key)
                except Exception as exc:
                    logger.debug("key cleanup failed (release %s): %s", key, exc)


class RecordingExecutor:
    """Executor that only remembers what it was asked to do (dry runs and tests)."""

    def __init__(self) -> None:
        self.calls: List[Tuple] = []

    def move_to(self, point: Point) -> None:
        self.calls.append(("move_to", point))

    def press(self, point: Point) -> None:
        self.calls.append(("press", point))

    def release(self, point: Point) -> None:
        self.calls.append(("release", point))

    def key_down(self, code: int, modifiers: int) -> None:
        self.calls.append(("key_down", code, modifiers))

    def key_up(self, code: int, modifiers: int) -> None:
        self.calls.append(("key_up", code, modifiers))

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]
