# mirror_testing/automation/action.py
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import ClassVar, Dict, List, Optional, Union

from mirror_testing.tools.coordinates import Bounds, Point

# Modifier bits carried opaquely by KeyPress; only executors interpret them.
MOD_SHIFT = 1
MOD_CONTROL = 2
MOD_ALT = 4
MOD_COMMAND = 8


@dataclass(frozen=True, slots=True)
class MoveTo:
    kind: ClassVar[str] = "move"
    point: Point
    relative: Point


@dataclass(frozen=True, slots=True)
class Click:
    kind: ClassVar[str] = "click"
    point: Point
    relative: Point
    count: int = 1


@dataclass(frozen=True, slots=True)
class PressDown:
    kind: ClassVar[str] = "mouse_down"
    point: Point
    relative: Point


@dataclass(frozen=True, slots=True)
class ReleaseUp:
    kind: ClassVar[str] = "mouse_up"
    point: Point
    relative: Point


@dataclass(frozen=True, slots=True)
class Drag:
    kind: ClassVar[str] = "drag"
    start: Point
    end: Point
    start_relative: Point
    end_relative: Point


@dataclass(frozen=True, slots=True)
class KeyPress:
    kind: ClassVar[str] = "key"
    key_code: int
    modifiers: int = 0


@dataclass(frozen=True, slots=True)
class Wait:
    kind: ClassVar[str] = "wait"
    seconds: float


@dataclass(frozen=True, slots=True)
class WindowMoved:
    kind: ClassVar[str] = "window_moved"
    bounds: Bounds


Action = Union[MoveTo, Click, PressDown, ReleaseUp, Drag, KeyPress, Wait, WindowMoved]


def _pct(fraction: Point) -> str:
    return f"({int(fraction.x * 100)}%, {int(fraction.y * 100)}%)"


def describe_action(action: Action) -> str:
    """Short human-readable label used in logs and progress callbacks."""
    if isinstance(action, MoveTo):
        return f"Move to {_pct(action.relative)}"
    if isinstance(action, Click):
        multiplicity = f" x{action.count}" if action.count > 1 else ""
        return f"Click{multiplicity} at {_pct(action.relative)}"
    if isinstance(action, PressDown):
        return f"Mouse down at {_pct(action.relative)}"
    if isinstance(action, ReleaseUp):
        return f"Mouse up at {_pct(action.relative)}"
    if isinstance(action, Drag):
        return f"Drag from {_pct(action.start_relative)} to {_pct(action.end_relative)}"
    if isinstance(action, KeyPress):
        suffix = f" (modifiers={action.modifiers:#x})" if action.modifiers else ""
        return f"Key press: {action.key_code}{suffix}"
    if isinstance(action, Wait):
        return f"Wait {action.seconds:.1f}s"
    if isinstance(action, WindowMoved):
        return f"Window moved to {action.bounds}"
    raise TypeError(f"Unsupported action type: {type(action).__name__}")


def new_recording_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Recording:
    name: str
    window_bounds: Bounds
    actions: List[Action] = field(default_factory=list)
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    annotations: Dict[int, str] = field(default_factory=dict)
    artifact_ids: Optional[List[str]] = None
    locale: Optional[str] = None
    id: str = field(default_factory=new_recording_id)

    @property
    def duration(self) -> float:
        """Sum of explicit waits; capture wall-clock time is not tracked."""
        return sum(a.seconds for a in self.actions if isinstance(a, Wait))

    def copy(self) -> "Recording":
        """Private editable copy; actions are immutable so only containers are duplicated."""
        return replace(
            self,
            actions=list(self.actions),
            annotations=dict(self.annotations),
            artifact_ids=list(self.artifact_ids) if self.artifact_ids is not None else None,
        )
