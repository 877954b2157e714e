from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from mirror_testing.tools.coordinates import (
    Bounds,
    CoordinateError,
    Point,
    clamp_fraction,
    contains,
    distance,
    to_relative,
)

from .action import (
    MOD_ALT,
    MOD_COMMAND,
    MOD_CONTROL,
    MOD_SHIFT,
    Action,
    Click,
    Drag,
    KeyPress,
    MoveTo,
    PressDown,
    Recording,
    ReleaseUp,
    Wait,
    WindowMoved,
    describe_action,
)
from .driver.core import WindowTracker
from .driver.exceptions import PermissionDenied
from .driver.permissions import PermissionGate
from .session import SessionGuard
from .store import RecordingGateway
from .timing import Scheduler, SystemScheduler

# pynput needs a display server; guarded so headless imports still work.
try:
    from pynput import keyboard, mouse  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    keyboard = mouse = None  # type: ignore

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    MOVE = "move"
    PRESS = "press"
    RELEASE = "release"
    KEY_DOWN = "key_down"
    KEY_UP = "key_up"


@dataclass(frozen=True, slots=True)
class InputEvent:
    """One captured input event in screen coordinates."""

    kind: EventKind
    point: Optional[Point] = None
    key_code: Optional[int] = None
    modifiers: int = 0
    click_count: int = 1
    timestamp: Optional[float] = None


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"


class Recorder:
    """Turns a stream of InputEvents into a Recording.

    Positional events outside the live window bounds are dropped, moves are
    coalesced, and press/release pairs become clicks or drags. Relative
    fractions always refer to the bounds passed to ``start``.
    """

    def __init__(
        self,
        gateway: RecordingGateway,
        *,
        session: Optional[SessionGuard] = None,
        permission_gate: Optional[PermissionGate] = None,
        scheduler: Optional[Scheduler] = None,
        move_threshold: float = 20.0,
        click_threshold: float = 5.0,
        wait_threshold: float = 0.1,
    ) -> None:
        self.gateway = gateway
        self.session = session or SessionGuard()
        self.permission_gate = permission_gate
        self.scheduler: Scheduler = scheduler or SystemScheduler()
        self.move_threshold = float(move_threshold)
        self.click_threshold = float(click_threshold)
        self.wait_threshold = float(wait_threshold)

        self._lock = threading.Lock()
        self._state = RecorderState.IDLE
        self._actions: List[Action] = []
        self._original: Optional[Bounds] = None
        self._live: Optional[Bounds] = None
        self._anchor: Optional[Point] = None
        self._pending: Optional[Tuple[Point, float]] = None
        self._last_time = 0.0
        self.last_recording: Optional[Recording] = None

    @classmethod
    def from_settings(cls, settings: Any, gateway: RecordingGateway, **kwargs: Any) -> "Recorder":
        return cls(
            gateway,
            move_threshold=settings.move_threshold,
            click_threshold=settings.click_threshold,
            wait_threshold=settings.wait_threshold,
            **kwargs,
        )

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state is RecorderState.RECORDING

    @property
    def actions(self) -> List[Action]:
        with self._lock:
            return list(self._actions)

    @property
    def live_bounds(self) -> Optional[Bounds]:
        return self._live

    def start(self, bounds: Bounds) -> None:
        if self.is_recording:
            logger.debug("Recorder already running; start ignored")
            return
        if self.permission_gate is not None and not self.permission_gate.is_authorized():
            raise PermissionDenied()
        if bounds.is_degenerate:
            raise CoordinateError(f"Cannot record against degenerate bounds {bounds}")
        self.session.acquire("recording")
        with self._lock:
            self._actions = []
            self._original = bounds
            self._live = bounds
            self._anchor = None
            self._pending = None
            self._last_time = self.scheduler.now()
            self._state = RecorderState.RECORDING
        logger.info("Recording started against window %s", bounds)

    def handle_event(self, event: InputEvent) -> None:
        with self._lock:
            if self._state is not RecorderState.RECORDING:
                return
            when = event.timestamp if event.timestamp is not None else self.scheduler.now()
            if event.kind == EventKind.MOVE:
                self._on_move(event.point, when)
            elif event.kind == EventKind.PRESS:
                self._on_press(event.point, when)
            elif event.kind == EventKind.RELEASE:
                self._on_release(event.point, event.click_count, when)
            elif event.kind == EventKind.KEY_DOWN:
                if event.key_code is not None:
                    self._append(KeyPress(key_code=int(event.key_code), modifiers=int(event.modifiers)), when)

    def note_window_moved(self, bounds: Bounds) -> None:
        with self._lock:
            if self._state is not RecorderState.RECORDING or bounds == self._live:
                return
            self._live = bounds
            self._actions.append(WindowMoved(bounds=bounds))
        logger.info("Recorded: Window moved to %s", bounds)

    def stop(self, name: Optional[str] = None) -> Optional[Recording]:
        with self._lock:
            if self._state is not RecorderState.RECORDING:
                return None
            if self._pending is not None:
                point, when = self._pending
                self._pending = None
                self._append(PressDown(point=point, relative=self._relative(point)), when)
            actions = list(self._actions)
            original = self._original
            self._state = RecorderState.IDLE
        self.session.release("recording")

        if not actions:
            logger.info("Recording stopped with no actions; nothing saved")
            return None
        recording = Recording(name=name or "", window_bounds=original, actions=actions)
        self.last_recording = recording
        if not recording.name:
            recording.name = f"Recording {len(self.gateway.fetch_all()) + 1}"
        self.gateway.save(recording)
        logger.info("Recording '%s' stopped: %d actions, %.1fs", recording.name, len(actions), recording.duration)
        return recording

    def abort(self) -> None:
        """Discard the capture in progress without saving it."""
        with self._lock:
            if self._state is not RecorderState.RECORDING:
                return
            discarded = len(self._actions)
            self._actions = []
            self._pending = None
            self._state = RecorderState.IDLE
        self.session.release("recording")
        logger.warning("Recording aborted; %d captured actions discarded", discarded)

    # -- per-event policy; callers hold the lock --

    def _relative(self, point: Point) -> Point:
        return clamp_fraction(to_relative(point, self._original))

    def _inside(self, point: Optional[Point]) -> bool:
        return point is not None and contains(self._live, point)

    def _append(self, action: Action, when: float) -> None:
        gap = when - self._last_time
        if gap >= self.wait_threshold:
            self._actions.append(Wait(seconds=gap))
            logger.info("Recorded: %s", describe_action(self._actions[-1]))
        self._actions.append(action)
        self._last_time = when
        logger.info("Recorded: %s", describe_action(action))

    def _on_move(self, point: Optional[Point], when: float) -> None:
        if self._pending is not None or not self._inside(point):
            return
        if self._anchor is None:
            self._anchor = point
            return
        if distance(self._anchor, point) > self.move_threshold:
            self._append(MoveTo(point=point, relative=self._relative(point)), when)
            self._anchor = point

    def _on_press(self, point: Optional[Point], when: float) -> None:
        if not self._inside(point):
            return
        if self._pending is not None:
            previous, pressed_at = self._pending
            self._append(PressDown(point=previous, relative=self._relative(previous)), pressed_at)
        self._pending = (point, when)

    def _on_release(self, point: Optional[Point], click_count: int, when: float) -> None:
        if point is None:
            return
        if self._pending is None:
            if self._inside(point):
                self._append(ReleaseUp(point=point, relative=self._relative(point)), when)
            return
        start, _ = self._pending
        self._pending = None
        if distance(start, point) < self.click_threshold:
            action: Action = Click(point=start, relative=self._relative(start), count=max(1, int(click_count)))
        else:
            action = Drag(
                start=start,
                end=point,
                start_relative=self._relative(start),
                end_relative=self._relative(point),
            )
        self._append(action, when)


_MODIFIER_BITS = {
    "shift": MOD_SHIFT,
    "shift_l": MOD_SHIFT,
    "shift_r": MOD_SHIFT,
    "ctrl": MOD_CONTROL,
    "ctrl_l": MOD_CONTROL,
    "ctrl_r": MOD_CONTROL,
    "alt": MOD_ALT,
    "alt_l": MOD_ALT,
    "alt_r": MOD_ALT,
    "alt_gr": MOD_ALT,
    "cmd": MOD_COMMAND,
    "cmd_l": MOD_COMMAND,
    "cmd_r": MOD_COMMAND,
}


class PynputEventSource:
    """Feed pynput mouse and keyboard listeners into ``sink`` as InputEvents.

    Presses of the left button within ``multi_click_interval`` seconds and
    ``multi_click_distance`` px of the previous one count up as a
    multi-click. Modifier keys only update the modifier mask.
    """

    def __init__(
        self,
        sink: Callable[[InputEvent], None],
        *,
        multi_click_interval: float = 0.45,
        multi_click_distance: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sink = sink
        self.multi_click_interval = multi_click_interval
        self.multi_click_distance = multi_click_distance
        self.clock = clock
        self._mouse_listener = None
        self._kb_listener = None
        self._last_press: Optional[Tuple[Point, float]] = None
        self._click_count = 1
        self._modifiers = 0

    def start(self) -> None:
        if mouse is None or keyboard is None:
            raise PermissionDenied("pynput could not attach to the input system; check the display and input access.")
        self._mouse_listener = mouse.Listener(on_move=self._on_move, on_click=self._on_click)
        self._mouse_listener.start()
        self._kb_listener = keyboard.Listener(on_press=self._on_key_press, on_release=self._on_key_release)
        self._kb_listener.start()

    def stop(self) -> None:
        for listener in (self._mouse_listener, self._kb_listener):
            if listener is not None:
                listener.stop()
        self._mouse_listener = None
        self._kb_listener = None

    def _on_move(self, x: int, y: int) -> None:
        self.sink(InputEvent(EventKind.MOVE, point=Point(float(x), float(y)), timestamp=self.clock()))

    def _on_click(self, x: int, y: int, button, pressed: bool) -> None:
        if getattr(button, "name", "left") != "left":
            logger.debug("Ignoring %s button event", getattr(button, "name", button))
            return
        point = Point(float(x), float(y))
        now = self.clock()
        if pressed:
            last = self._last_press
            if (
                last is not None
                and now - last[1] < self.multi_click_interval
                and distance(last[0], point) < self.multi_click_distance
            ):
                self._click_count += 1
            else:
                self._click_count = 1
            self._last_press = (point, now)
            self.sink(InputEvent(EventKind.PRESS, point=point, click_count=self._click_count, timestamp=now))
        else:
            self.sink(InputEvent(EventKind.RELEASE, point=point, click_count=self._click_count, timestamp=now))

    def _modifier_bit(self, key) -> int:
        return _MODIFIER_BITS.get(getattr(key, "name", None) or "", 0)

    def _virtual_key(self, key) -> Optional[int]:
        vk = getattr(key, "vk", None)
        if vk is None:
            vk = getattr(getattr(key, "value", None), "vk", None)
        return int(vk) if vk is not None else None

    def _on_key_press(self, key) -> None:
        bit = self._modifier_bit(key)
        if bit:
            self._modifiers |= bit
            return
        code = self._virtual_key(key)
        if code is None:
            logger.debug("Ignoring key without a virtual key code: %s", key)
            return
        self.sink(InputEvent(EventKind.KEY_DOWN, key_code=code, modifiers=self._modifiers, timestamp=self.clock()))

    def _on_key_release(self, key) -> None:
        bit = self._modifier_bit(key)
        if bit:
            self._modifiers &= ~bit
            return
        code = self._virtual_key(key)
        if code is not None:
            self.sink(InputEvent(EventKind.KEY_UP, key_code=code, modifiers=self._modifiers, timestamp=self.clock()))


class WindowMonitor:
    """Poll the tracker while recording and report origin or size changes."""

    def __init__(
        self,
        tracker: WindowTracker,
        on_change: Callable[[Bounds], None],
        *,
        interval: float = 0.5,
        initial: Optional[Bounds] = None,
        identity_hint: Optional[str] = None,
    ) -> None:
        self.tracker = tracker
        self.on_change = on_change
        self.interval = max(0.05, float(interval))
        self.identity_hint = identity_hint
        self._last = initial
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def poll_once(self) -> Optional[Bounds]:
        """One tracker lookup; returns the new bounds when they changed."""
        handle = self.tracker.resolve(self.identity_hint)
        if handle is None or handle.bounds == self._last:
            return None
        previous, self._last = self._last, handle.bounds
        if previous is None:
            return None
        self.on_change(handle.bounds)
        return handle.bounds

    def start(self) -> None:
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="window-monitor", daemon=True)
        self._thread.start()

    def request_stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval * 4)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.poll_once()
            except Exception as exc:
                logger.warning("Window monitor lookup failed: %s", exc)
