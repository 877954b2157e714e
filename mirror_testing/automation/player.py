import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from mirror_testing.tools.coordinates import Bounds, Point, interpolate, to_absolute

from .action import (
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
from .driver.exceptions import AutomationError, PermissionDenied, WindowLostError
from .driver.executor import ActionExecutor
from .driver.permissions import PermissionGate
from .player_components.metrics import PlaybackMetrics
from .session import SessionGuard
from .timing import CancellationToken, Scheduler

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, str], None]


class ReplayStyle(str, Enum):
    HUMAN = "human"
    FAST = "fast"
    SMART = "smart"


class ReplayStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    WINDOW_LOST = "window_lost"


@dataclass
class ReplayOutcome:
    status: ReplayStatus
    completed: int
    total: int
    recording_id: str
    failed_index: Optional[int] = None
    error: Optional[str] = None
    metrics: PlaybackMetrics = field(default_factory=PlaybackMetrics)

    @property
    def succeeded(self) -> bool:
        return self.status is ReplayStatus.COMPLETED


@dataclass
class TimingPolicy:
    """Pacing applied to waits, drags and moves during replay."""

    drag_steps: int = 20
    step_delay: float = 0.02
    move_settle: float = 0.01

    def wait_duration(self, recorded: float) -> float:
        return recorded


@dataclass
class HumanPolicy(TimingPolicy):
    """Replays waits as recorded with smooth drags."""


@dataclass
class FastPolicy(TimingPolicy):
    drag_steps: int = 5
    step_delay: float = 0.005
    move_settle: float = 0.0
    wait_factor: float = 0.25
    wait_floor: float = 0.1

    def wait_duration(self, recorded: float) -> float:
        # Never longer than the recorded wait, even when the floor is higher.
        return min(recorded, max(recorded * self.wait_factor, self.wait_floor))


@dataclass
class SmartPolicy(HumanPolicy):
    """Same pacing as HumanPolicy; subclass to add adaptive behaviour."""


def default_policies(settings: Any = None) -> Dict[ReplayStyle, TimingPolicy]:
    if settings is None:
        return {
            ReplayStyle.HUMAN: HumanPolicy(),
            ReplayStyle.FAST: FastPolicy(),
            ReplayStyle.SMART: SmartPolicy(),
        }
    human = dict(
        drag_steps=settings.human_drag_steps,
        step_delay=settings.human_step_delay,
        move_settle=settings.human_move_settle,
    )
    return {
        ReplayStyle.HUMAN: HumanPolicy(**human),
        ReplayStyle.FAST: FastPolicy(
            drag_steps=settings.fast_drag_steps,
            step_delay=settings.fast_step_delay,
            move_settle=0.0,
            wait_factor=settings.fast_wait_factor,
            wait_floor=settings.fast_wait_floor,
        ),
        ReplayStyle.SMART: SmartPolicy(**human),
    }


class ReplayEngine:
    """Re-project a Recording onto the current window and drive the executor.

    Pointer primitives run through ``WindowTracker.perform`` so a window that
    briefly disappears is re-resolved; if it stays gone the replay ends with
    ``WINDOW_LOST``. Cancellation is honoured between actions only.
    """

    def __init__(
        self,
        executor: ActionExecutor,
        tracker: WindowTracker,
        *,
        session: Optional[SessionGuard] = None,
        permission_gate: Optional[PermissionGate] = None,
        scheduler: Optional[Scheduler] = None,
        policies: Optional[Dict[ReplayStyle, TimingPolicy]] = None,
    ) -> None:
        self.executor = executor
        self.tracker = tracker
        self.session = session or SessionGuard()
        self.permission_gate = permission_gate
        self.scheduler: Scheduler = scheduler or tracker.scheduler
        self.policies = policies or default_policies()

    def policy_for(self, style: ReplayStyle) -> TimingPolicy:
        return self.policies[ReplayStyle(style)]

    def replay(
        self,
        recording: Recording,
        current_bounds: Bounds,
        style: ReplayStyle = ReplayStyle.HUMAN,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ReplayOutcome:
        if self.permission_gate is not None and not self.permission_gate.is_authorized():
            raise PermissionDenied()
        policy = self.policy_for(style)
        actions: List[Action] = list(recording.actions)
        total = len(actions)
        metrics = PlaybackMetrics()

        self.session.acquire("replay")
        logger.info(
            "Playback of '%s' (%s): %d actions, style=%s, recorded in %s, replaying in %s",
            recording.name,
            recording.id,
            total,
            ReplayStyle(style).value,
            recording.window_bounds,
            current_bounds,
        )
        bounds = current_bounds
        outcome: Optional[ReplayOutcome] = None
        try:
            for index, action in enumerate(actions):
                if cancel is not None and cancel.cancelled:
                    logger.info("Playback cancelled before action %d/%d", index + 1, total)
                    outcome = ReplayOutcome(ReplayStatus.CANCELLED, index, total, recording.id, metrics=metrics)
                    break
                description = describe_action(action)
                if on_progress is not None:
                    on_progress(index + 1, total, description)
                logger.info("Playback: [%d/%d] %s", index + 1, total, description)
                try:
                    bounds = self._dispatch(action, bounds, policy, metrics)
                except WindowLostError as exc:
                    logger.error("Playback stopped at action %d of '%s': %s", index, recording.id, exc)
                    outcome = ReplayOutcome(
                        ReplayStatus.WINDOW_LOST,
                        index,
                        total,
                        recording.id,
                        failed_index=index,
                        error=str(exc),
                        metrics=metrics,
                    )
                    break
                except AutomationError as exc:
                    exc.action_index = index
                    exc.recording_id = recording.id
                    logger.error(
                        "Playback aborted at action %d of '%s': %s; %s", index, recording.id, exc, metrics.summary()
                    )
                    raise
                metrics.note_dispatch(action.kind)
            else:
                outcome = ReplayOutcome(ReplayStatus.COMPLETED, total, total, recording.id, metrics=metrics)
        finally:
            self.session.release("replay")

        logger.info(
            "Playback finished: %s (%d/%d); %s",
            outcome.status.value,
            outcome.completed,
            outcome.total,
            metrics.summary(),
        )
        return outcome

    def _dispatch(self, action: Action, bounds: Bounds, policy: TimingPolicy, metrics: PlaybackMetrics) -> Bounds:
        """Run one action; returns the bounds later actions should project onto."""
        if isinstance(action, Wait):
            duration = policy.wait_duration(action.seconds)
            self.scheduler.sleep(duration)
            metrics.note_wait(duration)
            return bounds
        if isinstance(action, WindowMoved):
            self.tracker.update_cached_bounds(action.bounds)
            return action.bounds
        if isinstance(action, KeyPress):
            self.executor.key_down(action.key_code, action.modifiers)
            self.executor.key_up(action.key_code, action.modifiers)
            return bounds

        # Project onto where the window is now; a failed lookup keeps the last frame
        # and leaves recovery to the retry wrapper.
        live = self.tracker.resolve()
        if live is not None:
            bounds = live.bounds

        used: List[Bounds] = []

        def primitive(target: Bounds) -> None:
            used.append(target)
            self._pointer(action, target, policy, metrics)

        self.tracker.perform(primitive, bounds, on_retry=metrics.note_retry)
        if isinstance(action, MoveTo) and policy.move_settle > 0:
            self.scheduler.sleep(policy.move_settle)
        cached = self.tracker.cached
        return cached.bounds if cached is not None else used[-1]

    def _pointer(self, action: Action, bounds: Bounds, policy: TimingPolicy, metrics: PlaybackMetrics) -> None:
        if isinstance(action, MoveTo):
            self.executor.move_to(to_absolute(action.relative, bounds))
        elif isinstance(action, Click):
            point = to_absolute(action.relative, bounds)
            self.executor.move_to(point)
            for _ in range(max(1, action.count)):
                self.executor.press(point)
                self.executor.release(point)
        elif isinstance(action, PressDown):
            point = to_absolute(action.relative, bounds)
            self.executor.move_to(point)
            self.executor.press(point)
        elif isinstance(action, ReleaseUp):
            point = to_absolute(action.relative, bounds)
            self.executor.move_to(point)
            self.executor.release(point)
        elif isinstance(action, Drag):
            start = to_absolute(action.start_relative, bounds)
            end = to_absolute(action.end_relative, bounds)
            self._drag(start, end, policy)
            metrics.note_drag(policy.drag_steps)
        else:
            raise TypeError(f"Unsupported pointer action: {type(action).__name__}")

    def _drag(self, start: Point, end: Point, policy: TimingPolicy) -> None:
        self.executor.move_to(start)
        self.executor.press(start)
        for point in interpolate(start, end, policy.drag_steps):
            if policy.step_delay > 0:
                self.scheduler.sleep(policy.step_delay)
            self.executor.move_to(point)
        self.executor.release(end)
