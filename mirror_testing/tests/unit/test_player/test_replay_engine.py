from __future__ import annotations

from typing import List, Tuple

import pytest

from mirror_testing.automation.action import (
    MOD_CONTROL,
    Click,
    Drag,
    KeyPress,
    MoveTo,
    Recording,
    Wait,
    WindowMoved,
)
from mirror_testing.automation.driver.core import ConnectionQuality, StaticWindowSource, WindowTracker
from mirror_testing.automation.driver.exceptions import PermissionDenied, SessionBusyError
from mirror_testing.automation.driver.executor import RecordingExecutor
from mirror_testing.automation.driver.permissions import StaticPermissionGate
from mirror_testing.automation.player import (
    FastPolicy,
    HumanPolicy,
    ReplayEngine,
    ReplayStatus,
    ReplayStyle,
    SmartPolicy,
)
from mirror_testing.automation.session import SessionGuard
from mirror_testing.automation.timing import CancellationToken, VirtualScheduler
from mirror_testing.tools.coordinates import Bounds, Point, to_relative

RECORDED = Bounds(0, 0, 372, 824)
OWNER = "iPhone Mirroring"


def _window(bounds: Bounds) -> dict:
    return {"owner": OWNER, "window_id": 1, **bounds.to_dict()}


def _setup(bounds: Bounds, **engine_kwargs) -> Tuple[ReplayEngine, RecordingExecutor, VirtualScheduler, StaticWindowSource]:
    scheduler = VirtualScheduler()
    source = StaticWindowSource([_window(bounds)])
    tracker = WindowTracker(source, scheduler=scheduler)
    executor = RecordingExecutor()
    return ReplayEngine(executor, tracker, **engine_kwargs), executor, scheduler, source


def _click_at(x: float, y: float, count: int = 1) -> Click:
    point = Point(x, y)
    return Click(point=point, relative=to_relative(point, RECORDED), count=count)


def _recording(*actions) -> Recording:
    return Recording(name="flow", window_bounds=RECORDED, actions=list(actions))


def test_click_reprojected_into_moved_window() -> None:
    current = Bounds(100, 50, 372, 824)
    engine, executor, _, _ = _setup(current)
    outcome = engine.replay(_recording(_click_at(316, 16)), current)
    assert outcome.status is ReplayStatus.COMPLETED
    assert executor.names() == ["move_to", "press", "release"]
    target = executor.calls[1][1]
    assert target.x == pytest.approx(416)
    assert target.y == pytest.approx(66)


def test_click_reprojected_into_resized_window() -> None:
    current = Bounds(0, 0, 500, 1000)
    engine, executor, _, _ = _setup(current)
    engine.replay(_recording(_click_at(316, 16)), current)
    target = executor.calls[0][1]
    assert target.x == pytest.approx(424.73, abs=0.01)
    assert target.y == pytest.approx(19.42, abs=0.01)


def test_multi_click_presses_count_times() -> None:
    engine, executor, _, _ = _setup(RECORDED)
    engine.replay(_recording(_click_at(100, 100, count=3)), RECORDED)
    assert executor.names() == ["move_to"] + ["press", "release"] * 3


def _drag() -> Drag:
    return Drag(
        start=Point(0, 0),
        end=Point(186, 412),
        start_relative=Point(0.0, 0.0),
        end_relative=Point(0.5, 0.5),
    )


@pytest.mark.parametrize(
    "style,steps,delay",
    [(ReplayStyle.HUMAN, 20, 0.02), (ReplayStyle.FAST, 5, 0.005), (ReplayStyle.SMART, 20, 0.02)],
)
def test_drag_pacing_follows_style(style: ReplayStyle, steps: int, delay: float) -> None:
    engine, executor, scheduler, _ = _setup(RECORDED)
    outcome = engine.replay(_recording(_drag()), RECORDED, style=style)
    names = executor.names()
    assert names[0:2] == ["move_to", "press"]
    assert names[-1] == "release"
    assert names.count("move_to") == steps + 1
    assert executor.calls[-2][1] == Point(186, 412)
    assert scheduler.sleeps == [delay] * steps
    assert outcome.metrics.drag_count == 1


@pytest.mark.parametrize(
    "recorded,human,fast",
    [(2.0, 2.0, 0.5), (0.2, 0.2, 0.1), (0.05, 0.05, 0.05), (0.0, 0.0, 0.0)],
)
def test_wait_scaling(recorded: float, human: float, fast: float) -> None:
    for style, expected in ((ReplayStyle.HUMAN, human), (ReplayStyle.FAST, fast), (ReplayStyle.SMART, human)):
        engine, _, scheduler, _ = _setup(RECORDED)
        engine.replay(_recording(Wait(seconds=recorded)), RECORDED, style=style)
        assert scheduler.sleeps == [pytest.approx(expected)]


def test_move_settle_only_for_human_style() -> None:
    move = MoveTo(point=Point(10, 10), relative=Point(0.5, 0.5))
    engine, executor, scheduler, _ = _setup(RECORDED)
    engine.replay(_recording(move), RECORDED, style=ReplayStyle.HUMAN)
    assert scheduler.sleeps == [0.01]
    assert executor.calls == [("move_to", Point(186, 412))]

    engine, _, scheduler, _ = _setup(RECORDED)
    engine.replay(_recording(move), RECORDED, style=ReplayStyle.FAST)
    assert scheduler.sleeps == []


def test_smart_policy_matches_human() -> None:
    assert isinstance(SmartPolicy(), HumanPolicy)
    assert SmartPolicy().drag_steps == HumanPolicy().drag_steps
    assert SmartPolicy().wait_duration(3.0) == 3.0
    assert FastPolicy().wait_duration(0.08) == pytest.approx(0.08)


def test_key_press_sends_down_then_up() -> None:
    engine, executor, _, _ = _setup(RECORDED)
    engine.replay(_recording(KeyPress(key_code=0x24, modifiers=MOD_CONTROL)), RECORDED)
    assert executor.calls == [("key_down", 0x24, MOD_CONTROL), ("key_up", 0x24, MOD_CONTROL)]


def test_progress_reported_before_each_dispatch() -> None:
    engine, executor, _, _ = _setup(RECORDED)
    seen: List[Tuple[int, int, str, int]] = []

    def on_progress(index: int, total: int, description: str) -> None:
        seen.append((index, total, description, len(executor.calls)))

    recording = _recording(_click_at(186, 412), Wait(seconds=1.0), KeyPress(key_code=1))
    engine.replay(recording, RECORDED, on_progress=on_progress)
    assert [s[0] for s in seen] == [1, 2, 3]
    assert all(s[1] == 3 for s in seen)
    assert seen[0][2] == "Click at (50%, 50%)"
    assert seen[1][2] == "Wait 1.0s"
    assert [s[3] for s in seen] == [0, 3, 3]


def test_cancellation_stops_at_next_boundary() -> None:
    engine, executor, _, _ = _setup(RECORDED)
    cancel = CancellationToken()

    def on_progress(index: int, total: int, description: str) -> None:
        if index == 2:
            cancel.cancel()

    recording = _recording(KeyPress(key_code=1), KeyPress(key_code=2), KeyPress(key_code=3))
    outcome = engine.replay(recording, RECORDED, on_progress=on_progress, cancel=cancel)
    assert outcome.status is ReplayStatus.CANCELLED
    assert outcome.completed == 2
    assert outcome.total == 3
    assert [c[1] for c in executor.calls if c[0] == "key_down"] == [1, 2]


def test_cancelled_before_start_does_nothing() -> None:
    engine, executor, _, _ = _setup(RECORDED)
    cancel = CancellationToken()
    cancel.cancel()
    outcome = engine.replay(_recording(KeyPress(key_code=1)), RECORDED, cancel=cancel)
    assert outcome.status is ReplayStatus.CANCELLED
    assert outcome.completed == 0
    assert executor.calls == []


class _VanishingExecutor(RecordingExecutor):
    """Hides the window behind ``failures`` lookups on the first press, then moves it."""

    def __init__(self, source: StaticWindowSource, failures: int, reappear_at: Bounds) -> None:
        super().__init__()
        self.source = source
        self.failures = failures
        self.reappear_at = reappear_at

    def press(self, point: Point) -> None:
        super().press(point)
        if self.failures:
            self.source.queue_failures(self.failures)
            self.source.set_windows([_window(self.reappear_at)])
            self.failures = 0


def _vanishing_setup(failures: int, reappear_at: Bounds) -> Tuple[ReplayEngine, _VanishingExecutor, VirtualScheduler]:
    scheduler = VirtualScheduler()
    source = StaticWindowSource([_window(RECORDED)])
    executor = _VanishingExecutor(source, failures, reappear_at)
    engine = ReplayEngine(executor, WindowTracker(source, scheduler=scheduler))
    return engine, executor, scheduler


def test_window_lost_reports_failing_action() -> None:
    engine, executor, scheduler = _vanishing_setup(3, RECORDED)
    recording = _recording(KeyPress(key_code=1), _click_at(10, 10), KeyPress(key_code=2))
    outcome = engine.replay(recording, RECORDED)
    assert outcome.status is ReplayStatus.WINDOW_LOST
    assert outcome.failed_index == 1
    assert outcome.completed == 1
    assert outcome.recording_id == recording.id
    assert "lost" in outcome.error
    assert scheduler.sleeps == [1.0, 1.0]
    assert engine.tracker.quality is ConnectionQuality.DISCONNECTED
    assert ("key_down", 2, 0) not in executor.calls


def test_recovered_window_becomes_new_frame() -> None:
    recovered = Bounds(200, 100, 372, 824)
    engine, executor, scheduler = _vanishing_setup(1, recovered)
    outcome = engine.replay(_recording(_click_at(0, 0), _click_at(0, 0)), RECORDED)
    assert outcome.status is ReplayStatus.COMPLETED
    targets = [c[1] for c in executor.calls if c[0] == "press"]
    assert targets == [Point(0, 0), Point(200, 100), Point(200, 100)]
    assert scheduler.sleeps == [1.0]
    assert outcome.metrics.retry_count == 1


def test_frame_follows_window_moved_between_actions() -> None:
    engine, executor, _, source = _setup(RECORDED)
    moved = Bounds(300, 100, 372, 824)

    def on_progress(index: int, total: int, description: str) -> None:
        if index == 2:
            source.set_windows([_window(moved)])

    outcome = engine.replay(_recording(_click_at(0, 0), _click_at(0, 0)), RECORDED, on_progress=on_progress)
    assert outcome.status is ReplayStatus.COMPLETED
    targets = [c[1] for c in executor.calls if c[0] == "press"]
    assert targets == [Point(0, 0), Point(300, 100)]
    assert engine.tracker.cached.bounds == moved


def test_live_window_wins_over_recorded_window_move() -> None:
    live = Bounds(30, 40, 372, 824)
    engine, executor, _, _ = _setup(live)
    recording = _recording(WindowMoved(bounds=Bounds(0, 150, 372, 824)), _click_at(0, 0))
    engine.replay(recording, RECORDED)
    assert executor.calls[0] == ("move_to", Point(30, 40))


def test_recorded_window_move_is_fallback_frame() -> None:
    engine, executor, _, source = _setup(RECORDED)
    moved = Bounds(30, 40, 372, 824)
    source.queue_failures(1)
    outcome = engine.replay(_recording(WindowMoved(bounds=moved), _click_at(0, 0)), RECORDED)
    assert outcome.status is ReplayStatus.COMPLETED
    assert executor.calls[0] == ("move_to", Point(30, 40))
    assert engine.tracker.cached.bounds == RECORDED


class _FailingKeyExecutor(RecordingExecutor):
    def __init__(self, fail_on: int) -> None:
        super().__init__()
        self.fail_on = fail_on

    def key_down(self, code: int, modifiers: int) -> None:
        if code == self.fail_on:
            raise PermissionDenied()
        super().key_down(code, modifiers)


def test_executor_failure_carries_action_index_and_recording() -> None:
    guard = SessionGuard()
    scheduler = VirtualScheduler()
    tracker = WindowTracker(StaticWindowSource([_window(RECORDED)]), scheduler=scheduler)
    engine = ReplayEngine(_FailingKeyExecutor(fail_on=3), tracker, session=guard)
    recording = _recording(KeyPress(key_code=1), KeyPress(key_code=2), KeyPress(key_code=3))
    with pytest.raises(PermissionDenied) as excinfo:
        engine.replay(recording, RECORDED)
    assert excinfo.value.action_index == 2
    assert excinfo.value.recording_id == recording.id
    assert not guard.busy


def test_replay_rejected_while_recording() -> None:
    guard = SessionGuard()
    guard.acquire("recording")
    engine, executor, _, _ = _setup(RECORDED, session=guard)
    with pytest.raises(SessionBusyError):
        engine.replay(_recording(KeyPress(key_code=1)), RECORDED)
    assert executor.calls == []


def test_replay_requires_permission() -> None:
    guard = SessionGuard()
    engine, executor, _, _ = _setup(RECORDED, session=guard, permission_gate=StaticPermissionGate(False))
    with pytest.raises(PermissionDenied):
        engine.replay(_recording(KeyPress(key_code=1)), RECORDED)
    assert executor.calls == []
    assert not guard.busy


def test_session_released_after_replay() -> None:
    guard = SessionGuard()
    engine, _, _, _ = _setup(RECORDED, session=guard)
    engine.replay(_recording(KeyPress(key_code=1)), RECORDED)
    assert not guard.busy


def test_metrics_count_dispatches() -> None:
    engine, _, _, _ = _setup(RECORDED)
    outcome = engine.replay(
        _recording(KeyPress(key_code=1), KeyPress(key_code=2), Wait(seconds=0.5), _click_at(5, 5)), RECORDED
    )
    assert outcome.metrics.dispatch_counts == {"key": 2, "wait": 1, "click": 1}
    assert outcome.metrics.waited_seconds == pytest.approx(0.5)
    assert "key=2" in outcome.metrics.summary()
