from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from mirror_testing.app.configuration import load_runtime_config
from mirror_testing.app.environment import build_default_paths
from mirror_testing.app.settings import AppSettings
from mirror_testing.automation.action import Recording, describe_action
from mirror_testing.automation.driver.core import (
    ConnectionQuality,
    StaticWindowSource,
    WindowHandle,
    WindowTracker,
)
from mirror_testing.automation.driver.exceptions import (
    AutomationError,
    PermissionDenied,
    RecordingNotFoundError,
    RecordingStoreError,
    WindowNotFoundError,
)
from mirror_testing.automation.driver.permissions import default_permission_gate
from mirror_testing.automation.editor import RecordingEditor
from mirror_testing.automation.session import SessionGuard
from mirror_testing.automation.store import JsonRecordingStore
from mirror_testing.automation.timing import CancellationToken, SystemScheduler, VirtualScheduler

logger = logging.getLogger("mirror_testing.cli")

EXIT_OK = 0
EXIT_NOT_FOUND = 2
EXIT_WINDOW_NOT_FOUND = 3
EXIT_INCOMPLETE = 4
EXIT_PERMISSION = 5


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="mirror-testing", description="Record and replay interactions with a mirrored device window")
    parser.add_argument("--data-root", type=Path, default=None, help="Data directory (defaults to mirror_testing/data or $MIRROR_TESTING_ROOT)")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    record_parser = subparsers.add_parser("record", help="Capture interactions with the mirrored window")
    record_parser.add_argument("name", nargs="?", default=None, help="Recording name (defaults to 'Recording N')")
    record_parser.add_argument("--duration", type=float, default=None, help="Stop after this many seconds (default: until Ctrl+C)")

    play_parser = subparsers.add_parser("play", help="Replay a stored recording")
    play_parser.add_argument("recording", help="Recording id or name")
    play_parser.add_argument("--style", choices=["human", "fast", "smart"], default=None)
    play_parser.add_argument("--dry-run", action="store_true", help="Log the actions without moving the pointer")

    subparsers.add_parser("list", help="List stored recordings")

    show_parser = subparsers.add_parser("show", help="Show the actions of a recording")
    show_parser.add_argument("recording", help="Recording id or name")

    rename_parser = subparsers.add_parser("rename", help="Rename a recording")
    rename_parser.add_argument("recording", help="Recording id or name")
    rename_parser.add_argument("name", help="New name")

    annotate_parser = subparsers.add_parser("annotate", help="Attach a note to one action (empty text clears it)")
    annotate_parser.add_argument("recording", help="Recording id or name")
    annotate_parser.add_argument("index", type=int, help="0-based action index")
    annotate_parser.add_argument("text", help="Note text")

    remove_parser = subparsers.add_parser("remove-action", help="Remove one action from a recording")
    remove_parser.add_argument("recording", help="Recording id or name")
    remove_parser.add_argument("index", type=int, help="0-based action index")
    remove_parser.add_argument("--save-as-new", action="store_true", help="Keep the original and store the result as a copy")

    delete_parser = subparsers.add_parser("delete", help="Delete a recording")
    delete_parser.add_argument("recording", help="Recording id or name")

    delete_all_parser = subparsers.add_parser("delete-all", help="Delete every stored recording")
    delete_all_parser.add_argument("--yes", action="store_true", help="Confirm deletion")

    subparsers.add_parser("windows", help="List candidate mirroring windows and the connection quality")

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(levelname)s %(name)s - %(message)s")

    runtime_cfg = load_runtime_config()
    logger.debug("Loaded runtime config overrides: %s", runtime_cfg)

    data_root = args.data_root or build_default_paths().data_root
    settings = _load_settings(data_root, runtime_cfg)
    store = JsonRecordingStore(data_root / "recordings")

    try:
        if args.command == "record":
            return _handle_record(args, settings, store)
        if args.command == "play":
            return _handle_play(args, settings, store)
        if args.command == "list":
            return _handle_list(store)
        if args.command == "show":
            return _handle_show(_find_recording(store, args.recording))
        if args.command == "rename":
            editor = RecordingEditor(_find_recording(store, args.recording))
            editor.rename(args.name)
            editor.commit(store)
            return EXIT_OK
        if args.command == "annotate":
            editor = RecordingEditor(_find_recording(store, args.recording))
            editor.annotate(args.index, args.text)
            editor.commit(store)
            return EXIT_OK
        if args.command == "remove-action":
            return _handle_remove_action(args, store)
        if args.command == "delete":
            recording = _find_recording(store, args.recording)
            store.delete(recording.id)
            return EXIT_OK
        if args.command == "delete-all":
            if not args.yes:
                logger.error("Refusing to delete every recording without --yes.")
                return EXIT_NOT_FOUND
            store.delete_all()
            return EXIT_OK
        if args.command == "windows":
            return _handle_windows(settings)
    except RecordingNotFoundError as exc:
        logger.error("%s", exc)
        return EXIT_NOT_FOUND
    except (IndexError, ValueError) as exc:
        logger.error("%s", exc)
        return EXIT_NOT_FOUND
    except PermissionDenied as exc:
        logger.error("%s", _failure_message(exc))
        return EXIT_PERMISSION
    except WindowNotFoundError as exc:
        logger.error("%s", _failure_message(exc))
        return EXIT_WINDOW_NOT_FOUND
    except AutomationError as exc:
        logger.error("%s", _failure_message(exc))
        return EXIT_INCOMPLETE
    parser.print_help()
    return 1


def _failure_message(exc: AutomationError) -> str:
    if exc.action_index is None:
        return str(exc)
    return f"{exc} (action {exc.action_index} of recording {exc.recording_id})"


def _load_settings(data_root: Path, runtime_cfg) -> AppSettings:
    settings = AppSettings.load(data_root / "settings.json")
    runtime_cfg.apply_to_settings(settings)
    return settings


def _find_recording(store: JsonRecordingStore, key: str) -> Recording:
    recordings = store.fetch_all()
    for recording in recordings:
        if recording.id == key:
            return recording
    for recording in recordings:
        if recording.name == key:
            return recording
    raise RecordingNotFoundError(key)


def _handle_record(args: argparse.Namespace, settings: AppSettings, store: JsonRecordingStore) -> int:
    from mirror_testing.automation.recorder import PynputEventSource, Recorder, WindowMonitor

    scheduler = SystemScheduler()
    gate = default_permission_gate()
    try:
        tracker = WindowTracker.from_settings(settings, scheduler=scheduler)
        handle = tracker.require()
    except AutomationError as exc:
        if isinstance(exc, WindowNotFoundError):
            raise
        logger.error("%s", exc)
        return EXIT_WINDOW_NOT_FOUND

    recorder = Recorder.from_settings(settings, store, permission_gate=gate, scheduler=scheduler)
    recorder.start(handle.bounds)
    source = PynputEventSource(
        recorder.handle_event,
        multi_click_interval=settings.multi_click_interval,
        multi_click_distance=settings.click_threshold,
        clock=scheduler.now,
    )
    monitor = WindowMonitor(
        tracker,
        recorder.note_window_moved,
        interval=settings.window_poll_interval,
        initial=handle.bounds,
    )
    try:
        source.start()
    except AutomationError:
        source.stop()
        recorder.abort()
        raise
    try:
        monitor.start()
        logger.info("Recording '%s' in %s. Press Ctrl+C to stop.", args.name or "(unnamed)", handle.bounds)
        started = scheduler.now()
        while args.duration is None or scheduler.now() - started < args.duration:
            scheduler.sleep(0.1)
    except KeyboardInterrupt:
        logger.info("Stopping recording")
    finally:
        source.stop()
        monitor.request_stop()
    try:
        recording = recorder.stop(args.name)
    except RecordingStoreError as exc:
        logger.error("Could not save recording: %s", exc)
        return EXIT_INCOMPLETE
    if recording is None:
        logger.warning("Nothing was recorded.")
        return EXIT_OK
    print(f"{recording.id}\t{recording.name}\t{len(recording.actions)} actions")
    return EXIT_OK


def _handle_play(args: argparse.Namespace, settings: AppSettings, store: JsonRecordingStore) -> int:
    from mirror_testing.automation.driver.executor import PyAutoGuiExecutor, RecordingExecutor
    from mirror_testing.automation.player import ReplayEngine, ReplayStatus, ReplayStyle, default_policies

    recording = _find_recording(store, args.recording)
    style = ReplayStyle(args.style or settings.replay_style)

    if args.dry_run:
        scheduler = VirtualScheduler()
        window = WindowHandle(owner=settings.window_owner, window_id=None, bounds=recording.window_bounds)
        # Dry runs replay into the recorded frame, so size rules do not apply.
        tracker = WindowTracker(
            StaticWindowSource([window]),
            owner_hint=settings.window_owner,
            min_size=0.0,
            width_range=(0.0, float("inf")),
            height_range=(0.0, float("inf")),
            scheduler=scheduler,
        )
        executor = RecordingExecutor()
        gate = None
        bounds = recording.window_bounds
    else:
        tracker = WindowTracker.from_settings(settings, scheduler=SystemScheduler())
        gate = default_permission_gate()
        if not gate.is_authorized():
            gate.request_authorization()
            raise PermissionDenied()
        bounds = tracker.require().bounds
        executor = PyAutoGuiExecutor(permission_gate=gate)

    engine = ReplayEngine(
        executor,
        tracker,
        session=SessionGuard(),
        permission_gate=gate,
        policies=default_policies(settings),
    )
    cancel = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.cancel())

    def _progress(index: int, total: int, description: str) -> None:
        print(f"[{index}/{total}] {description}")

    try:
        outcome = engine.replay(recording, bounds, style=style, on_progress=_progress, cancel=cancel)
    finally:
        signal.signal(signal.SIGINT, previous)
    if isinstance(executor, RecordingExecutor):
        logger.info("Dry run issued %d executor calls", len(executor.calls))
    if outcome.status is ReplayStatus.COMPLETED:
        return EXIT_OK
    if outcome.status is ReplayStatus.WINDOW_LOST:
        logger.error(
            "Window lost at action %s of recording %s: %s", outcome.failed_index, outcome.recording_id, outcome.error
        )
    else:
        logger.warning("Replay cancelled after %d of %d actions", outcome.completed, outcome.total)
    return EXIT_INCOMPLETE


def _handle_list(store: JsonRecordingStore) -> int:
    recordings = store.fetch_all()
    if not recordings:
        print("No recordings found.", file=sys.stderr)
        return EXIT_OK
    for recording in recordings:
        print(
            f"{recording.id}\t{recording.name}\t{len(recording.actions)} actions\t"
            f"{recording.duration:.1f}s\t{recording.recorded_at.isoformat(timespec='seconds')}"
        )
    return EXIT_OK


def _handle_show(recording: Recording) -> int:
    print(f"{recording.name} ({recording.id})")
    print(f"Recorded {recording.recorded_at.isoformat(timespec='seconds')} in window {recording.window_bounds}")
    for index, action in enumerate(recording.actions):
        note = recording.annotations.get(index)
        suffix = f"  # {note}" if note else ""
        print(f"{index:4d}  {describe_action(action)}{suffix}")
    return EXIT_OK


def _handle_remove_action(args: argparse.Namespace, store: JsonRecordingStore) -> int:
    editor = RecordingEditor(_find_recording(store, args.recording))
    editor.toggle_removal(args.index)
    if args.save_as_new:
        copy = editor.save_as_new(store)
        print(f"{copy.id}\t{copy.name}")
    else:
        editor.commit(store)
    return EXIT_OK


def _handle_windows(settings: AppSettings) -> int:
    try:
        tracker = WindowTracker.from_settings(settings)
        handles = tracker.resolve_all()
    except AutomationError as exc:
        logger.error("%s", exc)
        return EXIT_WINDOW_NOT_FOUND
    if not handles:
        print(f"No '{settings.window_owner}' window found (quality: {ConnectionQuality.DISCONNECTED.value}).")
        return EXIT_WINDOW_NOT_FOUND
    for handle in handles:
        print(f"{handle.window_id}\t{handle.owner}\t{handle.bounds}")
    latency = tracker.last_latency_ms or 0.0
    print(f"Connection quality: {tracker.quality.value} ({latency:.1f} ms)")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
