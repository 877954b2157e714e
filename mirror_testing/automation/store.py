"""Persistence gateway for recordings.

Recordings are stored one JSON document per recording. ``id``, ``name``,
``recorded_at`` and ``locale`` are plain top-level fields; the window bounds
and the action list are nested payloads produced by the codec below.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from mirror_testing.tools.coordinates import Bounds, Point

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
)
from .driver.exceptions import DuplicateIDError, RecordingNotFoundError, SerializationError

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 1
_SAFE_ID = re.compile(r"^[A-Za-z0-9_-]+$")


class RecordingGateway(Protocol):
    def save(self, recording: Recording) -> None: ...

    def fetch_all(self) -> List[Recording]: ...

    def fetch(self, recording_id: str) -> Recording: ...

    def update(self, recording: Recording) -> None: ...

    def delete(self, recording_id: str) -> None: ...

    def delete_all(self) -> None: ...


# --- codec ---------------------------------------------------------------


def action_to_payload(action: Action) -> Dict[str, Any]:
    data = asdict(action)
    cleaned: Dict[str, Any] = {"type": action.kind}
    for key, value in data.items():
        if value in (None, [], {}, ""):
            continue
        cleaned[key] = value
    return cleaned


def _point(raw: Any) -> Point:
    return Point(float(raw["x"]), float(raw["y"]))


def action_from_payload(payload: Dict[str, Any]) -> Action:
    try:
        kind = payload["type"]
        if kind == MoveTo.kind:
            return MoveTo(point=_point(payload["point"]), relative=_point(payload["relative"]))
        if kind == Click.kind:
            count = int(payload.get("count", 1))
            if count < 1:
                raise ValueError(f"click count must be at least 1, got {count}")
            return Click(point=_point(payload["point"]), relative=_point(payload["relative"]), count=count)
        if kind == PressDown.kind:
            return PressDown(point=_point(payload["point"]), relative=_point(payload["relative"]))
        if kind == ReleaseUp.kind:
            return ReleaseUp(point=_point(payload["point"]), relative=_point(payload["relative"]))
        if kind == Drag.kind:
            return Drag(
                start=_point(payload["start"]),
                end=_point(payload["end"]),
                start_relative=_point(payload["start_relative"]),
                end_relative=_point(payload["end_relative"]),
            )
        if kind == KeyPress.kind:
            return KeyPress(key_code=int(payload["key_code"]), modifiers=int(payload.get("modifiers", 0)))
        if kind == Wait.kind:
            seconds = float(payload["seconds"])
            if seconds < 0:
                raise ValueError(f"wait must be non-negative, got {seconds}")
            return Wait(seconds=seconds)
        if kind == WindowMoved.kind:
            return WindowMoved(bounds=Bounds.from_dict(payload["bounds"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise SerializationError(f"Malformed action payload {payload!r}: {exc}") from exc
    raise SerializationError(f"Unknown action type {payload.get('type')!r}")


def recording_to_payload(recording: Recording) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "version": PAYLOAD_VERSION,
        "id": recording.id,
        "name": recording.name,
        "recorded_at": recording.recorded_at.isoformat(),
        "locale": recording.locale,
        "window_bounds": recording.window_bounds.to_dict(),
        "actions": [action_to_payload(a) for a in recording.actions],
        "annotations": {str(index): text for index, text in sorted(recording.annotations.items())},
    }
    if recording.artifact_ids is not None:
        payload["artifact_ids"] = list(recording.artifact_ids)
    return payload


def recording_from_payload(payload: Dict[str, Any]) -> Recording:
    recording_id = payload.get("id") if isinstance(payload, dict) else None
    try:
        recorded_at = datetime.fromisoformat(payload["recorded_at"])
        if recorded_at.tzinfo is None:
            recorded_at = recorded_at.replace(tzinfo=timezone.utc)
        artifact_ids = payload.get("artifact_ids")
        return Recording(
            id=str(payload["id"]),
            name=str(payload["name"]),
            window_bounds=Bounds.from_dict(payload["window_bounds"]),
            actions=[action_from_payload(a) for a in payload.get("actions", [])],
            recorded_at=recorded_at,
            annotations={int(k): str(v) for k, v in (payload.get("annotations") or {}).items()},
            artifact_ids=[str(a) for a in artifact_ids] if artifact_ids is not None else None,
            locale=payload.get("locale"),
        )
    except SerializationError as exc:
        exc.recording_id = recording_id
        raise
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SerializationError(
            f"Malformed recording payload: {exc}", recording_id=recording_id
        ) from exc


def _sorted_newest_first(recordings: List[Recording]) -> List[Recording]:
    return sorted(recordings, key=lambda r: r.recorded_at, reverse=True)


# --- stores --------------------------------------------------------------


class JsonRecordingStore:
    """One ``<id>.json`` document per recording under ``directory``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path_for(self, recording_id: str) -> Path:
        if not _SAFE_ID.match(recording_id or ""):
            raise RecordingNotFoundError(recording_id)
        return self.directory / f"{recording_id}.json"

    def _write(self, path: Path, recording: Recording) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(recording_to_payload(recording), f, indent=2)
        os.replace(tmp, path)

    def _read(self, path: Path) -> Recording:
        try:
            with path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except ValueError as exc:
            raise SerializationError(f"Invalid JSON in {path.name}: {exc}", recording_id=path.stem) from exc
        return recording_from_payload(payload)

    def save(self, recording: Recording) -> None:
        with self._lock:
            path = self._path_for(recording.id)
            if path.exists():
                raise DuplicateIDError(recording.id)
            self._write(path, recording)
        logger.info("Saved recording '%s' (%s) to %s", recording.name, recording.id, path)

    def fetch_all(self) -> List[Recording]:
        recordings: List[Recording] = []
        with self._lock:
            if not self.directory.exists():
                return []
            for path in sorted(self.directory.glob("*.json")):
                try:
                    recordings.append(self._read(path))
                except SerializationError as exc:
                    logger.warning("Skipping unreadable recording %s: %s", path.name, exc)
                except OSError as exc:
                    logger.warning("Skipping recording %s: %s", path.name, exc)
        return _sorted_newest_first(recordings)

    def fetch(self, recording_id: str) -> Recording:
        with self._lock:
            path = self._path_for(recording_id)
            if not path.exists():
                raise RecordingNotFoundError(recording_id)
            return self._read(path)

    def update(self, recording: Recording) -> None:
        with self._lock:
            path = self._path_for(recording.id)
            if not path.exists():
                raise RecordingNotFoundError(recording.id)
            self._write(path, recording)
        logger.info("Updated recording '%s' (%s)", recording.name, recording.id)

    def delete(self, recording_id: str) -> None:
        with self._lock:
            path = self._path_for(recording_id)
            path.unlink(missing_ok=True)
        logger.info("Deleted recording %s", recording_id)

    def delete_all(self) -> None:
        with self._lock:
            if not self.directory.exists():
                return
            removed = 0
            for path in self.directory.glob("*.json"):
                path.unlink(missing_ok=True)
                removed += 1
        logger.info("Deleted %d recordings from %s", removed, self.directory)


class InMemoryRecordingStore:
    """Dictionary-backed gateway; stores private copies so callers cannot alias them."""

    def __init__(self, recordings: Optional[List[Recording]] = None) -> None:
        self._lock = threading.Lock()
        self._items: Dict[str, Recording] = {}
        for recording in recordings or []:
            self.save(recording)

    def save(self, recording: Recording) -> None:
        with self._lock:
            if recording.id in self._items:
                raise DuplicateIDError(recording.id)
            self._items[recording.id] = recording.copy()

    def fetch_all(self) -> List[Recording]:
        with self._lock:
            return _sorted_newest_first([r.copy() for r in self._items.values()])

    def fetch(self, recording_id: str) -> Recording:
        with self._lock:
            try:
                return self._items[recording_id].copy()
            except KeyError:
                raise RecordingNotFoundError(recording_id) from None

    def update(self, recording: Recording) -> None:
        with self._lock:
            if recording.id not in self._items:
                raise RecordingNotFoundError(recording.id)
            self._items[recording.id] = recording.copy()

    def delete(self, recording_id: str) -> None:
        with self._lock:
            self._items.pop(recording_id, None)

    def delete_all(self) -> None:
        with self._lock:
            self._items.clear()
