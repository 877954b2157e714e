"""
Window tracking for the mirrored device surface.

This module locates the mirroring window through a pluggable ``WindowSource``
(Quartz on macOS, pywinauto's UIA backend on Windows, or a static list for
tests), grades each lookup by latency, and wraps pointer primitives in a
retry loop that re-resolves the window when it briefly disappears.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, TypeVar

from mirror_testing.tools.coordinates import Bounds, CoordinateError

from ..timing import Scheduler, SystemScheduler
from .exceptions import AutomationError, WindowLostError, WindowNotFoundError

try:
    from pywinauto import Desktop  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    Desktop = None  # type: ignore

try:
    import Quartz  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    Quartz = None  # type: ignore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_OWNER = "iPhone Mirroring"


class ConnectionQuality(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    BAD = "bad"
    DISCONNECTED = "disconnected"
    UNKNOWN = "unknown"


def quality_for_latency(latency_ms: float) -> ConnectionQuality:
    """Grade a successful window lookup by how long it took."""
    if latency_ms < 10:
        return ConnectionQuality.EXCELLENT
    if latency_ms < 30:
        return ConnectionQuality.GOOD
    if latency_ms < 50:
        return ConnectionQuality.FAIR
    if latency_ms < 100:
        return ConnectionQuality.POOR
    return ConnectionQuality.BAD


@dataclass(frozen=True, slots=True)
class WindowHandle:
    """A resolved on-screen window. Never persisted."""

    owner: str
    window_id: Optional[int]
    bounds: Bounds

    def __post_init__(self) -> None:
        if self.bounds.is_degenerate:
            raise CoordinateError(f"Window '{self.owner}' has degenerate bounds {self.bounds}")


class WindowSource(Protocol):
    def list_windows(self) -> List[Dict[str, Any]]:
        """Return raw window records with owner, window_id, x, y, width and height keys."""


class QuartzWindowSource:
    """Enumerate on-screen windows through CoreGraphics (macOS)."""

    def list_windows(self) -> List[Dict[str, Any]]:
        if Quartz is None:
            raise AutomationError(
                "pyobjc-framework-Quartz is required to enumerate windows on macOS but is not installed."
            )
        options = Quartz.kCGWindowListOptionOnScreenOnly | Quartz.kCGWindowListExcludeDesktopElements
        window_list = Quartz.CGWindowListCopyWindowInfo(options, Quartz.kCGNullWindowID) or []
        results: List[Dict[str, Any]] = []
        for win in window_list:
            bounds = win.get("kCGWindowBounds", {})
            if not bounds:
                continue
            results.append(
                {
                    "owner": str(win.get("kCGWindowOwnerName", "") or ""),
                    "window_id": int(win.get("kCGWindowNumber", 0)),
                    "pid": int(win.get("kCGWindowOwnerPID", 0)),
                    "x": float(bounds.get("X", 0)),
                    "y": float(bounds.get("Y", 0)),
                    "width": float(bounds.get("Width", 0)),
                    "height": float(bounds.get("Height", 0)),
                }
            )
        return results


class DesktopWindowSource:
    """Enumerate top-level windows through pywinauto's UIA backend (Windows)."""

    def __init__(self, backend: str = "uia") -> None:
        self.backend = backend

    def list_windows(self) -> List[Dict[str, Any]]:
        if Desktop is None:
            raise AutomationError("pywinauto is required to enumerate windows on Windows but is not installed.")
        results: List[Dict[str, Any]] = []
        for window in Desktop(backend=self.backend).windows():
            rect = window.rectangle()
            results.append(
                {
                    "owner": window.window_text() or "",
                    "window_id": window.handle,
                    "pid": window.process_id(),
                    "x": float(rect.left),
                    "y": float(rect.top),
                    "width": float(rect.width()),
                    "height": float(rect.height()),
                }
            )
        return results


class StaticWindowSource:
    """Fixed window list for tests and headless runs.

    ``queue_failures(n)`` makes the next ``n`` lookups come back empty, which
    is how a transient disappearance looks to the tracker.
    """

    def __init__(self, windows: Iterable[Dict[str, Any] | WindowHandle] = ()) -> None:
        self._windows: List[Dict[str, Any]] = [_as_record(w) for w in windows]
        self._failures = 0
        self.calls = 0

    def set_windows(self, windows: Iterable[Dict[str, Any] | WindowHandle]) -> None:
        self._windows = [_as_record(w) for w in windows]

    def queue_failures(self, count: int) -> None:
        self._failures += max(0, int(count))

    def list_windows(self) -> List[Dict[str, Any]]:
        self.calls += 1
        if self._failures:
            self._failures -= 1
            return []
        return [dict(w) for w in self._windows]


def _as_record(window: Dict[str, Any] | WindowHandle) -> Dict[str, Any]:
    if isinstance(window, WindowHandle):
        record = {"owner": window.owner, "window_id": window.window_id}
        record.update(window.bounds.to_dict())
        return record
    return dict(window)


def default_window_source() -> WindowSource:
    """Pick the platform's native source."""
    if Quartz is not None:
        return QuartzWindowSource()
    return DesktopWindowSource()


class WindowTracker:
    """Resolve, cache and monitor the mirroring window."""

    def __init__(
        self,
        source: WindowSource,
        *,
        owner_hint: str = DEFAULT_OWNER,
        min_size: float = 100.0,
        width_range: Tuple[float, float] = (300.0, 500.0),
        height_range: Tuple[float, float] = (600.0, 1000.0),
        attempts: int = 3,
        backoff: float = 1.0,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.source = source
        self.owner_hint = owner_hint
        self.min_size = float(min_size)
        self.width_range = width_range
        self.height_range = height_range
        self.attempts = max(1, int(attempts))
        self.backoff = max(0.0, float(backoff))
        self.scheduler: Scheduler = scheduler or SystemScheduler()
        self._lock = threading.Lock()
        self._cached: Optional[WindowHandle] = None
        self._quality = ConnectionQuality.UNKNOWN
        self.last_latency_ms: Optional[float] = None

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        *,
        source: Optional[WindowSource] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> "WindowTracker":
        return cls(
            source or default_window_source(),
            owner_hint=settings.window_owner,
            min_size=settings.min_window_size,
            width_range=(settings.min_window_width, settings.max_window_width),
            height_range=(settings.min_window_height, settings.max_window_height),
            attempts=settings.retry_attempts,
            backoff=settings.retry_backoff,
            scheduler=scheduler,
        )

    @property
    def quality(self) -> ConnectionQuality:
        return self._quality

    @property
    def cached(self) -> Optional[WindowHandle]:
        return self._cached

    def is_valid_automation_window(self, bounds: Bounds) -> bool:
        low_w, high_w = self.width_range
        low_h, high_h = self.height_range
        return low_w <= bounds.width <= high_w and low_h <= bounds.height <= high_h

    def resolve_all(self, identity_hint: Optional[str] = None) -> List[WindowHandle]:
        """Every window matching the hint and the automation size rules."""
        return self._lookup(identity_hint)

    def resolve(self, identity_hint: Optional[str] = None) -> Optional[WindowHandle]:
        matches = self._lookup(identity_hint)
        if not matches:
            return None
        chosen = matches[0]
        previous = self._cached
        if previous is not None and previous.window_id is not None:
            for handle in matches:
                if handle.window_id == previous.window_id:
                    chosen = handle
                    break
        self._cached = chosen
        return chosen

    def require(self, identity_hint: Optional[str] = None) -> WindowHandle:
        handle = self.resolve(identity_hint)
        if handle is None:
            raise WindowNotFoundError(
                f"Unable to locate a '{identity_hint or self.owner_hint}' window of automatable size."
            )
        return handle

    def update_cached_bounds(self, bounds: Bounds) -> None:
        with self._lock:
            if self._cached is None:
                self._cached = WindowHandle(owner=self.owner_hint, window_id=None, bounds=bounds)
            else:
                self._cached = replace(self._cached, bounds=bounds)
        logger.debug("Cached window bounds updated to %s", bounds)

    def perform(
        self,
        primitive: Callable[[Bounds], T],
        bounds: Bounds,
        *,
        identity_hint: Optional[str] = None,
        on_retry: Optional[Callable[[int], None]] = None,
    ) -> T:
        """Run ``primitive`` against ``bounds`` and confirm the window survived it.

        The window is looked up after the primitive; up to ``attempts`` lookups
        are made, ``backoff`` seconds apart. When the window comes back the
        primitive is re-run against the recovered bounds. Exhaustion marks the
        connection disconnected and raises WindowLostError.
        """
        result = primitive(bounds)
        for attempt in range(1, self.attempts + 1):
            handle = self.resolve(identity_hint)
            if handle is not None:
                if attempt == 1:
                    return result
                logger.info("Window recovered after %d lookups at %s", attempt, handle.bounds)
                return primitive(handle.bounds)
            if attempt < self.attempts:
                logger.warning(
                    "Window lookup %d/%d failed; retrying in %.1fs", attempt, self.attempts, self.backoff
                )
                if on_retry is not None:
                    on_retry(attempt)
                self.scheduler.sleep(self.backoff)
        self._set_quality(ConnectionQuality.DISCONNECTED)
        raise WindowLostError(
            f"Window '{identity_hint or self.owner_hint}' lost after {self.attempts} lookups.",
            attempts=self.attempts,
        )

    def _lookup(self, identity_hint: Optional[str]) -> List[WindowHandle]:
        hint = identity_hint or self.owner_hint
        with self._lock:
            started = self.scheduler.now()
            try:
                records = self.source.list_windows()
            except AutomationError:
                raise
            except Exception as exc:
                logger.warning("Window enumeration failed: %s", exc)
                records = []
            latency_ms = (self.scheduler.now() - started) * 1000.0
            matches = self._filter(records, hint)
            self.last_latency_ms = latency_ms
            if matches:
                self._set_quality(quality_for_latency(latency_ms))
            else:
                self._set_quality(ConnectionQuality.DISCONNECTED)
        return matches

    def _filter(self, records: Sequence[Dict[str, Any]], hint: str) -> List[WindowHandle]:
        matches: List[WindowHandle] = []
        needle = hint.lower()
        for record in records:
            owner = str(record.get("owner", ""))
            if needle not in owner.lower():
                continue
            try:
                bounds = Bounds(
                    float(record.get("x", 0)),
                    float(record.get("y", 0)),
                    float(record.get("width", 0)),
                    float(record.get("height", 0)),
                )
                handle = WindowHandle(owner=owner, window_id=record.get("window_id"), bounds=bounds)
            except (CoordinateError, TypeError, ValueError):
                continue
            if bounds.width <= self.min_size or bounds.height <= self.min_size:
                continue
            if not self.is_valid_automation_window(bounds):
                continue
            matches.append(handle)
        return matches

    def _set_quality(self, quality: ConnectionQuality) -> None:
        if quality is self._quality:
            return
        logger.info("Connection quality changed: %s -> %s", self._quality.value, quality.value)
        self._quality = quality
