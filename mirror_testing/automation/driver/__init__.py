"""Public exports for the mirror automation driver."""

from .core import (
    ConnectionQuality,
    DesktopWindowSource,
    QuartzWindowSource,
    StaticWindowSource,
    WindowHandle,
    WindowSource,
    WindowTracker,
    default_window_source,
    quality_for_latency,
)
from .exceptions import (
    AutomationError,
    CoordinateError,
    DuplicateIDError,
    PermissionDenied,
    RecordingNotFoundError,
    RecordingStoreError,
    SerializationError,
    SessionBusyError,
    WindowLostError,
    WindowNotFoundError,
)
from .executor import ActionExecutor, PyAutoGuiExecutor, RecordingExecutor
from .permissions import (
    AccessibilityPermissionGate,
    PermissionGate,
    StaticPermissionGate,
    default_permission_gate,
)

__all__ = [
    "ConnectionQuality",
    "DesktopWindowSource",
    "QuartzWindowSource",
    "StaticWindowSource",
    "WindowHandle",
    "WindowSource",
    "WindowTracker",
    "default_window_source",
    "quality_for_latency",
    "AutomationError",
    "CoordinateError",
    "DuplicateIDError",
    "PermissionDenied",
    "RecordingNotFoundError",
    "RecordingStoreError",
    "SerializationError",
    "SessionBusyError",
    "WindowLostError",
    "WindowNotFoundError",
    "ActionExecutor",
    "PyAutoGuiExecutor",
    "RecordingExecutor",
    "AccessibilityPermissionGate",
    "PermissionGate",
    "StaticPermissionGate",
    "default_permission_gate",
]
