"""Custom exception types for the mirror automation layer."""

from __future__ import annotations

from typing import Optional

from mirror_testing.tools.coordinates import CoordinateError  # noqa: F401


class AutomationError(RuntimeError):
    """Base class for automation-related failures.

    Replay fills ``action_index`` and ``recording_id`` before re-raising.
    """

    action_index: Optional[int] = None
    recording_id: Optional[str] = None


class WindowNotFoundError(AutomationError):
    """Raised when the mirrored device window cannot be located."""


class WindowLostError(WindowNotFoundError):
    """Raised when the window disappeared and every retry was exhausted."""

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class PermissionDenied(AutomationError):
    """Raised when input synthesis or capture is not authorized."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(
            message
            or "Input automation is not authorized. Grant accessibility access to this "
            "process (System Settings > Privacy & Security > Accessibility) and retry."
        )


class SessionBusyError(AutomationError):
    """Raised when a recording or replay starts while another session is active."""


class RecordingStoreError(AutomationError):
    """Base class for persistence gateway failures."""


class DuplicateIDError(RecordingStoreError):
    """Raised when saving a recording whose id is already stored."""

    def __init__(self, recording_id: str) -> None:
        super().__init__(f"Recording id '{recording_id}' already exists.")
        self.recording_id = recording_id


class RecordingNotFoundError(RecordingStoreError):
    """Raised when updating or loading a recording id that is not stored."""

    def __init__(self, recording_id: str) -> None:
        super().__init__(f"Recording id '{recording_id}' not found.")
        self.recording_id = recording_id


class SerializationError(RecordingStoreError):
    """Raised when a stored recording payload cannot be decoded."""

    def __init__(self, message: str, *, recording_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.recording_id = recording_id
