"""Authorization checks for capturing and synthesizing input."""

from __future__ import annotations

import logging
import sys
from typing import Protocol

from .exceptions import PermissionDenied

try:
    from ApplicationServices import (  # type: ignore
        AXIsProcessTrusted,
        AXIsProcessTrustedWithOptions,
        kAXTrustedCheckOptionPrompt,
    )
except Exception:  # pragma: no cover - optional dependency
    AXIsProcessTrusted = None  # type: ignore
    AXIsProcessTrustedWithOptions = None  # type: ignore
    kAXTrustedCheckOptionPrompt = None  # type: ignore

logger = logging.getLogger(__name__)


class PermissionGate(Protocol):
    def is_authorized(self) -> bool: ...

    def request_authorization(self) -> bool: ...


class AccessibilityPermissionGate:
    """macOS accessibility trust, queried through ApplicationServices."""

    def __init__(self) -> None:
        if AXIsProcessTrusted is None:
            raise PermissionDenied(
                "pyobjc-framework-ApplicationServices is required to check accessibility access."
            )

    def is_authorized(self) -> bool:
        return bool(AXIsProcessTrusted())

    def request_authorization(self) -> bool:
        """Show the system prompt; returns the trust state at the time of the call."""
        trusted = bool(AXIsProcessTrustedWithOptions({kAXTrustedCheckOptionPrompt: True}))
        if not trusted:
            logger.info("Accessibility access requested; grant it in System Settings and retry.")
        return trusted


class StaticPermissionGate:
    """Fixed answer, for platforms without a trust model and for tests."""

    def __init__(self, authorized: bool = True) -> None:
        self.authorized = authorized
        self.requests = 0

    def is_authorized(self) -> bool:
        return self.authorized

    def request_authorization(self) -> bool:
        self.requests += 1
        return self.authorized


def default_permission_gate() -> PermissionGate:
    if sys.platform == "darwin":
        return AccessibilityPermissionGate()
    return StaticPermissionGate(True)
