"""Single-active-session guard shared by the recorder and the player."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .driver.exceptions import SessionBusyError

logger = logging.getLogger(__name__)


class SessionGuard:
    """Admits one recording or replay at a time; a second request is rejected, not queued."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner: Optional[str] = None

    @property
    def active(self) -> Optional[str]:
        with self._lock:
            return self._owner

    @property
    def busy(self) -> bool:
        return self.active is not None

    def acquire(self, owner: str) -> None:
        with self._lock:
            if self._owner is not None:
                raise SessionBusyError(
                    f"Cannot start {owner}: a {self._owner} session is already active."
                )
            self._owner = owner
        logger.debug("Session acquired by %s", owner)

    def release(self, owner: str) -> None:
        with self._lock:
            if self._owner != owner:
                logger.debug("Ignoring release by %s; active session is %s", owner, self._owner)
                return
            self._owner = None
        logger.debug("Session released by %s", owner)

    @contextmanager
    def hold(self, owner: str) -> Iterator[None]:
        self.acquire(owner)
        try:
            yield
        finally:
            self.release(owner)
