# mirror_testing/app/settings.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path

logger = logging.getLogger(__name__)

REPLAY_STYLES = ("human", "fast", "smart")


@dataclass
class AppSettings:
    window_owner: str = "iPhone Mirroring"
    min_window_size: float = 100.0
    min_window_width: float = 300.0
    max_window_width: float = 500.0
    min_window_height: float = 600.0
    max_window_height: float = 1000.0
    move_threshold: float = 20.0
    click_threshold: float = 5.0
    wait_threshold: float = 0.1
    multi_click_interval: float = 0.45
    human_drag_steps: int = 20
    human_step_delay: float = 0.02
    human_move_settle: float = 0.01
    fast_drag_steps: int = 5
    fast_step_delay: float = 0.005
    fast_wait_factor: float = 0.25
    fast_wait_floor: float = 0.1
    retry_attempts: int = 3
    retry_backoff: float = 1.0
    window_poll_interval: float = 0.5
    replay_style: str = "human"

    @classmethod
    def load(cls, path: Path) -> AppSettings:
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
            return cls()
        style = str(data.get("replay_style", cls.replay_style)).lower()
        return cls(
            window_owner=str(data.get("window_owner", cls.window_owner)),
            min_window_size=float(data.get("min_window_size", cls.min_window_size)),
            min_window_width=float(data.get("min_window_width", cls.min_window_width)),
            max_window_width=float(data.get("max_window_width", cls.max_window_width)),
            min_window_height=float(data.get("min_window_height", cls.min_window_height)),
            max_window_height=float(data.get("max_window_height", cls.max_window_height)),
            move_threshold=float(data.get("move_threshold", cls.move_threshold)),
            click_threshold=float(data.get("click_threshold", cls.click_threshold)),
            wait_threshold=float(data.get("wait_threshold", cls.wait_threshold)),
            multi_click_interval=float(data.get("multi_click_interval", cls.multi_click_interval)),
            human_drag_steps=int(data.get("human_drag_steps", cls.human_drag_steps)),
            human_step_delay=float(data.get("human_step_delay", cls.human_step_delay)),
            human_move_settle=float(data.get("human_move_settle", cls.human_move_settle)),
            fast_drag_steps=int(data.get("fast_drag_steps", cls.fast_drag_steps)),
            fast_step_delay=float(data.get("fast_step_delay", cls.fast_step_delay)),
            fast_wait_factor=float(data.get("fast_wait_factor", cls.fast_wait_factor)),
            fast_wait_floor=float(data.get("fast_wait_floor", cls.fast_wait_floor)),
            retry_attempts=int(data.get("retry_attempts", cls.retry_attempts)),
            retry_backoff=float(data.get("retry_backoff", cls.retry_backoff)),
            window_poll_interval=float(data.get("window_poll_interval", cls.window_poll_interval)),
            replay_style=style if style in REPLAY_STYLES else cls.replay_style,
        )

    def save(self, path: Path) -> None:
        try:
            path.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not save settings to %s: %s", path, exc)
