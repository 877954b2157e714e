from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class PlaybackMetrics:
    """Tracks dispatches per action kind, drag step counts and window retries."""

    dispatch_counts: Dict[str, int] = field(default_factory=dict)
    drag_steps: List[int] = field(default_factory=list)
    retry_count: int = 0
    waited_seconds: float = 0.0

    @property
    def drag_count(self) -> int:
        return len(self.drag_steps)

    def note_dispatch(self, kind: str) -> None:
        self.dispatch_counts[kind] = self.dispatch_counts.get(kind, 0) + 1

    def note_drag(self, steps: int) -> None:
        self.drag_steps.append(steps)

    def note_retry(self, attempt: int) -> None:
        self.retry_count += 1

    def note_wait(self, seconds: float) -> None:
        self.waited_seconds += seconds

    def summary(self) -> str:
        kinds = ", ".join(f"{kind}={count}" for kind, count in sorted(self.dispatch_counts.items()))
        return (
            f"dispatched [{kinds or 'none'}]; drags={self.drag_count} ({sum(self.drag_steps)} steps); "
            f"retries={self.retry_count}; waited={self.waited_seconds:.2f}s"
        )
