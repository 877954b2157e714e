"""Copy-on-write editing of stored recordings."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Set, Tuple

from .action import Action, Recording, new_recording_id
from .store import RecordingGateway

logger = logging.getLogger(__name__)

COPY_SUFFIX = " (Copy)"


class RecordingEditor:
    """Edits a private copy of ``recording``; nothing is stored until ``commit`` or ``save_as_new``.

    Removal is staged: ``toggle_removal`` marks or unmarks an index and
    ``preview`` shows the recording as it would be written, with annotations
    shifted to follow their surviving actions.
    """

    def __init__(self, recording: Recording) -> None:
        self.original = recording
        self.draft = recording.copy()
        self.removed: Set[int] = set()

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self.draft.actions):
            raise IndexError(f"Action index {index} out of range (0..{len(self.draft.actions) - 1})")

    @property
    def dirty(self) -> bool:
        return (
            bool(self.removed)
            or self.draft.name != self.original.name
            or self.draft.annotations != self.original.annotations
            or self.draft.actions != self.original.actions
        )

    def rename(self, name: str) -> None:
        name = name.strip()
        if not name:
            raise ValueError("Recording name cannot be empty")
        self.draft.name = name

    def annotate(self, index: int, text: str) -> None:
        self._check_index(index)
        text = text.strip()
        if text:
            self.draft.annotations[index] = text
        else:
            self.draft.annotations.pop(index, None)

    def toggle_removal(self, index: int) -> bool:
        """Flip the removal mark; returns True when the action is now marked."""
        self._check_index(index)
        if index in self.removed:
            self.removed.discard(index)
            return False
        self.removed.add(index)
        return True

    def remove_action(self, index: int) -> Action:
        """Drop one action immediately, shifting later annotations and removal marks down."""
        self._check_index(index)
        action = self.draft.actions.pop(index)
        self.draft.annotations = {
            (i if i < index else i - 1): text
            for i, text in self.draft.annotations.items()
            if i != index
        }
        self.removed = {(i if i < index else i - 1) for i in self.removed if i != index}
        return action

    def reset(self) -> None:
        self.draft = self.original.copy()
        self.removed.clear()

    def preview(self) -> Tuple[List[Action], Dict[int, str]]:
        actions: List[Action] = []
        annotations: Dict[int, str] = {}
        for old_index, action in enumerate(self.draft.actions):
            if old_index in self.removed:
                continue
            note = self.draft.annotations.get(old_index)
            if note:
                annotations[len(actions)] = note
            actions.append(action)
        return actions, annotations

    def commit(self, gateway: RecordingGateway) -> Recording:
        """Overwrite the stored recording under its existing id."""
        actions, annotations = self.preview()
        updated = replace(self.draft.copy(), actions=actions, annotations=annotations)
        gateway.update(updated)
        logger.info("Committed edits to '%s' (%s): %d actions", updated.name, updated.id, len(actions))
        self.original = updated
        self.draft = updated.copy()
        self.removed.clear()
        return updated

    def save_as_new(self, gateway: RecordingGateway) -> Recording:
        """Store the edited recording as a new one with a fresh id and a ``(Copy)`` name."""
        actions, annotations = self.preview()
        if not actions:
            raise ValueError("Cannot save a copy with every action removed")
        copy = replace(
            self.draft.copy(),
            id=new_recording_id(),
            name=f"{self.draft.name}{COPY_SUFFIX}",
            recorded_at=datetime.now(timezone.utc),
            actions=actions,
            annotations=annotations,
        )
        gateway.save(copy)
        logger.info("Saved '%s' as new recording %s", copy.name, copy.id)
        return copy
