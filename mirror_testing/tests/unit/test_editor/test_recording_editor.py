from __future__ import annotations

import pytest

from mirror_testing.automation.action import KeyPress, Recording, Wait
from mirror_testing.automation.editor import RecordingEditor
from mirror_testing.automation.store import InMemoryRecordingStore
from mirror_testing.tools.coordinates import Bounds


def _stored() -> tuple[InMemoryRecordingStore, Recording]:
    recording = Recording(
        name="checkout",
        window_bounds=Bounds(0, 0, 372, 824),
        actions=[KeyPress(key_code=i) for i in range(4)] + [Wait(seconds=2.0)],
        annotations={1: "type email", 3: "submit"},
    )
    store = InMemoryRecordingStore([recording])
    return store, recording


def test_edits_stay_private_until_commit() -> None:
    store, recording = _stored()
    editor = RecordingEditor(store.fetch(recording.id))
    editor.rename("checkout v2")
    editor.annotate(0, "focus field")
    editor.toggle_removal(2)
    assert editor.dirty
    assert store.fetch(recording.id).name == "checkout"
    assert store.fetch(recording.id).annotations == {1: "type email", 3: "submit"}


def test_preview_reindexes_annotations() -> None:
    _, recording = _stored()
    editor = RecordingEditor(recording)
    editor.toggle_removal(0)
    editor.toggle_removal(2)
    actions, annotations = editor.preview()
    assert actions == [KeyPress(key_code=1), KeyPress(key_code=3), Wait(seconds=2.0)]
    assert annotations == {0: "type email", 1: "submit"}


def test_toggle_removal_restores() -> None:
    _, recording = _stored()
    editor = RecordingEditor(recording)
    assert editor.toggle_removal(1) is True
    assert editor.toggle_removal(1) is False
    assert editor.preview()[0] == recording.actions


def test_commit_overwrites_same_id() -> None:
    store, recording = _stored()
    editor = RecordingEditor(store.fetch(recording.id))
    editor.toggle_removal(1)
    editor.rename("shorter")
    committed = editor.commit(store)
    assert committed.id == recording.id
    stored = store.fetch(recording.id)
    assert stored.name == "shorter"
    assert len(stored.actions) == 4
    assert stored.annotations == {2: "submit"}
    assert len(store.fetch_all()) == 1
    assert not editor.dirty


def test_save_as_new_keeps_original() -> None:
    store, recording = _stored()
    editor = RecordingEditor(store.fetch(recording.id))
    editor.toggle_removal(0)
    copy = editor.save_as_new(store)
    assert copy.id != recording.id
    assert copy.name == "checkout (Copy)"
    assert copy.annotations == {0: "type email", 2: "submit"}
    assert copy.recorded_at >= recording.recorded_at
    assert {r.id for r in store.fetch_all()} == {recording.id, copy.id}
    assert len(store.fetch(recording.id).actions) == 5


def test_save_as_new_refuses_empty_result() -> None:
    store, recording = _stored()
    editor = RecordingEditor(recording)
    for index in range(len(recording.actions)):
        editor.toggle_removal(index)
    with pytest.raises(ValueError):
        editor.save_as_new(store)


def test_annotate_empty_text_clears() -> None:
    _, recording = _stored()
    editor = RecordingEditor(recording)
    editor.annotate(1, "   ")
    assert editor.draft.annotations == {3: "submit"}
    assert recording.annotations == {1: "type email", 3: "submit"}


def test_remove_action_shifts_annotations() -> None:
    _, recording = _stored()
    editor = RecordingEditor(recording)
    removed = editor.remove_action(1)
    assert removed == KeyPress(key_code=1)
    assert len(editor.draft.actions) == 4
    assert editor.draft.annotations == {2: "submit"}


@pytest.mark.parametrize("index", [-1, 5, 99])
def test_out_of_range_index_raises(index: int) -> None:
    _, recording = _stored()
    editor = RecordingEditor(recording)
    with pytest.raises(IndexError):
        editor.annotate(index, "x")
    with pytest.raises(IndexError):
        editor.toggle_removal(index)
    with pytest.raises(IndexError):
        editor.remove_action(index)


def test_rename_rejects_blank() -> None:
    _, recording = _stored()
    with pytest.raises(ValueError):
        RecordingEditor(recording).rename("  ")


def test_reset_discards_pending_edits() -> None:
    _, recording = _stored()
    editor = RecordingEditor(recording)
    editor.rename("scratch")
    editor.remove_action(0)
    editor.toggle_removal(1)
    editor.reset()
    assert not editor.dirty
    assert editor.preview() == (recording.actions, recording.annotations)
