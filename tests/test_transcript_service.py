"""
Transcript Editing Service Tests
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import EPISODE, LANG
from transcript_desk.core.errors import (
    AlreadyExists,
    InvalidSplitPoint,
    InvalidTransition,
    NotFound,
    TransientStoreError,
)
from transcript_desk.schemas.segment import (
    DeleteOperation,
    MergeOperation,
    ReassignSpeakerOperation,
    Segment,
    SplitOperation,
    TranscriptPayload,
    UpdateTextOperation,
)
from transcript_desk.services.editor_service import AuthRequired
from transcript_desk.services.history_service import EditHistoryService
from transcript_desk.services.transcript_repository import KeyedLocks
from transcript_desk.services.transcript_service import (
    ConfirmationPreferences,
    ConfirmationRequired,
    EditingSession,
    PlaybackState,
    SessionState,
    TranscriptEditingService,
)

NO_CONFIRM = ConfirmationPreferences(split=False, merge=False, delete=False)


@pytest.fixture
def service(test_session):
    return TranscriptEditingService(test_session, preferences=NO_CONFIRM, id_factory=lambda: "new-seg")


async def history_count(session) -> int:
    _, count = await EditHistoryService(session).list()
    return count


# ============ apply_operation ============

@pytest.mark.asyncio
async def test_split_persists_and_logs(test_session, service, editor, seeded_transcript):
    result = await service.apply_operation(
        editor, EPISODE, LANG, SplitOperation(segment_id="s1", cursor_position=6)
    )

    assert [s.id for s in result.segments] == ["s1", "new-seg", "s2", "s3"]
    stored = await service.get_transcript(EPISODE, LANG)
    assert stored.utterances == result.segments

    entry = await EditHistoryService(test_session).get(result.history_entry_id)
    assert entry.edit_type == "segment_split"
    assert entry.target_type == "transcript"
    assert entry.target_id == f"{EPISODE}:{LANG}"
    assert entry.metadata_ == {
        "segment_id": "s1",
        "episode_slug": EPISODE,
        "lang": LANG,
        "cursor_position": 6,
        "new_segment_id": "new-seg",
    }
    assert len(json.loads(entry.content_before)["utterances"]) == 3
    assert len(json.loads(entry.content_after)["utterances"]) == 4


@pytest.mark.asyncio
async def test_merge_logs_merged_with(test_session, service, editor, seeded_transcript):
    result = await service.apply_operation(editor, EPISODE, LANG, MergeOperation(segment_id="s3"))

    assert [s.id for s in result.segments] == ["s1", "s2"]
    assert result.segments[1].text == "how are you fine thanks"
    entry = await EditHistoryService(test_session).get(result.history_entry_id)
    assert entry.edit_type == "segment_merge"
    assert entry.metadata_["merged_with"] == "s2"


@pytest.mark.asyncio
async def test_segments_are_resorted_and_text_rebuilt(test_session, service, editor):
    payload = TranscriptPayload(
        text="b a",
        utterances=[
            Segment(id="late", start=5, end=6, text="b"),
            Segment(id="early", start=0, end=1, text="a"),
        ],
    )
    await service.save_transcript(editor, EPISODE, LANG, payload)

    result = await service.apply_operation(editor, EPISODE, LANG, UpdateTextOperation(segment_id="late", new_text="B"))

    assert [s.id for s in result.segments] == ["early", "late"]
    assert (await service.get_transcript(EPISODE, LANG)).text == "a B"


@pytest.mark.asyncio
async def test_global_reassign_logs_one_entry(test_session, service, editor, seeded_transcript):
    result = await service.apply_operation(
        editor, EPISODE, LANG, ReassignSpeakerOperation(segment_id="s1", new_speaker="Host", is_global=True)
    )

    assert [s.speaker for s in result.segments] == ["Host", "B", "Host"]
    assert await history_count(test_session) == 1
    entry = await EditHistoryService(test_session).get(result.history_entry_id)
    assert entry.edit_type == "speaker_reassign"
    assert entry.metadata_["affected_segments_count"] == 2
    assert entry.metadata_["old_speaker"] == "A"
    assert entry.metadata_["is_global"] is True


@pytest.mark.asyncio
async def test_noops_write_no_history(test_session, service, editor, seeded_transcript):
    noop_reassign = await service.apply_operation(
        editor, EPISODE, LANG, ReassignSpeakerOperation(segment_id="s2", new_speaker="B")
    )
    missing_delete = await service.apply_operation(editor, EPISODE, LANG, DeleteOperation(segment_id="ghost"))
    same_text = await service.apply_operation(
        editor, EPISODE, LANG, UpdateTextOperation(segment_id="s1", new_text="hello world")
    )

    for result in (noop_reassign, missing_delete, same_text):
        assert result.history_entry_id is None
        assert result.segments == seeded_transcript.utterances
    assert await history_count(test_session) == 0


@pytest.mark.asyncio
async def test_text_edit_is_segment_scoped(test_session, service, editor, seeded_transcript):
    result = await service.apply_operation(
        editor, EPISODE, LANG, UpdateTextOperation(segment_id="s2", new_text="how are you?")
    )

    entry = await EditHistoryService(test_session).get(result.history_entry_id)
    assert entry.edit_type == "segment_text_edit"
    assert entry.target_type == "segment"
    assert json.loads(entry.content_before)["text"] == "how are you"
    assert json.loads(entry.content_after)["text"] == "how are you?"


@pytest.mark.asyncio
async def test_unauthenticated_operation_returns_signal(test_session, service, seeded_transcript):
    result = await service.apply_operation(None, EPISODE, LANG, DeleteOperation(segment_id="s1"))

    assert isinstance(result, AuthRequired)
    assert result.operation == "delete"
    assert len((await service.get_transcript(EPISODE, LANG)).utterances) == 3


@pytest.mark.asyncio
async def test_validation_error_touches_nothing(test_session, service, editor, seeded_transcript):
    with pytest.raises(InvalidSplitPoint):
        await service.apply_operation(editor, EPISODE, LANG, SplitOperation(segment_id="s1", cursor_position=0))
    assert await history_count(test_session) == 0


@pytest.mark.asyncio
async def test_missing_transcript(service, editor):
    with pytest.raises(NotFound):
        await service.apply_operation(editor, "nope", LANG, DeleteOperation(segment_id="s1"))


@pytest.mark.asyncio
async def test_failed_write_logs_nothing(test_session, service, editor, seeded_transcript, monkeypatch):
    monkeypatch.setattr(
        test_session,
        "commit",
        AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error"))),
    )
    with pytest.raises(TransientStoreError):
        await service.apply_operation(editor, EPISODE, LANG, DeleteOperation(segment_id="s1"))

    monkeypatch.undo()
    assert await history_count(test_session) == 0
    assert len((await service.get_transcript(EPISODE, LANG)).utterances) == 3


# ============ confirmation ============

@pytest.mark.asyncio
async def test_destructive_operation_needs_confirmation(test_session, editor, seeded_transcript):
    service = TranscriptEditingService(test_session, preferences=ConfirmationPreferences())

    pending = await service.apply_operation(editor, EPISODE, LANG, DeleteOperation(segment_id="s1"))
    assert pending == ConfirmationRequired("delete", "s1")
    assert len((await service.get_transcript(EPISODE, LANG)).utterances) == 3

    done = await service.apply_operation(editor, EPISODE, LANG, DeleteOperation(segment_id="s1"), confirmed=True)
    assert [s.id for s in done.segments] == ["s2", "s3"]


@pytest.mark.asyncio
async def test_dont_ask_again_preference(test_session, editor, seeded_transcript):
    preferences = ConfirmationPreferences().disable("merge")
    service = TranscriptEditingService(test_session, preferences=preferences)

    merged = await service.apply_operation(editor, EPISODE, LANG, MergeOperation(segment_id="s2"))
    assert merged.history_entry_id is not None

    split = await service.apply_operation(editor, EPISODE, LANG, SplitOperation(segment_id="s1", cursor_position=6))
    assert isinstance(split, ConfirmationRequired)


@pytest.mark.asyncio
async def test_non_destructive_operations_never_ask(test_session, editor, seeded_transcript):
    service = TranscriptEditingService(test_session, preferences=ConfirmationPreferences())
    result = await service.apply_operation(
        editor, EPISODE, LANG, UpdateTextOperation(segment_id="s1", new_text="hi there")
    )
    assert result.history_entry_id is not None


# ============ editing session ============

@pytest.mark.asyncio
async def test_session_restores_playback_after_save(service, editor, seeded_transcript):
    session = EditingSession(EPISODE, LANG)
    session.begin_editing("s1", PlaybackState(position=12.5, is_playing=True))
    assert session.state == SessionState.EDITING

    result = await service.apply_operation(
        editor, EPISODE, LANG, UpdateTextOperation(segment_id="s1", new_text="hi"), editing=session
    )

    assert result.restore_playback == PlaybackState(position=12.5, is_playing=True)
    assert session.state == SessionState.IDLE


@pytest.mark.asyncio
async def test_session_holds_error_until_retry(
    test_session, service, editor, seeded_transcript, monkeypatch
):
    session = EditingSession(EPISODE, LANG)
    session.begin_editing("s1", PlaybackState(position=3.0))
    monkeypatch.setattr(
        test_session,
        "commit",
        AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("connection lost"))),
    )

    with pytest.raises(TransientStoreError):
        await service.apply_operation(
            editor, EPISODE, LANG, UpdateTextOperation(segment_id="s1", new_text="hi"), editing=session
        )

    assert session.state == SessionState.ERROR
    assert isinstance(session.error, TransientStoreError)
    assert session.playback == PlaybackState(position=3.0)

    # A failed session has to be reopened before it can save again
    monkeypatch.undo()
    with pytest.raises(InvalidTransition):
        await service.apply_operation(
            editor, EPISODE, LANG, UpdateTextOperation(segment_id="s1", new_text="hi"), editing=session
        )
    assert session.state == SessionState.ERROR

    session.retry()
    assert session.state == SessionState.EDITING
    assert session.error is None
    result = await service.apply_operation(
        editor, EPISODE, LANG, UpdateTextOperation(segment_id="s1", new_text="hi"), editing=session
    )
    assert result.history_entry_id is not None
    assert result.restore_playback == PlaybackState(position=3.0)
    assert session.state == SessionState.IDLE


def test_session_cancel_returns_playback():
    session = EditingSession(EPISODE, LANG)
    session.begin_editing("s2", PlaybackState(position=7.0, is_playing=True))

    assert session.cancel() == PlaybackState(position=7.0, is_playing=True)
    assert session.state == SessionState.IDLE


def test_session_rejects_invalid_transitions():
    session = EditingSession(EPISODE, LANG)
    with pytest.raises(InvalidTransition):
        session.start_saving()
    session.begin_editing("s1")
    with pytest.raises(InvalidTransition):
        session.begin_editing("s2")
    with pytest.raises(InvalidTransition):
        session.retry()


# ============ whole transcript ============

@pytest.mark.asyncio
async def test_create_transcript(test_session, service, editor, sample_payload):
    await service.create_transcript(editor, EPISODE, LANG, sample_payload)

    assert await service.get_transcript(EPISODE, LANG) == sample_payload
    entries, _ = await EditHistoryService(test_session).list()
    assert [e.edit_type for e in entries] == ["transcript_create"]

    with pytest.raises(AlreadyExists):
        await service.create_transcript(editor, EPISODE, LANG, sample_payload)


@pytest.mark.asyncio
async def test_save_transcript_logs_replacement(test_session, service, editor, seeded_transcript):
    replacement = TranscriptPayload(text="new", utterances=[Segment(id="n", start=0, end=1, text="new")])

    result = await service.save_transcript(editor, EPISODE, LANG, replacement)
    again = await service.save_transcript(editor, EPISODE, LANG, replacement)

    entry = await EditHistoryService(test_session).get(result.history_entry_id)
    assert entry.edit_type == "transcript_replace"
    assert TranscriptPayload.model_validate_json(entry.content_before) == seeded_transcript
    assert again.history_entry_id is None


@pytest.mark.asyncio
async def test_save_transcript_requires_editor(service, sample_payload):
    assert isinstance(await service.save_transcript(None, EPISODE, LANG, sample_payload), AuthRequired)


# ============ concurrency ============

@pytest.mark.asyncio
async def test_keyed_locks_serialize_per_key():
    locks = KeyedLocks()
    order = []

    async def worker(key, label, delay):
        async with locks.hold(key):
            order.append(f"{label}-in")
            await asyncio.sleep(delay)
            order.append(f"{label}-out")

    await asyncio.gather(worker("k", "a", 0.02), worker("k", "b", 0), worker("other", "c", 0))

    assert order.index("a-out") < order.index("b-in")
    assert order.index("c-in") < order.index("a-out")
    assert not locks.is_locked("k")
    assert locks._locks == {}
