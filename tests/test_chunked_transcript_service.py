"""
Chunked Transcript Storage Tests
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from conftest import EPISODE, LANG
from transcript_desk.core.errors import ChunkLimitExceeded, IncompleteChunkSet, NotFound
from transcript_desk.models.transcript import TranscriptChunk
from transcript_desk.schemas.segment import Segment, TranscriptPayload
from transcript_desk.services.chunked_transcript_service import ChunkedTranscriptService


def long_payload(count: int = 120) -> TranscriptPayload:
    utterances = [
        Segment(id=f"u{i}", start=float(i), end=float(i) + 0.9, text=f"utterance number {i}.", speaker="A")
        for i in range(count)
    ]
    return TranscriptPayload(text=" ".join(u.text for u in utterances), utterances=utterances)


async def chunk_rows(session) -> int:
    result = await session.execute(select(func.count()).select_from(TranscriptChunk))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_save_and_reconstruct(test_session):
    service = ChunkedTranscriptService(test_session)
    payload = long_payload()

    metadata = await service.save_chunks(EPISODE, LANG, payload, max_chunk_bytes=1024)

    assert metadata.total_chunks == metadata.text_chunks + metadata.utterance_chunks
    assert metadata.utterance_chunks > 1
    assert await chunk_rows(test_session) == metadata.total_chunks

    info = await service.get_chunks_info(EPISODE, LANG)
    assert info == metadata

    rebuilt = await service.reconstruct_transcript(EPISODE, LANG)
    assert rebuilt.text == payload.text
    assert [Segment.model_validate(u) for u in rebuilt.utterances] == payload.utterances
    assert rebuilt.chunk_count == metadata.total_chunks


@pytest.mark.asyncio
async def test_save_chunks_from_stored_transcript(test_session, seeded_transcript):
    service = ChunkedTranscriptService(test_session)

    metadata = await service.save_chunks(EPISODE, LANG)

    assert metadata.chunk_size == 30000
    assert metadata.total_chunks == 2
    rebuilt = await service.reconstruct_transcript(EPISODE, LANG)
    assert rebuilt.text == seeded_transcript.text


@pytest.mark.asyncio
async def test_save_chunks_without_transcript(test_session):
    with pytest.raises(NotFound):
        await ChunkedTranscriptService(test_session).save_chunks("missing", LANG)


@pytest.mark.asyncio
async def test_resave_replaces_previous_chunks(test_session):
    service = ChunkedTranscriptService(test_session)
    await service.save_chunks(EPISODE, LANG, long_payload(), max_chunk_bytes=512)

    small = long_payload(3)
    metadata = await service.save_chunks(EPISODE, LANG, small, max_chunk_bytes=512)

    assert await chunk_rows(test_session) == metadata.total_chunks
    rebuilt = await service.reconstruct_transcript(EPISODE, LANG)
    assert len(rebuilt.utterances) == 3


@pytest.mark.asyncio
async def test_unchunked_transcript_has_no_info(test_session, seeded_transcript):
    service = ChunkedTranscriptService(test_session)
    assert await service.get_chunks_info(EPISODE, LANG) is None
    assert await service.reconstruct_transcript(EPISODE, LANG) is None
    assert await service.get_chunks_info("unknown", LANG) is None


@pytest.mark.asyncio
async def test_clear_chunks_is_idempotent(test_session):
    service = ChunkedTranscriptService(test_session)
    await service.save_chunks(EPISODE, LANG, long_payload(), max_chunk_bytes=1024)

    assert await service.clear_chunks(EPISODE, LANG) is True
    assert await service.clear_chunks(EPISODE, LANG) is True
    assert await service.clear_chunks("never-chunked", LANG) is True

    assert await chunk_rows(test_session) == 0
    assert await service.get_chunks_info(EPISODE, LANG) is None
    # The compact transcript body stays
    assert await service.repository.load_payload(EPISODE, LANG) == long_payload()


@pytest.mark.asyncio
async def test_missing_chunk_row_is_reported(test_session):
    service = ChunkedTranscriptService(test_session)
    await service.save_chunks(EPISODE, LANG, long_payload(), max_chunk_bytes=1024)

    row = (
        await test_session.execute(select(TranscriptChunk).where(TranscriptChunk.chunk_index == 1))
    ).scalar_one()
    await test_session.delete(row)
    await test_session.commit()

    with pytest.raises(IncompleteChunkSet):
        await service.reconstruct_transcript(EPISODE, LANG)


@pytest.mark.asyncio
async def test_chunk_cap(test_session, monkeypatch):
    from transcript_desk.core.config import settings

    monkeypatch.setattr(settings, "max_chunks_per_transcript", 2)
    with pytest.raises(ChunkLimitExceeded):
        await ChunkedTranscriptService(test_session).save_chunks(EPISODE, LANG, long_payload(), max_chunk_bytes=512)
    assert await chunk_rows(test_session) == 0


@pytest.mark.asyncio
async def test_transient_write_failure_is_retried(test_session, monkeypatch):
    real_commit = test_session.commit
    calls = {"n": 0}

    async def flaky_commit():
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        await real_commit()

    monkeypatch.setattr(test_session, "commit", flaky_commit)

    metadata = await ChunkedTranscriptService(test_session).save_chunks(
        EPISODE, LANG, long_payload(), max_chunk_bytes=1024
    )

    assert calls["n"] == 2
    assert await chunk_rows(test_session) == metadata.total_chunks
