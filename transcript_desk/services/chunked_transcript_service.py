"""
Chunked Transcript Service

Stores large transcripts as bounded chunks next to a compact copy of the
transcript body, and rebuilds them on read.
"""

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from transcript_desk.core.config import settings
from transcript_desk.core.errors import CorruptChunk, TransientStoreError
from transcript_desk.core.logging import get_logger
from transcript_desk.core.retry import retry_store
from transcript_desk.models.transcript import Transcript, TranscriptChunk
from transcript_desk.schemas.chunk import ChunkSetMetadata, ReconstructedTranscript
from transcript_desk.schemas.segment import TranscriptPayload
from transcript_desk.services import chunk_codec
from transcript_desk.services.chunk_codec import ChunkSet, EncodedChunk
from transcript_desk.services.transcript_repository import (
    TranscriptRepository,
    payload_to_json,
    transcript_key,
    transcript_locks,
)

logger = get_logger(__name__)


class ChunkedTranscriptService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = TranscriptRepository(session)

    async def save_chunks(
        self,
        episode_slug: str,
        lang: str,
        payload: Optional[TranscriptPayload] = None,
        *,
        max_chunk_bytes: Optional[int] = None,
        include_text: bool = True,
    ) -> ChunkSetMetadata:
        """
        Chunk a transcript and replace any previous chunk set for the key.

        When payload is None the stored transcript body is chunked.
        """
        max_chunk_bytes = max_chunk_bytes or settings.default_chunk_bytes
        key = transcript_key(episode_slug, lang)

        async with transcript_locks.hold(key):
            if payload is None:
                payload = await self.repository.load_payload(episode_slug, lang)

            chunk_set = chunk_codec.chunk(
                payload_to_json(payload),
                max_chunk_bytes,
                include_text=include_text,
                max_chunks=settings.max_chunks_per_transcript,
            )
            await self._write_chunk_set(episode_slug, lang, payload, chunk_set)

        logger.info(
            f"Saved {chunk_set.metadata.total_chunks} chunks for {key} "
            f"({chunk_set.metadata.text_chunks} text, {chunk_set.metadata.utterance_chunks} utterances)"
        )
        return chunk_set.metadata

    @retry_store()
    async def _write_chunk_set(
        self,
        episode_slug: str,
        lang: str,
        payload: TranscriptPayload,
        chunk_set: ChunkSet,
    ) -> None:
        # Compact body, metadata and chunk rows land in one commit
        try:
            transcript = await self.repository.get(episode_slug, lang)
            if transcript is None:
                transcript = Transcript(episode_slug=episode_slug, lang=lang)
                self.session.add(transcript)
            transcript.data = payload_to_json(payload)
            transcript.chunking_metadata = chunk_set.metadata.model_dump(mode="json")

            await self.session.execute(self._chunk_delete(episode_slug, lang))
            self.session.add_all(
                TranscriptChunk(
                    episode_slug=episode_slug,
                    lang=lang,
                    chunk_index=c.index,
                    chunk_kind=c.kind,
                    payload=c.payload,
                )
                for c in chunk_set.chunks
            )
            await self.session.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            logger.warning(f"Chunk write failed for {transcript_key(episode_slug, lang)}: {e}")
            raise TransientStoreError(
                "Failed to write transcript chunks",
                target_type="transcript_chunks",
                target_id=transcript_key(episode_slug, lang),
                operation="save_chunks",
            ) from e

    async def get_chunks_info(self, episode_slug: str, lang: str) -> Optional[ChunkSetMetadata]:
        transcript = await self.repository.get(episode_slug, lang)
        if transcript is None or not transcript.chunking_metadata:
            return None
        return self._metadata(transcript)

    async def reconstruct_transcript(self, episode_slug: str, lang: str) -> Optional[ReconstructedTranscript]:
        """Full transcript from its chunks, or None when it was never chunked"""
        metadata = await self.get_chunks_info(episode_slug, lang)
        if metadata is None:
            return None

        stmt = (
            select(TranscriptChunk)
            .where(TranscriptChunk.episode_slug == episode_slug, TranscriptChunk.lang == lang)
            .order_by(TranscriptChunk.chunk_index)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise TransientStoreError(
                "Failed to read transcript chunks",
                target_type="transcript_chunks",
                target_id=transcript_key(episode_slug, lang),
                operation="reconstruct",
            ) from e

        chunks = [
            EncodedChunk(index=row.chunk_index, kind=row.chunk_kind, payload=row.payload)
            for row in result.scalars().all()
        ]
        return chunk_codec.reconstruct(metadata, chunks)

    async def clear_chunks(self, episode_slug: str, lang: str) -> bool:
        """Drop all chunks and the chunk metadata. Safe to call repeatedly."""
        async with transcript_locks.hold(transcript_key(episode_slug, lang)):
            await self._clear(episode_slug, lang)
        logger.info(f"Cleared chunks for {transcript_key(episode_slug, lang)}")
        return True

    @retry_store()
    async def _clear(self, episode_slug: str, lang: str) -> None:
        try:
            await self.session.execute(self._chunk_delete(episode_slug, lang))
            transcript = await self.repository.get(episode_slug, lang)
            if transcript is not None:
                transcript.chunking_metadata = None
            await self.session.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            raise TransientStoreError(
                "Failed to clear transcript chunks",
                target_type="transcript_chunks",
                target_id=transcript_key(episode_slug, lang),
                operation="clear_chunks",
            ) from e

    @staticmethod
    def _chunk_delete(episode_slug: str, lang: str):
        return (
            delete(TranscriptChunk)
            .where(TranscriptChunk.episode_slug == episode_slug, TranscriptChunk.lang == lang)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def _metadata(transcript: Transcript) -> ChunkSetMetadata:
        try:
            return ChunkSetMetadata.model_validate(transcript.chunking_metadata)
        except ValueError as e:
            raise CorruptChunk(
                f"Chunk metadata for {transcript.episode_slug}/{transcript.lang} is unreadable",
                target_type="transcript_chunks",
                target_id=transcript_key(transcript.episode_slug, transcript.lang),
                operation="reconstruct",
            ) from e
