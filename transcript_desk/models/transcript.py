"""
Transcript Models

One transcript record per (episode_slug, lang) plus its chunk payloads.
"""

from typing import Any, Optional

from sqlalchemy import JSON, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from transcript_desk.models.base import Base, TimestampMixin, new_id


class Transcript(Base, TimestampMixin):
    __tablename__ = "transcripts"
    __table_args__ = (
        UniqueConstraint("episode_slug", "lang", name="uq_transcripts_episode_lang"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    episode_slug: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    lang: Mapped[str] = mapped_column(String(16), nullable=False)

    # {"text": str, "utterances": [segment, ...]}
    data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    # ChunkSet metadata, null when the transcript has not been chunked
    chunking_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)


class TranscriptChunk(Base, TimestampMixin):
    __tablename__ = "transcript_chunks"
    __table_args__ = (
        UniqueConstraint(
            "episode_slug", "lang", "chunk_index", "chunk_kind",
            name="uq_transcript_chunks_key",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    episode_slug: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    lang: Mapped[str] = mapped_column(String(16), nullable=False)
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    chunk_kind: Mapped[str] = mapped_column(String(16), nullable=False)  # text, utterances

    # Serialized JSON, kept as text so a bad payload surfaces as CorruptChunk
    payload: Mapped[str] = mapped_column(Text, nullable=False)
