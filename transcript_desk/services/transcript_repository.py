"""
Transcript Repository

Point reads and single-row writes for transcript records, plus the keyed
locks that serialize mutations per (episode_slug, lang).
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from transcript_desk.core.errors import NotFound, TransientStoreError
from transcript_desk.core.logging import get_logger
from transcript_desk.models.transcript import Transcript
from transcript_desk.schemas.segment import Segment, TranscriptPayload

logger = get_logger(__name__)


def transcript_key(episode_slug: str, lang: str) -> str:
    return f"{episode_slug}:{lang}"


def parse_transcript_key(key: str) -> tuple[str, str]:
    episode_slug, sep, lang = key.rpartition(":")
    if not sep or not episode_slug or not lang:
        raise NotFound(f"Malformed transcript key '{key}'", target_type="transcript", target_id=key)
    return episode_slug, lang


def payload_to_json(payload: TranscriptPayload) -> dict[str, Any]:
    return payload.model_dump(mode="json")


def rebuild_text(segments: list[Segment]) -> str:
    return " ".join(s.text.strip() for s in segments if s.text.strip())


class KeyedLocks:
    """
    One asyncio.Lock per key, dropped again once nobody holds or waits on it.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


# Shared by the editing service and revert targets
transcript_locks = KeyedLocks()


class TranscriptRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, episode_slug: str, lang: str) -> Optional[Transcript]:
        stmt = select(Transcript).where(
            Transcript.episode_slug == episode_slug,
            Transcript.lang == lang,
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise TransientStoreError(
                "Failed to read transcript",
                target_type="transcript",
                target_id=transcript_key(episode_slug, lang),
                operation="read",
            ) from e
        return result.scalars().first()

    async def require(self, episode_slug: str, lang: str) -> Transcript:
        transcript = await self.get(episode_slug, lang)
        if transcript is None:
            raise NotFound(
                f"Transcript {episode_slug}/{lang} not found",
                target_type="transcript",
                target_id=transcript_key(episode_slug, lang),
            )
        return transcript

    async def load_payload(self, episode_slug: str, lang: str) -> TranscriptPayload:
        transcript = await self.require(episode_slug, lang)
        return TranscriptPayload.model_validate(transcript.data or {})

    async def write_payload(
        self,
        episode_slug: str,
        lang: str,
        payload: TranscriptPayload,
        *,
        create: bool = False,
    ) -> Transcript:
        """
        Replace the stored transcript body in one commit.
        Last write wins; there is no version check.
        """
        key = transcript_key(episode_slug, lang)
        transcript = await self.get(episode_slug, lang)
        if transcript is None:
            if not create:
                raise NotFound(f"Transcript {episode_slug}/{lang} not found", target_type="transcript", target_id=key)
            transcript = Transcript(episode_slug=episode_slug, lang=lang)
            self.session.add(transcript)

        # New dict so the JSON column registers the change
        transcript.data = payload_to_json(payload)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Transcript write failed for {key}: {e}")
            raise TransientStoreError(
                "Failed to write transcript",
                target_type="transcript",
                target_id=key,
                operation="write",
            ) from e
        return transcript
