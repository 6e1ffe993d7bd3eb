"""
Revert Targets

Each history target type knows how to write a "content_before" snapshot
back into its live storage location. The history log picks the
implementation by the entry's target_type.
"""

import json
from typing import Mapping, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from transcript_desk.core.errors import CorruptSnapshot, NotFound
from transcript_desk.core.logging import get_logger
from transcript_desk.schemas.segment import Segment, TranscriptPayload
from transcript_desk.services import segment_store
from transcript_desk.services.transcript_repository import (
    TranscriptRepository,
    parse_transcript_key,
    rebuild_text,
    transcript_key,
    transcript_locks,
)

logger = get_logger(__name__)

TRANSCRIPT_TARGET = "transcript"
SEGMENT_TARGET = "segment"


def segment_target_id(episode_slug: str, lang: str, segment_id: str) -> str:
    return f"{episode_slug}:{lang}:{segment_id}"


def parse_segment_target_id(target_id: str) -> tuple[str, str, str]:
    parts = target_id.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise NotFound(f"Malformed segment target '{target_id}'", target_type=SEGMENT_TARGET, target_id=target_id)
    return parts[0], parts[1], parts[2]


def _bad_snapshot(target_type: str, target_id: str, exc: Exception) -> CorruptSnapshot:
    return CorruptSnapshot(
        f"Stored snapshot cannot be restored: {exc}",
        target_type=target_type,
        target_id=target_id,
        operation="revert",
    )


class Revertible(Protocol):
    async def apply_inverse(self, target_id: str, content_before: Optional[str]) -> Optional[str]:
        """Write content_before back; return the content now in place."""
        ...


class TranscriptRevertible:
    """Whole-transcript snapshots keyed by '<episode_slug>:<lang>'"""

    def __init__(self, session: AsyncSession):
        self.repository = TranscriptRepository(session)

    async def apply_inverse(self, target_id: str, content_before: Optional[str]) -> Optional[str]:
        episode_slug, lang = parse_transcript_key(target_id)
        try:
            payload = TranscriptPayload.model_validate_json(content_before or "{}")
        except PydanticValidationError as e:
            raise _bad_snapshot(TRANSCRIPT_TARGET, target_id, e) from e

        async with transcript_locks.hold(transcript_key(episode_slug, lang)):
            await self.repository.write_payload(episode_slug, lang, payload, create=True)
        logger.info(f"Restored transcript {target_id} ({len(payload.utterances)} segments)")
        return content_before


class SegmentRevertible:
    """
    Single-segment snapshots keyed by '<episode_slug>:<lang>:<segment_id>'.
    A null snapshot means the segment did not exist before the edit.
    """

    def __init__(self, session: AsyncSession):
        self.repository = TranscriptRepository(session)

    async def apply_inverse(self, target_id: str, content_before: Optional[str]) -> Optional[str]:
        episode_slug, lang, segment_id = parse_segment_target_id(target_id)
        restored: Optional[Segment] = None
        if content_before:
            try:
                restored = Segment.model_validate_json(content_before)
            except PydanticValidationError as e:
                raise _bad_snapshot(SEGMENT_TARGET, target_id, e) from e

        async with transcript_locks.hold(transcript_key(episode_slug, lang)):
            payload = await self.repository.load_payload(episode_slug, lang)
            segments = segment_store.delete(payload.utterances, segment_id)
            if restored is not None:
                idx = segment_store.find_index(payload.utterances, segment_id)
                if idx >= 0:
                    segments = [*payload.utterances[:idx], restored, *payload.utterances[idx + 1:]]
                else:
                    segments = segment_store.sort_segments([*segments, restored])

            updated = payload.model_copy(update={"utterances": segments, "text": rebuild_text(segments)})
            await self.repository.write_payload(episode_slug, lang, updated)

        logger.info(f"Restored segment {target_id}")
        return content_before


def default_revertibles(session: AsyncSession) -> Mapping[str, Revertible]:
    return {
        TRANSCRIPT_TARGET: TranscriptRevertible(session),
        SEGMENT_TARGET: SegmentRevertible(session),
    }


def dump_segment(segment: Optional[Segment]) -> Optional[str]:
    return segment.model_dump_json() if segment is not None else None


def dump_payload(payload: TranscriptPayload) -> str:
    return json.dumps(payload.model_dump(mode="json"), ensure_ascii=False)
