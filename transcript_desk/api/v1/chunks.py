"""
Chunked transcript storage endpoints
"""

from typing import Optional

from fastapi import APIRouter

from transcript_desk.core.deps import OptionalEditorDep, SessionDep, unwrap
from transcript_desk.schemas.chunk import (
    ChunkSaveRequest,
    ChunkSaveResponse,
    ChunkSetMetadata,
    ClearChunksResponse,
    ReconstructedTranscript,
)
from transcript_desk.services.chunked_transcript_service import ChunkedTranscriptService
from transcript_desk.services.editor_service import require_auth

router = APIRouter()


@router.post("/{episode_slug}/{lang}", response_model=ChunkSaveResponse)
async def save_chunks(
    episode_slug: str,
    lang: str,
    db: SessionDep,
    editor: OptionalEditorDep,
    request: Optional[ChunkSaveRequest] = None,
):
    """Chunk the stored transcript, replacing any previous chunk set"""
    unwrap(require_auth(editor, "save_chunks"))
    request = request or ChunkSaveRequest()
    metadata = await ChunkedTranscriptService(db).save_chunks(
        episode_slug,
        lang,
        max_chunk_bytes=request.max_chunk_bytes,
        include_text=request.include_text,
    )
    return ChunkSaveResponse(success=True, metadata=metadata)


@router.get("/{episode_slug}/{lang}/info", response_model=Optional[ChunkSetMetadata])
async def get_chunks_info(episode_slug: str, lang: str, db: SessionDep):
    return await ChunkedTranscriptService(db).get_chunks_info(episode_slug, lang)


@router.get("/{episode_slug}/{lang}/reconstruct", response_model=Optional[ReconstructedTranscript])
async def reconstruct_transcript(episode_slug: str, lang: str, db: SessionDep):
    return await ChunkedTranscriptService(db).reconstruct_transcript(episode_slug, lang)


@router.delete("/{episode_slug}/{lang}", response_model=ClearChunksResponse)
async def clear_chunks(episode_slug: str, lang: str, db: SessionDep, editor: OptionalEditorDep):
    unwrap(require_auth(editor, "clear_chunks"))
    return ClearChunksResponse(success=await ChunkedTranscriptService(db).clear_chunks(episode_slug, lang))
