"""
Transcript editing endpoints
"""

from fastapi import APIRouter, status

from transcript_desk.core.deps import OptionalEditorDep, SessionDep, unwrap
from transcript_desk.schemas.segment import (
    ApplyOperationRequest,
    ApplyOperationResponse,
    TranscriptCreate,
    TranscriptPayload,
    TranscriptResponse,
)
from transcript_desk.services.transcript_service import ConfirmationRequired, TranscriptEditingService

router = APIRouter()


def _response(episode_slug: str, lang: str, payload: TranscriptPayload) -> TranscriptResponse:
    return TranscriptResponse(
        episode_slug=episode_slug,
        lang=lang,
        text=payload.text,
        utterances=payload.utterances,
    )


@router.get("/{episode_slug}/{lang}", response_model=TranscriptResponse)
async def get_transcript(episode_slug: str, lang: str, db: SessionDep):
    payload = await TranscriptEditingService(db).get_transcript(episode_slug, lang)
    return _response(episode_slug, lang, payload)


@router.post("/{episode_slug}/{lang}", response_model=TranscriptResponse, status_code=status.HTTP_201_CREATED)
async def create_transcript(
    episode_slug: str,
    lang: str,
    request: TranscriptCreate,
    db: SessionDep,
    editor: OptionalEditorDep,
):
    service = TranscriptEditingService(db)
    payload = TranscriptPayload(text=request.text, utterances=request.utterances)
    unwrap(await service.create_transcript(editor, episode_slug, lang, payload))
    return _response(episode_slug, lang, await service.get_transcript(episode_slug, lang))


@router.put("/{episode_slug}/{lang}", response_model=ApplyOperationResponse)
async def replace_transcript(
    episode_slug: str,
    lang: str,
    request: TranscriptCreate,
    db: SessionDep,
    editor: OptionalEditorDep,
):
    """Replace the whole transcript body. Logged as transcript_replace."""
    payload = TranscriptPayload(text=request.text, utterances=request.utterances)
    result = unwrap(await TranscriptEditingService(db).save_transcript(editor, episode_slug, lang, payload))
    return ApplyOperationResponse(
        operation_type=result.operation_type,
        segments=result.segments,
        history_entry_id=result.history_entry_id,
    )


@router.post("/{episode_slug}/{lang}/operations", response_model=ApplyOperationResponse)
async def apply_operation(
    episode_slug: str,
    lang: str,
    request: ApplyOperationRequest,
    db: SessionDep,
    editor: OptionalEditorDep,
):
    """
    Apply one segment operation (split, merge, delete, update_text,
    reassign_speaker).

    Destructive operations answer with confirmation_required=True and leave
    the transcript untouched until they are resent with confirmed=true.
    """
    service = TranscriptEditingService(db)
    result = unwrap(
        await service.apply_operation(
            editor,
            episode_slug,
            lang,
            request.operation,
            confirmed=request.confirmed,
        )
    )

    if isinstance(result, ConfirmationRequired):
        current = await service.get_transcript(episode_slug, lang)
        return ApplyOperationResponse(
            operation_type=result.operation_type,
            segments=current.utterances,
            confirmation_required=True,
        )

    return ApplyOperationResponse(
        operation_type=result.operation_type,
        segments=result.segments,
        history_entry_id=result.history_entry_id,
    )
