"""
Edit history endpoints
"""

from typing import List, Optional

from fastapi import APIRouter, Query

from transcript_desk.core.deps import OptionalEditorDep, SessionDep, unwrap
from transcript_desk.schemas.history import (
    EditHistoryEntry,
    EditStats,
    HistoryFilters,
    HistoryListResponse,
    RevertRequest,
    RevertResponse,
)
from transcript_desk.services.history_service import EditHistoryService

router = APIRouter()


@router.get("", response_model=HistoryListResponse)
async def list_history(
    db: SessionDep,
    edit_type: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[str] = None,
    editor_email: Optional[str] = None,
    include_rolled_back: bool = True,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    filters = HistoryFilters(
        edit_type=edit_type,
        target_type=target_type,
        target_id=target_id,
        editor_email=editor_email,
        include_rolled_back=include_rolled_back,
    )
    entries, count = await EditHistoryService(db).list(filters, limit=limit, offset=offset)
    return HistoryListResponse(
        entries=[EditHistoryEntry.model_validate(e) for e in entries],
        count=count,
    )


@router.get("/stats", response_model=EditStats)
async def history_stats(db: SessionDep, editor_email: Optional[str] = None):
    return await EditHistoryService(db).stats(editor_email)


@router.get("/target/{target_type}/{target_id}", response_model=List[EditHistoryEntry])
async def target_history(target_type: str, target_id: str, db: SessionDep):
    entries = await EditHistoryService(db).target_history(target_type, target_id)
    return [EditHistoryEntry.model_validate(e) for e in entries]


@router.get("/{edit_id}", response_model=EditHistoryEntry)
async def get_entry(edit_id: str, db: SessionDep):
    return EditHistoryEntry.model_validate(await EditHistoryService(db).get(edit_id))


@router.post("/{edit_id}/revert", response_model=RevertResponse)
async def revert_entry(
    edit_id: str,
    db: SessionDep,
    editor: OptionalEditorDep,
    request: Optional[RevertRequest] = None,
):
    """Restore the content an edit replaced and log the revert as a new entry"""
    reason = request.reason if request else None
    outcome = unwrap(await EditHistoryService(db).revert(editor, edit_id, reason))
    return RevertResponse(
        restored_content=outcome.restored_content,
        entry=EditHistoryEntry.model_validate(outcome.entry),
    )
