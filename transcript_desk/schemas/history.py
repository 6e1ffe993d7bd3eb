"""
Edit History Schemas
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from transcript_desk.models.base import new_id


class EditEntryCreate(BaseModel):
    """What a caller supplies when appending; editor fields come from the identity"""

    # Minted up front so a failed append can be checked before retrying
    id: str = Field(default_factory=new_id)
    edit_type: str
    target_type: str
    target_id: str
    content_before: Optional[str] = None
    content_after: Optional[str] = None
    file_path: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class EditHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    editor_id: str
    editor_email: str
    editor_name: str
    edit_type: str
    target_type: str
    target_id: str
    file_path: Optional[str] = None
    content_before: Optional[str] = None
    content_after: Optional[str] = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("metadata_", "metadata"),
    )
    created_at: datetime
    is_rolled_back: bool
    rolled_back_by: Optional[str] = None
    rolled_back_at: Optional[datetime] = None
    rollback_reason: Optional[str] = None


class HistoryFilters(BaseModel):
    edit_type: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    editor_email: Optional[str] = None
    include_rolled_back: bool = True


class HistoryListResponse(BaseModel):
    entries: List[EditHistoryEntry]
    count: int


class RevertRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


class RevertResponse(BaseModel):
    success: bool = True
    restored_content: Optional[str] = None
    entry: EditHistoryEntry


class EditStats(BaseModel):
    total: int = 0
    rolled_back: int = 0
    active: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    recent_24h: int = 0
    recent_7d: int = 0
