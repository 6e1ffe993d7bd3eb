"""
Segment Schemas

Transcript segments, their word alignment, and the segment operations the
editing service accepts.
"""

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _coerce_label(v: Any) -> Optional[str]:
    # Speakers and ids arrive as ints from some ASR providers
    if v is None:
        return None
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class Word(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str
    start: float
    end: float


class Segment(BaseModel):
    """One contiguous span of speech. Unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")

    id: str
    start: float
    end: float
    text: str = ""
    words: List[Word] = Field(default_factory=list)
    speaker: Optional[str] = None

    @field_validator("id", "speaker", mode="before")
    @classmethod
    def coerce_labels(cls, v: Any) -> Optional[str]:
        return _coerce_label(v)


class TranscriptPayload(BaseModel):
    """Stored transcript body for one (episode_slug, lang)"""

    model_config = ConfigDict(extra="allow")

    text: str = ""
    utterances: List[Segment] = Field(default_factory=list)


class TranscriptResponse(BaseModel):
    episode_slug: str
    lang: str
    text: str
    utterances: List[Segment]


class TranscriptCreate(BaseModel):
    text: str = ""
    utterances: List[Segment] = Field(default_factory=list)


# ============ Operations ============

class SplitOperation(BaseModel):
    type: Literal["split"] = "split"
    segment_id: str
    cursor_position: int


class MergeOperation(BaseModel):
    type: Literal["merge"] = "merge"
    segment_id: str


class DeleteOperation(BaseModel):
    type: Literal["delete"] = "delete"
    segment_id: str


class UpdateTextOperation(BaseModel):
    type: Literal["update_text"] = "update_text"
    segment_id: str
    new_text: str


class ReassignSpeakerOperation(BaseModel):
    type: Literal["reassign_speaker"] = "reassign_speaker"
    segment_id: str
    new_speaker: Optional[str] = None
    is_global: bool = False

    @field_validator("new_speaker", mode="before")
    @classmethod
    def coerce_speaker(cls, v: Any) -> Optional[str]:
        return _coerce_label(v)


SegmentOperation = Annotated[
    Union[
        SplitOperation,
        MergeOperation,
        DeleteOperation,
        UpdateTextOperation,
        ReassignSpeakerOperation,
    ],
    Field(discriminator="type"),
]

DESTRUCTIVE_OPERATIONS = frozenset({"split", "merge", "delete"})


class ApplyOperationRequest(BaseModel):
    operation: SegmentOperation
    confirmed: bool = False


class ApplyOperationResponse(BaseModel):
    operation_type: str
    segments: List[Segment]
    history_entry_id: Optional[str] = None
    confirmation_required: bool = False
