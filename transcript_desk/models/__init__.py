from transcript_desk.models.base import Base
from transcript_desk.models.edit_history import EditHistory
from transcript_desk.models.editor import Editor
from transcript_desk.models.transcript import Transcript, TranscriptChunk

__all__ = [
    "Base",
    "Editor",
    "EditHistory",
    "Transcript",
    "TranscriptChunk",
]
