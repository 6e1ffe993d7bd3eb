"""
Chunk Schemas
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field


class ChunkSetMetadata(BaseModel):
    total_chunks: int
    text_chunks: int
    utterance_chunks: int
    chunk_size: int
    chunked_at: datetime


class ChunkSaveRequest(BaseModel):
    max_chunk_bytes: Optional[int] = Field(default=None, ge=64)
    include_text: bool = True


class ChunkSaveResponse(BaseModel):
    success: bool
    metadata: ChunkSetMetadata


class ReconstructedTranscript(BaseModel):
    text: str
    utterances: List[dict[str, Any]]
    chunk_count: int
    reconstructed: bool = True


class ClearChunksResponse(BaseModel):
    success: bool
