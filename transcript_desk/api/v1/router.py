"""
API Router configuration
"""

from fastapi import APIRouter

from transcript_desk.api.v1 import (
    auth,
    chunks,
    health,
    history,
    transcripts,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(auth.editors_router, prefix="/editors", tags=["auth"])
api_router.include_router(transcripts.router, prefix="/transcripts", tags=["transcripts"])
api_router.include_router(history.router, prefix="/history", tags=["history"])
api_router.include_router(chunks.router, prefix="/chunks", tags=["chunks"])
