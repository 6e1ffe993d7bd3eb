"""
Editor login endpoints
"""

from typing import List

from fastapi import APIRouter

from transcript_desk.core.deps import CurrentEditorDep, OptionalEditorDep, SessionDep
from transcript_desk.core.logging import get_logger
from transcript_desk.schemas.editor import (
    EditorIdentity,
    EditorLogin,
    EditorResponse,
    LoginResponse,
    LogoutResponse,
)
from transcript_desk.services.editor_service import EditorService

logger = get_logger(__name__)

router = APIRouter()
editors_router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(request: EditorLogin, db: SessionDep):
    """
    Resolve or create the editor for this email and issue a bearer token.
    """
    service = EditorService(db)
    identity = await service.login(request.email, request.name)
    return LoginResponse(editor=identity, access_token=service.issue_token(identity))


@router.post("/logout", response_model=LogoutResponse)
async def logout(editor: OptionalEditorDep):
    # Tokens are stateless; the client drops its copy
    if editor is not None:
        logger.info(f"Editor {editor.id} logged out")
    return LogoutResponse()


@router.get("/me", response_model=EditorIdentity)
async def me(editor: CurrentEditorDep):
    return editor


@editors_router.get("", response_model=List[EditorResponse])
async def list_editors(db: SessionDep):
    """All editors, most recent login first"""
    return await EditorService(db).list_editors()
