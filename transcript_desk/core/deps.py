"""
Dependency Injection

FastAPI dependencies for routes.
"""

from typing import Annotated, Optional, TypeVar, Union

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from transcript_desk.infra.db import get_db
from transcript_desk.schemas.editor import EditorIdentity
from transcript_desk.services.editor_service import AuthRequired, EditorService

# Missing credentials resolve to None instead of a 403 so services can
# answer with AuthRequired themselves
bearer_scheme = HTTPBearer(auto_error=False)

# Type aliases for common dependencies
SessionDep = Annotated[AsyncSession, Depends(get_db)]

T = TypeVar("T")


async def get_optional_editor(
    db: SessionDep,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
) -> Optional[EditorIdentity]:
    if credentials is None or not credentials.credentials:
        return None
    return await EditorService(db).resolve_token(credentials.credentials)


OptionalEditorDep = Annotated[Optional[EditorIdentity], Depends(get_optional_editor)]


async def get_current_editor(editor: OptionalEditorDep) -> EditorIdentity:
    """For read endpoints that still need an identity (e.g. /auth/me)"""
    if editor is None:
        raise AuthRequired("me").to_error()
    return editor


CurrentEditorDep = Annotated[EditorIdentity, Depends(get_current_editor)]


def unwrap(result: Union[T, AuthRequired]) -> T:
    """Turn the AuthRequired signal into the 401 response the UI expects"""
    if isinstance(result, AuthRequired):
        raise result.to_error()
    return result
