"""
Editor Service

Lightweight editor identity: get-or-create by normalized email, plus the
auth gate every mutating entry point consults first.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from transcript_desk.core.errors import InvalidFormat, LoginError, Unauthenticated
from transcript_desk.core.logging import get_logger
from transcript_desk.core.security import create_access_token, decode_token
from transcript_desk.core.time import as_utc, utc_now
from transcript_desk.models.editor import Editor
from transcript_desk.schemas.editor import EditorIdentity

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
NAME_PATTERN = re.compile(r"^[A-Za-z\s\-]+$")


@dataclass(frozen=True)
class AuthRequired:
    """
    Returned instead of a result when no editor is resolved.
    The caller prompts for login and retries the same operation.
    """

    operation: str

    def to_error(self) -> Unauthenticated:
        return Unauthenticated(
            "Editor authentication required",
            operation=self.operation,
        )


def require_auth(editor: Optional[EditorIdentity], operation: str) -> Union[EditorIdentity, AuthRequired]:
    if editor is None:
        logger.info(f"Rejected unauthenticated {operation}")
        return AuthRequired(operation)
    return editor


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_credentials(email: str, name: str) -> tuple[str, str]:
    """Check charset rules and return (normalized_email, trimmed_name)"""
    trimmed_email = email.strip()
    trimmed_name = name.strip()
    if not trimmed_email or not trimmed_name:
        raise InvalidFormat("Email and name are required", operation="login")
    if not EMAIL_PATTERN.match(trimmed_email):
        raise InvalidFormat(
            "Email must contain only Latin characters",
            operation="login",
            details={"field": "email"},
        )
    try:
        # Consecutive dots, special-use domains and the like
        validate_email(trimmed_email, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidFormat(
            f"Email is not valid: {e}",
            operation="login",
            details={"field": "email"},
        ) from e
    if not NAME_PATTERN.match(trimmed_name):
        raise InvalidFormat(
            "Name must contain only Latin characters, spaces, and hyphens",
            operation="login",
            details={"field": "name"},
        )
    return normalize_email(trimmed_email), trimmed_name


class EditorService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_email(self, email: str) -> Optional[Editor]:
        result = await self.session.execute(select(Editor).where(Editor.email == normalize_email(email)))
        return result.scalars().first()

    async def get_editor(self, editor_id: str) -> Optional[Editor]:
        return await self.session.get(Editor, editor_id)

    async def list_editors(self) -> List[Editor]:
        """All editors, most recent login first"""
        stmt = select(Editor).order_by(Editor.last_login.desc(), Editor.created_at.desc())
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def login(self, email: str, name: str) -> EditorIdentity:
        """
        Resolve or create the editor for this email.

        Repeat logins with the same email return the same record; the stored
        name stays authoritative.
        """
        normalized_email, trimmed_name = validate_credentials(email, name)
        now = utc_now()

        try:
            editor = await self._get_or_create(normalized_email, trimmed_name)
            editor.last_login = now
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Login failed for {normalized_email}: {e}")
            raise LoginError(
                "Could not resolve editor",
                operation="login",
                target_type="editor",
                target_id=normalized_email,
            ) from e

        logger.info(f"Editor {editor.id} logged in")
        return EditorIdentity(id=editor.id, email=editor.email, name=editor.name, login_time=now)

    async def _get_or_create(self, email: str, name: str) -> Editor:
        editor = await self.get_by_email(email)
        if editor is not None:
            return editor

        editor = Editor(email=email, name=name)
        self.session.add(editor)
        try:
            await self.session.flush()
        except IntegrityError:
            # Lost a race with a concurrent first login
            await self.session.rollback()
            editor = await self.get_by_email(email)
            if editor is None:
                raise
        return editor

    def issue_token(self, identity: EditorIdentity) -> str:
        return create_access_token(
            {
                "sub": identity.id,
                "email": identity.email,
                "name": identity.name,
                "login_time": identity.login_time.isoformat(),
            }
        )

    async def resolve_token(self, token: str) -> Optional[EditorIdentity]:
        """Identity for a bearer token, or None when invalid or deactivated"""
        payload = decode_token(token)
        if not payload or not payload.get("sub"):
            return None

        editor = await self.get_editor(payload["sub"])
        if editor is None or not editor.is_active:
            return None

        login_time_raw = payload.get("login_time")
        try:
            login_time = datetime.fromisoformat(login_time_raw) if login_time_raw else utc_now()
        except ValueError:
            login_time = utc_now()

        return EditorIdentity(
            id=editor.id,
            email=editor.email,
            name=editor.name,
            login_time=as_utc(login_time),
        )
