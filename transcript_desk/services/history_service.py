"""
Edit History Service

Append-only audit log of every mutation, with compensating reverts.
Entries are written once and flagged at most once; nothing is deleted.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import List, Mapping, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from transcript_desk.core.errors import (
    AlreadyRolledBack,
    NotFound,
    TransientStoreError,
    Unauthenticated,
    UnsupportedTarget,
)
from transcript_desk.core.logging import get_logger
from transcript_desk.core.time import utc_now
from transcript_desk.models.edit_history import EditHistory
from transcript_desk.schemas.editor import EditorIdentity
from transcript_desk.schemas.history import EditEntryCreate, EditStats, HistoryFilters
from transcript_desk.services.editor_service import AuthRequired, require_auth
from transcript_desk.services.revert_targets import Revertible, default_revertibles

logger = get_logger(__name__)

REVERT_PREFIX = "revert_"


@dataclass
class RevertOutcome:
    original: EditHistory
    entry: EditHistory
    restored_content: Optional[str]


class EditHistoryService:
    def __init__(
        self,
        session: AsyncSession,
        revertibles: Optional[Mapping[str, Revertible]] = None,
    ):
        self.session = session
        self.revertibles = revertibles if revertibles is not None else default_revertibles(session)

    # ============ Writes ============

    async def append(self, editor: Optional[EditorIdentity], entry: EditEntryCreate) -> EditHistory:
        """Write one immutable entry. Visible to get/list as soon as this returns."""
        if editor is None:
            raise Unauthenticated(
                "Editor authentication required",
                operation="history_append",
                target_type=entry.target_type,
                target_id=entry.target_id,
            )

        row = EditHistory(
            id=entry.id,
            editor_id=editor.id,
            editor_email=editor.email,
            editor_name=editor.name,
            edit_type=entry.edit_type,
            target_type=entry.target_type,
            target_id=entry.target_id,
            file_path=entry.file_path,
            content_before=entry.content_before,
            content_after=entry.content_after,
            metadata_=dict(entry.metadata),
            created_at=utc_now(),
            is_rolled_back=False,
        )
        self.session.add(row)
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"History append failed for {entry.target_type}/{entry.target_id}: {e}")
            raise TransientStoreError(
                "Failed to append edit history",
                target_type=entry.target_type,
                target_id=entry.target_id,
                operation="history_append",
            ) from e
        return row

    async def append_once(self, editor: Optional[EditorIdentity], entry: EditEntryCreate) -> EditHistory:
        """
        Append, and on a store failure retry only after confirming the first
        attempt did not land. Never produces a duplicate audit row.
        """
        try:
            return await self.append(editor, entry)
        except TransientStoreError:
            existing = await self._find(entry.id)
            if existing is not None:
                logger.warning(f"History entry {entry.id} was written despite the error")
                return existing
            logger.warning(f"Retrying history append for {entry.id}")
            return await self.append(editor, entry)

    # ============ Reads ============

    async def _find(self, edit_id: str) -> Optional[EditHistory]:
        try:
            return await self.session.get(EditHistory, edit_id, populate_existing=True)
        except SQLAlchemyError as e:
            raise TransientStoreError(
                "Failed to read edit history",
                target_type="edit_history",
                target_id=edit_id,
                operation="history_get",
            ) from e

    async def get(self, edit_id: str) -> EditHistory:
        entry = await self._find(edit_id)
        if entry is None:
            raise NotFound(
                f"Edit {edit_id} not found",
                target_type="edit_history",
                target_id=edit_id,
                operation="history_get",
            )
        return entry

    def _filtered(self, filters: HistoryFilters):
        stmt = select(EditHistory)
        if filters.edit_type:
            stmt = stmt.where(EditHistory.edit_type == filters.edit_type)
        if filters.target_type:
            stmt = stmt.where(EditHistory.target_type == filters.target_type)
        if filters.target_id:
            stmt = stmt.where(EditHistory.target_id == filters.target_id)
        if filters.editor_email:
            stmt = stmt.where(EditHistory.editor_email == filters.editor_email.strip().lower())
        if not filters.include_rolled_back:
            stmt = stmt.where(EditHistory.is_rolled_back.is_(False))
        return stmt

    async def list(
        self,
        filters: Optional[HistoryFilters] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[List[EditHistory], int]:
        """Newest first. Returns the page and the total matching count."""
        filters = filters or HistoryFilters()
        stmt = self._filtered(filters)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.session.execute(count_stmt)).scalar_one()

        page = (
            stmt.order_by(EditHistory.created_at.desc(), EditHistory.id.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(page)
        return list(result.scalars().all()), total

    async def target_history(self, target_type: str, target_id: str) -> List[EditHistory]:
        entries, _ = await self.list(
            HistoryFilters(target_type=target_type, target_id=target_id),
            limit=10_000,
        )
        return entries

    async def stats(self, editor_email: Optional[str] = None) -> EditStats:
        base = select(EditHistory.edit_type, EditHistory.is_rolled_back, EditHistory.created_at)
        if editor_email:
            base = base.where(EditHistory.editor_email == editor_email.strip().lower())
        sub = base.subquery()

        by_type_rows = await self.session.execute(
            select(sub.c.edit_type, func.count()).group_by(sub.c.edit_type)
        )
        by_type = {edit_type: count for edit_type, count in by_type_rows.all()}

        rolled_back = (
            await self.session.execute(
                select(func.count()).select_from(sub).where(sub.c.is_rolled_back.is_(True))
            )
        ).scalar_one()

        now = utc_now()
        recent_24h = (
            await self.session.execute(
                select(func.count()).select_from(sub).where(sub.c.created_at >= now - timedelta(days=1))
            )
        ).scalar_one()
        recent_7d = (
            await self.session.execute(
                select(func.count()).select_from(sub).where(sub.c.created_at >= now - timedelta(days=7))
            )
        ).scalar_one()

        total = sum(by_type.values())
        return EditStats(
            total=total,
            rolled_back=rolled_back,
            active=total - rolled_back,
            by_type=by_type,
            recent_24h=recent_24h,
            recent_7d=recent_7d,
        )

    async def find_compensating_entry(self, edit_id: str) -> Optional[EditHistory]:
        # JSON path lookups differ across backends; filter the few candidates in Python
        stmt = select(EditHistory).where(EditHistory.edit_type.startswith(REVERT_PREFIX))
        original = await self.get(edit_id)
        stmt = stmt.where(
            EditHistory.target_type == original.target_type,
            EditHistory.target_id == original.target_id,
        )
        result = await self.session.execute(stmt)
        for entry in result.scalars().all():
            if (entry.metadata_ or {}).get("reverted_edit_id") == edit_id:
                return entry
        return None

    # ============ Revert ============

    async def _mark_rolled_back(self, edit_id: str, editor_email: str, reason: Optional[str]) -> bool:
        """Conditional flag update; False when someone else already flagged it"""
        stmt = (
            update(EditHistory)
            .where(EditHistory.id == edit_id, EditHistory.is_rolled_back.is_(False))
            .values(
                is_rolled_back=True,
                rolled_back_by=editor_email,
                rolled_back_at=utc_now(),
                rollback_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise TransientStoreError(
                "Failed to flag edit as rolled back",
                target_type="edit_history",
                target_id=edit_id,
                operation="revert",
            ) from e
        return result.rowcount == 1

    def _already_rolled_back(self, original: EditHistory) -> AlreadyRolledBack:
        return AlreadyRolledBack(
            f"Edit {original.id} was already rolled back",
            target_type=original.target_type,
            target_id=original.target_id,
            operation="revert",
            details={"edit_id": original.id, "rolled_back_by": original.rolled_back_by},
        )

    async def revert(
        self,
        editor: Optional[EditorIdentity],
        edit_id: str,
        reason: Optional[str] = None,
    ) -> Union[RevertOutcome, AuthRequired]:
        """
        Undo an edit by writing its content_before back to the target, then
        flag it and append a compensating entry.

        The flag only flips after the content write succeeded. If the write
        fails the original entry is left untouched. An entry that is flagged
        but has no compensating entry (the append failed after the flag
        landed) can be reverted again to finish the job.
        """
        auth = require_auth(editor, "revert")
        if isinstance(auth, AuthRequired):
            return auth

        original = await self.get(edit_id)
        resuming = original.is_rolled_back
        if resuming and await self.find_compensating_entry(edit_id) is not None:
            raise self._already_rolled_back(original)

        revertible = self.revertibles.get(original.target_type)
        if revertible is None:
            raise UnsupportedTarget(
                f"Edits on '{original.target_type}' cannot be reverted",
                target_type=original.target_type,
                target_id=original.target_id,
                operation="revert",
            )

        # Writing content_before again is idempotent
        restored = await revertible.apply_inverse(original.target_id, original.content_before)

        if resuming:
            logger.warning(f"Completing interrupted revert of {edit_id}")
            reason = original.rollback_reason if reason is None else reason
        else:
            flagged = await self._mark_rolled_back(edit_id, auth.email, reason)
            if not flagged and await self.find_compensating_entry(edit_id) is not None:
                # Another editor finished the same revert in the meantime
                raise self._already_rolled_back(await self.get(edit_id))

        entry = await self.append_once(
            auth,
            EditEntryCreate(
                edit_type=f"{REVERT_PREFIX}{original.edit_type}",
                target_type=original.target_type,
                target_id=original.target_id,
                file_path=original.file_path,
                content_before=original.content_after,
                content_after=original.content_before,
                metadata={
                    **{k: v for k, v in (original.metadata_ or {}).items() if k != "reverted_edit_id"},
                    "reverted_edit_id": original.id,
                    "reverted_edit_type": original.edit_type,
                    "rollback_reason": reason,
                },
            ),
        )
        original = await self.get(edit_id)
        logger.info(f"Edit {edit_id} reverted by {auth.email} as {entry.id}")
        return RevertOutcome(original=original, entry=entry, restored_content=restored)
