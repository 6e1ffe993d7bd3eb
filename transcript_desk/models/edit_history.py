"""
Edit History Model

Append-only audit rows. A row is written once and updated at most once,
to flag it as rolled back.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from transcript_desk.core.time import utc_now
from transcript_desk.models.base import Base, new_id


class EditHistory(Base):
    __tablename__ = "edit_history"
    __table_args__ = (
        Index("ix_edit_history_target", "target_type", "target_id"),
        Index("ix_edit_history_editor_created", "editor_email", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    # Who
    editor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    editor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    editor_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # What
    edit_type: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    target_type: Mapped[str] = mapped_column(String(64), nullable=False)
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    content_before: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    content_after: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    # Rollback bookkeeping
    is_rolled_back: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rolled_back_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    rolled_back_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rollback_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
