"""Initial editing schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('editors',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=True),
    sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id', name='pk_editors')
    )
    op.create_index('ix_editors_email', 'editors', ['email'], unique=True)

    op.create_table('edit_history',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('editor_id', sa.String(length=36), nullable=False),
    sa.Column('editor_email', sa.String(length=255), nullable=False),
    sa.Column('editor_name', sa.String(length=100), nullable=False),
    sa.Column('edit_type', sa.String(length=64), nullable=False),
    sa.Column('target_type', sa.String(length=64), nullable=False),
    sa.Column('target_id', sa.String(length=255), nullable=False),
    sa.Column('file_path', sa.String(length=512), nullable=True),
    sa.Column('content_before', sa.Text(), nullable=True),
    sa.Column('content_after', sa.Text(), nullable=True),
    sa.Column('metadata', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('is_rolled_back', sa.Boolean(), nullable=False),
    sa.Column('rolled_back_by', sa.String(length=255), nullable=True),
    sa.Column('rolled_back_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('rollback_reason', sa.Text(), nullable=True),
    sa.PrimaryKeyConstraint('id', name='pk_edit_history')
    )
    op.create_index('ix_edit_history_edit_type', 'edit_history', ['edit_type'])
    op.create_index('ix_edit_history_target', 'edit_history', ['target_type', 'target_id'])
    op.create_index('ix_edit_history_editor_created', 'edit_history', ['editor_email', 'created_at'])

    op.create_table('transcripts',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('episode_slug', sa.String(length=255), nullable=False),
    sa.Column('lang', sa.String(length=16), nullable=False),
    sa.Column('data', sa.JSON(), nullable=True),
    sa.Column('chunking_metadata', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id', name='pk_transcripts'),
    sa.UniqueConstraint('episode_slug', 'lang', name='uq_transcripts_episode_lang')
    )
    op.create_index('ix_transcripts_episode_slug', 'transcripts', ['episode_slug'])

    op.create_table('transcript_chunks',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('episode_slug', sa.String(length=255), nullable=False),
    sa.Column('lang', sa.String(length=16), nullable=False),
    sa.Column('chunk_index', sa.Integer(), nullable=False),
    sa.Column('chunk_kind', sa.String(length=16), nullable=False),
    sa.Column('payload', sa.Text(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id', name='pk_transcript_chunks'),
    sa.UniqueConstraint('episode_slug', 'lang', 'chunk_index', 'chunk_kind', name='uq_transcript_chunks_key')
    )
    op.create_index('ix_transcript_chunks_episode_slug', 'transcript_chunks', ['episode_slug'])


def downgrade() -> None:
    op.drop_index('ix_transcript_chunks_episode_slug', table_name='transcript_chunks')
    op.drop_table('transcript_chunks')
    op.drop_index('ix_transcripts_episode_slug', table_name='transcripts')
    op.drop_table('transcripts')
    op.drop_index('ix_edit_history_editor_created', table_name='edit_history')
    op.drop_index('ix_edit_history_target', table_name='edit_history')
    op.drop_index('ix_edit_history_edit_type', table_name='edit_history')
    op.drop_table('edit_history')
    op.drop_index('ix_editors_email', table_name='editors')
    op.drop_table('editors')
