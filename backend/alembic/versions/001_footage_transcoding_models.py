"""Footage and transcoding models migration.

Revision ID: 001
Revises:
Create Date: 2026-01-11 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create video_assets table
    op.create_table(
        'video_assets',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('original_key', sa.String(1024), nullable=False),
        sa.Column('thumbnail_small_key', sa.String(1024), nullable=True),
        sa.Column('thumbnail_medium_key', sa.String(1024), nullable=True),
        sa.Column('thumbnail_large_key', sa.String(1024), nullable=True),
        sa.Column('processing_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('processing_error', sa.String(1024), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_video_assets_owner_id', 'video_assets', ['owner_id'])

    # Create renditions table (where each finished quality lives)
    op.create_table(
        'renditions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('asset_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('quality', sa.String(10), nullable=False),
        sa.Column('storage_key', sa.String(1024), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['asset_id'], ['video_assets.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('asset_id', 'quality', name='uq_renditions_asset_quality'),
    )
    op.create_index('ix_renditions_asset_id', 'renditions', ['asset_id'])

    # Create encoding_progress table (how far each quality got)
    op.create_table(
        'encoding_progress',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('asset_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('quality', sa.String(10), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['asset_id'], ['video_assets.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('asset_id', 'quality', name='uq_encoding_progress_asset_quality'),
        sa.CheckConstraint('progress >= 0 AND progress <= 100', name='ck_encoding_progress_range'),
    )
    op.create_index('ix_encoding_progress_asset_id', 'encoding_progress', ['asset_id'])


def downgrade() -> None:
    op.drop_index('ix_encoding_progress_asset_id', table_name='encoding_progress')
    op.drop_table('encoding_progress')
    op.drop_index('ix_renditions_asset_id', table_name='renditions')
    op.drop_table('renditions')
    op.drop_index('ix_video_assets_owner_id', table_name='video_assets')
    op.drop_table('video_assets')
