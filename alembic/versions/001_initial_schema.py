"""analyses_and_recent_results

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

analysis_status = sa.Enum('pending', 'in-progress', 'completed', 'failed', name='analysis_status')


def upgrade() -> None:
    """Upgrade schema."""
    # Create analyses table
    op.create_table(
        'analyses',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('status', analysis_status, nullable=False),
        sa.Column('requested_capabilities', sa.JSON(), nullable=False),
        sa.Column('results', sa.JSON(), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('attempt_count', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_analyses_id'), 'analyses', ['id'], unique=False)
    op.create_index(op.f('ix_analyses_url'), 'analyses', ['url'], unique=False)
    op.create_index(op.f('ix_analyses_status'), 'analyses', ['status'], unique=False)
    op.create_index(op.f('ix_analyses_user_id'), 'analyses', ['user_id'], unique=False)
    op.create_index('idx_analyses_url_created', 'analyses', ['url', 'created_at'], unique=False)

    # Create recent_results table
    op.create_table(
        'recent_results',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('analysis_id', sa.String(), nullable=False),
        sa.Column('url', sa.String(2048), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('technologies', sa.JSON(), nullable=False),
        sa.Column('performance_score', sa.Integer(), nullable=True),
        sa.Column('accessibility_score', sa.Integer(), nullable=True),
        sa.Column('seo_score', sa.Integer(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('analysis_id')
    )
    op.create_index(op.f('ix_recent_results_id'), 'recent_results', ['id'], unique=False)
    op.create_index(op.f('ix_recent_results_analysis_id'), 'recent_results', ['analysis_id'], unique=False)
    op.create_index(op.f('ix_recent_results_url'), 'recent_results', ['url'], unique=False)
    op.create_index(op.f('ix_recent_results_recorded_at'), 'recent_results', ['recorded_at'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_recent_results_recorded_at'), table_name='recent_results')
    op.drop_index(op.f('ix_recent_results_url'), table_name='recent_results')
    op.drop_index(op.f('ix_recent_results_analysis_id'), table_name='recent_results')
    op.drop_index(op.f('ix_recent_results_id'), table_name='recent_results')
    op.drop_table('recent_results')
    op.drop_index('idx_analyses_url_created', table_name='analyses')
    op.drop_index(op.f('ix_analyses_user_id'), table_name='analyses')
    op.drop_index(op.f('ix_analyses_status'), table_name='analyses')
    op.drop_index(op.f('ix_analyses_url'), table_name='analyses')
    op.drop_index(op.f('ix_analyses_id'), table_name='analyses')
    op.drop_table('analyses')
    analysis_status.drop(op.get_bind(), checkfirst=True)
