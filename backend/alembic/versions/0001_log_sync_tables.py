"""log sync status and progress

Revision ID: 0001_log_sync_tables
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = '0001_log_sync_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'log_sync_status',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sync_date', sa.Date(), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('message', sa.Text(), nullable=False, server_default=''),
        sa.Column('last_modified', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sync_date', 'category', name='uq_log_sync_status_date_category'),
    )
    op.create_index('ix_log_sync_status_id', 'log_sync_status', ['id'])
    op.create_index('ix_log_sync_status_sync_date', 'log_sync_status', ['sync_date'])
    op.create_index('ix_log_sync_status_category', 'log_sync_status', ['category'])

    op.create_table(
        'log_sync_progress',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sync_date', sa.Date(), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('row', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_modified', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sync_date', 'category', name='uq_log_sync_progress_date_category'),
    )
    op.create_index('ix_log_sync_progress_id', 'log_sync_progress', ['id'])


def downgrade() -> None:
    op.drop_index('ix_log_sync_progress_id', table_name='log_sync_progress')
    op.drop_table('log_sync_progress')
    op.drop_index('ix_log_sync_status_category', table_name='log_sync_status')
    op.drop_index('ix_log_sync_status_sync_date', table_name='log_sync_status')
    op.drop_index('ix_log_sync_status_id', table_name='log_sync_status')
    op.drop_table('log_sync_status')
