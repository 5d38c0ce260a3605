"""Create analysis pipeline tables

Revision ID: c3e1a7d05b42
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c3e1a7d05b42'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

IN_FLIGHT = sa.text("status IN ('pending', 'processing')")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'documents',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('file_url', sa.String(length=1000), nullable=False),
        sa.Column('file_name', sa.String(length=500), nullable=False),
        sa.Column('mime_type', sa.String(length=255), nullable=True),
        sa.Column('size_bytes', sa.BigInteger(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_documents_user_id', 'documents', ['user_id'])
    op.create_index('idx_documents_user_status', 'documents', ['user_id', 'status'])

    op.create_table(
        'analysis_jobs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('document_id', sa.String(length=36), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_analysis_jobs_user_id', 'analysis_jobs', ['user_id'])
    op.create_index('idx_analysis_jobs_document_started', 'analysis_jobs', ['document_id', 'started_at'])
    # At most one pending/processing job per document
    op.create_index(
        'uq_analysis_jobs_document_in_flight',
        'analysis_jobs',
        ['document_id'],
        unique=True,
        postgresql_where=IN_FLIGHT,
        sqlite_where=IN_FLIGHT,
    )

    op.create_table(
        'analysis_results',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('document_id', sa.String(length=36), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='full'),
        sa.Column('overview_data', sa.JSON(), nullable=False),
        sa.Column('suggestions_data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['document_id'], ['documents.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_analysis_results_document_created', 'analysis_results', ['document_id', 'created_at'])

    op.create_table(
        'risk_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('analysis_id', sa.String(length=36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('level', sa.String(length=10), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=True, server_default='other'),
        sa.Column('suggestion', sa.Text(), nullable=True),
        sa.Column('clause_ref', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['analysis_id'], ['analysis_results.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_risk_items_analysis_id', 'risk_items', ['analysis_id'])

    op.create_table(
        'queue_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('queue', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('task_id', sa.String(length=155), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False, server_default='waiting'),
        sa.Column('attempt', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('backoff_base_ms', sa.Integer(), nullable=False, server_default='2000'),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('task_id'),
    )
    op.create_index('idx_queue_entries_state', 'queue_entries', ['queue', 'state'])
    op.create_index('idx_queue_entries_finished', 'queue_entries', ['queue', 'state', 'finished_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('idx_queue_entries_finished', table_name='queue_entries')
    op.drop_index('idx_queue_entries_state', table_name='queue_entries')
    op.drop_table('queue_entries')

    op.drop_index('ix_risk_items_analysis_id', table_name='risk_items')
    op.drop_table('risk_items')

    op.drop_index('idx_analysis_results_document_created', table_name='analysis_results')
    op.drop_table('analysis_results')

    op.drop_index('uq_analysis_jobs_document_in_flight', table_name='analysis_jobs')
    op.drop_index('idx_analysis_jobs_document_started', table_name='analysis_jobs')
    op.drop_index('ix_analysis_jobs_user_id', table_name='analysis_jobs')
    op.drop_table('analysis_jobs')

    op.drop_index('idx_documents_user_status', table_name='documents')
    op.drop_index('ix_documents_user_id', table_name='documents')
    op.drop_table('documents')
