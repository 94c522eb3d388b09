"""initial_memory_pipeline

Revision ID: 3c8e1f5a92d4
Revises:
Create Date: 2026-10-18 10:12:44.301518

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c8e1f5a92d4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create conversation store, ledger, profile and job tables."""
    op.create_table(
        'conversations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_conversations_user_id', 'conversations', ['user_id'])
    op.create_index('ix_conversations_created_at', 'conversations', ['created_at'])

    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('conversation_id', sa.Uuid(), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('content', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'])

    op.create_table(
        'conversation_analyses',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('conversation_id', sa.Uuid(), nullable=False),
        sa.Column(
            'processing_status',
            sa.Enum('COMPLETED', 'SKIPPED', 'FAILED', name='processingstatus'),
            nullable=False,
        ),
        sa.Column('skip_reason', sa.String(length=255), nullable=True),
        sa.Column('analysis_result', sa.JSON(), nullable=True),
        sa.Column('error_details', sa.JSON(), nullable=True),
        sa.Column('quality_score', sa.Integer(), nullable=False),
        sa.Column('message_count', sa.Integer(), nullable=False),
        sa.Column('total_tokens', sa.Integer(), nullable=False),
        sa.Column('processing_duration_ms', sa.Integer(), nullable=False),
        sa.Column('extraction_metadata', sa.JSON(), nullable=True),
        sa.Column('extracted_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'conversation_id', name='uq_conversation_analyses_user_conversation'),
    )
    op.create_index('ix_conversation_analyses_user_id', 'conversation_analyses', ['user_id'])
    op.create_index('ix_conversation_analyses_conversation_id', 'conversation_analyses', ['conversation_id'])
    op.create_index('ix_conversation_analyses_processing_status', 'conversation_analyses', ['processing_status'])

    op.create_table(
        'user_profiles',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('profile_data', sa.JSON(), nullable=True),
        sa.Column('conversation_count', sa.Integer(), nullable=False),
        sa.Column('message_count', sa.Integer(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('ai_summary', sa.String(), nullable=True),
        sa.Column('ai_summary_version', sa.Integer(), nullable=False),
        sa.Column('ai_summary_updated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_profiles_user_id', 'user_profiles', ['user_id'], unique=True)

    op.create_table(
        'memory_jobs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column(
            'status',
            sa.Enum('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', name='memoryjobstatus'),
            nullable=False,
        ),
        sa.Column('job_type', sa.Enum('MEMORY_PROCESSING', name='memoryjobtype'), nullable=False),
        sa.Column('total_conversations', sa.Integer(), nullable=False),
        sa.Column('processed_conversations', sa.Integer(), nullable=False),
        sa.Column('progress_percentage', sa.Integer(), nullable=False),
        sa.Column('batch_size', sa.Integer(), nullable=False),
        sa.Column('conversations_skipped', sa.Integer(), nullable=False),
        sa.Column('conversations_failed', sa.Integer(), nullable=False),
        sa.Column('conversations_duplicate', sa.Integer(), nullable=False),
        sa.Column('total_tokens_processed', sa.Integer(), nullable=False),
        sa.Column('average_quality_score', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('error_message', sa.String(), nullable=True),
        sa.Column('processing_details', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_memory_jobs_user_id', 'memory_jobs', ['user_id'])
    op.create_index('ix_memory_jobs_status', 'memory_jobs', ['status'])


def downgrade() -> None:
    """Drop all memoir tables."""
    op.drop_index('ix_memory_jobs_status', table_name='memory_jobs')
    op.drop_index('ix_memory_jobs_user_id', table_name='memory_jobs')
    op.drop_table('memory_jobs')

    op.drop_index('ix_user_profiles_user_id', table_name='user_profiles')
    op.drop_table('user_profiles')

    op.drop_index('ix_conversation_analyses_processing_status', table_name='conversation_analyses')
    op.drop_index('ix_conversation_analyses_conversation_id', table_name='conversation_analyses')
    op.drop_index('ix_conversation_analyses_user_id', table_name='conversation_analyses')
    op.drop_table('conversation_analyses')

    op.drop_index('ix_messages_conversation_id', table_name='messages')
    op.drop_table('messages')

    op.drop_index('ix_conversations_created_at', table_name='conversations')
    op.drop_index('ix_conversations_user_id', table_name='conversations')
    op.drop_table('conversations')

    if op.get_bind().dialect.name == 'postgresql':
        op.execute('DROP TYPE IF EXISTS memoryjobtype')
        op.execute('DROP TYPE IF EXISTS memoryjobstatus')
        op.execute('DROP TYPE IF EXISTS processingstatus')
