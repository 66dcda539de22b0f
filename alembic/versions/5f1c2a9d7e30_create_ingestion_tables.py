"""Create ingestion pipeline tables.

Revision ID: 5f1c2a9d7e30
Revises:
Create Date: 2026-10-19

Engagements, sessions, upload jobs with their stage progress, raw general
extraction output, extracted items and the content analysis operations log.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '5f1c2a9d7e30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create ingestion tables."""
    op.create_table(
        'design_weeks',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('current_phase', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('business_profile', postgresql.JSONB(), nullable=True,
                  comment='Business profile sections populated from extracted items'),
        sa.Column('technical_profile', postgresql.JSONB(), nullable=True,
                  comment='Technical profile sections populated from extracted items'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )

    op.create_table(
        'sessions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('design_week_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('design_weeks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('session_number', sa.Integer(), nullable=False),
        sa.Column('phase', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('processing_status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('design_week_id', 'session_number', name='uq_session_number'),
    )
    op.create_index('ix_sessions_design_week_id', 'sessions', ['design_week_id'])

    op.create_table(
        'upload_jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('design_week_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('design_weeks.id', ondelete='CASCADE'), nullable=False),

        # Artifact
        sa.Column('filename', sa.String(), nullable=False),
        sa.Column('mime_type', sa.String(), nullable=False),
        sa.Column('file_url', sa.String(), nullable=False, comment='Storage path'),
        sa.Column('file_size', sa.Integer(), nullable=False),

        # Lifecycle
        sa.Column('status', sa.String(), nullable=False, server_default='QUEUED'),
        sa.Column('current_stage', sa.String(), nullable=False, server_default='CLASSIFICATION'),
        sa.Column('stage_progress', postgresql.JSONB(), nullable=True,
                  comment='Last reported stage, percent, message and details'),
        sa.Column('error', sa.Text(), nullable=True),

        # Options
        sa.Column('extraction_mode', sa.String(), nullable=False, server_default='standard'),
        sa.Column('extraction_models', postgresql.JSONB(), nullable=True),

        # Stage outputs
        sa.Column('classification_result', postgresql.JSONB(), nullable=True),
        sa.Column('raw_extraction_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('population_result', postgresql.JSONB(), nullable=True),
        sa.Column('session_id', postgresql.UUID(as_uuid=True), nullable=True),

        sa.Column('retried_from_job_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('upload_jobs.id', ondelete='SET NULL'), nullable=True),

        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_upload_jobs_design_week_id', 'upload_jobs', ['design_week_id'])
    op.create_index('ix_upload_jobs_status', 'upload_jobs', ['status'])

    op.create_table(
        'raw_extractions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('design_week_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('design_weeks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('upload_job_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('content_type', sa.String(), nullable=False,
                  comment='AUDIO, DOCUMENT, TRANSCRIPT or UNKNOWN'),
        sa.Column('source_file_name', sa.String(), nullable=False),
        sa.Column('source_mime_type', sa.String(), nullable=False),
        sa.Column('raw_json', postgresql.JSONB(), nullable=False),
        sa.Column('extraction_metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_raw_extractions_design_week_id', 'raw_extractions', ['design_week_id'])
    op.create_index('ix_raw_extractions_upload_job_id', 'raw_extractions', ['upload_job_id'])

    op.create_table(
        'extracted_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('session_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('structured_data', postgresql.JSONB(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING',
                  comment='Derived from confidence at creation, then owned by reviewers'),
        sa.Column('source_quote', sa.Text(), nullable=True),
        sa.Column('source_speaker', sa.String(), nullable=True),
        sa.Column('source_timestamp', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_extracted_items_session_id', 'extracted_items', ['session_id'])
    op.create_index('ix_extracted_items_type', 'extracted_items', ['type'])

    op.create_table(
        'llm_operations',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('pipeline_name', sa.String(), nullable=False),
        sa.Column('model', sa.String(), nullable=False),
        sa.Column('input_tokens', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('output_tokens', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('latency_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('operation_metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_llm_operations_pipeline_name', 'llm_operations', ['pipeline_name'])


def downgrade() -> None:
    """Drop ingestion tables."""
    op.drop_index('ix_llm_operations_pipeline_name', table_name='llm_operations')
    op.drop_table('llm_operations')
    op.drop_index('ix_extracted_items_type', table_name='extracted_items')
    op.drop_index('ix_extracted_items_session_id', table_name='extracted_items')
    op.drop_table('extracted_items')
    op.drop_index('ix_raw_extractions_upload_job_id', table_name='raw_extractions')
    op.drop_index('ix_raw_extractions_design_week_id', table_name='raw_extractions')
    op.drop_table('raw_extractions')
    op.drop_index('ix_upload_jobs_status', table_name='upload_jobs')
    op.drop_index('ix_upload_jobs_design_week_id', table_name='upload_jobs')
    op.drop_table('upload_jobs')
    op.drop_index('ix_sessions_design_week_id', table_name='sessions')
    op.drop_table('sessions')
    op.drop_table('design_weeks')
