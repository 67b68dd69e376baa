"""Create jobs table

Revision ID: 001
Revises: 
Create Date: 2026-10-18

Creates the job store table with the asset-extraction state columns.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'jobs',
        sa.Column('id', sa.String(64), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('source_pdf_path', sa.String(1024), nullable=True),
        sa.Column('folders', sa.JSON(), nullable=True),
        sa.Column('ai_extraction_started', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ai_extraction_ended', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ai_processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('ai_extraction_complete', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('ai_extraction_error', sa.Text(), nullable=True),
        sa.Column('ai_extracted_assets', sa.JSON(), nullable=True),
        sa.Column('construction_sketches', sa.JSON(), nullable=True),
        sa.Column('version_id', sa.Integer(), server_default='1', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    # Crash-recovery sweep filters on the start timestamp
    op.create_index('ix_jobs_ai_extraction_started', 'jobs', ['ai_extraction_started'])


def downgrade() -> None:
    op.drop_index('ix_jobs_ai_extraction_started', table_name='jobs')
    op.drop_table('jobs')
