"""presigned upload tasks

Revision ID: tenant_000001_presigned_upload_tasks
Revises: 
Create Date: 2026-09-28
"""

from alembic import op
import sqlalchemy as sa


revision = 'tenant_000001_presigned_upload_tasks'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'presigned_upload_tasks',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('file_key', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('mime', sa.String(), nullable=True),
        sa.Column('size', sa.BigInteger(), nullable=True),
        sa.Column('status', sa.Enum('pending', 'completed', 'failed', name='presignedtaskstatus'), nullable=False),
        sa.Column('file_id', sa.Uuid(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('presigned_upload_tasks')
    op.execute('DROP TYPE IF EXISTS presignedtaskstatus;')
