"""index presigned tasks by expiry

Revision ID: tenant_000002_expires_at_index
Revises: tenant_000001_presigned_upload_tasks
Create Date: 2026-10-02
"""

from alembic import op


revision = 'tenant_000002_expires_at_index'
down_revision = 'tenant_000001_presigned_upload_tasks'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_index('ix_presigned_upload_tasks_expires_at', 'presigned_upload_tasks', ['expires_at'])


def downgrade() -> None:
    op.drop_index('ix_presigned_upload_tasks_expires_at', table_name='presigned_upload_tasks')
