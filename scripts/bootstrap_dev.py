"""
Seed a dev tenant with a bucket and a few presigned upload tasks.

Run after `alembic --name root upgrade head` and
`alembic --name tenant -x db_name=presigned_dev upgrade head`.

Usage:
  python scripts/bootstrap_dev.py
"""

import uuid
from datetime import datetime, timedelta, timezone

from apps.presigned_cleanup.dependencies import Dependencies
from shared.config.settings import settings
from shared.db import models
from shared.db.models import PresignedTaskStatus


def main():
    deps = Dependencies.from_settings(settings)
    try:
        # Create a default tenant if not exist
        tenant_id = uuid.UUID("11111111-1111-1111-1111-111111111111")
        with deps.engines.root_session() as root:
            tenant = root.get(models.Tenant, tenant_id)
            if tenant is None:
                tenant = models.Tenant(id=tenant_id, name="Dev Tenant", db_name="presigned_dev", s3_bucket="presigned-dev")
                root.add(tenant)
                root.commit()
            root.refresh(tenant)

        storage = deps.storage.for_tenant(tenant)
        try:
            storage.ensure_bucket()
            now = datetime.now(timezone.utc)
            samples = [
                ("pending-expired.bin", PresignedTaskStatus.pending, now - timedelta(days=1)),
                ("failed-expired.bin", PresignedTaskStatus.failed, now - timedelta(hours=2)),
                ("completed-expired.bin", PresignedTaskStatus.completed, now - timedelta(hours=1)),
                ("pending-live.bin", PresignedTaskStatus.pending, now + timedelta(days=1)),
            ]
            db = deps.engines.open_tenant_session(tenant)
            try:
                for name, status, expires_at in samples:
                    key = f"uploads/{uuid.uuid4().hex}/{name}"
                    storage.put_object(key, b"partial upload\n")
                    db.add(models.PresignedUploadTask(
                        file_key=key,
                        name=name,
                        mime="application/octet-stream",
                        size=15,
                        status=status,
                        file_id=uuid.uuid4() if status == PresignedTaskStatus.completed else None,
                        error="upload aborted" if status == PresignedTaskStatus.failed else None,
                        expires_at=expires_at,
                    ))
                db.commit()
            finally:
                db.close()
        finally:
            storage.close()
        print(f"Bootstrap complete. tenant={tenant.id} bucket={tenant.s3_bucket} tasks={len(samples)}")
    finally:
        deps.close()


if __name__ == "__main__":
    main()
