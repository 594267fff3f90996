import uuid
from datetime import datetime, timedelta, timezone

import pytest

from apps.presigned_cleanup.dependencies import Dependencies
from shared.db import models
from shared.db.models import PresignedTaskStatus
from shared.db.session import EngineCache

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)
YESTERDAY = NOW - timedelta(days=1)
TOMORROW = NOW + timedelta(days=1)


class DummyStorage:
    def __init__(self, bucket, objects, fail_keys, reachable=True):
        self.bucket = bucket
        self._objects = objects
        self._fail_keys = fail_keys
        self._reachable = reachable
        self.deleted = []
        self.closed = False

    def bucket_exists(self) -> bool:
        if not self._reachable:
            raise ConnectionError(f"cannot reach bucket {self.bucket}")
        return True

    def delete_object(self, key: str) -> bool:
        if key in self._fail_keys:
            raise ConnectionError("storage write failed")
        self.deleted.append(key)
        if key in self._objects:
            self._objects.discard(key)
            return True
        return False

    def close(self):
        self.closed = True


class DummyStorageFactory:
    def __init__(self):
        self.buckets: dict[str, set[str]] = {}
        self.unreachable: set[str] = set()
        self.fail_keys: set[str] = set()
        self.handles: list[DummyStorage] = []

    def for_tenant(self, tenant):
        handle = DummyStorage(
            tenant.s3_bucket,
            self.buckets.setdefault(tenant.s3_bucket, set()),
            self.fail_keys,
            reachable=tenant.s3_bucket not in self.unreachable,
        )
        self.handles.append(handle)
        return handle

    def deleted_keys(self) -> list[str]:
        return [k for h in self.handles for k in h.deleted]


class PurgeEnv:
    """Root + per-tenant SQLite databases and an in-memory storage backend."""

    def __init__(self, tmp_path):
        self.tmp_path = tmp_path
        self.engines = EngineCache(f"sqlite:///{tmp_path}/root.db", f"sqlite:///{tmp_path}/{{db_name}}.db")
        models.RootBase.metadata.create_all(self.engines.root_engine())
        self.storage = DummyStorageFactory()
        self.deps = Dependencies(engines=self.engines, storage=self.storage)

    def add_tenant(self, name: str, create_schema: bool = True, db_name: str | None = None):
        tenant = models.Tenant(id=uuid.uuid4(), name=name, db_name=db_name or name, s3_bucket=f"{name}-uploads")
        with self.engines.root_session() as db:
            db.add(tenant)
            db.commit()
            db.refresh(tenant)
        if create_schema:
            models.TenantBase.metadata.create_all(self.engines.tenant_engine(tenant))
        self.storage.buckets.setdefault(tenant.s3_bucket, set())
        return tenant

    def add_task(self, tenant, file_key: str, status=PresignedTaskStatus.pending, expires_at=YESTERDAY, uploaded=True):
        task = models.PresignedUploadTask(
            id=uuid.uuid4(),
            file_key=file_key,
            name=file_key.rsplit("/", 1)[-1],
            status=status,
            file_id=uuid.uuid4() if status == PresignedTaskStatus.completed else None,
            error="client aborted" if status == PresignedTaskStatus.failed else None,
            expires_at=expires_at,
        )
        db = self.engines.open_tenant_session(tenant)
        try:
            db.add(task)
            db.commit()
            task_id = task.id
        finally:
            db.close()
        if uploaded:
            self.storage.buckets[tenant.s3_bucket].add(file_key)
        return task_id

    def task_ids(self, tenant) -> set:
        db = self.engines.open_tenant_session(tenant)
        try:
            return {row.id for row in db.query(models.PresignedUploadTask).all()}
        finally:
            db.close()

    def objects(self, tenant) -> set[str]:
        return set(self.storage.buckets[tenant.s3_bucket])

    def close(self):
        self.engines.dispose()


@pytest.fixture
def env(tmp_path):
    e = PurgeEnv(tmp_path)
    yield e
    e.close()
