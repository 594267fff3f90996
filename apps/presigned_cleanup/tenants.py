from contextlib import contextmanager
from typing import Iterator

from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from structlog import get_logger

from apps.presigned_cleanup.dependencies import Dependencies
from apps.presigned_cleanup.errors import TenantConnectError, TenantQueryError
from shared.db import models
from shared.storage.s3 import Storage

log = get_logger()


def list_all_tenants(db: Session) -> list[models.Tenant]:
    """Return every tenant registered in the root database."""
    try:
        return db.query(models.Tenant).order_by(models.Tenant.created_at, models.Tenant.id).all()
    except SQLAlchemyError as e:
        raise TenantQueryError(f"failed to query tenants: {e}") from e


def _connect_db(deps: Dependencies, tenant) -> Session:
    try:
        return deps.engines.open_tenant_session(tenant)
    except SQLAlchemyError as e:
        raise TenantConnectError(tenant.id, f"database unavailable: {e}") from e


def _connect_storage(deps: Dependencies, tenant) -> Storage:
    try:
        storage = deps.storage.for_tenant(tenant)
    except SoftTimeLimitExceeded:
        raise
    except Exception as e:
        raise TenantConnectError(tenant.id, f"storage handle failed: {e}") from e
    try:
        found = storage.bucket_exists()
    except SoftTimeLimitExceeded:
        storage.close()
        raise
    except Exception as e:
        storage.close()
        raise TenantConnectError(tenant.id, f"storage unavailable: {e}") from e
    if not found:
        storage.close()
        raise TenantConnectError(tenant.id, f"bucket {tenant.s3_bucket!r} does not exist")
    return storage


@contextmanager
def tenant_scope(deps: Dependencies, tenant) -> Iterator[tuple[Session, Storage]]:
    """Acquire the tenant's database session and storage handle.

    Both are released when the block exits, however it exits.
    """
    db = _connect_db(deps, tenant)
    try:
        storage = _connect_storage(deps, tenant)
        try:
            yield db, storage
        finally:
            storage.close()
    finally:
        db.close()
        log.debug("tenant_scope_released", tenant_id=str(tenant.id))
