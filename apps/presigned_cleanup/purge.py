"""
Purge expired presigned upload tasks for every tenant.

Only failures reaching the root database are fatal. Anything that goes wrong
inside a tenant is logged with the tenant id and the run moves on to the next
tenant; anything that goes wrong for a single task is logged by the reclaimer
and the tenant moves on to the next task.

The Celery soft time limit is the exception: it stops the whole run where it
is. Tenant resources are still released and the remaining expired tasks are
left for the next run.
"""

import contextvars
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone

from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger
from structlog.contextvars import bound_contextvars

from apps.presigned_cleanup.dependencies import Dependencies
from apps.presigned_cleanup.errors import RootConnectError, TaskQueryError, TenantConnectError, TenantQueryError
from apps.presigned_cleanup.expired import find_expired
from apps.presigned_cleanup.metrics import PURGE_RUN_SECONDS, PURGE_RUNS_TOTAL, TENANTS_PROCESSED_TOTAL
from apps.presigned_cleanup.reclaim import ReclaimResult, reclaim_expired_tasks
from apps.presigned_cleanup.tenants import list_all_tenants, tenant_scope

log = get_logger()


@dataclass
class TenantOutcome:
    tenant_id: str
    purged: bool
    expired: int = 0
    result: ReclaimResult = field(default_factory=ReclaimResult)
    error: str | None = None


@dataclass
class PurgeReport:
    reference_time: datetime
    outcomes: list[TenantOutcome] = field(default_factory=list)

    @property
    def tenants_failed(self) -> list[str]:
        return [o.tenant_id for o in self.outcomes if not o.purged]

    def summary(self) -> dict:
        results = [o.result for o in self.outcomes]
        return {
            "reference_time": self.reference_time.isoformat(),
            "tenants": len(self.outcomes),
            "tenants_failed": self.tenants_failed,
            "expired": sum(o.expired for o in self.outcomes),
            "tasks_deleted": sum(r.tasks_deleted for r in results),
            "files_deleted": sum(r.files_deleted for r in results),
            "files_missing": sum(r.files_missing for r in results),
            "task_delete_failures": sum(r.task_delete_failures for r in results),
            "file_delete_failures": sum(r.file_delete_failures for r in results),
        }


def _load_tenants(deps: Dependencies):
    try:
        db = deps.engines.open_root_session()
    except SQLAlchemyError as e:
        log.error("root_database_connect_failed", error=str(e), error_type=type(e).__name__)
        raise RootConnectError(f"failed to connect to root database: {e}") from e
    try:
        return list_all_tenants(db)
    except TenantQueryError as e:
        log.error("tenant_query_failed", error=str(e))
        raise
    finally:
        # Root access is not held while tenants are processed
        db.close()


def _tenant_failed(tenant_id: str, event: str, e: Exception) -> TenantOutcome:
    TENANTS_PROCESSED_TOTAL.labels(outcome="failed").inc()
    return TenantOutcome(tenant_id=tenant_id, purged=False, error=f"{event}: {e}")


def purge_tenant(deps: Dependencies, tenant, now: datetime) -> TenantOutcome:
    """Purge one tenant. Failures are logged and reported, not raised.

    SoftTimeLimitExceeded propagates so the run can stop.
    """
    tenant_id = str(tenant.id)
    with bound_contextvars(tenant_id=tenant_id):
        try:
            with tenant_scope(deps, tenant) as (db, storage):
                tasks = find_expired(db, now)
                if not tasks:
                    log.debug("no_expired_presigned_tasks")
                    TENANTS_PROCESSED_TOTAL.labels(outcome="purged").inc()
                    return TenantOutcome(tenant_id=tenant_id, purged=True)
                result = reclaim_expired_tasks(db, storage, tasks)
        except TenantConnectError as e:
            log.error("tenant_connect_failed", error=str(e))
            return _tenant_failed(tenant_id, "tenant_connect_failed", e)
        except TaskQueryError as e:
            log.error("expired_task_query_failed", error=str(e))
            return _tenant_failed(tenant_id, "expired_task_query_failed", e)
        except SoftTimeLimitExceeded:
            log.warning("tenant_purge_interrupted")
            raise
        except Exception as e:
            log.exception("tenant_purge_failed", error_type=type(e).__name__)
            return _tenant_failed(tenant_id, "tenant_purge_failed", e)

        TENANTS_PROCESSED_TOTAL.labels(outcome="purged").inc()
        log.info(
            "tenant_purged",
            expired=len(tasks),
            tasks_deleted=result.tasks_deleted,
            files_deleted=result.files_deleted,
            files_missing=result.files_missing,
            task_delete_failures=result.task_delete_failures,
            file_delete_failures=result.file_delete_failures,
        )
        return TenantOutcome(tenant_id=tenant_id, purged=True, expired=len(tasks), result=result)


def purge_expired_presigned_tasks(
    deps: Dependencies,
    now: datetime | None = None,
    max_workers: int = 1,
) -> PurgeReport:
    """Purge expired presigned tasks across all tenants.

    Raises RootConnectError / TenantQueryError when the tenant list cannot be
    read; in that case no tenant is touched. SoftTimeLimitExceeded propagates
    once the tenant in progress has released its resources; tenants not yet
    started are skipped.
    """
    now = now or datetime.now(timezone.utc)
    with PURGE_RUN_SECONDS.time():
        try:
            tenants = _load_tenants(deps)
        except (RootConnectError, TenantQueryError):
            PURGE_RUNS_TOTAL.labels(status="failed").inc()
            raise

        log.info("presigned_purge_started", tenants=len(tenants), reference_time=now.isoformat(), max_workers=max_workers)
        report = PurgeReport(reference_time=now)
        try:
            if max_workers > 1 and len(tenants) > 1:
                with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="presigned-purge") as pool:
                    # Carry bound log context (run_id) into the worker threads
                    futures = [
                        pool.submit(contextvars.copy_context().run, purge_tenant, deps, tenant, now)
                        for tenant in tenants
                    ]
                    try:
                        report.outcomes = [f.result() for f in futures]
                    except SoftTimeLimitExceeded:
                        pool.shutdown(wait=False, cancel_futures=True)
                        raise
            else:
                for tenant in tenants:
                    report.outcomes.append(purge_tenant(deps, tenant, now))
        except SoftTimeLimitExceeded:
            PURGE_RUNS_TOTAL.labels(status="timed_out").inc()
            log.warning("presigned_purge_interrupted", tenants_done=len(report.outcomes), tenants=len(tenants))
            raise

    PURGE_RUNS_TOTAL.labels(status="succeeded").inc()
    log.info("presigned_purge_finished", **report.summary())
    return report
