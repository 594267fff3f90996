from dataclasses import dataclass
from typing import Iterable, assert_never

from celery.exceptions import SoftTimeLimitExceeded
from sqlalchemy.orm import Session
from structlog import get_logger

from apps.presigned_cleanup.expired import Completed, ExpiredTask, Failed, Pending, delete_task
from apps.presigned_cleanup.metrics import FAILURES_TOTAL, FILES_DELETED_TOTAL, TASKS_DELETED_TOTAL
from shared.storage.s3 import Storage

log = get_logger()


@dataclass
class ReclaimResult:
    tasks_deleted: int = 0
    files_deleted: int = 0
    files_missing: int = 0
    task_delete_failures: int = 0
    file_delete_failures: int = 0


def _delete_file(storage: Storage, task: ExpiredTask, result: ReclaimResult) -> None:
    try:
        removed = storage.delete_object(task.file_key)
    except SoftTimeLimitExceeded:
        raise
    except Exception as e:
        # The row is already gone, so the object stays behind untracked
        result.file_delete_failures += 1
        FAILURES_TOTAL.labels(stage="file_delete").inc()
        log.error(
            "presigned_task_file_delete_failed",
            task_id=str(task.id),
            file_key=task.file_key,
            error=str(e),
            error_type=type(e).__name__,
        )
        return
    if removed:
        result.files_deleted += 1
        FILES_DELETED_TOTAL.inc()
        log.debug("presigned_task_file_deleted", task_id=str(task.id), file_key=task.file_key)
    else:
        result.files_missing += 1
        log.debug("presigned_task_file_missing", task_id=str(task.id), file_key=task.file_key)


def reclaim_expired_tasks(db: Session, storage: Storage, tasks: Iterable[ExpiredTask]) -> ReclaimResult:
    """Delete each expired task row, then its object unless the upload completed.

    Failures are logged per task and never stop the batch. Only the task's
    soft time limit does.
    """
    result = ReclaimResult()
    for task in tasks:
        try:
            if delete_task(db, task.id):
                result.tasks_deleted += 1
                TASKS_DELETED_TOTAL.inc()
        except SoftTimeLimitExceeded:
            # Out of time; the rest of the batch waits for the next run
            raise
        except Exception as e:
            result.task_delete_failures += 1
            FAILURES_TOTAL.labels(stage="task_delete").inc()
            log.error(
                "presigned_task_delete_failed",
                task_id=str(task.id),
                error=str(e),
                error_type=type(e).__name__,
            )
            continue

        match task.status:
            case Completed():
                # Upload completed, nothing to revert
                pass
            case Pending() | Failed():
                _delete_file(storage, task, result)
            case _:
                assert_never(task.status)
    return result
