from dataclasses import dataclass
from datetime import datetime
from typing import assert_never
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from apps.presigned_cleanup.errors import TaskQueryError
from shared.db import models
from shared.db.models import PresignedTaskStatus


@dataclass(frozen=True)
class Pending:
    pass


@dataclass(frozen=True)
class Completed:
    file_id: UUID | None = None


@dataclass(frozen=True)
class Failed:
    error: str | None = None


TaskStatus = Pending | Completed | Failed


def status_from_row(row: models.PresignedUploadTask) -> TaskStatus:
    status = PresignedTaskStatus(row.status)
    match status:
        case PresignedTaskStatus.pending:
            return Pending()
        case PresignedTaskStatus.completed:
            return Completed(file_id=row.file_id)
        case PresignedTaskStatus.failed:
            return Failed(error=row.error)
        case _:
            assert_never(status)


@dataclass(frozen=True)
class ExpiredTask:
    """Snapshot of an expired task row, taken before the row is deleted."""

    id: UUID
    file_key: str
    expires_at: datetime
    status: TaskStatus

    @classmethod
    def from_row(cls, row: models.PresignedUploadTask) -> "ExpiredTask":
        return cls(id=row.id, file_key=row.file_key, expires_at=row.expires_at, status=status_from_row(row))


def find_expired(db: Session, reference_time: datetime) -> list[ExpiredTask]:
    """Tasks with expires_at <= reference_time, whatever their status.

    Ordered by (expires_at, id).
    """
    T = models.PresignedUploadTask
    try:
        rows = (
            db.query(T)
            .filter(T.expires_at <= reference_time)
            .order_by(T.expires_at.asc(), T.id.asc())
            .all()
        )
    except SQLAlchemyError as e:
        raise TaskQueryError(f"failed to query expired presigned tasks: {e}") from e
    return [ExpiredTask.from_row(r) for r in rows]


def delete_task(db: Session, task_id: UUID) -> bool:
    """Delete one task row and commit. Returns False if the row was already gone."""
    try:
        result = db.execute(delete(models.PresignedUploadTask).where(models.PresignedUploadTask.id == task_id))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return bool(result.rowcount)
