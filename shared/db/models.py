import uuid as _uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column, String, BigInteger, DateTime, Enum as SAEnum, Text, Uuid, Index
)
from sqlalchemy.orm import declarative_base

# Root database (one per deployment) and tenant databases (one per tenant)
# carry separate metadata so each can be migrated on its own.
RootBase = declarative_base()
TenantBase = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PresignedTaskStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


class Tenant(RootBase):
    __tablename__ = "tenants"
    id = Column(Uuid, primary_key=True, default=_uuid.uuid4)
    name = Column(String, nullable=False)
    db_name = Column(String, nullable=False)
    s3_bucket = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"Tenant(id={self.id}, name={self.name!r}, db_name={self.db_name!r}, s3_bucket={self.s3_bucket!r})"


class PresignedUploadTask(TenantBase):
    __tablename__ = "presigned_upload_tasks"
    id = Column(Uuid, primary_key=True, default=_uuid.uuid4)
    file_key = Column(String, nullable=False)  # object key within the tenant bucket
    name = Column(String, nullable=True)
    mime = Column(String, nullable=True)
    size = Column(BigInteger, nullable=True)
    status = Column(SAEnum(PresignedTaskStatus), default=PresignedTaskStatus.pending, nullable=False)
    file_id = Column(Uuid, nullable=True)  # set once the upload completed
    error = Column(Text, nullable=True)  # set when the upload failed
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_presigned_upload_tasks_expires_at", "expires_at"),)
