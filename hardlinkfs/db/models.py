from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class ScanJobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ScanJob(Base):
    __tablename__ = "scan_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[ScanJobStatus] = mapped_column(
        SAEnum(ScanJobStatus, native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=ScanJobStatus.RUNNING,
    )
    total_files: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    processed_files: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    groups_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_scan_jobs_status", "status"),
        Index("ix_scan_jobs_started_at", "started_at"),
    )


class ScanJobGroup(Base):
    __tablename__ = "scan_job_groups"

    job_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("scan_jobs.id", ondelete="CASCADE"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    master_path: Mapped[str] = mapped_column(String(4096), nullable=False)
    other_paths: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    inode_count: Mapped[int] = mapped_column(Integer, nullable=False)


class InodeIndexEntry(Base):
    __tablename__ = "inode_index"

    inode: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    path: Mapped[str] = mapped_column(String(4096), primary_key=True)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_inode_index_inode", "inode"),
        Index("ix_inode_index_last_seen", "last_seen_at"),
    )


class SchemaMigration(Base):
    __tablename__ = "schema_migrations"

    version: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
