from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from hardlinkfs.core.units import human_size
from hardlinkfs.db.models import ScanJob, ScanJobGroup, ScanJobStatus
from hardlinkfs.jobs.registry import JobConflictError
from hardlinkfs.jobs.types import JobSnapshot
from hardlinkfs.scanner.types import DuplicateGroup


class JobNotFoundError(RuntimeError):
    pass


class InvalidJobStateError(RuntimeError):
    pass


class JobNotCompletedError(RuntimeError):
    def __init__(self, job_id: str, status: ScanJobStatus):
        super().__init__(f"Job {job_id} is not completed, status: {status.value}")
        self.job_id = job_id
        self.status = status


ALLOWED_TRANSITIONS: dict[ScanJobStatus, set[ScanJobStatus]] = {
    ScanJobStatus.RUNNING: {ScanJobStatus.COMPLETED, ScanJobStatus.FAILED},
    ScanJobStatus.COMPLETED: set(),
    ScanJobStatus.FAILED: set(),
}

INTERRUPTED_MESSAGE = "Scan interrupted by process restart"


class ScanJobStore:
    """Durable mirror of scan job metadata and, once completed, its result set."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def _enforce_transition(self, from_status: ScanJobStatus, to_status: ScanJobStatus) -> None:
        if to_status not in ALLOWED_TRANSITIONS[from_status]:
            raise InvalidJobStateError(f"Illegal transition: {from_status.value} -> {to_status.value}")

    def create(self, job_id: str) -> JobSnapshot:
        with self._session_factory() as session:
            now = self._now()
            job = ScanJob(
                id=job_id,
                status=ScanJobStatus.RUNNING,
                total_files=0,
                processed_files=0,
                groups_found=0,
                started_at=now,
                updated_at=now,
            )
            session.add(job)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise JobConflictError(f"Scan job already exists: {job_id}") from exc
            return self._to_snapshot(job)

    def update_progress(
        self,
        job_id: str,
        *,
        total_files: int | None = None,
        processed_files: int | None = None,
        groups_found: int | None = None,
    ) -> None:
        values: dict[str, Any] = {"updated_at": self._now()}
        if total_files is not None:
            values["total_files"] = total_files
        if processed_files is not None:
            values["processed_files"] = processed_files
        if groups_found is not None:
            values["groups_found"] = groups_found

        with self._session_factory() as session:
            session.execute(
                update(ScanJob)
                .where(ScanJob.id == job_id, ScanJob.status == ScanJobStatus.RUNNING)
                .values(**values)
            )
            session.commit()

    def complete(self, job_id: str, groups: list[DuplicateGroup], *, total_files: int | None = None) -> JobSnapshot:
        with self._session_factory() as session:
            job = session.get(ScanJob, job_id)
            if job is None:
                raise JobNotFoundError(f"Scan job not found: {job_id}")
            self._enforce_transition(job.status, ScanJobStatus.COMPLETED)

            now = self._now()
            session.execute(delete(ScanJobGroup).where(ScanJobGroup.job_id == job_id))
            session.add_all(
                ScanJobGroup(
                    job_id=job_id,
                    position=position,
                    size_bytes=group.size,
                    master_path=group.master,
                    other_paths=list(group.others),
                    inode_count=group.inode_count,
                )
                for position, group in enumerate(groups)
            )
            if total_files is not None:
                job.total_files = total_files
            job.status = ScanJobStatus.COMPLETED
            job.processed_files = job.total_files
            job.groups_found = len(groups)
            job.error_message = None
            job.completed_at = now
            job.updated_at = now
            session.commit()
            return self._to_snapshot(job)

    def fail(self, job_id: str, error_message: str) -> JobSnapshot:
        with self._session_factory() as session:
            job = session.get(ScanJob, job_id)
            if job is None:
                raise JobNotFoundError(f"Scan job not found: {job_id}")
            self._enforce_transition(job.status, ScanJobStatus.FAILED)

            now = self._now()
            job.status = ScanJobStatus.FAILED
            job.error_message = error_message
            job.completed_at = now
            job.updated_at = now
            session.commit()
            return self._to_snapshot(job)

    def get(self, job_id: str) -> JobSnapshot | None:
        with self._session_factory() as session:
            job = session.get(ScanJob, job_id)
            if job is None:
                return None
            return self._to_snapshot(job)

    def get_groups(self, job_id: str) -> list[DuplicateGroup]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ScanJobGroup).where(ScanJobGroup.job_id == job_id).order_by(ScanJobGroup.position.asc())
            ).all()
            return [
                DuplicateGroup(
                    size=int(row.size_bytes),
                    master=row.master_path,
                    others=list(row.other_paths or []),
                    inode_count=int(row.inode_count),
                )
                for row in rows
            ]

    def list_recent(self, *, limit: int = 20) -> list[JobSnapshot]:
        bounded_limit = max(1, min(limit, 200))
        with self._session_factory() as session:
            rows = session.scalars(
                select(ScanJob).order_by(ScanJob.started_at.desc(), ScanJob.id.desc()).limit(bounded_limit)
            ).all()
            return [self._to_snapshot(row) for row in rows]

    def recover_interrupted(self, *, live_job_ids: set[str] | None = None) -> int:
        """Fail rows left ``running`` by a previous process; their threads no longer exist."""
        keep = live_job_ids or set()
        with self._session_factory() as session:
            stale = list(session.scalars(select(ScanJob).where(ScanJob.status == ScanJobStatus.RUNNING)).all())
            now = self._now()
            recovered = 0
            for job in stale:
                if job.id in keep:
                    continue
                self._enforce_transition(job.status, ScanJobStatus.FAILED)
                job.status = ScanJobStatus.FAILED
                job.error_message = INTERRUPTED_MESSAGE
                job.completed_at = now
                job.updated_at = now
                recovered += 1
            if recovered:
                session.commit()
            return recovered

    def _to_snapshot(self, job: ScanJob) -> JobSnapshot:
        return JobSnapshot(
            id=job.id,
            status=job.status,
            total_files=int(job.total_files),
            processed=int(job.processed_files),
            groups_found=int(job.groups_found),
            error_message=job.error_message,
            started_at=job.started_at,
            completed_at=job.completed_at,
            results=None,
        )


def duplicate_group_to_dict(group: DuplicateGroup) -> dict[str, Any]:
    return {
        "size": group.size,
        "size_human": human_size(group.size),
        "master": group.master,
        "others": list(group.others),
        "inode_count": group.inode_count,
        "reclaimable_bytes": group.reclaimable_bytes,
    }


def snapshot_to_dict(snapshot: JobSnapshot, *, include_results: bool = True) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "job_id": snapshot.id,
        "status": snapshot.status.value,
        "total_files": snapshot.total_files,
        "processed": snapshot.processed,
        "groups_found": snapshot.groups_found,
        "error": snapshot.error_message,
        "started_at": snapshot.started_at,
        "completed_at": snapshot.completed_at,
        "results": None,
    }
    if include_results and snapshot.status == ScanJobStatus.COMPLETED and snapshot.results is not None:
        payload["results"] = [duplicate_group_to_dict(group) for group in snapshot.results]
    return payload
