from __future__ import annotations

import threading
from datetime import datetime, timezone

from hardlinkfs.db.models import ScanJobStatus
from hardlinkfs.jobs.types import JobSnapshot
from hardlinkfs.scanner.types import DuplicateGroup


class JobConflictError(RuntimeError):
    pass


def _copy_groups(groups: list[DuplicateGroup]) -> list[DuplicateGroup]:
    return [
        DuplicateGroup(size=group.size, master=group.master, others=list(group.others), inode_count=group.inode_count)
        for group in groups
    ]


class LiveScanJob:
    """Mutable progress of one running scan.

    Only the thread executing the job writes to it. Readers go through
    :meth:`snapshot`, which copies everything under the job lock. Once the job
    is completed or failed every mutator becomes a no-op.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._lock = threading.Lock()
        self._status = ScanJobStatus.RUNNING
        self._total_files = 0
        self._processed = 0
        self._groups_found = 0
        self._error_message: str | None = None
        self._results: list[DuplicateGroup] | None = None
        self._started_at = datetime.now(tz=timezone.utc)
        self._completed_at: datetime | None = None

    def _is_terminal(self) -> bool:
        return self._status != ScanJobStatus.RUNNING

    def set_total(self, total_files: int) -> None:
        with self._lock:
            if not self._is_terminal():
                self._total_files = total_files

    def set_processed(self, processed: int, groups_found: int) -> None:
        with self._lock:
            if not self._is_terminal():
                self._processed = processed
                self._groups_found = groups_found

    def counters(self) -> tuple[int, int, int]:
        with self._lock:
            return self._total_files, self._processed, self._groups_found

    def complete(self, groups: list[DuplicateGroup]) -> bool:
        with self._lock:
            if self._is_terminal():
                return False
            self._status = ScanJobStatus.COMPLETED
            self._processed = self._total_files
            self._groups_found = len(groups)
            self._results = _copy_groups(groups)
            self._completed_at = datetime.now(tz=timezone.utc)
            return True

    def fail(self, error_message: str) -> bool:
        with self._lock:
            if self._is_terminal():
                return False
            self._status = ScanJobStatus.FAILED
            self._error_message = error_message
            self._completed_at = datetime.now(tz=timezone.utc)
            return True

    def snapshot(self) -> JobSnapshot:
        with self._lock:
            return JobSnapshot(
                id=self.job_id,
                status=self._status,
                total_files=self._total_files,
                processed=self._processed,
                groups_found=self._groups_found,
                error_message=self._error_message,
                started_at=self._started_at,
                completed_at=self._completed_at,
                results=_copy_groups(self._results) if self._results is not None else None,
            )


class ScanJobRegistry:
    """Process-local table of scan jobs started by this process.

    Owned by the application object; created at startup and dropped with it.
    The table lock is only held for insert and lookup, never across I/O.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: dict[str, LiveScanJob] = {}

    def register(self, job_id: str) -> LiveScanJob:
        with self._lock:
            if job_id in self._jobs:
                raise JobConflictError(f"Scan job already exists: {job_id}")
            job = LiveScanJob(job_id)
            self._jobs[job_id] = job
            return job

    def get(self, job_id: str) -> LiveScanJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def discard(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def active_count(self) -> int:
        with self._lock:
            jobs = list(self._jobs.values())
        return sum(1 for job in jobs if not job.snapshot().is_terminal)
