from __future__ import annotations

import logging
import secrets
import threading

from hardlinkfs.core.config import Settings
from hardlinkfs.db.models import ScanJobStatus
from hardlinkfs.jobs.registry import LiveScanJob, ScanJobRegistry
from hardlinkfs.jobs.service import JobNotCompletedError, JobNotFoundError, ScanJobStore
from hardlinkfs.jobs.types import JobSnapshot
from hardlinkfs.scanner.engine import ScanEngine
from hardlinkfs.scanner.types import DuplicateGroup

logger = logging.getLogger(__name__)


def new_job_id() -> str:
    return secrets.token_hex(16)


class _JobProgressSink:
    """Forwards engine progress to the live job and, best effort, to the durable store."""

    def __init__(self, job: LiveScanJob, store: ScanJobStore):
        self._job = job
        self._store = store

    def report_total(self, total_files: int) -> None:
        self._job.set_total(total_files)
        self._persist(total_files=total_files)

    def report_processed(self, processed: int, groups_found: int) -> None:
        self._job.set_processed(processed, groups_found)
        self._persist(processed_files=processed, groups_found=groups_found)

    def _persist(self, **counters: int) -> None:
        try:
            self._store.update_progress(self._job.job_id, **counters)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to persist progress for scan job %s: %s", self._job.job_id, exc)


class ScanManager:
    """Starts scan jobs on their own threads and answers progress queries.

    A job's outcome is only ever observed through the registry or the durable
    store; callers of :meth:`start_scan` get the id back as soon as the thread
    has been started.
    """

    def __init__(
        self,
        settings: Settings,
        registry: ScanJobRegistry,
        store: ScanJobStore,
        engine: ScanEngine | None = None,
    ):
        self._settings = settings
        self._registry = registry
        self._store = store
        self._engine = engine or ScanEngine(settings)
        self._threads_lock = threading.Lock()
        self._threads: dict[str, threading.Thread] = {}

    @property
    def registry(self) -> ScanJobRegistry:
        return self._registry

    def start_scan(self, job_id: str | None = None) -> str:
        effective_id = job_id or new_job_id()
        job = self._registry.register(effective_id)
        try:
            self._store.create(effective_id)
        except Exception:
            self._registry.discard(effective_id)
            raise

        thread = threading.Thread(
            target=self._run_job,
            args=(job,),
            name=f"scan-{effective_id[:12]}",
            daemon=True,
        )
        with self._threads_lock:
            self._threads[effective_id] = thread
        thread.start()
        logger.info("Scan job %s started for %s", effective_id, self._engine.root)
        return effective_id

    def _run_job(self, job: LiveScanJob) -> None:
        try:
            self._execute_job(job)
        finally:
            with self._threads_lock:
                self._threads.pop(job.job_id, None)

    def _execute_job(self, job: LiveScanJob) -> None:
        job_id = job.job_id
        try:
            groups = self._engine.run(_JobProgressSink(job, self._store))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Scan job %s failed", job_id)
            message = f"{type(exc).__name__}: {exc}"
            job.fail(message)
            try:
                self._store.fail(job_id, message)
            except Exception as store_exc:  # noqa: BLE001
                logger.error("Failed to record failure of scan job %s: %s", job_id, store_exc)
            return

        job.complete(groups)
        total_files, _processed, _groups_found = job.counters()
        try:
            self._store.complete(job_id, groups, total_files=total_files)
        except Exception as store_exc:  # noqa: BLE001
            logger.error("Failed to record completion of scan job %s: %s", job_id, store_exc)
        logger.info("Scan job %s completed: %d files, %d duplicate groups", job_id, total_files, len(groups))

    def get_progress(self, job_id: str) -> JobSnapshot | None:
        job = self._registry.get(job_id)
        if job is not None:
            return job.snapshot()
        return self._store.get(job_id)

    def list_jobs(self, limit: int = 20) -> list[JobSnapshot]:
        snapshots = self._store.list_recent(limit=limit)
        for position, snapshot in enumerate(snapshots):
            job = self._registry.get(snapshot.id)
            if job is not None:
                snapshots[position] = job.snapshot()
        return snapshots

    def get_results(self, job_id: str) -> list[DuplicateGroup]:
        snapshot = self.get_progress(job_id)
        if snapshot is None:
            raise JobNotFoundError(f"Scan job not found: {job_id}")
        if snapshot.status != ScanJobStatus.COMPLETED:
            raise JobNotCompletedError(job_id, snapshot.status)
        if snapshot.results is not None:
            return snapshot.results
        return self._store.get_groups(job_id)

    def wait(self, job_id: str, timeout: float | None = None) -> bool:
        with self._threads_lock:
            thread = self._threads.get(job_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def shutdown(self, timeout: float = 5.0) -> None:
        with self._threads_lock:
            threads = list(self._threads.items())
        for job_id, thread in threads:
            if thread.is_alive():
                logger.info("Waiting for scan job %s to finish before shutdown", job_id)
                thread.join(timeout)
