from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

import hardlinkfs.db.session as db_session_module
from hardlinkfs.core.config import get_settings
from hardlinkfs.db.init_db import initialize_database
from hardlinkfs.db.models import ScanJobStatus
from hardlinkfs.jobs.manager import ScanManager, new_job_id
from hardlinkfs.jobs.registry import JobConflictError, ScanJobRegistry
from hardlinkfs.jobs.service import INTERRUPTED_MESSAGE, JobNotCompletedError, JobNotFoundError, ScanJobStore
from hardlinkfs.scanner.engine import ScanEngine
from hardlinkfs.scanner.types import DuplicateGroup


def configure_env(tmp_path: Path) -> Path:
    data_root = tmp_path / "data"
    state_root = tmp_path / "state"
    data_root.mkdir(parents=True, exist_ok=True)
    state_root.mkdir(parents=True, exist_ok=True)

    os.environ["HARDLINKFS_DATA_ROOT"] = data_root.as_posix()
    os.environ["HARDLINKFS_STATE_ROOT"] = state_root.as_posix()

    get_settings.cache_clear()
    db_session_module.reset_engine()
    initialize_database()
    return data_root


def make_manager(tmp_path: Path, engine: object | None = None) -> tuple[ScanManager, ScanJobStore, Path]:
    data_root = configure_env(tmp_path)
    store = ScanJobStore(db_session_module.get_session_factory())
    manager = ScanManager(get_settings(), ScanJobRegistry(), store, engine=engine)  # type: ignore[arg-type]
    return manager, store, data_root


class BlockingEngine:
    """Engine stand-in that holds the job in ``running`` until released."""

    def __init__(self, root: Path, groups: list[DuplicateGroup] | None = None):
        self.root = root
        self.release = threading.Event()
        self.started = threading.Event()
        self._groups = groups or []

    def run(self, sink) -> list[DuplicateGroup]:  # type: ignore[no-untyped-def]
        sink.report_total(3)
        sink.report_processed(1, 0)
        self.started.set()
        self.release.wait(timeout=10)
        return list(self._groups)


class SelectiveFailingEngine:
    """Raises for the first job it runs and scans normally afterwards."""

    def __init__(self, delegate: ScanEngine):
        self.root = delegate.root
        self._delegate = delegate
        self._lock = threading.Lock()
        self._failed_once = False

    def run(self, sink) -> list[DuplicateGroup]:  # type: ignore[no-untyped-def]
        with self._lock:
            should_fail = not self._failed_once
            self._failed_once = True
        if should_fail:
            raise RuntimeError("boom")
        return self._delegate.run(sink)


def _write(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)


def test_scan_job_completes_and_exposes_results(tmp_path: Path) -> None:
    manager, store, data_root = make_manager(tmp_path)
    _write(data_root / "a" / "one.bin", b"duplicate-bytes")
    _write(data_root / "b" / "two.bin", b"duplicate-bytes")
    _write(data_root / "c" / "solo.bin", b"unique")

    job_id = manager.start_scan()
    assert manager.wait(job_id, timeout=10)

    snapshot = manager.get_progress(job_id)
    assert snapshot is not None
    assert snapshot.status == ScanJobStatus.COMPLETED
    assert snapshot.total_files == 3
    assert snapshot.processed == 3
    assert snapshot.groups_found == 1
    assert snapshot.completed_at is not None

    results = manager.get_results(job_id)
    assert len(results) == 1
    assert sorted([results[0].master, *results[0].others]) == ["/a/one.bin", "/b/two.bin"]

    durable = store.get(job_id)
    assert durable is not None
    assert durable.status == ScanJobStatus.COMPLETED
    assert durable.groups_found == 1
    assert store.get_groups(job_id) == results


def test_job_ids_are_random_hex() -> None:
    first = new_job_id()
    second = new_job_id()

    assert len(first) == 32
    assert int(first, 16) >= 0
    assert first != second


def test_duplicate_job_id_is_rejected(tmp_path: Path) -> None:
    data_root = configure_env(tmp_path)
    engine = BlockingEngine(data_root)
    store = ScanJobStore(db_session_module.get_session_factory())
    manager = ScanManager(get_settings(), ScanJobRegistry(), store, engine=engine)  # type: ignore[arg-type]

    manager.start_scan("fixed-id")
    try:
        with pytest.raises(JobConflictError):
            manager.start_scan("fixed-id")
    finally:
        engine.release.set()
        manager.wait("fixed-id", timeout=10)

    # a finished id is still present in the durable store
    other_manager = ScanManager(get_settings(), ScanJobRegistry(), store, engine=engine)  # type: ignore[arg-type]
    with pytest.raises(JobConflictError):
        other_manager.start_scan("fixed-id")
    assert other_manager.registry.get("fixed-id") is None


def test_results_of_running_job_are_not_available(tmp_path: Path) -> None:
    data_root = configure_env(tmp_path)
    engine = BlockingEngine(data_root)
    store = ScanJobStore(db_session_module.get_session_factory())
    manager = ScanManager(get_settings(), ScanJobRegistry(), store, engine=engine)  # type: ignore[arg-type]

    job_id = manager.start_scan()
    try:
        assert engine.started.wait(timeout=10)
        snapshot = manager.get_progress(job_id)
        assert snapshot is not None
        assert snapshot.status == ScanJobStatus.RUNNING
        assert snapshot.total_files == 3
        assert snapshot.processed == 1
        assert snapshot.results is None
        assert manager.registry.active_count() == 1

        with pytest.raises(JobNotCompletedError):
            manager.get_results(job_id)

        durable = store.get(job_id)
        assert durable is not None
        assert durable.total_files == 3
    finally:
        engine.release.set()
        manager.wait(job_id, timeout=10)

    assert manager.get_results(job_id) == []


def test_unknown_job_is_not_found(tmp_path: Path) -> None:
    manager, _store, _data_root = make_manager(tmp_path)

    assert manager.get_progress("does-not-exist") is None
    with pytest.raises(JobNotFoundError):
        manager.get_results("does-not-exist")


def test_progress_falls_back_to_durable_record(tmp_path: Path) -> None:
    manager, store, data_root = make_manager(tmp_path)
    _write(data_root / "x.bin", b"same")
    _write(data_root / "y.bin", b"same")

    job_id = manager.start_scan()
    assert manager.wait(job_id, timeout=10)

    restarted = ScanManager(get_settings(), ScanJobRegistry(), store)
    snapshot = restarted.get_progress(job_id)

    assert snapshot is not None
    assert snapshot.status == ScanJobStatus.COMPLETED
    assert snapshot.total_files == 2
    assert snapshot.groups_found == 1
    assert snapshot.results is None
    assert restarted.get_results(job_id) == manager.get_results(job_id)


def test_missing_root_fails_job(tmp_path: Path) -> None:
    manager, store, data_root = make_manager(tmp_path)
    data_root.rmdir()

    job_id = manager.start_scan()
    assert manager.wait(job_id, timeout=10)

    snapshot = manager.get_progress(job_id)
    assert snapshot is not None
    assert snapshot.status == ScanJobStatus.FAILED
    assert snapshot.error_message is not None
    assert snapshot.error_message.startswith("ScanRootError:")

    durable = store.get(job_id)
    assert durable is not None
    assert durable.status == ScanJobStatus.FAILED
    with pytest.raises(JobNotCompletedError):
        manager.get_results(job_id)


def test_fault_in_one_job_does_not_affect_another(tmp_path: Path) -> None:
    data_root = configure_env(tmp_path)
    _write(data_root / "p.bin", b"pair")
    _write(data_root / "q.bin", b"pair")
    engine = SelectiveFailingEngine(ScanEngine(get_settings()))
    store = ScanJobStore(db_session_module.get_session_factory())
    manager = ScanManager(get_settings(), ScanJobRegistry(), store, engine=engine)  # type: ignore[arg-type]

    failing_id = manager.start_scan()
    assert manager.wait(failing_id, timeout=10)
    healthy_id = manager.start_scan()
    assert manager.wait(healthy_id, timeout=10)

    failing = manager.get_progress(failing_id)
    healthy = manager.get_progress(healthy_id)
    assert failing is not None and healthy is not None
    assert failing.status == ScanJobStatus.FAILED
    assert failing.error_message == "RuntimeError: boom"
    assert healthy.status == ScanJobStatus.COMPLETED
    assert healthy.groups_found == 1


def test_concurrent_jobs_run_independently(tmp_path: Path) -> None:
    manager, _store, data_root = make_manager(tmp_path)
    for index in range(20):
        _write(data_root / f"dir{index % 4}" / f"file{index}.bin", b"shared" if index % 2 else f"u{index}".encode())

    job_ids = [manager.start_scan() for _ in range(3)]
    for job_id in job_ids:
        assert manager.wait(job_id, timeout=20)

    snapshots = [manager.get_progress(job_id) for job_id in job_ids]
    assert all(snapshot is not None and snapshot.status == ScanJobStatus.COMPLETED for snapshot in snapshots)
    results = [manager.get_results(job_id) for job_id in job_ids]
    assert results[0] == results[1] == results[2]
    assert results[0][0].inode_count == 10


def test_finished_jobs_release_their_threads(tmp_path: Path) -> None:
    data_root = configure_env(tmp_path)
    engine = BlockingEngine(data_root)
    store = ScanJobStore(db_session_module.get_session_factory())
    manager = ScanManager(get_settings(), ScanJobRegistry(), store, engine=engine)  # type: ignore[arg-type]

    job_id = manager.start_scan()
    assert engine.started.wait(timeout=10)
    assert list(manager._threads) == [job_id]

    engine.release.set()
    assert manager.wait(job_id, timeout=10)
    assert manager._threads == {}
    assert manager.wait(job_id, timeout=0)

    failing_engine = SelectiveFailingEngine(ScanEngine(get_settings()))
    failing = ScanManager(get_settings(), ScanJobRegistry(), store, engine=failing_engine)  # type: ignore[arg-type]
    failed_id = failing.start_scan()
    assert failing.wait(failed_id, timeout=10)
    assert failing._threads == {}
    failed = failing.get_progress(failed_id)
    assert failed is not None
    assert failed.status == ScanJobStatus.FAILED


def test_recover_interrupted_marks_orphaned_running_jobs_failed(tmp_path: Path) -> None:
    configure_env(tmp_path)
    store = ScanJobStore(db_session_module.get_session_factory())
    store.create("orphaned")
    store.create("still-live")

    recovered = store.recover_interrupted(live_job_ids={"still-live"})

    assert recovered == 1
    orphaned = store.get("orphaned")
    live = store.get("still-live")
    assert orphaned is not None and live is not None
    assert orphaned.status == ScanJobStatus.FAILED
    assert orphaned.error_message == INTERRUPTED_MESSAGE
    assert live.status == ScanJobStatus.RUNNING
    assert store.recover_interrupted(live_job_ids={"still-live"}) == 0
