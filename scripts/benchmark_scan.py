from __future__ import annotations

import argparse
import os
import time
from pathlib import Path

import hardlinkfs.db.session as db_session_module

from hardlinkfs.core.config import get_settings
from hardlinkfs.db.init_db import initialize_database
from hardlinkfs.jobs.manager import ScanManager
from hardlinkfs.jobs.registry import ScanJobRegistry
from hardlinkfs.jobs.service import ScanJobStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Benchmark a full duplicate scan over a synthetic tree")
    parser.add_argument("--data-root", required=True, help="Directory the synthetic tree is written to")
    parser.add_argument("--state-root", required=True, help="State root directory")
    parser.add_argument("--groups", type=int, default=2000, help="Number of duplicate groups")
    parser.add_argument("--files-per-group", type=int, default=3, help="Copies per duplicate group")
    parser.add_argument("--unique-files", type=int, default=5000, help="Files with no duplicate")
    parser.add_argument("--file-size", type=int, default=4096, help="Bytes per synthetic file")
    return parser.parse_args()


def configure_env(data_root: Path, state_root: Path) -> None:
    data_root.mkdir(parents=True, exist_ok=True)
    state_root.mkdir(parents=True, exist_ok=True)
    os.environ["HARDLINKFS_DATA_ROOT"] = data_root.as_posix()
    os.environ["HARDLINKFS_STATE_ROOT"] = state_root.as_posix()

    get_settings.cache_clear()
    db_session_module.reset_engine()


def seed_tree(data_root: Path, total_groups: int, files_per_group: int, unique_files: int, file_size: int) -> int:
    written = 0
    for group_idx in range(total_groups):
        payload = group_idx.to_bytes(8, "little") * (file_size // 8 + 1)
        for copy_idx in range(files_per_group):
            target = data_root / f"copy{copy_idx}" / f"g{group_idx // 500}" / f"dup{group_idx}.bin"
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(payload[:file_size])
            written += 1

    for file_idx in range(unique_files):
        # distinct sizes keep these out of the fingerprinting phase
        target = data_root / "unique" / f"u{file_idx // 500}" / f"file{file_idx}.bin"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"u" * (file_size + total_groups + file_idx + 1))
        written += 1
    return written


def benchmark() -> tuple[str, float]:
    settings = get_settings()
    manager = ScanManager(
        settings=settings,
        registry=ScanJobRegistry(),
        store=ScanJobStore(db_session_module.get_session_factory()),
    )

    start = time.perf_counter()
    job_id = manager.start_scan()
    manager.wait(job_id)
    elapsed = time.perf_counter() - start
    return job_id, elapsed


def main() -> None:
    args = parse_args()
    data_root = Path(args.data_root)
    configure_env(data_root, Path(args.state_root))
    initialize_database()
    files = seed_tree(data_root, args.groups, args.files_per_group, args.unique_files, args.file_size)

    job_id, elapsed = benchmark()
    snapshot = ScanJobStore(db_session_module.get_session_factory()).get(job_id)
    assert snapshot is not None
    print(
        f"files={files} status={snapshot.status.value} groups={snapshot.groups_found} "
        f"elapsed_seconds={elapsed:.3f}"
    )


if __name__ == "__main__":
    main()
