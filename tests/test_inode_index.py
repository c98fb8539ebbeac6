from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import update

import hardlinkfs.db.session as db_session_module
from hardlinkfs.core.config import get_settings
from hardlinkfs.db.init_db import initialize_database
from hardlinkfs.db.models import InodeIndexEntry
from hardlinkfs.index.service import InodeIndexService


def make_index_service(tmp_path: Path) -> InodeIndexService:
    data_root = tmp_path / "data"
    state_root = tmp_path / "state"
    data_root.mkdir(parents=True, exist_ok=True)
    state_root.mkdir(parents=True, exist_ok=True)

    os.environ["HARDLINKFS_DATA_ROOT"] = data_root.as_posix()
    os.environ["HARDLINKFS_STATE_ROOT"] = state_root.as_posix()

    get_settings.cache_clear()
    db_session_module.reset_engine()
    initialize_database()
    return InodeIndexService(db_session_module.get_session_factory())


def _age_entry(inode: int, path: str, days: int) -> None:
    stale = datetime.now(tz=timezone.utc) - timedelta(days=days)
    with db_session_module.get_session_factory()() as session:
        session.execute(
            update(InodeIndexEntry)
            .where(InodeIndexEntry.inode == inode, InodeIndexEntry.path == path)
            .values(last_seen_at=stale)
        )
        session.commit()


def test_add_path_is_an_upsert_and_paths_are_sorted(tmp_path: Path) -> None:
    service = make_index_service(tmp_path)

    service.add_path(42, "/b/second.bin")
    service.add_path(42, "/a/first.bin")
    service.add_path(42, "/a/first.bin")
    service.add_path(7, "/other.bin")

    assert service.paths_for_inode(42) == ["/a/first.bin", "/b/second.bin"]
    assert service.paths_for_inode(7) == ["/other.bin"]
    assert service.paths_for_inode(1) == []

    stats = service.stats()
    assert stats.inode_count == 2
    assert stats.path_count == 3


def test_add_paths_writes_batch_in_one_call(tmp_path: Path) -> None:
    service = make_index_service(tmp_path)

    written = service.add_paths([(1, "/x.bin"), (1, "/y.bin"), (2, "/z.bin")])

    assert written == 3
    assert service.add_paths([]) == 0
    assert service.paths_for_inode(1) == ["/x.bin", "/y.bin"]


def test_remove_path_deletes_exact_pairing_only(tmp_path: Path) -> None:
    service = make_index_service(tmp_path)
    service.add_paths([(1, "/shared.bin"), (2, "/shared.bin")])

    assert service.remove_path(1, "/shared.bin") is True
    assert service.remove_path(1, "/shared.bin") is False
    assert service.paths_for_inode(1) == []
    assert service.paths_for_inode(2) == ["/shared.bin"]


def test_prune_removes_only_entries_not_refreshed_in_window(tmp_path: Path) -> None:
    service = make_index_service(tmp_path)
    service.add_paths([(1, "/old.bin"), (1, "/refreshed.bin"), (2, "/fresh.bin")])
    _age_entry(1, "/old.bin", days=45)
    _age_entry(1, "/refreshed.bin", days=45)
    service.add_path(1, "/refreshed.bin")

    removed = service.prune(30)

    assert removed == 1
    assert service.paths_for_inode(1) == ["/refreshed.bin"]
    assert service.paths_for_inode(2) == ["/fresh.bin"]


def test_prune_rejects_negative_window(tmp_path: Path) -> None:
    service = make_index_service(tmp_path)

    with pytest.raises(ValueError):
        service.prune(-1)


def test_clear_drops_every_entry(tmp_path: Path) -> None:
    service = make_index_service(tmp_path)
    service.add_paths([(1, "/a.bin"), (2, "/b.bin")])

    assert service.clear() == 2
    stats = service.stats()
    assert stats.inode_count == 0
    assert stats.path_count == 0


def test_large_inode_numbers_round_trip(tmp_path: Path) -> None:
    service = make_index_service(tmp_path)
    inode = 2**62 + 12345

    service.add_path(inode, "/big.bin")

    assert service.paths_for_inode(inode) == ["/big.bin"]
