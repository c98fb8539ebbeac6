from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker

from hardlinkfs.db.models import InodeIndexEntry


@dataclass(frozen=True, slots=True)
class InodeIndexStats:
    inode_count: int
    path_count: int


class InodeIndexService:
    """Durable inode -> logical paths bookkeeping.

    Only paths linked or unlinked through this service's callers are
    guaranteed present; the index is advisory and never consulted by the
    scanner or by conversion decisions.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def _now(self) -> datetime:
        return datetime.now(tz=timezone.utc)

    def _upsert(self, session: Session, rows: list[dict[str, object]]) -> None:
        statement = sqlite_insert(InodeIndexEntry).values(rows)
        statement = statement.on_conflict_do_update(
            index_elements=[InodeIndexEntry.inode, InodeIndexEntry.path],
            set_={"last_seen_at": statement.excluded.last_seen_at},
        )
        session.execute(statement)

    def add_path(self, inode: int, path: str) -> None:
        with self._session_factory() as session:
            self._upsert(session, [{"inode": int(inode), "path": path, "last_seen_at": self._now()}])
            session.commit()

    def add_paths(self, entries: Iterable[tuple[int, str]]) -> int:
        now = self._now()
        rows: list[dict[str, object]] = [
            {"inode": int(inode), "path": path, "last_seen_at": now} for inode, path in entries
        ]
        if not rows:
            return 0
        with self._session_factory() as session:
            self._upsert(session, rows)
            session.commit()
        return len(rows)

    def remove_path(self, inode: int, path: str) -> bool:
        with self._session_factory() as session:
            result = session.execute(
                delete(InodeIndexEntry).where(InodeIndexEntry.inode == int(inode), InodeIndexEntry.path == path)
            )
            session.commit()
            return bool(result.rowcount)

    def paths_for_inode(self, inode: int) -> list[str]:
        with self._session_factory() as session:
            return list(
                session.scalars(
                    select(InodeIndexEntry.path)
                    .where(InodeIndexEntry.inode == int(inode))
                    .order_by(InodeIndexEntry.path.asc())
                ).all()
            )

    def clear(self) -> int:
        with self._session_factory() as session:
            result = session.execute(delete(InodeIndexEntry))
            session.commit()
            return int(result.rowcount or 0)

    def prune(self, older_than_days: int) -> int:
        if older_than_days < 0:
            raise ValueError("older_than_days must be >= 0")
        cutoff = self._now() - timedelta(days=older_than_days)
        with self._session_factory() as session:
            result = session.execute(delete(InodeIndexEntry).where(InodeIndexEntry.last_seen_at < cutoff))
            session.commit()
            return int(result.rowcount or 0)

    def stats(self) -> InodeIndexStats:
        with self._session_factory() as session:
            inode_count = session.scalar(select(func.count(func.distinct(InodeIndexEntry.inode)))) or 0
            path_count = session.scalar(select(func.count()).select_from(InodeIndexEntry)) or 0
        return InodeIndexStats(inode_count=int(inode_count), path_count=int(path_count))
