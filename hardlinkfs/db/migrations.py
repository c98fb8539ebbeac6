from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlalchemy import Connection, Engine, inspect, text


@dataclass(frozen=True)
class MigrationStep:
    version: int
    name: str
    apply: Callable[[Connection], None]


def _ensure_schema_migrations_table(conn: Connection) -> None:
    conn.execute(
        text(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                applied_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
    )


def _table_exists(conn: Connection, table_name: str) -> bool:
    return inspect(conn).has_table(table_name)


def _index_exists(conn: Connection, table_name: str, index_name: str) -> bool:
    if not _table_exists(conn, table_name):
        return False
    return any(index.get("name") == index_name for index in inspect(conn).get_indexes(table_name))


def _migration_0001_baseline(_conn: Connection) -> None:
    return


def _migration_0002_inode_index_last_seen(conn: Connection) -> None:
    if not _table_exists(conn, "inode_index"):
        return
    if not _index_exists(conn, "inode_index", "ix_inode_index_last_seen"):
        conn.execute(text("CREATE INDEX ix_inode_index_last_seen ON inode_index (last_seen_at)"))
    if not _index_exists(conn, "inode_index", "ix_inode_index_inode"):
        conn.execute(text("CREATE INDEX ix_inode_index_inode ON inode_index (inode)"))


def _migration_0003_scan_job_groups(conn: Connection) -> None:
    if _table_exists(conn, "scan_job_groups"):
        return
    conn.execute(
        text(
            """
            CREATE TABLE scan_job_groups (
                job_id VARCHAR(64) NOT NULL REFERENCES scan_jobs(id) ON DELETE CASCADE,
                position INTEGER NOT NULL,
                size_bytes BIGINT NOT NULL,
                master_path VARCHAR(4096) NOT NULL,
                other_paths JSON NOT NULL,
                inode_count INTEGER NOT NULL,
                PRIMARY KEY (job_id, position)
            )
            """
        )
    )


MIGRATIONS: tuple[MigrationStep, ...] = (
    MigrationStep(version=1, name="baseline", apply=_migration_0001_baseline),
    MigrationStep(version=2, name="inode_index_last_seen", apply=_migration_0002_inode_index_last_seen),
    MigrationStep(version=3, name="scan_job_groups", apply=_migration_0003_scan_job_groups),
)


def apply_migrations(engine: Engine) -> list[str]:
    applied: list[str] = []
    with engine.begin() as conn:
        _ensure_schema_migrations_table(conn)

        existing_versions = {
            int(row[0])
            for row in conn.execute(text("SELECT version FROM schema_migrations ORDER BY version ASC")).all()
        }

        for step in MIGRATIONS:
            if step.version in existing_versions:
                continue

            step.apply(conn)
            conn.execute(
                text("INSERT INTO schema_migrations(version, name) VALUES (:version, :name)"),
                {"version": step.version, "name": step.name},
            )
            applied.append(step.name)

    return applied
