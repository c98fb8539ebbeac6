from __future__ import annotations

import logging

from sqlalchemy import text

from hardlinkfs.db.migrations import apply_migrations
from hardlinkfs.db.models import Base
from hardlinkfs.db.session import get_engine

logger = logging.getLogger(__name__)


def initialize_database() -> list[str]:
    """Create missing tables, run pending migrations and return their names."""
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    applied = apply_migrations(engine)
    if applied:
        logger.info("Applied database migrations: %s", ", ".join(applied))

    if engine.url.drivername.startswith("sqlite"):
        with engine.connect() as conn:
            conn.execute(text("PRAGMA optimize;"))
            conn.commit()
    return applied
