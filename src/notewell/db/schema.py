"""Database schema initialization and full-text index health check."""

from __future__ import annotations

import logging
import sqlite3

from notewell.db.migrations import FTS_SQL, MIGRATIONS, run_migrations

logger = logging.getLogger(__name__)

CURRENT_VERSION = MIGRATIONS[-1][0]

_DROP_FTS = """
DROP TRIGGER IF EXISTS chunks_ai;
DROP TRIGGER IF EXISTS chunks_ad;
DROP TRIGGER IF EXISTS chunks_au;
DROP TABLE IF EXISTS chunks_fts;
"""


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent).

    Runs the FTS health check afterwards; a damaged index is rebuilt in place.
    """
    run_migrations(conn)
    repair_fts(conn)


def fts_is_healthy(conn: sqlite3.Connection) -> bool:
    """Return False if the chunks_fts index is missing or fails its integrity check."""
    try:
        conn.execute("SELECT COUNT(*) FROM chunks_fts").fetchone()
        conn.execute("INSERT INTO chunks_fts(chunks_fts) VALUES ('integrity-check')")
        conn.commit()
    except sqlite3.DatabaseError as exc:
        logger.warning("Full-text index check failed: %s", exc)
        conn.rollback()
        return False
    return True


def repair_fts(conn: sqlite3.Connection) -> bool:
    """Drop, recreate and rebuild chunks_fts from the chunks table when unhealthy.

    Returns:
        True if a rebuild happened.
    """
    if fts_is_healthy(conn):
        return False

    logger.warning("Rebuilding full-text index from chunks")
    conn.executescript(_DROP_FTS)
    conn.executescript(FTS_SQL)
    conn.execute("INSERT INTO chunks_fts(chunks_fts) VALUES ('rebuild')")
    conn.commit()
    return True
