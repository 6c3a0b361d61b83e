"""SQLite connection layer with sqlite-vec extension."""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

import sqlite_vec

logger = logging.getLogger(__name__)

# Side files SQLite may leave next to the main database file.
_SIDE_SUFFIXES = ("-wal", "-shm", "-journal")

_OPEN_ATTEMPTS = 3
_DELETE_ATTEMPTS = 3
_BACKOFF_BASE = 0.1  # seconds


class Database:
    """Notes database with sqlite-vec vector helpers loaded."""

    def __init__(self, db_path: Path | str) -> None:
        """Store the database path. Call connect() to open the connection.

        Args:
            db_path: Path to the SQLite database file (created if missing).
        """
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection.

        The connection may be shared between threads; callers serialise access
        (see ``ContentStore``).
        """
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, check_same_thread=False, timeout=5.0)
        conn.row_factory = sqlite3.Row
        try:
            conn.enable_load_extension(True)
            sqlite_vec.load(conn)
            conn.enable_load_extension(False)
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    def connect_with_retry(
        self,
        attempts: int = _OPEN_ATTEMPTS,
        backoff: float = _BACKOFF_BASE,
    ) -> sqlite3.Connection:
        """connect(), retrying transient ``OperationalError`` (locked/busy file).

        Waits ``backoff * 2**n`` seconds between attempts. The last error is
        re-raised once *attempts* are exhausted.
        """
        for attempt in range(1, attempts + 1):
            try:
                return self.connect()
            except sqlite3.OperationalError as exc:
                if attempt == attempts:
                    raise
                delay = backoff * (2 ** (attempt - 1))
                logger.warning(
                    "Opening %s failed (%s); retry %d/%d in %.2fs",
                    self.db_path, exc, attempt, attempts - 1, delay,
                )
                time.sleep(delay)
        raise AssertionError("unreachable")

    def remove_files(self) -> None:
        """Delete the database file and its -wal/-shm/-journal side files.

        Each file gets its own small retry loop; a file that still cannot be
        removed raises ``OSError``.
        """
        for path in [self.db_path, *(Path(f"{self.db_path}{s}") for s in _SIDE_SUFFIXES)]:
            _delete_with_retry(path)

    def __enter__(self) -> sqlite3.Connection:
        """Open the database and return the connection (context manager support)."""
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        """Close the connection when leaving the context manager."""
        if self._conn:
            self._conn.close()
            self._conn = None


def _delete_with_retry(path: Path, attempts: int = _DELETE_ATTEMPTS) -> None:
    for attempt in range(1, attempts + 1):
        try:
            path.unlink(missing_ok=True)
            return
        except OSError as exc:
            if attempt == attempts:
                raise
            logger.debug("Could not delete %s (%s); retrying", path, exc)
            time.sleep(_BACKOFF_BASE * attempt)
