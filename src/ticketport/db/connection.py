"""SQLite access for the ticketport store.

Every connection enforces foreign keys, so removing a ticket also removes
its comments, findings, demo script and workflow state. Imports take the
write lock up front with ``transaction(immediate=True)``; exports only
ever need ``connection()``.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from .schema import SCHEMA_VERSION, get_migration_sql

# Seconds a writer waits on a locked database before giving up.
DEFAULT_BUSY_TIMEOUT = 5.0


class Database:
    """A ticket store file, migrated to the current schema on open.

    Usage:
        db = Database(settings.get_db_path())

        with db.connection() as conn:
            TrackerStore(conn).list_projects()

        # Lock out other writers for a whole import
        with db.transaction(immediate=True) as conn:
            TrackerStore(conn).insert_epic(...)
    """

    def __init__(self, db_path: Path, busy_timeout: float = DEFAULT_BUSY_TIMEOUT):
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._migrate()

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Yield a connection with ``sqlite3.Row`` rows and foreign keys on."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self, immediate: bool = False) -> Generator[sqlite3.Connection, None, None]:
        """Yield a connection whose writes commit together or not at all.

        With ``immediate=True`` the write lock is taken before the first
        statement runs, so no other writer can slip in between this
        transaction's reads and its writes.
        """
        with self.connection() as conn:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def _migrate(self) -> None:
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
            """)
            current = self._read_version(conn)
            if current >= SCHEMA_VERSION:
                return

            for sql in get_migration_sql(current, SCHEMA_VERSION):
                conn.executescript(sql)
            conn.executemany(
                "INSERT INTO schema_version (version) VALUES (?)",
                [(v,) for v in range(current + 1, SCHEMA_VERSION + 1)],
            )

    @staticmethod
    def _read_version(conn: sqlite3.Connection) -> int:
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    def get_version(self) -> int:
        with self.connection() as conn:
            return self._read_version(conn)
