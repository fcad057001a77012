"""Shared SQLite helpers: WAL connections, write transactions, timestamp codec."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

# Seconds a writer waits on a locked database before raising
BUSY_TIMEOUT = 30.0


def wal_connect(db_path: str | Path, row_factory: bool = False) -> sqlite3.Connection:
    """Open SQLite connection with WAL journal mode.

    Args:
        db_path: Path to database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.
    """
    conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def immediate_transaction(db_path: str | Path) -> Iterator[sqlite3.Connection]:
    """Single-writer transaction: takes the write lock up front with BEGIN IMMEDIATE.

    Readers keep working under WAL; a second writer blocks until commit or
    rollback, so a find-or-create inside the block is one atomic step.
    """
    conn = wal_connect(db_path, row_factory=True)
    conn.isolation_level = None
    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


def to_db_time(value: datetime) -> str:
    """Serialize a timestamp so lexical order in SQLite matches time order."""
    return value.isoformat(timespec="microseconds")


def from_db_time(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)
