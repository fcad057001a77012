"""SQLite storage for raw message records and recorded tasks."""

import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable

import structlog

from db import from_db_time, to_db_time, wal_connect

from .models import CandidateTask, MessageRecord, RecordedTask

logger = structlog.get_logger()


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create the messages/tasks/task_metadata tables if missing."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            source TEXT NOT NULL,
            body TEXT NOT NULL,
            processed INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMP NOT NULL
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            message_id INTEGER REFERENCES messages(id) ON DELETE SET NULL,
            source TEXT NOT NULL,
            action TEXT NOT NULL,
            priority TEXT NOT NULL DEFAULT 'medium',
            sender TEXT,
            environment TEXT,
            synced INTEGER NOT NULL DEFAULT 0,
            synced_at TIMESTAMP,
            created_at TIMESTAMP NOT NULL
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS task_metadata (
            task_id TEXT PRIMARY KEY REFERENCES tasks(id) ON DELETE CASCADE,
            reasoning TEXT,
            confidence REAL,
            relevance_score REAL
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_created ON tasks(created_at)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_synced ON tasks(synced)")


def insert_message_record(
    conn: sqlite3.Connection, source: str, body: str, created_at: datetime
) -> MessageRecord:
    """Insert a raw message row on an open connection (joins the caller's transaction)."""
    cur = conn.execute(
        "INSERT INTO messages (source, body, processed, created_at) VALUES (?, ?, 0, ?)",
        (source, body, to_db_time(created_at)),
    )
    return MessageRecord(
        id=cur.lastrowid,
        source=source,
        body=body,
        processed=False,
        created_at=created_at,
    )


class TaskStore:
    """SQLite persistence for raw message records and deduplicated tasks."""

    def __init__(self, db_path: str | Path, clock: Callable[[], datetime] = datetime.now):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        with wal_connect(self.db_path) as conn:
            ensure_schema(conn)

    # --- raw message records ---

    def create_message(self, source: str, body: str) -> MessageRecord:
        with wal_connect(self.db_path) as conn:
            return insert_message_record(conn, source, body, self._clock())

    def get_message(self, message_id: int) -> MessageRecord | None:
        with wal_connect(self.db_path, row_factory=True) as conn:
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        if not row:
            return None
        return MessageRecord(
            id=row["id"],
            source=row["source"],
            body=row["body"],
            processed=bool(row["processed"]),
            created_at=from_db_time(row["created_at"]),
        )

    def mark_message_processed(self, message_id: int) -> None:
        with wal_connect(self.db_path) as conn:
            conn.execute("UPDATE messages SET processed = 1 WHERE id = ?", (message_id,))

    # --- tasks ---

    def add_task(
        self,
        candidate: CandidateTask,
        source: str,
        message_id: int | None = None,
    ) -> RecordedTask:
        """Persist a candidate that passed (or bypassed) the duplicate check."""
        task = RecordedTask(
            id=uuid.uuid4().hex[:16],
            action=candidate.action,
            priority=candidate.priority,
            sender=candidate.sender,
            environment=candidate.environment,
            source=source,
            message_id=message_id,
            created_at=self._clock(),
        )
        with wal_connect(self.db_path) as conn:
            conn.execute(
                """INSERT INTO tasks
                   (id, message_id, source, action, priority, sender, environment, synced, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)""",
                (
                    task.id,
                    task.message_id,
                    task.source,
                    task.action,
                    task.priority,
                    task.sender,
                    task.environment,
                    to_db_time(task.created_at),
                ),
            )
            if candidate.has_metadata:
                conn.execute(
                    """INSERT INTO task_metadata (task_id, reasoning, confidence, relevance_score)
                       VALUES (?, ?, ?, ?)""",
                    (task.id, candidate.reasoning, candidate.confidence, candidate.relevance_score),
                )
        return task

    def get_task(self, task_id: str) -> RecordedTask | None:
        with wal_connect(self.db_path, row_factory=True) as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return self._row_to_task(row) if row else None

    def get_metadata(self, task_id: str) -> dict | None:
        with wal_connect(self.db_path, row_factory=True) as conn:
            row = conn.execute(
                "SELECT reasoning, confidence, relevance_score FROM task_metadata WHERE task_id = ?",
                (task_id,),
            ).fetchone()
        return dict(row) if row else None

    def tasks_since(self, cutoff: datetime) -> list[RecordedTask]:
        """All tasks created at or after cutoff, newest first."""
        with wal_connect(self.db_path, row_factory=True) as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE created_at >= ? ORDER BY created_at DESC, rowid DESC",
                (to_db_time(cutoff),),
            ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def list_tasks(self, limit: int = 50, unsynced_only: bool = False) -> list[RecordedTask]:
        sql = "SELECT * FROM tasks"
        if unsynced_only:
            sql += " WHERE synced = 0"
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        with wal_connect(self.db_path, row_factory=True) as conn:
            rows = conn.execute(sql, (limit,)).fetchall()
        return [self._row_to_task(r) for r in rows]

    def mark_synced(self, task_id: str) -> bool:
        with wal_connect(self.db_path) as conn:
            cur = conn.execute(
                "UPDATE tasks SET synced = 1, synced_at = ? WHERE id = ?",
                (to_db_time(self._clock()), task_id),
            )
            return cur.rowcount > 0

    def count(self) -> int:
        with wal_connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM tasks").fetchone()[0]

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> RecordedTask:
        return RecordedTask(
            id=row["id"],
            action=row["action"],
            priority=row["priority"],
            sender=row["sender"],
            environment=row["environment"],
            source=row["source"],
            message_id=row["message_id"],
            created_at=from_db_time(row["created_at"]),
            synced=bool(row["synced"]),
            synced_at=from_db_time(row["synced_at"]),
        )
