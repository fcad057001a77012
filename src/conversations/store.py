"""SQLite-backed buffer of in-flight conversations."""

import sqlite3
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable

import structlog

from db import from_db_time, immediate_transaction, to_db_time, wal_connect
from tasks.models import MessageRecord
from tasks.store import ensure_schema, insert_message_record

from .keys import DEFAULT_BUCKET_SECONDS, conversation_key
from .models import BufferedMessage, Conversation, ConversationFinalizedError
from .render import render_conversation

logger = structlog.get_logger()


class KeyedLock:
    """One re-entrant lock per conversation key."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    def prune(self, keep: set[str]) -> int:
        """Drop idle locks for keys no longer buffered."""
        dropped = 0
        with self._guard:
            for key in list(self._locks):
                if key in keep:
                    continue
                lock = self._locks[key]
                if lock.acquire(blocking=False):
                    try:
                        del self._locks[key]
                        dropped += 1
                    finally:
                        lock.release()
        return dropped

    def __len__(self) -> int:
        return len(self._locks)


class ConversationStore:
    """Holds unfinalized conversations keyed by conversation key.

    All mutations of one key (append, finalize) are linearized: an
    in-process per-key lock plus a BEGIN IMMEDIATE transaction, so
    find-or-create and append happen as a single step even across
    processes sharing the database.
    """

    def __init__(
        self,
        db_path: str | Path,
        buffer_minutes: float = 5,
        silence_minutes: float = 3,
        bucket_seconds: int = DEFAULT_BUCKET_SECONDS,
        retention_days: float = 7,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.buffer_window = timedelta(minutes=buffer_minutes)
        self.silence_threshold = timedelta(minutes=silence_minutes)
        self.bucket_seconds = bucket_seconds
        self.retention = timedelta(days=retention_days)
        self._clock = clock
        self._locks = KeyedLock()
        self._init_db()

    def _init_db(self):
        with wal_connect(self.db_path) as conn:
            ensure_schema(conn)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_key TEXT NOT NULL,
                    channel TEXT NOT NULL,
                    thread_id TEXT,
                    source TEXT NOT NULL DEFAULT 'slack',
                    first_seen_at TIMESTAMP NOT NULL,
                    last_seen_at TIMESTAMP NOT NULL,
                    finalized INTEGER NOT NULL DEFAULT 0,
                    finalized_at TIMESTAMP,
                    message_id INTEGER
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversation_messages (
                    conversation_id INTEGER NOT NULL
                        REFERENCES conversations(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    sender TEXT NOT NULL,
                    body TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    PRIMARY KEY (conversation_id, position)
                )
            """)
            # At most one open conversation per key; finalized rows may repeat it.
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_conversations_open_key
                ON conversations(conversation_key) WHERE finalized = 0
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_conversations_first_seen "
                "ON conversations(finalized, first_seen_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_conversations_finalized_at "
                "ON conversations(finalized, finalized_at)"
            )

    def lock_for(self, key: str) -> threading.RLock:
        return self._locks.lock_for(key)

    def key_for(self, channel: str, thread_id: str | None, now: datetime) -> str:
        return conversation_key(channel, thread_id, now, self.bucket_seconds)

    def append(
        self,
        channel: str,
        thread_id: str | None,
        body: str,
        sender: str,
        timestamp: str | None = None,
        source: str = "slack",
        now: datetime | None = None,
    ) -> Conversation:
        """Add a message to the open conversation for its key, creating one if needed."""
        now = now or self._clock()
        key = self.key_for(channel, thread_id, now)
        stamp = timestamp or now.isoformat()

        with self.lock_for(key):
            with immediate_transaction(self.db_path) as conn:
                row = conn.execute(
                    "SELECT id, last_seen_at FROM conversations "
                    "WHERE conversation_key = ? AND finalized = 0",
                    (key,),
                ).fetchone()
                if row is None:
                    cur = conn.execute(
                        """INSERT INTO conversations
                           (conversation_key, channel, thread_id, source, first_seen_at, last_seen_at)
                           VALUES (?, ?, ?, ?, ?, ?)""",
                        (key, channel, thread_id or None, source, to_db_time(now), to_db_time(now)),
                    )
                    conversation_id = cur.lastrowid
                    position = 0
                else:
                    conversation_id = row["id"]
                    position = conn.execute(
                        "SELECT COUNT(*) FROM conversation_messages WHERE conversation_id = ?",
                        (conversation_id,),
                    ).fetchone()[0]
                    last_seen = max(from_db_time(row["last_seen_at"]), now)
                    conn.execute(
                        "UPDATE conversations SET last_seen_at = ? WHERE id = ?",
                        (to_db_time(last_seen), conversation_id),
                    )
                conn.execute(
                    """INSERT INTO conversation_messages
                       (conversation_id, position, sender, body, timestamp)
                       VALUES (?, ?, ?, ?, ?)""",
                    (conversation_id, position, sender, body, stamp),
                )
                conversation = self._load(conn, conversation_id)

        logger.info(
            "buffer.message_added",
            conversation_key=key,
            message_count=conversation.message_count,
            buffer_age_seconds=int(conversation.age_seconds(now)),
        )
        return conversation

    def get(self, conversation_id: int) -> Conversation | None:
        with wal_connect(self.db_path, row_factory=True) as conn:
            return self._load(conn, conversation_id)

    def get_open(self, key: str) -> Conversation | None:
        with wal_connect(self.db_path, row_factory=True) as conn:
            row = conn.execute(
                "SELECT id FROM conversations WHERE conversation_key = ? AND finalized = 0",
                (key,),
            ).fetchone()
            return self._load(conn, row["id"]) if row else None

    def list_open(self) -> list[Conversation]:
        """All unfinalized conversations, oldest first."""
        with wal_connect(self.db_path, row_factory=True) as conn:
            rows = conn.execute(
                "SELECT id FROM conversations WHERE finalized = 0 ORDER BY first_seen_at, id"
            ).fetchall()
            return [self._load(conn, r["id"]) for r in rows]

    def ready_conversations(self, now: datetime | None = None) -> list[Conversation]:
        """Unfinalized conversations past the buffer window or the silence threshold.

        Ordered oldest first_seen_at first so earlier bursts are never starved.
        """
        now = now or self._clock()
        age_cutoff = now - self.buffer_window
        silence_cutoff = now - self.silence_threshold
        with wal_connect(self.db_path, row_factory=True) as conn:
            rows = conn.execute(
                """SELECT id FROM conversations
                   WHERE finalized = 0
                     AND (first_seen_at <= ? OR last_seen_at <= ?)
                   ORDER BY first_seen_at, id""",
                (to_db_time(age_cutoff), to_db_time(silence_cutoff)),
            ).fetchall()
            return [self._load(conn, r["id"]) for r in rows]

    def finalize(self, conversation: Conversation, now: datetime | None = None) -> MessageRecord:
        """Render the conversation, store the raw text record, and close it.

        Happens exactly once per conversation; a second call raises
        ConversationFinalizedError. The passed object is updated in place.
        """
        return self._finalize(conversation, now, strict=True)

    def finalize_if_open(
        self, conversation: Conversation, now: datetime | None = None
    ) -> MessageRecord | None:
        """Like finalize, but returns None when the row was already finalized.

        The check runs inside the write transaction, so it also holds against
        another process sharing the database.
        """
        return self._finalize(conversation, now, strict=False)

    def _finalize(
        self, conversation: Conversation, now: datetime | None, strict: bool
    ) -> MessageRecord | None:
        now = now or self._clock()
        with self.lock_for(conversation.key):
            with immediate_transaction(self.db_path) as conn:
                current = self._load(conn, conversation.id)
                if current is None:
                    if not strict:
                        return None
                    raise LookupError(f"Conversation id={conversation.id} not found")
                if current.finalized:
                    if not strict:
                        logger.info(
                            "buffer.already_finalized",
                            conversation_key=current.key,
                            conversation_id=current.id,
                        )
                        return None
                    raise ConversationFinalizedError(
                        f"Conversation {current.key} (id={current.id}) already finalized"
                    )

                text = render_conversation(current)
                record = insert_message_record(conn, current.source, text, now)
                conn.execute(
                    """UPDATE conversations
                       SET finalized = 1, finalized_at = ?, message_id = ?
                       WHERE id = ? AND finalized = 0""",
                    (to_db_time(now), record.id, current.id),
                )

        conversation.messages = current.messages
        conversation.last_seen_at = current.last_seen_at
        conversation.finalized = True
        conversation.finalized_at = now
        conversation.derived_message_id = record.id

        logger.info(
            "buffer.finalized",
            conversation_key=conversation.key,
            message_count=conversation.message_count,
            message_id=record.id,
        )
        return record

    def cleanup_finalized(self, now: datetime | None = None) -> int:
        """Delete finalized conversations older than the retention horizon."""
        now = now or self._clock()
        cutoff = now - self.retention
        with wal_connect(self.db_path) as conn:
            cur = conn.execute(
                "DELETE FROM conversations WHERE finalized = 1 AND finalized_at <= ?",
                (to_db_time(cutoff),),
            )
            deleted = cur.rowcount
            open_keys = {
                r[0]
                for r in conn.execute(
                    "SELECT conversation_key FROM conversations WHERE finalized = 0"
                ).fetchall()
            }
        self._locks.prune(open_keys)
        if deleted:
            logger.info("buffer.cleanup", deleted=deleted, retention_days=self.retention.days)
        return deleted

    @staticmethod
    def _load(conn: sqlite3.Connection, conversation_id: int | None) -> Conversation | None:
        if conversation_id is None:
            return None
        conn.row_factory = sqlite3.Row
        row = conn.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        ).fetchone()
        if not row:
            return None
        message_rows = conn.execute(
            """SELECT sender, body, timestamp FROM conversation_messages
               WHERE conversation_id = ? ORDER BY position""",
            (conversation_id,),
        ).fetchall()
        return Conversation(
            id=row["id"],
            key=row["conversation_key"],
            channel=row["channel"],
            thread_id=row["thread_id"],
            source=row["source"],
            first_seen_at=from_db_time(row["first_seen_at"]),
            last_seen_at=from_db_time(row["last_seen_at"]),
            messages=[
                BufferedMessage(sender=m["sender"], body=m["body"], timestamp=m["timestamp"])
                for m in message_rows
            ],
            finalized=bool(row["finalized"]),
            finalized_at=from_db_time(row["finalized_at"]),
            derived_message_id=row["message_id"],
        )
