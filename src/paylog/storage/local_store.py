"""Durable local store for transactions and the sync queue using SQLite."""
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from .models import PersistedTransaction, QueueEntry, SyncState
from ..utils.exceptions import StoreError, StoreNotInitializedError
from ..utils.logger import get_logger

logger = get_logger()


class LocalTransactionStore:
    """Persists transactions and queued deliveries so both survive restarts.

    Writes are serialised with a lock; reads open their own connection, so the
    ingestion path and the queue drain can use one instance concurrently.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._initialized = False
        self._write_lock = threading.Lock()

    def initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS transactions (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    state TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sync_queue (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    enqueued_at TEXT NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT,
                    permanent INTEGER NOT NULL DEFAULT 0
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_owner ON transactions(owner_id)"
            )
            conn.commit()
        self._initialized = True
        logger.debug(f"Local transaction store ready at {self.db_path}")

    def close(self) -> None:
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # Transactions

    def put(self, record: PersistedTransaction,
            state: SyncState = SyncState.LOCALLY_PERSISTED) -> None:
        """Insert or replace a record. A confirmed record keeps its confirmed state."""
        self._ensure_initialized()
        with self._write_lock, self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT state FROM transactions WHERE id = ?", (record.id,))
            row = cursor.fetchone()
            if row is not None and row[0] == SyncState.REMOTE_CONFIRMED.value:
                state = SyncState.REMOTE_CONFIRMED
                record = record.mark_synced()

            cursor.execute(
                """
                INSERT OR REPLACE INTO transactions (id, owner_id, payload, state, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.owner_id,
                    json.dumps(record.to_dict()),
                    state.value,
                    record.created_at.isoformat()
                )
            )
            conn.commit()

    def get(self, record_id: str) -> Optional[PersistedTransaction]:
        self._ensure_initialized()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT payload FROM transactions WHERE id = ?", (record_id,))
            row = cursor.fetchone()
            return PersistedTransaction.from_dict(json.loads(row[0])) if row else None

    def get_state(self, record_id: str) -> Optional[SyncState]:
        self._ensure_initialized()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT state FROM transactions WHERE id = ?", (record_id,))
            row = cursor.fetchone()
            return SyncState(row[0]) if row else None

    def delete(self, record_id: str) -> bool:
        self._ensure_initialized()
        with self._write_lock, self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM transactions WHERE id = ?", (record_id,))
            removed = cursor.rowcount
            cursor.execute("DELETE FROM sync_queue WHERE id = ?", (record_id,))
            conn.commit()
            return removed == 1

    def list_for_owner(self, owner_id: str) -> List[PersistedTransaction]:
        """Owner's records, oldest first."""
        self._ensure_initialized()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT payload FROM transactions WHERE owner_id = ? ORDER BY created_at, id",
                (owner_id,)
            )
            return [PersistedTransaction.from_dict(json.loads(r[0])) for r in cursor.fetchall()]

    def list_in_state(self, state: SyncState) -> List[PersistedTransaction]:
        """Records currently in the given sync state, oldest first."""
        self._ensure_initialized()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT payload FROM transactions WHERE state = ? ORDER BY created_at, id",
                (state.value,)
            )
            return [PersistedTransaction.from_dict(json.loads(r[0])) for r in cursor.fetchall()]

    def count(self) -> int:
        self._ensure_initialized()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM transactions")
            return cursor.fetchone()[0]

    # Sync queue

    def enqueue(self, entry: QueueEntry) -> None:
        """Add or refresh a queue entry; confirmed records are never queued."""
        self._ensure_initialized()
        record = entry.transaction
        with self._write_lock, self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT state FROM transactions WHERE id = ?", (record.id,))
            row = cursor.fetchone()
            if row is not None and row[0] == SyncState.REMOTE_CONFIRMED.value:
                logger.debug(f"Record {record.id} already confirmed; not queued")
                return

            cursor.execute(
                """
                INSERT OR REPLACE INTO sync_queue
                (id, owner_id, payload, enqueued_at, attempts, last_error, permanent)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.owner_id,
                    json.dumps(record.to_dict()),
                    entry.enqueued_at.isoformat(),
                    entry.attempts,
                    entry.last_error,
                    1 if entry.permanent else 0
                )
            )
            cursor.execute(
                "UPDATE transactions SET state = ? WHERE id = ?",
                (SyncState.QUEUED_FOR_RETRY.value, record.id)
            )
            conn.commit()

    def dequeue(self, record_id: str) -> bool:
        """Remove a queue entry. Returns True if one was removed."""
        self._ensure_initialized()
        with self._write_lock, self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM sync_queue WHERE id = ?", (record_id,))
            conn.commit()
            return cursor.rowcount == 1

    def queued_entries(self, owner_id: Optional[str] = None) -> List[QueueEntry]:
        """Queue entries, oldest first."""
        self._ensure_initialized()
        query = "SELECT payload, enqueued_at, attempts, last_error, permanent FROM sync_queue"
        params: tuple = ()
        if owner_id is not None:
            query += " WHERE owner_id = ?"
            params = (owner_id,)
        query += " ORDER BY enqueued_at, id"

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [
                QueueEntry(
                    transaction=PersistedTransaction.from_dict(json.loads(r[0])),
                    enqueued_at=datetime.fromisoformat(r[1]),
                    attempts=r[2],
                    last_error=r[3],
                    permanent=bool(r[4])
                )
                for r in cursor.fetchall()
            ]

    def queue_size(self) -> int:
        self._ensure_initialized()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM sync_queue")
            return cursor.fetchone()[0]

    def is_queued(self, record_id: str) -> bool:
        self._ensure_initialized()
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT 1 FROM sync_queue WHERE id = ?", (record_id,))
            return cursor.fetchone() is not None

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            with sqlite3.connect(self.db_path) as conn:
                yield conn
        except sqlite3.Error as e:
            raise StoreError(f"Local store failure at {self.db_path}: {e}") from e

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise StoreNotInitializedError(
                "LocalTransactionStore not initialized. Call initialize() first."
            )
