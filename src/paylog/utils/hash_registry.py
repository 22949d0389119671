"""Message hash registry for deduplication using SQLite."""
import hashlib
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from .exceptions import StoreNotInitializedError
from .logger import get_logger

logger = get_logger()


@dataclass
class DedupRecord:
    hash: str
    processed_at: datetime


def to_epoch_millis(moment: datetime) -> int:
    """Milliseconds since the epoch, exact for the millisecond part."""
    whole_seconds = int(moment.replace(microsecond=0).timestamp())
    return whole_seconds * 1000 + moment.microsecond // 1000


class HashRegistry:
    """Manages the local set of processed message hashes.

    The store must be opened with ``initialize()`` before any other call;
    using it earlier raises ``StoreNotInitializedError``.
    """

    def __init__(self, db_path: Path, clock: Callable[[], datetime] = datetime.now):
        self.db_path = Path(db_path)
        self.clock = clock
        self._initialized = False
        self._write_lock = threading.Lock()
        self._guard_lock = threading.Lock()
        self._hash_locks: Dict[str, list] = {}

    def initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS processed_hashes (
                    hash TEXT PRIMARY KEY,
                    processed_at_ms INTEGER NOT NULL
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_processed_at ON processed_hashes(processed_at_ms)"
            )
            conn.commit()
        self._initialized = True
        logger.debug(f"Hash registry ready at {self.db_path}")

    def close(self) -> None:
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @staticmethod
    def calculate_hash(sender: str, content: str, received_at: datetime) -> str:
        """SHA-256 over sender, content and receipt time in milliseconds."""
        combined = f"{sender}|{content}|{to_epoch_millis(received_at)}"
        return hashlib.sha256(combined.encode("utf-8")).hexdigest()

    def calculate_message_hash(self, message) -> str:
        return self.calculate_hash(message.sender, message.content, message.received_at)

    @contextmanager
    def guard(self, file_hash: str) -> Iterator[None]:
        """Critical section for one hash.

        Wrap the is_duplicate -> persist -> mark_processed sequence in this so
        two identical messages cannot both pass the duplicate check.
        """
        with self._guard_lock:
            entry = self._hash_locks.setdefault(file_hash, [threading.Lock(), 0])
            entry[1] += 1

        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._hash_locks[file_hash]

    def is_duplicate(self, file_hash: str) -> bool:
        """Return True if this hash has been marked as processed."""
        self._ensure_initialized()
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT 1 FROM processed_hashes WHERE hash = ?", (file_hash,))
            return cursor.fetchone() is not None

    def mark_processed(self, file_hash: str, processed_at: Optional[datetime] = None) -> bool:
        """Record the hash. Idempotent; returns False if it was already present."""
        self._ensure_initialized()
        if processed_at is None:
            processed_at = self.clock()

        with self._write_lock, sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT OR IGNORE INTO processed_hashes (hash, processed_at_ms) VALUES (?, ?)",
                (file_hash, to_epoch_millis(processed_at))
            )
            conn.commit()
            return cursor.rowcount == 1

    def get_processed_at(self, file_hash: str) -> Optional[datetime]:
        self._ensure_initialized()
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT processed_at_ms FROM processed_hashes WHERE hash = ?", (file_hash,)
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return datetime.fromtimestamp(row[0] / 1000)

    def purge_older_than(self, max_age: timedelta = timedelta(days=90)) -> int:
        """Delete hashes processed before now - max_age. Returns rows removed."""
        self._ensure_initialized()
        cutoff = to_epoch_millis(self.clock() - max_age)

        with self._write_lock, sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM processed_hashes WHERE processed_at_ms < ?", (cutoff,))
            conn.commit()
            removed = cursor.rowcount

        logger.info(f"Purged {removed} dedup hashes older than {max_age.days} days")
        return removed

    def list_records(self) -> List[DedupRecord]:
        self._ensure_initialized()
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT hash, processed_at_ms FROM processed_hashes ORDER BY processed_at_ms DESC"
            )
            return [
                DedupRecord(hash=r[0], processed_at=datetime.fromtimestamp(r[1] / 1000))
                for r in cursor.fetchall()
            ]

    def count(self) -> int:
        self._ensure_initialized()
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM processed_hashes")
            return cursor.fetchone()[0]

    def clear(self) -> int:
        self._ensure_initialized()
        with self._write_lock, sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM processed_hashes")
            conn.commit()
            return cursor.rowcount

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise StoreNotInitializedError(
                "HashRegistry not initialized. Call initialize() first."
            )
