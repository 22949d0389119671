"""Local-first delivery of transactions to the remote store.

State machine per record:

    CREATED -> LOCALLY_PERSISTED -> REMOTE_CONFIRMED
                                 -> QUEUED_FOR_RETRY -> REMOTE_CONFIRMED (on a later drain)

A record is always written locally before any network attempt, and a
REMOTE_CONFIRMED record never goes back to the queue.
"""
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Set

from .events import EventBus, EventKind
from ..storage.local_store import LocalTransactionStore
from ..storage.models import PersistedTransaction, QueueEntry, SyncState
from ..storage.remote import RemoteStore
from ..utils.logger import get_logger
from ..utils.retry import RetryPolicy, RetryState

logger = get_logger()


@dataclass
class SyncOutcome:
    state: SyncState
    attempts: int = 0
    error: Optional[str] = None
    permanent: bool = False

    @property
    def confirmed(self) -> bool:
        return self.state == SyncState.REMOTE_CONFIRMED


@dataclass
class DrainReport:
    attempted: int = 0
    confirmed: int = 0
    failed: int = 0
    skipped_offline: bool = False
    skipped_busy: bool = False
    recovered: int = 0


class SyncManager:
    """Owns persisted records until the remote store has accepted them."""

    def __init__(
        self,
        local_store: LocalTransactionStore,
        remote_store: RemoteStore,
        connectivity=None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.local_store = local_store
        self.remote_store = remote_store
        self.connectivity = connectivity
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep = sleep
        self.event_bus = event_bus
        self.clock = clock
        self._drain_lock = threading.Lock()
        # Records between persist_locally and the end of deliver in this process
        self._in_flight: Set[str] = set()
        self._in_flight_lock = threading.Lock()

    def persist_locally(self, record: PersistedTransaction) -> None:
        """CREATED -> LOCALLY_PERSISTED. Must succeed before any remote attempt."""
        with self._in_flight_lock:
            self._in_flight.add(record.id)
        self.local_store.put(record, SyncState.LOCALLY_PERSISTED)
        logger.debug(f"Transaction {record.id} persisted locally")

    def deliver(self, record: PersistedTransaction) -> SyncOutcome:
        """Write a locally persisted record to the remote store, or queue it.

        A record left LOCALLY_PERSISTED because this call never finished (crash,
        store failure while queueing) is picked up by the next drain.
        """
        with self._in_flight_lock:
            self._in_flight.add(record.id)
        try:
            return self._deliver(record)
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(record.id)

    def _deliver(self, record: PersistedTransaction) -> SyncOutcome:
        if self.local_store.get_state(record.id) == SyncState.REMOTE_CONFIRMED:
            return SyncOutcome(SyncState.REMOTE_CONFIRMED)

        if not self._online():
            logger.info(f"Offline; queueing transaction {record.id} for later sync")
            self._enqueue(record, self.clock(), attempts=0, error="offline", permanent=False)
            return SyncOutcome(SyncState.QUEUED_FOR_RETRY, error="offline")

        outcome = self._attempt(record)
        if outcome.confirmed:
            return outcome

        self._enqueue(record, self.clock(), outcome.attempts, outcome.error, outcome.permanent)
        return outcome

    def drain_queue_now(self) -> DrainReport:
        """Re-attempt every queued entry once connectivity is available."""
        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Queue drain already in progress; skipping")
            return DrainReport(skipped_busy=True)

        try:
            recovered = self._recover_stranded()

            if not self._online():
                logger.info("Offline; queue drain skipped")
                return DrainReport(skipped_offline=True, recovered=recovered)

            report = DrainReport(recovered=recovered)
            entries = self.local_store.queued_entries()
            if entries:
                logger.info(f"Draining {len(entries)} queued transaction(s)")

            for entry in entries:
                record = entry.transaction
                report.attempted += 1

                if self.local_store.get_state(record.id) == SyncState.REMOTE_CONFIRMED:
                    self.local_store.dequeue(record.id)
                    report.confirmed += 1
                    continue

                outcome = self._attempt(record)
                if outcome.confirmed:
                    report.confirmed += 1
                else:
                    report.failed += 1
                    self._enqueue(
                        record,
                        entry.enqueued_at,
                        entry.attempts + outcome.attempts,
                        outcome.error,
                        outcome.permanent
                    )

            if entries:
                logger.info(
                    f"Queue drain finished: {report.confirmed} confirmed, {report.failed} still queued"
                )
            return report
        finally:
            self._drain_lock.release()

    def queue_size(self) -> int:
        return self.local_store.queue_size()

    def queued_entries(self) -> List[QueueEntry]:
        return self.local_store.queued_entries()

    def _recover_stranded(self) -> int:
        """Queue records still LOCALLY_PERSISTED that no delivery is working on."""
        with self._in_flight_lock:
            in_flight = set(self._in_flight)

        recovered = 0
        for record in self.local_store.list_in_state(SyncState.LOCALLY_PERSISTED):
            if record.id in in_flight:
                continue
            self._enqueue(record, record.created_at, 0, "delivery interrupted", False)
            recovered += 1

        if recovered:
            logger.warning(f"Recovered {recovered} transaction(s) whose delivery was interrupted")
        return recovered

    def _attempt(self, record: PersistedTransaction) -> SyncOutcome:
        state = RetryState()
        try:
            self.retry_policy.execute(
                lambda: self.remote_store.write(record),
                state=state,
                sleep=self.sleep,
                name=f"remote write of {record.id}"
            )
        except Exception as e:
            permanent = not self.retry_policy.is_retryable(e)
            return SyncOutcome(SyncState.QUEUED_FOR_RETRY, state.attempt, str(e), permanent)

        self._confirm(record)
        return SyncOutcome(SyncState.REMOTE_CONFIRMED, state.attempt)

    def _confirm(self, record: PersistedTransaction) -> None:
        self.local_store.put(record.mark_synced(), SyncState.REMOTE_CONFIRMED)
        self.local_store.dequeue(record.id)
        logger.info(f"Transaction {record.id} confirmed by remote store")
        self._emit(EventKind.SYNC_COMPLETED, record)

    def _enqueue(self, record: PersistedTransaction, enqueued_at: datetime,
                 attempts: int, error: Optional[str], permanent: bool) -> None:
        self.local_store.enqueue(QueueEntry(
            transaction=record,
            enqueued_at=enqueued_at,
            attempts=attempts,
            last_error=error,
            permanent=permanent
        ))
        kind = "permanent" if permanent else "transient"
        logger.warning(f"Transaction {record.id} queued for retry ({kind}): {error}")
        self._emit(EventKind.QUEUED, record, detail=error, data={"permanent": permanent})

    def _online(self) -> bool:
        return self.connectivity is None or self.connectivity.is_online()

    def _emit(self, kind: EventKind, record: PersistedTransaction, **kwargs) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(
                kind,
                sender=record.sender_id,
                transaction_id=record.id,
                dedup_hash=record.dedup_hash,
                **kwargs
            )
