"""Tests for local-first sync and the retry queue."""
import unittest
import tempfile
import shutil
import threading
from pathlib import Path
from datetime import datetime
from decimal import Decimal

from paylog.extraction.models import ExtractedTransaction, TransactionType
from paylog.orchestrator.events import EventBus, EventKind
from paylog.orchestrator.sync import SyncManager
from paylog.storage.local_store import LocalTransactionStore
from paylog.storage.models import PersistedTransaction, SyncState
from paylog.storage.remote import RemoteStore, UnconfiguredRemoteStore
from paylog.utils.exceptions import PermanentRemoteError, StoreError, TransientRemoteError
from paylog.utils.retry import RetryPolicy

NOW = datetime(2024, 12, 18, 14, 30, 45)


class FakeRemoteStore(RemoteStore):
    """Records writes; raises queued failures first."""

    def __init__(self):
        self.failures = []
        self.written = {}
        self.calls = 0

    def write(self, record):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        self.written[record.id] = record

    def read_for_owner(self, owner_id):
        return [r for r in self.written.values() if r.owner_id == owner_id]


class FakeConnectivity:
    def __init__(self, online=True):
        self.online = online

    def is_online(self):
        return self.online


def make_record() -> PersistedTransaction:
    extracted = ExtractedTransaction(
        amount=Decimal("250.00"),
        transaction_type=TransactionType.CREDIT,
        account_ref="xx9012",
        date="2024-12-17",
        time="09:15:00",
        source_text="Rs.250.00 credited to a/c XX9012",
        sender_id="AX-ICICIB",
        confidence=0.85,
    )
    return PersistedTransaction.from_extracted(extracted, "owner-1", "hash-1", created_at=NOW)


class TestSyncManager(unittest.TestCase):
    """Test SyncManager state transitions."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = Path(tempfile.mkdtemp())
        self.store = LocalTransactionStore(self.test_dir / "paylog.db")
        self.store.initialize()
        self.remote = FakeRemoteStore()
        self.connectivity = FakeConnectivity()
        self.sleeps = []
        self.bus = EventBus()
        self.events = self.bus.subscribe()
        self.sync = SyncManager(
            local_store=self.store,
            remote_store=self.remote,
            connectivity=self.connectivity,
            retry_policy=RetryPolicy(max_attempts=3, initial_delay=1.0, backoff_factor=2.0),
            sleep=self.sleeps.append,
            event_bus=self.bus,
            clock=lambda: NOW
        )

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def _persist_and_deliver(self):
        record = make_record()
        self.sync.persist_locally(record)
        return record, self.sync.deliver(record)

    def test_successful_delivery_confirms(self):
        record, outcome = self._persist_and_deliver()

        self.assertEqual(outcome.state, SyncState.REMOTE_CONFIRMED)
        self.assertEqual(outcome.attempts, 1)
        self.assertEqual(self.store.get_state(record.id), SyncState.REMOTE_CONFIRMED)
        self.assertTrue(self.store.get(record.id).synced)
        self.assertEqual(self.sync.queue_size(), 0)
        self.assertIn(record.id, self.remote.written)
        self.assertEqual([e.kind for e in self.events.drain()], [EventKind.SYNC_COMPLETED])

    def test_transient_failures_queue_then_drain_confirms(self):
        self.remote.failures = [TransientRemoteError("unavailable")] * 3

        record, outcome = self._persist_and_deliver()

        self.assertEqual(outcome.state, SyncState.QUEUED_FOR_RETRY)
        self.assertEqual(outcome.attempts, 3)
        self.assertFalse(outcome.permanent)
        self.assertEqual(self.sleeps, [1.0, 2.0])
        self.assertEqual(self.store.get_state(record.id), SyncState.QUEUED_FOR_RETRY)
        self.assertFalse(self.store.get(record.id).synced)
        entry = self.sync.queued_entries()[0]
        self.assertEqual(entry.attempts, 3)
        self.assertFalse(entry.permanent)

        report = self.sync.drain_queue_now()

        self.assertEqual((report.attempted, report.confirmed, report.failed), (1, 1, 0))
        self.assertEqual(self.store.get_state(record.id), SyncState.REMOTE_CONFIRMED)
        self.assertEqual(self.sync.queue_size(), 0)
        kinds = [e.kind for e in self.events.drain()]
        self.assertEqual(kinds, [EventKind.QUEUED, EventKind.SYNC_COMPLETED])

    def test_permanent_failure_uses_one_attempt(self):
        self.remote.failures = [PermanentRemoteError("permission denied")]

        record, outcome = self._persist_and_deliver()

        self.assertEqual(outcome.state, SyncState.QUEUED_FOR_RETRY)
        self.assertEqual(outcome.attempts, 1)
        self.assertTrue(outcome.permanent)
        self.assertEqual(self.remote.calls, 1)
        self.assertEqual(self.sleeps, [])
        self.assertTrue(self.sync.queued_entries()[0].permanent)

    def test_offline_delivery_queues_without_network(self):
        self.connectivity.online = False

        record, outcome = self._persist_and_deliver()

        self.assertEqual(outcome.state, SyncState.QUEUED_FOR_RETRY)
        self.assertEqual(self.remote.calls, 0)
        self.assertEqual(self.sync.queue_size(), 1)
        self.assertEqual(self.store.get(record.id), record)

    def test_drain_skipped_while_offline(self):
        self.connectivity.online = False
        self._persist_and_deliver()

        report = self.sync.drain_queue_now()

        self.assertTrue(report.skipped_offline)
        self.assertEqual(report.attempted, 0)
        self.assertEqual(self.sync.queue_size(), 1)

    def test_failed_drain_keeps_entry_and_accumulates_attempts(self):
        self.remote.failures = [TransientRemoteError("unavailable")] * 6
        record, _ = self._persist_and_deliver()

        report = self.sync.drain_queue_now()

        self.assertEqual((report.attempted, report.confirmed, report.failed), (1, 0, 1))
        entry = self.sync.queued_entries()[0]
        self.assertEqual(entry.attempts, 6)
        self.assertEqual(entry.enqueued_at, NOW)

    def test_confirmed_record_is_not_redelivered(self):
        record, _ = self._persist_and_deliver()
        calls = self.remote.calls

        outcome = self.sync.deliver(record)

        self.assertEqual(outcome.state, SyncState.REMOTE_CONFIRMED)
        self.assertEqual(self.remote.calls, calls)
        self.assertEqual(self.sync.queue_size(), 0)

    def test_concurrent_drain_is_collapsed(self):
        self.sync._drain_lock.acquire()
        try:
            report = self.sync.drain_queue_now()
        finally:
            self.sync._drain_lock.release()
        self.assertTrue(report.skipped_busy)

    def test_unconfigured_remote_keeps_records_queued(self):
        self.sync.remote_store = UnconfiguredRemoteStore()

        record, outcome = self._persist_and_deliver()

        self.assertTrue(outcome.permanent)
        self.assertEqual(self.store.get_state(record.id), SyncState.QUEUED_FOR_RETRY)

    def _restarted_manager(self) -> SyncManager:
        store = LocalTransactionStore(self.store.db_path)
        store.initialize()
        return SyncManager(
            local_store=store,
            remote_store=self.remote,
            connectivity=self.connectivity,
            retry_policy=RetryPolicy(max_attempts=3, initial_delay=0.0),
            sleep=self.sleeps.append,
            clock=lambda: NOW
        )

    def test_interrupted_delivery_is_recovered_after_restart(self):
        record = make_record()
        self.sync.persist_locally(record)

        # Process dies before deliver() runs
        restarted = self._restarted_manager()
        report = restarted.drain_queue_now()

        self.assertEqual(report.recovered, 1)
        self.assertEqual(report.confirmed, 1)
        self.assertIn(record.id, self.remote.written)
        self.assertEqual(restarted.local_store.get_state(record.id), SyncState.REMOTE_CONFIRMED)
        self.assertEqual(restarted.queue_size(), 0)

    def test_interrupted_delivery_is_queued_while_offline(self):
        record = make_record()
        self.sync.persist_locally(record)
        self.connectivity.online = False

        report = self._restarted_manager().drain_queue_now()

        self.assertTrue(report.skipped_offline)
        self.assertEqual(report.recovered, 1)
        self.assertEqual(self.store.get_state(record.id), SyncState.QUEUED_FOR_RETRY)
        self.assertEqual(self.remote.calls, 0)

    def test_failed_queueing_is_recovered_by_next_drain(self):
        record = make_record()
        self.sync.persist_locally(record)
        self.remote.failures = [TransientRemoteError("unavailable")] * 3
        original_enqueue = self.store.enqueue

        def broken_enqueue(entry):
            raise StoreError("disk full")

        self.store.enqueue = broken_enqueue
        with self.assertRaises(StoreError):
            self.sync.deliver(record)
        self.store.enqueue = original_enqueue

        self.assertEqual(self.store.get_state(record.id), SyncState.LOCALLY_PERSISTED)

        report = self.sync.drain_queue_now()

        self.assertEqual((report.recovered, report.confirmed), (1, 1))
        self.assertEqual(self.store.get_state(record.id), SyncState.REMOTE_CONFIRMED)

    def test_delivery_in_progress_is_not_recovered(self):
        record = make_record()
        self.sync.persist_locally(record)

        report = self.sync.drain_queue_now()

        self.assertEqual(report.recovered, 0)
        self.assertEqual(self.store.get_state(record.id), SyncState.LOCALLY_PERSISTED)
        self.assertEqual(self.sync.deliver(record).state, SyncState.REMOTE_CONFIRMED)

    def test_drain_runs_alongside_ingestion(self):
        self.remote.failures = [TransientRemoteError("unavailable")] * 3
        self._persist_and_deliver()

        threads = [threading.Thread(target=self.sync.drain_queue_now) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(self.sync.queue_size(), 0)
        self.assertEqual(len(self.remote.written), 1)


if __name__ == "__main__":
    unittest.main()
