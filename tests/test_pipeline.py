"""End-to-end tests for the transaction pipeline."""
import unittest
import tempfile
import shutil
import threading
from pathlib import Path
from datetime import datetime
from decimal import Decimal

from paylog.extraction.models import RawMessage, TransactionType
from paylog.orchestrator.events import EventBus, EventKind
from paylog.orchestrator.processor import TransactionPipeline, ProcessingOutcome
from paylog.orchestrator.sync import SyncManager
from paylog.storage.local_store import LocalTransactionStore
from paylog.storage.models import SyncState
from paylog.storage.remote import RemoteStore
from paylog.utils.exceptions import StoreNotInitializedError, TransientRemoteError
from paylog.utils.hash_registry import HashRegistry
from paylog.utils.retry import RetryPolicy
from paylog.validation.validator import TransactionValidator

NOW = datetime(2024, 12, 18, 14, 30, 45)


class FakeRemoteStore(RemoteStore):
    def __init__(self):
        self.failures = []
        self.written = []
        self._lock = threading.Lock()

    def write(self, record):
        with self._lock:
            if self.failures:
                raise self.failures.pop(0)
            self.written.append(record)

    def read_for_owner(self, owner_id):
        return [r for r in self.written if r.owner_id == owner_id]


class FakeConnectivity:
    def __init__(self, online=True):
        self.online = online

    def is_online(self):
        return self.online


class ExplodingAssembler:
    """Assembler stand-in that fails on demand."""

    def __init__(self, real):
        self.real = real
        self.detector = real.detector

    def assemble(self, message):
        if "explode" in message.content:
            raise RuntimeError("extractor crashed")
        return self.real.assemble(message)


class TestTransactionPipeline(unittest.TestCase):
    """Test TransactionPipeline end to end with SQLite stores."""

    def setUp(self):
        """Set up test fixtures."""
        self.test_dir = Path(tempfile.mkdtemp())
        db_path = self.test_dir / "paylog.db"

        self.registry = HashRegistry(db_path, clock=lambda: NOW)
        self.registry.initialize()
        self.store = LocalTransactionStore(db_path)
        self.store.initialize()

        self.remote = FakeRemoteStore()
        self.connectivity = FakeConnectivity()
        self.bus = EventBus()
        self.events = self.bus.subscribe()

        self.sync = SyncManager(
            local_store=self.store,
            remote_store=self.remote,
            connectivity=self.connectivity,
            retry_policy=RetryPolicy(max_attempts=3, initial_delay=0.0),
            sleep=lambda _: None,
            event_bus=self.bus,
            clock=lambda: NOW
        )
        self.pipeline = TransactionPipeline(
            owner_id="owner-1",
            hash_registry=self.registry,
            sync_manager=self.sync,
            validator=TransactionValidator(clock=lambda: NOW),
            event_bus=self.bus,
            max_workers=4,
            clock=lambda: NOW
        )

    def tearDown(self):
        """Clean up test fixtures."""
        self.pipeline.shutdown()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def _message(self, content, sender="VK-HDFCBK", received_at=NOW):
        return RawMessage(sender=sender, content=content, received_at=received_at)

    def _kinds(self):
        return [e.kind for e in self.events.drain()]

    def test_debit_message_is_persisted_and_confirmed(self):
        text = "Your account XXXXXX1234 has been debited with Rs.1,500.00 on 15-Dec-2024"

        result = self.pipeline.submit_raw_message(self._message(text))

        self.assertEqual(result.outcome, ProcessingOutcome.CONFIRMED)
        record = result.transaction
        self.assertEqual(record.amount, Decimal("1500.00"))
        self.assertEqual(record.transaction_type, TransactionType.DEBIT)
        self.assertEqual(record.account_ref, "xxxxxx1234")
        self.assertEqual(record.date, "2024-12-15")
        self.assertEqual(record.owner_id, "owner-1")
        self.assertTrue(record.synced)
        self.assertFalse(record.is_manual_entry)
        self.assertEqual(self.store.get_state(record.id), SyncState.REMOTE_CONFIRMED)
        self.assertTrue(self.registry.is_duplicate(result.dedup_hash))
        self.assertEqual(self._kinds(), [
            EventKind.FINANCIAL_MESSAGE_DETECTED,
            EventKind.PARSED,
            EventKind.PERSISTED,
            EventKind.SYNC_COMPLETED,
        ])

    def test_spelled_credit_uses_receipt_time(self):
        result = self.pipeline.submit_raw_message(self._message("Two Lakh rupees credited"))

        self.assertTrue(result.persisted)
        record = result.transaction
        self.assertEqual(record.amount, 200000.0)
        self.assertEqual(record.transaction_type, TransactionType.CREDIT)
        self.assertEqual(record.date, "2024-12-18")
        self.assertEqual(record.time, "14:30:45")

    def test_empty_messages_rejected_silently(self):
        for content in ("", "   ", "\n"):
            result = self.pipeline.submit_raw_message(self._message(content))
            self.assertEqual(result.outcome, ProcessingOutcome.IGNORED_EMPTY)

        result = self.pipeline.submit_raw_message(self._message("Rs.100 debited", sender=""))
        self.assertEqual(result.outcome, ProcessingOutcome.IGNORED_EMPTY)

        self.assertEqual(self._kinds(), [])
        self.assertEqual(self.store.count(), 0)
        self.assertEqual(self.registry.count(), 0)

    def test_non_financial_message(self):
        result = self.pipeline.submit_raw_message(self._message("Meeting moved to 4pm"))

        self.assertEqual(result.outcome, ProcessingOutcome.NOT_FINANCIAL)
        self.assertEqual(self._kinds(), [EventKind.NOT_FINANCIAL])
        self.assertEqual(self.store.count(), 0)

    def test_financial_message_without_amount(self):
        result = self.pipeline.submit_raw_message(self._message("Your account has been debited"))

        self.assertEqual(result.outcome, ProcessingOutcome.UNPARSEABLE)
        self.assertIn(EventKind.PARSING_FAILED, self._kinds())
        self.assertFalse(self.registry.is_duplicate(result.dedup_hash))

    def test_same_message_twice_persists_once(self):
        message = self._message("Rs.500 debited from a/c XX1234 on 15-12-2024")

        first = self.pipeline.submit_raw_message(message)
        second = self.pipeline.submit_raw_message(message)

        self.assertTrue(first.persisted)
        self.assertEqual(second.outcome, ProcessingOutcome.DUPLICATE)
        self.assertEqual(len(self.pipeline.transactions_for_owner()), 1)
        self.assertEqual(len(self.remote.written), 1)
        self.assertIn(EventKind.DUPLICATE_DETECTED, self._kinds())

    def test_different_receipt_time_is_not_duplicate(self):
        text = "Rs.500 debited from a/c XX1234 on 15-12-2024"
        self.pipeline.submit_raw_message(self._message(text))
        later = self.pipeline.submit_raw_message(self._message(text, received_at=datetime(2024, 12, 18, 14, 31)))

        self.assertTrue(later.persisted)
        self.assertEqual(len(self.pipeline.transactions_for_owner()), 2)

    def test_concurrent_identical_messages_persist_once(self):
        message = self._message("Rs.750 credited to a/c XX5678 on 16-12-2024")

        results = self.pipeline.submit_batch([message] * 8)

        outcomes = [r.outcome for r in results]
        self.assertEqual(sum(1 for r in results if r.persisted), 1)
        self.assertEqual(outcomes.count(ProcessingOutcome.DUPLICATE), 7)
        self.assertEqual(len(self.pipeline.transactions_for_owner()), 1)

    def test_invalid_record_is_not_persisted_and_hash_not_marked(self):
        message = self._message("Rs.500 debited on 01-01-2020")

        result = self.pipeline.submit_raw_message(message)

        self.assertEqual(result.outcome, ProcessingOutcome.INVALID)
        self.assertTrue(result.errors)
        self.assertEqual(self.store.count(), 0)
        self.assertFalse(self.registry.is_duplicate(result.dedup_hash))
        self.assertIn(EventKind.VALIDATION_FAILED, self._kinds())

    def test_remote_outage_queues_then_drain_confirms(self):
        self.remote.failures = [TransientRemoteError("unavailable")] * 3

        result = self.pipeline.submit_raw_message(self._message("Rs.300 paid via UPI on 17-12-2024"))

        self.assertEqual(result.outcome, ProcessingOutcome.QUEUED)
        self.assertTrue(self.registry.is_duplicate(result.dedup_hash))
        self.assertEqual(self.sync.queue_size(), 1)

        report = self.pipeline.drain_queue_now()

        self.assertEqual(report.confirmed, 1)
        self.assertEqual(self.store.get_state(result.transaction.id), SyncState.REMOTE_CONFIRMED)
        self.assertEqual(self.pipeline.statistics.confirmed, 1)
        self.assertEqual(self.pipeline.statistics.queued, 1)

    def test_manual_entry_flag(self):
        result = self.pipeline.submit_raw_message(self._message("Rs.90 paid on 17-12-2024"), manual=True)
        self.assertTrue(result.transaction.is_manual_entry)

    def test_unexpected_error_is_contained(self):
        self.pipeline.assembler = ExplodingAssembler(self.pipeline.assembler)

        failed = self.pipeline.submit_raw_message(self._message("Rs.10 debited explode"))
        ok = self.pipeline.submit_raw_message(self._message("Rs.20 debited on 17-12-2024"))

        self.assertEqual(failed.outcome, ProcessingOutcome.FAILED)
        self.assertTrue(ok.persisted)
        self.assertEqual(self.pipeline.statistics.errors, 1)
        self.assertIn(EventKind.ERROR, self._kinds())

    def test_uninitialized_registry_raises(self):
        self.registry.close()
        with self.assertRaises(StoreNotInitializedError):
            self.pipeline.submit_raw_message(self._message("Rs.20 debited"))

    def test_statistics(self):
        self.pipeline.submit_raw_message(self._message("Rs.20 debited on 17-12-2024"))
        self.pipeline.submit_raw_message(self._message("Rs.20 debited on 17-12-2024"))
        self.pipeline.submit_raw_message(self._message("hello"))

        stats = self.pipeline.statistics
        self.assertEqual(stats.total_received, 3)
        self.assertEqual(stats.financial, 2)
        self.assertEqual(stats.parsed, 1)
        self.assertEqual(stats.validation_passed, 1)
        self.assertEqual(stats.persisted, 1)
        self.assertEqual(stats.duplicates, 1)
        self.assertEqual(stats.confirmed, 1)
        self.assertAlmostEqual(stats.parse_success_rate, 0.5)

    def test_submit_async_returns_result(self):
        future = self.pipeline.submit_async(self._message("Rs.45 paid on 17-12-2024"))
        self.assertTrue(future.result(timeout=10).persisted)


if __name__ == "__main__":
    unittest.main()
