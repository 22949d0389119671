"""Per-message processing pipeline.

Flow for one message:
    empty check -> financial detection -> duplicate check (guarded per hash)
    -> extraction -> validation -> local persist -> mark hash -> remote delivery

Each message is an independent unit of work; only byte-identical messages are
serialised against each other, through the hash registry guard.
"""
import concurrent.futures
import threading
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, List, Optional

from .events import EventBus, EventKind
from .sync import SyncManager, DrainReport
from ..extraction.assembler import TransactionAssembler
from ..extraction.financial_detector import FinancialContextDetector
from ..extraction.models import RawMessage
from ..storage.models import PersistedTransaction, SyncState
from ..utils.exceptions import StoreNotInitializedError
from ..utils.hash_registry import HashRegistry
from ..utils.logger import get_logger
from ..validation.validator import TransactionValidator

logger = get_logger()


class ProcessingOutcome(Enum):
    IGNORED_EMPTY = "ignored_empty"
    NOT_FINANCIAL = "not_financial"
    DUPLICATE = "duplicate"
    UNPARSEABLE = "unparseable"
    INVALID = "invalid"
    CONFIRMED = "confirmed"
    QUEUED = "queued"
    FAILED = "failed"


@dataclass
class ProcessingResult:
    outcome: ProcessingOutcome
    transaction: Optional[PersistedTransaction] = None
    dedup_hash: Optional[str] = None
    errors: Optional[List[str]] = None
    warnings: Optional[List[str]] = None

    @property
    def persisted(self) -> bool:
        return self.outcome in (ProcessingOutcome.CONFIRMED, ProcessingOutcome.QUEUED)


@dataclass
class PipelineStats:
    total_received: int = 0
    financial: int = 0
    parsed: int = 0
    validation_passed: int = 0
    persisted: int = 0
    duplicates: int = 0
    queued: int = 0
    confirmed: int = 0
    errors: int = 0

    @property
    def parse_success_rate(self) -> float:
        return self.parsed / self.financial if self.financial else 0.0


class TransactionPipeline:
    """Entry point for automatic and manual message submission."""

    def __init__(
        self,
        owner_id: str,
        hash_registry: HashRegistry,
        sync_manager: SyncManager,
        assembler: Optional[TransactionAssembler] = None,
        validator: Optional[TransactionValidator] = None,
        event_bus: Optional[EventBus] = None,
        max_workers: int = 4,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.owner_id = owner_id
        self.hash_registry = hash_registry
        self.sync_manager = sync_manager
        self.assembler = assembler or TransactionAssembler()
        self.detector: FinancialContextDetector = self.assembler.detector
        self.validator = validator or TransactionValidator()
        self.event_bus = event_bus or sync_manager.event_bus or EventBus()
        if sync_manager.event_bus is None:
            sync_manager.event_bus = self.event_bus
        self.clock = clock
        self.max_workers = max_workers

        self._stats = PipelineStats()
        self._stats_lock = threading.Lock()
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    def submit_raw_message(self, message: RawMessage, manual: bool = False) -> ProcessingResult:
        """
        Process one message to completion.

        Extraction misses, validation failures and remote failures are reported
        through the result and events. An uninitialised store raises.
        """
        self._count("total_received")

        if not message.content or not message.content.strip() or not message.sender or not message.sender.strip():
            logger.debug("Ignoring message with empty content or sender")
            return ProcessingResult(ProcessingOutcome.IGNORED_EMPTY)

        try:
            return self._process(message, manual)
        except StoreNotInitializedError:
            raise
        except Exception as e:
            self._count("errors")
            logger.error(f"Error processing message from {message.sender}: {e}")
            self._emit(EventKind.ERROR, message, detail=str(e))
            return ProcessingResult(ProcessingOutcome.FAILED, errors=[str(e)])

    def submit_async(self, message: RawMessage, manual: bool = False) -> concurrent.futures.Future:
        """Queue a message on the worker pool; the future yields its ProcessingResult."""
        return self._get_executor().submit(self.submit_raw_message, message, manual)

    def submit_batch(self, messages: Iterable[RawMessage], manual: bool = False) -> List[ProcessingResult]:
        """Process messages concurrently; results keep input order."""
        futures = [self.submit_async(message, manual) for message in messages]
        return [future.result() for future in futures]

    def drain_queue_now(self) -> DrainReport:
        report = self.sync_manager.drain_queue_now()
        if report.confirmed:
            self._count("confirmed", report.confirmed)
        return report

    def transactions_for_owner(self, owner_id: Optional[str] = None) -> List[PersistedTransaction]:
        return self.sync_manager.local_store.list_for_owner(owner_id or self.owner_id)

    @property
    def statistics(self) -> PipelineStats:
        with self._stats_lock:
            return PipelineStats(**asdict(self._stats))

    def reset_statistics(self) -> None:
        with self._stats_lock:
            self._stats = PipelineStats()

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting new work; already accepted messages finish."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    def _process(self, message: RawMessage, manual: bool) -> ProcessingResult:
        if not self.detector.is_financial(message.content):
            self._emit(EventKind.NOT_FINANCIAL, message)
            return ProcessingResult(ProcessingOutcome.NOT_FINANCIAL)

        self._count("financial")
        self._emit(EventKind.FINANCIAL_MESSAGE_DETECTED, message)

        dedup_hash = self.hash_registry.calculate_message_hash(message)

        with self.hash_registry.guard(dedup_hash):
            if self.hash_registry.is_duplicate(dedup_hash):
                self._count("duplicates")
                logger.info(f"Duplicate message from {message.sender} ignored")
                self._emit(EventKind.DUPLICATE_DETECTED, message, dedup_hash=dedup_hash)
                return ProcessingResult(ProcessingOutcome.DUPLICATE, dedup_hash=dedup_hash)

            extracted = self.assembler.assemble(message)
            if extracted is None:
                self._emit(EventKind.PARSING_FAILED, message, dedup_hash=dedup_hash)
                return ProcessingResult(ProcessingOutcome.UNPARSEABLE, dedup_hash=dedup_hash)

            self._count("parsed")
            self._emit(
                EventKind.PARSED,
                message,
                dedup_hash=dedup_hash,
                data={"amount": str(extracted.amount), "type": extracted.transaction_type.value}
            )

            record = PersistedTransaction.from_extracted(
                extracted,
                owner_id=self.owner_id,
                dedup_hash=dedup_hash,
                is_manual_entry=manual,
                created_at=self.clock()
            )

            validation = self.validator.validate(record)
            if not validation.is_valid:
                # Hash stays unmarked so the message can be corrected and resubmitted
                logger.warning(f"Validation failed for message from {message.sender}: {validation.errors}")
                self._emit(
                    EventKind.VALIDATION_FAILED,
                    message,
                    dedup_hash=dedup_hash,
                    detail="; ".join(validation.errors)
                )
                return ProcessingResult(
                    ProcessingOutcome.INVALID,
                    transaction=record,
                    dedup_hash=dedup_hash,
                    errors=validation.errors,
                    warnings=validation.warnings
                )

            self._count("validation_passed")
            for warning in validation.warnings:
                logger.info(f"Transaction {record.id}: {warning}")

            self.sync_manager.persist_locally(record)
            self._count("persisted")
            self._emit(EventKind.PERSISTED, message, transaction_id=record.id, dedup_hash=dedup_hash)

            self.hash_registry.mark_processed(dedup_hash)

        outcome = self.sync_manager.deliver(record)
        if outcome.state == SyncState.REMOTE_CONFIRMED:
            self._count("confirmed")
            result_outcome = ProcessingOutcome.CONFIRMED
        else:
            self._count("queued")
            result_outcome = ProcessingOutcome.QUEUED

        logger.info(
            f"Transaction {record.id} ({record.transaction_type.value} {record.amount}) "
            f"{result_outcome.value}"
        )
        return ProcessingResult(
            result_outcome,
            transaction=self.sync_manager.local_store.get(record.id) or record,
            dedup_hash=dedup_hash,
            warnings=validation.warnings
        )

    def _get_executor(self) -> concurrent.futures.ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix="paylog-worker"
                )
            return self._executor

    def _count(self, name: str, amount: int = 1) -> None:
        with self._stats_lock:
            setattr(self._stats, name, getattr(self._stats, name) + amount)

    def _emit(self, kind: EventKind, message: RawMessage, **kwargs) -> None:
        self.event_bus.emit(kind, sender=message.sender, **kwargs)
