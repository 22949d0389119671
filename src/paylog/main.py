"""Main service entry point."""
import sys
import signal
import argparse
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Iterator, Optional, TextIO

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from paylog.config.settings import AppSettings, get_settings
from paylog.extraction.models import RawMessage
from paylog.orchestrator.connectivity import ConnectivityMonitor, StaticConnectivity
from paylog.orchestrator.events import EventBus
from paylog.orchestrator.processor import TransactionPipeline, ProcessingOutcome
from paylog.orchestrator.scheduler import QueueDrainScheduler
from paylog.orchestrator.sync import SyncManager
from paylog.sheets.store import SheetsRemoteStore
from paylog.storage.local_store import LocalTransactionStore
from paylog.storage.remote import RemoteStore, UnconfiguredRemoteStore
from paylog.utils.exceptions import ConfigError, PaylogError, ValidationError
from paylog.utils.hash_registry import HashRegistry
from paylog.utils.logger import get_logger, configure_logging, set_owner_context
from paylog.utils.retry import RetryPolicy
from paylog.validation.validator import TransactionValidator

logger = get_logger()
shutdown_requested = False


class RawMessagePayload(BaseModel):
    """Pydantic schema for one JSON line of incoming SMS."""
    sender: str = Field(min_length=1, description="Sender address or short code")
    content: str = Field(description="Message body")
    received_at: datetime = Field(description="Receipt time, ISO-8601 or epoch")
    thread_id: Optional[str] = Field(default=None, description="Conversation thread id")


@dataclass
class Service:
    pipeline: TransactionPipeline
    registry: HashRegistry
    store: LocalTransactionStore
    sync: SyncManager


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global shutdown_requested
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_requested = True


def parse_message_line(line: str) -> RawMessage:
    """Turn one JSON line into a RawMessage."""
    try:
        payload = RawMessagePayload.model_validate_json(line)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid message payload: {e}")

    return RawMessage(
        sender=payload.sender,
        content=payload.content,
        received_at=payload.received_at,
        thread_id=payload.thread_id
    )


def read_messages(lines: Iterable[str]) -> Iterator[RawMessage]:
    """Yield messages from JSON lines, skipping blank and malformed ones."""
    for number, line in enumerate(lines, start=1):
        if shutdown_requested:
            return
        if not line.strip():
            continue
        try:
            yield parse_message_line(line)
        except ValidationError as e:
            logger.warning(f"Skipping line {number}: {e}")


def create_remote_store(settings: AppSettings) -> RemoteStore:
    """Sheets store when configured, otherwise a store that always fails permanently."""
    if not settings.remote_configured:
        logger.warning("No remote store configured; transactions will stay queued locally")
        return UnconfiguredRemoteStore()

    return SheetsRemoteStore(
        spreadsheet_id=settings.spreadsheet_id,
        service_account_path=settings.service_account_path,
        oauth_client_secrets=settings.oauth_client_secrets,
        oauth_token_path=settings.oauth_token_path
    )


def build_service(settings: AppSettings, offline: bool = False,
                  remote_store: Optional[RemoteStore] = None) -> Service:
    """Wire stores, sync manager and pipeline from settings."""
    registry = HashRegistry(settings.database_path)
    registry.initialize()

    store = LocalTransactionStore(settings.database_path)
    store.initialize()

    if offline:
        connectivity = StaticConnectivity(online=False)
    else:
        connectivity = ConnectivityMonitor(
            host=settings.connectivity_host,
            port=settings.connectivity_port,
            timeout=settings.connectivity_timeout_seconds
        )

    event_bus = EventBus()
    sync = SyncManager(
        local_store=store,
        remote_store=remote_store or create_remote_store(settings),
        connectivity=connectivity,
        retry_policy=RetryPolicy(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay_seconds,
            backoff_factor=settings.retry_backoff_factor
        ),
        event_bus=event_bus
    )

    validator = TransactionValidator(
        max_amount=settings.max_amount,
        max_days_in_past=settings.max_days_in_past,
        boundary_warning_days=settings.boundary_warning_days,
        low_confidence_threshold=settings.low_confidence_threshold
    )

    pipeline = TransactionPipeline(
        owner_id=settings.owner_id,
        hash_registry=registry,
        sync_manager=sync,
        validator=validator,
        event_bus=event_bus,
        max_workers=settings.max_concurrent_messages
    )
    return Service(pipeline=pipeline, registry=registry, store=store, sync=sync)


def ingest_command(service: Service, stream: TextIO) -> int:
    """Process every message in the stream. Returns the number persisted."""
    futures = [service.pipeline.submit_async(message) for message in read_messages(stream)]
    results = [future.result() for future in futures]
    service.pipeline.shutdown()

    persisted = sum(1 for r in results if r.persisted)
    _log_statistics(service.pipeline)
    print(f"✓ Processed {len(results)} messages, {persisted} transactions persisted")
    return persisted


def run_command(service: Service, settings: AppSettings, stream: TextIO) -> None:
    """Read messages from the stream until EOF or a shutdown signal, draining the queue in the background."""
    scheduler = QueueDrainScheduler(
        service.sync,
        interval_seconds=settings.drain_interval_seconds
    )
    scheduler.start()
    logger.info(f"Service initialized. Drain interval: {settings.drain_interval_seconds} seconds")

    try:
        for message in read_messages(stream):
            result = service.pipeline.submit_raw_message(message)
            if result.outcome == ProcessingOutcome.INVALID:
                logger.info(f"Message from {message.sender} needs manual review: {result.errors}")
    finally:
        scheduler.stop(timeout=10)
        service.pipeline.shutdown()
        _log_statistics(service.pipeline)
        logger.info("Service stopped gracefully")


def drain_command(service: Service) -> None:
    report = service.pipeline.drain_queue_now()
    if report.skipped_offline:
        print("Offline: queue not drained")
        return
    print(
        f"✓ Drained queue: {report.attempted} attempted, "
        f"{report.confirmed} confirmed, {report.failed} still queued"
    )


def purge_dedup_command(registry: HashRegistry, days: int) -> None:
    removed = registry.purge_older_than(timedelta(days=days))
    print(f"✓ Purged {removed} dedup hashes older than {days} days")


def list_queue_command(store: LocalTransactionStore) -> None:
    entries = store.queued_entries()
    if not entries:
        print("Sync queue is empty.")
        return

    print(f"\nTotal: {len(entries)} queued")
    print(f"{'Kind':<10} {'Attempts':<9} {'Transaction':<38} {'Enqueued At':<20} Last Error")
    print("-" * 100)
    for entry in entries:
        kind = "permanent" if entry.permanent else "transient"
        print(
            f"{kind:<10} {entry.attempts:<9} {entry.transaction.id:<38} "
            f"{entry.enqueued_at.strftime('%Y-%m-%d %H:%M:%S'):<20} {entry.last_error or ''}"
        )


def list_transactions_command(store: LocalTransactionStore, owner_id: str) -> None:
    records = store.list_for_owner(owner_id)
    if not records:
        print(f"No transactions found for owner: {owner_id}")
        return

    print(f"\nTotal: {len(records)} transactions for owner: {owner_id}")
    print(f"{'Date':<11} {'Time':<9} {'Type':<8} {'Amount':>14} {'Account':<20} {'Synced':<7} Sender")
    print("-" * 90)
    for record in records:
        print(
            f"{record.date:<11} {record.time:<9} {record.transaction_type.value:<8} "
            f"{str(record.amount):>14} {record.account_ref or '-':<20} "
            f"{'yes' if record.synced else 'no':<7} {record.sender_id}"
        )


def _log_statistics(pipeline: TransactionPipeline) -> None:
    stats = pipeline.statistics
    logger.info(
        f"Statistics: {stats.total_received} received, {stats.financial} financial, "
        f"{stats.parsed} parsed, {stats.persisted} persisted, {stats.duplicates} duplicates, "
        f"{stats.confirmed} confirmed, {stats.queued} queued, {stats.errors} errors"
    )


def _load_and_validate_settings() -> AppSettings:
    """Load settings and reconfigure logging from them."""
    settings = get_settings()

    is_valid, message = settings.validate()
    if not is_valid:
        raise ConfigError(f"Invalid configuration: {message}")

    configure_logging(
        settings.log_level,
        settings.logs_path,
        settings.log_max_file_size_mb,
        settings.log_backup_count
    )
    set_owner_context(settings.owner_id)
    logger.info(f"{settings.app_name} {settings.app_version} configuration loaded")
    return settings


def main(argv=None):
    """Main entry point for the PayLog service."""
    parser = argparse.ArgumentParser(description="PayLog SMS transaction ledger")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Process JSON-line messages from stdin (default)")
    run_parser.add_argument("--offline", action="store_true", help="Queue everything without network attempts")

    ingest_parser = subparsers.add_parser("ingest", help="Process a JSON-lines file of messages")
    ingest_parser.add_argument("--input", required=True, help="Path to JSON-lines file, or - for stdin")
    ingest_parser.add_argument("--offline", action="store_true", help="Queue everything without network attempts")

    subparsers.add_parser("drain", help="Re-attempt delivery of queued transactions")

    purge_parser = subparsers.add_parser("purge-dedup", help="Remove old dedup hashes")
    purge_parser.add_argument("--days", type=int, default=None, help="Retention in days (default from config)")

    subparsers.add_parser("list-queue", help="Show queued transactions")

    list_parser = subparsers.add_parser("list-transactions", help="Show stored transactions")
    list_parser.add_argument("--owner", help="Owner ID (default from config)")

    args = parser.parse_args(argv)
    command = args.command or "run"

    try:
        settings = _load_and_validate_settings()
        offline = getattr(args, "offline", False)

        if command == "purge-dedup":
            registry = HashRegistry(settings.database_path)
            registry.initialize()
            purge_dedup_command(registry, args.days or settings.dedup_retention_days)
            return

        if command in ("list-queue", "list-transactions"):
            store = LocalTransactionStore(settings.database_path)
            store.initialize()
            if command == "list-queue":
                list_queue_command(store)
            else:
                list_transactions_command(store, args.owner or settings.owner_id)
            return

        service = build_service(settings, offline=offline)

        if command == "drain":
            drain_command(service)
            return

        if command == "ingest":
            if args.input == "-":
                ingest_command(service, sys.stdin)
            else:
                with open(args.input, "r", encoding="utf-8") as stream:
                    ingest_command(service, stream)
            return

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)
        logger.info("PayLog service starting...")
        run_command(service, settings, sys.stdin)

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except (PaylogError, FileNotFoundError) as e:
        logger.critical(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
