"""Data models for persisted transactions and the sync queue."""
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from ..extraction.models import ExtractedTransaction, TransactionType


class SyncState(Enum):
    """Delivery state of a persisted transaction."""
    CREATED = "created"
    LOCALLY_PERSISTED = "locally_persisted"
    QUEUED_FOR_RETRY = "queued_for_retry"
    REMOTE_CONFIRMED = "remote_confirmed"


@dataclass(frozen=True)
class PersistedTransaction:
    """Extracted transaction plus ownership and delivery metadata."""
    id: str
    owner_id: str
    amount: Decimal
    transaction_type: TransactionType
    account_ref: Optional[str]
    date: str
    time: str
    source_text: str
    sender_id: str
    confidence: float
    created_at: datetime
    dedup_hash: str
    synced: bool = False
    is_manual_entry: bool = False

    @classmethod
    def from_extracted(
        cls,
        extracted: ExtractedTransaction,
        owner_id: str,
        dedup_hash: str,
        is_manual_entry: bool = False,
        created_at: Optional[datetime] = None,
        record_id: Optional[str] = None
    ) -> "PersistedTransaction":
        return cls(
            id=record_id or str(uuid.uuid4()),
            owner_id=owner_id,
            amount=extracted.amount,
            transaction_type=extracted.transaction_type,
            account_ref=extracted.account_ref,
            date=extracted.date,
            time=extracted.time,
            source_text=extracted.source_text,
            sender_id=extracted.sender_id,
            confidence=extracted.confidence,
            created_at=created_at or datetime.now(),
            dedup_hash=dedup_hash,
            is_manual_entry=is_manual_entry,
        )

    def to_extracted(self) -> ExtractedTransaction:
        return ExtractedTransaction(
            amount=self.amount,
            transaction_type=self.transaction_type,
            account_ref=self.account_ref,
            date=self.date,
            time=self.time,
            source_text=self.source_text,
            sender_id=self.sender_id,
            confidence=self.confidence,
        )

    def mark_synced(self) -> "PersistedTransaction":
        """Copy with synced=True; synced never flips back."""
        if self.synced:
            return self
        return replace(self, synced=True)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "amount": str(self.amount),
            "transaction_type": self.transaction_type.value,
            "account_ref": self.account_ref,
            "date": self.date,
            "time": self.time,
            "source_text": self.source_text,
            "sender_id": self.sender_id,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
            "dedup_hash": self.dedup_hash,
            "synced": self.synced,
            "is_manual_entry": self.is_manual_entry,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PersistedTransaction":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            amount=Decimal(str(data["amount"])),
            transaction_type=TransactionType.from_value(data["transaction_type"]),
            account_ref=data.get("account_ref"),
            date=data["date"],
            time=data["time"],
            source_text=data["source_text"],
            sender_id=data["sender_id"],
            confidence=float(data["confidence"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            dedup_hash=data["dedup_hash"],
            synced=bool(data.get("synced", False)),
            is_manual_entry=bool(data.get("is_manual_entry", False)),
        )


@dataclass(frozen=True)
class QueueEntry:
    """A persisted transaction awaiting remote delivery."""
    transaction: PersistedTransaction
    enqueued_at: datetime
    attempts: int = 0
    last_error: Optional[str] = None
    permanent: bool = False
