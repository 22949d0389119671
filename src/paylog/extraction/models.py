"""Data models for SMS extraction."""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class TransactionType(Enum):
    """Direction of money relative to the account holder."""
    DEBIT = "debit"
    CREDIT = "credit"
    UNKNOWN = "unknown"

    @classmethod
    def from_value(cls, value: str) -> "TransactionType":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class RawMessage:
    """SMS as delivered by the message source."""
    sender: str
    content: str
    received_at: datetime
    thread_id: Optional[str] = None


@dataclass(frozen=True)
class ExtractedTransaction:
    """Structured transaction assembled from one financial message."""
    amount: Decimal
    transaction_type: TransactionType
    account_ref: Optional[str]
    date: str  # YYYY-MM-DD
    time: str  # HH:MM:SS
    source_text: str
    sender_id: str
    confidence: float
