"""Business-rule validation of persisted transactions before storage."""
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, List

from ..storage.models import PersistedTransaction

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d:[0-5]\d$")
_REPEATED_DIGIT = re.compile(r"(\d)\1*")


@dataclass
class ValidationResult:
    """Outcome of validating one record; warnings never block persistence."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class TransactionValidator:
    """Checks amount, date, account, required fields, time and confidence rules."""

    def __init__(
        self,
        max_amount: float = 10_000_000,
        max_days_in_past: int = 90,
        boundary_warning_days: int = 5,
        low_confidence_threshold: float = 0.5,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.max_amount = Decimal(str(max_amount))
        self.max_days_in_past = max_days_in_past
        self.boundary_warning_days = boundary_warning_days
        self.low_confidence_threshold = low_confidence_threshold
        self.clock = clock

    def validate(self, record: PersistedTransaction) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []

        self._check_amount(record, errors, warnings)
        self._check_date(record, errors, warnings)
        self._check_account(record, warnings)
        self._check_required(record, errors)
        self._check_time(record, errors)
        self._check_confidence(record, errors, warnings)

        return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

    def _check_amount(self, record: PersistedTransaction, errors: List[str], warnings: List[str]) -> None:
        amount = record.amount
        if amount <= 0:
            errors.append(f"Amount must be positive, got {amount}")
        elif amount > self.max_amount:
            errors.append(f"Amount {amount} exceeds maximum {self.max_amount}")
        elif amount < 1:
            warnings.append(f"Amount {amount} is unusually small")

    def _check_date(self, record: PersistedTransaction, errors: List[str], warnings: List[str]) -> None:
        try:
            tx_date = date.fromisoformat(record.date)
        except (TypeError, ValueError):
            errors.append(f"Invalid date format: {record.date!r} (expected YYYY-MM-DD)")
            return

        today = self.clock().date()
        age_days = (today - tx_date).days

        if age_days < 0:
            errors.append(f"Date {record.date} is in the future")
        elif age_days > self.max_days_in_past:
            errors.append(f"Date {record.date} is more than {self.max_days_in_past} days old")
        elif age_days >= self.max_days_in_past - self.boundary_warning_days:
            warnings.append(f"Date {record.date} is close to the {self.max_days_in_past}-day limit")

    @staticmethod
    def _check_account(record: PersistedTransaction, warnings: List[str]) -> None:
        account = record.account_ref
        if account is None:
            return

        if not 4 <= len(account) <= 20:
            warnings.append(f"Account reference {account!r} has unusual length {len(account)}")
        if sum(ch.isdigit() for ch in account) < 2:
            warnings.append(f"Account reference {account!r} has fewer than 2 digits")
        if _REPEATED_DIGIT.fullmatch(account):
            warnings.append(f"Account reference {account!r} is a single repeated digit")

    @staticmethod
    def _check_required(record: PersistedTransaction, errors: List[str]) -> None:
        required = {
            "id": record.id,
            "owner_id": record.owner_id,
            "source_text": record.source_text,
            "sender_id": record.sender_id,
        }
        for name, value in required.items():
            if not value or not str(value).strip():
                errors.append(f"Missing required field: {name}")

    @staticmethod
    def _check_time(record: PersistedTransaction, errors: List[str]) -> None:
        if not isinstance(record.time, str) or not _TIME_PATTERN.match(record.time):
            errors.append(f"Invalid time format: {record.time!r} (expected HH:MM:SS)")

    def _check_confidence(self, record: PersistedTransaction, errors: List[str], warnings: List[str]) -> None:
        confidence = record.confidence
        if not 0.0 <= confidence <= 1.0:
            errors.append(f"Confidence {confidence} outside [0, 1]")
        elif confidence < self.low_confidence_threshold:
            warnings.append(f"Low extraction confidence {confidence:.2f}")
