"""SMS extraction module."""
from .models import RawMessage, ExtractedTransaction, TransactionType
from .financial_detector import FinancialContextDetector
from .amount_parser import AmountParser, AmountMatch
from .type_classifier import TransactionTypeClassifier, Classification
from .account_extractor import AccountNumberExtractor, AccountCandidate
from .datetime_parser import DateTimeParser, ExtractedDateTime
from .assembler import TransactionAssembler

__all__ = [
    "RawMessage",
    "ExtractedTransaction",
    "TransactionType",
    "FinancialContextDetector",
    "AmountParser",
    "AmountMatch",
    "TransactionTypeClassifier",
    "Classification",
    "AccountNumberExtractor",
    "AccountCandidate",
    "DateTimeParser",
    "ExtractedDateTime",
    "TransactionAssembler"
]
