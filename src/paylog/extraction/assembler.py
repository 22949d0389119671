"""Combines detector and extractor output into one ExtractedTransaction."""
from typing import Optional

from .models import RawMessage, ExtractedTransaction, TransactionType
from .financial_detector import FinancialContextDetector
from .amount_parser import AmountParser
from .type_classifier import TransactionTypeClassifier
from .account_extractor import AccountNumberExtractor
from .datetime_parser import DateTimeParser
from ..utils.logger import get_logger

logger = get_logger()

# Each present signal adds its weight; the weights sum to 1.0
AMOUNT_WEIGHT = 0.40
TYPE_WEIGHT = 0.20
ACCOUNT_WEIGHT = 0.15
DATE_WEIGHT = 0.15
TIME_WEIGHT = 0.10


def coverage_confidence(has_amount: bool, has_type: bool, has_account: bool,
                        explicit_date: bool, explicit_time: bool) -> float:
    score = 0.0
    if has_amount:
        score += AMOUNT_WEIGHT
    if has_type:
        score += TYPE_WEIGHT
    if has_account:
        score += ACCOUNT_WEIGHT
    if explicit_date:
        score += DATE_WEIGHT
    if explicit_time:
        score += TIME_WEIGHT
    return round(min(max(score, 0.0), 1.0), 4)


class TransactionAssembler:
    """Runs detection and the four extractors over one message."""

    def __init__(
        self,
        detector: Optional[FinancialContextDetector] = None,
        amount_parser: Optional[AmountParser] = None,
        classifier: Optional[TransactionTypeClassifier] = None,
        account_extractor: Optional[AccountNumberExtractor] = None,
        datetime_parser: Optional[DateTimeParser] = None
    ):
        self.detector = detector or FinancialContextDetector()
        self.amount_parser = amount_parser or AmountParser()
        self.classifier = classifier or TransactionTypeClassifier()
        self.account_extractor = account_extractor or AccountNumberExtractor()
        self.datetime_parser = datetime_parser or DateTimeParser()

    def assemble(self, message: RawMessage) -> Optional[ExtractedTransaction]:
        """
        Build a transaction from a raw message.

        Returns None for non-financial text or when no amount can be found;
        those messages are logged for manual review rather than treated as errors.
        """
        text = message.content
        if not text or not text.strip():
            return None

        if not self.detector.is_financial(text):
            logger.info(f"Message from {message.sender} is not financial; skipping")
            return None

        amount_match = self.amount_parser.extract_primary_match(text)
        if amount_match is None:
            logger.info(f"No amount found in message from {message.sender}; left for manual review")
            return None

        classification = self.classifier.classify_with_reason(
            text, (amount_match.start, amount_match.end)
        )
        if classification.ambiguous:
            logger.debug(
                f"Ambiguous type keywords resolved to {classification.transaction_type.value} "
                f"by {classification.rule}"
            )

        account_ref = self.account_extractor.extract_primary(text)
        moment = self.datetime_parser.extract_both(text, message.received_at)

        confidence = coverage_confidence(
            has_amount=True,
            has_type=classification.transaction_type != TransactionType.UNKNOWN,
            has_account=account_ref is not None,
            explicit_date=moment.explicit_date,
            explicit_time=moment.explicit_time,
        )

        return ExtractedTransaction(
            amount=amount_match.value,
            transaction_type=classification.transaction_type,
            account_ref=account_ref,
            date=moment.date,
            time=moment.time,
            source_text=text,
            sender_id=message.sender,
            confidence=confidence,
        )
