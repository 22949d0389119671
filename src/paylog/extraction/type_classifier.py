"""Debit/credit classification of financial SMS text."""
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .models import TransactionType


@dataclass(frozen=True)
class Classification:
    """Classifier decision and the rule that produced it.

    rule is one of: "empty", "no_keywords", "single_type", "amount_proximity",
    "match_count", "first_occurrence".
    """
    transaction_type: TransactionType
    rule: str
    debit_matches: Tuple[str, ...] = ()
    credit_matches: Tuple[str, ...] = ()

    @property
    def ambiguous(self) -> bool:
        return bool(self.debit_matches) and bool(self.credit_matches)


class TransactionTypeClassifier:
    """Keyword classifier with a deterministic tie-break.

    When both keyword sets match, the decision is made by, in order:
      1. the type whose nearest keyword occurrence is closest to the amount span
      2. the type with more distinct matched keywords
      3. the type whose first keyword appears earlier in the text
    """

    DEBIT_KEYWORDS: Tuple[str, ...] = (
        "debited", "withdrawn", "transferred out", "paid", "deducted",
    )
    CREDIT_KEYWORDS: Tuple[str, ...] = (
        "credited", "received", "deposited", "transferred in", "added",
    )

    def classify(self, text: str, amount_position: Optional[Tuple[int, int]] = None) -> TransactionType:
        return self.classify_with_reason(text, amount_position).transaction_type

    def classify_with_reason(self, text: str,
                             amount_position: Optional[Tuple[int, int]] = None) -> Classification:
        if not text or not text.strip():
            return Classification(TransactionType.UNKNOWN, "empty")

        lowered = text.lower()
        debit_hits = self._occurrences(lowered, self.DEBIT_KEYWORDS)
        credit_hits = self._occurrences(lowered, self.CREDIT_KEYWORDS)
        debit = tuple(debit_hits)
        credit = tuple(credit_hits)

        if not debit_hits and not credit_hits:
            return Classification(TransactionType.UNKNOWN, "no_keywords")
        if debit_hits and not credit_hits:
            return Classification(TransactionType.DEBIT, "single_type", debit, credit)
        if credit_hits and not debit_hits:
            return Classification(TransactionType.CREDIT, "single_type", debit, credit)

        if amount_position is not None:
            debit_distance = self._nearest(debit_hits, amount_position)
            credit_distance = self._nearest(credit_hits, amount_position)
            if debit_distance != credit_distance:
                winner = TransactionType.DEBIT if debit_distance < credit_distance else TransactionType.CREDIT
                return Classification(winner, "amount_proximity", debit, credit)

        if len(debit_hits) != len(credit_hits):
            winner = TransactionType.DEBIT if len(debit_hits) > len(credit_hits) else TransactionType.CREDIT
            return Classification(winner, "match_count", debit, credit)

        first_debit = min(start for spans in debit_hits.values() for start, _ in spans)
        first_credit = min(start for spans in credit_hits.values() for start, _ in spans)
        winner = TransactionType.DEBIT if first_debit <= first_credit else TransactionType.CREDIT
        return Classification(winner, "first_occurrence", debit, credit)

    def confidence_for(self, text: str, transaction_type: TransactionType) -> float:
        """Fraction of the type's keyword set present in the text."""
        if transaction_type == TransactionType.DEBIT:
            keywords = self.DEBIT_KEYWORDS
        elif transaction_type == TransactionType.CREDIT:
            keywords = self.CREDIT_KEYWORDS
        else:
            return 0.0

        if not text or not text.strip():
            return 0.0

        lowered = text.lower()
        matched = sum(1 for keyword in keywords if keyword in lowered)
        return matched / len(keywords)

    @staticmethod
    def _occurrences(lowered: str, keywords: Tuple[str, ...]) -> Dict[str, List[Tuple[int, int]]]:
        hits: Dict[str, List[Tuple[int, int]]] = {}
        for keyword in keywords:
            start = lowered.find(keyword)
            while start != -1:
                hits.setdefault(keyword, []).append((start, start + len(keyword)))
                start = lowered.find(keyword, start + 1)
        return hits

    @staticmethod
    def _nearest(hits: Dict[str, List[Tuple[int, int]]], span: Tuple[int, int]) -> int:
        amount_start, amount_end = span
        best = None
        for spans in hits.values():
            for start, end in spans:
                if end <= amount_start:
                    distance = amount_start - end
                elif amount_end <= start:
                    distance = start - amount_end
                else:
                    distance = 0
                if best is None or distance < best:
                    best = distance
        return best
