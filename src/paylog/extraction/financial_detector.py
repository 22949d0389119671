"""Keyword-based detection of financial SMS messages."""
from typing import Dict, List, Tuple


class FinancialContextDetector:
    """Decides whether a text describes a monetary transaction.

    Four disjoint keyword categories are matched case-insensitively as
    substrings. A text is financial when any keyword matches; its score is the
    fraction of categories that matched.
    """

    CREDIT_KEYWORDS: Tuple[str, ...] = (
        "credited", "received", "deposited", "transferred in", "added",
        "credit", "deposit", "refund", "cashback",
    )
    DEBIT_KEYWORDS: Tuple[str, ...] = (
        "debited", "withdrawn", "transferred", "paid", "deducted",
        "debit", "withdrawal", "purchase", "spent", "charged",
    )
    AMOUNT_KEYWORDS: Tuple[str, ...] = (
        "rupees", "rs.", "₹", "inr", "amount", "amt", "balance",
    )
    ACCOUNT_KEYWORDS: Tuple[str, ...] = (
        "a/c", "account", "acct", "ac no", "bank", "card", "upi",
    )

    CATEGORIES: Dict[str, Tuple[str, ...]] = {
        "credit": CREDIT_KEYWORDS,
        "debit": DEBIT_KEYWORDS,
        "amount": AMOUNT_KEYWORDS,
        "account": ACCOUNT_KEYWORDS,
    }

    def is_financial(self, text: str) -> bool:
        return bool(self.matched_categories(text))

    def score(self, text: str) -> float:
        """Matched categories divided by four, capped at 1.0."""
        matched = len(self.matched_categories(text))
        return min(matched / len(self.CATEGORIES), 1.0)

    def matched_categories(self, text: str) -> List[str]:
        if not text or not text.strip():
            return []

        lowered = text.lower()
        return [
            name for name, keywords in self.CATEGORIES.items()
            if any(keyword in lowered for keyword in keywords)
        ]

    def extract_keywords(self, text: str) -> List[str]:
        """All matched keywords, in category order, without repeats."""
        if not text or not text.strip():
            return []

        lowered = text.lower()
        found: List[str] = []
        for keywords in self.CATEGORIES.values():
            for keyword in keywords:
                if keyword in lowered and keyword not in found:
                    found.append(keyword)
        return found
