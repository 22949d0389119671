"""Transaction amount extraction from SMS text.

Handles:
    - currency-qualified numbers (₹, Rs., Rs, INR, rupees) with comma grouping
    - spelled-out amounts ("Five Thousand Five Hundred", "Two Lakh")
    - bare numbers as a last resort, limited to a plausible range
"""
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class AmountMatch:
    """An amount candidate and where it sits in the text."""
    value: Decimal
    start: int
    end: int
    tier: int


NUMBER_WORDS = {
    "zero": 0, "one": 1, "two": 2, "three": 3, "four": 4,
    "five": 5, "six": 6, "seven": 7, "eight": 8, "nine": 9,
    "ten": 10, "eleven": 11, "twelve": 12, "thirteen": 13,
    "fourteen": 14, "fifteen": 15, "sixteen": 16, "seventeen": 17,
    "eighteen": 18, "nineteen": 19, "twenty": 20, "thirty": 30,
    "forty": 40, "fifty": 50, "sixty": 60, "seventy": 70,
    "eighty": 80, "ninety": 90, "hundred": 100, "thousand": 1000,
    "lakh": 100000, "lakhs": 100000, "lac": 100000, "lacs": 100000,
    "crore": 10000000, "crores": 10000000, "million": 1000000,
    "billion": 1000000000,
}

ACTION_KEYWORDS = (
    "debited", "credited", "paid", "received",
    "withdrawn", "deposited", "transferred",
)

MIN_BARE_AMOUNT = Decimal("1")
MAX_BARE_AMOUNT = Decimal("100000000")
PROXIMITY_WINDOW = 100

_NUMBER = r"\d[\d,]*(?:\.\d{1,2})?"

# A marker followed by a number belongs to that number, not the one before it
_CURRENCY_PATTERN = re.compile(
    rf"(?:₹|(?<![a-z])rs\.?|(?<![a-z])inr|(?<![a-z])rupees?)\s*(?P<prefixed>{_NUMBER})"
    rf"|(?P<suffixed>{_NUMBER})\s*(?:₹|rs\b\.?|inr\b|rupees?\b)(?!\s*\.?\s*\d)",
    re.IGNORECASE,
)

_WORD = "(?:" + "|".join(sorted(NUMBER_WORDS, key=len, reverse=True)) + ")"

_WORD_AMOUNT_PATTERN = re.compile(
    rf"\b{_WORD}\b(?:[\s-]+(?:and[\s-]+)?{_WORD}\b)*",
    re.IGNORECASE,
)

# Numbers glued to letters or forming part of a date/time are not amounts
_BARE_NUMBER_PATTERN = re.compile(
    rf"(?<![\w.,:/-]){_NUMBER}(?![\w,]|[:/-]\d|\.\d)"
)


class AmountParser:
    """Extracts the primary monetary amount from SMS content."""

    def extract_primary_amount(self, text: str) -> Optional[Decimal]:
        match = self.extract_primary_match(text)
        return match.value if match else None

    def extract_primary_match(self, text: str) -> Optional[AmountMatch]:
        if not text or not text.strip():
            return None

        candidates = self.extract_all_amounts(text)
        if not candidates:
            return None

        return self._identify_primary(candidates, text)

    def extract_all_amounts(self, text: str) -> List[AmountMatch]:
        """Candidates from the first tier that yields any, in reading order."""
        if not text or not text.strip():
            return []

        for tier in (self._currency_amounts, self._word_amounts, self._bare_amounts):
            found = tier(text)
            if found:
                return found
        return []

    def _currency_amounts(self, text: str) -> List[AmountMatch]:
        found = []
        for match in _CURRENCY_PATTERN.finditer(text):
            group = "prefixed" if match.group("prefixed") else "suffixed"
            value = self.parse_numeric(match.group(group))
            if value is not None:
                found.append(AmountMatch(value, match.start(group), match.end(group), tier=1))
        return found

    def _word_amounts(self, text: str) -> List[AmountMatch]:
        found = []
        for match in _WORD_AMOUNT_PATTERN.finditer(text):
            value = self.parse_words(match.group(0))
            if value is not None:
                found.append(AmountMatch(value, match.start(), match.end(), tier=2))
        return found

    def _bare_amounts(self, text: str) -> List[AmountMatch]:
        found = []
        for match in _BARE_NUMBER_PATTERN.finditer(text):
            value = self.parse_numeric(match.group(0))
            if value is not None and MIN_BARE_AMOUNT <= value <= MAX_BARE_AMOUNT:
                found.append(AmountMatch(value, match.start(), match.end(), tier=3))
        return found

    @staticmethod
    def parse_numeric(raw: str) -> Optional[Decimal]:
        """'1,234.56' -> Decimal('1234.56')"""
        cleaned = raw.replace(",", "").strip()
        if not cleaned:
            return None
        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return None

    @staticmethod
    def parse_words(phrase: str) -> Optional[Decimal]:
        """
        Convert a spelled-out amount to a number.

        Small numbers accumulate; hundred multiplies the running group;
        thousand and larger scales multiply it and flush it into the total.
        """
        total = 0
        current = 0

        for word in re.split(r"[\s-]+", phrase.lower()):
            value = NUMBER_WORDS.get(word)
            if value is None:
                continue

            if value >= 100:
                current = (current or 1) * value
                if value >= 1000:
                    total += current
                    current = 0
            else:
                current += value

        total += current
        return Decimal(total) if total > 0 else None

    def _identify_primary(self, candidates: List[AmountMatch], text: str) -> AmountMatch:
        """Nearest candidate to an action keyword, else the first one."""
        if len(candidates) == 1:
            return candidates[0]

        keyword_spans = self._keyword_spans(text)
        best: Optional[Tuple[int, int]] = None

        for index, candidate in enumerate(candidates):
            for kw_start, kw_end in keyword_spans:
                distance = _gap(candidate.start, candidate.end, kw_start, kw_end)
                if distance > PROXIMITY_WINDOW:
                    continue
                key = (distance, index)
                if best is None or key < best:
                    best = key

        if best is not None:
            return candidates[best[1]]
        return candidates[0]

    @staticmethod
    def _keyword_spans(text: str) -> List[Tuple[int, int]]:
        lowered = text.lower()
        spans = []
        for keyword in ACTION_KEYWORDS:
            for match in re.finditer(re.escape(keyword), lowered):
                spans.append((match.start(), match.end()))
        return spans


def _gap(a_start: int, a_end: int, b_start: int, b_end: int) -> int:
    """Characters between two spans; 0 when they touch or overlap."""
    if a_end <= b_start:
        return b_start - a_end
    if b_end <= a_start:
        return a_start - b_end
    return 0
