"""
Account identifier extraction from SMS text.

Masking is preserved: "XXXXXX1234" and "**1234" keep their mask characters,
canonicalised to lowercase "x", so the stored reference shows exactly what the
bank chose to reveal.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..utils.logger import get_logger

logger = get_logger()


@dataclass(frozen=True)
class AccountCandidate:
    """Normalised account reference with the span it came from."""
    value: str
    start: int
    end: int
    tier: int

    @property
    def masked(self) -> bool:
        return "x" in self.value


PRIMARY_KEYWORDS = (
    "credited to", "debited from", "from account", "to account", "a/c",
    "account", "ac no", "account no", "account number", "acct",
)

PROXIMITY_WINDOW = 100
CARD_WINDOW = 30
MIN_LENGTH = 4

# Mask runs, then one digit run; further separated groups must be 4 digits and
# not the start of a date, so a following date or amount is never absorbed.
_CONTEXT_PATTERN = re.compile(
    r"\b(?:a/?c\.?|account|acct\.?|ending)\s*(?:no\.?|number)?[:\s.-]*"
    r"((?:[x*]+(?:[-\s][x*]+)*[-\s]?)?\d{1,18}(?!\d)"
    r"(?:[-\s]\d{4}(?![\d/.]|-\d{1,2}(?!\d)))*)",
    re.IGNORECASE,
)

_MASKED_PATTERN = re.compile(r"(?<![A-Za-z0-9])[xX*]{2,}[-\s]?\d{2,6}(?!\d)")

_ENDING_PATTERN = re.compile(r"\bending\s+(\d{4})\b", re.IGNORECASE)

_BARE_PATTERN = re.compile(
    r"(?<![\d.,])(?:\d{4}[-\s]\d{4}[-\s]\d{4,10}|\d{8,18})(?!\d|[.,]\d)"
)

_CARD_PATTERN = re.compile(r"(?<!\d)\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}(?!\d)")

_CARD_WORD = re.compile(r"card", re.IGNORECASE)

_REPEATED_DIGIT = re.compile(r"(\d)\1*")


class AccountNumberExtractor:
    """Finds account references in four tiers; the first non-empty tier wins."""

    def extract_primary(self, text: str) -> Optional[str]:
        candidates = self.extract_candidates(text)
        if not candidates:
            return None

        primary = self._select_primary(candidates, text)
        logger.debug(f"Primary account reference {primary.value} (tier {primary.tier})")
        return primary.value

    def extract_all(self, text: str) -> List[str]:
        return [candidate.value for candidate in self.extract_candidates(text)]

    def extract_candidates(self, text: str) -> List[AccountCandidate]:
        """Discovery-ordered, value-deduplicated candidates of the winning tier."""
        if not text or not text.strip():
            return []

        tiers = (
            (1, self._context_matches),
            (2, self._masked_matches),
            (3, self._ending_matches),
            (4, self._bare_matches),
        )
        for tier, finder in tiers:
            candidates = []
            seen = set()
            for raw, start, end in finder(text):
                value = self.normalise(raw)
                if value is None or value in seen:
                    continue
                seen.add(value)
                candidates.append(AccountCandidate(value, start, end, tier))
            if candidates:
                return candidates
        return []

    @staticmethod
    def normalise(raw: str) -> Optional[str]:
        """Canonicalise masks to 'x', strip separators, reject implausible values."""
        value = re.sub(r"[\s-]", "", raw)
        value = value.replace("X", "x").replace("*", "x")

        if len(value) < MIN_LENGTH:
            return None
        if not any(ch.isdigit() for ch in value):
            return None
        if _REPEATED_DIGIT.fullmatch(value):
            return None
        return value

    @staticmethod
    def _context_matches(text: str) -> List[Tuple[str, int, int]]:
        return [(m.group(1), m.start(1), m.end(1)) for m in _CONTEXT_PATTERN.finditer(text)]

    @staticmethod
    def _masked_matches(text: str) -> List[Tuple[str, int, int]]:
        return [(m.group(0), m.start(), m.end()) for m in _MASKED_PATTERN.finditer(text)]

    @staticmethod
    def _ending_matches(text: str) -> List[Tuple[str, int, int]]:
        return [(m.group(1), m.start(1), m.end(1)) for m in _ENDING_PATTERN.finditer(text)]

    @staticmethod
    def _bare_matches(text: str) -> List[Tuple[str, int, int]]:
        card_spans = [(m.start(), m.end()) for m in _CARD_PATTERN.finditer(text)]
        card_words = [(m.start(), m.end()) for m in _CARD_WORD.finditer(text)]

        found = []
        for match in _BARE_PATTERN.finditer(text):
            start, end = match.start(), match.end()
            if any(start < c_end and c_start < end for c_start, c_end in card_spans):
                continue
            if any(_gap(start, end, w_start, w_end) <= CARD_WINDOW for w_start, w_end in card_words):
                continue
            found.append((match.group(0), start, end))
        return found

    @staticmethod
    def _select_primary(candidates: List[AccountCandidate], text: str) -> AccountCandidate:
        if len(candidates) == 1:
            return candidates[0]

        lowered = text.lower()
        keyword_spans = []
        for keyword in PRIMARY_KEYWORDS:
            for match in re.finditer(re.escape(keyword), lowered):
                keyword_spans.append((match.start(), match.end()))

        best = None
        for index, candidate in enumerate(candidates):
            for kw_start, kw_end in keyword_spans:
                distance = _gap(candidate.start, candidate.end, kw_start, kw_end)
                if distance > PROXIMITY_WINDOW:
                    continue
                before_keyword = 1 if candidate.end <= kw_start else 0
                key = (distance, before_keyword, index)
                if best is None or key < best:
                    best = key

        if best is not None:
            return candidates[best[2]]

        for candidate in candidates:
            if candidate.masked:
                return candidate
        return candidates[0]


def _gap(a_start: int, a_end: int, b_start: int, b_end: int) -> int:
    if a_end <= b_start:
        return b_start - a_end
    if b_end <= a_start:
        return a_start - b_end
    return 0
