"""Transaction date and time normalisation.

Dates are returned as ISO "YYYY-MM-DD" and times as 24-hour "HH:MM:SS". When
the text carries no usable date or time, the message receipt instant is used.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Tuple


@dataclass(frozen=True)
class ExtractedDateTime:
    """Normalised date/time and whether each was stated in the text."""
    date: str
    time: str
    explicit_date: bool
    explicit_time: bool


MONTHS = {
    "jan": 1, "january": 1, "feb": 2, "february": 2, "mar": 3, "march": 3,
    "apr": 4, "april": 4, "may": 5, "jun": 6, "june": 6,
    "jul": 7, "july": 7, "aug": 8, "august": 8, "sep": 9, "sept": 9,
    "september": 9, "oct": 10, "october": 10, "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

RELATIVE_DAYS = {"today": 0, "yesterday": -1, "tomorrow": 1}

# Two-digit years up to this value belong to the 2000s, the rest to the 1900s
YEAR_PIVOT = 50

_RELATIVE_PATTERN = re.compile(r"\b(today|yesterday|tomorrow)\b", re.IGNORECASE)
_DMY_PATTERN = re.compile(r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{4})(?!\d)")
_YMD_PATTERN = re.compile(r"\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})(?!\d)")
_DMY_SHORT_PATTERN = re.compile(r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{2})(?!\d)")

_MONTH_NAMES = "|".join(sorted(MONTHS, key=len, reverse=True))
_DAY_MONTH_PATTERN = re.compile(
    rf"\b(\d{{1,2}})(?:st|nd|rd|th)?[-\s]+({_MONTH_NAMES})\b(?:[-\s,]+(\d{{4}}|\d{{2}})\b(?![:.]\d))?",
    re.IGNORECASE,
)

_TIME_PATTERN = re.compile(
    r"(?<![\d:])(\d{1,2}):(\d{2})(?::(\d{2}))?(?!\d)(?:\s*(am|pm)\b)?",
    re.IGNORECASE,
)


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def days_in_month(year: int, month: int) -> int:
    if month == 2:
        return 29 if is_leap_year(year) else 28
    if month in (4, 6, 9, 11):
        return 30
    return 31


def valid_date(year: int, month: int, day: int) -> Optional[date]:
    if year < 1 or not 1 <= month <= 12:
        return None
    if not 1 <= day <= days_in_month(year, month):
        return None
    return date(year, month, day)


def expand_two_digit_year(year: int) -> int:
    return 2000 + year if year <= YEAR_PIVOT else 1900 + year


class DateTimeParser:
    """Extracts the transaction date and time from SMS content."""

    def extract_date(self, text: str, fallback: datetime) -> str:
        found = self.find_date(text, fallback)
        return (found or fallback.date()).isoformat()

    def extract_time(self, text: str, fallback: datetime) -> str:
        found = self.find_time(text)
        if found is None:
            return fallback.strftime("%H:%M:%S")
        hour, minute, second = found
        return f"{hour:02d}:{minute:02d}:{second:02d}"

    def extract_both(self, text: str, fallback: datetime) -> ExtractedDateTime:
        found_date = self.find_date(text, fallback)
        found_time = self.find_time(text)

        date_str = (found_date or fallback.date()).isoformat()
        if found_time is None:
            time_str = fallback.strftime("%H:%M:%S")
        else:
            time_str = "%02d:%02d:%02d" % found_time

        return ExtractedDateTime(
            date=date_str,
            time=time_str,
            explicit_date=found_date is not None,
            explicit_time=found_time is not None,
        )

    def find_date(self, text: str, fallback: datetime) -> Optional[date]:
        """First valid date over the tiers, or None when the text states none."""
        if not text or not text.strip():
            return None

        tiers: List[Callable[[str, datetime], Optional[date]]] = [
            self._relative_date,
            self._day_month_year,
            self._year_month_day,
            self._day_month_short_year,
            self._day_month_name,
        ]
        for tier in tiers:
            found = tier(text, fallback)
            if found is not None:
                return found
        return None

    def find_time(self, text: str) -> Optional[Tuple[int, int, int]]:
        """(hour, minute, second) in 24-hour form, or None."""
        if not text or not text.strip():
            return None

        match = _TIME_PATTERN.search(text)
        if not match:
            return None

        hour = int(match.group(1))
        minute = int(match.group(2))
        second = int(match.group(3) or 0)
        meridiem = (match.group(4) or "").lower()

        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0

        if not (0 <= hour <= 23 and 0 <= minute <= 59 and 0 <= second <= 59):
            return None
        return hour, minute, second

    @staticmethod
    def _relative_date(text: str, fallback: datetime) -> Optional[date]:
        match = _RELATIVE_PATTERN.search(text)
        if not match:
            return None
        offset = RELATIVE_DAYS[match.group(1).lower()]
        return fallback.date() + timedelta(days=offset)

    @staticmethod
    def _day_month_year(text: str, fallback: datetime) -> Optional[date]:
        match = _DMY_PATTERN.search(text)
        if not match:
            return None
        day, month, year = (int(g) for g in match.groups())
        return valid_date(year, month, day)

    @staticmethod
    def _year_month_day(text: str, fallback: datetime) -> Optional[date]:
        match = _YMD_PATTERN.search(text)
        if not match:
            return None
        year, month, day = (int(g) for g in match.groups())
        return valid_date(year, month, day)

    @staticmethod
    def _day_month_short_year(text: str, fallback: datetime) -> Optional[date]:
        match = _DMY_SHORT_PATTERN.search(text)
        if not match:
            return None
        day, month, year = (int(g) for g in match.groups())
        return valid_date(expand_two_digit_year(year), month, day)

    @staticmethod
    def _day_month_name(text: str, fallback: datetime) -> Optional[date]:
        match = _DAY_MONTH_PATTERN.search(text)
        if not match:
            return None

        day = int(match.group(1))
        month = MONTHS[match.group(2).lower()]
        raw_year = match.group(3)
        if raw_year is None:
            year = fallback.year
        elif len(raw_year) == 2:
            year = expand_two_digit_year(int(raw_year))
        else:
            year = int(raw_year)
        return valid_date(year, month, day)
