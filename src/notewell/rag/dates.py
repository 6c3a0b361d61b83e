"""Natural-language date ranges in queries.

``extract_date_range("what did I do last week?")`` gives the half-open range
``[today - 7 days, today)``. Rules are tried in order and the first match
wins:

  1. ``YYYY-MM-DD`` → that day; ``YYYY-MM`` → that whole month
  2. ``today``
  3. ``yesterday``
  4. ``last week`` → the 7 days before today
  5. ``last N days`` → the N days before today (N capped at 365)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta

_ISO_RE = re.compile(r"\b(\d{4})-(\d{2})(?:-(\d{2}))?\b")
_TODAY_RE = re.compile(r"\btoday\b", re.IGNORECASE)
_YESTERDAY_RE = re.compile(r"\byesterday\b", re.IGNORECASE)
_LAST_WEEK_RE = re.compile(r"\b(?:in\s+the\s+|during\s+the\s+)?last\s+week\b", re.IGNORECASE)
_LAST_DAYS_RE = re.compile(r"\b(?:in\s+the\s+|over\s+the\s+)?(?:last|past)\s+(\d+)\s*days?\b", re.IGNORECASE)

_MAX_DAYS = 365


@dataclass(frozen=True)
class DateRange:
    """Half-open day range [start, end) plus the query text that produced it."""

    start: date
    end: date
    matched: str = ""

    def contains(self, day: date) -> bool:
        return self.start <= day < self.end

    @property
    def last_day(self) -> date:
        return self.end - timedelta(days=1)

    def describe(self) -> str:
        """Inclusive label, e.g. ``2024-03-01 → 2024-03-31``."""
        if self.last_day == self.start:
            return self.start.isoformat()
        return f"{self.start.isoformat()} → {self.last_day.isoformat()}"


def _today(now: datetime | date | None) -> date:
    if now is None:
        return date.today()
    if isinstance(now, datetime):
        return now.date()
    return now


def _month_range(year: int, month: int) -> tuple[date, date]:
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _iso_range(query: str) -> DateRange | None:
    for m in _ISO_RE.finditer(query):
        year, month = int(m.group(1)), int(m.group(2))
        try:
            if m.group(3):
                start = date(year, month, int(m.group(3)))
                return DateRange(start, start + timedelta(days=1), m.group(0))
            start, end = _month_range(year, month)
            return DateRange(start, end, m.group(0))
        except ValueError:
            continue
    return None


def extract_date_range(query: str, now: datetime | date | None = None) -> DateRange | None:
    """Return the date range a query asks about, or None if it names none."""
    if not query:
        return None
    today = _today(now)

    found = _iso_range(query)
    if found:
        return found

    m = _TODAY_RE.search(query)
    if m:
        return DateRange(today, today + timedelta(days=1), m.group(0))

    m = _YESTERDAY_RE.search(query)
    if m:
        return DateRange(today - timedelta(days=1), today, m.group(0))

    m = _LAST_WEEK_RE.search(query)
    if m:
        return DateRange(today - timedelta(days=7), today, m.group(0))

    m = _LAST_DAYS_RE.search(query)
    if m:
        days = min(int(m.group(1)), _MAX_DAYS) or 7
        return DateRange(today - timedelta(days=days), today, m.group(0))

    return None


def strip_date_phrase(query: str, date_range: DateRange | None) -> str:
    """Remove the phrase that produced *date_range* so it does not pollute lexical search."""
    if date_range is None or not date_range.matched:
        return query
    stripped = query.replace(date_range.matched, " ", 1)
    return re.sub(r"\s+", " ", stripped).strip()
