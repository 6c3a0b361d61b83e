"""Derive the calendar day a note is about.

Priority:
  1. An ISO date (``2024-03-15``) anywhere in the file name.
  2. The top-level ``date`` key of YAML front matter.
  3. The first heading in the first lines of the body, when it carries an
     ISO date or a written date such as ``March 15, 2024`` / ``15 March 2024``.
  4. None; callers fall back to the file's modification time.

Version-like names (``notes-2024-01-02-v2.md``) can still misfire; that is
accepted.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

import yaml

_ISO_RE = re.compile(r"(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)")
_HEADING_RE = re.compile(r"^\s*#{1,6}\s+(.+)$")

_MONTHS = {
    name: i
    for i, names in enumerate(
        [
            ("january", "jan"),
            ("february", "feb"),
            ("march", "mar"),
            ("april", "apr"),
            ("may",),
            ("june", "jun"),
            ("july", "jul"),
            ("august", "aug"),
            ("september", "sep", "sept"),
            ("october", "oct"),
            ("november", "nov"),
            ("december", "dec"),
        ],
        start=1,
    )
    for name in names
}
_MONTH_ALT = "|".join(sorted(_MONTHS, key=len, reverse=True))
_MONTH_FIRST_RE = re.compile(
    rf"\b({_MONTH_ALT})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b", re.IGNORECASE
)
_DAY_FIRST_RE = re.compile(
    rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+({_MONTH_ALT})\.?,?\s+(\d{{4}})\b", re.IGNORECASE
)

_HEADER_LINES = 20


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date_text(text: str) -> date | None:
    """First valid ISO or written date in *text*, or None."""
    for m in _ISO_RE.finditer(text):
        found = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if found:
            return found
    m = _MONTH_FIRST_RE.search(text)
    if m:
        found = _safe_date(int(m.group(3)), _MONTHS[m.group(1).lower()], int(m.group(2)))
        if found:
            return found
    m = _DAY_FIRST_RE.search(text)
    if m:
        return _safe_date(int(m.group(3)), _MONTHS[m.group(2).lower()], int(m.group(1)))
    return None


def _front_matter(content: str) -> tuple[dict[str, Any], str]:
    """Split a leading ``---`` YAML block off *content*.

    Returns (front_matter, body); malformed or non-mapping front matter is
    treated as absent.
    """
    if not content.startswith("---"):
        return {}, content
    parts = content.split("---", 2)
    if len(parts) < 3:
        return {}, content
    try:
        data = yaml.safe_load(parts[1])
    except (yaml.YAMLError, ValueError):
        return {}, content
    if not isinstance(data, dict):
        return {}, parts[2]
    return data, parts[2]


def _coerce_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_date_text(value)
    return None


def derive_note_date(name: str, content: str) -> str | None:
    """Return the note's date as ``YYYY-MM-DD``, or None when nothing is found."""
    for m in _ISO_RE.finditer(name):
        found = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if found:
            return found.isoformat()

    front_matter, body = _front_matter(content)
    for key, value in front_matter.items():
        if isinstance(key, str) and key.lower() == "date":
            found = _coerce_date(value)
            if found:
                return found.isoformat()

    for line in body.splitlines()[:_HEADER_LINES]:
        heading = _HEADING_RE.match(line)
        if heading:
            found = parse_date_text(heading.group(1))
            return found.isoformat() if found else None
    return None
