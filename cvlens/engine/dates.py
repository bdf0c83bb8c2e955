"""Date parsing and month arithmetic shared by the segmenters and analyzers.

All timestamps are timezone-aware UTC datetimes. Anything that needs "now"
takes a ``Clock`` so tests can pin it.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Callable

from dateutil import parser as date_parser

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


PRESENT_WORDS: frozenset[str] = frozenset(
    {
        "present",
        "current",
        "currently",
        "now",
        "ongoing",
        "today",
        "to date",
        # da / no / sv
        "nu",
        "nuværende",
        "dags dato",
        "d.d.",
        "nå",
        "nåværende",
        "pågående",
        "nuvarande",
        "idag",
        # de / nl
        "heute",
        "aktuell",
        "jetzt",
        "heden",
        "huidig",
        "nu bezig",
        # es / fr / it
        "actualidad",
        "presente",
        "actual",
        "aujourd'hui",
        "présent",
        "oggi",
        "attuale",
    }
)

MONTHS: dict[str, int] = {
    "jan": 1, "january": 1, "januar": 1, "janvier": 1,
    "feb": 2, "february": 2, "februar": 2, "février": 2,
    "mar": 3, "march": 3, "marts": 3, "märz": 3, "mrz": 3, "mars": 3,
    "apr": 4, "april": 4, "avril": 4,
    "may": 5, "maj": 5, "mai": 5,
    "jun": 6, "june": 6, "juni": 6, "juin": 6,
    "jul": 7, "july": 7, "juli": 7, "juillet": 7,
    "aug": 8, "august": 8, "août": 8,
    "sep": 9, "sept": 9, "september": 9, "septembre": 9,
    "oct": 10, "october": 10, "okt": 10, "oktober": 10, "octobre": 10,
    "nov": 11, "november": 11, "novembre": 11,
    "dec": 12, "december": 12, "dez": 12, "dezember": 12, "décembre": 12,
}

_YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")
_YEAR_RE = re.compile(r"^(\d{4})$")
_MONTH_YEAR_RE = re.compile(r"^([^\W\d_]+)\.?,?\s*(\d{4})$")
_NUMERIC_MONTH_YEAR_RE = re.compile(r"^(\d{1,2})\s*[/.]\s*(\d{4})$")
_ANY_YEAR_RE = re.compile(r"\b(?:19|20)\d{2}\b")

_MONTH_TOKEN = r"(?:" + "|".join(sorted(MONTHS, key=len, reverse=True)) + r")\.?"
_DATE_TOKEN = rf"(?:{_MONTH_TOKEN}\s*\d{{4}}|\d{{1,2}}/\d{{4}}|(?:19|20)\d{{2}})"
_PRESENT_TOKEN = "|".join(re.escape(word) for word in sorted(PRESENT_WORDS, key=len, reverse=True))
_RANGE_SEPARATOR = r"\s*(?:-|–|—|to|til|bis|until)\s*"

DATE_RANGE_RE = re.compile(
    rf"(?<![\w/])({_DATE_TOKEN}){_RANGE_SEPARATOR}({_DATE_TOKEN}|{_PRESENT_TOKEN})(?![\w/])",
    re.IGNORECASE,
)
STANDALONE_DATE_RANGE_RE = re.compile(
    rf"^\s*(?:\(|\[)?\s*{DATE_RANGE_RE.pattern}\s*(?:\)|\])?\s*$",
    re.IGNORECASE,
)


def _month_start(year: int, month: int) -> datetime | None:
    if not 1 <= month <= 12 or not 1900 <= year <= 2100:
        return None
    return datetime(year, month, 1, tzinfo=timezone.utc)


def parse_date(raw: str | None, *, now: datetime | None = None) -> datetime | None:
    """Resolve a CV date token to a UTC timestamp, or ``None`` when it cannot be read."""
    if raw is None:
        return None
    value = raw.strip().strip("()[]").strip()
    if not value:
        return None

    lowered = value.lower()
    if lowered in PRESENT_WORDS:
        return now or utc_now()

    match = _YEAR_MONTH_RE.match(value)
    if match:
        return _month_start(int(match.group(1)), int(match.group(2)))

    match = _YEAR_RE.match(value)
    if match:
        return _month_start(int(match.group(1)), 1)

    match = _MONTH_YEAR_RE.match(lowered)
    if match and match.group(1) in MONTHS:
        return _month_start(int(match.group(2)), MONTHS[match.group(1)])

    match = _NUMERIC_MONTH_YEAR_RE.match(value)
    if match:
        return _month_start(int(match.group(2)), int(match.group(1)))

    # dateutil fills a missing year from its default
    if not _ANY_YEAR_RE.search(value):
        return None
    try:
        parsed = date_parser.parse(value, default=datetime(2000, 1, 1))
    except (ValueError, OverflowError, TypeError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def month_delta(start: datetime, end: datetime) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def months_between(start: datetime, end: datetime) -> int:
    """Whole months from ``start`` to ``end``; a month that was worked counts as one."""
    return max(1, month_delta(start, end))


def extract_date_range(
    text: str, *, now: datetime | None = None
) -> tuple[datetime | None, datetime | None]:
    """First date range found in ``text`` as ``(start, end)``; ``(None, None)`` when absent."""
    match = DATE_RANGE_RE.search(text or "")
    if not match:
        return None, None
    start = parse_date(match.group(1), now=now)
    end = parse_date(match.group(2), now=now)
    if start is None:
        return None, None
    return start, end


def is_date_line(line: str) -> bool:
    return bool(STANDALONE_DATE_RANGE_RE.match(line or ""))
