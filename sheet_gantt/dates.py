"""Date coercion for task start/end cells.

Raw cells arrive as native dates, numbers (Excel serials or Unix timestamps) or
free text. ``parse_date_value`` turns any of them into a calendar date or None;
``resolve_start`` / ``resolve_end`` wrap it with the substitution rules so every
row always yields a usable date, and record when a substitution happened.
"""

from __future__ import annotations

import logging
import math
import re
import warnings
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

import pandas as pd

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
EXCEL_EPOCH = datetime(1899, 12, 30)
MAX_EXCEL_SERIAL = 2_958_465  # 9999-12-31
UNIX_SECONDS_RANGE = (1_000_000_000, 9_999_999_999)
UNIX_MILLIS_RANGE = (1_000_000_000_000, 9_999_999_999_999)

MONTH_NAMES = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7, "aug": 8,
    "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}
# relative words pandas would resolve against the wall clock
RELATIVE_WORDS = {"now", "today", "tomorrow", "yesterday"}

ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
ISO_DATETIME_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ]\S.*)?$")
YMD_SLASH_RE = re.compile(r"^(\d{4})[/.](\d{1,2})[/.](\d{1,2})$")
NUMERIC_DATE_RE = re.compile(r"^(\d{1,2})([/.-])(\d{1,2})\2(\d{4}|\d{2})$")
MONTH_FIRST_RE = re.compile(r"^([A-Za-z]+)\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})$")
DAY_FIRST_RE = re.compile(r"^(\d{1,2})(?:st|nd|rd|th)?[\s-]+([A-Za-z]+)\.?,?[\s-]+(\d{4})$")
DIGITS_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class DateResolution:
    """Outcome of resolving one cell; ``fallback`` marks a substituted value."""

    value: date
    fallback: bool = False
    reason: str = ""


def format_iso(day: date) -> str:
    return day.isoformat()


def parse_iso_date(text: Any) -> Optional[date]:
    """Strict ``YYYY-MM-DD`` parser; anything else is None."""
    if not isinstance(text, str):
        return None
    match = ISO_DATE_RE.match(text.strip())
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def as_calendar_date(value: Any) -> Optional[date]:
    """Native date/datetime/Timestamp to a plain date; None for anything else."""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _expand_year(year_text: str) -> int:
    year = int(year_text)
    if len(year_text) == 2:
        return 2000 + year if year < 50 else 1900 + year
    return year


def from_number(number: float) -> Optional[date]:
    """Excel serials (1899-12-30 epoch), Unix seconds or Unix milliseconds."""
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return None
    whole = int(number)
    try:
        if UNIX_MILLIS_RANGE[0] <= whole <= UNIX_MILLIS_RANGE[1]:
            return datetime.fromtimestamp(whole / 1000, tz=timezone.utc).date()
        if UNIX_SECONDS_RANGE[0] <= whole <= UNIX_SECONDS_RANGE[1]:
            return datetime.fromtimestamp(whole, tz=timezone.utc).date()
        if 1 <= whole <= MAX_EXCEL_SERIAL:
            return (EXCEL_EPOCH + timedelta(days=whole)).date()
    except (OverflowError, OSError, ValueError):
        return None
    return None


def _from_text(text: str, dayfirst: bool) -> Optional[date]:
    match = ISO_DATETIME_RE.match(text)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = YMD_SLASH_RE.match(text)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    # 03/04/2024: month-first unless dayfirst; the other order when impossible
    match = NUMERIC_DATE_RE.match(text)
    if match:
        a, b = int(match.group(1)), int(match.group(3))
        year = _expand_year(match.group(4))
        orders = [(b, a), (a, b)] if dayfirst else [(a, b), (b, a)]
        for month, day in orders:
            parsed = _safe_date(year, month, day)
            if parsed is not None:
                return parsed
        return None

    match = MONTH_FIRST_RE.match(text)
    if match:
        month = MONTH_NAMES.get(match.group(1).lower())
        if month:
            return _safe_date(int(match.group(3)), month, int(match.group(2)))

    match = DAY_FIRST_RE.match(text)
    if match:
        month = MONTH_NAMES.get(match.group(2).lower())
        if month:
            return _safe_date(int(match.group(3)), month, int(match.group(1)))

    if DIGITS_RE.match(text):
        if len(text) == 4:
            return _safe_date(int(text), 1, 1)
        return from_number(int(text))

    if text.lower() in RELATIVE_WORDS:
        return None

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(text, errors="coerce", dayfirst=dayfirst)
        except (ValueError, TypeError, OverflowError):
            return None
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.date()


def parse_date_value(raw: Any, dayfirst: bool = False) -> Optional[date]:
    """
    Best-effort conversion of one raw cell to a calendar date.

    Native dates are returned unchanged (datetimes are truncated to their
    date). Numbers are Excel serials or Unix timestamps. Text goes through the
    explicit patterns first, then pandas' general parser. Returns None when
    nothing matches.
    """
    native = as_calendar_date(raw)
    if native is not None:
        return native
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return from_number(raw)
    text = str(raw).strip()
    if not text:
        return None
    return _from_text(text, dayfirst)


def resolve_start(raw: Any, now: date, dayfirst: bool = False) -> DateResolution:
    parsed = parse_date_value(raw, dayfirst)
    if parsed is not None:
        return DateResolution(parsed)
    logger.debug("Start value %r is not a date; substituting %s", raw, now)
    return DateResolution(now, fallback=True, reason="start not parseable; used today")


def resolve_end(raw: Any, anchor: date, dayfirst: bool = False) -> DateResolution:
    parsed = parse_date_value(raw, dayfirst)
    if parsed is not None:
        return DateResolution(parsed)
    substitute = anchor + ONE_DAY
    logger.debug("End value %r is not a date; substituting %s", raw, substitute)
    return DateResolution(substitute, fallback=True, reason="end not parseable; used start + 1 day")


def enforce_order(start: date, end: date) -> tuple[date, bool]:
    """Return an end that is never before start, and whether it was moved."""
    if end < start:
        return start + ONE_DAY, True
    return end, False
