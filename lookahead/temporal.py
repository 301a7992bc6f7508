"""Week-start normalization for spreadsheet period headers.

Planning workbooks label their period columns in whatever form the exporting
tool produced: spreadsheet serial numbers, real dates, quoted serials, or date
text with a trailing clock time.  Everything here funnels those forms into the
Monday of the containing week, rendered as ``YYYY-MM-DD``.
"""
from __future__ import annotations

import logging
import math
import numbers
import re
from datetime import date, datetime, timedelta, timezone

import numpy as np
import pandas as pd

LOGGER = logging.getLogger(__name__)

# Spreadsheet day zero; serial 1 is 1899-12-31.
EXCEL_EPOCH = date(1899, 12, 30)

_SERIAL_TEXT_RE = re.compile(r"^\d+(?:\.\d+)?$")
_TIME_SUFFIX_RE = re.compile(r"\s+\d{2}:\d{2}:\d{2}$")
_DIGIT_RE = re.compile(r"[0-9]")


def week_start(value: date) -> date:
    """Return the Monday of the week containing *value*."""

    if isinstance(value, datetime):
        value = _utc_date(value)
    return value - timedelta(days=value.weekday())


def format_week(value: date) -> str:
    """Render a date as zero-padded ``YYYY-MM-DD`` text."""

    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def serial_to_date(serial: float) -> date | None:
    """Convert a spreadsheet serial day count to a calendar date.

    Halves round up, so ``0.5`` lands on serial 1.  Non-finite and out of
    range serials yield ``None``.
    """

    try:
        number = float(serial)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    try:
        return EXCEL_EPOCH + timedelta(days=math.floor(number + 0.5))
    except OverflowError:
        return None


def _utc_date(value: datetime) -> date:
    if value.tzinfo is not None and value.utcoffset() is not None:
        value = value.astimezone(timezone.utc)
    return date(value.year, value.month, value.day)


def _native_date(value: object) -> date | None:
    if isinstance(value, np.datetime64):
        value = pd.Timestamp(value)
    if value is pd.NaT:
        return None
    if isinstance(value, datetime):
        return _utc_date(value)
    if isinstance(value, date):
        return value
    return None


def _text_date(text: str) -> date | None:
    """Parse date text; bare month or day names and pre-epoch dates are rejected."""

    cleaned = _TIME_SUFFIX_RE.sub("", text.strip())
    if not _DIGIT_RE.search(cleaned):
        return None
    try:
        parsed = pd.to_datetime(cleaned, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert("UTC")
    resolved = date(parsed.year, parsed.month, parsed.day)
    if resolved < EXCEL_EPOCH:
        LOGGER.debug("Rejecting date text %r before the spreadsheet epoch", text)
        return None
    return resolved


def header_to_date(value: object) -> date | None:
    """Resolve a header value of unknown representation to a calendar date."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        return serial_to_date(value)
    native = _native_date(value)
    if native is not None:
        return native
    if isinstance(value, str):
        text = value.strip()
        if _SERIAL_TEXT_RE.match(text):
            return serial_to_date(float(text))
        return _text_date(text)
    return None


def header_to_week(value: object) -> str | None:
    """Return the ISO week start a header belongs to, or ``None``.

    ``None`` means "not a week column"; callers skip such columns.
    """

    resolved = header_to_date(value)
    if resolved is None:
        return None
    return format_week(week_start(resolved))


def coerce_week(value: date | str) -> str:
    """Return *value* as ISO text without re-aligning it to a Monday."""

    if isinstance(value, str):
        parsed = _text_date(value)
        if parsed is None:
            raise ValueError(f"Unrecognised week start: {value!r}")
        return format_week(parsed)
    native = _native_date(value)
    if native is None:
        raise ValueError(f"Unrecognised week start: {value!r}")
    return format_week(native)


def parse_week(value: date | str) -> date:
    """Return *value* as a ``date`` without re-aligning it."""

    return date.fromisoformat(coerce_week(value))


def current_week_start(today: date | None = None) -> str:
    """Return the Monday of the current UTC week (the default anchor)."""

    reference = today or datetime.now(timezone.utc).date()
    return format_week(week_start(reference))


__all__ = [
    "EXCEL_EPOCH",
    "coerce_week",
    "current_week_start",
    "format_week",
    "header_to_date",
    "header_to_week",
    "parse_week",
    "serial_to_date",
    "week_start",
]
