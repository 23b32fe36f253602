"""Date and timestamp utilities shared by the analytics engine.

Two kinds of arithmetic live here and are kept apart on purpose:

- calendar days in UTC (lead, cycle and wait times, phase dwell time)
- working days, Monday to Friday on plain ``date`` values (capacity)
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta

import numpy as np
import pandas as pd
import pytz

from .config import AT_RISK_WINDOW_DAYS, DEFAULT_SPRINT_WORKING_DAYS


def normalize_timestamp(value) -> pd.Timestamp | None:
    """Normalize a timestamp-like value into a timezone-aware UTC timestamp.

    Naive values are assumed to be UTC. Returns None when the input cannot be
    parsed.
    """
    if value is None or value == "":
        return None
    try:
        ts = pd.to_datetime(value, errors="coerce")
    except (TypeError, ValueError):
        return None
    if ts is None or pd.isna(ts):
        return None
    try:
        if getattr(ts, "tzinfo", None) is None:
            ts = ts.tz_localize(pytz.UTC)
        return ts.tz_convert(pytz.UTC)
    except (TypeError, ValueError):
        return None


def to_date(value) -> date | None:
    """Coerce a date, datetime or ISO string into a ``date`` (UTC calendar day)."""
    if value is None or value == "":
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    ts = normalize_timestamp(value)
    if ts is None:
        return None
    return ts.date()


def calendar_days_between(start, end) -> int | None:
    """Whole calendar days from ``start`` to ``end`` in UTC (may be negative)."""
    start_day = to_date(start)
    end_day = to_date(end)
    if start_day is None or end_day is None:
        return None
    return (end_day - start_day).days


def count_working_days(start, end, holidays: Iterable | None = None) -> int:
    """Count Monday-Friday days in ``[start, end]`` (both endpoints included).

    Returns 0 when either bound is missing or ``end`` precedes ``start``.
    """
    start_day = to_date(start)
    end_day = to_date(end)
    if start_day is None or end_day is None or end_day < start_day:
        return 0
    holiday_days = [d for d in (to_date(h) for h in holidays or ()) if d is not None]
    return int(
        np.busday_count(
            np.datetime64(start_day, "D"),
            np.datetime64(end_day + timedelta(days=1), "D"),
            holidays=[np.datetime64(d, "D") for d in holiday_days],
        )
    )


def sprint_working_days(start, end, holidays: Iterable | None = None) -> int:
    """Working days of a sprint, defaulting to a two-week sprint when dates are missing."""
    if to_date(start) is None or to_date(end) is None:
        return DEFAULT_SPRINT_WORKING_DAYS
    return count_working_days(start, end, holidays)


def overlap_working_days(
    range_start,
    range_end,
    absence_start,
    absence_end,
    holidays: Iterable | None = None,
) -> int:
    """Working days shared by the inclusive range and the half-open absence ``[start, end)``."""
    r_start, r_end = to_date(range_start), to_date(range_end)
    a_start, a_end = to_date(absence_start), to_date(absence_end)
    if None in (r_start, r_end, a_start, a_end):
        return 0
    last_absent_day = a_end - timedelta(days=1)
    lo = max(r_start, a_start)
    hi = min(r_end, last_absent_day)
    if hi < lo:
        return 0
    return count_working_days(lo, hi, holidays)


def _format_day(value: date, *, with_year: bool) -> str:
    text = f"{value.day} {value.strftime('%b')}"
    return f"{text} {value.year}" if with_year else text


def format_date_range(start, end=None) -> str:
    """Format ``D Mon – D Mon YYYY``, collapsing the year when both ends share it."""
    start_day = to_date(start)
    end_day = to_date(end)
    if start_day is None:
        return ""
    if end_day is None:
        return _format_day(start_day, with_year=True)
    if start_day.year == end_day.year:
        return f"{_format_day(start_day, with_year=False)} – {_format_day(end_day, with_year=True)}"
    return f"{_format_day(start_day, with_year=True)} – {_format_day(end_day, with_year=True)}"


def get_iteration_name(iteration) -> str | None:
    """Resolve a display name for an iteration.

    Title if present, else the formatted date range, else ``Iteration <iid>``.
    """
    if iteration is None:
        return None
    title = (getattr(iteration, "title", None) or "").strip()
    if title:
        return title
    if to_date(getattr(iteration, "start_date", None)) is not None:
        return format_date_range(iteration.start_date, getattr(iteration, "due_date", None))
    iid = getattr(iteration, "iid", None)
    if iid is None:
        iid = getattr(iteration, "id", None)
    return f"Iteration {iid}"


def is_overdue(due_date, now, state: str = "opened") -> bool:
    """Open work whose due date lies before ``now``'s calendar day."""
    due = to_date(due_date)
    today = to_date(now)
    if due is None or today is None or state == "closed":
        return False
    return due < today


def is_at_risk(due_date, now, state: str = "opened", window_days: int = AT_RISK_WINDOW_DAYS) -> bool:
    """Open work, not yet overdue, due within ``window_days`` of ``now``."""
    due = to_date(due_date)
    today = to_date(now)
    if due is None or today is None or state == "closed":
        return False
    return today <= due <= today + timedelta(days=window_days)


def days_until(value, now) -> int | None:
    """Calendar days from ``now`` to ``value``; negative once the date has passed."""
    return calendar_days_between(now, value)


def date_progress(start_date, due_date, now) -> int:
    """Percentage of the ``start -> due`` window elapsed at ``now`` (clamped to 0-100)."""
    start = normalize_timestamp(start_date)
    due = normalize_timestamp(due_date)
    current = normalize_timestamp(now)
    if start is None or due is None or current is None:
        return 0
    if current <= start:
        return 0
    if current >= due:
        return 100
    total = (due - start).total_seconds()
    if total <= 0:
        return 100
    return round((current - start).total_seconds() / total * 100)
