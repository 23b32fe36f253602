"""Absence impact on a member's sprint capacity (working-day granularity)."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

import pandas as pd

from pm_app.core.config import WORKING_DAYS_PER_WEEK
from pm_app.core.dates import count_working_days, overlap_working_days, to_date
from pm_app.core.models import Absence, AbsenceImpact, IterationModel


def absences_for(username: str, absences: Iterable[Absence]) -> list[Absence]:
    return sorted((a for a in absences if a.username == username), key=lambda a: (a.start_date, a.end_date))


def absent_working_days(
    range_start,
    range_end,
    absences: Iterable[Absence],
    holidays: Iterable | None = None,
) -> set[date]:
    """Distinct working days inside ``[range_start, range_end]`` covered by any absence.

    Absences are half-open ``[start_date, end_date)``; overlapping absences
    are counted once.
    """
    lo, hi = to_date(range_start), to_date(range_end)
    if lo is None or hi is None or hi < lo:
        return set()
    holiday_days = [d for d in (to_date(h) for h in holidays or ()) if d is not None]
    days: set[date] = set()
    for absence in absences:
        start = max(lo, absence.start_date)
        end = min(hi, absence.end_date - timedelta(days=1))
        if end < start:
            continue
        rng = pd.bdate_range(start, end, freq="C", holidays=holiday_days)
        days.update(ts.date() for ts in rng)
    return days


def absence_impact(
    username: str,
    absences: Iterable[Absence],
    iteration: IterationModel | None,
    default_capacity: float,
    *,
    override: float | None = None,
    holidays: Iterable | None = None,
) -> AbsenceImpact | None:
    """Sprint capacity for one member after absences and an optional manual override.

    Each absent working day costs ``default_capacity / 5`` hours. Returns None
    when the iteration has no start or due date.
    """
    if iteration is None or to_date(iteration.start_date) is None or to_date(iteration.due_date) is None:
        return None
    working_days = count_working_days(iteration.start_date, iteration.due_date, holidays)
    sprint_weeks = working_days / WORKING_DAYS_PER_WEEK
    sprint_default = round(sprint_weeks * default_capacity, 1)

    own = [
        a
        for a in absences_for(username, absences)
        if overlap_working_days(iteration.start_date, iteration.due_date, a.start_date, a.end_date, holidays) > 0
    ]
    days_lost = len(absent_working_days(iteration.start_date, iteration.due_date, own, holidays))
    hours_lost = round(days_lost * default_capacity / WORKING_DAYS_PER_WEEK, 1)
    auto_adjusted = max(0.0, sprint_default - hours_lost)
    final = auto_adjusted if override is None else max(0.0, float(override))
    return AbsenceImpact(
        sprint_working_days=working_days,
        sprint_weeks=sprint_weeks,
        sprint_default_capacity=sprint_default,
        hours_lost=hours_lost,
        working_days_lost=days_lost,
        auto_adjusted_capacity=auto_adjusted,
        final_capacity=final,
        absences=tuple(own),
    )
