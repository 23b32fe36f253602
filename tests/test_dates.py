from datetime import date, datetime

import pytz

from pm_app.core.dates import (
    calendar_days_between,
    count_working_days,
    date_progress,
    days_until,
    format_date_range,
    get_iteration_name,
    is_at_risk,
    is_overdue,
    normalize_timestamp,
    overlap_working_days,
    sprint_working_days,
)
from pm_app.core.models import IterationModel

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=pytz.UTC)


def test_normalize_timestamp_handles_bad_input():
    assert normalize_timestamp(None) is None
    assert normalize_timestamp("not a date") is None
    ts = normalize_timestamp("2024-03-01T10:00:00+02:00")
    assert ts.tzinfo is not None
    assert ts.hour == 8


def test_calendar_days_use_utc_dates():
    assert calendar_days_between("2024-03-01T23:30:00Z", "2024-03-02T00:10:00Z") == 1
    assert calendar_days_between(None, NOW) is None


def test_working_days_inclusive_without_weekends():
    # Monday 4 March to Friday 15 March 2024
    assert count_working_days(date(2024, 3, 4), date(2024, 3, 15)) == 10
    assert count_working_days(date(2024, 3, 9), date(2024, 3, 10)) == 0
    assert count_working_days(date(2024, 3, 15), date(2024, 3, 4)) == 0
    assert count_working_days(date(2024, 3, 4), date(2024, 3, 15), holidays=[date(2024, 3, 8)]) == 9


def test_sprint_working_days_default():
    assert sprint_working_days(None, date(2024, 3, 15)) == 10


def test_overlap_is_half_open():
    # Absence Mon 11 -> Wed 13 covers Mon and Tue only
    assert overlap_working_days(date(2024, 3, 4), date(2024, 3, 15), date(2024, 3, 11), date(2024, 3, 13)) == 2
    assert overlap_working_days(date(2024, 3, 4), date(2024, 3, 15), date(2024, 3, 18), date(2024, 3, 20)) == 0


def test_iteration_name_resolution():
    assert get_iteration_name(IterationModel(id=1, title="Sprint 7")) == "Sprint 7"
    same_year = IterationModel(id=2, iid=9, start_date=date(2024, 3, 4), due_date=date(2024, 3, 15))
    assert get_iteration_name(same_year) == "4 Mar – 15 Mar 2024"
    cross_year = IterationModel(id=3, start_date=date(2023, 12, 25), due_date=date(2024, 1, 5))
    assert get_iteration_name(cross_year) == "25 Dec 2023 – 5 Jan 2024"
    assert get_iteration_name(IterationModel(id=4, iid=12)) == "Iteration 12"
    assert format_date_range(None) == ""


def test_due_date_classifications():
    assert is_overdue(date(2024, 3, 14), NOW)
    assert not is_overdue(date(2024, 3, 14), NOW, state="closed")
    assert not is_overdue(date(2024, 3, 15), NOW)
    assert is_at_risk(date(2024, 3, 20), NOW)
    assert not is_at_risk(date(2024, 3, 30), NOW)
    assert not is_at_risk(date(2024, 3, 14), NOW)
    assert days_until(date(2024, 3, 20), NOW) == 5
    assert days_until(None, NOW) is None


def test_date_progress_clamped():
    assert date_progress("2024-03-01", "2024-03-31", "2024-02-01") == 0
    assert date_progress("2024-03-01", "2024-03-31", "2024-04-10") == 100
    assert date_progress("2024-03-01", "2024-03-11", "2024-03-06") == 50
    assert date_progress(None, "2024-03-31", NOW) == 0
