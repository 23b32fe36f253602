from datetime import datetime, timedelta

import pytest
import pytz

from pm_app.analytics.lifecycle.control_chart import control_chart
from pm_app.analytics.lifecycle.cycle_time import classify_lifecycle
from pm_app.core.models import IssueModel

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=pytz.UTC)
NOW = datetime(2024, 8, 1, 12, 0, tzinfo=pytz.UTC)


def _records(lead_times):
    issues = []
    for i, lead in enumerate(lead_times, start=1):
        closed = BASE + timedelta(days=i)
        issues.append(
            IssueModel(
                iid=i,
                title=f"Issue {i}",
                state="closed",
                created_at=closed - timedelta(days=lead),
                updated_at=closed,
                closed_at=closed,
            )
        )
    return classify_lifecycle(issues, now=NOW)


def _assert_outlier_rule(chart):
    for point in chart.data_points:
        assert point.is_outlier == (point.value > chart.ucl or point.value < chart.lcl)


def test_no_outlier_in_small_sample():
    chart = control_chart(_records([4, 5, 6, 5, 40]), "leadTime")
    assert [p.value for p in chart.data_points] == [4, 5, 6, 5, 40]
    assert chart.mean == 12
    assert chart.std_dev == pytest.approx(14.01, abs=0.01)
    assert chart.ucl == pytest.approx(54.04, abs=0.01)
    assert chart.lcl == 0
    assert chart.median == 5
    assert chart.p85 == 40 and chart.p95 == 40
    assert chart.outliers == ()
    _assert_outlier_rule(chart)


def test_adding_extreme_point_raises_limits():
    base = control_chart(_records([4, 5, 6, 5, 40]))
    chart = control_chart(_records([4, 5, 6, 5, 40, 80]))
    assert chart.mean > base.mean
    assert chart.ucl > base.ucl
    _assert_outlier_rule(chart)
    last = chart.data_points[-1]
    assert last.value == 80
    assert last.is_outlier == (80 > chart.ucl)


def test_clear_outlier_is_flagged():
    chart = control_chart(_records([5] * 20 + [100]))
    assert [p.value for p in chart.outliers] == [100]
    _assert_outlier_rule(chart)


def test_points_sorted_by_close_date():
    chart = control_chart(_records([9, 1, 5]))
    assert [p.iid for p in chart.data_points] == [1, 2, 3]
    dates = [p.date for p in chart.data_points]
    assert dates == sorted(dates)


def test_single_point_chart():
    chart = control_chart(_records([7]))
    assert len(chart.data_points) == 1
    assert chart.std_dev == 0
    assert chart.ucl == chart.mean == chart.lcl == 7
    assert not chart.data_points[0].is_outlier


def test_empty_and_cycle_time_metric():
    empty = control_chart([], "cycle_time")
    assert empty.data_points == () and empty.mean == 0 and empty.ucl == 0
    chart = control_chart(_records([10, 20]), "cycleTime")
    assert [p.value for p in chart.data_points] == [8, 16]


def test_unknown_metric_rejected():
    with pytest.raises(ValueError):
        control_chart([], "wait_time")
