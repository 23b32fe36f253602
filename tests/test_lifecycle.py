from datetime import datetime, timedelta

import pytz

from pm_app.analytics.lifecycle.cycle_time import (
    classify_lifecycle,
    discover_status_labels,
    nearest_rank_percentile,
    summarize_cycle_time,
)
from pm_app.core.config import PHASE_ORDER
from pm_app.core.mappers import lifecycle_to_dataframe
from pm_app.core.models import IssueModel, LabelEvent

BASE = datetime(2024, 3, 1, 10, 0, tzinfo=pytz.UTC)
NOW = datetime(2024, 3, 25, 12, 0, tzinfo=pytz.UTC)


def _issue(iid, state="opened", labels=(), created=BASE, closed=None, updated=None):
    return IssueModel(
        iid=iid,
        title=f"Issue {iid}",
        state=state,
        created_at=created,
        updated_at=updated or created,
        closed_at=closed,
        labels=tuple(labels),
    )


def _closed(iid, lead_days, labels=()):
    return _issue(iid, "closed", labels, created=BASE, closed=BASE + timedelta(days=lead_days))


def test_phase_fallbacks():
    issues = [
        _issue(1, "closed", ["status::cancelled"], closed=BASE + timedelta(days=2)),
        _issue(2, labels=["wip feature"]),
        _issue(3),
        _issue(4, "closed", ["Released"], closed=BASE + timedelta(days=2)),
        _issue(5, "closed", closed=BASE + timedelta(days=2)),
        _issue(6, labels=["Status::In Review"]),
        _issue(7, labels=["needs review"]),
    ]
    phases = [r.current_phase for r in classify_lifecycle(issues, now=NOW)]
    assert phases == ["cancelled", "in-progress", "backlog", "released", "done", "in-review", "in-testing"]
    assert all(p in PHASE_ORDER for p in phases)


def test_exact_status_label_beats_substring():
    issue = _issue(1, labels=["status::in progress (legacy) status::in testing", "status::in progress"])
    [record] = classify_lifecycle([issue], now=NOW)
    assert record.current_phase == "in-progress"


def test_estimated_times_without_history():
    [record] = classify_lifecycle([_closed(1, 10)], now=NOW)
    assert record.estimation == "estimated"
    assert (record.lead_time, record.cycle_time, record.wait_time) == (10, 8, 2)
    assert record.work_started_at == BASE + timedelta(days=2)


def test_accurate_times_from_history():
    issue = _closed(1, 10)
    history = [
        LabelEvent(1, "add", "status::ready for work", BASE + timedelta(days=1)),
        LabelEvent(1, "add", "status::in progress", BASE + timedelta(days=3)),
        LabelEvent(1, "add", "status::in review", BASE + timedelta(days=6)),
    ]
    report = classify_lifecycle([issue], history, NOW)
    [record] = report
    assert record.estimation == "accurate"
    assert (record.lead_time, record.cycle_time, record.wait_time) == (10, 7, 3)
    assert report.diagnostics.missing_history == 0


def test_history_before_creation_is_clamped():
    history = {1: [LabelEvent(1, "add", "status::in progress", BASE - timedelta(days=3))]}
    [record] = classify_lifecycle([_closed(1, 10)], history, NOW)
    assert (record.lead_time, record.cycle_time, record.wait_time) == (10, 10, 0)


def test_time_in_current_phase():
    issue = _issue(1, labels=["status::in review"], updated=BASE + timedelta(days=14))
    [record] = classify_lifecycle([issue], now=NOW)
    assert record.time_in_current_phase == 10

    history = [LabelEvent(1, "add", "status::in review", BASE + timedelta(days=20))]
    [record] = classify_lifecycle([issue], history, NOW)
    assert record.time_in_current_phase == 4

    [closed] = classify_lifecycle([_closed(2, 4)], now=NOW)
    assert closed.time_in_current_phase == 20


def test_malformed_and_inconsistent_records():
    issues = [
        _issue(1, "closed", created=None, closed=BASE),
        _issue(2, "closed", created=BASE, closed=BASE - timedelta(days=3)),
        _issue(3, created=None),
        _closed(4, 5),
    ]
    report = classify_lifecycle(issues, now=NOW)
    malformed, inconsistent, open_malformed, ok = report.records
    assert malformed.malformed and malformed.lead_time is None
    assert malformed.time_in_current_phase == 0
    assert inconsistent.inconsistent and inconsistent.lead_time == 0 and inconsistent.cycle_time == 0
    assert open_malformed.current_phase == "backlog" and open_malformed.time_in_current_phase == 0
    assert report.diagnostics.malformed == 2
    assert report.diagnostics.inconsistent == 1
    assert report.diagnostics.total == 4

    summary = summarize_cycle_time(report)
    assert summary.count == 2
    assert summary.skipped == 1


def test_closed_time_invariants():
    issues = [_closed(i, lead) for i, lead in enumerate([0, 1, 3, 7, 11, 40], start=1)]
    for record in classify_lifecycle(issues, now=NOW):
        assert record.lead_time >= record.cycle_time >= 0
        assert record.wait_time + record.cycle_time == record.lead_time


def test_summary_statistics():
    report = classify_lifecycle([_closed(1, 10), _closed(2, 5), _closed(3, 20), _issue(4)], now=NOW)
    summary = summarize_cycle_time(report)
    assert summary.count == 3
    assert summary.avg_lead == 11.7
    assert summary.median_lead == 10
    assert summary.avg_cycle == 9.3
    assert summary.median_cycle == 8
    assert (summary.min_lead, summary.max_lead) == (5, 20)
    assert summary.estimated_count == 3 and summary.accurate_count == 0


def test_empty_snapshot():
    report = classify_lifecycle([], now=NOW)
    assert len(report) == 0
    assert report.diagnostics.total == 0
    summary = summarize_cycle_time(report)
    assert summary.count == 0 and summary.avg_lead == 0.0 and summary.median_lead == 0.0
    assert lifecycle_to_dataframe(report).empty


def test_deterministic_output():
    issues = [_closed(1, 10), _issue(2, labels=["wip"]), _issue(3)]
    assert classify_lifecycle(issues, now=NOW) == classify_lifecycle(issues, now=NOW)


def test_nearest_rank_percentile():
    assert nearest_rank_percentile([], 0.5) == 0
    assert nearest_rank_percentile([4, 5, 6, 5, 40], 0.5) == 5
    assert nearest_rank_percentile([4, 5, 6, 5, 40], 0.85) == 40
    assert nearest_rank_percentile([1, 2, 3, 4], 0.5) == 2


def test_discover_status_labels():
    issues = [
        _issue(1, labels=["Status::In Review"]),
        _issue(2, labels=["status::blocked-external", "status::in review"]),
    ]
    assert discover_status_labels(issues) == {
        "Status::In Review": "in-review",
        "status::blocked-external": None,
    }
