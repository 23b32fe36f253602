from datetime import datetime, timedelta

import pytz

from pm_app.analytics.lifecycle.cycle_time import classify_lifecycle
from pm_app.analytics.lifecycle.distribution import (
    identify_bottlenecks,
    lead_time_distribution,
    phase_distribution,
)
from pm_app.core.config import PHASE_ORDER
from pm_app.core.models import IssueModel

NOW = datetime(2024, 4, 1, 12, 0, tzinfo=pytz.UTC)
CREATED = datetime(2024, 1, 1, 9, 0, tzinfo=pytz.UTC)


def _open(iid, label, days_in_phase):
    return IssueModel(
        iid=iid,
        title=f"Issue {iid}",
        state="opened",
        created_at=CREATED,
        updated_at=NOW - timedelta(days=days_in_phase),
        labels=(label,),
    )


def _closed(iid, lead_days):
    return IssueModel(
        iid=iid,
        title=f"Closed {iid}",
        state="closed",
        created_at=CREATED,
        updated_at=CREATED + timedelta(days=lead_days),
        closed_at=CREATED + timedelta(days=lead_days),
    )


def _sample_issues():
    issues = [_open(i, "status::in testing", 12) for i in range(1, 7)]
    issues += [_open(i, "status::in review", 2) for i in range(10, 12)]
    issues += [_closed(20, 5), _closed(21, 9)]
    return issues


def test_phase_distribution_open_only_in_phase_order():
    report = classify_lifecycle(_sample_issues(), now=NOW)
    dist = phase_distribution(report)
    assert list(dist) == list(PHASE_ORDER)
    assert [i.iid for i in dist["in-testing"]] == [1, 2, 3, 4, 5, 6]
    assert dist["done"] == []

    with_closed = phase_distribution(report, open_only=False)
    assert [i.iid for i in with_closed["done"]] == [20, 21]


def test_removing_closed_issue_keeps_open_aggregates():
    issues = _sample_issues()
    full = classify_lifecycle(issues, now=NOW)
    trimmed = classify_lifecycle([i for i in issues if i.iid != 21], now=NOW)
    assert phase_distribution(full) == phase_distribution(trimmed)
    assert identify_bottlenecks(full) == identify_bottlenecks(trimmed)


def test_medium_bottleneck_and_flowing_phase():
    findings = identify_bottlenecks(classify_lifecycle(_sample_issues(), now=NOW))
    testing, review = findings
    assert testing.phase == "in-testing"
    assert testing.count == 6 and testing.avg_time_in_phase == 12.0
    assert testing.is_bottleneck and testing.severity == "medium"
    assert testing.root_causes and len(testing.root_causes) == len(testing.recommended_actions)
    assert review.phase == "in-review"
    assert not review.is_bottleneck and review.severity == "low"
    assert review.root_causes == ()


def test_high_severity_bottleneck():
    issues = [_open(i, "status::in progress", 15) for i in range(1, 10)]
    [finding] = identify_bottlenecks(classify_lifecycle(issues, now=NOW))
    assert finding.severity == "high"
    assert "Too much work in progress" in finding.root_causes


def test_thresholds_are_configurable():
    issues = [_open(i, "status::in review", 3) for i in range(1, 4)]
    [finding] = identify_bottlenecks(classify_lifecycle(issues, now=NOW), count_threshold=3, days_threshold=3)
    assert finding.is_bottleneck


def test_empty_inputs():
    assert identify_bottlenecks([]) == []
    assert all(v == [] for v in phase_distribution([]).values())
    assert set(lead_time_distribution([]).values()) == {0}


def test_lead_time_distribution_buckets():
    issues = [_closed(i, lead) for i, lead in enumerate([3, 7, 8, 45, 100], start=1)]
    dist = lead_time_distribution(classify_lifecycle(issues, now=NOW))
    assert dist == {
        "0-7 days": 2,
        "8-14 days": 1,
        "15-30 days": 0,
        "31-60 days": 1,
        "61-90 days": 0,
        "90+ days": 1,
    }
