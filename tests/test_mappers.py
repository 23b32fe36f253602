from datetime import datetime

import pytz

from pm_app.core.mappers import (
    attach_epic_issues,
    capacity_to_dataframe,
    issues_to_dataframe,
    map_issue,
    map_label_events,
    map_priority,
)
from pm_app.core.models import CapacityPolicy, CapacityResult, MemberCapacity, TeamMetrics


def _raw_issue(**overrides):
    raw = {
        "iid": 42,
        "title": "Build export",
        "state": "opened",
        "created_at": "2024-03-01T09:00:00Z",
        "updated_at": "2024-03-05T09:00:00Z",
        "closed_at": None,
        "labels": ["Backend", "backend", "Priority::High"],
        "assignees": [{"username": "alice", "name": "Alice"}],
        "epic": {"id": 5, "title": "Exports"},
        "milestone": {"id": 2, "title": "M1", "state": "active"},
        "iteration": {"id": 9, "iid": 3, "title": "Sprint 3", "start_date": "2024-03-04", "due_date": "2024-03-15"},
        "weight": 3,
        "due_date": "2024-03-20",
        "description": "Blocked by #7",
        "web_url": "https://gitlab.example.com/g/p/-/issues/42",
    }
    raw.update(overrides)
    return raw


def test_map_issue_basic_fields():
    issue = map_issue(_raw_issue())
    assert issue.iid == 42
    assert issue.is_open
    assert issue.labels == ("Backend", "Priority::High")
    assert issue.assignee_usernames == ("alice",)
    assert issue.epic.id == 5
    assert issue.iteration.title == "Sprint 3"
    assert issue.created_at == datetime(2024, 3, 1, 9, 0, tzinfo=pytz.UTC)
    assert map_priority(issue.labels) == 3


def test_map_issue_never_raises_on_bad_values():
    issue = map_issue(_raw_issue(created_at="garbage", weight=-2, labels=None, assignees=None, epic="x"))
    assert issue.created_at is None
    assert issue.weight is None
    assert issue.labels == ()
    assert issue.assignees == ()
    assert issue.epic is None


def test_map_issue_structured_links():
    issue = map_issue(
        _raw_issue(links=[{"iid": 8, "link_type": "blocks"}, {"iid": 9, "link_type": "relates_to"}, {"iid": "x"}])
    )
    assert [(link.target_iid, link.link_type) for link in issue.links] == [(8, "blocks"), (9, "relates_to")]


def test_map_label_events_drops_malformed_and_sorts():
    raw = [
        {"action": "add", "label": {"name": "status::in review"}, "created_at": "2024-03-04T10:00:00Z"},
        {"action": "add", "label": {"name": "status::in progress"}, "created_at": "2024-03-02T10:00:00Z"},
        {"action": "add", "label": None, "created_at": "2024-03-03T10:00:00Z"},
        {"action": "rename", "label": {"name": "x"}, "created_at": "2024-03-03T10:00:00Z"},
    ]
    events = map_label_events(raw, issue_iid=42)
    assert [e.label for e in events] == ["status::in progress", "status::in review"]
    assert all(e.issue_iid == 42 for e in events)


def test_attach_epic_issues():
    issues = [map_issue(_raw_issue(iid=1)), map_issue(_raw_issue(iid=2)), map_issue(_raw_issue(iid=3, epic=None))]
    [epic] = attach_epic_issues([issues[0].epic], issues)
    assert epic.issue_iids == (1, 2)


def test_issues_to_dataframe():
    df = issues_to_dataframe([map_issue(_raw_issue()), map_issue(_raw_issue(iid=43, created_at="bad"))])
    assert list(df["iid"]) == [42, 43]
    assert df.loc[0, "priority"] == "High"
    assert df.loc[0, "iteration"] == "Sprint 3"
    assert df["created_at"].isna().tolist() == [False, True]


def test_capacity_to_dataframe():
    member = MemberCapacity(
        username="alice",
        name="Alice",
        role="Developer",
        default_capacity=40.0,
        weekly_capacity=40.0,
        allocated_hours=12.0,
        available_hours=28.0,
        utilization=30.0,
        status="Available",
    )
    result = CapacityResult(
        members=(member,),
        team_metrics=TeamMetrics(),
        unassigned_count=0,
        total_issues=0,
        policy=CapacityPolicy(),
    )
    df = capacity_to_dataframe(result)
    assert df.loc[0, "username"] == "alice"
    assert df.loc[0, "utilization"] == 30.0
