"""Mapping raw tracker JSON (GitLab REST shapes) into model instances and DataFrames."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Any

import pandas as pd

from .config import PHASE_LABELS
from .dates import get_iteration_name, normalize_timestamp, to_date
from .labels import get_priority_from_labels, normalize_labels
from .models import (
    Absence,
    CapacityResult,
    EpicModel,
    IssueLink,
    IssueModel,
    IterationModel,
    LabelEvent,
    LifecycleRecord,
    MilestoneModel,
    TeamMember,
    UserModel,
)

logger = logging.getLogger(__name__)

PRIORITY_VALUES = {"High": 3, "Medium": 2, "Low": 1}
LINK_TYPE_ALIASES = {
    "blocks": "blocks",
    "is_blocked_by": "is_blocked_by",
    "blocked_by": "is_blocked_by",
    "relates_to": "relates_to",
}


def map_priority(labels: Iterable[str] | None) -> int:
    """Sortable priority value (High=3, Medium=2, Low=1) derived from labels."""
    return PRIORITY_VALUES[get_priority_from_labels(labels)]


def _int_or_none(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _timestamp(value: Any):
    ts = normalize_timestamp(value)
    return None if ts is None else ts.to_pydatetime()


def _label_names(raw_labels: Any) -> list[str]:
    names: list[str] = []
    for item in raw_labels or []:
        if isinstance(item, Mapping):
            name = item.get("name") or item.get("title")
            if name:
                names.append(str(name))
        elif item:
            names.append(str(item))
    return names


def map_user(raw: Any) -> UserModel | None:
    if isinstance(raw, UserModel):
        return raw
    if not isinstance(raw, Mapping):
        return None
    username = raw.get("username") or raw.get("name")
    if not username:
        return None
    return UserModel(
        username=str(username),
        name=raw.get("name"),
        avatar_url=raw.get("avatar_url") or raw.get("avatar"),
    )


def map_milestone(raw: Any) -> MilestoneModel | None:
    if not isinstance(raw, Mapping) or raw.get("id") is None:
        return None
    start = to_date(raw.get("start_date"))
    due = to_date(raw.get("due_date"))
    if start is not None and due is not None and start > due:
        logger.debug("Milestone %s has start after due date; dropping due date", raw.get("id"))
        due = None
    return MilestoneModel(
        id=_int_or_none(raw.get("id")) or 0,
        title=str(raw.get("title") or ""),
        state=str(raw.get("state") or "active"),
        start_date=start,
        due_date=due,
    )


def map_epic(raw: Any, issue_iids: Iterable[int] = ()) -> EpicModel | None:
    if not isinstance(raw, Mapping) or raw.get("id") is None:
        return None
    return EpicModel(
        id=_int_or_none(raw.get("id")) or 0,
        title=str(raw.get("title") or ""),
        start_date=to_date(raw.get("start_date")),
        end_date=to_date(raw.get("end_date") or raw.get("due_date")),
        issue_iids=tuple(sorted(set(issue_iids))),
    )


def map_iteration(raw: Any) -> IterationModel | None:
    if not isinstance(raw, Mapping) or raw.get("id") is None:
        return None
    return IterationModel(
        id=_int_or_none(raw.get("id")) or 0,
        iid=_int_or_none(raw.get("iid")),
        title=(raw.get("title") or None),
        start_date=to_date(raw.get("start_date")),
        due_date=to_date(raw.get("due_date")),
    )


def _map_links(raw: Mapping[str, Any]) -> tuple[IssueLink, ...]:
    links: list[IssueLink] = []
    for item in raw.get("links") or []:
        if not isinstance(item, Mapping):
            continue
        target = _int_or_none(item.get("iid") or item.get("target_iid"))
        link_type = LINK_TYPE_ALIASES.get(str(item.get("link_type") or "").lower())
        if target is None or link_type is None:
            continue
        links.append(IssueLink(target_iid=target, link_type=link_type))
    for target in raw.get("blocking_iids") or []:
        if _int_or_none(target) is not None:
            links.append(IssueLink(target_iid=int(target), link_type="blocks"))
    for target in raw.get("blocked_by_iids") or []:
        if _int_or_none(target) is not None:
            links.append(IssueLink(target_iid=int(target), link_type="is_blocked_by"))
    return tuple(dict.fromkeys(links))


def map_issue(raw: Mapping[str, Any]) -> IssueModel:
    """Map a raw issue payload into an ``IssueModel``.

    Never raises on bad field values: unparsable timestamps become None,
    negative or invalid weights become None, labels are deduplicated
    case-insensitively.
    """
    assignees = [map_user(a) for a in raw.get("assignees") or []]
    if not assignees and raw.get("assignee"):
        assignees = [map_user(raw.get("assignee"))]
    weight = _int_or_none(raw.get("weight"))
    if weight is not None and weight < 0:
        weight = None
    state = str(raw.get("state") or "opened").lower()
    if state not in {"opened", "closed"}:
        state = "closed" if state in {"close", "resolved", "done"} else "opened"
    return IssueModel(
        iid=_int_or_none(raw.get("iid")) or 0,
        title=str(raw.get("title") or ""),
        state=state,
        created_at=_timestamp(raw.get("created_at")),
        updated_at=_timestamp(raw.get("updated_at")),
        closed_at=_timestamp(raw.get("closed_at")),
        labels=normalize_labels(_label_names(raw.get("labels"))),
        assignees=tuple(dict.fromkeys(a for a in assignees if a is not None)),
        epic=map_epic(raw.get("epic")),
        milestone=map_milestone(raw.get("milestone")),
        iteration=map_iteration(raw.get("iteration")),
        weight=weight,
        due_date=to_date(raw.get("due_date")),
        description=raw.get("description") or None,
        web_url=raw.get("web_url") or None,
        links=_map_links(raw),
    )


def map_issues(raw_issues: Iterable[Mapping[str, Any]]) -> list[IssueModel]:
    return [map_issue(raw) for raw in raw_issues if isinstance(raw, Mapping)]


def attach_epic_issues(epics: Iterable[EpicModel], issues: Iterable[IssueModel]) -> list[EpicModel]:
    """Return epics with ``issue_iids`` derived from the issues that reference them."""
    by_epic: defaultdict[int, set[int]] = defaultdict(set)
    for issue in issues:
        if issue.epic is not None:
            by_epic[issue.epic.id].add(issue.iid)
    return [
        EpicModel(
            id=e.id,
            title=e.title,
            start_date=e.start_date,
            end_date=e.end_date,
            issue_iids=tuple(sorted(by_epic.get(e.id, set()) | set(e.issue_iids))),
        )
        for e in epics
    ]


def map_label_events(raw_events: Iterable[Mapping[str, Any]], issue_iid: int | None = None) -> list[LabelEvent]:
    """Map resource label events; events with no timestamp or label are dropped."""
    events: list[LabelEvent] = []
    for raw in raw_events or []:
        if not isinstance(raw, Mapping):
            continue
        label = raw.get("label")
        name = label.get("name") if isinstance(label, Mapping) else label
        at = _timestamp(raw.get("created_at") or raw.get("at"))
        action = str(raw.get("action") or "").lower()
        iid = _int_or_none(raw.get("issue_iid") or raw.get("resource_iid"))
        if iid is None:
            iid = issue_iid
        if not name or at is None or action not in {"add", "remove"} or iid is None:
            logger.debug("Dropping malformed label event: %s", raw)
            continue
        events.append(LabelEvent(issue_iid=iid, action=action, label=str(name), at=at))
    events.sort(key=lambda ev: (ev.issue_iid, ev.at))
    return events


def map_team_member(raw: Mapping[str, Any], default_capacity: float) -> TeamMember | None:
    username = raw.get("username")
    if not username:
        return None
    capacity = raw.get("default_capacity", raw.get("defaultCapacity"))
    try:
        capacity = float(capacity) if capacity is not None else float(default_capacity)
    except (TypeError, ValueError):
        capacity = float(default_capacity)
    return TeamMember(
        username=str(username),
        role=str(raw.get("role") or "Developer"),
        default_capacity=max(0.0, capacity),
        name=raw.get("name"),
        gpn=raw.get("gpn"),
        t_number=raw.get("t_number", raw.get("tNumber")),
    )


def map_absence(raw: Mapping[str, Any]) -> Absence | None:
    start = to_date(raw.get("start_date", raw.get("startDate")))
    end = to_date(raw.get("end_date", raw.get("endDate")))
    username = raw.get("username")
    if not username or start is None or end is None or end < start:
        return None
    return Absence(username=str(username), start_date=start, end_date=end, reason=raw.get("reason"))


# ------------------ DataFrame views ------------------


def issues_to_dataframe(issues: Iterable[IssueModel]) -> pd.DataFrame:
    rows = []
    for issue in issues:
        rows.append(
            {
                "iid": issue.iid,
                "title": issue.title,
                "state": issue.state,
                "labels": list(issue.labels),
                "assignees": list(issue.assignee_usernames),
                "priority": get_priority_from_labels(issue.labels),
                "priority_value": map_priority(issue.labels),
                "weight": issue.weight,
                "epic": issue.epic.title if issue.epic else None,
                "milestone": issue.milestone.title if issue.milestone else None,
                "iteration": get_iteration_name(issue.iteration),
                "due_date": issue.due_date,
                "created_at": issue.created_at,
                "updated_at": issue.updated_at,
                "closed_at": issue.closed_at,
                "web_url": issue.web_url,
            }
        )
    df = pd.DataFrame(rows)
    for col in ("created_at", "updated_at", "closed_at"):
        if col in df.columns:
            df[col] = pd.to_datetime(df[col], utc=True, errors="coerce")
    return df


def lifecycle_to_dataframe(records: Iterable[LifecycleRecord]) -> pd.DataFrame:
    rows = [
        {
            "iid": r.iid,
            "title": r.title,
            "state": r.state,
            "phase": r.current_phase,
            "phase_label": PHASE_LABELS.get(r.current_phase, r.current_phase),
            "lead_time": r.lead_time,
            "cycle_time": r.cycle_time,
            "wait_time": r.wait_time,
            "time_in_current_phase": r.time_in_current_phase,
            "estimation": r.estimation,
            "malformed": r.malformed,
        }
        for r in records
    ]
    df = pd.DataFrame(rows)
    for col in ("lead_time", "cycle_time", "wait_time"):
        if col in df.columns:
            df[col] = df[col].astype("Int64")
    return df


def capacity_to_dataframe(result: CapacityResult) -> pd.DataFrame:
    rows = [
        {
            "username": m.username,
            "name": m.name,
            "role": m.role,
            "weekly_capacity": m.weekly_capacity,
            "allocated_hours": m.allocated_hours,
            "available_hours": m.available_hours,
            "utilization": m.utilization,
            "status": m.status,
            "open_issues": m.open_issue_count,
            "total_weight": m.total_weight,
        }
        for m in result.members
    ]
    df = pd.DataFrame(rows)
    for col in ("weekly_capacity", "allocated_hours", "available_hours", "utilization"):
        if col in df.columns:
            df[col] = df[col].astype(float).round(1)
    return df
