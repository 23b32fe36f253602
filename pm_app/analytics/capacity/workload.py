"""Per-member workload, capacity status and root-cause diagnostics.

Hours are estimated per open issue from its weight (story points) or a flat
default. By default an issue with several assignees counts in full for each
of them; pass ``attribution="split"`` to divide its hours evenly instead.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping

from pm_app.analytics.capacity.absences import absence_impact
from pm_app.core.config import (
    ATTRIBUTION_MODES,
    AVAILABLE_STATUS,
    CAPACITY_STATUS_BANDS,
    MULTI_EPIC_LIMIT,
    NOT_AVAILABLE_STATUS,
    REBALANCE_FRACTION,
    TEAM_CRITICAL_UTILIZATION,
    UNDERUTILIZED_THRESHOLD,
    WIP_LIMIT,
)
from pm_app.core.dates import is_overdue
from pm_app.core.models import (
    Absence,
    CapacityFinding,
    CapacityPolicy,
    CapacityResult,
    IssueModel,
    IterationModel,
    MemberCapacity,
    RootCause,
    TeamMember,
    TeamMetrics,
)
from pm_app.core.phases import is_stalled


def estimate_hours(issue: IssueModel, policy: CapacityPolicy) -> float:
    """``weight * hours_per_story_point`` for weighted issues, else the flat default."""
    if issue.weight is not None and issue.weight > 0:
        return issue.weight * policy.hours_per_story_point
    return policy.default_hours_per_issue


def issues_in_iteration(issues: Iterable[IssueModel], iteration: IterationModel | None) -> list[IssueModel]:
    if iteration is None:
        return list(issues)
    return [i for i in issues if i.iteration is not None and i.iteration.id == iteration.id]


def capacity_status(utilization: float, weekly_capacity: float) -> str:
    if weekly_capacity <= 0:
        return NOT_AVAILABLE_STATUS
    for status, lower in CAPACITY_STATUS_BANDS:
        if utilization >= lower:
            return status
    return AVAILABLE_STATUS


def _issue_hours(issue: IssueModel, policy: CapacityPolicy, attribution: str) -> float:
    hours = estimate_hours(issue, policy)
    if attribution == "split" and len(issue.assignees) > 1:
        return hours / len(issue.assignees)
    return hours


def _overload_causes(
    weekly: float,
    allocated: float,
    open_issues: list[IssueModel],
    hours: dict[int, float],
    now,
) -> list[RootCause]:
    excess = allocated - weekly
    causes = [
        RootCause(
            severity="critical",
            category="overload",
            description=f"Allocated {allocated:.1f}h against a capacity of {weekly:.1f}h",
            impact=f"{excess:.1f} hours over capacity",
            action_title="Rebalance workload",
            action_description="Move work to team members with spare capacity in a compatible role",
            action_priority="high",
            excess_hours=round(excess, 1),
        )
    ]

    epics: dict[int, list[IssueModel]] = {}
    for issue in open_issues:
        if issue.epic is not None:
            epics.setdefault(issue.epic.id, []).append(issue)
    if len(epics) > MULTI_EPIC_LIMIT:
        ranked = sorted(epics.values(), key=lambda group: (-len(group), group[0].epic.title))
        spread = ", ".join(
            f"{g[0].epic.title} ({len(g)} issues, {sum(i.weight or 0 for i in g)} pts)" for g in ranked[:3]
        )
        causes.append(
            RootCause(
                severity="critical",
                category="multi-epic",
                description=f"Assigned to {len(epics)} different epics simultaneously",
                impact=f"Spread across: {spread}",
                action_title="Focus on fewer epics",
                action_description=(
                    f"Reduce to 1-2 epics. Consider moving {ranked[-1][0].epic.title} issues to another team member"
                ),
                action_priority="high",
            )
        )

    if len(open_issues) > WIP_LIMIT:
        to_move = math.ceil(len(open_issues) * REBALANCE_FRACTION)
        causes.append(
            RootCause(
                severity="critical",
                category="wip",
                description=f"Too many open issues ({len(open_issues)}), WIP limit exceeded",
                impact=f"{excess:.1f} hours over capacity",
                action_title="Implement WIP limits",
                action_description=f"Move {to_move} issues to available team members",
                action_priority="high",
                excess_hours=round(excess * REBALANCE_FRACTION, 1),
            )
        )

    stalled = [i for i in open_issues if is_stalled(i)]
    if stalled:
        stalled_hours = sum(hours[i.iid] for i in stalled)
        titles = ", ".join(i.title for i in stalled[:2])
        causes.append(
            RootCause(
                severity="warning",
                category="blockers",
                description=f"{len(stalled)} blocked or waiting issues",
                impact=f"{stalled_hours:.1f} hours tied up in blocked work",
                action_title="Resolve blockers",
                action_description=f"Escalate blocked issues: {titles}",
                action_priority="medium",
                excess_hours=round(stalled_hours, 1),
            )
        )

    if now is not None:
        overdue = [i for i in open_issues if is_overdue(i.due_date, now, i.state)]
        if overdue:
            causes.append(
                RootCause(
                    severity="warning",
                    category="overdue",
                    description=f"{len(overdue)} assigned issues are past their due date",
                    impact=f"{sum(hours[i.iid] for i in overdue):.1f} hours of late work",
                    action_title="Renegotiate due dates",
                    action_description="Agree new dates with stakeholders or move the work to someone with capacity",
                    action_priority="medium",
                )
            )
    return causes


def _root_causes(
    status: str,
    utilization: float,
    weekly: float,
    allocated: float,
    available: float,
    open_issues: list[IssueModel],
    hours: dict[int, float],
    now,
) -> tuple[RootCause, ...]:
    if status == "Overloaded":
        return tuple(_overload_causes(weekly, allocated, open_issues, hours, now))
    if status == "At Capacity":
        return (
            RootCause(
                severity="warning",
                category="at-capacity",
                description=f"Operating at {utilization:.0f}% capacity",
                impact=f"Only {available:.1f} hours available",
                action_title="Monitor workload closely",
                action_description="Avoid assigning new work until current issues are completed",
                action_priority="medium",
            ),
        )
    if weekly > 0 and utilization < UNDERUTILIZED_THRESHOLD:
        return (
            RootCause(
                severity="info",
                category="underutilized",
                description=f"Operating at only {utilization:.0f}% capacity",
                impact=f"{available:.1f} hours available",
                action_title="Assign more work",
                action_description="Can take on additional work",
                action_priority="low",
            ),
        )
    return ()


def compute_capacity(
    issues: Iterable[IssueModel],
    iteration: IterationModel | None = None,
    team: Iterable[TeamMember] = (),
    absences: Iterable[Absence] = (),
    policy: CapacityPolicy | None = None,
    now=None,
    *,
    overrides: Mapping[str, float] | None = None,
    attribution: str = "full",
    holidays: Iterable | None = None,
) -> CapacityResult:
    """Allocated versus available hours for every roster member and assignee.

    Parameters
    ----------
    issues : iterable of IssueModel
        Snapshot issues. When ``iteration`` is given only issues in that
        iteration are considered.
    iteration : IterationModel, optional
        Selected sprint. With start and due dates, weekly capacity is derived
        from the sprint capacity after absences (or a manual override from
        ``overrides``), normalized back to a weekly rate.
    team : iterable of TeamMember
        Roster. Assignees missing from it are added as Developers with the
        policy's default weekly capacity.
    now : datetime-like, optional
        Enables the overdue-work root cause for overloaded members.
    attribution : {"full", "split"}
        How hours of multi-assignee issues are attributed.

    Returns
    -------
    CapacityResult
        Members sorted by utilization (descending) then username, team
        totals and the unassigned open issue count.
    """
    if attribution not in ATTRIBUTION_MODES:
        raise ValueError(f"attribution must be one of {sorted(ATTRIBUTION_MODES)}, got {attribution!r}")
    policy = policy or CapacityPolicy()
    overrides = overrides or {}
    absences = tuple(absences)
    scoped = issues_in_iteration(issues, iteration)

    roster: dict[str, TeamMember] = {}
    names: dict[str, str | None] = {}
    for member in team:
        roster.setdefault(member.username, member)
        names[member.username] = member.name
    assigned: dict[str, list[IssueModel]] = {}
    unassigned = 0
    for issue in scoped:
        if not issue.is_open:
            continue
        if not issue.assignees:
            unassigned += 1
            continue
        for user in issue.assignees:
            if user.username not in roster:
                roster[user.username] = TeamMember(
                    username=user.username,
                    default_capacity=policy.default_weekly_capacity,
                    name=user.name,
                )
            names[user.username] = names.get(user.username) or user.name
            assigned.setdefault(user.username, []).append(issue)

    members: list[MemberCapacity] = []
    for username, member in roster.items():
        default_capacity = member.default_capacity if member.default_capacity is not None else policy.default_weekly_capacity
        weekly = float(default_capacity)
        impact = absence_impact(
            username,
            absences,
            iteration,
            default_capacity,
            override=overrides.get(username),
            holidays=holidays,
        )
        absence = None
        if impact is not None:
            if impact.sprint_weeks > 0:
                weekly = round(impact.final_capacity / impact.sprint_weeks, 1)
            if impact.hours_lost > 0 or impact.final_capacity != impact.sprint_default_capacity:
                absence = impact

        open_issues = assigned.get(username, [])
        hours = {i.iid: _issue_hours(i, policy, attribution) for i in open_issues}
        allocated = round(sum(hours.values()), 1)
        utilization = round(allocated / weekly * 100, 1) if weekly > 0 else 0.0
        available = round(max(0.0, weekly - allocated), 1)
        status = capacity_status(utilization, weekly)
        members.append(
            MemberCapacity(
                username=username,
                name=names.get(username),
                role=member.role or "Developer",
                default_capacity=float(default_capacity),
                weekly_capacity=weekly,
                allocated_hours=allocated,
                available_hours=available,
                utilization=utilization,
                status=status,
                open_issues=tuple(open_issues),
                total_weight=sum(i.weight or 0 for i in open_issues),
                weeks_to_complete=math.ceil(allocated / weekly) if weekly > 0 else 0,
                is_sprint_adjusted=weekly != float(default_capacity),
                absence=absence,
                root_causes=_root_causes(status, utilization, weekly, allocated, available, open_issues, hours, now),
                gpn=member.gpn,
                t_number=member.t_number,
            )
        )
    members.sort(key=lambda m: (-m.utilization, m.username))

    return CapacityResult(
        members=tuple(members),
        team_metrics=team_metrics(members),
        unassigned_count=unassigned,
        total_issues=len(scoped),
        policy=policy,
        attribution=attribution,
        iteration=iteration,
    )


def team_metrics(members: Iterable[MemberCapacity]) -> TeamMetrics:
    members = list(members)
    if not members:
        return TeamMetrics()
    total_capacity = sum(m.weekly_capacity for m in members)
    total_allocated = sum(m.allocated_hours for m in members)
    return TeamMetrics(
        total_capacity=round(total_capacity, 1),
        total_allocated=round(total_allocated, 1),
        total_available=round(total_capacity - total_allocated, 1),
        team_utilization=round(total_allocated / total_capacity * 100, 1) if total_capacity > 0 else 0.0,
        overloaded_members=sum(1 for m in members if m.status == "Overloaded"),
        at_capacity_members=sum(1 for m in members if m.status == "At Capacity"),
        avg_utilization=round(sum(m.utilization for m in members) / len(members), 1),
    )


def capacity_findings(result: CapacityResult) -> list[CapacityFinding]:
    """Team-level summary of capacity risks, most severe first."""
    findings: list[CapacityFinding] = []
    overloaded = [m.username for m in result.members if m.status == "Overloaded"]
    at_capacity = [m.username for m in result.members if m.status == "At Capacity"]
    blocked = [m.username for m in result.members if any(c.category == "blockers" for c in m.root_causes)]
    underutilized = [
        m.username for m in result.members if m.weekly_capacity > 0 and m.utilization < UNDERUTILIZED_THRESHOLD
    ]
    metrics = result.team_metrics

    if metrics.team_utilization >= TEAM_CRITICAL_UTILIZATION:
        findings.append(
            CapacityFinding(
                severity="critical",
                type="team-capacity",
                description=(
                    f"Team is at {metrics.team_utilization:.0f}% utilization. "
                    "Consider reducing scope or adding capacity."
                ),
            )
        )
    if overloaded:
        findings.append(
            CapacityFinding(
                severity="critical",
                type="overloaded",
                description=f"{len(overloaded)} team member(s) overloaded. Rebalance work to members with spare capacity.",
                affected_members=tuple(overloaded),
            )
        )
    if at_capacity:
        findings.append(
            CapacityFinding(
                severity="warning",
                type="at-capacity",
                description=f"{len(at_capacity)} team member(s) at capacity. Avoid assigning new work to them.",
                affected_members=tuple(at_capacity),
            )
        )
    if blocked:
        findings.append(
            CapacityFinding(
                severity="warning",
                type="blocked",
                description=f"{len(blocked)} overloaded member(s) carry blocked or waiting work. Escalate the blockers.",
                affected_members=tuple(blocked),
            )
        )
    if underutilized:
        findings.append(
            CapacityFinding(
                severity="info",
                type="underutilized",
                description=f"{len(underutilized)} team member(s) below {UNDERUTILIZED_THRESHOLD:.0f}% utilization.",
                affected_members=tuple(underutilized),
            )
        )
    return findings
