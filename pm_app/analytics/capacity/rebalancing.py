"""Role-aware rebalancing proposals for overloaded team members."""

from __future__ import annotations

import math
from collections.abc import Mapping

from pm_app.analytics.capacity.workload import estimate_hours
from pm_app.core.config import REBALANCE_FRACTION, REBALANCE_TARGET_MAX_UTILIZATION, ROLE_COMPATIBILITY
from pm_app.core.models import CapacityResult, IssueModel, MemberCapacity, Proposal


def compatible_roles(role: str, role_table: Mapping[str, frozenset[str]] = ROLE_COMPATIBILITY) -> tuple[str, ...]:
    """Roles allowed to take over work from ``role``, sorted.

    The table is read as given (it need not be symmetric). A role missing
    from the table is only compatible with itself.
    """
    return tuple(sorted(role_table.get(role, frozenset({role}))))


def _utilization(allocated: float, weekly: float) -> float:
    return round(allocated / weekly * 100, 1) if weekly > 0 else 0.0


def _issues_to_move(member: MemberCapacity, result: CapacityResult, fraction: float) -> tuple[list[IssueModel], float]:
    def hours(issue: IssueModel) -> float:
        value = estimate_hours(issue, result.policy)
        if result.attribution == "split" and len(issue.assignees) > 1:
            value /= len(issue.assignees)
        return value

    count = math.ceil(member.open_issue_count * fraction)
    chosen = sorted(member.open_issues, key=lambda i: (hours(i), i.iid))[:count]
    return chosen, round(sum(hours(i) for i in chosen), 1)


def rebalancing_proposals(
    result: CapacityResult,
    role_table: Mapping[str, frozenset[str]] = ROLE_COMPATIBILITY,
    fraction: float = REBALANCE_FRACTION,
    target_max_utilization: float = REBALANCE_TARGET_MAX_UTILIZATION,
) -> list[Proposal]:
    """At most one proposal per overloaded member.

    Candidates have capacity, utilization below ``target_max_utilization``
    and a role in ``compatible_roles(from_role)``; the least utilized one is
    chosen. Hours already proposed to a candidate count towards its
    utilization for later proposals. The smallest open issues are moved
    first, ``ceil(fraction * open_issues)`` of them. Without a compatible
    candidate a ``warning`` proposal names the roles that would be needed.
    """
    allocated = {m.username: m.allocated_hours for m in result.members}
    proposals: list[Proposal] = []
    for member in result.members:
        if member.status != "Overloaded":
            continue
        roles = compatible_roles(member.role, role_table)
        candidates = [
            m
            for m in result.members
            if m.username != member.username
            and m.weekly_capacity > 0
            and m.status != "Overloaded"
            and m.role in roles
            and _utilization(allocated[m.username], m.weekly_capacity) < target_max_utilization
        ]
        candidates.sort(key=lambda m: (_utilization(allocated[m.username], m.weekly_capacity), m.username))

        if not candidates:
            proposals.append(
                Proposal(
                    from_username=member.username,
                    from_role=member.role,
                    to_username=None,
                    to_role=None,
                    issues=(),
                    issue_count=0,
                    hours=0.0,
                    current_utilization=member.utilization,
                    projected_utilization=member.utilization,
                    target_projected_utilization=None,
                    impact=f"No available team members with compatible role ({member.role})",
                    compatibility_reason=f"Needs: {', '.join(roles) or member.role}",
                    warning=True,
                    required_roles=roles,
                )
            )
            continue

        target = candidates[0]
        issues, hours = _issues_to_move(member, result, fraction)
        projected = _utilization(max(0.0, member.allocated_hours - hours), member.weekly_capacity)
        allocated[target.username] = round(allocated[target.username] + hours, 1)
        target_projected = _utilization(allocated[target.username], target.weekly_capacity)
        reason = "Same role" if target.role == member.role else f"Compatible roles ({', '.join(roles)})"
        who = member.name or member.username
        proposals.append(
            Proposal(
                from_username=member.username,
                from_role=member.role,
                to_username=target.username,
                to_role=target.role,
                issues=tuple(issues),
                issue_count=len(issues),
                hours=hours,
                current_utilization=member.utilization,
                projected_utilization=projected,
                target_projected_utilization=target_projected,
                impact=f"Would reduce {who}'s utilization from {member.utilization:.0f}% to ~{projected:.0f}%",
                compatibility_reason=reason,
            )
        )
    return proposals
