"""Backlog matching and proactive recommendations for underutilized members."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from pm_app.core.config import (
    BACKLOG_SUGGESTION_LIMIT,
    CROSS_TRAINING_LIMIT,
    KNOWLEDGE_SHARING_LIMIT,
    OVERLOADED_PEER_THRESHOLD,
    PREPARE_NEXT_PHASE_LIMIT,
    PROACTIVE_UTILIZATION_LIMIT,
    ROLE_WORKFLOW_CAPABILITIES,
    SUGGESTED_WORK_LIMIT,
    WORKFLOW_PHASES,
)
from pm_app.core.models import (
    BacklogMatch,
    CapacityPolicy,
    IssueModel,
    MemberCapacity,
    Recommendation,
    SprintPhase,
)
from pm_app.core.phases import count_indicator_hits, issue_text

RoleCapabilities = Mapping[str, tuple[tuple[str, ...], tuple[str, ...], tuple[str, ...]]]


def analyze_backlog_for_role(
    backlog: Iterable[IssueModel],
    role: str,
    role_capabilities: RoleCapabilities = ROLE_WORKFLOW_CAPABILITIES,
    phases=WORKFLOW_PHASES,
    limit: int = BACKLOG_SUGGESTION_LIMIT,
) -> list[BacklogMatch]:
    """Unassigned open issues whose text matches a phase the role can work on.

    One match per (issue, phase) with at least one indicator hit, sorted
    primary-capability first, then by hit count, then iid.
    """
    capabilities = role_capabilities.get(role)
    if capabilities is None:
        return []
    primary, secondary, _ = capabilities
    role_phases = [key for key in (*primary, *secondary) if key in phases]

    matches: list[BacklogMatch] = []
    for issue in backlog:
        if not issue.is_open or issue.assignees:
            continue
        text = issue_text(issue)
        for key in role_phases:
            name, _, _, indicators = phases[key]
            score = count_indicator_hits(text, indicators)
            if score > 0:
                matches.append(
                    BacklogMatch(
                        issue=issue,
                        phase=key,
                        match_score=score,
                        is_primary=key in primary,
                        reason=f"Suitable for {name} work",
                    )
                )
    matches.sort(key=lambda m: (not m.is_primary, -m.match_score, m.issue.iid, phases[m.phase][1]))
    return matches[:limit]


def _next_phase(phase: SprintPhase, phases) -> str | None:
    for key, entry in phases.items():
        if entry[1] == phase.order + 1:
            return key
    return None


def proactive_recommendations(
    members: Iterable[MemberCapacity],
    phase: SprintPhase,
    backlog: Iterable[IssueModel],
    role_capabilities: RoleCapabilities = ROLE_WORKFLOW_CAPABILITIES,
    phases=WORKFLOW_PHASES,
) -> list[Recommendation]:
    """Suggestions for members with capacity below 60% utilization.

    Members without capacity or with a role missing from
    ``role_capabilities`` receive nothing. Each qualifying member gets up to
    four suggestions: prepare next-phase work, pick up aligned backlog,
    cross-train with an overloaded teammate, and knowledge sharing.
    """
    members = list(members)
    backlog = list(backlog)
    recommendations: list[Recommendation] = []
    for member in members:
        if member.weekly_capacity <= 0 or member.utilization >= PROACTIVE_UTILIZATION_LIMIT:
            continue
        capabilities = role_capabilities.get(member.role)
        if capabilities is None:
            continue
        primary, secondary, _ = capabilities
        optimal = phase.key in primary
        can_contribute = optimal or phase.key in secondary
        util = member.utilization
        suggestions = analyze_backlog_for_role(backlog, member.role, role_capabilities, phases)

        if not optimal and util < PREPARE_NEXT_PHASE_LIMIT:
            next_key = _next_phase(phase, phases)
            if next_key is not None and next_key in primary:
                next_name = phases[next_key][0]
                recommendations.append(
                    Recommendation(
                        username=member.username,
                        type="PREPARE_NEXT_PHASE",
                        priority="high",
                        title=f"Start {next_name} for next sprint",
                        description=(
                            f"As a {member.role}, prepare the upcoming {next_name} phase "
                            f"while the team completes {phase.phase}"
                        ),
                        impact="Accelerate next sprint startup",
                        suggested_work=tuple(suggestions[:SUGGESTED_WORK_LIMIT]),
                    )
                )

        if can_contribute and suggestions:
            recommendations.append(
                Recommendation(
                    username=member.username,
                    type="BACKLOG_PICKUP",
                    priority="high" if optimal else "medium",
                    title="Pick up aligned backlog items",
                    description=f"{100 - util:.0f}% capacity available for additional {phase.phase} work",
                    impact=f"Increase sprint velocity by ~{round((100 - util) / 20)} story points",
                    suggested_work=tuple(suggestions[:SUGGESTED_WORK_LIMIT]),
                )
            )

        if util < CROSS_TRAINING_LIMIT and not optimal:
            peers = sorted(
                (
                    m
                    for m in members
                    if m.username != member.username
                    and m.utilization > OVERLOADED_PEER_THRESHOLD
                    and phase.key in role_capabilities.get(m.role, ((), (), ()))[0]
                ),
                key=lambda m: (-m.utilization, m.username),
            )
            if peers:
                mentor = peers[0].name or peers[0].username
                recommendations.append(
                    Recommendation(
                        username=member.username,
                        type="CROSS_TRAINING",
                        priority="low",
                        title="Cross-training opportunity",
                        description=f"Shadow {mentor} to learn {phase.phase} skills",
                        impact="Build team resilience and flexibility",
                    )
                )

        if util < KNOWLEDGE_SHARING_LIMIT:
            recommendations.append(
                Recommendation(
                    username=member.username,
                    type="KNOWLEDGE_SHARING",
                    priority="low",
                    title="Document and share knowledge",
                    description=f"Use available capacity to document {member.role} best practices",
                    impact="Improve team knowledge and onboarding",
                )
            )
    return recommendations


def velocity_impact(recommendations: Iterable[Recommendation], policy: CapacityPolicy | None = None) -> dict:
    """Story points and hours unlocked by the backlog pickups among ``recommendations``."""
    policy = policy or CapacityPolicy()
    points = 0
    seen: set[int] = set()
    for rec in recommendations:
        if rec.type != "BACKLOG_PICKUP":
            continue
        for work in rec.suggested_work:
            if work.issue.iid in seen:
                continue
            seen.add(work.issue.iid)
            points += work.issue.weight or 0
    return {
        "story_points": points,
        "hours": points * policy.hours_per_story_point,
        "velocity_increase": f"+{round(points * 100 / 20)}%" if points else "0%",
    }
