"""Sprint workflow-phase detection and team/phase fit."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from pm_app.core.config import (
    DEFAULT_WORKFLOW_PHASE,
    EARLY_SPRINT_TERMS,
    ROLE_WORKFLOW_CAPABILITIES,
    WORKFLOW_PHASES,
)
from pm_app.core.labels import lowered
from pm_app.core.models import IssueModel, MemberCapacity, SprintPhase, WorkflowEfficiency
from pm_app.core.phases import count_indicator_hits, issue_text

DEPLOYMENT_COMPLETION = 90.0
TESTING_COMPLETION = 80.0
EARLY_COMPLETION = 10.0
EARLY_WORK_SHARE = 0.5


def _sprint_phase(key: str, completion: float, scores: dict[str, int], count: int, phases) -> SprintPhase:
    name, order, description, _ = phases[key]
    return SprintPhase(
        key=key,
        phase=name,
        order=order,
        description=description,
        completion_percent=completion,
        scores=scores,
        issue_count=count,
    )


def _is_early_work(issue: IssueModel) -> bool:
    text = " ".join(lowered(issue.labels))
    return any(term in text for term in EARLY_SPRINT_TERMS)


def detect_sprint_phase(
    issues: Iterable[IssueModel],
    phases: Mapping[str, tuple[str, int, str, tuple[str, ...]]] = WORKFLOW_PHASES,
) -> SprintPhase:
    """Classify the dominant workflow phase of a sprint.

    Each phase scores one point per indicator keyword found in an open
    issue's title, description and labels. The highest score wins (ties go
    to the earlier phase; no signal at all means Implementation). Completion
    then overrides the keywords: at least 90% closed is Deployment, at least
    80% is Testing, and under 10% with half or more of the open work labeled
    analysis/discovery/requirement is Analysis.
    """
    issues = list(issues)
    open_issues = [i for i in issues if i.is_open]
    closed = sum(1 for i in issues if i.is_closed)
    completion = round(closed / len(issues) * 100, 1) if issues else 0.0

    texts = [issue_text(i) for i in open_issues]
    scores = {key: sum(count_indicator_hits(text, entry[3]) for text in texts) for key, entry in phases.items()}

    dominant = DEFAULT_WORKFLOW_PHASE
    best = 0
    for key in sorted(phases, key=lambda k: phases[k][1]):
        if scores[key] > best:
            best = scores[key]
            dominant = key

    if completion >= DEPLOYMENT_COMPLETION:
        dominant = "DEPLOYMENT"
    elif completion >= TESTING_COMPLETION:
        dominant = "TESTING"
    elif completion < EARLY_COMPLETION and open_issues:
        early = sum(1 for i in open_issues if _is_early_work(i))
        if early >= len(open_issues) * EARLY_WORK_SHARE:
            dominant = "ANALYSIS"

    return _sprint_phase(dominant, completion, scores, len(issues), phases)


def workflow_efficiency(
    members: Iterable[MemberCapacity],
    phase: SprintPhase,
    role_capabilities: Mapping[str, tuple[tuple[str, ...], tuple[str, ...], tuple[str, ...]]] = ROLE_WORKFLOW_CAPABILITIES,
) -> WorkflowEfficiency:
    """Score how well the team's roles fit the sprint phase.

    ``score = (optimal * 100 + suboptimal * 50) / total_members`` where
    optimal members have the phase as a primary capability and suboptimal
    ones as a secondary capability.
    """
    members = list(members)
    optimal = suboptimal = mismatched = 0
    for member in members:
        primary, secondary, cannot_do = role_capabilities.get(member.role, ((), (), ()))
        if phase.key in primary:
            optimal += 1
        elif phase.key in secondary:
            suboptimal += 1
        elif phase.key in cannot_do:
            mismatched += 1
    score = round((optimal * 100 + suboptimal * 50) / len(members)) if members else 0

    recommendations = []
    if score < 50:
        recommendations.append(
            {
                "severity": "critical",
                "title": "Phase-Role Mismatch",
                "description": f"Only {optimal} team members are optimally suited for the current {phase.phase} phase",
                "action": "Consider phase-appropriate task distribution or timeline adjustment",
            }
        )
    if mismatched:
        recommendations.append(
            {
                "severity": "warning",
                "title": "Underutilized Skills",
                "description": f"{mismatched} team members cannot contribute effectively to {phase.phase}",
                "action": "Assign preparatory work for upcoming phases or cross-training",
            }
        )
    if suboptimal > optimal:
        recommendations.append(
            {
                "severity": "info",
                "title": "Suboptimal Resource Allocation",
                "description": f"More team members in supporting roles than primary roles for {phase.phase}",
                "action": "Consider skill development or team composition review",
            }
        )
    return WorkflowEfficiency(
        phase=phase.phase,
        efficiency_score=score,
        optimal=optimal,
        suboptimal=suboptimal,
        mismatched=mismatched,
        recommendations=tuple(recommendations),
    )
