"""Phase distribution, bottleneck detection and lead-time histogram."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

import pandas as pd

from pm_app.core.config import (
    BOTTLENECK_COUNT_THRESHOLD,
    BOTTLENECK_DAYS_THRESHOLD,
    BOTTLENECK_HIGH_FACTOR,
    BOTTLENECK_PLAYBOOK,
    LEAD_TIME_BUCKET_EDGES,
    LEAD_TIME_BUCKET_LABELS,
    PHASE_LABELS,
    PHASE_ORDER,
    TERMINAL_PHASES,
)
from pm_app.core.models import BottleneckFinding, IssueModel, LifecycleRecord

SEVERITY_RANK = {"high": 0, "medium": 1, "low": 2}


def phase_distribution(records: Iterable[LifecycleRecord], open_only: bool = True) -> dict[str, list[IssueModel]]:
    """Group issues by current phase, keys in canonical phase order.

    Every phase is present (possibly with an empty list). With ``open_only``
    closed issues are ignored, so removing a closed issue never changes the
    result.
    """
    dist: dict[str, list[IssueModel]] = {phase: [] for phase in PHASE_ORDER}
    for rec in records:
        if open_only and rec.state != "opened":
            continue
        dist.setdefault(rec.current_phase, []).append(rec.issue)
    return dist


def _open_phase_frame(records: Iterable[LifecycleRecord]) -> pd.DataFrame:
    rows = [
        {"phase": r.current_phase, "days": r.time_in_current_phase}
        for r in records
        if r.state == "opened" and r.current_phase not in TERMINAL_PHASES
    ]
    return pd.DataFrame(rows, columns=["phase", "days"])


def identify_bottlenecks(
    records: Iterable[LifecycleRecord],
    *,
    count_threshold: int = BOTTLENECK_COUNT_THRESHOLD,
    days_threshold: float = BOTTLENECK_DAYS_THRESHOLD,
    high_factor: float = BOTTLENECK_HIGH_FACTOR,
    playbook: Mapping[str, Sequence[tuple[str, str]]] = BOTTLENECK_PLAYBOOK,
) -> list[BottleneckFinding]:
    """Per open phase: issue count, average dwell time and a severity.

    A phase is a bottleneck when ``count >= count_threshold`` and
    ``avg >= days_threshold``. Severity is ``high`` when both exceed
    ``high_factor`` times their threshold, ``medium`` for any other
    bottleneck and ``low`` otherwise. Findings are ordered by severity, then
    phase order.
    """
    df = _open_phase_frame(records)
    if df.empty:
        return []
    grouped = df.groupby("phase")["days"].agg(["count", "mean"])
    order = {phase: idx for idx, phase in enumerate(PHASE_ORDER)}
    findings: list[BottleneckFinding] = []
    for phase, row in grouped.iterrows():
        count = int(row["count"])
        avg = round(float(row["mean"]), 1)
        is_bottleneck = count >= count_threshold and avg >= days_threshold
        if count > count_threshold * high_factor and avg > days_threshold * high_factor:
            severity = "high"
        elif is_bottleneck:
            severity = "medium"
        else:
            severity = "low"
        name = PHASE_LABELS.get(phase, phase)
        if is_bottleneck:
            reason = f"{count} issues in {name} for an average of {avg} days"
            rules = tuple(playbook.get(phase, ()))
        else:
            reason = f"{name} is flowing ({count} issues, {avg} days average)"
            rules = ()
        findings.append(
            BottleneckFinding(
                phase=phase,
                count=count,
                avg_time_in_phase=avg,
                severity=severity,
                is_bottleneck=is_bottleneck,
                reason=reason,
                root_causes=tuple(cause for cause, _ in rules),
                recommended_actions=tuple(action for _, action in rules),
            )
        )
    findings.sort(key=lambda f: (SEVERITY_RANK[f.severity], order.get(f.phase, len(order))))
    return findings


def lead_time_distribution(records: Iterable[LifecycleRecord]) -> dict[str, int]:
    """Histogram of closed-issue lead times over fixed day buckets (all buckets present)."""
    leads = [r.lead_time for r in records if r.state == "closed" and r.lead_time is not None]
    if not leads:
        return {label: 0 for label in LEAD_TIME_BUCKET_LABELS}
    buckets = pd.cut(pd.Series(leads), bins=list(LEAD_TIME_BUCKET_EDGES), labels=list(LEAD_TIME_BUCKET_LABELS))
    counts = buckets.value_counts(sort=False)
    return {label: int(counts.get(label, 0)) for label in LEAD_TIME_BUCKET_LABELS}
