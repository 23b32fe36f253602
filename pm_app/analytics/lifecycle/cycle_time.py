"""Issue lifecycle reconstruction and cycle-time statistics.

Every issue is classified into exactly one lifecycle phase and, when its
timestamps allow, receives lead, cycle and wait times measured in whole
UTC calendar days.

The start of work is taken from the label history when available (the
earliest event adding a label that maps to a work-started phase). Without
history it is estimated as ``created + fraction * (closed - created)`` and
the record is marked ``estimated``.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence

import pandas as pd

from pm_app.core.config import (
    ESTIMATED_WAIT_FRACTION,
    PROGRESS_KEYWORD_RULES,
    STATUS_LABEL_RULES,
    TERMINAL_PHASES,
    WORK_STARTED_PHASES,
)
from pm_app.core.dates import calendar_days_between, normalize_timestamp
from pm_app.core.models import (
    CycleTimeSummary,
    Diagnostics,
    IssueModel,
    LabelEvent,
    LifecycleRecord,
    LifecycleReport,
)
from pm_app.core.phases import classify_phase, match_status_label, phase_for_label

logger = logging.getLogger(__name__)

ACCURATE = "accurate"
ESTIMATED = "estimated"


def nearest_rank_percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile: ``sorted[ceil(p * n) - 1]``; 0 for an empty input."""
    if not values:
        return 0
    ordered = sorted(values)
    rank = max(1, math.ceil(p * len(ordered)))
    return ordered[min(rank, len(ordered)) - 1]


def _group_history(label_history) -> dict[int, list[LabelEvent]]:
    grouped: defaultdict[int, list[LabelEvent]] = defaultdict(list)
    if not label_history:
        return {}
    if isinstance(label_history, Mapping):
        for iid, events in label_history.items():
            for ev in events or ():
                grouped[int(iid)].append(ev)
    else:
        for ev in label_history:
            grouped[ev.issue_iid].append(ev)
    for events in grouped.values():
        events.sort(key=lambda ev: normalize_timestamp(ev.at) or pd.Timestamp.min.tz_localize("UTC"))
    return dict(grouped)


def _work_started_from_history(events: Iterable[LabelEvent], status_rules, keyword_rules) -> pd.Timestamp | None:
    for ev in events:
        if ev.action != "add":
            continue
        if phase_for_label(ev.label, status_rules, keyword_rules) in WORK_STARTED_PHASES:
            return normalize_timestamp(ev.at)
    return None


def _last_phase_entry(events: Sequence[LabelEvent], phase: str, status_rules, keyword_rules) -> pd.Timestamp | None:
    for ev in reversed(events):
        if ev.action == "add" and phase_for_label(ev.label, status_rules, keyword_rules) == phase:
            return normalize_timestamp(ev.at)
    return None


def _clamp(value: pd.Timestamp, lo: pd.Timestamp, hi: pd.Timestamp) -> pd.Timestamp:
    return min(max(value, lo), hi)


def classify_lifecycle(
    issues: Iterable[IssueModel],
    label_history: Iterable[LabelEvent] | Mapping[int, Sequence[LabelEvent]] | None = None,
    now=None,
    *,
    status_rules: Sequence[tuple[str, str]] = STATUS_LABEL_RULES,
    keyword_rules: Sequence[tuple[str, str]] = PROGRESS_KEYWORD_RULES,
    estimation_fraction: float = ESTIMATED_WAIT_FRACTION,
) -> LifecycleReport:
    """Derive one ``LifecycleRecord`` per issue.

    Parameters
    ----------
    issues : iterable of IssueModel
        Snapshot issues; input order is preserved in the output.
    label_history : iterable of LabelEvent or mapping iid -> events, optional
        Label add/remove events. Issues without events use estimated cycle
        times and ``updated_at`` as the entry into their current phase.
    now : datetime-like
        Reference instant for ``time_in_current_phase``. When omitted the
        dwell time is reported as 0.

    Returns
    -------
    LifecycleReport
        Records plus diagnostics (malformed, inconsistent and
        history-less issue counts). Never raises on bad data.
    """
    history = _group_history(label_history)
    now_ts = normalize_timestamp(now)
    records: list[LifecycleRecord] = []
    malformed_count = inconsistent_count = missing_history = 0

    for issue in issues:
        phase = classify_phase(issue.state, issue.labels, status_rules, keyword_rules)
        events = history.get(issue.iid, [])
        if not events:
            missing_history += 1
        created = normalize_timestamp(issue.created_at)
        closed = normalize_timestamp(issue.closed_at)
        is_closed = issue.state == "closed"

        malformed = created is None or (is_closed and closed is None)
        inconsistent = bool(is_closed and not malformed and closed < created)
        if malformed:
            malformed_count += 1
            logger.debug("Issue #%s is missing required timestamps", issue.iid)
        if inconsistent:
            inconsistent_count += 1
            logger.debug("Issue #%s closed before it was created", issue.iid)

        work_started = _work_started_from_history(events, status_rules, keyword_rules)
        estimation = ACCURATE if work_started is not None else ESTIMATED
        lead = cycle = wait = None

        if is_closed and not malformed:
            if inconsistent:
                lead = cycle = wait = 0
                work_started = created
            else:
                lead = calendar_days_between(created, closed)
                if work_started is None:
                    work_started = created + (closed - created) * estimation_fraction
                work_started = _clamp(work_started, created, closed)
                cycle = calendar_days_between(work_started, closed)
                wait = lead - cycle

        time_in_phase = 0
        if not malformed and now_ts is not None:
            entry = _last_phase_entry(events, phase, status_rules, keyword_rules)
            if entry is None and phase in TERMINAL_PHASES:
                entry = closed
            if entry is None:
                entry = normalize_timestamp(issue.updated_at) or created
            time_in_phase = max(0, calendar_days_between(entry, now_ts) or 0)

        records.append(
            LifecycleRecord(
                iid=issue.iid,
                title=issue.title,
                state=issue.state,
                current_phase=phase,
                time_in_current_phase=time_in_phase,
                estimation=estimation,
                issue=issue,
                lead_time=lead,
                cycle_time=cycle,
                wait_time=wait,
                work_started_at=work_started.to_pydatetime() if work_started is not None else None,
                malformed=malformed,
                inconsistent=inconsistent,
            )
        )

    diagnostics = Diagnostics(
        total=len(records),
        malformed=malformed_count,
        inconsistent=inconsistent_count,
        skipped_from_aggregates=malformed_count,
        missing_history=missing_history,
    )
    if malformed_count or inconsistent_count:
        logger.info(
            "Lifecycle classification: %s issues, %s malformed, %s inconsistent",
            diagnostics.total,
            malformed_count,
            inconsistent_count,
        )
    return LifecycleReport(records=tuple(records), diagnostics=diagnostics)


def _closed_with_times(records: Iterable[LifecycleRecord]) -> list[LifecycleRecord]:
    return [r for r in records if r.state == "closed" and not r.malformed and r.lead_time is not None]


def _avg(values: Sequence[int]) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


def summarize_cycle_time(records: Iterable[LifecycleRecord]) -> CycleTimeSummary:
    """Averages, nearest-rank medians and ranges of lead/cycle/wait over closed issues.

    Malformed closed issues are excluded and counted in ``skipped``. An empty
    input yields an all-zero summary.
    """
    records = list(records)
    closed = _closed_with_times(records)
    skipped = sum(1 for r in records if r.state == "closed") - len(closed)
    if not closed:
        return CycleTimeSummary(skipped=skipped)
    leads = [r.lead_time for r in closed]
    cycles = [r.cycle_time for r in closed]
    waits = [r.wait_time for r in closed]
    accurate = sum(1 for r in closed if r.estimation == ACCURATE)
    return CycleTimeSummary(
        count=len(closed),
        avg_lead=_avg(leads),
        avg_cycle=_avg(cycles),
        avg_wait=_avg(waits),
        median_lead=round(float(nearest_rank_percentile(leads, 0.5)), 1),
        median_cycle=round(float(nearest_rank_percentile(cycles, 0.5)), 1),
        median_wait=round(float(nearest_rank_percentile(waits, 0.5)), 1),
        min_lead=min(leads),
        max_lead=max(leads),
        min_cycle=min(cycles),
        max_cycle=max(cycles),
        accurate_count=accurate,
        estimated_count=len(closed) - accurate,
        skipped=skipped,
    )


def discover_status_labels(
    issues: Iterable[IssueModel],
    status_rules: Sequence[tuple[str, str]] = STATUS_LABEL_RULES,
) -> dict[str, str | None]:
    """Scoped ``status::*`` labels seen in the snapshot with the phase each maps to.

    Unmapped labels map to None so callers can extend their rule table.
    """
    seen: dict[str, str] = {}
    for issue in issues:
        for label in issue.labels:
            key = label.strip().lower()
            if key.startswith("status::") and key not in seen:
                seen[key] = label
    return {seen[key]: match_status_label([key], status_rules) for key in sorted(seen)}
