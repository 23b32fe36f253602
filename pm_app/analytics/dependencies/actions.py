"""Rule-derived recommended actions for blocked issues."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from pm_app.core.config import STALE_BLOCKER_DAYS
from pm_app.core.dates import calendar_days_between
from pm_app.core.labels import is_blocked, is_high_priority
from pm_app.core.models import BlockedRecord, RecommendedAction

URGENT = "urgent"
NORMAL = "normal"


def recommended_actions(
    record: BlockedRecord,
    open_blockers_of: Mapping[int, Sequence[int]] | None = None,
    now=None,
    stale_days: int = STALE_BLOCKER_DAYS,
) -> tuple[RecommendedAction, ...]:
    """Actions for one blocked issue, urgent ones first.

    ``open_blockers_of`` maps an iid to the open issues blocking it and is
    used to point at upstream blockers. Stale-blocker follow-ups need ``now``.
    """
    open_blockers_of = open_blockers_of or {}
    actions: list[RecommendedAction] = []

    if record.severity == "high":
        for blocker in record.open_blockers:
            if is_blocked(blocker.labels) or is_high_priority(blocker.labels):
                actions.append(
                    RecommendedAction(
                        action=f"Escalate #{blocker.iid}",
                        details=(
                            f'"{blocker.title}" blocks #{record.issue.iid} and {record.blocks_count} '
                            "downstream issue(s). Raise it with leadership and track it in daily standups."
                        ),
                        priority=URGENT,
                    )
                )

    if record.blocks_count > 0:
        actions.append(
            RecommendedAction(
                action="Prioritize unblocking",
                details=f"Unblocking this will unblock {record.blocks_count} other issue(s).",
            )
        )

    for blocker in record.open_blockers:
        if not blocker.assignees:
            actions.append(
                RecommendedAction(
                    action=f"Assign dependency #{blocker.iid}",
                    details=f'"{blocker.title}" has no assignee. Assign it to accelerate unblocking.',
                )
            )

    if now is not None:
        for blocker in record.open_blockers:
            idle = calendar_days_between(blocker.updated_at, now)
            if idle is not None and idle > stale_days:
                actions.append(
                    RecommendedAction(
                        action=f"Follow up on #{blocker.iid}",
                        details=f'"{blocker.title}" has not been updated for {idle} days.',
                    )
                )

    for blocker in record.open_blockers:
        upstream = [iid for iid in open_blockers_of.get(blocker.iid, ()) if iid != record.issue.iid]
        if upstream:
            refs = ", ".join(f"#{iid}" for iid in upstream)
            actions.append(
                RecommendedAction(
                    action=f"Resolve upstream blockers of #{blocker.iid}",
                    details=f"#{blocker.iid} is itself blocked by {refs}; unblock those first.",
                )
            )

    if not actions:
        actions.append(
            RecommendedAction(
                action="Monitor dependencies",
                details="Track progress on open dependencies in daily standups.",
            )
        )
    return tuple(actions)
