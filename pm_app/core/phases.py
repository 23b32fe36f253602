"""Phase classification helpers shared by the lifecycle, capacity and workflow modules.

Classification is a pipeline of ordered rules rather than a class
hierarchy: each rule table in config.py is consulted in priority order and
the first hit wins.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .config import (
    CANCELLATION_TERMS,
    PROGRESS_KEYWORD_RULES,
    RELEASE_TERMS,
    STATUS_LABEL_RULES,
)
from .labels import is_waiting, lowered
from .models import IssueModel


def match_status_label(
    labels: Iterable[str] | None,
    rules: Sequence[tuple[str, str]] = STATUS_LABEL_RULES,
) -> str | None:
    """Return the phase for the best matching scoped status label.

    An exact (case-insensitive) match on any label beats a substring match;
    within each pass rules are tried in priority order.
    """
    labels_lower = lowered(labels)
    if not labels_lower:
        return None
    label_set = set(labels_lower)
    for pattern, phase in rules:
        if pattern in label_set:
            return phase
    for pattern, phase in rules:
        if any(pattern in label for label in labels_lower):
            return phase
    return None


def match_progress_keyword(
    labels: Iterable[str] | None,
    rules: Sequence[tuple[str, str]] = PROGRESS_KEYWORD_RULES,
) -> str | None:
    labels_lower = lowered(labels)
    for keyword, phase in rules:
        if any(keyword in label for label in labels_lower):
            return phase
    return None


def classify_phase(
    state: str,
    labels: Iterable[str] | None,
    status_rules: Sequence[tuple[str, str]] = STATUS_LABEL_RULES,
    keyword_rules: Sequence[tuple[str, str]] = PROGRESS_KEYWORD_RULES,
) -> str:
    """Classify an issue into exactly one lifecycle phase from its state and labels.

    Closed issues are ``cancelled``, ``released`` or ``done``. Open issues use
    scoped status labels, then progress keywords, then fall back to
    ``backlog``.
    """
    labels_lower = lowered(labels)
    if state == "closed":
        if any(term in label for label in labels_lower for term in CANCELLATION_TERMS):
            return "cancelled"
        if any(term in label for label in labels_lower for term in RELEASE_TERMS):
            return "released"
        return "done"
    return (
        match_status_label(labels_lower, status_rules)
        or match_progress_keyword(labels_lower, keyword_rules)
        or "backlog"
    )


def classify_issue_phase(issue: IssueModel, **rules) -> str:
    return classify_phase(issue.state, issue.labels, **rules)


def phase_for_label(
    label: str,
    status_rules: Sequence[tuple[str, str]] = STATUS_LABEL_RULES,
    keyword_rules: Sequence[tuple[str, str]] = PROGRESS_KEYWORD_RULES,
) -> str | None:
    """Phase that adding this single label moves an open issue into, if any."""
    return match_status_label([label], status_rules) or match_progress_keyword([label], keyword_rules)


def issue_text(issue: IssueModel) -> str:
    """Lowercased ``title + description + labels`` blob for keyword matching."""
    labels = " ".join(lowered(issue.labels))
    return f"{(issue.title or '').lower()} {(issue.description or '').lower()} {labels}"


def count_indicator_hits(text: str, indicators: Iterable[str]) -> int:
    """Number of distinct indicators present in ``text``."""
    return sum(1 for indicator in indicators if indicator.lower() in text)


def is_stalled(issue: IssueModel) -> bool:
    """Open work held up by a blocked or waiting label."""
    return issue.is_open and is_waiting(issue.labels)
