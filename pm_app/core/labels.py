"""Label normalization and classification utilities.

Centralized label predicates used across the analytics modules. Rules and
vocabularies come from config.py (PRIORITY_LABEL_ALIASES, BLOCKED_TERMS,
WAITING_TERMS, SPRINT_LABEL_PREFIXES, SYSTEM_LABEL_TERMS).
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .config import (
    BLOCKED_TERMS,
    DEFAULT_PRIORITY,
    PRIORITY_LABEL_ALIASES,
    SPRINT_LABEL_PREFIXES,
    SYSTEM_LABEL_TERMS,
    WAITING_TERMS,
)
from .dates import get_iteration_name


def normalize_labels(labels: Iterable[str] | None) -> tuple[str, ...]:
    """Strip labels and drop case-insensitive duplicates, keeping the first spelling.

    Examples
    --------
    >>> normalize_labels(["Bug", " bug ", "P1", ""])
    ('Bug', 'P1')
    """
    if not labels:
        return ()
    seen: set[str] = set()
    out: list[str] = []
    for label in labels:
        if label is None:
            continue
        text = str(label).strip()
        if not text:
            continue
        key = text.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(text)
    return tuple(out)


def lowered(labels: Iterable[str] | None) -> list[str]:
    return [str(label).strip().lower() for label in labels or () if label]


def get_priority_from_labels(labels: Iterable[str] | None) -> str:
    """Map ``priority::high|medium|low`` and ``P1|P2|P3`` labels to High/Medium/Low.

    The first recognized label wins; unrecognized or missing labels yield
    ``Medium``.
    """
    for label in lowered(labels):
        compact = re.sub(r"\s*::\s*", "::", label)
        if compact in PRIORITY_LABEL_ALIASES:
            return PRIORITY_LABEL_ALIASES[compact]
    return DEFAULT_PRIORITY


def is_high_priority(labels: Iterable[str] | None) -> bool:
    return get_priority_from_labels(labels) == "High"


def _contains_any(labels: Iterable[str] | None, terms: Iterable[str]) -> bool:
    terms = tuple(terms)
    return any(term in label for label in lowered(labels) for term in terms)


def is_blocked(labels: Iterable[str] | None) -> bool:
    """True when any label mentions ``blocker`` or ``blocked``."""
    return _contains_any(labels, BLOCKED_TERMS)


def is_waiting(labels: Iterable[str] | None) -> bool:
    """True when any label marks the work as blocked or waiting on someone else."""
    return _contains_any(labels, WAITING_TERMS)


def get_sprint_from_labels(labels: Iterable[str] | None, iteration=None) -> str | None:
    """Resolve the sprint an issue belongs to.

    An iteration object always wins; otherwise the first label starting with
    ``sprint`` or ``iteration`` (case-insensitive) is returned verbatim.
    """
    if iteration is not None:
        if isinstance(iteration, str):
            return iteration.strip() or None
        return get_iteration_name(iteration)
    for label in labels or ():
        if not label:
            continue
        text = str(label).strip()
        if text.lower().startswith(tuple(SPRINT_LABEL_PREFIXES)):
            return text
    return None


def get_category_from_labels(labels: Iterable[str] | None) -> str:
    """Map type labels (``Type::Bug``, ``feature``...) to a display category; default ``Task``."""
    for label in labels or ():
        lower = str(label).lower()
        if not any(term in lower for term in ("type::", "bug", "feature", "enhancement", "documentation")):
            continue
        if "bug" in lower:
            return "Bug"
        if "feature" in lower:
            return "Feature"
        if "enhancement" in lower:
            return "Enhancement"
        if "documentation" in lower:
            return "Documentation"
        match = re.match(r"type::(.+)", str(label).strip(), flags=re.IGNORECASE)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return "Task"


def get_custom_labels(labels: Iterable[str] | None) -> list[str]:
    """Labels that are not sprint, priority, type or blocker bookkeeping."""
    return [
        label
        for label in labels or ()
        if label and not any(term in str(label).lower() for term in SYSTEM_LABEL_TERMS)
    ]


def format_label(label: str) -> str:
    """Drop the scope of a scoped label (``Type::Bug`` -> ``Bug``)."""
    parts = str(label).split("::")
    return parts[-1].strip() if len(parts) > 1 else str(label)
