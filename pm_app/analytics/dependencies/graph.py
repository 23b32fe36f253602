"""Dependency graph built from issue text references and structured links.

The graph is a node table plus adjacency lists keyed by ``iid``; edges run
``blocker -> blocked``.
"""

from __future__ import annotations

import heapq
import logging
import re
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence

from pm_app.analytics.dependencies.actions import recommended_actions
from pm_app.core.config import (
    BLOCKED_BY_PATTERNS,
    BLOCKS_PATTERNS,
    IMPACT_PER_DEPENDENT,
    IMPACT_PER_OPEN_BLOCKER,
    STALE_BLOCKER_DAYS,
)
from pm_app.core.labels import is_blocked, is_high_priority
from pm_app.core.models import (
    BlockedRecord,
    DependencyEdge,
    DependencyGraph,
    DependencyNode,
    DependencyStats,
    IssueModel,
)

logger = logging.getLogger(__name__)

_BLOCKED_BY_RE = [re.compile(p, re.IGNORECASE) for p in BLOCKED_BY_PATTERNS]
_BLOCKS_RE = [re.compile(p, re.IGNORECASE) for p in BLOCKS_PATTERNS]
SEVERITY_RANK = {"high": 0, "medium": 1, "low": 2}


def extract_references(text: str | None) -> tuple[list[int], list[int]]:
    """Return ``(blocked_by, blocks)`` issue numbers referenced in ``text``.

    Examples
    --------
    >>> extract_references("Blocked by #7, blocks #12")
    ([7], [12])
    """
    if not text:
        return [], []
    blocked_by = sorted({int(m) for rx in _BLOCKED_BY_RE for m in rx.findall(text)})
    blocks = sorted({int(m) for rx in _BLOCKS_RE for m in rx.findall(text)})
    return blocked_by, blocks


def _issue_edges(issue: IssueModel) -> set[tuple[int, int]]:
    blocked_by, blocks = extract_references(issue.description)
    edges = {(n, issue.iid) for n in blocked_by} | {(issue.iid, n) for n in blocks}
    for link in issue.links:
        if link.link_type == "blocks":
            edges.add((issue.iid, link.target_iid))
        elif link.link_type == "is_blocked_by":
            edges.add((link.target_iid, issue.iid))
    return edges


def strongly_connected_components(
    nodes: Iterable[int],
    adjacency: Mapping[int, Sequence[int]],
) -> list[tuple[int, ...]]:
    """Tarjan's algorithm (iterative); every node appears in exactly one component."""
    index: dict[int, int] = {}
    low: dict[int, int] = {}
    stack: list[int] = []
    on_stack: set[int] = set()
    components: list[tuple[int, ...]] = []
    counter = 0

    for root in sorted(nodes):
        if root in index:
            continue
        index[root] = low[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        work = [(root, iter(adjacency.get(root, ())))]
        while work:
            node, successors = work[-1]
            descended = False
            for nxt in successors:
                if nxt not in index:
                    index[nxt] = low[nxt] = counter
                    counter += 1
                    stack.append(nxt)
                    on_stack.add(nxt)
                    work.append((nxt, iter(adjacency.get(nxt, ()))))
                    descended = True
                    break
                if nxt in on_stack:
                    low[node] = min(low[node], index[nxt])
            if descended:
                continue
            work.pop()
            if work:
                parent = work[-1][0]
                low[parent] = min(low[parent], low[node])
            if low[node] == index[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                components.append(tuple(sorted(component)))
    return components


def _severity(issue: IssueModel, open_blockers: Sequence[IssueModel], dependents: Sequence[IssueModel]) -> str:
    critical_blocker = any(is_blocked(b.labels) or is_high_priority(b.labels) for b in open_blockers)
    if critical_blocker and dependents:
        return "high"
    if len(open_blockers) >= 2:
        return "medium"
    return "low"


def build_dependency_graph(
    issues: Iterable[IssueModel],
    *,
    now=None,
    stale_days: int = STALE_BLOCKER_DAYS,
) -> DependencyGraph:
    """Build the blocker graph and derive blocked records, cycles and stats.

    References to issues outside the snapshot and self references are
    dropped. Duplicate edges collapse; edges are sorted. Blocked records are
    produced for open issues with at least one open blocker, ordered by
    severity, then impact (descending), then iid.
    """
    by_iid: dict[int, IssueModel] = {}
    for issue in issues:
        by_iid.setdefault(issue.iid, issue)

    edge_set: set[tuple[int, int]] = set()
    for issue in by_iid.values():
        for blocker, blocked in _issue_edges(issue):
            if blocker == blocked:
                continue
            if blocker not in by_iid or blocked not in by_iid:
                logger.debug("Dropping dependency #%s -> #%s outside the snapshot", blocker, blocked)
                continue
            edge_set.add((blocker, blocked))
    edges = tuple(DependencyEdge(blocker=a, blocked=b) for a, b in sorted(edge_set))

    successors: defaultdict[int, list[int]] = defaultdict(list)
    predecessors: defaultdict[int, list[int]] = defaultdict(list)
    for edge in edges:
        successors[edge.blocker].append(edge.blocked)
        predecessors[edge.blocked].append(edge.blocker)
    adjacency = {iid: tuple(targets) for iid, targets in sorted(successors.items())}
    open_blockers_of = {
        iid: tuple(b for b in blockers if by_iid[b].is_open) for iid, blockers in predecessors.items()
    }

    blocked: list[BlockedRecord] = []
    for iid in sorted(predecessors):
        issue = by_iid[iid]
        if not issue.is_open:
            continue
        blockers = [by_iid[b] for b in predecessors[iid]]
        open_blockers = [b for b in blockers if b.is_open]
        if not open_blockers:
            continue
        dependents = [by_iid[d] for d in successors.get(iid, ())]
        record = BlockedRecord(
            issue=issue,
            open_blockers=tuple(open_blockers),
            closed_blockers=tuple(b for b in blockers if not b.is_open),
            blocks=tuple(dependents),
            severity=_severity(issue, open_blockers, dependents),
            impact=len(open_blockers) * IMPACT_PER_OPEN_BLOCKER + len(dependents) * IMPACT_PER_DEPENDENT,
        )
        actions = recommended_actions(record, open_blockers_of, now=now, stale_days=stale_days)
        blocked.append(
            BlockedRecord(
                issue=record.issue,
                open_blockers=record.open_blockers,
                closed_blockers=record.closed_blockers,
                blocks=record.blocks,
                severity=record.severity,
                impact=record.impact,
                actions=actions,
            )
        )
    blocked.sort(key=lambda r: (SEVERITY_RANK[r.severity], -r.impact, r.issue.iid))

    cycles = tuple((a, b) for a, b in sorted(edge_set) if a < b and (b, a) in edge_set)
    components = strongly_connected_components(by_iid, adjacency)
    strongly_connected = tuple(sorted(c for c in components if len(c) > 1))
    if strongly_connected:
        logger.info("Dependency graph has %s cyclic component(s)", len(strongly_connected))

    involved = {e.blocker for e in edges} | {e.blocked for e in edges}
    stats = DependencyStats(
        issues_with_dependencies=len(involved),
        blocked_issues=len(blocked),
        open_dependency_edges=sum(1 for e in edges if by_iid[e.blocker].is_open and by_iid[e.blocked].is_open),
        high_severity=sum(1 for r in blocked if r.severity == "high"),
        medium_severity=sum(1 for r in blocked if r.severity == "medium"),
        cycles=len(cycles),
    )
    nodes = {
        iid: DependencyNode(iid=iid, title=issue.title, state=issue.state, labels=issue.labels)
        for iid, issue in sorted(by_iid.items())
    }
    return DependencyGraph(
        nodes=nodes,
        edges=edges,
        adjacency=adjacency,
        blocked=tuple(blocked),
        cycles=cycles,
        strongly_connected=strongly_connected,
        stats=stats,
    )


def critical_path(graph: DependencyGraph) -> tuple[int, ...]:
    """Longest blocker chain (``blocker -> ... -> blocked``) over the acyclic part of the graph.

    Nodes inside cyclic components are ignored. Ties prefer the chain that
    ends at, and passes through, smaller iids. Returns ``()`` when there are
    no edges outside cycles.
    """
    cyclic = {iid for component in graph.strongly_connected for iid in component}
    edges = [e for e in graph.edges if e.blocker not in cyclic and e.blocked not in cyclic]
    if not edges:
        return ()
    successors: defaultdict[int, list[int]] = defaultdict(list)
    indegree: dict[int, int] = {}
    for e in edges:
        successors[e.blocker].append(e.blocked)
        indegree.setdefault(e.blocker, 0)
        indegree[e.blocked] = indegree.get(e.blocked, 0) + 1

    length = {iid: 0 for iid in indegree}
    previous: dict[int, int | None] = {iid: None for iid in indegree}
    ready = [iid for iid, deg in indegree.items() if deg == 0]
    heapq.heapify(ready)
    while ready:
        node = heapq.heappop(ready)
        for nxt in successors.get(node, ()):
            if length[node] + 1 > length[nxt]:
                length[nxt] = length[node] + 1
                previous[nxt] = node
            indegree[nxt] -= 1
            if indegree[nxt] == 0:
                heapq.heappush(ready, nxt)

    end = min(length, key=lambda iid: (-length[iid], iid))
    path = [end]
    while previous[path[-1]] is not None:
        path.append(previous[path[-1]])
    return tuple(reversed(path))
