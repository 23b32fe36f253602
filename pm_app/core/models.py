"""Domain data models for tracker snapshots, configuration, and derived analytics records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from .config import DEFAULT_HOURS_PER_ISSUE, DEFAULT_HOURS_PER_STORY_POINT, DEFAULT_WEEKLY_CAPACITY

# =============================================================================
# Snapshot entities
# =============================================================================


@dataclass(frozen=True, slots=True)
class UserModel:
    username: str
    name: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True, slots=True)
class MilestoneModel:
    id: int
    title: str
    state: str = "active"
    start_date: date | None = None
    due_date: date | None = None


@dataclass(frozen=True, slots=True)
class EpicModel:
    id: int
    title: str
    start_date: date | None = None
    end_date: date | None = None
    issue_iids: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class IterationModel:
    id: int
    iid: int | None = None
    title: str | None = None
    start_date: date | None = None
    due_date: date | None = None


@dataclass(frozen=True, slots=True)
class IssueLink:
    """Structured link to another issue; ``link_type`` is blocks, is_blocked_by or relates_to."""

    target_iid: int
    link_type: str


@dataclass(frozen=True, slots=True)
class IssueModel:
    iid: int
    title: str
    state: str
    created_at: datetime | None
    updated_at: datetime | None
    closed_at: datetime | None = None
    labels: tuple[str, ...] = ()
    assignees: tuple[UserModel, ...] = ()
    epic: EpicModel | None = None
    milestone: MilestoneModel | None = None
    iteration: IterationModel | None = None
    weight: int | None = None
    due_date: date | None = None
    description: str | None = None
    web_url: str | None = None
    links: tuple[IssueLink, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.state == "opened"

    @property
    def is_closed(self) -> bool:
        return self.state == "closed"

    @property
    def assignee_usernames(self) -> tuple[str, ...]:
        return tuple(a.username for a in self.assignees)


@dataclass(frozen=True, slots=True)
class LabelEvent:
    issue_iid: int
    action: str
    label: str
    at: datetime


# =============================================================================
# Configuration entities
# =============================================================================


@dataclass(frozen=True, slots=True)
class TeamMember:
    username: str
    role: str = "Developer"
    default_capacity: float = DEFAULT_WEEKLY_CAPACITY
    name: str | None = None
    gpn: str | None = None
    t_number: str | None = None


@dataclass(frozen=True, slots=True)
class Absence:
    """Absence over the half-open date interval ``[start_date, end_date)``."""

    username: str
    start_date: date
    end_date: date
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class CapacityPolicy:
    hours_per_story_point: float = DEFAULT_HOURS_PER_STORY_POINT
    default_hours_per_issue: float = DEFAULT_HOURS_PER_ISSUE
    default_weekly_capacity: float = DEFAULT_WEEKLY_CAPACITY

    def __post_init__(self) -> None:
        for name in ("hours_per_story_point", "default_hours_per_issue", "default_weekly_capacity"):
            value = getattr(self, name)
            if value is None or value <= 0:
                raise ValueError(f"CapacityPolicy.{name} must be strictly positive, got {value!r}")


# =============================================================================
# Lifecycle records
# =============================================================================


@dataclass(frozen=True, slots=True)
class LifecycleRecord:
    iid: int
    title: str
    state: str
    current_phase: str
    time_in_current_phase: int
    estimation: str
    issue: IssueModel
    lead_time: int | None = None
    cycle_time: int | None = None
    wait_time: int | None = None
    work_started_at: datetime | None = None
    malformed: bool = False
    inconsistent: bool = False


@dataclass(frozen=True, slots=True)
class Diagnostics:
    total: int = 0
    malformed: int = 0
    inconsistent: int = 0
    skipped_from_aggregates: int = 0
    missing_history: int = 0


@dataclass(frozen=True, slots=True)
class LifecycleReport:
    """Lifecycle records plus the diagnostics gathered while deriving them.

    Iterating the report yields the records, so it can be handed to any
    function that expects a sequence of ``LifecycleRecord``.
    """

    records: tuple[LifecycleRecord, ...]
    diagnostics: Diagnostics

    def __iter__(self):
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True, slots=True)
class CycleTimeSummary:
    count: int = 0
    avg_lead: float = 0.0
    avg_cycle: float = 0.0
    avg_wait: float = 0.0
    median_lead: float = 0.0
    median_cycle: float = 0.0
    median_wait: float = 0.0
    min_lead: int = 0
    max_lead: int = 0
    min_cycle: int = 0
    max_cycle: int = 0
    accurate_count: int = 0
    estimated_count: int = 0
    skipped: int = 0


@dataclass(frozen=True, slots=True)
class ControlChartPoint:
    iid: int
    title: str
    web_url: str | None
    value: int
    date: datetime
    is_outlier: bool = False


@dataclass(frozen=True, slots=True)
class ControlChart:
    metric: str
    data_points: tuple[ControlChartPoint, ...] = ()
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0
    p85: float = 0.0
    p95: float = 0.0
    ucl: float = 0.0
    lcl: float = 0.0

    @property
    def outliers(self) -> tuple[ControlChartPoint, ...]:
        return tuple(p for p in self.data_points if p.is_outlier)


@dataclass(frozen=True, slots=True)
class BottleneckFinding:
    phase: str
    count: int
    avg_time_in_phase: float
    severity: str
    is_bottleneck: bool
    reason: str
    root_causes: tuple[str, ...] = ()
    recommended_actions: tuple[str, ...] = ()


# =============================================================================
# Capacity records
# =============================================================================


@dataclass(frozen=True, slots=True)
class AbsenceImpact:
    sprint_working_days: int
    sprint_weeks: float
    sprint_default_capacity: float
    hours_lost: float
    working_days_lost: int
    auto_adjusted_capacity: float
    final_capacity: float
    absences: tuple[Absence, ...] = ()


@dataclass(frozen=True, slots=True)
class RootCause:
    severity: str
    category: str
    description: str
    impact: str
    action_title: str
    action_description: str
    action_priority: str = "medium"
    excess_hours: float = 0.0


@dataclass(frozen=True, slots=True)
class MemberCapacity:
    username: str
    name: str | None
    role: str
    default_capacity: float
    weekly_capacity: float
    allocated_hours: float
    available_hours: float
    utilization: float
    status: str
    open_issues: tuple[IssueModel, ...] = ()
    total_weight: int = 0
    weeks_to_complete: int = 0
    is_sprint_adjusted: bool = False
    absence: AbsenceImpact | None = None
    root_causes: tuple[RootCause, ...] = ()
    gpn: str | None = None
    t_number: str | None = None

    @property
    def open_issue_count(self) -> int:
        return len(self.open_issues)


@dataclass(frozen=True, slots=True)
class TeamMetrics:
    total_capacity: float = 0.0
    total_allocated: float = 0.0
    total_available: float = 0.0
    team_utilization: float = 0.0
    overloaded_members: int = 0
    at_capacity_members: int = 0
    avg_utilization: float = 0.0


@dataclass(frozen=True, slots=True)
class CapacityResult:
    members: tuple[MemberCapacity, ...]
    team_metrics: TeamMetrics
    unassigned_count: int
    total_issues: int
    policy: CapacityPolicy
    attribution: str = "full"
    iteration: IterationModel | None = None


@dataclass(frozen=True, slots=True)
class CapacityFinding:
    severity: str
    type: str
    description: str
    affected_members: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Proposal:
    from_username: str
    from_role: str
    to_username: str | None
    to_role: str | None
    issues: tuple[IssueModel, ...]
    issue_count: int
    hours: float
    current_utilization: float
    projected_utilization: float
    target_projected_utilization: float | None
    impact: str
    compatibility_reason: str
    warning: bool = False
    required_roles: tuple[str, ...] = ()


# =============================================================================
# Dependency records
# =============================================================================


@dataclass(frozen=True, slots=True, order=True)
class DependencyEdge:
    blocker: int
    blocked: int


@dataclass(frozen=True, slots=True)
class DependencyNode:
    iid: int
    title: str
    state: str
    labels: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RecommendedAction:
    action: str
    details: str
    priority: str = "normal"


@dataclass(frozen=True, slots=True)
class BlockedRecord:
    issue: IssueModel
    open_blockers: tuple[IssueModel, ...]
    closed_blockers: tuple[IssueModel, ...]
    blocks: tuple[IssueModel, ...]
    severity: str
    impact: int
    actions: tuple[RecommendedAction, ...] = ()

    @property
    def blocker_count(self) -> int:
        return len(self.open_blockers)

    @property
    def blocks_count(self) -> int:
        return len(self.blocks)


@dataclass(frozen=True, slots=True)
class DependencyStats:
    issues_with_dependencies: int = 0
    blocked_issues: int = 0
    open_dependency_edges: int = 0
    high_severity: int = 0
    medium_severity: int = 0
    cycles: int = 0


@dataclass(frozen=True, slots=True)
class DependencyGraph:
    nodes: dict[int, DependencyNode]
    edges: tuple[DependencyEdge, ...]
    adjacency: dict[int, tuple[int, ...]]
    blocked: tuple[BlockedRecord, ...]
    cycles: tuple[tuple[int, int], ...]
    strongly_connected: tuple[tuple[int, ...], ...]
    stats: DependencyStats


# =============================================================================
# Workflow records
# =============================================================================


@dataclass(frozen=True, slots=True)
class SprintPhase:
    key: str
    phase: str
    order: int
    description: str
    completion_percent: float
    scores: dict[str, int] = field(default_factory=dict)
    issue_count: int = 0


@dataclass(frozen=True, slots=True)
class BacklogMatch:
    issue: IssueModel
    phase: str
    match_score: int
    is_primary: bool
    reason: str


@dataclass(frozen=True, slots=True)
class Recommendation:
    username: str
    type: str
    priority: str
    title: str
    description: str
    impact: str
    suggested_work: tuple[BacklogMatch, ...] = ()


@dataclass(frozen=True, slots=True)
class WorkflowEfficiency:
    phase: str
    efficiency_score: int
    optimal: int
    suboptimal: int
    mismatched: int
    recommendations: tuple[dict[str, Any], ...] = ()
