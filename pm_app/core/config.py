"""Central configuration, constants, and rule tables for the analytics engine."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from types import MappingProxyType

# =============================================================================
# Time Settings
# =============================================================================
TIMEZONE = "UTC"
DEFAULT_SPRINT_WORKING_DAYS: int = 10  # Used when an iteration has no dates
AT_RISK_WINDOW_DAYS: int = 7  # Open issues due within this window are at risk

# =============================================================================
# Lifecycle Phases
# =============================================================================
# Canonical declaration order; distributions and reports follow it.
PHASE_ORDER: Sequence[str] = (
    "backlog",
    "discovery",
    "analysis",
    "refinement",
    "ready",
    "in-progress",
    "in-review",
    "in-testing",
    "awaiting-release",
    "released",
    "done",
    "cancelled",
)

PHASE_LABELS: Mapping[str, str] = MappingProxyType(
    {
        "backlog": "Backlog",
        "discovery": "Discovery",
        "analysis": "Analysis",
        "refinement": "Refinement",
        "ready": "Ready for Work",
        "in-progress": "In Progress",
        "in-review": "In Review",
        "in-testing": "In Testing",
        "awaiting-release": "Awaiting Release",
        "released": "Released",
        "done": "Done",
        "cancelled": "Cancelled",
    }
)

TERMINAL_PHASES: frozenset[str] = frozenset({"released", "done", "cancelled"})

# Phases whose entry marks the start of active work (cycle time origin)
WORK_STARTED_PHASES: frozenset[str] = frozenset({"in-progress", "in-review", "in-testing", "awaiting-release"})

# Scoped status labels, highest priority first. Exact matches win over
# substring matches; within each pass the first rule wins.
STATUS_LABEL_RULES: Sequence[tuple[str, str]] = (
    ("status::awaiting release", "awaiting-release"),
    ("status::in testing", "in-testing"),
    ("status::in review", "in-review"),
    ("status::in progress", "in-progress"),
    ("status::ready for work", "ready"),
    ("status::awaiting refinement", "refinement"),
    ("status::in analysis", "analysis"),
    ("status::in discovery", "discovery"),
)

# Fallback keywords matched as substrings of any label (open issues)
PROGRESS_KEYWORD_RULES: Sequence[tuple[str, str]] = (
    ("wip", "in-progress"),
    ("progress", "in-progress"),
    ("review", "in-testing"),
    ("testing", "in-testing"),
)

CANCELLATION_TERMS: Sequence[str] = ("cancelled", "canceled", "rejected", "wont fix", "won't fix")
RELEASE_TERMS: Sequence[str] = ("released", "awaiting release")

# Fraction of lead time assumed to be waiting when no label history exists
ESTIMATED_WAIT_FRACTION: float = 0.2

# =============================================================================
# Bottleneck Detection
# =============================================================================
BOTTLENECK_COUNT_THRESHOLD: int = 5
BOTTLENECK_DAYS_THRESHOLD: float = 7.0
BOTTLENECK_HIGH_FACTOR: float = 1.5

# Rule-derived root causes and actions keyed by phase
BOTTLENECK_PLAYBOOK: Mapping[str, tuple[tuple[str, str], ...]] = MappingProxyType(
    {
        "in-testing": (
            ("QA backlog or limited testing capacity", "Request additional QA resources or enable parallel testing"),
            ("Issues queue up waiting for validation", "Prioritize the testing queue and auto-approve low-risk changes"),
        ),
        "in-review": (
            ("Code review backlog or slow review process", "Assign dedicated reviewers and set a 24-48 hour review SLA"),
        ),
        "awaiting-release": (
            ("Infrequent deployment schedule", "Enable more frequent deployments or continuous delivery"),
            ("Finished work waits for a release window", "Deploy smaller batches more often"),
        ),
        "in-progress": (
            ("Too much work in progress", "Implement WIP limits and focus on finishing over starting"),
            ("Issues are more complex than estimated", "Break down large issues and revisit estimation"),
        ),
        "refinement": (
            ("Refinement sessions cannot keep up with intake", "Schedule additional backlog refinement sessions"),
        ),
        "ready": (
            ("Ready work is not being pulled", "Check team capacity and pull ready items at sprint planning"),
        ),
        "analysis": (
            ("Analysis is blocked on missing information", "Timebox analysis and escalate open questions to stakeholders"),
        ),
        "discovery": (
            ("Discovery lacks stakeholder availability", "Book stakeholder sessions and define exit criteria"),
        ),
        "backlog": (
            ("Intake exceeds throughput", "Prune or re-prioritize the backlog"),
        ),
    }
)

# =============================================================================
# Lead Time Histogram
# =============================================================================
LEAD_TIME_BUCKET_EDGES: Sequence[float] = (-1, 7, 14, 30, 60, 90, float("inf"))
LEAD_TIME_BUCKET_LABELS: Sequence[str] = ("0-7 days", "8-14 days", "15-30 days", "31-60 days", "61-90 days", "90+ days")

# =============================================================================
# Priority Configuration
# =============================================================================
DEFAULT_PRIORITY = "Medium"

PRIORITY_LABEL_ALIASES: Mapping[str, str] = MappingProxyType(
    {
        "priority::high": "High",
        "priority::medium": "Medium",
        "priority::low": "Low",
        "p1": "High",
        "p2": "Medium",
        "p3": "Low",
    }
)

BLOCKED_TERMS: Sequence[str] = ("blocker", "blocked")
WAITING_TERMS: Sequence[str] = ("blocked", "waiting")
SPRINT_LABEL_PREFIXES: Sequence[str] = ("sprint", "iteration")
SYSTEM_LABEL_TERMS: Sequence[str] = ("sprint", "priority", "type::", "blocker", "blocked", "p1", "p2", "p3")

# =============================================================================
# Capacity Configuration
# =============================================================================
DEFAULT_HOURS_PER_STORY_POINT: float = 8.0
DEFAULT_HOURS_PER_ISSUE: float = 4.0
DEFAULT_WEEKLY_CAPACITY: float = 40.0
WORKING_DAYS_PER_WEEK: int = 5

# (status, lower bound %) checked in order after the zero-capacity case
CAPACITY_STATUS_BANDS: Sequence[tuple[str, float]] = (
    ("Overloaded", 100.0),
    ("At Capacity", 80.0),
    ("Busy", 60.0),
)
NOT_AVAILABLE_STATUS = "Not Available"
AVAILABLE_STATUS = "Available"

MULTI_EPIC_LIMIT: int = 2
WIP_LIMIT: int = 8
REBALANCE_FRACTION: float = 0.3
REBALANCE_TARGET_MAX_UTILIZATION: float = 80.0
UNDERUTILIZED_THRESHOLD: float = 50.0
TEAM_CRITICAL_UTILIZATION: float = 85.0

ATTRIBUTION_MODES: frozenset[str] = frozenset({"full", "split"})

DEFAULT_ROLES: Sequence[str] = (
    "Developer",
    "Data Engineer",
    "Business Analyst",
    "Product Owner",
    "QA Engineer",
    "DevOps Engineer",
    "SRE",
    "Scrum Master",
    "Initiative Manager",
)

_TECHNICAL_ROLES = frozenset({"Developer", "Data Engineer", "SRE", "DevOps Engineer", "QA Engineer"})
_ANALYSIS_ROLES = frozenset({"Business Analyst", "Product Owner", "Initiative Manager"})

# role -> roles that may take over its work. The relation is not required to
# be symmetric; custom tables may narrow either direction.
ROLE_COMPATIBILITY: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        **{role: _TECHNICAL_ROLES for role in _TECHNICAL_ROLES},
        **{role: _ANALYSIS_ROLES for role in _ANALYSIS_ROLES},
        "Scrum Master": frozenset({"Scrum Master"}),
    }
)

# =============================================================================
# Workflow Intelligence
# =============================================================================
# key -> (name, order, description, indicators)
WORKFLOW_PHASES: Mapping[str, tuple[str, int, str, tuple[str, ...]]] = MappingProxyType(
    {
        "DISCOVERY": (
            "Discovery",
            1,
            "Stakeholder conversations, requirement gathering",
            ("requirement", "stakeholder", "analysis", "research", "discovery", "explore", "investigate"),
        ),
        "ANALYSIS": (
            "Analysis",
            2,
            "Technical analysis, data assessment, solution design",
            ("analyze", "design", "architect", "assess", "evaluate", "data analysis", "technical design"),
        ),
        "PLANNING": (
            "Planning",
            3,
            "Sprint planning, task breakdown, estimation",
            ("plan", "estimate", "breakdown", "story point", "sprint planning"),
        ),
        "IMPLEMENTATION": (
            "Implementation",
            4,
            "Development, coding, building features",
            ("implement", "develop", "code", "build", "create", "feature", "fix", "refactor"),
        ),
        "TESTING": (
            "Testing",
            5,
            "Quality assurance, testing, validation",
            ("test", "qa", "validate", "verify", "quality", "bug", "defect"),
        ),
        "DEPLOYMENT": (
            "Deployment",
            6,
            "Release, deployment, monitoring",
            ("deploy", "release", "rollout", "production", "monitoring", "ci/cd"),
        ),
    }
)
DEFAULT_WORKFLOW_PHASE = "IMPLEMENTATION"
EARLY_SPRINT_TERMS: Sequence[str] = ("analysis", "discovery", "requirement")

# role -> (primary, secondary, cannot_do)
ROLE_WORKFLOW_CAPABILITIES: Mapping[str, tuple[tuple[str, ...], tuple[str, ...], tuple[str, ...]]] = MappingProxyType(
    {
        "Developer": (("IMPLEMENTATION", "TESTING"), ("ANALYSIS", "PLANNING"), ("DISCOVERY",)),
        "Data Engineer": (("IMPLEMENTATION", "ANALYSIS"), ("TESTING", "DEPLOYMENT"), ("DISCOVERY",)),
        "Business Analyst": (("DISCOVERY", "ANALYSIS"), ("PLANNING", "TESTING"), ("IMPLEMENTATION", "DEPLOYMENT")),
        "Product Owner": (("DISCOVERY", "PLANNING"), ("ANALYSIS", "TESTING"), ("IMPLEMENTATION", "DEPLOYMENT")),
        "Initiative Manager": (("DISCOVERY",), ("ANALYSIS", "PLANNING"), ("IMPLEMENTATION", "TESTING", "DEPLOYMENT")),
        "Scrum Master": (("PLANNING",), ("DISCOVERY",), ("IMPLEMENTATION", "ANALYSIS", "TESTING", "DEPLOYMENT")),
        "QA Engineer": (("TESTING",), ("IMPLEMENTATION", "DEPLOYMENT"), ("DISCOVERY", "ANALYSIS")),
        "DevOps Engineer": (("DEPLOYMENT", "IMPLEMENTATION"), ("TESTING",), ("DISCOVERY", "ANALYSIS")),
        "SRE": (("DEPLOYMENT", "IMPLEMENTATION"), ("TESTING",), ("DISCOVERY", "ANALYSIS")),
    }
)

PROACTIVE_UTILIZATION_LIMIT: float = 60.0
PREPARE_NEXT_PHASE_LIMIT: float = 50.0
CROSS_TRAINING_LIMIT: float = 40.0
KNOWLEDGE_SHARING_LIMIT: float = 50.0
OVERLOADED_PEER_THRESHOLD: float = 80.0
BACKLOG_SUGGESTION_LIMIT: int = 5
SUGGESTED_WORK_LIMIT: int = 3

# =============================================================================
# Dependency Detection
# =============================================================================
# Phrases where the referenced issue blocks the issue containing the text
BLOCKED_BY_PATTERNS: Sequence[str] = (
    r"blocked\s+by\s+#(\d+)",
    r"depends\s+on\s+#(\d+)",
    r"requires\s+#(\d+)",
    r"needs\s+#(\d+)",
    r"waiting\s+for\s+#(\d+)",
)
# Phrases where the issue containing the text blocks the referenced issue
BLOCKS_PATTERNS: Sequence[str] = (r"(?<![\w-])blocks\s+#(\d+)",)

STALE_BLOCKER_DAYS: int = 14
IMPACT_PER_OPEN_BLOCKER: int = 10
IMPACT_PER_DEPENDENT: int = 20
