"""Load team, absence, policy and role-table configuration from YAML (with fallbacks)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .config import ROLE_COMPATIBILITY
from .dates import get_iteration_name
from .mappers import map_absence, map_team_member
from .models import Absence, CapacityPolicy, IterationModel, TeamMember

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "team.yaml"


@dataclass(frozen=True, slots=True)
class TeamConfig:
    team: tuple[TeamMember, ...] = ()
    absences: tuple[Absence, ...] = ()
    policy: CapacityPolicy = field(default_factory=CapacityPolicy)
    role_table: Mapping[str, frozenset[str]] = field(default_factory=lambda: ROLE_COMPATIBILITY)
    # iteration key (id or display name) -> username -> sprint capacity hours
    overrides: Mapping[str, Mapping[str, float]] = field(default_factory=dict)

    def overrides_for(self, iteration: IterationModel | None) -> dict[str, float]:
        """Manual sprint capacity overrides registered for ``iteration``."""
        if iteration is None:
            return {}
        for key in (str(iteration.id), get_iteration_name(iteration)):
            if key in self.overrides:
                return dict(self.overrides[key])
        return {}


def _parse_policy(raw) -> CapacityPolicy:
    if not raw:
        return CapacityPolicy()
    if not isinstance(raw, Mapping):
        raise ValueError("policy must be a mapping of setting -> hours")
    defaults = CapacityPolicy()
    return CapacityPolicy(
        hours_per_story_point=float(raw.get("hours_per_story_point", defaults.hours_per_story_point)),
        default_hours_per_issue=float(raw.get("default_hours_per_issue", defaults.default_hours_per_issue)),
        default_weekly_capacity=float(raw.get("default_weekly_capacity", defaults.default_weekly_capacity)),
    )


def _parse_role_table(raw) -> Mapping[str, frozenset[str]]:
    if not raw:
        return ROLE_COMPATIBILITY
    if not isinstance(raw, Mapping):
        raise ValueError("role_compatibility must be a mapping of role -> list of roles")
    table: dict[str, frozenset[str]] = {}
    for role, targets in raw.items():
        if isinstance(targets, str):
            targets = (targets,)
        elif targets is not None and not isinstance(targets, (list, tuple)):
            raise ValueError(f"role_compatibility[{role!r}] must be a list of roles")
        table[str(role)] = frozenset(str(r) for r in (targets or ()))
    return table


def _parse_overrides(raw) -> dict[str, dict[str, float]]:
    if not raw:
        return {}
    if not isinstance(raw, Mapping):
        raise ValueError("sprint_overrides must map iterations to per-member hours")
    overrides: dict[str, dict[str, float]] = {}
    for key, per_member in raw.items():
        if not isinstance(per_member, Mapping):
            raise ValueError(f"sprint_overrides[{key!r}] must map usernames to hours")
        overrides[str(key)] = {str(user): max(0.0, float(hours)) for user, hours in per_member.items()}
    return overrides


def parse_team_config(data: Mapping | None) -> TeamConfig:
    """Build a ``TeamConfig`` from an already-parsed mapping.

    Raises ``ValueError`` on structurally invalid sections; unusable
    individual team members or absences are skipped.
    """
    data = data or {}
    if not isinstance(data, Mapping):
        raise ValueError("team configuration must be a mapping")
    policy = _parse_policy(data.get("policy"))
    members = (
        map_team_member(raw, policy.default_weekly_capacity)
        for raw in data.get("team") or []
        if isinstance(raw, Mapping)
    )
    team = tuple(m for m in members if m is not None)
    parsed_absences = (map_absence(raw) for raw in data.get("absences") or [] if isinstance(raw, Mapping))
    absences = tuple(a for a in parsed_absences if a is not None)
    return TeamConfig(
        team=team,
        absences=absences,
        policy=policy,
        role_table=_parse_role_table(data.get("role_compatibility")),
        overrides=_parse_overrides(data.get("sprint_overrides")),
    )


def load_team_config(path: str | Path | None = None) -> TeamConfig:
    """Read team configuration from ``path`` (a file or a directory holding ``team.yaml``).

    Missing, unreadable or invalid files yield the default configuration.
    """
    if path is None:
        return TeamConfig()
    yaml_path = Path(path)
    if yaml_path.is_dir():
        yaml_path = yaml_path / CONFIG_FILENAME
    if not yaml_path.exists():
        logger.warning("Team configuration %s not found; using defaults", yaml_path)
        return TeamConfig()
    try:
        data = yaml.safe_load(yaml_path.read_text()) or {}
        return parse_team_config(data)
    except (OSError, yaml.YAMLError, ValueError, TypeError) as exc:
        logger.warning("Invalid team configuration %s (%s); using defaults", yaml_path, exc)
        return TeamConfig()
