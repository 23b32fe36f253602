from datetime import date

import pytest

from pm_app.core.config import ROLE_COMPATIBILITY
from pm_app.core.models import CapacityPolicy, IterationModel
from pm_app.core.team_config import TeamConfig, load_team_config, parse_team_config

YAML_TEXT = """
policy:
  hours_per_story_point: 6
  default_hours_per_issue: 3
team:
  - username: alice
    role: Developer
    default_capacity: 32
  - username: bob
    role: QA Engineer
  - name: missing username
absences:
  - username: alice
    start_date: 2024-03-11
    end_date: 2024-03-13
    reason: PTO
  - username: bob
    start_date: 2024-03-20
    end_date: 2024-03-10
role_compatibility:
  Developer: [Developer, Data Engineer]
sprint_overrides:
  "9":
    alice: 50
"""


def test_load_team_config(tmp_path):
    path = tmp_path / "team.yaml"
    path.write_text(YAML_TEXT)
    config = load_team_config(path)
    assert config.policy.hours_per_story_point == 6
    assert config.policy.default_weekly_capacity == 40
    assert [m.username for m in config.team] == ["alice", "bob"]
    assert config.team[0].default_capacity == 32
    assert config.team[1].default_capacity == 40
    assert len(config.absences) == 1
    assert config.absences[0].start_date == date(2024, 3, 11)
    assert config.role_table["Developer"] == frozenset({"Developer", "Data Engineer"})
    assert config.overrides_for(IterationModel(id=9)) == {"alice": 50.0}
    assert config.overrides_for(IterationModel(id=10)) == {}


def test_directory_path_and_missing_file(tmp_path):
    assert load_team_config(tmp_path).team == ()
    (tmp_path / "team.yaml").write_text("team:\n  - username: carol\n")
    assert [m.username for m in load_team_config(tmp_path).team] == ["carol"]


def test_invalid_file_falls_back_to_defaults(tmp_path, caplog):
    path = tmp_path / "team.yaml"
    path.write_text("policy:\n  hours_per_story_point: 0\n")
    config = load_team_config(path)
    assert config.policy == CapacityPolicy()
    assert config.role_table is ROLE_COMPATIBILITY
    assert "using defaults" in caplog.text

    path.write_text("team: [unclosed")
    assert load_team_config(path).team == ()


def test_policy_rejects_non_positive_values():
    with pytest.raises(ValueError):
        CapacityPolicy(hours_per_story_point=-1)
    with pytest.raises(ValueError):
        parse_team_config({"role_compatibility": ["Developer"]})


def test_default_config_uses_builtin_role_table():
    config = TeamConfig()
    assert config.role_table is ROLE_COMPATIBILITY
    assert config.overrides == {}
    assert config.policy == CapacityPolicy()


@pytest.mark.parametrize(
    "text",
    [
        "policy: [8, 4, 40]\n",
        "sprint_overrides: [alice]\n",
        "role_compatibility:\n  Developer: {QA Engineer: true}\n",
    ],
)
def test_wrongly_shaped_sections_fall_back_to_defaults(tmp_path, caplog, text):
    path = tmp_path / "team.yaml"
    path.write_text("team:\n  - username: alice\n" + text)
    config = load_team_config(path)
    assert config.team == ()
    assert config.policy == CapacityPolicy()
    assert config.role_table is ROLE_COMPATIBILITY
    assert "using defaults" in caplog.text


def test_scalar_role_target_is_a_single_role():
    config = parse_team_config({"role_compatibility": {"Developer": "Developer", "Designer": None}})
    assert config.role_table["Developer"] == frozenset({"Developer"})
    assert config.role_table["Designer"] == frozenset()
