from datetime import datetime

import pytz

from pm_app.analytics.capacity.rebalancing import compatible_roles, rebalancing_proposals
from pm_app.analytics.capacity.workload import compute_capacity
from pm_app.core.config import ROLE_COMPATIBILITY
from pm_app.core.models import CapacityPolicy, IssueModel, TeamMember, UserModel

NOW = datetime(2024, 3, 13, 9, 0, tzinfo=pytz.UTC)
POLICY = CapacityPolicy()


def _issue(iid, username, weight=None):
    return IssueModel(
        iid=iid,
        title=f"Issue {iid}",
        state="opened",
        created_at=NOW,
        updated_at=NOW,
        assignees=(UserModel(username=username),),
        weight=weight,
    )


def _sample_result(extra_team=(), extra_issues=()):
    # alice: 6 x 8h = 48h (120%), bob: 3 x 4h = 12h (30%)
    issues = [_issue(i, "alice", weight=1) for i in range(1, 7)]
    issues += [_issue(i, "bob") for i in range(10, 13)]
    issues += list(extra_issues)
    team = [TeamMember("alice", "Developer"), TeamMember("bob", "QA Engineer"), *extra_team]
    return compute_capacity(issues, team=team, policy=POLICY, now=NOW)


def test_role_gate_produces_warning():
    result = _sample_result()
    table = {"Developer": frozenset({"Developer", "Data Engineer"})}
    [proposal] = rebalancing_proposals(result, table)
    assert proposal.warning
    assert proposal.from_username == "alice"
    assert proposal.to_username is None
    assert proposal.issue_count == 0
    assert proposal.required_roles == ("Data Engineer", "Developer")
    assert proposal.compatibility_reason == "Needs: Data Engineer, Developer"


def test_compatible_move_with_default_table():
    [proposal] = rebalancing_proposals(_sample_result())
    assert not proposal.warning
    assert (proposal.to_username, proposal.to_role) == ("bob", "QA Engineer")
    assert proposal.issue_count == 2
    assert [i.iid for i in proposal.issues] == [1, 2]
    assert proposal.hours == 16
    assert proposal.current_utilization == 120
    assert proposal.projected_utilization == 80
    assert proposal.target_projected_utilization == 70
    assert proposal.compatibility_reason.startswith("Compatible roles (")


def test_lowest_utilization_candidate_wins_and_zero_capacity_excluded():
    extra_team = [
        TeamMember("carol", "Developer"),
        TeamMember("dave", "Developer"),
        TeamMember("eve", "Developer", default_capacity=0),
    ]
    extra_issues = [_issue(20, "carol", weight=2), _issue(21, "carol", weight=1), _issue(22, "dave")]
    [proposal] = rebalancing_proposals(_sample_result(extra_team, extra_issues))
    assert proposal.to_username == "dave"
    assert proposal.compatibility_reason == "Same role"


def test_smallest_issues_move_first():
    issues = [_issue(1, "alice", weight=5), _issue(2, "alice"), _issue(3, "alice", weight=1), _issue(4, "alice", 1)]
    team = [TeamMember("alice"), TeamMember("bob")]
    result = compute_capacity(issues, team=team, policy=POLICY, now=NOW)
    [proposal] = rebalancing_proposals(result)
    assert [i.iid for i in proposal.issues] == [2, 3]
    assert proposal.hours == 12


def test_proposals_respect_role_table():
    extra_team = [TeamMember("frank", "Business Analyst"), TeamMember("gina", "Business Analyst")]
    extra_issues = [_issue(30 + i, "frank", weight=1) for i in range(6)]
    result = _sample_result(extra_team, extra_issues)
    for table in (ROLE_COMPATIBILITY, {"Developer": frozenset({"Developer"})}):
        proposals = rebalancing_proposals(result, table)
        assert len(proposals) == 2
        for p in proposals:
            assert p.warning or p.to_role in compatible_roles(p.from_role, table)


def test_compatible_roles_lookup():
    assert compatible_roles("Scrum Master") == ("Scrum Master",)
    assert "QA Engineer" in compatible_roles("Developer")
    assert compatible_roles("Astronaut") == ("Astronaut",)


def test_no_overloaded_members():
    result = compute_capacity([_issue(1, "bob")], team=[TeamMember("bob")], policy=POLICY, now=NOW)
    assert rebalancing_proposals(result) == []
