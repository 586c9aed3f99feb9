"""
Tests for agent scoring.
"""

import pytest

from conftest import frontend_agent, make_agent
from work_coordinator.agent_registry import AgentStats
from work_coordinator.issue_store import Issue, IssueType
from work_coordinator.scheduler import CapabilityScorer, capability_match


def login_issue():
    return Issue(id="bd-1", title="Login page", labels=["react", "auth"])


class TestCapabilityMatch:
    """Test capability_match()."""

    def test_all_capabilities_matched(self):
        assert capability_match(frontend_agent(), login_issue()) == 1.0

    def test_partial_match(self):
        issue = Issue(id="bd-2", title="Navigation bar", labels=["react"])
        assert capability_match(frontend_agent(), issue) == 0.5

    def test_tools_count_as_matches(self):
        """A tool name in the text matches its capability."""
        issue = Issue(id="bd-3", title="Refresh the JWT on expiry")
        assert capability_match(frontend_agent(), issue) == 0.5

    def test_description_and_type_are_searched(self):
        issue = Issue(id="bd-4", title="Crash", description="Null pointer", type=IssueType.BUG)
        assert capability_match(make_agent("pointer"), issue) == 1.0
        assert capability_match(make_agent("bug"), issue) == 1.0

    def test_no_capabilities_is_neutral(self):
        assert capability_match(make_agent("bare", capabilities=[]), login_issue()) == 0.5

    def test_no_match_falls_back_to_priority(self):
        """Unmatched agents get 0.1 + 0.04 * priority, capped at 0.5."""
        issue = Issue(id="bd-6", title="Tune database indexes")
        assert capability_match(make_agent("docs", priority=4), issue) == pytest.approx(0.26)
        assert capability_match(make_agent("planner", priority=10), issue) == 0.5


class TestCapabilityScorer:
    """Test the weighted score."""

    def test_login_scenario(self):
        """Full match, 0.8 success rate and an idle agent type score 0.92."""
        score = CapabilityScorer().score(
            frontend_agent(),
            AgentStats(usage_count=10, success_rate=0.8),
            login_issue(),
            active_of_type=0,
            max_concurrent=3,
        )

        assert score.agent_type == "frontend"
        assert score.capability_match == 1.0
        assert score.availability == 1.0
        assert score.score == pytest.approx(0.92)

    def test_availability_drops_with_load(self):
        scorer = CapabilityScorer()
        stats = AgentStats(success_rate=1.0)

        idle = scorer.score(frontend_agent(), stats, login_issue(), 0, 4)
        busy = scorer.score(frontend_agent(), stats, login_issue(), 2, 4)
        full = scorer.score(frontend_agent(), stats, login_issue(), 5, 4)

        assert busy.availability == 0.5
        assert full.availability == 0.0
        assert idle.score > busy.score > full.score

    def test_score_bounded(self):
        scorer = CapabilityScorer()
        best = scorer.score(frontend_agent(), AgentStats(success_rate=1.0), login_issue(), 0, 3)
        worst = scorer.score(
            make_agent("none", priority=0), AgentStats(success_rate=0.0), Issue(id="bd-7", title="x"), 3, 3
        )

        assert best.score == pytest.approx(1.0)
        assert 0.0 <= worst.score <= 1.0

    def test_zero_capacity_means_unavailable(self):
        score = CapabilityScorer().score(frontend_agent(), AgentStats(), login_issue(), 0, 0)
        assert score.availability == 0.0
