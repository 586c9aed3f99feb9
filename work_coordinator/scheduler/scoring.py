"""
Agent scoring.

Decides how well an agent type fits an issue. The coordinator only depends
on the AgentScorer interface; CapabilityScorer is the default.
"""

from abc import ABC, abstractmethod

from ..agent_configs import AgentConfig
from ..agent_registry import AgentStats
from ..issue_store import Issue
from .schema import AgentScore

CAPABILITY_WEIGHT = 0.4
SUCCESS_WEIGHT = 0.4
AVAILABILITY_WEIGHT = 0.2

NO_CAPABILITIES_MATCH = 0.5
FALLBACK_BASE = 0.1
FALLBACK_PER_PRIORITY = 0.04
FALLBACK_CAP = 0.5


class AgentScorer(ABC):
    """Interface for ranking agent types against an issue."""

    @abstractmethod
    def score(
        self,
        config: AgentConfig,
        stats: AgentStats,
        issue: Issue,
        active_of_type: int,
        max_concurrent: int,
    ) -> AgentScore:
        """
        Score an agent type for an issue.

        Args:
            config: Agent configuration
            stats: Current performance statistics for the agent type
            issue: Candidate issue
            active_of_type: Active assignments already using this agent type
            max_concurrent: Coordinator-wide concurrency limit

        Returns:
            AgentScore: Score in [0, 1] with its components
        """
        pass


def issue_text(issue: Issue) -> str:
    """Lower-cased text the capability matcher searches."""
    parts = [issue.title, issue.description, issue.type.value, *issue.labels]
    return " ".join(p for p in parts if p).lower()


def capability_match(config: AgentConfig, issue: Issue) -> float:
    """
    Fraction of the agent's capabilities mentioned by the issue.

    A capability counts when its name or any of its tools appears in the
    issue's title, description, type or labels. Agents without capabilities
    get a neutral 0.5; agents with no matching capability fall back to a
    small priority-based value so generalists can still pick up work.
    """
    if not config.capabilities:
        return NO_CAPABILITIES_MATCH

    text = issue_text(issue)
    matched = 0
    for cap in config.capabilities:
        terms = [cap.name, *cap.tools]
        if any(term and term.lower() in text for term in terms):
            matched += 1

    if matched == 0:
        return min(FALLBACK_CAP, FALLBACK_BASE + FALLBACK_PER_PRIORITY * config.priority)
    return matched / len(config.capabilities)


class CapabilityScorer(AgentScorer):
    """
    Weighted blend of capability match, success rate and availability.

    score = 0.4 * capability_match + 0.4 * success_rate + 0.2 * availability
    """

    def score(
        self,
        config: AgentConfig,
        stats: AgentStats,
        issue: Issue,
        active_of_type: int,
        max_concurrent: int,
    ) -> AgentScore:
        match = capability_match(config, issue)
        success_rate = min(1.0, max(0.0, stats.success_rate))
        if max_concurrent > 0:
            availability = max(0.0, 1 - active_of_type / max_concurrent)
        else:
            availability = 0.0

        total = (
            CAPABILITY_WEIGHT * match
            + SUCCESS_WEIGHT * success_rate
            + AVAILABILITY_WEIGHT * availability
        )
        return AgentScore(
            agent_type=config.type,
            score=total,
            capability_match=match,
            success_rate=success_rate,
            availability=availability,
            reasons={"active_of_type": active_of_type, "usage_count": stats.usage_count},
        )
