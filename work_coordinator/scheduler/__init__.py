"""
Scheduler - assigns ready issues to agents.

Usage:
    from work_coordinator.scheduler import WorkCoordinator, LocalSessionFactory
"""

from .coordinator import WorkCoordinator
from .schema import (
    ActiveAssignment,
    AgentScore,
    CoordinatorStats,
    ExecutionResult,
    HelperAgentResult,
    Session,
)
from .scoring import AgentScorer, CapabilityScorer, capability_match
from .sessions import AgentExecutor, LocalSessionFactory, SessionFactory

__all__ = [
    "WorkCoordinator",
    # Interfaces
    "AgentExecutor",
    "AgentScorer",
    "SessionFactory",
    # Implementations
    "CapabilityScorer",
    "LocalSessionFactory",
    "capability_match",
    # Data
    "ActiveAssignment",
    "AgentScore",
    "CoordinatorStats",
    "ExecutionResult",
    "HelperAgentResult",
    "Session",
]
