"""
Work Coordinator

Dependency-aware assignment of issues to autonomous agents: ready-work
resolution, capability-scored scheduling with issue locks, helper agents,
stale reclamation, agent performance tracking and progress checkpoints.
"""

__version__ = "0.1.0"

from .agent_configs import AgentCapability, AgentConfig
from .agent_registry import AgentRegistry, AgentStats, ExecutionRecord
from .bootstrap import Components, build_components
from .checkpoint import (
    AgentRunStatus,
    AgentSnapshot,
    AgentState,
    Checkpoint,
    CheckpointStore,
    TaskRecord,
    TaskStatus,
)
from .checkpoint_lineage import CheckpointLineageTracker
from .config import ConfigManager, WorkCoordinatorConfig, setup_logging
from .dependency_graph import DependencyGraphResolver
from .events import EventBus, EventTypes
from .scheduler import WorkCoordinator

__all__ = [
    "__version__",
    "AgentCapability",
    "AgentConfig",
    "AgentRegistry",
    "AgentStats",
    "ExecutionRecord",
    "AgentRunStatus",
    "AgentSnapshot",
    "AgentState",
    "Checkpoint",
    "CheckpointStore",
    "TaskRecord",
    "TaskStatus",
    "CheckpointLineageTracker",
    "Components",
    "build_components",
    "ConfigManager",
    "WorkCoordinatorConfig",
    "setup_logging",
    "DependencyGraphResolver",
    "EventBus",
    "EventTypes",
    "WorkCoordinator",
]
