"""
Scheduler data structures.

Runtime records the coordinator keeps about assignments, and the values it
hands back to callers.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class Session:
    """An execution session created for one assignment."""
    id: str
    state_dir: Optional[Path] = None


@dataclass
class ExecutionResult:
    """What an executor reports when an agent run finishes."""
    success: bool
    output: str = ""
    error: Optional[str] = None


@dataclass
class ActiveAssignment:
    """
    An agent currently working an issue.

    ``start_time`` is on the coordinator's monotonic clock. Helpers carry the
    session id of the agent that spawned them.
    """
    session_id: str
    agent_type: str
    issue_id: str
    start_time: float
    parent_session_id: Optional[str] = None

    @property
    def is_helper(self) -> bool:
        return self.parent_session_id is not None


@dataclass
class AgentScore:
    """Score of one agent type for one issue, with its parts."""
    agent_type: str
    score: float
    capability_match: float
    success_rate: float
    availability: float
    reasons: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HelperAgentResult:
    helper_session_id: str
    helper_issue_id: str
    parent_issue_id: str
    helper_agent_type: str


@dataclass
class CoordinatorStats:
    active_agents: int
    locked_issues: int
    total_assignments: int
    total_helpers_spawned: int
    last_coordination_time: Optional[datetime]
