"""
Error Types

Exception hierarchy for the work coordinator.

Transient external failures (store not initialized, session creation) are
raised by collaborators and degraded by callers. Programming errors (unknown
parent session, invalid agent config) are raised straight to the caller.
"""

from typing import List, Optional


class CoordinatorError(Exception):
    """Base exception for work coordinator errors"""
    pass


# ============================================================================
# ISSUE STORE
# ============================================================================

class StoreNotInitializedError(CoordinatorError):
    """The issue store has not been initialized for this project"""
    pass


class IssueNotFoundError(CoordinatorError, KeyError):
    """Issue id does not exist in the store"""

    def __init__(self, issue_id: str):
        self.issue_id = issue_id
        super().__init__(f"Issue not found: {issue_id}")

    def __str__(self) -> str:
        return f"Issue not found: {self.issue_id}"


# ============================================================================
# AGENTS AND SESSIONS
# ============================================================================

class AgentNotFoundError(CoordinatorError):
    """Agent type is not registered"""

    def __init__(self, agent_type: str):
        self.agent_type = agent_type
        super().__init__(f"Unknown agent type: {agent_type}")


class InvalidAgentConfigError(CoordinatorError):
    """Custom agent configuration failed validation"""

    def __init__(self, errors: List[str], agent_type: Optional[str] = None):
        self.errors = list(errors)
        self.agent_type = agent_type
        super().__init__(f"Invalid agent configuration: {', '.join(self.errors)}")


class UnknownSessionError(CoordinatorError):
    """Session id has no active assignment"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Parent session {session_id} not found")


class SessionCreationError(CoordinatorError):
    """Session factory could not create an execution session"""
    pass


# ============================================================================
# CHECKPOINTS
# ============================================================================

class CheckpointError(CoordinatorError):
    """Checkpoint could not be read, written or removed"""
    pass


class CheckpointExistsError(CheckpointError):
    """A checkpoint with this id already exists"""

    def __init__(self, checkpoint_id: str):
        self.checkpoint_id = checkpoint_id
        super().__init__(f"Checkpoint {checkpoint_id} already exists")


class CheckpointNotFoundError(CheckpointError):
    """No checkpoint with this id"""

    def __init__(self, checkpoint_id: str):
        self.checkpoint_id = checkpoint_id
        super().__init__(f"Checkpoint {checkpoint_id} not found")
