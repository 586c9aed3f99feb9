"""
Execution interfaces.

The coordinator creates a session per assignment through a SessionFactory
and hands the run to an AgentExecutor. Only the session factory has a
shipped implementation; executors are supplied by the host application.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

from ..errors import SessionCreationError
from .schema import ExecutionResult, Session

logger = logging.getLogger(__name__)


class AgentExecutor(ABC):
    """Runs an agent against a prompt inside a session."""

    @abstractmethod
    async def execute(
        self,
        session_id: str,
        agent_type: str,
        prompt: str,
        context: Dict[str, Any],
    ) -> ExecutionResult:
        """
        Run an agent to completion.

        Args:
            session_id: Session created for this run
            agent_type: Agent type to run as
            prompt: Task prompt built from the issue
            context: Extra data (issue id, parent session, project path)

        Returns:
            ExecutionResult: Outcome of the run
        """
        pass


class SessionFactory(ABC):
    """Creates execution sessions."""

    @abstractmethod
    def create_session(
        self,
        prompt: str,
        project_path: Path,
        cwd: Optional[Path] = None,
    ) -> Session:
        """
        Create a session.

        Raises:
            SessionCreationError: If the session cannot be created
        """
        pass


class LocalSessionFactory(SessionFactory):
    """
    Session factory backed by a directory per session.

    Sessions live under ``<project>/.work_coordinator/sessions/<id>`` and
    start with the prompt written to ``prompt.md``.
    """

    def __init__(self, sessions_dir: Optional[Path] = None):
        self.sessions_dir = Path(sessions_dir) if sessions_dir else None

    def create_session(
        self,
        prompt: str,
        project_path: Path,
        cwd: Optional[Path] = None,
    ) -> Session:
        session_id = f"session-{uuid.uuid4().hex[:12]}"
        base = self.sessions_dir or Path(project_path) / ".work_coordinator" / "sessions"
        state_dir = base / session_id

        try:
            state_dir.mkdir(parents=True, exist_ok=False)
            (state_dir / "prompt.md").write_text(prompt)
            if cwd is not None:
                (state_dir / "cwd").write_text(str(cwd))
        except OSError as e:
            raise SessionCreationError(f"Failed to create session {session_id}: {e}") from e

        logger.debug(f"Created session {session_id} in {state_dir}")
        return Session(id=session_id, state_dir=state_dir)
