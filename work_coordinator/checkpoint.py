"""
Checkpoint Store

Versioned, immutable snapshots of agent progress for a feature, stored as
one JSON file per checkpoint. Supports diffing two snapshots, building a
merge plan between them and turning a snapshot back into a resume prompt.

Creation is serialized with a file lock and written with exclusive-create,
so a checkpoint id can only ever be written once.
"""

import json
import logging
import re
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from filelock import FileLock, Timeout

from .errors import CheckpointError, CheckpointExistsError, CheckpointNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINTS_DIR = ".work_coordinator/checkpoints"
CHECKPOINT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class AgentRunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class TaskRecord:
    """One unit of work an agent did or is doing."""
    task_id: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "description": self.description,
            "status": self.status.value,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TaskRecord":
        return cls(
            task_id=data["task_id"],
            description=data.get("description", ""),
            status=TaskStatus(data.get("status", "pending")),
            start_time=_parse(data.get("start_time")),
            end_time=_parse(data.get("end_time")),
        )


@dataclass
class AgentSnapshot:
    """State of one agent at checkpoint time."""
    agent_id: str
    status: AgentRunStatus = AgentRunStatus.RUNNING
    task_history: List[TaskRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "status": self.status.value,
            "task_history": [t.to_dict() for t in self.task_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentSnapshot":
        return cls(
            agent_id=data["agent_id"],
            status=AgentRunStatus(data.get("status", "running")),
            task_history=[TaskRecord.from_dict(t) for t in data.get("task_history", [])],
        )


@dataclass
class AgentState:
    """Feature-level progress captured in a checkpoint."""
    feature_id: str
    task_history: List[TaskRecord] = field(default_factory=list)
    files_modified: List[str] = field(default_factory=list)
    context: str = ""
    timestamp: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "feature_id": self.feature_id,
            "task_history": [t.to_dict() for t in self.task_history],
            "files_modified": list(self.files_modified),
            "context": self.context,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentState":
        return cls(
            feature_id=data["feature_id"],
            task_history=[TaskRecord.from_dict(t) for t in data.get("task_history", [])],
            files_modified=list(data.get("files_modified", [])),
            context=data.get("context", ""),
            timestamp=_parse(data.get("timestamp")),
        )


@dataclass
class Checkpoint:
    """
    Immutable snapshot of a feature's progress.

    ``version`` counts checkpoints within the feature's lineage, starting at 1.
    """
    checkpoint_id: str
    feature_id: str
    created_at: datetime
    version: int
    agents: List[AgentSnapshot]
    state: AgentState
    description: Optional[str] = None
    parent_checkpoint_id: Optional[str] = None

    def all_tasks(self) -> List[TaskRecord]:
        """Feature task history followed by every agent's task history."""
        tasks = list(self.state.task_history)
        for agent in self.agents:
            tasks.extend(agent.task_history)
        return tasks

    def to_dict(self) -> dict:
        return {
            "checkpoint_id": self.checkpoint_id,
            "feature_id": self.feature_id,
            "created_at": self.created_at.isoformat(),
            "version": self.version,
            "agents": [a.to_dict() for a in self.agents],
            "state": self.state.to_dict(),
            "description": self.description,
            "parent_checkpoint_id": self.parent_checkpoint_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Checkpoint":
        return cls(
            checkpoint_id=data["checkpoint_id"],
            feature_id=data["feature_id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            version=int(data["version"]),
            agents=[AgentSnapshot.from_dict(a) for a in data.get("agents", [])],
            state=AgentState.from_dict(data["state"]),
            description=data.get("description"),
            parent_checkpoint_id=data.get("parent_checkpoint_id"),
        )


@dataclass
class CheckpointDiff:
    """File-level differences between two checkpoints (a -> b)."""
    from_checkpoint_id: str
    to_checkpoint_id: str
    added: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)

    def has_changes(self) -> bool:
        return bool(self.added or self.deleted)


@dataclass
class MergePlan:
    source: Checkpoint
    target: Checkpoint
    steps: List[str] = field(default_factory=list)


def _unique(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


class CheckpointStore:
    """
    Manages checkpoint creation, storage, and retrieval.
    """

    def __init__(
        self,
        project_path: str = ".",
        checkpoints_dir: Optional[str] = None,
        lock_timeout: float = 10.0,
    ):
        """
        Initialize the store.

        Args:
            project_path: Project root; relative checkpoint dirs resolve against it
            checkpoints_dir: Directory holding checkpoint files
            lock_timeout: Seconds to wait for the create lock
        """
        self.project_path = Path(project_path).resolve()
        directory = Path(checkpoints_dir or DEFAULT_CHECKPOINTS_DIR)
        if not directory.is_absolute():
            directory = self.project_path / directory
        self.checkpoints_dir = directory
        self.checkpoints_dir.mkdir(parents=True, exist_ok=True)
        self.lock_timeout = lock_timeout
        self._lock = FileLock(str(self.checkpoints_dir / ".checkpoints.lock"))

    def _path(self, checkpoint_id: str) -> Path:
        if not CHECKPOINT_ID_PATTERN.match(checkpoint_id):
            raise CheckpointError(f"Invalid checkpoint id: {checkpoint_id!r}")
        return self.checkpoints_dir / f"{checkpoint_id}.json"

    def create_checkpoint(
        self,
        checkpoint_id: str,
        agents: List[AgentSnapshot],
        state: AgentState,
        description: Optional[str] = None,
        parent_checkpoint_id: Optional[str] = None,
    ) -> Checkpoint:
        """
        Create a new checkpoint.

        Args:
            checkpoint_id: Unique id, usable as a file name
            agents: Snapshots of the agents working on the feature
            state: Feature progress; its feature_id selects the lineage
            description: Optional human-readable note
            parent_checkpoint_id: Checkpoint this one continues from

        Returns:
            Checkpoint: The stored checkpoint

        Raises:
            CheckpointExistsError: If the id is already used (nothing is written)
        """
        path = self._path(checkpoint_id)

        try:
            with self._lock.acquire(timeout=self.lock_timeout):
                if path.exists():
                    raise CheckpointExistsError(checkpoint_id)

                lineage = self.get_checkpoint_lineage(state.feature_id)
                version = max((c.version for c in lineage), default=0) + 1

                now = datetime.now(timezone.utc)
                if state.timestamp is None:
                    state = dataclasses.replace(state, timestamp=now)
                checkpoint = Checkpoint(
                    checkpoint_id=checkpoint_id,
                    feature_id=state.feature_id,
                    created_at=now,
                    version=version,
                    agents=list(agents),
                    state=state,
                    description=description,
                    parent_checkpoint_id=parent_checkpoint_id,
                )

                try:
                    with open(path, "x") as f:
                        json.dump(checkpoint.to_dict(), f, indent=2)
                except FileExistsError:
                    raise CheckpointExistsError(checkpoint_id)
        except Timeout as e:
            raise CheckpointError(f"Timed out waiting for checkpoint lock: {e}") from e

        logger.info(f"Created checkpoint {checkpoint_id} (feature {state.feature_id}, v{version})")
        return checkpoint

    def restore_checkpoint(self, checkpoint_id: str) -> Checkpoint:
        """
        Load a checkpoint.

        Raises:
            CheckpointNotFoundError: If no such checkpoint exists
            CheckpointError: If the file cannot be read or parsed
        """
        path = self._path(checkpoint_id)
        if not path.exists():
            raise CheckpointNotFoundError(checkpoint_id)

        try:
            with open(path, "r") as f:
                return Checkpoint.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CheckpointError(f"Failed to restore checkpoint {checkpoint_id}: {e}") from e

    def list_checkpoints(self, feature_id: Optional[str] = None) -> List[Checkpoint]:
        """
        List checkpoints, optionally filtered by feature.

        Returns:
            List of checkpoints, sorted by creation time (newest first)
        """
        checkpoints = []

        for filepath in self.checkpoints_dir.glob("*.json"):
            try:
                with open(filepath, "r") as f:
                    checkpoint = Checkpoint.from_dict(json.load(f))
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Error loading checkpoint {filepath}: {e}")
                continue

            if feature_id and checkpoint.feature_id != feature_id:
                continue
            checkpoints.append(checkpoint)

        checkpoints.sort(key=lambda c: c.created_at, reverse=True)
        return checkpoints

    def delete_checkpoint(self, checkpoint_id: str) -> None:
        """
        Remove a checkpoint.

        Raises:
            CheckpointNotFoundError: If no such checkpoint exists
            CheckpointError: If the file cannot be removed
        """
        path = self._path(checkpoint_id)
        try:
            path.unlink()
        except FileNotFoundError:
            raise CheckpointNotFoundError(checkpoint_id)
        except OSError as e:
            raise CheckpointError(f"Failed to delete checkpoint {checkpoint_id}: {e}") from e

        logger.info(f"Deleted checkpoint {checkpoint_id}")

    def get_checkpoint_lineage(self, feature_id: str) -> List[Checkpoint]:
        """All checkpoints for a feature, oldest version first."""
        lineage = self.list_checkpoints(feature_id=feature_id)
        lineage.sort(key=lambda c: c.version)
        return lineage

    def get_latest_checkpoint(self, feature_id: Optional[str] = None) -> Optional[Checkpoint]:
        """Get the most recent checkpoint."""
        checkpoints = self.list_checkpoints(feature_id=feature_id)
        return checkpoints[0] if checkpoints else None

    def diff_checkpoints(self, from_id: str, to_id: str) -> CheckpointDiff:
        """
        Compare the modified-file sets of two checkpoints.

        Files only in ``to_id`` are added, files only in ``from_id`` are
        deleted and files in both are reported as modified.
        """
        a = self.restore_checkpoint(from_id)
        b = self.restore_checkpoint(to_id)
        files_a = _unique(a.state.files_modified)
        files_b = _unique(b.state.files_modified)
        set_a, set_b = set(files_a), set(files_b)

        return CheckpointDiff(
            from_checkpoint_id=from_id,
            to_checkpoint_id=to_id,
            added=[f for f in files_b if f not in set_a],
            deleted=[f for f in files_a if f not in set_b],
            modified=[f for f in files_a if f in set_b],
        )

    def merge_checkpoints(self, source_id: str, target_id: str) -> MergePlan:
        """
        Build the steps needed to bring ``source_id``'s work into ``target_id``.

        Nothing is written; the plan is a list of human-readable lines.
        """
        source = self.restore_checkpoint(source_id)
        target = self.restore_checkpoint(target_id)
        plan = MergePlan(source=source, target=target)

        target_files = set(target.state.files_modified)
        for path in _unique(source.state.files_modified):
            if path not in target_files:
                plan.steps.append(f"Add file: {path}")

        known_tasks = {t.task_id for t in target.all_tasks()}
        for agent in source.agents:
            for task in agent.task_history:
                if task.status != TaskStatus.COMPLETED or task.task_id in known_tasks:
                    continue
                known_tasks.add(task.task_id)
                plan.steps.append(f"Restore task: {task.task_id} - {task.description}")

        return plan

    def build_resume_prompt(self, checkpoint: Checkpoint) -> str:
        """
        Generate a prompt for resuming from a checkpoint.

        This prompt is designed to be fed to an agent to restore context.
        """
        lines = [
            "=" * 60,
            "RESUME FROM CHECKPOINT",
            "=" * 60,
            "",
            f"Checkpoint: {checkpoint.checkpoint_id} (version {checkpoint.version})",
            f"Created: {checkpoint.created_at.isoformat()}",
            f"Feature: {checkpoint.feature_id}",
        ]

        if checkpoint.description:
            lines.append("")
            lines.append(f"Description: {checkpoint.description}")

        if checkpoint.state.context:
            lines.append("")
            lines.append("Context:")
            lines.append(f"  {checkpoint.state.context}")

        tasks = checkpoint.all_tasks()
        if tasks:
            completed = [t for t in tasks if t.status == TaskStatus.COMPLETED]
            remaining = [t for t in tasks if t.status != TaskStatus.COMPLETED]
            lines.append("")
            lines.append(f"Progress: {len(completed)}/{len(tasks)} tasks completed")
            if remaining:
                lines.append("Remaining Tasks:")
                for task in remaining:
                    lines.append(f"  - [{task.status.value}] {task.task_id}: {task.description}")

        if checkpoint.state.files_modified:
            lines.append("")
            lines.append("Files Modified:")
            for path in checkpoint.state.files_modified:
                lines.append(f"  - {path}")

        if checkpoint.agents:
            lines.append("")
            lines.append("Agents:")
            for agent in checkpoint.agents:
                lines.append(f"  - {agent.agent_id}: {agent.status.value}")

        lines.append("")
        lines.append("=" * 60)
        return "\n".join(lines)

