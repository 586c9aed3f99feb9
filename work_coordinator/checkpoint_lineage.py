"""
Checkpoint lineage tracking.

In-memory parent/child view over a set of checkpoints, with version diffs
and lightweight branch bookkeeping for parallel agent work. The tracker
never touches checkpoint files; feed it from CheckpointStore.list_checkpoints().
"""

import json
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .checkpoint import Checkpoint, TaskRecord, TaskStatus
from .errors import CheckpointError

logger = logging.getLogger(__name__)


@dataclass
class CheckpointLineage:
    checkpoint_id: str
    version: int
    parent_id: Optional[str]
    created_at: str
    children: List[str] = field(default_factory=list)
    branch_name: Optional[str] = None


@dataclass
class VersionDiff:
    """Counts of what changed between two checkpoint versions."""
    from_version: int
    to_version: int
    tasks_added: int = 0
    tasks_modified: int = 0
    tasks_completed: int = 0
    files_added: int = 0
    files_modified: int = 0


@dataclass
class CheckpointBranch:
    branch_name: str
    checkpoints: List[str]
    created_at: str
    parent_branch: Optional[str] = None
    merged_from: List[str] = field(default_factory=list)


@dataclass
class BranchMergeResult:
    success: bool
    merged_checkpoints: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)


def _agent_tasks(checkpoint: Checkpoint) -> Dict[str, TaskRecord]:
    return {t.task_id: t for agent in checkpoint.agents for t in agent.task_history}


class CheckpointLineageTracker:
    """Tracks parent/child links and branches between checkpoints."""

    def __init__(self):
        self._lineage: Dict[str, CheckpointLineage] = {}
        self._branches: Dict[str, CheckpointBranch] = {}

    def initialize(self, checkpoints: Iterable[Checkpoint]) -> None:
        """Rebuild the lineage map from checkpoints; branches are kept."""
        self._lineage = {}
        for checkpoint in checkpoints:
            self._lineage[checkpoint.checkpoint_id] = CheckpointLineage(
                checkpoint_id=checkpoint.checkpoint_id,
                version=checkpoint.version,
                parent_id=checkpoint.parent_checkpoint_id,
                created_at=checkpoint.created_at.isoformat(),
            )

        for checkpoint_id, lineage in self._lineage.items():
            parent = self._lineage.get(lineage.parent_id) if lineage.parent_id else None
            if parent is not None:
                parent.children.append(checkpoint_id)

    def get_lineage(self, checkpoint_id: str) -> Optional[CheckpointLineage]:
        return self._lineage.get(checkpoint_id)

    def get_ancestry(self, checkpoint_id: str) -> List[CheckpointLineage]:
        """Chain of checkpoints from the root down to ``checkpoint_id``."""
        ancestry: List[CheckpointLineage] = []
        seen = set()
        current = self._lineage.get(checkpoint_id)

        while current is not None:
            if current.checkpoint_id in seen:
                logger.warning(f"Cycle detected in checkpoint lineage at {current.checkpoint_id}")
                break
            seen.add(current.checkpoint_id)
            ancestry.append(current)
            current = self._lineage.get(current.parent_id) if current.parent_id else None

        ancestry.reverse()
        return ancestry

    def get_descendants(self, checkpoint_id: str) -> List[CheckpointLineage]:
        """Every checkpoint below ``checkpoint_id``, breadth-first."""
        descendants: List[CheckpointLineage] = []
        seen = {checkpoint_id}
        queue = deque([checkpoint_id])

        while queue:
            current = self._lineage.get(queue.popleft())
            if current is None:
                continue
            for child_id in current.children:
                if child_id in seen:
                    continue
                seen.add(child_id)
                child = self._lineage.get(child_id)
                if child is not None:
                    descendants.append(child)
                    queue.append(child_id)

        return descendants

    def create_version_diff(self, older: Checkpoint, newer: Checkpoint) -> VersionDiff:
        """
        Summarize progress between two checkpoints.

        Tasks are matched by id across agent task histories; a task is
        modified when its description changed and newly completed when it
        reached completed status only in ``newer``.
        """
        tasks_a = _agent_tasks(older)
        tasks_b = _agent_tasks(newer)
        files_a = set(older.state.files_modified)
        files_b = set(newer.state.files_modified)

        diff = VersionDiff(from_version=older.version, to_version=newer.version)
        diff.tasks_added = sum(1 for task_id in tasks_b if task_id not in tasks_a)

        for task_id, before in tasks_a.items():
            after = tasks_b.get(task_id)
            if after is None:
                continue
            if before.description != after.description:
                diff.tasks_modified += 1
            if before.status != TaskStatus.COMPLETED and after.status == TaskStatus.COMPLETED:
                diff.tasks_completed += 1

        diff.files_added = len(files_b - files_a)
        diff.files_modified = len(files_b & files_a)
        return diff

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def create_branch(
        self,
        checkpoint_id: str,
        branch_name: str,
        parent_branch: Optional[str] = None,
    ) -> CheckpointBranch:
        """Start a branch at a checkpoint, replacing any branch of the same name."""
        branch = CheckpointBranch(
            branch_name=branch_name,
            checkpoints=[checkpoint_id],
            created_at=datetime.now(timezone.utc).isoformat(),
            parent_branch=parent_branch,
        )
        self._branches[branch_name] = branch

        lineage = self._lineage.get(checkpoint_id)
        if lineage is not None:
            lineage.branch_name = branch_name
        return branch

    def add_to_branch(self, branch_name: str, checkpoint_id: str) -> None:
        branch = self._branches.get(branch_name)
        if branch is None:
            raise CheckpointError(f"Branch {branch_name} not found")
        if checkpoint_id not in branch.checkpoints:
            branch.checkpoints.append(checkpoint_id)
        lineage = self._lineage.get(checkpoint_id)
        if lineage is not None:
            lineage.branch_name = branch_name

    def detect_merge_conflicts(self, branch_a: str, branch_b: str) -> List[str]:
        a = self._branches.get(branch_a)
        b = self._branches.get(branch_b)
        if a is None or b is None:
            return ["One or both branches not found"]
        if self.find_common_ancestor(a.checkpoints[0], b.checkpoints[0]) is None:
            return ["No common ancestor found"]
        return []

    def merge_branches(self, source_branch: str, target_branch: str) -> BranchMergeResult:
        """
        Fold the source branch's checkpoints into the target branch.

        Branches without a common ancestor are reported as conflicting and
        left untouched.
        """
        conflicts = self.detect_merge_conflicts(source_branch, target_branch)
        if conflicts:
            return BranchMergeResult(success=False, conflicts=conflicts)

        source = self._branches[source_branch]
        target = self._branches[target_branch]
        merged = []

        for checkpoint_id in source.checkpoints:
            if checkpoint_id in target.checkpoints:
                continue
            target.checkpoints.append(checkpoint_id)
            merged.append(checkpoint_id)
            lineage = self._lineage.get(checkpoint_id)
            if lineage is not None:
                lineage.branch_name = target_branch

        target.merged_from.append(source_branch)
        logger.info(f"Merged branch {source_branch} into {target_branch} ({len(merged)} checkpoints)")
        return BranchMergeResult(success=True, merged_checkpoints=merged)

    def get_branch(self, branch_name: str) -> Optional[CheckpointBranch]:
        return self._branches.get(branch_name)

    def get_all_branches(self) -> List[CheckpointBranch]:
        return list(self._branches.values())

    def delete_branch(self, branch_name: str) -> bool:
        """Drop a branch; its checkpoints are kept."""
        branch = self._branches.pop(branch_name, None)
        if branch is None:
            return False
        for checkpoint_id in branch.checkpoints:
            lineage = self._lineage.get(checkpoint_id)
            if lineage is not None and lineage.branch_name == branch_name:
                lineage.branch_name = None
        return True

    def find_common_ancestor(self, checkpoint_a: str, checkpoint_b: str) -> Optional[str]:
        """Nearest checkpoint that is an ancestor of (or equal to) both."""
        ancestry_a = {lineage.checkpoint_id for lineage in self.get_ancestry(checkpoint_a)}
        for lineage in reversed(self.get_ancestry(checkpoint_b)):
            if lineage.checkpoint_id in ancestry_a:
                return lineage.checkpoint_id
        return None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_lineage(self) -> str:
        data = {
            "lineage": [asdict(lineage) for lineage in self._lineage.values()],
            "branches": [asdict(branch) for branch in self._branches.values()],
        }
        return json.dumps(data, indent=2)

    def import_lineage(self, payload: str) -> None:
        """
        Replace all state with an export_lineage() payload.

        Raises:
            CheckpointError: If the payload is malformed
        """
        try:
            data = json.loads(payload)
            lineage = {
                item["checkpoint_id"]: CheckpointLineage(**item) for item in data["lineage"]
            }
            branches = {
                item["branch_name"]: CheckpointBranch(**item) for item in data["branches"]
            }
        except (ValueError, KeyError, TypeError) as e:
            raise CheckpointError(f"Failed to import lineage: {e}") from e

        self._lineage = lineage
        self._branches = branches
