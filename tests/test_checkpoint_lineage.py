"""
Tests for CheckpointLineageTracker.
"""

from datetime import datetime, timedelta, timezone

import pytest

from work_coordinator.checkpoint import (
    AgentSnapshot,
    AgentState,
    Checkpoint,
    TaskRecord,
    TaskStatus,
)
from work_coordinator.checkpoint_lineage import CheckpointLineageTracker
from work_coordinator.errors import CheckpointError

BASE_TIME = datetime(2026, 3, 1, tzinfo=timezone.utc)


def checkpoint(checkpoint_id, version, parent=None, tasks=(), files=()):
    return Checkpoint(
        checkpoint_id=checkpoint_id,
        feature_id="auth",
        created_at=BASE_TIME + timedelta(minutes=version),
        version=version,
        agents=[AgentSnapshot(agent_id="agent-a", task_history=list(tasks))],
        state=AgentState(feature_id="auth", files_modified=list(files)),
        parent_checkpoint_id=parent,
    )


@pytest.fixture
def tracker():
    """
    Lineage:

        root -> a1 -> a2
             -> b1
        orphan
    """
    tracker = CheckpointLineageTracker()
    tracker.initialize([
        checkpoint("root", 1),
        checkpoint("a1", 2, parent="root"),
        checkpoint("a2", 3, parent="a1"),
        checkpoint("b1", 2, parent="root"),
        checkpoint("orphan", 1),
    ])
    return tracker


class TestLineage:
    """Test parent/child navigation."""

    def test_children_linked(self, tracker):
        assert tracker.get_lineage("root").children == ["a1", "b1"]
        assert tracker.get_lineage("a2").parent_id == "a1"
        assert tracker.get_lineage("missing") is None

    def test_ancestry_root_first(self, tracker):
        assert [l.checkpoint_id for l in tracker.get_ancestry("a2")] == ["root", "a1", "a2"]

    def test_ancestry_of_unknown(self, tracker):
        assert tracker.get_ancestry("missing") == []

    def test_ancestry_survives_cycles(self):
        tracker = CheckpointLineageTracker()
        tracker.initialize([checkpoint("x", 1, parent="y"), checkpoint("y", 2, parent="x")])

        assert [l.checkpoint_id for l in tracker.get_ancestry("x")] == ["y", "x"]

    def test_descendants_breadth_first(self, tracker):
        assert [l.checkpoint_id for l in tracker.get_descendants("root")] == ["a1", "b1", "a2"]
        assert tracker.get_descendants("a2") == []

    def test_common_ancestor_is_nearest(self, tracker):
        assert tracker.find_common_ancestor("a2", "b1") == "root"
        assert tracker.find_common_ancestor("a2", "a1") == "a1"
        assert tracker.find_common_ancestor("a2", "orphan") is None


class TestVersionDiff:
    """Test create_version_diff()."""

    def test_counts_changes(self):
        tracker = CheckpointLineageTracker()
        older = checkpoint(
            "v1", 1,
            tasks=[
                TaskRecord("t1", "Login form", TaskStatus.IN_PROGRESS),
                TaskRecord("t2", "Logout", TaskStatus.PENDING),
            ],
            files=["login.py"],
        )
        newer = checkpoint(
            "v2", 2,
            tasks=[
                TaskRecord("t1", "Login form", TaskStatus.COMPLETED),
                TaskRecord("t2", "Logout button", TaskStatus.PENDING),
                TaskRecord("t3", "Session expiry", TaskStatus.PENDING),
            ],
            files=["login.py", "logout.py"],
        )

        diff = tracker.create_version_diff(older, newer)

        assert (diff.from_version, diff.to_version) == (1, 2)
        assert diff.tasks_added == 1
        assert diff.tasks_modified == 1
        assert diff.tasks_completed == 1
        assert diff.files_added == 1
        assert diff.files_modified == 1


class TestBranches:
    """Test branch bookkeeping and merges."""

    def test_create_and_extend_branch(self, tracker):
        tracker.create_branch("a1", "feature-a")
        tracker.add_to_branch("feature-a", "a2")
        tracker.add_to_branch("feature-a", "a2")

        branch = tracker.get_branch("feature-a")
        assert branch.checkpoints == ["a1", "a2"]
        assert tracker.get_lineage("a2").branch_name == "feature-a"

    def test_add_to_missing_branch_raises(self, tracker):
        with pytest.raises(CheckpointError):
            tracker.add_to_branch("nope", "a1")

    def test_merge_branches(self, tracker):
        """Source checkpoints are appended to the target."""
        tracker.create_branch("a1", "feature-a")
        tracker.add_to_branch("feature-a", "a2")
        tracker.create_branch("b1", "feature-b", parent_branch="feature-a")

        result = tracker.merge_branches("feature-b", "feature-a")

        assert result.success is True
        assert result.merged_checkpoints == ["b1"]
        target = tracker.get_branch("feature-a")
        assert target.checkpoints == ["a1", "a2", "b1"]
        assert target.merged_from == ["feature-b"]
        assert tracker.get_lineage("b1").branch_name == "feature-a"

    def test_merge_without_common_ancestor_fails(self, tracker):
        tracker.create_branch("a1", "feature-a")
        tracker.create_branch("orphan", "stray")

        result = tracker.merge_branches("stray", "feature-a")

        assert result.success is False
        assert result.conflicts == ["No common ancestor found"]
        assert tracker.get_branch("feature-a").checkpoints == ["a1"]

    def test_merge_missing_branch(self, tracker):
        tracker.create_branch("a1", "feature-a")
        result = tracker.merge_branches("ghost", "feature-a")
        assert result.conflicts == ["One or both branches not found"]

    def test_delete_branch(self, tracker):
        tracker.create_branch("a1", "feature-a")

        assert tracker.delete_branch("feature-a") is True
        assert tracker.delete_branch("feature-a") is False
        assert tracker.get_lineage("a1").branch_name is None
        assert tracker.get_all_branches() == []


class TestExportImport:
    """Test lineage persistence."""

    def test_export_import_round_trip(self, tracker):
        tracker.create_branch("a1", "feature-a")
        payload = tracker.export_lineage()

        restored = CheckpointLineageTracker()
        restored.import_lineage(payload)

        assert restored.get_lineage("root").children == ["a1", "b1"]
        assert restored.get_lineage("a1").branch_name == "feature-a"
        assert restored.get_branch("feature-a").checkpoints == ["a1"]
        assert [l.checkpoint_id for l in restored.get_ancestry("a2")] == ["root", "a1", "a2"]

    @pytest.mark.parametrize("payload", ["not json", "{}", '{"lineage": [{"bogus": 1}], "branches": []}'])
    def test_import_malformed_raises(self, tracker, payload):
        with pytest.raises(CheckpointError):
            tracker.import_lineage(payload)
        assert tracker.get_lineage("root") is not None
