"""
Tests for DependencyGraphResolver.

Tests cover:
- Ready work selection and ordering
- Cycle detection
- Blocking chains and dependency views
- Epic coordination and cross-feature resolution
- Status automation
"""

import logging

import pytest

from work_coordinator.dependency_graph import DependencyGraphResolver
from work_coordinator.errors import IssueNotFoundError
from work_coordinator.events import EventTypes
from work_coordinator.issue_store import DependencyType, IssueStatus, IssueType
from work_coordinator.issue_store.backends.local import LocalIssueStore


def block(store, blocker, blocked):
    store.add_dependency(blocker.id, blocked.id, DependencyType.BLOCKS)


class TestReadyWork:
    """Test get_ready_work()."""

    def test_open_unblocked_issue_is_ready(self, resolver, add_issue):
        issue = add_issue("Standalone")
        assert [i.id for i in resolver.get_ready_work()] == [issue.id]

    def test_open_blocker_hides_issue(self, resolver, store, add_issue):
        """An issue is ready only when every blocker is closed."""
        schema = add_issue("Schema")
        api = add_issue("API")
        block(store, schema, api)

        assert [i.id for i in resolver.get_ready_work()] == [schema.id]

        store.update_issue(schema.id, {"status": "closed"})
        assert [i.id for i in resolver.get_ready_work()] == [api.id]

    def test_in_progress_blocker_still_blocks(self, resolver, store, add_issue):
        schema = add_issue("Schema")
        api = add_issue("API")
        block(store, schema, api)
        store.update_issue(schema.id, {"status": "in_progress"})

        assert resolver.get_ready_work() == []

    def test_non_open_statuses_are_not_ready(self, resolver, store, add_issue):
        for status in ("in_progress", "blocked", "closed"):
            issue = add_issue(f"Issue {status}")
            store.update_issue(issue.id, {"status": status})

        assert resolver.get_ready_work() == []

    def test_related_edges_do_not_block(self, resolver, store, add_issue):
        a = add_issue("A")
        b = add_issue("B")
        store.add_dependency(a.id, b.id, DependencyType.RELATED)

        assert {i.id for i in resolver.get_ready_work()} == {a.id, b.id}

    def test_ordered_by_priority_then_id(self, resolver, add_issue):
        add_issue("Low", priority=3)
        add_issue("High", priority=0)
        add_issue("Also high", priority=0)

        assert [i.title for i in resolver.get_ready_work()] == ["High", "Also high", "Low"]

    def test_limit(self, resolver, add_issue):
        for n in range(5):
            add_issue(f"Issue {n}")
        assert len(resolver.get_ready_work(limit=2)) == 2

    def test_uninitialized_store_degrades_to_empty(self, tmp_path):
        """A missing store yields no work instead of an error."""
        store = LocalIssueStore(path=str(tmp_path / "issues.json"), auto_init=False)
        resolver = DependencyGraphResolver(store)

        assert resolver.get_ready_work() == []
        assert resolver.list_issues() == []
        assert resolver.get_epic_coordination().epics == []


class TestCycles:
    """Test blocking cycle handling."""

    def test_cycle_members_are_never_ready(self, resolver, store, add_issue):
        a, b, c = add_issue("A"), add_issue("B"), add_issue("C")
        block(store, a, b)
        block(store, b, c)
        block(store, c, a)
        free = add_issue("Free")

        assert [i.id for i in resolver.get_ready_work()] == [free.id]

    def test_cycle_reported_once(self, resolver, store, add_issue):
        """Each cycle is listed once, starting at its smallest id."""
        a, b, c = add_issue("A"), add_issue("B"), add_issue("C")
        block(store, b, c)
        block(store, c, a)
        block(store, a, b)

        assert resolver.find_blocking_cycles() == [["bd-1", "bd-2", "bd-3"]]

    def test_closing_a_member_breaks_the_cycle(self, resolver, store, add_issue):
        a, b = add_issue("A"), add_issue("B")
        block(store, a, b)
        block(store, b, a)
        store.update_issue(a.id, {"status": "closed"})

        assert resolver.find_blocking_cycles() == []
        assert [i.id for i in resolver.get_ready_work()] == [b.id]

    def test_ready_work_logs_cycles(self, resolver, store, add_issue, caplog):
        a, b = add_issue("A"), add_issue("B")
        block(store, a, b)
        block(store, b, a)

        with caplog.at_level(logging.WARNING, logger="work_coordinator.dependency_graph"):
            resolver.get_ready_work()

        assert "bd-1 -> bd-2" in caplog.text

    def test_acyclic_graph_has_no_cycles(self, resolver, store, add_issue):
        a, b, c = add_issue("A"), add_issue("B"), add_issue("C")
        block(store, a, c)
        block(store, b, c)

        assert resolver.find_blocking_cycles() == []


class TestDependencyViews:
    """Test get_dependencies() and get_blocking_chain()."""

    def test_get_dependencies_both_directions(self, resolver, store, add_issue):
        epic = add_issue("Epic", type=IssueType.EPIC)
        schema = add_issue("Schema")
        api = add_issue("API", parent_id=epic.id)
        block(store, schema, api)
        store.add_dependency(api.id, schema.id, DependencyType.RELATED)

        deps = resolver.get_dependencies(api.id)

        assert deps.blocked_by == [schema.id]
        assert deps.related == [schema.id]
        assert deps.parent == epic.id
        assert resolver.get_dependencies(epic.id).children == [api.id]
        assert resolver.get_dependencies(schema.id).blocks == [api.id]

    def test_missing_issue_raises(self, resolver):
        with pytest.raises(IssueNotFoundError):
            resolver.get_dependencies("bd-404")

    def test_blocking_chain_is_transitive(self, resolver, store, add_issue):
        """Nearest blockers come first."""
        a, b, c = add_issue("A"), add_issue("B"), add_issue("C")
        block(store, a, b)
        block(store, b, c)

        assert resolver.get_blocking_chain(c.id) == [b.id, a.id]

    def test_blocking_chain_skips_closed(self, resolver, store, add_issue):
        a, b = add_issue("A"), add_issue("B")
        block(store, a, b)
        store.update_issue(a.id, {"status": "closed"})

        assert resolver.get_blocking_chain(b.id) == []

    def test_blocking_chain_terminates_on_cycle(self, resolver, store, add_issue):
        a, b = add_issue("A"), add_issue("B")
        block(store, a, b)
        block(store, b, a)

        assert resolver.get_blocking_chain(a.id) == [b.id]

    def test_blocking_chain_max_depth(self, resolver, store, add_issue):
        a, b, c = add_issue("A"), add_issue("B"), add_issue("C")
        block(store, a, b)
        block(store, b, c)

        assert resolver.get_blocking_chain(c.id, max_depth=1) == [b.id]


class TestEpicsAndFeatures:
    """Test epic progress and cross-feature resolution."""

    def test_epic_progress(self, resolver, store, add_issue):
        epic = add_issue("Auth", type=IssueType.EPIC)
        done = add_issue("Login", parent_id=epic.id)
        add_issue("Logout", parent_id=epic.id)
        store.update_issue(done.id, {"status": "closed"})

        coordination = resolver.get_epic_coordination()

        progress = coordination.epics[0]
        assert progress.epic.id == epic.id
        assert progress.completed_count == 1
        assert progress.total_count == 2
        assert progress.percent_complete == 50.0
        assert progress.is_complete is False
        assert coordination.ready_epics == [epic.id]

    def test_empty_epic_is_not_complete(self, resolver, add_issue):
        add_issue("Empty", type=IssueType.EPIC)

        progress = resolver.get_epic_coordination().epics[0]

        assert progress.percent_complete == 0.0
        assert progress.is_complete is False

    def test_cross_feature_resolution(self, resolver, store, add_issue, event_bus):
        """A feature is held while another feature's issue blocks its root."""
        payments = add_issue("Payments", feature_id="payments")
        checkout = add_issue("Checkout", feature_id="checkout")
        block(store, payments, checkout)

        resolutions = resolver.resolve_cross_feature_dependencies({
            "payments": payments.id,
            "checkout": checkout.id,
        })

        by_feature = {r.feature_id: r for r in resolutions}
        assert by_feature["payments"].ready_to_start is True
        assert by_feature["checkout"].ready_to_start is False
        assert by_feature["checkout"].blocking_features == ["payments"]
        emitted = event_bus.get_history(EventTypes.CROSS_FEATURE_RESOLVED)
        assert emitted[0]["data"]["resolutions"] == resolutions


class TestAutomateIssueStatus:
    """Test automate_issue_status()."""

    def test_blocked_issue_reopens_when_blockers_close(self, resolver, store, add_issue):
        a, b = add_issue("A"), add_issue("B")
        block(store, a, b)
        store.update_issue(b.id, {"status": "blocked"})
        store.update_issue(a.id, {"status": "closed"})

        assert resolver.automate_issue_status(b.id).status == IssueStatus.OPEN

    def test_in_progress_with_open_blocker_returns_to_open(self, resolver, store, add_issue):
        a, b = add_issue("A"), add_issue("B")
        store.update_issue(b.id, {"status": "in_progress"})
        block(store, a, b)

        assert resolver.automate_issue_status(b.id).status == IssueStatus.OPEN

    def test_unchanged_otherwise(self, resolver, store, add_issue):
        a, b = add_issue("A"), add_issue("B")
        block(store, a, b)
        store.update_issue(b.id, {"status": "blocked"})

        assert resolver.automate_issue_status(b.id).status == IssueStatus.BLOCKED
