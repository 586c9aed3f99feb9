"""
Dependency Graph Resolver

Answers readiness questions over the issue store's dependency graph:
which issues can be started now, what blocks what, how epics are
progressing and which features may begin.

An issue is ready when its status is open and every issue holding a
``blocks`` edge to it is closed. Cyclically blocked issues are therefore
never ready; cycles are detected separately and logged.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .errors import IssueNotFoundError, StoreNotInitializedError
from .events import EventBus, EventTypes
from .issue_store import DependencyType, Issue, IssueFilter, IssueStatus, IssueStore, IssueType

logger = logging.getLogger(__name__)


@dataclass
class IssueDependencies:
    """Edges touching one issue, in both directions."""
    blocks: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)
    related: List[str] = field(default_factory=list)
    parent: Optional[str] = None
    children: List[str] = field(default_factory=list)
    discovered_from: List[str] = field(default_factory=list)


@dataclass
class CrossFeatureResolution:
    """Whether a feature's root issue may start, and which features hold it."""
    feature_id: str
    blocking_features: List[str]
    ready_to_start: bool
    resolved_at: datetime


@dataclass
class EpicProgress:
    epic: Issue
    subtasks: List[Issue]
    completed_count: int
    total_count: int
    percent_complete: float
    is_complete: bool


@dataclass
class EpicCoordination:
    epics: List[EpicProgress] = field(default_factory=list)
    ready_epics: List[str] = field(default_factory=list)


def _blocked_by_index(issues: List[Issue]) -> Dict[str, List[str]]:
    """Map issue id -> ids of issues that block it."""
    index: Dict[str, List[str]] = {}
    for issue in issues:
        for target in issue.blocks():
            blockers = index.setdefault(target, [])
            if issue.id not in blockers:
                blockers.append(issue.id)
    return index


class DependencyGraphResolver:
    """
    Read-side view of the issue store's dependency graph.

    Bulk queries (list_issues, get_ready_work, get_epic_coordination)
    degrade to empty results when the store is not initialized. Single
    lookups raise so callers can tell a missing issue from a missing store.
    """

    def __init__(self, store: IssueStore, event_bus: Optional[EventBus] = None):
        self.store = store
        self.event_bus = event_bus

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_issue(self, issue_id: str) -> Issue:
        """
        Get an issue by id.

        Raises:
            IssueNotFoundError: If the issue does not exist
            StoreNotInitializedError: If the store has not been set up
        """
        issue = self.store.get_issue(issue_id)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        return issue

    def list_issues(self, filter: Optional[IssueFilter] = None) -> List[Issue]:
        """List issues, or [] when the store is not initialized."""
        try:
            return self.store.list_issues(filter)
        except StoreNotInitializedError as e:
            logger.warning(f"Issue store not initialized, returning no issues: {e}")
            return []

    def update_status(self, issue_id: str, status: IssueStatus) -> Issue:
        """Request a status change on the store."""
        return self.store.update_issue(issue_id, {"status": status})

    def get_dependencies(self, issue_id: str) -> IssueDependencies:
        """
        Collect both directions of every edge touching an issue.

        Outgoing edges come from the issue itself; ``blocked_by`` and
        ``children`` need a scan of the whole store.
        """
        issue = self.get_issue(issue_id)
        deps = IssueDependencies(parent=issue.parent_id)

        for dep in issue.dependencies:
            if dep.type == DependencyType.BLOCKS:
                deps.blocks.append(dep.to)
            elif dep.type == DependencyType.RELATED:
                deps.related.append(dep.to)
            elif dep.type == DependencyType.PARENT:
                if deps.parent is None:
                    deps.parent = dep.to
            elif dep.type == DependencyType.DISCOVERED_FROM:
                deps.discovered_from.append(dep.to)

        for other in self.store.list_issues():
            if other.id == issue_id:
                continue
            if issue_id in other.blocks() and other.id not in deps.blocked_by:
                deps.blocked_by.append(other.id)
            if other.parent_id == issue_id:
                deps.children.append(other.id)

        return deps

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    def get_ready_work(self, limit: Optional[int] = None) -> List[Issue]:
        """
        Get open issues with no unresolved blockers.

        Args:
            limit: Maximum number of issues to return

        Returns:
            Ready issues ordered by (priority, id)
        """
        issues = self.list_issues()
        if not issues:
            return []

        by_id = {issue.id: issue for issue in issues}
        blocked_by = _blocked_by_index(issues)

        ready = []
        for issue in issues:
            if issue.status != IssueStatus.OPEN:
                continue
            blockers = blocked_by.get(issue.id, [])
            if any(by_id[b].status != IssueStatus.CLOSED for b in blockers):
                continue
            ready.append(issue)

        for cycle in self._find_cycles(issues):
            logger.warning(f"Blocking cycle detected, issues will not become ready: {' -> '.join(cycle)}")

        ready.sort(key=lambda i: (i.priority, i.id))
        if limit is not None:
            ready = ready[:limit]
        return ready

    def find_blocking_cycles(self) -> List[List[str]]:
        """
        Find cycles of ``blocks`` edges among unresolved issues.

        Returns:
            Each cycle once, as a list of issue ids starting at its smallest id
        """
        return self._find_cycles(self.list_issues())

    def _find_cycles(self, issues: List[Issue]) -> List[List[str]]:
        unresolved = {i.id: i for i in issues if i.status != IssueStatus.CLOSED}
        graph = {
            issue_id: [t for t in issue.blocks() if t in unresolved]
            for issue_id, issue in unresolved.items()
        }

        seen: set = set()
        cycles: List[List[str]] = []
        done: set = set()

        for root in sorted(graph):
            if root in done:
                continue
            path: List[str] = [root]
            on_path = {root}
            stack = [iter(graph[root])]

            while stack:
                nxt = next(stack[-1], None)
                if nxt is None:
                    stack.pop()
                    finished = path.pop()
                    on_path.discard(finished)
                    done.add(finished)
                    continue

                if nxt in on_path:
                    cycle = path[path.index(nxt):]
                    start = cycle.index(min(cycle))
                    cycle = cycle[start:] + cycle[:start]
                    key = tuple(cycle)
                    if key not in seen:
                        seen.add(key)
                        cycles.append(cycle)
                elif nxt not in done:
                    path.append(nxt)
                    on_path.add(nxt)
                    stack.append(iter(graph[nxt]))

        return cycles

    def get_blocking_chain(self, issue_id: str, max_depth: int = 100) -> List[str]:
        """
        Get every unresolved issue that transitively blocks ``issue_id``.

        Returns:
            Blocker ids in breadth-first order, nearest first
        """
        issues = self.list_issues()
        by_id = {issue.id: issue for issue in issues}
        blocked_by = _blocked_by_index(issues)

        chain: List[str] = []
        visited = {issue_id}
        frontier = [issue_id]
        depth = 0

        while frontier and depth < max_depth:
            next_frontier = []
            for current in frontier:
                for blocker in blocked_by.get(current, []):
                    if blocker in visited:
                        continue
                    visited.add(blocker)
                    if by_id[blocker].status == IssueStatus.CLOSED:
                        continue
                    chain.append(blocker)
                    next_frontier.append(blocker)
            frontier = next_frontier
            depth += 1

        return chain

    # ------------------------------------------------------------------
    # Features and epics
    # ------------------------------------------------------------------

    def resolve_cross_feature_dependencies(
        self,
        feature_to_issue: Dict[str, str],
    ) -> List[CrossFeatureResolution]:
        """
        Decide which features may start.

        A feature is held by another feature when one of the other feature's
        issues blocks its root issue.

        Args:
            feature_to_issue: Mapping of feature id -> root issue id
        """
        issue_to_feature = {issue_id: feature_id for feature_id, issue_id in feature_to_issue.items()}
        resolutions = []

        for feature_id, issue_id in feature_to_issue.items():
            deps = self.get_dependencies(issue_id)
            blocking = []
            for blocker in deps.blocked_by:
                other = issue_to_feature.get(blocker)
                if other is not None and other not in blocking:
                    blocking.append(other)

            resolutions.append(CrossFeatureResolution(
                feature_id=feature_id,
                blocking_features=blocking,
                ready_to_start=not blocking,
                resolved_at=datetime.now(timezone.utc),
            ))

        if self.event_bus is not None:
            self.event_bus.emit(EventTypes.CROSS_FEATURE_RESOLVED, {"resolutions": resolutions})

        return resolutions

    def get_epic_coordination(self) -> EpicCoordination:
        """Summarize progress of every epic and which have ready subtasks."""
        issues = self.list_issues()
        if not issues:
            return EpicCoordination()

        ready_parents = {issue.parent_id for issue in self.get_ready_work() if issue.parent_id}
        coordination = EpicCoordination()

        for epic in issues:
            if epic.type != IssueType.EPIC:
                continue
            subtasks = [i for i in issues if i.parent_id == epic.id]
            completed = sum(1 for i in subtasks if i.status == IssueStatus.CLOSED)
            total = len(subtasks)

            coordination.epics.append(EpicProgress(
                epic=epic,
                subtasks=subtasks,
                completed_count=completed,
                total_count=total,
                percent_complete=(completed / total) * 100 if total else 0.0,
                is_complete=total > 0 and completed == total,
            ))
            if epic.id in ready_parents:
                coordination.ready_epics.append(epic.id)

        return coordination

    def automate_issue_status(self, issue_id: str) -> Issue:
        """
        Reconcile an issue's status with its blockers.

        A blocked issue whose blockers are all closed is reopened. An
        in-progress issue that gained an open blocker is re-queued as open.
        Anything else is returned unchanged.
        """
        issue = self.get_issue(issue_id)
        deps = self.get_dependencies(issue_id)

        has_open_blockers = False
        for blocker_id in deps.blocked_by:
            blocker = self.store.get_issue(blocker_id)
            if blocker is not None and blocker.status != IssueStatus.CLOSED:
                has_open_blockers = True
                break

        if not has_open_blockers and issue.status == IssueStatus.BLOCKED:
            logger.info(f"Blockers of {issue_id} resolved, reopening")
            return self.update_status(issue_id, IssueStatus.OPEN)
        if has_open_blockers and issue.status == IssueStatus.IN_PROGRESS:
            logger.info(f"{issue_id} gained open blockers, returning to open")
            return self.update_status(issue_id, IssueStatus.OPEN)

        return issue
