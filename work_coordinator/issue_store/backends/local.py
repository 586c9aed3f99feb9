"""
Local Issue Store - JSON file backend.

Stores issues in a local JSON file for offline/standalone use.
Default path: .work_coordinator/issues.json under the project.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from filelock import FileLock

from ...errors import IssueNotFoundError, StoreNotInitializedError
from ...events import EventBus, EventTypes
from ..interface import (
    Dependency,
    DependencyType,
    Issue,
    IssueCreate,
    IssueFilter,
    IssueStatus,
    IssueStore,
    IssueType,
    utc_now,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "title", "description", "status", "type", "priority",
    "labels", "parent_id", "feature_id",
}


def _unblocked_by(closed: Issue, issues: List[Issue]) -> List[Issue]:
    """Open issues blocked by ``closed`` whose blockers are now all closed."""
    status_by_id = {i.id: i.status for i in issues}
    result = []
    for issue in issues:
        if issue.id not in closed.blocks() or issue.status != IssueStatus.OPEN:
            continue
        blockers = [other.id for other in issues if issue.id in other.blocks()]
        if all(status_by_id[b] == IssueStatus.CLOSED for b in blockers):
            result.append(issue)
    return result


class LocalIssueStore(IssueStore):
    """
    Issue store that keeps issues in a local JSON file.

    Reads and writes go through a file lock and writes are atomic
    (temp file + rename). When an EventBus is attached, mutations emit
    issue lifecycle events.
    """

    DEFAULT_PATH = ".work_coordinator/issues.json"

    def __init__(
        self,
        path: Optional[str] = None,
        auto_init: bool = True,
        event_bus: Optional[EventBus] = None,
        id_prefix: str = "bd",
    ):
        """
        Initialize local issue store.

        Args:
            path: Path to JSON file (default: .work_coordinator/issues.json)
            auto_init: Create the file on first use; when False, operations
                raise StoreNotInitializedError until initialize() is called
            event_bus: Optional bus for issue events
            id_prefix: Prefix for generated issue ids
        """
        self.path = Path(path or self.DEFAULT_PATH).expanduser()
        self.lock_path = self.path.with_suffix(".lock")
        self.event_bus = event_bus
        self.id_prefix = id_prefix
        if auto_init:
            self.initialize()

    def set_event_bus(self, event_bus: EventBus) -> None:
        self.event_bus = event_bus

    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.event_bus is not None:
            self.event_bus.emit(event_type, payload)

    def _load(self) -> dict:
        """Load data from JSON file."""
        if not self.path.exists():
            raise StoreNotInitializedError(f"Issue store not initialized: {self.path}")
        return json.loads(self.path.read_text())

    def _save(self, data: dict) -> None:
        """Save data to JSON file atomically."""
        temp_path = self.path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(data, indent=2, default=str))
        temp_path.replace(self.path)

    def name(self) -> str:
        """Return store identifier."""
        return "local"

    def is_initialized(self) -> bool:
        return self.path.exists()

    def initialize(self) -> None:
        """Create parent directories and file if not exists."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(self.lock_path):
            if not self.path.exists():
                self._save({"issues": [], "next_id": 1})

    def list_issues(self, filter: Optional[IssueFilter] = None) -> List[Issue]:
        """List issues with optional filters."""
        with FileLock(self.lock_path):
            data = self._load()

        issues = [Issue.from_dict(d) for d in data["issues"]]
        if filter is None:
            return issues
        return [issue for issue in issues if filter.matches(issue)]

    def get_issue(self, issue_id: str) -> Optional[Issue]:
        """Get a specific issue by ID."""
        with FileLock(self.lock_path):
            data = self._load()
        for issue_data in data["issues"]:
            if issue_data["id"] == issue_id:
                return Issue.from_dict(issue_data)
        return None

    def create_issue(self, data: IssueCreate) -> Issue:
        """Create a new issue."""
        with FileLock(self.lock_path):
            stored = self._load()
            issue_id = f"{self.id_prefix}-{stored['next_id']}"
            stored["next_id"] += 1

            now = utc_now()
            issue = Issue(
                id=issue_id,
                title=data.title,
                description=data.description,
                status=IssueStatus.OPEN,
                type=data.type,
                priority=data.priority,
                labels=list(data.labels),
                parent_id=data.parent_id,
                dependencies=list(data.dependencies),
                feature_id=data.feature_id,
                created_at=now,
                updated_at=now,
            )
            stored["issues"].append(issue.to_dict())
            self._save(stored)

        logger.debug(f"Created issue {issue.id}: {issue.title}")
        self._emit(EventTypes.ISSUE_CREATED, {"issue": issue})
        return issue

    def update_issue(self, issue_id: str, patch: Dict[str, Any]) -> Issue:
        """Update an existing issue."""
        unknown = set(patch) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown issue fields: {', '.join(sorted(unknown))}")

        with FileLock(self.lock_path):
            stored = self._load()
            for i, issue_data in enumerate(stored["issues"]):
                if issue_data["id"] != issue_id:
                    continue

                for key, value in patch.items():
                    if isinstance(value, (IssueStatus, IssueType)):
                        value = value.value
                    issue_data[key] = value

                issue_data["updated_at"] = utc_now().isoformat()
                # Round-trip so invalid enum values fail before saving
                issue = Issue.from_dict(issue_data)
                stored["issues"][i] = issue.to_dict()
                self._save(stored)
                break
            else:
                raise IssueNotFoundError(issue_id)

            unblocked: List[Issue] = []
            if "status" in patch and issue.status == IssueStatus.CLOSED:
                unblocked = _unblocked_by(issue, [Issue.from_dict(d) for d in stored["issues"]])

        self._emit(EventTypes.ISSUE_UPDATED, {"issue": issue, "updates": dict(patch)})

        status = patch.get("status")
        if status is not None:
            status = IssueStatus(status)
            if status == IssueStatus.CLOSED and issue.type == IssueType.EPIC:
                self._emit(EventTypes.EPIC_COMPLETED, {"issue": issue})
            elif status == IssueStatus.OPEN:
                self._emit(EventTypes.TASK_READY, {"issue": issue})

        for dependent in unblocked:
            self._emit(EventTypes.TASK_READY, {"issue": dependent})

        return issue

    def delete_issue(self, issue_id: str) -> None:
        """Delete an issue."""
        with FileLock(self.lock_path):
            stored = self._load()
            remaining = [d for d in stored["issues"] if d["id"] != issue_id]
            if len(remaining) == len(stored["issues"]):
                raise IssueNotFoundError(issue_id)
            stored["issues"] = remaining
            self._save(stored)

        self._emit(EventTypes.ISSUE_DELETED, {"issue_id": issue_id})

    def add_dependency(self, from_id: str, to_id: str, dep_type: DependencyType) -> None:
        """Add a typed edge stored on the source issue."""
        edge = Dependency(type=DependencyType(dep_type), to=to_id)
        with FileLock(self.lock_path):
            stored = self._load()
            for issue_data in stored["issues"]:
                if issue_data["id"] == from_id:
                    deps = issue_data.setdefault("dependencies", [])
                    if edge.to_dict() not in deps:
                        deps.append(edge.to_dict())
                    issue_data["updated_at"] = utc_now().isoformat()
                    self._save(stored)
                    break
            else:
                raise IssueNotFoundError(from_id)

        self._emit(EventTypes.DEPENDENCY_ADDED, {
            "from": from_id, "to": to_id, "type": edge.type.value,
        })

    def remove_dependency(self, from_id: str, to_id: str) -> None:
        """Remove every edge from_id -> to_id."""
        with FileLock(self.lock_path):
            stored = self._load()
            for issue_data in stored["issues"]:
                if issue_data["id"] == from_id:
                    issue_data["dependencies"] = [
                        d for d in issue_data.get("dependencies", [])
                        if d.get("to") != to_id
                    ]
                    issue_data["updated_at"] = utc_now().isoformat()
                    self._save(stored)
                    break
            else:
                raise IssueNotFoundError(from_id)

        self._emit(EventTypes.DEPENDENCY_REMOVED, {"from": from_id, "to": to_id})
