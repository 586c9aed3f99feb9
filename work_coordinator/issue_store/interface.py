"""
Issue Store Interface - Abstract base class for issue tracker backends.

This module defines the abstract interface that all issue stores must implement,
as well as the core data structures (Issue, Dependency, IssueCreate, enums).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

DEFAULT_PRIORITY = 2


class IssueStatus(str, Enum):
    """Status of an issue."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    CLOSED = "closed"


class IssueType(str, Enum):
    """Kind of work an issue represents."""
    BUG = "bug"
    FEATURE = "feature"
    TASK = "task"
    EPIC = "epic"
    CHORE = "chore"


class DependencyType(str, Enum):
    """Typed edge between two issues."""
    BLOCKS = "blocks"
    RELATED = "related"
    PARENT = "parent"
    DISCOVERED_FROM = "discovered-from"


@dataclass(frozen=True)
class Dependency:
    """
    Outgoing edge stored on the source issue.

    ``Dependency(BLOCKS, "bd-2")`` on issue ``bd-1`` means bd-1 blocks bd-2.
    """
    type: DependencyType
    to: str

    def to_dict(self) -> dict:
        return {"type": self.type.value, "to": self.to}

    @classmethod
    def from_dict(cls, data: dict) -> "Dependency":
        target = data.get("to") or data.get("issue_id")
        if not target:
            raise ValueError(f"Dependency has no target: {data}")
        return cls(type=DependencyType(data["type"]), to=str(target))


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class Issue:
    """
    An issue from any backend.

    This is the canonical representation that all backends convert to/from.
    """
    id: str
    title: str
    description: str = ""
    status: IssueStatus = IssueStatus.OPEN
    type: IssueType = IssueType.TASK
    priority: int = DEFAULT_PRIORITY
    labels: List[str] = field(default_factory=list)
    parent_id: Optional[str] = None
    dependencies: List[Dependency] = field(default_factory=list)
    feature_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def blocks(self) -> List[str]:
        """Ids of issues this issue blocks."""
        return [d.to for d in self.dependencies if d.type == DependencyType.BLOCKS]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "type": self.type.value,
            "priority": self.priority,
            "labels": list(self.labels),
            "parent_id": self.parent_id,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "feature_id": self.feature_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Issue":
        """Create Issue from dictionary."""
        return cls(
            id=str(data["id"]),
            title=data.get("title", ""),
            description=data.get("description") or "",
            status=IssueStatus(data.get("status", "open")),
            type=IssueType(data.get("type") or data.get("issue_type") or "task"),
            priority=int(data.get("priority", DEFAULT_PRIORITY)),
            labels=list(data.get("labels") or []),
            parent_id=data.get("parent_id") or data.get("parentId"),
            dependencies=[Dependency.from_dict(d) for d in data.get("dependencies") or []],
            feature_id=data.get("feature_id") or data.get("featureId"),
            created_at=_parse_time(data.get("created_at")),
            updated_at=_parse_time(data.get("updated_at")),
        )


@dataclass
class IssueCreate:
    """Input for creating a new issue."""
    title: str
    description: str = ""
    type: IssueType = IssueType.TASK
    priority: int = DEFAULT_PRIORITY
    labels: List[str] = field(default_factory=list)
    parent_id: Optional[str] = None
    dependencies: List[Dependency] = field(default_factory=list)
    feature_id: Optional[str] = None


@dataclass
class IssueFilter:
    """
    Filter for list_issues(). Unset fields do not filter.

    ``labels`` requires every listed label to be present.
    """
    statuses: Optional[List[IssueStatus]] = None
    types: Optional[List[IssueType]] = None
    labels: Optional[List[str]] = None
    priority_min: Optional[int] = None
    priority_max: Optional[int] = None
    title_contains: Optional[str] = None
    ids: Optional[List[str]] = None

    def matches(self, issue: Issue) -> bool:
        if self.statuses is not None and issue.status not in self.statuses:
            return False
        if self.types is not None and issue.type not in self.types:
            return False
        if self.labels and not set(self.labels).issubset(issue.labels):
            return False
        if self.priority_min is not None and issue.priority < self.priority_min:
            return False
        if self.priority_max is not None and issue.priority > self.priority_max:
            return False
        if self.title_contains and self.title_contains.lower() not in issue.title.lower():
            return False
        if self.ids is not None and issue.id not in self.ids:
            return False
        return True


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IssueStore(ABC):
    """
    Abstract base class for issue tracker backends.

    Every method may raise StoreNotInitializedError when the backing
    tracker has not been set up for the project.
    """

    @abstractmethod
    def name(self) -> str:
        """
        Return the store identifier.

        Returns:
            str: Store name (e.g., 'local')
        """
        pass

    @abstractmethod
    def is_initialized(self) -> bool:
        """Check if the backing tracker exists for this project."""
        pass

    @abstractmethod
    def initialize(self) -> None:
        """Create the backing tracker if it does not exist."""
        pass

    @abstractmethod
    def list_issues(self, filter: Optional[IssueFilter] = None) -> List[Issue]:
        """
        List issues with optional filters.

        Args:
            filter: Filter to apply (optional)

        Returns:
            List[Issue]: Matching issues
        """
        pass

    @abstractmethod
    def get_issue(self, issue_id: str) -> Optional[Issue]:
        """
        Get a specific issue by ID.

        Returns:
            Optional[Issue]: The issue, or None if not found
        """
        pass

    @abstractmethod
    def create_issue(self, data: IssueCreate) -> Issue:
        """
        Create a new issue.

        Returns:
            Issue: The created issue with ID assigned
        """
        pass

    @abstractmethod
    def update_issue(self, issue_id: str, patch: Dict[str, Any]) -> Issue:
        """
        Update an existing issue.

        Args:
            issue_id: ID of issue to update
            patch: Fields to update (status, title, description, type,
                priority, labels, parent_id, feature_id)

        Returns:
            Issue: The updated issue

        Raises:
            IssueNotFoundError: If issue_id not found
        """
        pass

    @abstractmethod
    def delete_issue(self, issue_id: str) -> None:
        """
        Delete an issue.

        Raises:
            IssueNotFoundError: If issue_id not found
        """
        pass

    @abstractmethod
    def add_dependency(self, from_id: str, to_id: str, dep_type: DependencyType) -> None:
        """Add an edge from_id -> to_id of the given type."""
        pass

    @abstractmethod
    def remove_dependency(self, from_id: str, to_id: str) -> None:
        """Remove every edge from_id -> to_id."""
        pass
