"""
Issue Store - Backend-agnostic issue tracking.

This module provides a unified interface for reading and mutating the
dependency-tracked backlog the coordinator schedules from.

Usage:
    from work_coordinator.issue_store import get_issue_store, IssueCreate

    store = get_issue_store("local", path=".work_coordinator/issues.json")
    issue = store.create_issue(IssueCreate(title="Add login form"))
"""

from typing import Dict, Optional, Type

from .interface import (
    Dependency,
    DependencyType,
    Issue,
    IssueCreate,
    IssueFilter,
    IssueStatus,
    IssueStore,
    IssueType,
)

# Registry of available stores
_STORES: Dict[str, Type[IssueStore]] = {}


def register_store(name: str, store_class: Type[IssueStore]) -> None:
    """
    Register an issue store class.

    Args:
        name: Store name for registry
        store_class: Store class (must inherit from IssueStore)
    """
    if not issubclass(store_class, IssueStore):
        raise TypeError("Store class must inherit from IssueStore")
    _STORES[name] = store_class


def _register_builtin_stores() -> None:
    # Lazy import to avoid circular dependencies
    from .backends.local import LocalIssueStore

    _STORES.setdefault("local", LocalIssueStore)


def list_stores() -> list:
    """List all registered store names."""
    _register_builtin_stores()
    return list(_STORES.keys())


def get_issue_store(name: Optional[str] = None, **kwargs) -> IssueStore:
    """
    Get an issue store instance.

    Args:
        name: Store name (default: local)
        **kwargs: Additional arguments for store constructor

    Returns:
        IssueStore: A store instance

    Raises:
        ValueError: If store not found
    """
    _register_builtin_stores()

    name = name or "local"
    if name not in _STORES:
        available = ", ".join(list_stores())
        raise ValueError(f"Unknown issue store '{name}'. Available: {available}")

    return _STORES[name](**kwargs)


__all__ = [
    # Interface
    "IssueStore",
    "Issue",
    "IssueCreate",
    "IssueFilter",
    "IssueStatus",
    "IssueType",
    "Dependency",
    "DependencyType",
    # Factory
    "get_issue_store",
    "register_store",
    "list_stores",
]
