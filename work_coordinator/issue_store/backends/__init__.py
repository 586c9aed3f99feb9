"""Issue store backend implementations."""

from .local import LocalIssueStore

__all__ = ["LocalIssueStore"]
