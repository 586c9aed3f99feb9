"""
Event Bus

Simple pub/sub event bus for coordinator and issue store events.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, Dict[str, Any]], None]


class EventBus:
    """
    Simple event bus for publishing and subscribing to events

    Handlers receive ``(event_type, payload)``. A handler subscribed without an
    event type receives every event. Thread-safe; handlers run outside the
    lock so they may emit further events.
    """

    def __init__(self, max_history: int = 1000):
        """
        Initialize event bus

        Args:
            max_history: Number of past events kept for get_history()
        """
        self._subscribers: List[tuple[Optional[str], EventHandler]] = []
        self._lock = threading.Lock()
        self._event_history: List[Dict[str, Any]] = []
        self._max_history = max_history

    def subscribe(
        self,
        handler: EventHandler,
        event_type: Optional[str] = None,
    ) -> Callable[[], None]:
        """
        Subscribe to events

        Args:
            handler: Callback taking (event_type, payload)
            event_type: Only deliver this event type (None for all)

        Returns:
            Function that removes the subscription
        """
        entry = (event_type, handler)
        with self._lock:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def emit(self, event_type: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """
        Publish event

        Args:
            event_type: Event type
            payload: Event data
        """
        payload = payload if payload is not None else {}
        event = {
            "type": event_type,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

        with self._lock:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history:
                del self._event_history[: len(self._event_history) - self._max_history]

            handlers = [
                handler for wanted, handler in self._subscribers
                if wanted is None or wanted == event_type
            ]

        # Call handlers outside lock to avoid deadlock
        for handler in handlers:
            try:
                handler(event_type, payload)
            except Exception as e:
                logger.error(f"Error in event handler for {event_type}: {e}")

    def get_history(self, event_type: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Get event history

        Args:
            event_type: Filter by event type (None for all)
            limit: Maximum number of events

        Returns:
            List of events (most recent first)
        """
        with self._lock:
            if event_type:
                filtered = [e for e in self._event_history if e["type"] == event_type]
            else:
                filtered = self._event_history

            return list(reversed(filtered[-limit:]))

    def clear_history(self) -> None:
        """Clear event history"""
        with self._lock:
            self._event_history.clear()


# Standard event types
class EventTypes:
    ISSUE_CREATED = "issue-created"
    ISSUE_UPDATED = "issue-updated"
    ISSUE_DELETED = "issue-deleted"
    EPIC_COMPLETED = "epic-completed"
    TASK_READY = "task-ready"
    DEPENDENCY_ADDED = "dependency-added"
    DEPENDENCY_REMOVED = "dependency-removed"
    CROSS_FEATURE_RESOLVED = "cross-feature-resolved"

    AGENT_ASSIGNED = "agent-assigned"
    AGENT_STARTED = "agent-started"
    AGENT_COMPLETED = "agent-completed"
    AGENT_FAILED = "agent-failed"
    AGENT_CLEANED = "agent-cleaned"

    HELPER_SPAWNED = "helper-spawned"
    HELPER_STARTED = "helper-started"
    HELPER_COMPLETED = "helper-completed"
    HELPER_FAILED = "helper-failed"
