"""
Work Coordinator

Assigns ready issues to the best-fitting agent types and keeps track of
which agent holds which issue.

One asyncio.Lock guards every read-score-claim sequence, completion,
stale cleanup and helper spawn, so two ticks can never both treat an issue
as unlocked. Agent runs happen in background tasks; they re-enter the lock
only to apply their outcome.

Usage:
    coordinator = WorkCoordinator(
        resolver=DependencyGraphResolver(store, event_bus),
        registry=AgentRegistry(),
        executor=my_executor,
        session_factory=LocalSessionFactory(),
        event_bus=event_bus,
    )
    await coordinator.start()
"""

import asyncio
import dataclasses
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from ..agent_registry import AgentRegistry, ExecutionRecord
from ..config import CoordinatorConfig
from ..dependency_graph import DependencyGraphResolver
from ..errors import CoordinatorError, UnknownSessionError
from ..events import EventBus, EventTypes
from ..issue_store import Dependency, DependencyType, Issue, IssueCreate, IssueStatus, IssueType
from .schema import (
    ActiveAssignment,
    AgentScore,
    CoordinatorStats,
    ExecutionResult,
    HelperAgentResult,
)
from .scoring import AgentScorer, CapabilityScorer
from .sessions import AgentExecutor, SessionFactory

logger = logging.getLogger(__name__)

HELPER_TITLE_CHARS = 50
HELPER_PRIORITY = 2
_CLAIMING = "<claiming>"


class WorkCoordinator:
    """
    Dependency-aware scheduler for autonomous agents.

    Owns the issue locks (issue id -> session id) and the active
    assignments (session id -> ActiveAssignment). A lock exists exactly
    while an assignment for its issue is active.
    """

    def __init__(
        self,
        resolver: DependencyGraphResolver,
        registry: AgentRegistry,
        executor: AgentExecutor,
        session_factory: SessionFactory,
        event_bus: Optional[EventBus] = None,
        config: Optional[CoordinatorConfig] = None,
        project_path: Optional[Path] = None,
        scorer: Optional[AgentScorer] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the coordinator.

        Args:
            resolver: Ready-work source and issue store access
            registry: Agent types and their statistics
            executor: Runs agents
            session_factory: Creates a session per assignment
            event_bus: Bus for lifecycle events (a private one if None)
            config: Scheduling limits and intervals
            project_path: Project root passed to sessions and agents
            scorer: Agent scorer (default CapabilityScorer)
            clock: Monotonic seconds, used for assignment ages
        """
        self.resolver = resolver
        self.registry = registry
        self.executor = executor
        self.session_factory = session_factory
        self.event_bus = event_bus or EventBus()
        self.config = config or CoordinatorConfig()
        self.project_path = Path(project_path or Path.cwd())
        self.scorer = scorer or CapabilityScorer()
        self._clock = clock

        self._lock = asyncio.Lock()
        self._locked_issues: Dict[str, str] = {}
        self._active: Dict[str, ActiveAssignment] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._reopening: Set[str] = set()
        self._unsubscribers: List[Callable[[], None]] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._running = False

        self._total_assignments = 0
        self._total_helpers_spawned = 0
        self._last_coordination_time: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to issue events, run one tick, then tick on an interval."""
        if self._running:
            return
        self._running = True
        self._loop = asyncio.get_running_loop()

        self._unsubscribers = [
            self.event_bus.subscribe(self._on_task_ready, EventTypes.TASK_READY),
            self.event_bus.subscribe(self._on_issue_updated, EventTypes.ISSUE_UPDATED),
        ]

        logger.info(
            f"Starting work coordinator (interval={self.config.coordination_interval}s, "
            f"max_concurrent={self.config.max_concurrent_agents})"
        )
        await self._safe_coordinate()
        self._loop_task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        """Stop ticking and drop all locks and assignments."""
        self._running = False
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        async with self._lock:
            self._locked_issues.clear()
            self._active.clear()

        logger.info("Work coordinator stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.config.coordination_interval)
            await self._safe_coordinate()

    async def _safe_coordinate(self) -> None:
        try:
            await self.coordinate()
        except Exception as e:
            logger.error(f"Coordination tick failed: {e}")

    # ------------------------------------------------------------------
    # Coordination
    # ------------------------------------------------------------------

    async def coordinate(self) -> int:
        """
        Run one coordination tick.

        Returns:
            Number of issues assigned
        """
        async with self._lock:
            self._last_coordination_time = datetime.now(timezone.utc)
            self._cleanup_stale_agents()

            if not self.config.enable_auto_assignment:
                return 0

            if len(self._active) >= self.config.max_concurrent_agents:
                logger.debug("At max concurrent agents, skipping assignment")
                return 0

            try:
                ready = self.resolver.get_ready_work()
            except Exception as e:
                logger.error(f"Failed to fetch ready work: {e}")
                return 0

            candidates = [
                issue for issue in ready
                if issue.id not in self._locked_issues and issue.status != IssueStatus.IN_PROGRESS
            ]

            assigned = 0
            for issue in candidates:
                if len(self._active) >= self.config.max_concurrent_agents:
                    break

                best = self._select_agent(issue)
                if best is None or best.score < self.config.acceptance_threshold:
                    logger.debug(f"No suitable agent for {issue.id}")
                    continue

                try:
                    self._claim(issue, best.agent_type, score=best.score)
                except CoordinatorError as e:
                    logger.error(f"Failed to assign {issue.id} to {best.agent_type}: {e}")
                    continue
                assigned += 1

            return assigned

    async def trigger_coordination(self) -> int:
        """Run a tick now, outside the interval."""
        return await self.coordinate()

    def _select_agent(self, issue: Issue) -> Optional[AgentScore]:
        """Best-scoring auto-selectable agent; ties go to the higher priority agent."""
        best: Optional[AgentScore] = None

        for agent_type in self.registry.get_auto_selectable_agents():
            entry = self.registry.get_agent_entry(agent_type)
            if entry is None:
                continue

            active_of_type = sum(1 for a in self._active.values() if a.agent_type == agent_type)
            score = self.scorer.score(
                entry.config, entry.stats, issue, active_of_type, self.config.max_concurrent_agents
            )
            if best is None or score.score > best.score:
                best = score

        return best

    def _claim(
        self,
        issue: Issue,
        agent_type: str,
        parent_session_id: Optional[str] = None,
        score: Optional[float] = None,
    ) -> ActiveAssignment:
        """
        Lock an issue, mark it in progress and start an agent on it.

        On failure the lock is released and the issue reopened before the
        error is raised.
        """
        self._locked_issues[issue.id] = _CLAIMING
        prompt = self._build_prompt(issue)

        try:
            self.resolver.update_status(issue.id, IssueStatus.IN_PROGRESS)
            session = self.session_factory.create_session(prompt, self.project_path, self.project_path)
        except Exception as e:
            self._locked_issues.pop(issue.id, None)
            self._set_status(issue.id, IssueStatus.OPEN)
            if isinstance(e, CoordinatorError):
                raise
            raise CoordinatorError(f"Could not start agent for {issue.id}: {e}") from e

        assignment = ActiveAssignment(
            session_id=session.id,
            agent_type=agent_type,
            issue_id=issue.id,
            start_time=self._clock(),
            parent_session_id=parent_session_id,
        )
        self._locked_issues[issue.id] = session.id
        self._active[session.id] = assignment

        payload = {
            "issue_id": issue.id,
            "session_id": session.id,
            "agent_type": agent_type,
        }
        if parent_session_id is None:
            logger.info(f"Assigned {issue.id} to {agent_type} (session {session.id})")
            self.event_bus.emit(EventTypes.AGENT_ASSIGNED, {**payload, "score": score})
            self.event_bus.emit(EventTypes.AGENT_STARTED, payload)

        context = {
            "issue_id": issue.id,
            "project_path": str(self.project_path),
            "parent_session_id": parent_session_id,
        }
        self._track(asyncio.create_task(self._run_agent(assignment, prompt, context)))
        return assignment

    def _build_prompt(self, issue: Issue) -> str:
        lines = [f"Work on issue {issue.id}: {issue.title}"]
        if issue.description:
            lines.extend(["", issue.description])
        if issue.labels:
            lines.extend(["", f"Labels: {', '.join(issue.labels)}"])
        return "\n".join(lines)

    def _set_status(self, issue_id: str, status: IssueStatus) -> None:
        # Our own reopens are picked up by the next interval tick, not by task-ready
        if status == IssueStatus.OPEN:
            self._reopening.add(issue_id)
        try:
            self.resolver.update_status(issue_id, status)
        except Exception as e:
            logger.error(f"Failed to set {issue_id} to {status.value}: {e}")
        finally:
            self._reopening.discard(issue_id)

    def _release_lock(self, issue_id: str, session_id: str) -> None:
        if self._locked_issues.get(issue_id) == session_id:
            del self._locked_issues[issue_id]

    # ------------------------------------------------------------------
    # Execution and completion
    # ------------------------------------------------------------------

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_agent(
        self,
        assignment: ActiveAssignment,
        prompt: str,
        context: Dict[str, Any],
    ) -> None:
        started = self._clock()
        try:
            result = await self.executor.execute(
                assignment.session_id, assignment.agent_type, prompt, context
            )
        except Exception as e:
            logger.error(f"Agent {assignment.session_id} raised: {e}")
            result = ExecutionResult(success=False, error=str(e))

        await self._handle_completion(assignment, result, self._clock() - started, prompt)

    async def _handle_completion(
        self,
        assignment: ActiveAssignment,
        result: ExecutionResult,
        duration: float,
        prompt: str,
    ) -> None:
        """
        Apply an agent's outcome.

        A late completion, for an assignment that was reclaimed or dropped
        by stop(), still settles its issue while the issue is in progress
        and unlocked. Once another session holds the issue, or the issue
        has moved on, the late outcome is ignored.
        """
        async with self._lock:
            if self._active.get(assignment.session_id) is assignment:
                del self._active[assignment.session_id]
                self._release_lock(assignment.issue_id, assignment.session_id)
            elif not self._can_settle_late(assignment):
                logger.debug(f"Ignoring late completion for session {assignment.session_id}")
                return
            else:
                logger.info(
                    f"Applying late completion of session {assignment.session_id} "
                    f"to {assignment.issue_id}"
                )

            if result.success:
                self._set_status(assignment.issue_id, IssueStatus.CLOSED)
                if not assignment.is_helper:
                    self._total_assignments += 1
            else:
                self._set_status(assignment.issue_id, IssueStatus.OPEN)

            self.registry.record_execution(ExecutionRecord(
                agent_type=assignment.agent_type,
                success=result.success,
                output=result.output,
                duration=duration,
                error=result.error,
                prompt=prompt,
            ))

            payload = {
                "issue_id": assignment.issue_id,
                "session_id": assignment.session_id,
                "agent_type": assignment.agent_type,
                "duration": duration,
            }
            if assignment.is_helper:
                payload["parent_session_id"] = assignment.parent_session_id
                if result.success:
                    event_type = EventTypes.HELPER_COMPLETED
                else:
                    event_type = EventTypes.HELPER_FAILED
            else:
                if result.success:
                    event_type = EventTypes.AGENT_COMPLETED
                else:
                    event_type = EventTypes.AGENT_FAILED

            if result.success:
                logger.info(f"Session {assignment.session_id} completed {assignment.issue_id}")
            else:
                payload["error"] = result.error
                logger.warning(
                    f"Session {assignment.session_id} failed {assignment.issue_id}: {result.error}"
                )
            self.event_bus.emit(event_type, payload)

    def _can_settle_late(self, assignment: ActiveAssignment) -> bool:
        """Caller holds the lock."""
        if assignment.issue_id in self._locked_issues:
            return False
        try:
            issue = self.resolver.get_issue(assignment.issue_id)
        except Exception as e:
            logger.warning(f"Cannot settle late completion for {assignment.issue_id}: {e}")
            return False
        return issue.status == IssueStatus.IN_PROGRESS

    def _cleanup_stale_agents(self) -> None:
        """Drop assignments older than max_agent_age. Caller holds the lock."""
        now = self._clock()
        for session_id, assignment in list(self._active.items()):
            age = now - assignment.start_time
            if age <= self.config.max_agent_age:
                continue

            del self._active[session_id]
            self._release_lock(assignment.issue_id, session_id)
            logger.warning(
                f"Reclaimed stale session {session_id} on {assignment.issue_id} "
                f"after {age:.0f}s"
            )
            self.event_bus.emit(EventTypes.AGENT_CLEANED, {
                "session_id": session_id,
                "issue_id": assignment.issue_id,
                "agent_type": assignment.agent_type,
                "age": age,
            })

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def spawn_helper_agent(
        self,
        parent_session_id: str,
        helper_agent_type: str,
        task_description: str,
    ) -> HelperAgentResult:
        """
        Start a helper agent on a sub-task of an active assignment.

        Creates a child task issue under the parent's issue and runs the
        requested agent type on it.

        Raises:
            UnknownSessionError: If the parent session has no active assignment
            AgentNotFoundError: If the helper agent type is not registered
            CoordinatorError: If helper spawning is disabled or the helper
                could not be started
        """
        async with self._lock:
            if not self.config.enable_helper_spawning:
                raise CoordinatorError("Helper spawning is disabled")

            parent = self._active.get(parent_session_id)
            if parent is None:
                raise UnknownSessionError(parent_session_id)

            self.registry.require_agent_config(helper_agent_type)

            helper_issue = self.resolver.store.create_issue(IssueCreate(
                title=f"Helper: {task_description[:HELPER_TITLE_CHARS]}",
                description=task_description,
                type=IssueType.TASK,
                priority=HELPER_PRIORITY,
                parent_id=parent.issue_id,
                dependencies=[Dependency(type=DependencyType.DISCOVERED_FROM, to=parent.issue_id)],
            ))

            assignment = self._claim(helper_issue, helper_agent_type, parent_session_id=parent_session_id)
            self._total_helpers_spawned += 1

            payload = {
                "helper_session_id": assignment.session_id,
                "helper_issue_id": helper_issue.id,
                "parent_session_id": parent_session_id,
                "parent_issue_id": parent.issue_id,
                "agent_type": helper_agent_type,
            }
            self.event_bus.emit(EventTypes.HELPER_STARTED, payload)
            self.event_bus.emit(EventTypes.HELPER_SPAWNED, payload)
            logger.info(
                f"Spawned {helper_agent_type} helper {assignment.session_id} "
                f"on {helper_issue.id} for {parent.issue_id}"
            )

            return HelperAgentResult(
                helper_session_id=assignment.session_id,
                helper_issue_id=helper_issue.id,
                parent_issue_id=parent.issue_id,
                helper_agent_type=helper_agent_type,
            )

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _call_in_loop(self, callback: Callable[[], None]) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            callback()
        else:
            self._loop.call_soon_threadsafe(callback)

    def _on_task_ready(self, event_type: str, payload: Dict[str, Any]) -> None:
        if not self._running:
            return
        issue = payload.get("issue")
        if issue is not None and issue.id in self._reopening:
            return
        # The triggered tick queues on the lock behind any tick in progress
        self._call_in_loop(lambda: self._track(asyncio.ensure_future(self._safe_coordinate())))

    def _on_issue_updated(self, event_type: str, payload: Dict[str, Any]) -> None:
        issue = payload.get("issue")
        if issue is None or issue.status != IssueStatus.CLOSED:
            return

        def clear() -> None:
            if self._locked_issues.pop(issue.id, None) is not None:
                logger.debug(f"Cleared lock on closed issue {issue.id}")

        self._call_in_loop(clear)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_stats(self) -> CoordinatorStats:
        return CoordinatorStats(
            active_agents=len(self._active),
            locked_issues=len(self._locked_issues),
            total_assignments=self._total_assignments,
            total_helpers_spawned=self._total_helpers_spawned,
            last_coordination_time=self._last_coordination_time,
        )

    def get_active_agents(self) -> List[ActiveAssignment]:
        return [dataclasses.replace(a) for a in self._active.values()]

    def get_locked_issues(self) -> Dict[str, str]:
        return dict(self._locked_issues)

    async def wait_for_idle(self) -> None:
        """Wait until every background agent run and triggered tick has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
