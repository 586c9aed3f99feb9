"""
Shared fixtures for work coordinator tests.

Provides a controllable agent executor, a deterministic session factory and
a fake monotonic clock, plus a factory fixture that wires a coordinator
against a LocalIssueStore in tmp_path.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from work_coordinator.agent_configs import AgentCapability, AgentConfig
from work_coordinator.agent_registry import AgentRegistry
from work_coordinator.config import CoordinatorConfig
from work_coordinator.dependency_graph import DependencyGraphResolver
from work_coordinator.errors import SessionCreationError
from work_coordinator.events import EventBus
from work_coordinator.issue_store import IssueCreate
from work_coordinator.issue_store.backends.local import LocalIssueStore
from work_coordinator.scheduler import (
    AgentExecutor,
    ExecutionResult,
    Session,
    SessionFactory,
    WorkCoordinator,
)


class FakeExecutor(AgentExecutor):
    """Executor whose runs finish only when the test says so."""

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.auto_result: Optional[ExecutionResult] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._preset: Dict[str, Any] = {}

    async def execute(self, session_id, agent_type, prompt, context):
        self.calls.append({
            "session_id": session_id,
            "agent_type": agent_type,
            "prompt": prompt,
            "context": context,
        })
        if self.auto_result is not None:
            return self.auto_result
        if session_id in self._preset:
            outcome = self._preset.pop(session_id)
        else:
            future = asyncio.get_running_loop().create_future()
            self._pending[session_id] = future
            outcome = await future
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def finish(self, session_id: str, result: Any) -> None:
        """Complete a run with an ExecutionResult or an exception to raise."""
        future = self._pending.pop(session_id, None)
        if future is None:
            self._preset[session_id] = result
        else:
            future.set_result(result)


class FakeSessionFactory(SessionFactory):
    """Hands out session-1, session-2, ... and can be told to fail."""

    def __init__(self):
        self.created: List[Session] = []
        self.fail_next = False

    def create_session(self, prompt, project_path, cwd=None):
        if self.fail_next:
            self.fail_next = False
            raise SessionCreationError("session backend unavailable")
        session = Session(id=f"session-{len(self.created) + 1}")
        self.created.append(session)
        return session


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_agent(
    agent_type: str,
    capabilities: Optional[List[AgentCapability]] = None,
    priority: int = 5,
    **overrides,
) -> AgentConfig:
    """Agent config with sensible defaults for tests."""
    fields = {
        "type": agent_type,
        "name": f"{agent_type.title()} Agent",
        "description": f"Handles {agent_type} work",
        "system_prompt": f"You are the {agent_type} agent.",
        "capabilities": capabilities if capabilities is not None else [
            AgentCapability(name=agent_type, description=agent_type, tools=[], confidence=0.9)
        ],
        "priority": priority,
    }
    fields.update(overrides)
    return AgentConfig(**fields)


def frontend_agent() -> AgentConfig:
    return make_agent(
        "frontend",
        capabilities=[
            AgentCapability(name="react", description="React UI", tools=["jsx"], confidence=0.9),
            AgentCapability(name="auth", description="Login flows", tools=["login", "jwt"], confidence=0.8),
        ],
    )


def set_success_rate(registry: AgentRegistry, agent_type: str, rate: float, usage: int = 10) -> None:
    registry.import_state({
        "agents": {agent_type: {"stats": {"usage_count": usage, "success_rate": rate, "avg_duration": 5.0}}},
        "history": [],
    })


async def settle(rounds: int = 5) -> None:
    """Let freshly created background tasks start running."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def store(tmp_path, event_bus):
    return LocalIssueStore(path=str(tmp_path / "issues.json"), event_bus=event_bus)


@pytest.fixture
def resolver(store, event_bus):
    return DependencyGraphResolver(store, event_bus)


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def sessions():
    return FakeSessionFactory()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def add_issue(store):
    """Create an issue in the store and return it."""

    def _add(title: str, **kwargs):
        return store.create_issue(IssueCreate(title=title, **kwargs))

    return _add


@pytest.fixture
def make_coordinator(resolver, executor, sessions, event_bus, clock, tmp_path):
    """Build a WorkCoordinator; keyword arguments override CoordinatorConfig."""

    def _make(registry: Optional[AgentRegistry] = None, **config_overrides) -> WorkCoordinator:
        config = CoordinatorConfig(coordination_interval=3600.0, **config_overrides)
        return WorkCoordinator(
            resolver=resolver,
            registry=registry or AgentRegistry(),
            executor=executor,
            session_factory=sessions,
            event_bus=event_bus,
            config=config,
            project_path=Path(tmp_path),
            clock=clock,
        )

    return _make
