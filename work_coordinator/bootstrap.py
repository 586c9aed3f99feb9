"""
Component wiring.

Builds the event bus, issue store, resolver, registry, checkpoint store and
coordinator from a WorkCoordinatorConfig. Nothing here is global; every
call returns a fresh set of components.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .agent_registry import AgentRegistry
from .checkpoint import CheckpointStore
from .config import WorkCoordinatorConfig
from .dependency_graph import DependencyGraphResolver
from .events import EventBus
from .issue_store import IssueStore, get_issue_store
from .scheduler import AgentExecutor, LocalSessionFactory, SessionFactory, WorkCoordinator

logger = logging.getLogger(__name__)


@dataclass
class Components:
    event_bus: EventBus
    store: IssueStore
    resolver: DependencyGraphResolver
    registry: AgentRegistry
    checkpoints: CheckpointStore
    coordinator: WorkCoordinator


def _resolve(project_path: Path, path: str) -> Path:
    candidate = Path(path).expanduser()
    return candidate if candidate.is_absolute() else project_path / candidate


def build_components(
    config: WorkCoordinatorConfig,
    executor: AgentExecutor,
    project_path: Optional[Path] = None,
    session_factory: Optional[SessionFactory] = None,
) -> Components:
    """
    Wire every component from configuration.

    Args:
        config: Complete configuration
        executor: Agent executor supplied by the host application
        project_path: Project root (default: current directory)
        session_factory: Session factory (default: LocalSessionFactory)

    Returns:
        Components: The wired components; the coordinator is not started
    """
    project_path = Path(project_path or Path.cwd()).resolve()
    event_bus = EventBus()

    store_config = config.issue_store
    store = get_issue_store(
        store_config.backend,
        path=str(_resolve(project_path, store_config.path)),
        auto_init=store_config.auto_init,
        event_bus=event_bus,
    )

    registry = AgentRegistry(
        history_limit=config.registry.history_limit,
        history_trim=config.registry.history_trim,
    )
    for agent in config.registry.custom_agents:
        agent_type = agent.get("type")
        if not agent_type:
            logger.warning(f"Skipping custom agent without a type: {agent}")
            continue
        registry.register_custom_agent(agent_type, agent)
    if config.registry.state_file:
        registry.load_state(_resolve(project_path, config.registry.state_file))

    checkpoints = CheckpointStore(
        project_path=str(project_path),
        checkpoints_dir=config.checkpoint.checkpoints_dir,
        lock_timeout=config.checkpoint.lock_timeout,
    )

    resolver = DependencyGraphResolver(store, event_bus)
    coordinator = WorkCoordinator(
        resolver=resolver,
        registry=registry,
        executor=executor,
        session_factory=session_factory or LocalSessionFactory(),
        event_bus=event_bus,
        config=config.coordinator,
        project_path=project_path,
    )

    return Components(
        event_bus=event_bus,
        store=store,
        resolver=resolver,
        registry=registry,
        checkpoints=checkpoints,
        coordinator=coordinator,
    )
