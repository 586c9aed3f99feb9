"""
Agent Capability Registry

Keeps the set of known agent types, their configurations and their
performance statistics. Statistics are exponential moving averages updated
from execution outcomes, and a bounded history of executions backs the
"best agent for a similar task" lookup.
"""

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from .agent_configs import BUILTIN_AGENT_TYPES, AgentConfig, get_builtin_agent_configs
from .errors import AgentNotFoundError, InvalidAgentConfigError

logger = logging.getLogger(__name__)

EMA_WEIGHT = 0.1
RECENCY_WINDOW_SECONDS = 30 * 24 * 60 * 60
MIN_SIMILAR_SAMPLES = 3
MAX_TASK_TEXT = 500


@dataclass
class AgentStats:
    """Performance statistics for one agent type."""
    usage_count: int = 0
    success_rate: float = 1.0
    avg_duration: float = 0.0
    last_used: Optional[datetime] = None

    def copy(self) -> "AgentStats":
        return AgentStats(self.usage_count, self.success_rate, self.avg_duration, self.last_used)

    def to_dict(self) -> dict:
        return {
            "usage_count": self.usage_count,
            "success_rate": self.success_rate,
            "avg_duration": self.avg_duration,
            "last_used": self.last_used.isoformat() if self.last_used else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentStats":
        last_used = data.get("last_used")
        return cls(
            usage_count=int(data.get("usage_count", 0)),
            success_rate=float(data.get("success_rate", 1.0)),
            avg_duration=float(data.get("avg_duration", 0.0)),
            last_used=datetime.fromisoformat(last_used) if last_used else None,
        )


@dataclass
class AgentRegistryEntry:
    config: AgentConfig
    stats: AgentStats = field(default_factory=AgentStats)


@dataclass
class ExecutionRecord:
    """Outcome of one agent execution, fed to record_execution()."""
    agent_type: str
    success: bool
    output: str = ""
    duration: float = 0.0
    error: Optional[str] = None
    prompt: Optional[str] = None


@dataclass
class HistoryEntry:
    timestamp: datetime
    task: str
    agent_type: str
    success: bool

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "task": self.task,
            "agent_type": self.agent_type,
            "success": self.success,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HistoryEntry":
        return cls(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            task=data.get("task", ""),
            agent_type=data["agent_type"],
            success=bool(data.get("success", False)),
        )


@dataclass
class AgentRecommendation:
    agent_type: str
    config: AgentConfig
    stats: AgentStats
    score: float


def _significant_words(text: str) -> set:
    return {w for w in re.split(r"\s+", text.lower()) if len(w) > 3}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AgentRegistry:
    """
    Registry of agent types with performance tracking.

    All maps are guarded by one lock; accessors return copies so callers
    never observe a half-applied update.
    """

    def __init__(
        self,
        configs: Optional[Iterable[AgentConfig]] = None,
        history_limit: int = 1000,
        history_trim: int = 500,
        now: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the registry.

        Args:
            configs: Agent configurations (default: the built-in types)
            history_limit: History length that triggers trimming
            history_trim: Number of newest entries kept after trimming
            now: Wall clock returning aware datetimes (injectable for tests)
        """
        if configs is None:
            configs = get_builtin_agent_configs().values()

        self._agents: Dict[str, AgentRegistryEntry] = {
            config.type: AgentRegistryEntry(config=config) for config in configs
        }
        self._history: List[HistoryEntry] = []
        self._history_limit = history_limit
        self._history_trim = history_trim
        self._now = now or _utc_now
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_agent_config(self, agent_type: str) -> Optional[AgentConfig]:
        with self._lock:
            entry = self._agents.get(agent_type)
            return entry.config if entry else None

    def get_agent_entry(self, agent_type: str) -> Optional[AgentRegistryEntry]:
        with self._lock:
            entry = self._agents.get(agent_type)
            if entry is None:
                return None
            return AgentRegistryEntry(config=entry.config, stats=entry.stats.copy())

    def require_agent_config(self, agent_type: str) -> AgentConfig:
        """Like get_agent_config() but raises AgentNotFoundError."""
        config = self.get_agent_config(agent_type)
        if config is None:
            raise AgentNotFoundError(agent_type)
        return config

    def get_available_agent_types(self) -> List[str]:
        with self._lock:
            return list(self._agents)

    def get_auto_selectable_agents(self) -> List[str]:
        """Auto-selectable agent types, highest priority first."""
        with self._lock:
            selectable = [e.config for e in self._agents.values() if e.config.auto_selectable]
        selectable.sort(key=lambda c: c.priority, reverse=True)
        return [c.type for c in selectable]

    def get_agents_with_tool(self, tool: str) -> List[str]:
        """
        Agent types that can use a tool.

        An agent with no allowed_tools may use any tool; otherwise the tool
        must be listed there or on one of its capabilities.
        """
        with self._lock:
            result = []
            for agent_type, entry in self._agents.items():
                config = entry.config
                if not config.allowed_tools or tool in config.allowed_tools:
                    result.append(agent_type)
                elif any(tool in cap.tools for cap in config.capabilities):
                    result.append(agent_type)
            return result

    def get_agent_for_capability(self, capability: str) -> Optional[str]:
        """Agent type with the highest confidence for a capability name."""
        best_type = None
        best_confidence = -1.0
        with self._lock:
            for agent_type, entry in self._agents.items():
                for cap in entry.config.capabilities:
                    if cap.name == capability and cap.confidence > best_confidence:
                        best_type = agent_type
                        best_confidence = cap.confidence
        return best_type

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def record_execution(self, record: ExecutionRecord) -> None:
        """
        Fold an execution outcome into the agent's statistics.

        Unknown agent types are logged and ignored.
        """
        with self._lock:
            entry = self._agents.get(record.agent_type)
            if entry is None:
                logger.warning(f"Ignoring execution for unknown agent type: {record.agent_type}")
                return

            stats = entry.stats
            if stats.usage_count == 0:
                stats.avg_duration = record.duration
            else:
                stats.avg_duration = stats.avg_duration * (1 - EMA_WEIGHT) + record.duration * EMA_WEIGHT

            outcome = 1.0 if record.success else 0.0
            stats.success_rate = stats.success_rate * (1 - EMA_WEIGHT) + outcome * EMA_WEIGHT
            stats.usage_count += 1
            stats.last_used = self._now()

            task = record.prompt if record.prompt else record.output
            self._history.append(HistoryEntry(
                timestamp=stats.last_used,
                task=(task or "")[:MAX_TASK_TEXT],
                agent_type=record.agent_type,
                success=record.success,
            ))
            if len(self._history) > self._history_limit:
                self._history = self._history[-self._history_trim:]

    def get_agent_stats(self, agent_type: str) -> Optional[AgentStats]:
        with self._lock:
            entry = self._agents.get(agent_type)
            return entry.stats.copy() if entry else None

    def get_all_agent_stats(self) -> Dict[str, AgentStats]:
        with self._lock:
            return {agent_type: e.stats.copy() for agent_type, e in self._agents.items()}

    def get_execution_history(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        """Execution history, oldest first; ``limit`` keeps the newest entries."""
        with self._lock:
            if limit:
                return list(self._history[-limit:])
            return list(self._history)

    def reset_agent_stats(self, agent_type: str) -> None:
        with self._lock:
            entry = self._agents.get(agent_type)
            if entry is not None:
                entry.stats = AgentStats()

    def reset_all_stats(self) -> None:
        """Reset every agent's statistics and clear the history."""
        with self._lock:
            for entry in self._agents.values():
                entry.stats = AgentStats()
            self._history = []

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    def get_recommended_agents(self, count: int = 3) -> List[AgentRecommendation]:
        """
        Rank auto-selectable agents by usage, success rate and recency.

        Args:
            count: Number of recommendations to return

        Returns:
            Recommendations, best first
        """
        now = self._now()
        recommendations = []

        with self._lock:
            for agent_type, entry in self._agents.items():
                if not entry.config.auto_selectable:
                    continue
                stats = entry.stats
                usage_score = min(stats.usage_count / 100, 1.0)
                if stats.last_used is not None:
                    age = (now - stats.last_used).total_seconds()
                    recency_score = max(0.0, 1 - age / RECENCY_WINDOW_SECONDS)
                else:
                    recency_score = 0.5

                score = usage_score * 0.3 + stats.success_rate * 0.5 + recency_score * 0.2
                recommendations.append(AgentRecommendation(
                    agent_type=agent_type,
                    config=entry.config,
                    stats=stats.copy(),
                    score=score,
                ))

        recommendations.sort(key=lambda r: r.score, reverse=True)
        return recommendations[:count]

    def get_best_agent_for_task(self, prompt: str, threshold: float = 0.7) -> Optional[str]:
        """
        Agent type that did best on past tasks similar to ``prompt``.

        Similarity is the number of shared words (longer than three
        characters) over the larger word set. Only agent types with at least
        three similar samples are considered.

        Returns:
            The agent type with the highest success rate, or None
        """
        words = _significant_words(prompt)

        with self._lock:
            history = list(self._history)

        tallies: Dict[str, List[int]] = {}
        for entry in history:
            entry_words = _significant_words(entry.task)
            denominator = max(len(words), len(entry_words))
            if denominator == 0:
                continue
            similarity = len(words & entry_words) / denominator
            if similarity < threshold:
                continue
            tally = tallies.setdefault(entry.agent_type, [0, 0])
            tally[1] += 1
            if entry.success:
                tally[0] += 1

        best_type = None
        best_rate = 0.0
        for agent_type, (successes, total) in tallies.items():
            if total < MIN_SIMILAR_SAMPLES:
                continue
            rate = successes / total
            if rate > best_rate:
                best_type = agent_type
                best_rate = rate

        return best_type

    # ------------------------------------------------------------------
    # Custom agents
    # ------------------------------------------------------------------

    def validate_agent_config(self, config: AgentConfig) -> tuple[bool, list[str]]:
        """
        Validate an agent configuration

        Returns:
            Tuple of (is_valid, errors)
        """
        errors = []

        if not config.name.strip():
            errors.append("Agent name is required")
        if not config.description.strip():
            errors.append("Agent description is required")
        if not config.system_prompt.strip():
            errors.append("System prompt is required")
        if not 1 <= config.default_max_turns <= 1000:
            errors.append("Default max turns must be between 1 and 1000")
        if config.temperature is not None and not 0 <= config.temperature <= 2:
            errors.append("Temperature must be between 0 and 2")
        if not config.capabilities:
            errors.append("Agent must have at least one capability")

        for cap in config.capabilities:
            if not cap.name.strip():
                errors.append("Capability name is required")
            if not 0 <= cap.confidence <= 1:
                errors.append("Capability confidence must be between 0 and 1")

        return len(errors) == 0, errors

    def register_custom_agent(
        self,
        agent_type: str,
        config: Union[AgentConfig, Dict[str, Any]],
    ) -> AgentConfig:
        """
        Register (or replace) an agent type.

        Raises:
            InvalidAgentConfigError: If the configuration fails validation
        """
        if isinstance(config, dict):
            try:
                config = AgentConfig.model_validate({**config, "type": agent_type})
            except ValidationError as e:
                errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
                raise InvalidAgentConfigError(errors, agent_type) from e
        else:
            config = config.model_copy(update={"type": agent_type})

        valid, errors = self.validate_agent_config(config)
        if not valid:
            raise InvalidAgentConfigError(errors, agent_type)

        with self._lock:
            self._agents[agent_type] = AgentRegistryEntry(config=config)

        logger.info(f"Registered agent type: {agent_type}")
        return config

    def unregister_agent(self, agent_type: str) -> bool:
        """
        Remove a custom agent type.

        Returns:
            False for built-in or unknown types, True if removed
        """
        if agent_type in BUILTIN_AGENT_TYPES:
            return False
        with self._lock:
            return self._agents.pop(agent_type, None) is not None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_state(self) -> Dict[str, Any]:
        """Snapshot statistics, custom agent configs and history as plain data."""
        with self._lock:
            agents = {}
            for agent_type, entry in self._agents.items():
                data: Dict[str, Any] = {"stats": entry.stats.to_dict()}
                if agent_type not in BUILTIN_AGENT_TYPES:
                    data["config"] = entry.config.model_dump()
                agents[agent_type] = data
            return {
                "agents": agents,
                "history": [h.to_dict() for h in self._history],
            }

    def import_state(self, state: Dict[str, Any]) -> None:
        """
        Restore a snapshot produced by export_state().

        Custom agents carried in the snapshot are re-registered; statistics
        for types that are neither known nor carried are skipped.
        """
        for agent_type, data in state.get("agents", {}).items():
            if "config" in data and self.get_agent_config(agent_type) is None:
                self.register_custom_agent(agent_type, data["config"])

            with self._lock:
                entry = self._agents.get(agent_type)
                if entry is None:
                    logger.warning(f"Skipping stats for unknown agent type: {agent_type}")
                    continue
                entry.stats = AgentStats.from_dict(data.get("stats", {}))

        history = [HistoryEntry.from_dict(h) for h in state.get("history", [])]
        with self._lock:
            self._history = history[-self._history_limit:]

    def save_state(self, path: Union[str, Path]) -> None:
        """Write export_state() to a JSON file atomically."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(self.export_state(), indent=2))
        temp_path.replace(path)

    def load_state(self, path: Union[str, Path]) -> bool:
        """
        Load state saved by save_state().

        Returns:
            False if the file does not exist
        """
        path = Path(path)
        if not path.exists():
            return False
        self.import_state(json.loads(path.read_text()))
        logger.info(f"Loaded agent registry state from {path}")
        return True
