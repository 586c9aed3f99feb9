"""
Configuration System

Manages work coordinator configuration from multiple sources:
1. Default values
2. Configuration file (work_coordinator.yaml)
3. Environment variables (highest priority)

Supports runtime updates and validation.
"""

import logging
import os
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


@dataclass
class CoordinatorConfig:
    """Scheduler configuration"""
    coordination_interval: float = 30.0  # seconds
    max_concurrent_agents: int = 5
    enable_auto_assignment: bool = True
    enable_helper_spawning: bool = True
    max_agent_age: float = 7200.0  # 2 hours
    acceptance_threshold: float = 0.5


@dataclass
class CheckpointConfig:
    """Checkpoint storage configuration"""
    checkpoints_dir: str = ".work_coordinator/checkpoints"
    lock_timeout: float = 10.0  # seconds


@dataclass
class RegistryConfig:
    """Agent registry configuration"""
    state_file: Optional[str] = None
    history_limit: int = 1000
    history_trim: int = 500
    custom_agents: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class IssueStoreConfig:
    """Issue store configuration"""
    backend: str = "local"
    path: str = ".work_coordinator/issues.json"
    auto_init: bool = True


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = LOG_FORMAT
    file: Optional[str] = None
    console: bool = True


@dataclass
class WorkCoordinatorConfig:
    """Complete work coordinator configuration"""
    coordinator: CoordinatorConfig = field(default_factory=CoordinatorConfig)
    checkpoint: CheckpointConfig = field(default_factory=CheckpointConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    issue_store: IssueStoreConfig = field(default_factory=IssueStoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkCoordinatorConfig":
        """Create configuration from dictionary"""
        config = cls()

        if "coordinator" in data:
            config.coordinator = CoordinatorConfig(**data["coordinator"])
        if "checkpoint" in data:
            config.checkpoint = CheckpointConfig(**data["checkpoint"])
        if "registry" in data:
            config.registry = RegistryConfig(**data["registry"])
        if "issue_store" in data:
            config.issue_store = IssueStoreConfig(**data["issue_store"])
        if "logging" in data:
            config.logging = LoggingConfig(**data["logging"])

        return config


class ConfigManager:
    """
    Configuration manager with multiple source support

    Load priority (highest to lowest):
    1. Environment variables
    2. Configuration file
    3. Defaults
    """

    def __init__(self, config_file: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            config_file: Optional path to configuration file
        """
        self.config_file = Path(config_file or "work_coordinator.yaml")
        self._config = self._load_config()

    def _load_config(self) -> WorkCoordinatorConfig:
        """Load configuration from all sources"""
        config = WorkCoordinatorConfig()

        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    file_data = yaml.safe_load(f)
                    if file_data:
                        config = WorkCoordinatorConfig.from_dict(file_data)
            except (OSError, yaml.YAMLError, TypeError) as e:
                logger.warning(f"Failed to load config file {self.config_file}: {e}")

        return self._apply_env_overrides(config)

    def _apply_env_overrides(self, config: WorkCoordinatorConfig) -> WorkCoordinatorConfig:
        """
        Apply environment variable overrides

        Environment variables format: WORK_COORDINATOR_<SECTION>_<KEY>
        Example: WORK_COORDINATOR_MAX_CONCURRENT_AGENTS=3
        """
        if interval := os.getenv("WORK_COORDINATOR_COORDINATION_INTERVAL"):
            config.coordinator.coordination_interval = float(interval)
        if max_agents := os.getenv("WORK_COORDINATOR_MAX_CONCURRENT_AGENTS"):
            config.coordinator.max_concurrent_agents = int(max_agents)
        if max_age := os.getenv("WORK_COORDINATOR_MAX_AGENT_AGE"):
            config.coordinator.max_agent_age = float(max_age)
        if threshold := os.getenv("WORK_COORDINATOR_ACCEPTANCE_THRESHOLD"):
            config.coordinator.acceptance_threshold = float(threshold)

        if checkpoints_dir := os.getenv("WORK_COORDINATOR_CHECKPOINTS_DIR"):
            config.checkpoint.checkpoints_dir = checkpoints_dir

        if state_file := os.getenv("WORK_COORDINATOR_REGISTRY_STATE_FILE"):
            config.registry.state_file = state_file

        if issues_path := os.getenv("WORK_COORDINATOR_ISSUE_STORE_PATH"):
            config.issue_store.path = issues_path

        if log_level := os.getenv("WORK_COORDINATOR_LOG_LEVEL"):
            config.logging.level = log_level
        if log_file := os.getenv("WORK_COORDINATOR_LOG_FILE"):
            config.logging.file = log_file

        return config

    def get(self, section: Optional[str] = None) -> Any:
        """
        Get configuration section or entire config

        Args:
            section: Optional section name (coordinator, checkpoint, etc.)

        Returns:
            Configuration section or entire config
        """
        if section is None:
            return self._config

        return getattr(self._config, section, None)

    def update(self, section: str, key: str, value: Any) -> None:
        """
        Update configuration value at runtime

        Args:
            section: Configuration section
            key: Configuration key
            value: New value
        """
        section_obj = getattr(self._config, section, None)
        if section_obj is None:
            raise ValueError(f"Unknown configuration section: {section}")

        if not hasattr(section_obj, key):
            raise ValueError(f"Unknown configuration key: {section}.{key}")

        setattr(section_obj, key, value)

    def save(self, file_path: Optional[Path] = None) -> None:
        """
        Save configuration to file

        Args:
            file_path: Optional path to save to (defaults to self.config_file)
        """
        save_path = Path(file_path or self.config_file)
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, 'w') as f:
            yaml.safe_dump(self._config.to_dict(), f, default_flow_style=False)

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate configuration

        Returns:
            Tuple of (is_valid, errors)
        """
        errors = []
        coordinator = self._config.coordinator

        if coordinator.coordination_interval <= 0:
            errors.append("Coordination interval must be positive")
        if coordinator.max_concurrent_agents < 1:
            errors.append("Max concurrent agents must be at least 1")
        if coordinator.max_agent_age <= 0:
            errors.append("Max agent age must be positive")
        if not 0 <= coordinator.acceptance_threshold <= 1:
            errors.append("Acceptance threshold must be between 0 and 1")

        registry = self._config.registry
        if registry.history_limit < 1:
            errors.append("Registry history limit must be at least 1")
        if not 0 < registry.history_trim <= registry.history_limit:
            errors.append("Registry history trim must be between 1 and the history limit")

        if self._config.checkpoint.lock_timeout <= 0:
            errors.append("Checkpoint lock timeout must be positive")

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self._config.logging.level.upper() not in valid_levels:
            errors.append(f"Logging level must be one of: {', '.join(valid_levels)}")

        return len(errors) == 0, errors

    def reload(self) -> None:
        """Reload configuration from file"""
        self._config = self._load_config()


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """
    Configure root logging from a LoggingConfig.

    Safe to call more than once; handlers are replaced.
    """
    config = config or LoggingConfig()

    handlers: list[logging.Handler] = []
    if config.console:
        handlers.append(logging.StreamHandler(sys.stderr))
    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.file))
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=config.level.upper(),
        format=config.format,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
