"""
Agent Configuration Definitions

Defines the structure of an agent type (what it is good at, how it should be
prompted) and the built-in agent types shipped with the coordinator.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Models
# ============================================================================

class AgentCapability(BaseModel):
    """A named skill an agent type has, with the tools it uses for it."""
    name: str
    description: str = ""
    tools: List[str] = Field(default_factory=list)
    confidence: float = Field(0.8, description="Self-assessed proficiency in [0, 1]")


class AgentConfig(BaseModel):
    """Configuration for one agent type."""
    type: str = Field(..., description="Agent type identifier (e.g., implementation)")
    name: str
    description: str
    system_prompt: str
    default_max_turns: int = 50
    allowed_tools: List[str] = Field(default_factory=list, description="Empty means all tools")
    capabilities: List[AgentCapability] = Field(default_factory=list)
    preferred_model: Optional[str] = None
    temperature: Optional[float] = None
    auto_selectable: bool = True
    priority: int = Field(1, description="Higher is preferred when scores tie")


# ============================================================================
# Built-in agent types
# ============================================================================

PLANNING = "planning"
IMPLEMENTATION = "implementation"
TESTING = "testing"
REVIEW = "review"
DEBUG = "debug"
DOCUMENTATION = "documentation"
REFACTORING = "refactoring"
GENERIC = "generic"

BUILTIN_AGENT_TYPES = (
    PLANNING,
    IMPLEMENTATION,
    TESTING,
    REVIEW,
    DEBUG,
    DOCUMENTATION,
    REFACTORING,
    GENERIC,
)


def _cap(name: str, description: str, tools: List[str], confidence: float) -> AgentCapability:
    return AgentCapability(name=name, description=description, tools=tools, confidence=confidence)


AGENT_CAPABILITIES: Dict[str, List[AgentCapability]] = {
    PLANNING: [
        _cap("create-specification", "Create detailed specifications", ["read", "grep", "glob"], 0.95),
        _cap("breakdown-tasks", "Break down features into tasks", ["read", "grep"], 0.9),
        _cap("identify-dependencies", "Identify task dependencies", ["grep", "read"], 0.85),
        _cap("analyze-requirements", "Analyze requirements", ["read"], 0.9),
    ],
    IMPLEMENTATION: [
        _cap("write-code", "Write implementation code", ["write", "edit", "read"], 0.95),
        _cap("follow-patterns", "Follow existing code patterns", ["read", "grep"], 0.9),
        _cap("handle-errors", "Implement error handling", ["write", "edit"], 0.85),
        _cap("integrate-api", "Integrate with APIs", ["write", "edit", "read"], 0.85),
    ],
    TESTING: [
        _cap("write-unit-tests", "Write unit tests", ["write", "edit"], 0.95),
        _cap("write-integration-tests", "Write integration tests", ["write", "edit"], 0.85),
        _cap("mock-dependencies", "Mock test dependencies", ["write", "edit"], 0.9),
        _cap("verify-coverage", "Verify test coverage", ["bash"], 0.8),
    ],
    REVIEW: [
        _cap("review-code", "Review code for quality", ["read", "grep"], 0.9),
        _cap("check-security", "Check for security issues", ["read", "grep"], 0.85),
        _cap("identify-smells", "Identify code smells", ["read"], 0.85),
        _cap("suggest-improvements", "Suggest improvements", ["read"], 0.85),
    ],
    DEBUG: [
        _cap("diagnose-bug", "Diagnose bugs", ["read", "grep", "bash"], 0.95),
        _cap("trace-execution", "Trace code execution", ["read"], 0.9),
        _cap("fix-bug", "Fix bugs", ["edit", "write"], 0.95),
        _cap("add-logging", "Add debug logging", ["edit"], 0.9),
    ],
    DOCUMENTATION: [
        _cap("write-readme", "Write README files", ["write", "read"], 0.95),
        _cap("document-api", "Document APIs", ["edit", "read"], 0.9),
        _cap("write-examples", "Write usage examples", ["write"], 0.9),
        _cap("create-guides", "Create guides", ["write", "read"], 0.85),
    ],
    REFACTORING: [
        _cap("extract-function", "Extract to functions", ["edit", "read"], 0.9),
        _cap("simplify-code", "Simplify complex code", ["edit", "read"], 0.9),
        _cap("remove-duplication", "Remove duplicated code", ["edit", "read", "grep"], 0.9),
        _cap("improve-names", "Improve naming", ["edit"], 0.85),
    ],
    GENERIC: [
        _cap("general-assistance", "General coding assistance", ["read", "write", "edit", "bash"], 0.8),
        _cap("answer-questions", "Answer codebase questions", ["read", "grep", "glob"], 0.85),
        _cap("explore-code", "Explore codebase", ["read", "glob", "grep"], 0.9),
    ],
}

SYSTEM_PROMPTS: Dict[str, str] = {
    PLANNING: (
        "You are a planning agent. Read the codebase before proposing changes, "
        "write a specification with acceptance criteria, and break the work into "
        "ordered tasks with explicit dependencies."
    ),
    IMPLEMENTATION: (
        "You are an implementation agent. Follow the patterns already used in the "
        "codebase, keep changes focused on the assigned issue, and handle errors "
        "at the boundaries you touch."
    ),
    TESTING: (
        "You are a testing agent. Write unit and integration tests for the assigned "
        "behavior, mock external dependencies, and report coverage gaps."
    ),
    REVIEW: (
        "You are a review agent. Inspect the change for correctness and security "
        "problems and report concrete, actionable findings."
    ),
    DEBUG: (
        "You are a debug agent. Reproduce the failure, trace it to its root cause, "
        "and apply the smallest fix that resolves it."
    ),
    DOCUMENTATION: (
        "You are a documentation agent. Keep READMEs, API references and guides in "
        "step with the code, with runnable examples."
    ),
    REFACTORING: (
        "You are a refactoring agent. Improve structure and naming without changing "
        "behavior, and keep every step covered by existing tests."
    ),
    GENERIC: (
        "You are a general-purpose coding agent. Explore the codebase as needed and "
        "complete the assigned issue."
    ),
}

# (name, description, default_max_turns, priority)
_BUILTIN_SETTINGS = {
    PLANNING: ("Planning Agent", "Creates specifications and breaks down features into tasks", 50, 10),
    IMPLEMENTATION: ("Implementation Agent", "Writes code and implements features", 100, 8),
    TESTING: ("Testing Agent", "Writes tests and verifies functionality", 75, 7),
    REVIEW: ("Review Agent", "Reviews code for quality and security", 50, 5),
    DEBUG: ("Debug Agent", "Diagnoses and fixes bugs", 75, 9),
    DOCUMENTATION: ("Documentation Agent", "Writes and updates documentation", 50, 4),
    REFACTORING: ("Refactoring Agent", "Improves code structure and maintainability", 75, 6),
    GENERIC: ("Generic Agent", "Handles general-purpose tasks", 50, 1),
}


def get_builtin_agent_configs() -> Dict[str, AgentConfig]:
    """
    Build fresh configurations for every built-in agent type.

    Returns:
        Mapping of agent type -> AgentConfig, in declaration order
    """
    configs = {}
    for agent_type in BUILTIN_AGENT_TYPES:
        name, description, max_turns, priority = _BUILTIN_SETTINGS[agent_type]
        configs[agent_type] = AgentConfig(
            type=agent_type,
            name=name,
            description=description,
            system_prompt=SYSTEM_PROMPTS[agent_type],
            default_max_turns=max_turns,
            capabilities=[c.model_copy(deep=True) for c in AGENT_CAPABILITIES[agent_type]],
            auto_selectable=True,
            priority=priority,
        )
    return configs
