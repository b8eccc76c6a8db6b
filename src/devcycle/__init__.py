"""
devcycle: orchestration core for multi-agent development cycles.

Several independent agent processes work on one project directory. This
package gives them file locks, a shared project status cache, a bounded
summary of the epic's earlier stories, and a phase state machine that
hands each story from agent to agent.

Example:
    from devcycle import LockManager, ProjectStatusLoader, WorkflowExecutor
    from devcycle.infrastructure import MarkdownStoryRepository, SubprocessAgentRunner

    locks = LockManager(".")
    if locks.acquire_lock("story-12.3"):
        try:
            executor = WorkflowExecutor(
                ".",
                agent_runner=SubprocessAgentRunner(["agent-cli", "{agent}"]),
                story_repository=MarkdownStoryRepository("docs/stories"),
            )
            result = executor.run("story-12.3")
        finally:
            locks.release_lock("story-12.3")

    print(ProjectStatusLoader(".").load_project_status().branch)
"""

# Application layer
from devcycle.application.context_accumulator import (
    EpicContextAccumulator,
    estimate_tokens,
)
from devcycle.application.status_payload import build_status_payload
from devcycle.application.workflow_event_emitter import WorkflowEventEmitter
from devcycle.application.workflow_executor import WorkflowExecutor

# Domain exceptions
from devcycle.domain.exceptions import (
    AgentInvocationError,
    ConfigurationError,
    DevcycleError,
    StoryNotFoundError,
    UnknownPhaseError,
    WorkflowConfigurationError,
)

# Domain models
from devcycle.domain.models import (
    CompressionLevel,
    EpicProgress,
    PhaseResult,
    StoryRecord,
    WorkflowDefinition,
    WorkflowRunResult,
    WorkflowRunStatus,
    WorkflowSessionState,
)

# Infrastructure (explicit import encouraged for dependency injection)
from devcycle.infrastructure.locking import LockManager
from devcycle.infrastructure.status import ProjectStatusLoader, load_project_status

# Documents
from devcycle.schemas import CacheEntry, LockRecord, ProjectStatus

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Application
    "EpicContextAccumulator",
    "WorkflowEventEmitter",
    "WorkflowExecutor",
    "build_status_payload",
    "estimate_tokens",
    # Exceptions
    "AgentInvocationError",
    "ConfigurationError",
    "DevcycleError",
    "StoryNotFoundError",
    "UnknownPhaseError",
    "WorkflowConfigurationError",
    # Models
    "CompressionLevel",
    "EpicProgress",
    "PhaseResult",
    "StoryRecord",
    "WorkflowDefinition",
    "WorkflowRunResult",
    "WorkflowRunStatus",
    "WorkflowSessionState",
    # Infrastructure
    "LockManager",
    "ProjectStatusLoader",
    "load_project_status",
    # Documents
    "CacheEntry",
    "LockRecord",
    "ProjectStatus",
]
