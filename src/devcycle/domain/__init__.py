"""
Domain layer for the orchestration core.

Contains models, ports and exceptions with no external dependencies.
"""

from devcycle.domain.exceptions import (
    AgentInvocationError,
    ConfigurationError,
    DevcycleError,
    StoryNotFoundError,
    UnknownPhaseError,
    WorkflowConfigurationError,
)
from devcycle.domain.interfaces import (
    AgentRunnerInterface,
    StoryRepositoryInterface,
    WorkflowEventStoreInterface,
)
from devcycle.domain.models import (
    AgentOutcome,
    AgentRequest,
    CompressionLevel,
    EpicProgress,
    PhaseDefinition,
    PhaseResult,
    StoryRecord,
    WorkflowDefinition,
    WorkflowRunResult,
    WorkflowRunStatus,
    WorkflowSessionState,
)
from devcycle.domain.workflow_event import WorkflowEvent, WorkflowEventType

__all__ = [
    # Exceptions
    "AgentInvocationError",
    "ConfigurationError",
    "DevcycleError",
    "StoryNotFoundError",
    "UnknownPhaseError",
    "WorkflowConfigurationError",
    # Interfaces
    "AgentRunnerInterface",
    "StoryRepositoryInterface",
    "WorkflowEventStoreInterface",
    # Models
    "AgentOutcome",
    "AgentRequest",
    "CompressionLevel",
    "EpicProgress",
    "PhaseDefinition",
    "PhaseResult",
    "StoryRecord",
    "WorkflowDefinition",
    "WorkflowRunResult",
    "WorkflowRunStatus",
    "WorkflowSessionState",
    # Events
    "WorkflowEvent",
    "WorkflowEventType",
]
