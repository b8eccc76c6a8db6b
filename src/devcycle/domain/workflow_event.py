"""Workflow execution event models, consumed by dashboards and monitors."""

from dataclasses import dataclass
from enum import Enum


class WorkflowEventType(str, Enum):
    """Types of workflow execution events."""

    PHASE_CHANGE = "phase_change"
    AGENT_SPAWNED = "agent_spawned"
    AGENT_COMPLETED = "agent_completed"
    TERMINAL_SPAWNED = "terminal_spawned"
    WORKFLOW_ERROR = "workflow_error"


@dataclass(frozen=True)
class WorkflowEvent:
    """Single observable event in a workflow run.

    Only the fields relevant to the event type are populated.
    """

    event_id: str
    event_type: WorkflowEventType
    workflow_id: str
    phase: str | None = None
    story_id: str | None = None
    agent: str | None = None
    executor: str | None = None
    pid: int | None = None
    task: str | None = None
    success: bool | None = None
    duration_ms: int | None = None
    message: str = ""
    recoverable: bool | None = None
    created_at: str = ""  # ISO 8601
