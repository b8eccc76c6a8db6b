"""Workflow event emission service for dashboards and monitors."""

import uuid
from datetime import datetime, timezone
from typing import Any

from devcycle.domain.interfaces import WorkflowEventStoreInterface
from devcycle.domain.workflow_event import WorkflowEvent, WorkflowEventType


class WorkflowEventEmitter:
    """Emits workflow events to a store.

    Provides convenience methods for the events of a workflow run,
    handling ID generation and timestamps.
    """

    def __init__(
        self, event_store: WorkflowEventStoreInterface, workflow_id: str
    ) -> None:
        self._store = event_store
        self.workflow_id = workflow_id

    def _emit(self, event_type: WorkflowEventType, **fields: Any) -> str:
        event = WorkflowEvent(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            workflow_id=self.workflow_id,
            created_at=datetime.now(timezone.utc).isoformat(),
            **fields,
        )
        return self._store.store_event(event)

    def phase_change(
        self, phase: str, story_id: str | None, executor: str | None
    ) -> str:
        """Emit PHASE_CHANGE when a phase starts."""
        return self._emit(
            WorkflowEventType.PHASE_CHANGE,
            phase=phase,
            story_id=story_id,
            executor=executor,
        )

    def agent_spawned(self, agent: str, pid: int | None, task: str | None) -> str:
        """Emit AGENT_SPAWNED when an agent is asked to run."""
        return self._emit(
            WorkflowEventType.AGENT_SPAWNED, agent=agent, pid=pid, task=task
        )

    def agent_completed(
        self, agent: str, pid: int | None, success: bool, duration_ms: int
    ) -> str:
        """Emit AGENT_COMPLETED with the agent's outcome and duration."""
        return self._emit(
            WorkflowEventType.AGENT_COMPLETED,
            agent=agent,
            pid=pid,
            success=success,
            duration_ms=duration_ms,
        )

    def terminal_spawned(self, agent: str, pid: int, task: str | None) -> str:
        """Emit TERMINAL_SPAWNED once an agent's process exists."""
        return self._emit(
            WorkflowEventType.TERMINAL_SPAWNED, agent=agent, pid=pid, task=task
        )

    def error(self, phase: str | None, message: str, recoverable: bool = True) -> str:
        """Emit WORKFLOW_ERROR."""
        return self._emit(
            WorkflowEventType.WORKFLOW_ERROR,
            phase=phase,
            message=message[:500],
            recoverable=recoverable,
        )
