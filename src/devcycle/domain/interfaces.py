"""
Domain interfaces (Ports) for the orchestration core.

These abstract base classes define the contracts that adapters must satisfy.
They have no external dependencies.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from devcycle.domain.models import AgentOutcome, AgentRequest, StoryRecord
    from devcycle.domain.workflow_event import WorkflowEvent, WorkflowEventType


class AgentRunnerInterface(ABC):
    """
    Port for invoking an agent on behalf of a workflow phase.

    Implementations may run the agent in-process or as an independent OS
    process. ``on_spawn`` is called with the PID as soon as a separate
    process exists, before the agent finishes.

    Runners report ordinary agent failure through ``AgentOutcome.success``.
    They may raise AgentInvocationError when the agent cannot be started
    or exceeds its timeout.
    """

    @abstractmethod
    def run(
        self,
        request: "AgentRequest",
        on_spawn: "Callable[[int], None] | None" = None,
    ) -> "AgentOutcome":
        """
        Run an agent to completion.

        Args:
            request: Agent, phase, story and accumulated context
            on_spawn: Called with the child PID once the process exists

        Returns:
            AgentOutcome describing success or failure
        """


class StoryRepositoryInterface(ABC):
    """Port for loading story records by reference (id or path)."""

    @abstractmethod
    def load(self, story_ref: str) -> "StoryRecord":
        """
        Load a story.

        Raises:
            StoryNotFoundError: If the reference cannot be resolved
        """


class WorkflowEventStoreInterface(ABC):
    """Port for persisting and querying workflow events."""

    @abstractmethod
    def store_event(self, event: "WorkflowEvent") -> str:
        """Store an event and return its ID."""

    @abstractmethod
    def get_events(
        self,
        workflow_id: str,
        event_type: "WorkflowEventType | None" = None,
        story_id: str | None = None,
    ) -> list["WorkflowEvent"]:
        """Get events for a workflow, optionally filtered, oldest first."""
