"""Wiring of concrete adapters into the application services."""

from __future__ import annotations

from pathlib import Path

from devcycle.application.workflow_event_emitter import WorkflowEventEmitter
from devcycle.application.workflow_executor import (
    WorkflowExecutor,
    load_workflow_definition,
)
from devcycle.domain.exceptions import ConfigurationError
from devcycle.domain.interfaces import (
    AgentRunnerInterface,
    StoryRepositoryInterface,
    WorkflowEventStoreInterface,
)
from devcycle.infrastructure.agents import SubprocessAgentRunner
from devcycle.infrastructure.config import CoreConfig
from devcycle.infrastructure.persistence import FilesystemWorkflowEventStore
from devcycle.infrastructure.stories import MarkdownStoryRepository


def create_workflow_executor(
    project_root: str | Path,
    config: CoreConfig,
    workflow_path: str | Path | None = None,
    agent_runner: AgentRunnerInterface | None = None,
    story_repository: StoryRepositoryInterface | None = None,
    event_store: WorkflowEventStoreInterface | None = None,
) -> WorkflowExecutor:
    """
    Build a WorkflowExecutor for a project with its workflow already loaded.

    Defaults: markdown stories from the configured stories location, a
    subprocess agent runner from ``workflow.agent_command`` and the JSONL
    dashboard event log.

    Raises:
        ConfigurationError: If no agent runner is given and none is configured
        WorkflowConfigurationError: If the workflow definition is invalid
    """
    root = Path(project_root)
    path = Path(workflow_path) if workflow_path else root / config.workflow.path

    if agent_runner is None:
        if not config.workflow.agent_command:
            raise ConfigurationError(
                "workflow.agent_command is not set in .devcycle/config.yaml"
            )
        agent_runner = SubprocessAgentRunner(config.workflow.agent_command, cwd=root)
    if story_repository is None:
        story_repository = MarkdownStoryRepository(
            root / config.project_status.stories_location
        )
    if event_store is None:
        event_store = FilesystemWorkflowEventStore.for_project(root)

    definition = load_workflow_definition(path)
    executor = WorkflowExecutor(
        project_root=root,
        agent_runner=agent_runner,
        story_repository=story_repository,
        workflow_path=path,
        event_emitter=WorkflowEventEmitter(event_store, definition.workflow_id),
        default_timeout=config.workflow.phase_timeout,
        max_transitions=config.workflow.max_transitions,
    )
    executor.workflow = definition
    return executor
