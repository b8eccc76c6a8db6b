"""
Infrastructure layer for the orchestration core.

Adapters for the filesystem, git and agent processes.
"""

from devcycle.infrastructure.agents import MockAgentRunner, SubprocessAgentRunner
from devcycle.infrastructure.config import CoreConfig, load_core_config
from devcycle.infrastructure.locking import LockManager
from devcycle.infrastructure.persistence import (
    FilesystemWorkflowEventStore,
    InMemoryWorkflowEventStore,
)
from devcycle.infrastructure.status import GitClient, ProjectStatusLoader
from devcycle.infrastructure.stories import (
    InMemoryStoryRepository,
    MarkdownStoryRepository,
    load_epic_progress,
)

__all__ = [
    # Agents
    "MockAgentRunner",
    "SubprocessAgentRunner",
    # Configuration
    "CoreConfig",
    "load_core_config",
    # Locks and status
    "GitClient",
    "LockManager",
    "ProjectStatusLoader",
    # Persistence
    "FilesystemWorkflowEventStore",
    "InMemoryWorkflowEventStore",
    # Stories
    "InMemoryStoryRepository",
    "MarkdownStoryRepository",
    "load_epic_progress",
]
