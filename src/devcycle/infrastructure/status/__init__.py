"""Project status cache and the git queries behind it."""

from devcycle.infrastructure.status.git import GitClient, WorktreeInfo
from devcycle.infrastructure.status.project_status import (
    ACTIVE_SESSION_TTL,
    IDLE_TTL,
    LOCK_STALE_MS,
    LOCK_TIMEOUT_MS,
    ProjectStatusLoader,
    format_status_display,
    hash_string,
    load_project_status,
)

__all__ = [
    "ACTIVE_SESSION_TTL",
    "IDLE_TTL",
    "LOCK_STALE_MS",
    "LOCK_TIMEOUT_MS",
    "GitClient",
    "ProjectStatusLoader",
    "WorktreeInfo",
    "format_status_display",
    "hash_string",
    "load_project_status",
]
