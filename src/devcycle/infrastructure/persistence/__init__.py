"""Persistence adapters."""

from devcycle.infrastructure.persistence.workflow_events import (
    DASHBOARD_EVENTS_FILE,
    FilesystemWorkflowEventStore,
    InMemoryWorkflowEventStore,
)

__all__ = [
    "DASHBOARD_EVENTS_FILE",
    "FilesystemWorkflowEventStore",
    "InMemoryWorkflowEventStore",
]
