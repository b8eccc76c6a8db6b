"""Workflow event store implementations."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from devcycle.domain.interfaces import WorkflowEventStoreInterface
from devcycle.domain.workflow_event import WorkflowEvent, WorkflowEventType

DASHBOARD_EVENTS_FILE = Path(".devcycle") / "dashboard" / "events.jsonl"


class InMemoryWorkflowEventStore(WorkflowEventStoreInterface):
    """In-memory implementation for testing."""

    def __init__(self) -> None:
        self._events: list[WorkflowEvent] = []

    def store_event(self, event: WorkflowEvent) -> str:
        self._events.append(event)
        return event.event_id

    def get_events(
        self,
        workflow_id: str,
        event_type: WorkflowEventType | None = None,
        story_id: str | None = None,
    ) -> list[WorkflowEvent]:
        return sorted(
            [
                e
                for e in self._events
                if e.workflow_id == workflow_id
                and (event_type is None or e.event_type == event_type)
                and (story_id is None or e.story_id == story_id)
            ],
            key=lambda e: e.created_at,
        )


class FilesystemWorkflowEventStore(WorkflowEventStoreInterface):
    """Append-only JSONL event log, one line per event.

    Used when no live dashboard is attached; dashboards can tail the file.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def for_project(cls, project_root: str | Path) -> "FilesystemWorkflowEventStore":
        return cls(Path(project_root) / DASHBOARD_EVENTS_FILE)

    def store_event(self, event: WorkflowEvent) -> str:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(self._event_to_dict(event)) + "\n")
        return event.event_id

    def get_events(
        self,
        workflow_id: str,
        event_type: WorkflowEventType | None = None,
        story_id: str | None = None,
    ) -> list[WorkflowEvent]:
        if not self.path.exists():
            return []
        events: list[WorkflowEvent] = []
        with open(self.path, encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                event = self._dict_to_event(json.loads(line))
                if event.workflow_id != workflow_id:
                    continue
                if event_type and event.event_type != event_type:
                    continue
                if story_id and event.story_id != story_id:
                    continue
                events.append(event)
        return sorted(events, key=lambda e: e.created_at)

    def _event_to_dict(self, event: WorkflowEvent) -> dict[str, Any]:
        """Serialize event to dict."""
        data = asdict(event)
        data["event_type"] = event.event_type.value
        return data

    def _dict_to_event(self, data: dict[str, Any]) -> WorkflowEvent:
        """Deserialize dict to event."""
        return WorkflowEvent(
            event_id=data["event_id"],
            event_type=WorkflowEventType(data["event_type"]),
            workflow_id=data["workflow_id"],
            phase=data.get("phase"),
            story_id=data.get("story_id"),
            agent=data.get("agent"),
            executor=data.get("executor"),
            pid=data.get("pid"),
            task=data.get("task"),
            success=data.get("success"),
            duration_ms=data.get("duration_ms"),
            message=data.get("message", ""),
            recoverable=data.get("recoverable"),
            created_at=data.get("created_at", ""),
        )
