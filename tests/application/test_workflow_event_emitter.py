"""Tests for WorkflowEventEmitter."""

from devcycle.application.workflow_event_emitter import WorkflowEventEmitter
from devcycle.domain.workflow_event import WorkflowEventType
from devcycle.infrastructure.persistence.workflow_events import (
    InMemoryWorkflowEventStore,
)


class TestWorkflowEventEmitter:
    """Tests for WorkflowEventEmitter."""

    def test_phase_change_creates_event(self):
        """phase_change creates PHASE_CHANGE event."""
        store = InMemoryWorkflowEventStore()
        emitter = WorkflowEventEmitter(store, "wf-1")

        emitter.phase_change("2_development", "story-1", "@dev")

        events = store.get_events("wf-1")
        assert len(events) == 1
        assert events[0].event_type == WorkflowEventType.PHASE_CHANGE
        assert events[0].phase == "2_development"
        assert events[0].story_id == "story-1"
        assert events[0].executor == "@dev"
        assert events[0].workflow_id == "wf-1"

    def test_agent_spawned_creates_event(self):
        store = InMemoryWorkflowEventStore()
        emitter = WorkflowEventEmitter(store, "wf-1")

        emitter.agent_spawned("@dev", None, "implement")

        events = store.get_events("wf-1", WorkflowEventType.AGENT_SPAWNED)
        assert len(events) == 1
        assert events[0].agent == "@dev"
        assert events[0].pid is None
        assert events[0].task == "implement"

    def test_agent_completed_creates_event(self):
        """agent_completed records outcome and duration."""
        store = InMemoryWorkflowEventStore()
        emitter = WorkflowEventEmitter(store, "wf-1")

        emitter.agent_completed("@qa", 4321, success=False, duration_ms=1500)

        events = store.get_events("wf-1")
        assert events[0].event_type == WorkflowEventType.AGENT_COMPLETED
        assert events[0].pid == 4321
        assert events[0].success is False
        assert events[0].duration_ms == 1500

    def test_terminal_spawned_creates_event(self):
        store = InMemoryWorkflowEventStore()
        emitter = WorkflowEventEmitter(store, "wf-1")

        emitter.terminal_spawned("@dev", 99, "implement")

        events = store.get_events("wf-1")
        assert events[0].event_type == WorkflowEventType.TERMINAL_SPAWNED
        assert events[0].pid == 99

    def test_error_creates_event(self):
        """error creates WORKFLOW_ERROR with recoverable flag."""
        store = InMemoryWorkflowEventStore()
        emitter = WorkflowEventEmitter(store, "wf-1")

        emitter.error("4_quality_gate", "tests failed", recoverable=False)

        events = store.get_events("wf-1")
        assert events[0].event_type == WorkflowEventType.WORKFLOW_ERROR
        assert events[0].phase == "4_quality_gate"
        assert events[0].message == "tests failed"
        assert events[0].recoverable is False

    def test_error_truncates_long_message(self):
        """error truncates the message to 500 chars."""
        store = InMemoryWorkflowEventStore()
        emitter = WorkflowEventEmitter(store, "wf-1")

        emitter.error("phase", "x" * 1000)

        events = store.get_events("wf-1")
        assert len(events[0].message) == 500

    def test_returns_event_id(self):
        store = InMemoryWorkflowEventStore()
        emitter = WorkflowEventEmitter(store, "wf-1")

        event_id = emitter.phase_change("p", None, None)

        assert store.get_events("wf-1")[0].event_id == event_id

    def test_events_have_unique_ids_and_timestamps(self):
        """Each event gets its own UUID and a created_at timestamp."""
        store = InMemoryWorkflowEventStore()
        emitter = WorkflowEventEmitter(store, "wf-1")

        emitter.phase_change("a", "s1", "@dev")
        emitter.phase_change("b", "s1", "@dev")

        events = store.get_events("wf-1")
        assert events[0].event_id != events[1].event_id
        assert all(e.created_at for e in events)
