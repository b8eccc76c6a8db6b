"""Tests for the status payload served to consumers."""

from devcycle.application.status_payload import (
    INACTIVE_MESSAGE,
    build_status_payload,
    session_summary,
)
from devcycle.domain.models import PhaseResult, WorkflowSessionState
from devcycle.schemas import ProjectStatus


def make_session() -> WorkflowSessionState:
    session = WorkflowSessionState(
        workflow_id="development-cycle",
        current_story="story-12.3",
        current_phase="4_quality_gate",
        executor="@dev",
        quality_gate="@qa",
        attempt_count=2,
        started_at="2024-01-01T00:00:00+00:00",
        last_updated="2024-01-01T00:05:00+00:00",
    )
    session.phase_results["2_development"] = PhaseResult(
        phase="2_development",
        success=True,
        agent="@dev",
        story_id="story-12.3",
        output="long agent output",
    )
    return session


class TestBuildStatusPayload:
    """Tests for build_status_payload()."""

    def test_nothing_known(self):
        assert build_status_payload(None) == {
            "active": False,
            "message": INACTIVE_MESSAGE,
        }

    def test_status_without_session(self):
        status = ProjectStatus(is_git_repo=True, branch="main")

        payload = build_status_payload(status)

        assert payload["active"] is False
        assert payload["status"]["branch"] == "main"
        assert payload["status"]["isGitRepo"] is True
        assert "session" not in payload

    def test_status_document_passed_through_verbatim(self):
        document = {"branch": "main", "custom": {"nested": 1}}

        payload = build_status_payload(document)

        assert payload["status"] == document

    def test_active_session(self):
        payload = build_status_payload(ProjectStatus(), make_session())

        assert payload["active"] is True
        assert payload["session"]["currentPhase"] == "4_quality_gate"

    def test_session_without_status(self):
        payload = build_status_payload(None, make_session())

        assert payload["active"] is True
        assert payload["status"] == {}

    def test_error(self):
        payload = build_status_payload(None, error="cache unreadable")

        assert payload["error"] == "cache unreadable"
        assert payload["active"] is False


class TestSessionSummary:
    """Tests for session_summary()."""

    def test_fields(self):
        summary = session_summary(make_session())

        assert summary["workflowId"] == "development-cycle"
        assert summary["currentStory"] == "story-12.3"
        assert summary["attemptCount"] == 2
        assert summary["qualityGate"] == "@qa"

    def test_phase_results_omit_output(self):
        summary = session_summary(make_session())

        assert summary["phaseResults"] == {
            "2_development": {"success": True, "agent": "@dev"}
        }
