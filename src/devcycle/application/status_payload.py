"""Payload served to status consumers (polling endpoints, event streams)."""

from collections.abc import Mapping
from typing import Any

from devcycle.domain.models import WorkflowSessionState
from devcycle.schemas import ProjectStatus

INACTIVE_MESSAGE = "Workflow is not running"


def session_summary(session: WorkflowSessionState) -> dict[str, Any]:
    """JSON-ready view of the active session, without phase outputs."""
    return {
        "workflowId": session.workflow_id,
        "currentPhase": session.current_phase,
        "currentStory": session.current_story,
        "executor": session.executor,
        "qualityGate": session.quality_gate,
        "attemptCount": session.attempt_count,
        "startedAt": session.started_at,
        "lastUpdated": session.last_updated,
        "phaseResults": {
            phase: {"success": result.success, "agent": result.agent}
            for phase, result in session.phase_results.items()
        },
    }


def build_status_payload(
    status: ProjectStatus | Mapping[str, Any] | None,
    session: WorkflowSessionState | None = None,
    error: str | None = None,
) -> dict[str, Any]:
    """
    Combine the cached status document with an ``active`` flag.

    The status document is passed through verbatim under ``status``.
    With neither a status nor a session the payload only says the workflow
    is not running.
    """
    if status is None and session is None:
        payload: dict[str, Any] = {"active": False, "message": INACTIVE_MESSAGE}
    else:
        if isinstance(status, ProjectStatus):
            document = status.to_document()
        else:
            document = dict(status or {})
        payload = {"active": session is not None, "status": document}
        if session is not None:
            payload["session"] = session_summary(session)
    if error:
        payload["error"] = error
    return payload
