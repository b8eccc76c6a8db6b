"""
WorkflowExecutor: drives a story through a declarative phase table.

The workflow definition is a YAML document::

    workflow:
      id: development-cycle
      phases:
        1_validation:
          agent: ${story.quality_gate}
          on_success: 2_development
        2_development:
          agent: ${story.executor}
          on_success: 4_quality_gate
          on_failure: 3_self_healing
        ...

Phases are states; ``on_success``/``on_failure`` are transitions; the first
declared phase is the initial state and phases without transitions are
terminal. Agent failures come back as PhaseResult data, never as aborts:
retry policy belongs to the caller.

Observers subscribe with on_phase_change / on_agent_spawn /
on_terminal_spawn. Each subscriber is called in registration order and a
failing subscriber is logged and skipped, so it can never block another
subscriber or the phase itself.
"""

import logging
import re
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import jsonschema
import yaml

from devcycle.application.context_accumulator import EpicContextAccumulator
from devcycle.application.workflow_event_emitter import WorkflowEventEmitter
from devcycle.domain.exceptions import (
    AgentInvocationError,
    StoryNotFoundError,
    UnknownPhaseError,
    WorkflowConfigurationError,
)
from devcycle.domain.interfaces import AgentRunnerInterface, StoryRepositoryInterface
from devcycle.domain.models import (
    AgentOutcome,
    AgentRequest,
    EpicProgress,
    PhaseDefinition,
    PhaseResult,
    StoryRecord,
    WorkflowDefinition,
    WorkflowRunResult,
    WorkflowRunStatus,
    WorkflowSessionState,
)
from devcycle.schemas import validate_workflow

logger = logging.getLogger("devcycle.workflow")

DEFAULT_WORKFLOW_FILE = Path(".devcycle") / "workflows" / "development-cycle.yaml"
DEFAULT_MAX_TRANSITIONS = 50

_STORY_TEMPLATE = re.compile(r"\$\{story\.(\w+)\}")

PhaseChangeCallback = Callable[[str, str, str | None], Any]
AgentSpawnCallback = Callable[[str, str | None], Any]
TerminalSpawnCallback = Callable[[str, int, str | None], Any]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Workflow definition loading
# =============================================================================


def parse_workflow_definition(data: Any, source: str = "<workflow>") -> WorkflowDefinition:
    """
    Build a WorkflowDefinition from a parsed YAML document.

    Raises:
        WorkflowConfigurationError: If the document violates the schema or a
            transition targets an undeclared phase
    """
    try:
        validate_workflow(data)
    except jsonschema.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise WorkflowConfigurationError(
            f"Invalid workflow definition in {source} at {location}: {e.message}",
            path=source,
        ) from e

    workflow = data["workflow"]
    phases = tuple(
        PhaseDefinition(
            name=name,
            agent=entry["agent"],
            on_success=entry.get("on_success"),
            on_failure=entry.get("on_failure"),
            task=entry.get("task"),
            timeout_seconds=entry.get("timeout"),
        )
        for name, entry in workflow["phases"].items()
    )

    declared = {p.name for p in phases}
    for phase in phases:
        for target in (phase.on_success, phase.on_failure):
            if target is not None and target not in declared:
                raise WorkflowConfigurationError(
                    f"Phase {phase.name!r} in {source} transitions to "
                    f"undeclared phase {target!r}",
                    path=source,
                )
    return WorkflowDefinition(workflow_id=workflow["id"], phases=phases)


def load_workflow_definition(path: str | Path) -> WorkflowDefinition:
    """
    Load and validate a workflow definition file.

    Raises:
        WorkflowConfigurationError: If the file is missing, not YAML, or invalid
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise WorkflowConfigurationError(
            f"Workflow definition not found: {path}", path=str(path)
        ) from e
    except yaml.YAMLError as e:
        raise WorkflowConfigurationError(
            f"Invalid YAML in {path}: {e}", path=str(path)
        ) from e
    return parse_workflow_definition(data, str(path))


# =============================================================================
# Executor
# =============================================================================


class WorkflowExecutor:
    """
    Executes workflow phases for one story at a time.

    Owns the WorkflowSessionState of the active run.
    """

    def __init__(
        self,
        project_root: str | Path,
        agent_runner: AgentRunnerInterface,
        story_repository: StoryRepositoryInterface,
        workflow_path: str | Path | None = None,
        event_emitter: WorkflowEventEmitter | None = None,
        default_timeout: float | None = None,
        max_transitions: int = DEFAULT_MAX_TRANSITIONS,
    ):
        """
        Args:
            project_root: Project directory
            agent_runner: Adapter that actually runs agents
            story_repository: Resolves story references to records
            workflow_path: Workflow definition (default under .devcycle/workflows/)
            event_emitter: Optional dashboard event emitter
            default_timeout: Agent timeout for phases that declare none
            max_transitions: Phase executions allowed per run before aborting
        """
        self.project_root = Path(project_root)
        if workflow_path is None:
            self.workflow_path = self.project_root / DEFAULT_WORKFLOW_FILE
        else:
            self.workflow_path = Path(workflow_path)
        self._runner = agent_runner
        self._stories = story_repository
        self._emitter = event_emitter
        self.default_timeout = default_timeout
        self.max_transitions = max_transitions

        self.workflow: WorkflowDefinition | None = None
        self.state: WorkflowSessionState | None = None

        self._phase_change_callbacks: list[PhaseChangeCallback] = []
        self._agent_spawn_callbacks: list[AgentSpawnCallback] = []
        self._terminal_spawn_callbacks: list[TerminalSpawnCallback] = []

    # -------------------------------------------------------------------------
    # Definition
    # -------------------------------------------------------------------------

    def load_workflow(self) -> WorkflowDefinition:
        self.workflow = load_workflow_definition(self.workflow_path)
        logger.debug(
            "Loaded workflow %s with %d phases",
            self.workflow.workflow_id,
            len(self.workflow.phases),
        )
        return self.workflow

    def _require_workflow(self) -> WorkflowDefinition:
        if self.workflow is None:
            return self.load_workflow()
        return self.workflow

    def _require_phase(self, phase: str) -> PhaseDefinition:
        definition = self._require_workflow().get_phase(phase)
        if definition is None:
            raise UnknownPhaseError(phase)
        return definition

    @property
    def initial_phase(self) -> str:
        return self._require_workflow().initial_phase

    def is_terminal(self, phase: str) -> bool:
        return self._require_phase(phase).is_terminal

    def next_phase(self, phase: str, success: bool) -> str | None:
        """Transition target after ``phase``; None when the run ends there."""
        definition = self._require_phase(phase)
        return definition.on_success if success else definition.on_failure

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------

    def on_phase_change(self, callback: PhaseChangeCallback) -> None:
        """Subscribe to phase changes: ``callback(phase, story_id, executor)``."""
        if callable(callback):
            self._phase_change_callbacks.append(callback)

    def on_agent_spawn(self, callback: AgentSpawnCallback) -> None:
        """Subscribe to agent invocations: ``callback(agent, task)``."""
        if callable(callback):
            self._agent_spawn_callbacks.append(callback)

    def on_terminal_spawn(self, callback: TerminalSpawnCallback) -> None:
        """Subscribe to agent processes: ``callback(agent, pid, task)``."""
        if callable(callback):
            self._terminal_spawn_callbacks.append(callback)

    def _notify(self, callbacks: Sequence[Callable[..., Any]], event: str, *args: Any) -> None:
        for callback in list(callbacks):
            try:
                callback(*args)
            except Exception:
                logger.warning("%s callback %r failed", event, callback, exc_info=True)

    def _notify_dashboard(self, method: str, *args: Any) -> None:
        if self._emitter is None:
            return
        try:
            getattr(self._emitter, method)(*args)
        except Exception:
            logger.warning("Dashboard event %s failed", method, exc_info=True)

    def _emit_phase_change(
        self, phase: str, story_id: str, executor: str | None
    ) -> None:
        self._notify(self._phase_change_callbacks, "Phase change", phase, story_id, executor)
        self._notify_dashboard("phase_change", phase, story_id, executor)

    def _emit_agent_spawn(self, agent: str, task: str | None) -> None:
        self._notify(self._agent_spawn_callbacks, "Agent spawn", agent, task)
        self._notify_dashboard("agent_spawned", agent, None, task)

    def _emit_terminal_spawn(self, agent: str, pid: int, task: str | None) -> None:
        self._notify(self._terminal_spawn_callbacks, "Terminal spawn", agent, pid, task)
        self._notify_dashboard("terminal_spawned", agent, pid, task)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def start_session(
        self, story_ref: str, workflow_id: str | None = None
    ) -> WorkflowSessionState:
        now = _now()
        self.state = WorkflowSessionState(
            workflow_id=workflow_id or self._require_workflow().workflow_id,
            current_story=story_ref,
            started_at=now,
            last_updated=now,
        )
        return self.state

    def resolve_agent(self, template: str, story: StoryRecord | None) -> str | None:
        """
        Expand ``${story.<field>}`` placeholders.

        A placeholder the story cannot fill falls back to the session
        executor; None if the agent still cannot be resolved.
        """
        unresolved = False

        def substitute(match: re.Match[str]) -> str:
            nonlocal unresolved
            value = getattr(story, match.group(1), None) if story else None
            if value is None and self.state is not None:
                value = self.state.executor
            if value is None:
                unresolved = True
                return match.group(0)
            return str(value)

        agent = _STORY_TEMPLATE.sub(substitute, template)
        return None if unresolved else agent

    def _load_story(self, story_ref: str) -> tuple[StoryRecord | None, str | None]:
        try:
            return self._stories.load(story_ref), None
        except StoryNotFoundError as e:
            return None, str(e)

    def execute_phase(
        self, phase: str, story_ref: str, context: str = ""
    ) -> PhaseResult:
        """
        Run one phase for a story and record the result in the session state.

        Raises:
            UnknownPhaseError: If ``phase`` is not declared

        Returns:
            PhaseResult; agent and story failures have ``success=False``
        """
        definition = self._require_phase(phase)
        state = self.state or self.start_session(story_ref)
        started = time.monotonic()

        story, error = self._load_story(story_ref)
        story_id = story.id if story else story_ref
        if story is not None:
            state.executor = story.executor or state.executor
            state.quality_gate = story.quality_gate or state.quality_gate

        agent = self.resolve_agent(definition.agent, story)
        if agent is None and error is None:
            error = f"Cannot resolve agent {definition.agent!r} for story {story_id}"

        if state.current_phase == phase:
            state.attempt_count += 1
        else:
            state.current_phase = phase
            state.attempt_count = 1
        state.current_story = story_id
        state.last_updated = _now()

        self._emit_phase_change(phase, story_id, agent or state.executor)

        task = definition.task or phase
        if error is not None or agent is None:
            outcome = AgentOutcome(success=False, error=error)
            agent = agent or definition.agent
        else:
            outcome = self._invoke_agent(agent, definition, story_id, task, context)

        result = PhaseResult(
            phase=phase,
            success=outcome.success,
            agent=agent,
            story_id=story_id,
            output=outcome.output,
            error=outcome.error,
            pid=outcome.pid,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        state.phase_results[phase] = result
        state.last_updated = _now()

        if result.success:
            logger.info("Phase %s passed for %s (%s)", phase, story_id, agent)
        else:
            logger.info("Phase %s failed for %s: %s", phase, story_id, result.error)
            self._notify_dashboard("error", phase, result.error or "phase failed", True)
        return result

    def _invoke_agent(
        self,
        agent: str,
        definition: PhaseDefinition,
        story_id: str,
        task: str,
        context: str,
    ) -> AgentOutcome:
        request = AgentRequest(
            agent=agent,
            phase=definition.name,
            story_id=story_id,
            task=task,
            context=context,
            timeout_seconds=definition.timeout_seconds or self.default_timeout,
        )
        self._emit_agent_spawn(agent, task)

        def on_spawn(pid: int) -> None:
            self._emit_terminal_spawn(agent, pid, task)

        started = time.monotonic()
        try:
            outcome = self._runner.run(request, on_spawn)
        except AgentInvocationError as e:
            outcome = AgentOutcome(success=False, error=str(e), pid=e.pid)
        except OSError as e:
            outcome = AgentOutcome(success=False, error=f"Agent {agent} failed: {e}")
        self._notify_dashboard(
            "agent_completed",
            agent,
            outcome.pid,
            outcome.success,
            int((time.monotonic() - started) * 1000),
        )
        return outcome

    def build_context(
        self,
        progress: EpicProgress | None,
        story_n: int | None = None,
        files_to_modify: Sequence[str] | None = None,
        executor: str | None = None,
    ) -> str:
        """Accumulated context of the epic's earlier stories."""
        if progress is None:
            return ""
        if story_n is None:
            story_n = len(progress.stories_done)
        return EpicContextAccumulator(progress).build_accumulated_context(
            progress.epic_id, story_n, files_to_modify, executor
        )

    def run(
        self,
        story_ref: str,
        progress: EpicProgress | None = None,
        story_n: int | None = None,
        files_to_modify: Sequence[str] | None = None,
    ) -> WorkflowRunResult:
        """
        Walk the workflow from its initial phase until a terminal phase, a
        failure without ``on_failure``, or ``max_transitions`` executions.

        The session state is discarded when the run ends.
        """
        workflow = self._require_workflow()
        state = self.start_session(story_ref, workflow.workflow_id)

        story, _ = self._load_story(story_ref)
        if files_to_modify is None and story is not None:
            files_to_modify = story.files_modified
        state.accumulated_context = self.build_context(
            progress,
            story_n,
            files_to_modify,
            executor=story.executor if story else None,
        )

        phase = workflow.initial_phase
        results: list[PhaseResult] = []
        status = WorkflowRunStatus.ABORTED
        try:
            for _ in range(self.max_transitions):
                result = self.execute_phase(phase, story_ref, state.accumulated_context)
                results.append(result)
                target = self.next_phase(phase, result.success)
                if target is None:
                    status = (
                        WorkflowRunStatus.COMPLETED
                        if result.success
                        else WorkflowRunStatus.FAILED
                    )
                    break
                phase = target
            else:
                logger.warning(
                    "Workflow %s aborted for %s after %d transitions",
                    workflow.workflow_id,
                    story_ref,
                    self.max_transitions,
                )
                self._notify_dashboard(
                    "error",
                    phase,
                    f"Aborted after {self.max_transitions} transitions",
                    False,
                )
        finally:
            self.state = None

        return WorkflowRunResult(
            status=status,
            final_phase=phase,
            phase_results=tuple(results),
            story_id=story.id if story else story_ref,
        )
