"""
Domain models for the orchestration core.

Pure data structures for stories, epic progress, workflow definitions and
phase results. All models are immutable (frozen dataclasses) except the
per-run WorkflowSessionState, which the workflow executor mutates in place.
"""

from dataclasses import dataclass, field
from enum import Enum

# =============================================================================
# STORY MODEL
# =============================================================================


@dataclass(frozen=True)
class StoryRecord:
    """A completed (or in-flight) story, the unit of epic history.

    Every field except ``id`` is optional; absent fields are omitted when
    the story is rendered into accumulated context.
    """

    id: str
    title: str | None = None
    executor: str | None = None
    quality_gate: str | None = None
    status: str | None = None
    acceptance_criteria: str | None = None
    files_modified: tuple[str, ...] | None = None
    dev_notes: str | None = None


class CompressionLevel(str, Enum):
    """How much of a story record is retained in accumulated context."""

    FULL_DETAIL = "full_detail"
    METADATA_PLUS_FILES = "metadata_plus_files"
    METADATA_ONLY = "metadata_only"


@dataclass(frozen=True)
class EpicProgress:
    """Progress of an epic: the stories done so far, oldest first.

    Entries in ``stories_done`` may be bare story ids when no record is
    available for them.
    """

    epic_id: str
    epic_title: str | None = None
    stories_done: tuple[StoryRecord | str, ...] = ()
    executor_distribution: tuple[tuple[str, int], ...] = ()


# =============================================================================
# WORKFLOW DEFINITION
# =============================================================================


@dataclass(frozen=True)
class PhaseDefinition:
    """One phase of a declarative workflow.

    ``agent`` may be a template such as ``${story.executor}`` that is
    resolved against story metadata at execution time.
    """

    name: str
    agent: str
    on_success: str | None = None
    on_failure: str | None = None
    task: str | None = None
    timeout_seconds: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.on_success is None and self.on_failure is None


@dataclass(frozen=True)
class WorkflowDefinition:
    """Ordered phase table. The first declared phase is the initial state."""

    workflow_id: str
    phases: tuple[PhaseDefinition, ...]

    @property
    def initial_phase(self) -> str:
        return self.phases[0].name

    @property
    def phase_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.phases)

    def get_phase(self, name: str) -> PhaseDefinition | None:
        for phase in self.phases:
            if phase.name == name:
                return phase
        return None


# =============================================================================
# EXECUTION MODEL
# =============================================================================


@dataclass(frozen=True)
class AgentRequest:
    """What the workflow executor asks an agent runner to do."""

    agent: str
    phase: str
    story_id: str
    task: str | None = None
    context: str = ""
    timeout_seconds: float | None = None


@dataclass(frozen=True)
class AgentOutcome:
    """What an agent runner reports back."""

    success: bool
    output: str = ""
    error: str | None = None
    pid: int | None = None


@dataclass(frozen=True)
class PhaseResult:
    """Result of executing one phase. Failures are data, not exceptions."""

    phase: str
    success: bool
    agent: str
    story_id: str
    output: str = ""
    error: str | None = None
    pid: int | None = None
    duration_ms: int = 0


class WorkflowRunStatus(Enum):
    """Terminal outcome of a workflow run."""

    COMPLETED = "completed"  # Reached a terminal phase
    FAILED = "failed"  # A phase failed with no on_failure transition
    ABORTED = "aborted"  # Transition budget exhausted


@dataclass
class WorkflowSessionState:
    """Mutable state of a single workflow run.

    Owned by the workflow executor; one instance per active run.
    """

    workflow_id: str
    current_story: str
    current_phase: str | None = None
    executor: str | None = None
    quality_gate: str | None = None
    attempt_count: int = 0
    started_at: str = ""
    last_updated: str = ""
    phase_results: dict[str, PhaseResult] = field(default_factory=dict)
    accumulated_context: str = ""


@dataclass(frozen=True)
class WorkflowRunResult:
    """Outcome of WorkflowExecutor.run()."""

    status: WorkflowRunStatus
    final_phase: str | None
    phase_results: tuple[PhaseResult, ...]
    story_id: str

    @property
    def success(self) -> bool:
        return self.status == WorkflowRunStatus.COMPLETED
