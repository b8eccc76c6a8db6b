"""
Domain exceptions for the orchestration core.

Expected conditions (missing lock, stale cache, not a git repository) are
reported as negative results, not exceptions. These types cover the
remaining cases: configuration errors that are fatal at load time and
failures the caller has to decide about.
"""


class DevcycleError(Exception):
    """Base class for all devcycle errors."""


class ConfigurationError(DevcycleError):
    """Raised when a configuration file is present but invalid."""


class WorkflowConfigurationError(ConfigurationError):
    """
    Raised when a workflow definition is missing or malformed.

    This is a configuration error, not a runtime condition: it is raised
    from load time and never retried.
    """

    def __init__(self, message: str, path: str | None = None):
        """
        Args:
            message: Human-readable error message
            path: Workflow definition file that failed to load, if known
        """
        super().__init__(message)
        self.path = path


class UnknownPhaseError(WorkflowConfigurationError):
    """Raised when a phase name is not declared in the workflow definition."""

    def __init__(self, phase: str):
        super().__init__(f"Unknown workflow phase: {phase!r}")
        self.phase = phase


class StoryNotFoundError(DevcycleError):
    """Raised when a story reference cannot be resolved to a story record."""

    def __init__(self, story_ref: str):
        super().__init__(f"Story not found: {story_ref}")
        self.story_ref = story_ref


class AgentInvocationError(DevcycleError):
    """
    Raised by agent runners when an agent cannot be started or times out.

    The workflow executor converts this into a failed PhaseResult so that
    retry policy stays with the caller.
    """

    def __init__(self, agent: str, message: str, pid: int | None = None):
        super().__init__(f"Agent {agent} failed: {message}")
        self.agent = agent
        self.pid = pid
