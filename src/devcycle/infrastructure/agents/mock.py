"""
Mock agent runner for testing without real agents.

Returns predefined outcomes in sequence.
"""

from collections.abc import Callable

from devcycle.domain.exceptions import AgentInvocationError
from devcycle.domain.interfaces import AgentRunnerInterface
from devcycle.domain.models import AgentOutcome, AgentRequest


class MockAgentRunner(AgentRunnerInterface):
    """Returns predefined outcomes for testing.

    An outcome may be an AgentOutcome, a bool (success flag) or an
    exception instance to raise.
    """

    def __init__(
        self,
        outcomes: list[AgentOutcome | bool | Exception],
        pid: int | None = None,
    ):
        """
        Args:
            outcomes: Outcomes to return in sequence
            pid: If set, reported to ``on_spawn`` before each outcome
        """
        self._outcomes = outcomes
        self._pid = pid
        self._call_count = 0
        self.requests: list[AgentRequest] = []

    def run(
        self,
        request: AgentRequest,
        on_spawn: Callable[[int], None] | None = None,
    ) -> AgentOutcome:
        """Return the next predefined outcome."""
        if self._call_count >= len(self._outcomes):
            raise AgentInvocationError(request.agent, "MockAgentRunner exhausted outcomes")

        outcome = self._outcomes[self._call_count]
        self._call_count += 1
        self.requests.append(request)

        if self._pid is not None and on_spawn is not None:
            on_spawn(self._pid)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, bool):
            return AgentOutcome(
                success=outcome,
                output=f"{request.agent} {request.phase}",
                error=None if outcome else f"{request.phase} failed",
                pid=self._pid,
            )
        return outcome

    @property
    def call_count(self) -> int:
        """Number of times run() has been called."""
        return self._call_count

    def reset(self) -> None:
        """Reset the call counter to reuse outcomes."""
        self._call_count = 0
        self.requests.clear()
