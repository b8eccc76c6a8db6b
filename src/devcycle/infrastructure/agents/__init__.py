"""Agent runner adapters."""

from devcycle.infrastructure.agents.mock import MockAgentRunner
from devcycle.infrastructure.agents.subprocess_runner import SubprocessAgentRunner

__all__ = ["MockAgentRunner", "SubprocessAgentRunner"]
