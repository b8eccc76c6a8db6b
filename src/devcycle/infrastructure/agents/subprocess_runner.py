"""
Runs each agent as an independent OS process.

The command is an argument template; ``{agent}``, ``{phase}``, ``{story}``
and ``{task}`` are substituted per request; other braces pass through
untouched. The full request (including accumulated context) is written to
the child's stdin as JSON, and the same identifiers are exported as
``DEVCYCLE_*`` environment variables.
Exit status 0 means success.
"""

import json
import logging
import os
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import asdict
from pathlib import Path

from devcycle.domain.exceptions import AgentInvocationError
from devcycle.domain.interfaces import AgentRunnerInterface
from devcycle.domain.models import AgentOutcome, AgentRequest

logger = logging.getLogger("devcycle.agents")

_MAX_ERROR_CHARS = 2000


class SubprocessAgentRunner(AgentRunnerInterface):
    """Agent runner backed by ``subprocess.Popen``."""

    def __init__(
        self,
        command: Sequence[str],
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ):
        """
        Args:
            command: Argument template, e.g. ["agent-cli", "--as", "{agent}"]
            cwd: Working directory for the child (default: current directory)
            env: Extra environment variables for the child
        """
        if not command:
            raise ValueError("SubprocessAgentRunner requires a command")
        self.command = list(command)
        self.cwd = Path(cwd) if cwd else None
        self.env = dict(env or {})

    def _build_args(self, request: AgentRequest) -> list[str]:
        values = {
            "agent": request.agent,
            "phase": request.phase,
            "story": request.story_id,
            "task": request.task or "",
        }
        args = []
        for arg in self.command:
            for key, value in values.items():
                arg = arg.replace("{" + key + "}", value)
            args.append(arg)
        return args

    def _build_env(self, request: AgentRequest) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self.env)
        env.update(
            {
                "DEVCYCLE_AGENT": request.agent,
                "DEVCYCLE_PHASE": request.phase,
                "DEVCYCLE_STORY": request.story_id,
            }
        )
        return env

    def run(
        self,
        request: AgentRequest,
        on_spawn: Callable[[int], None] | None = None,
    ) -> AgentOutcome:
        args = self._build_args(request)
        try:
            proc = subprocess.Popen(
                args,
                cwd=str(self.cwd) if self.cwd else None,
                env=self._build_env(request),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise AgentInvocationError(request.agent, f"cannot start {args[0]}: {e}") from e

        logger.debug("Spawned %s for %s (pid %d)", request.agent, request.phase, proc.pid)
        if on_spawn is not None:
            on_spawn(proc.pid)

        try:
            stdout, stderr = proc.communicate(
                input=json.dumps(asdict(request)), timeout=request.timeout_seconds
            )
        except subprocess.TimeoutExpired as e:
            proc.kill()
            proc.communicate()
            raise AgentInvocationError(
                request.agent,
                f"timed out after {request.timeout_seconds}s",
                pid=proc.pid,
            ) from e

        success = proc.returncode == 0
        error = None
        if not success:
            detail = stderr.strip()[-_MAX_ERROR_CHARS:] or f"exit status {proc.returncode}"
            error = f"{request.agent} exited with status {proc.returncode}: {detail}"
        return AgentOutcome(success=success, output=stdout, error=error, pid=proc.pid)
