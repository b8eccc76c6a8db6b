"""Thin git adapter used by the project status cache.

Every query degrades to a neutral default (None, empty list, "unknown")
when git is missing, the directory is not a repository, or the command
times out. Callers never see subprocess exceptions.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger("devcycle.status.git")

DEFAULT_GIT_TIMEOUT = 5.0
MANAGED_WORKTREES_DIR = Path(".devcycle") / "worktrees"


@dataclass(frozen=True)
class WorktreeInfo:
    """A managed story worktree as reported by ``git worktree list``."""

    story_id: str
    path: str
    branch: str | None
    created_at: str | None
    uncommitted_changes: int
    status: str


class GitClient:
    """Run read-only git queries in a working directory."""

    def __init__(self, cwd: str | Path, timeout: float = DEFAULT_GIT_TIMEOUT):
        self.cwd = Path(cwd)
        self.timeout = timeout

    def _run(self, *args: str, cwd: Path | None = None) -> str | None:
        """Run ``git <args>``; stdout on success, None on any failure."""
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=str(cwd or self.cwd),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            logger.debug("git %s failed: %s", " ".join(args), e.stderr.strip())
            return None
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug("git %s unavailable: %s", " ".join(args), e)
            return None
        return result.stdout

    # -------------------------------------------------------------------------
    # Repository identity
    # -------------------------------------------------------------------------

    def is_git_repository(self) -> bool:
        out = self._run("rev-parse", "--is-inside-work-tree")
        return out is not None and out.strip() == "true"

    def _resolve_dir(self, flag: str) -> Path | None:
        out = self._run("rev-parse", flag)
        if out is None or not out.strip():
            return None
        path = Path(out.strip())
        if not path.is_absolute():
            path = self.cwd / path
        return path.resolve()

    def resolve_git_dir(self) -> Path | None:
        """Absolute path of this working tree's git directory."""
        return self._resolve_dir("--git-dir")

    def resolve_git_common_dir(self) -> Path | None:
        """Absolute path of the git directory shared by all worktrees."""
        return self._resolve_dir("--git-common-dir")

    # -------------------------------------------------------------------------
    # Status queries
    # -------------------------------------------------------------------------

    def get_branch(self) -> str:
        """Current branch, falling back to rev-parse for older git."""
        out = self._run("branch", "--show-current")
        if out and out.strip():
            return out.strip()
        out = self._run("rev-parse", "--abbrev-ref", "HEAD")
        if out and out.strip():
            return out.strip()
        return "unknown"

    def get_modified_files(self, limit: int) -> tuple[list[str], int]:
        """
        Paths with uncommitted changes.

        Returns:
            (first ``limit`` paths, total number of changed paths)
        """
        out = self._run("status", "--porcelain")
        if not out:
            return [], 0
        files = []
        for line in out.splitlines():
            if len(line) < 4:
                continue
            path = line[3:]
            if " -> " in path:
                path = path.split(" -> ", 1)[1]
            files.append(path.strip('"'))
        return files[:limit], len(files)

    def get_recent_commits(self, limit: int) -> list[str]:
        """Subjects of the last ``limit`` commits, newest first."""
        out = self._run("log", f"-{limit}", "--oneline")
        if not out:
            return []
        commits = []
        for line in out.splitlines():
            line = line.strip()
            if not line:
                continue
            parts = line.split(" ", 1)
            commits.append(parts[1] if len(parts) == 2 else parts[0])
        return commits

    def count_uncommitted_changes(self, path: str | Path) -> int:
        out = self._run("status", "--porcelain", cwd=Path(path))
        if not out:
            return 0
        return len([line for line in out.splitlines() if line.strip()])

    def list_worktrees(self) -> list[WorktreeInfo]:
        """Story worktrees managed under ``.devcycle/worktrees/``."""
        out = self._run("worktree", "list", "--porcelain")
        if not out:
            return []
        managed_root = (self.cwd / MANAGED_WORKTREES_DIR).resolve()
        worktrees = []
        for block in out.strip().split("\n\n"):
            fields: dict[str, str] = {}
            for line in block.splitlines():
                key, _, value = line.partition(" ")
                fields[key] = value
            raw_path = fields.get("worktree")
            if not raw_path:
                continue
            path = Path(raw_path).resolve()
            if path.parent != managed_root:
                continue
            branch = fields.get("branch")
            if branch and branch.startswith("refs/heads/"):
                branch = branch[len("refs/heads/") :]
            stale = "prunable" in fields or not path.exists()
            worktrees.append(
                WorktreeInfo(
                    story_id=path.name,
                    path=str(path),
                    branch=branch,
                    created_at=_ctime_iso(path),
                    uncommitted_changes=(
                        0 if stale else self.count_uncommitted_changes(path)
                    ),
                    status="stale" if stale else "active",
                )
            )
        return worktrees


def _ctime_iso(path: Path) -> str | None:
    try:
        ctime = path.stat().st_ctime
    except OSError:
        return None
    return datetime.fromtimestamp(ctime, timezone.utc).isoformat()
