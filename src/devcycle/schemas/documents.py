"""Typed schemas for the documents the core writes to disk.

Lock files and status cache files are shared between processes, so every
read goes through these models. A document that fails validation is
treated the same as a corrupt file.

On-disk keys are camelCase where other tools already consume them (the
cache entry and status document); Python attribute names are snake_case.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Lock files
# =============================================================================


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    """Parse a timestamp written by utc_timestamp() (or any ISO-8601 form)."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class LockRecord(BaseModel):
    """Contents of a lock file."""

    resource: str
    pid: int
    owner: str
    created_at: str = Field(description="ISO-8601 UTC creation time")
    ttl_seconds: int = Field(gt=0)

    def age_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - parse_timestamp(self.created_at)).total_seconds()

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.age_seconds(now) > self.ttl_seconds


# =============================================================================
# Project status cache
# =============================================================================


class WorktreeStatus(BaseModel):
    """A story worktree managed under .devcycle/worktrees/."""

    model_config = ConfigDict(populate_by_name=True)

    path: str
    branch: str | None = None
    created_at: str | None = Field(default=None, alias="createdAt")
    uncommitted_changes: int = Field(default=0, alias="uncommittedChanges")
    status: str = "active"


class ProjectStatus(BaseModel):
    """Snapshot of repository and workflow state.

    Extra keys are preserved so callers can attach their own fields and
    still round-trip through the cache.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    is_git_repo: bool = Field(default=False, alias="isGitRepo")
    branch: str | None = None
    modified_files: list[str] = Field(default_factory=list, alias="modifiedFiles")
    modified_files_total_count: int = Field(
        default=0, alias="modifiedFilesTotalCount"
    )
    recent_commits: list[str] = Field(default_factory=list, alias="recentCommits")
    current_story: str | None = Field(default=None, alias="currentStory")
    current_epic: str | None = Field(default=None, alias="currentEpic")
    worktrees: dict[str, WorktreeStatus] | None = None
    last_update: str | None = Field(default=None, alias="lastUpdate")

    def to_document(self) -> dict[str, Any]:
        """The status document as stored in the cache and served to consumers."""
        return self.model_dump(by_alias=True, mode="json")


class CacheEntry(BaseModel):
    """A cache file: the status document plus freshness metadata."""

    model_config = ConfigDict(populate_by_name=True)

    status: ProjectStatus
    timestamp: int = Field(description="Epoch milliseconds when written")
    ttl: int = Field(description="Seconds the entry is considered fresh")
    git_fingerprint: str | None = Field(default=None, alias="gitFingerprint")

    def to_document(self) -> dict[str, Any]:
        return {
            "status": self.status.to_document(),
            "timestamp": self.timestamp,
            "ttl": self.ttl,
            "gitFingerprint": self.git_fingerprint,
        }
