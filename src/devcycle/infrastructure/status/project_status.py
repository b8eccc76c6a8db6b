"""
Project status cache.

Produces a fresh-enough snapshot of repository and workflow state without
re-running git queries on every request. Snapshots are cached in
``.devcycle/project-status.yaml`` and shared by every process working in
the same tree.

Freshness:
    - A git fingerprint (mtimes of the HEAD ref and the index) is stored
      with each entry. A mismatch invalidates the entry immediately, so a
      commit is visible on the next poll.
    - With matching fingerprints an entry lives ACTIVE_SESSION_TTL seconds;
      without fingerprints it lives IDLE_TTL seconds.

Writes take an advisory lock. When the lock cannot be taken within
LOCK_TIMEOUT_MS the write still goes ahead: a lost status update is worse
than a rare write race, and the temp-file-then-rename step keeps readers
from seeing partial files.
"""

from __future__ import annotations

import hashlib
import logging
import os
import secrets
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path

import yaml
from pydantic import ValidationError

from devcycle.domain.exceptions import ConfigurationError
from devcycle.infrastructure.config import CoreConfig, load_core_config
from devcycle.infrastructure.locking import LockManager
from devcycle.infrastructure.status.git import GitClient
from devcycle.infrastructure.stories import find_in_progress_story
from devcycle.schemas import CacheEntry, ProjectStatus, WorktreeStatus

logger = logging.getLogger("devcycle.status")

LOCK_TIMEOUT_MS = 3000
LOCK_STALE_MS = 10000
ACTIVE_SESSION_TTL = 15
IDLE_TTL = 60

CACHE_DIR = Path(".devcycle")
CACHE_FILE_STEM = "project-status"
LOCK_OWNER = "devcycle-status"

_LOCK_RETRY_INITIAL = 0.025
_LOCK_RETRY_MAX = 0.25


def hash_string(value: str) -> str:
    """Stable short hex digest used to namespace per-worktree cache files."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:8]


def _now_ms() -> int:
    return int(time.time() * 1000)


class ProjectStatusLoader:
    """
    Load, cache and format the status of one project directory.

    Construct one loader per project root and pass it where it is needed;
    there is no process-wide instance.
    """

    def __init__(
        self,
        project_root: str | Path | None = None,
        config: CoreConfig | None = None,
        git: GitClient | None = None,
    ):
        self.root_path = Path(project_root) if project_root else Path.cwd()
        if config is None:
            config = self._load_config()
        settings = config.project_status
        self.max_modified_files = settings.max_modified_files
        self.max_recent_commits = settings.max_recent_commits
        self.stories_dir = self.root_path / settings.stories_location
        self.cache_ttl = IDLE_TTL
        self.active_session_ttl = ACTIVE_SESSION_TTL

        self.git = git or GitClient(self.root_path, timeout=settings.git_timeout)
        self._git_dir = self.git.resolve_git_dir()
        self._git_common_dir = (
            self.git.resolve_git_common_dir() if self._git_dir else None
        )

        self.cache_dir = self.root_path / CACHE_DIR
        self.cache_file = self._resolve_cache_file_path()
        self._lock_resource = self.cache_file.stem
        self._locks = LockManager(
            self.root_path, owner=LOCK_OWNER, locks_dir=self.cache_dir
        )
        self.lock_file = self._locks.lock_path(self._lock_resource)

    def _load_config(self) -> CoreConfig:
        try:
            return load_core_config(self.root_path)
        except ConfigurationError as e:
            logger.warning("Using default status settings: %s", e)
            return CoreConfig()

    def _resolve_cache_file_path(self) -> Path:
        """Per-worktree cache path; the main tree uses the plain name."""
        git_dir, common_dir = self._git_dir, self._git_common_dir
        if git_dir is not None and common_dir is not None and git_dir != common_dir:
            suffix = hash_string(str(self.root_path.resolve()))
            return self.cache_dir / f"{CACHE_FILE_STEM}-{suffix}.yaml"
        return self.cache_dir / f"{CACHE_FILE_STEM}.yaml"

    # -------------------------------------------------------------------------
    # Fingerprint and validity
    # -------------------------------------------------------------------------

    def _head_ref_path(self, git_dir: Path) -> Path:
        head = git_dir / "HEAD"
        try:
            content = head.read_text(encoding="utf-8").strip()
        except OSError:
            return head
        if not content.startswith("ref: "):
            return head
        ref = content[len("ref: ") :]
        for base in (git_dir, self._git_common_dir):
            if base is not None and (base / ref).is_file():
                return base / ref
        return head

    def get_git_state_fingerprint(self) -> str | None:
        """
        ``"<headRefMtime>:<indexMtime>"`` in nanoseconds.

        Returns:
            The fingerprint, ``"<head>:0"`` without an index, or None when
            the git directory or HEAD cannot be resolved
        """
        git_dir = self._git_dir
        if git_dir is None:
            return None
        try:
            head_mtime = self._head_ref_path(git_dir).stat().st_mtime_ns
        except OSError:
            return None
        try:
            index_mtime = (git_dir / "index").stat().st_mtime_ns
        except OSError:
            index_mtime = 0
        return f"{head_mtime}:{index_mtime}"

    def is_cache_valid(
        self, entry: CacheEntry | None, current_fingerprint: str | None = None
    ) -> bool:
        if entry is None:
            return False
        age_ms = _now_ms() - entry.timestamp
        if entry.git_fingerprint and current_fingerprint:
            if entry.git_fingerprint != current_fingerprint:
                return False
            return age_ms < self.active_session_ttl * 1000
        return age_ms < self.cache_ttl * 1000

    # -------------------------------------------------------------------------
    # Cache file
    # -------------------------------------------------------------------------

    def load_cache(self) -> CacheEntry | None:
        """
        Read the cache entry.

        A file that does not parse, is not a mapping, lacks ``status`` or
        fails validation is deleted and reported as absent.
        """
        try:
            raw = self.cache_file.read_bytes()
        except FileNotFoundError:
            return None

        reason = None
        try:
            data = yaml.safe_load(raw.decode("utf-8"))
        except UnicodeDecodeError as e:
            data, reason = None, f"not UTF-8: {e.reason}"
        except yaml.YAMLError as e:
            data, reason = None, f"parse error: {e}"
        if reason is None:
            if not isinstance(data, dict):
                reason = f"expected mapping, got {type(data).__name__}"
            elif "status" not in data:
                reason = "missing status field"
            else:
                try:
                    return CacheEntry.model_validate(data)
                except ValidationError as e:
                    reason = f"invalid entry: {e.error_count()} error(s)"

        logger.warning("Discarding corrupt status cache %s (%s)", self.cache_file, reason)
        self.cache_file.unlink(missing_ok=True)
        return None

    def _acquire_lock(self) -> bool:
        """Retry with backoff until LOCK_TIMEOUT_MS elapses."""
        deadline = time.monotonic() + LOCK_TIMEOUT_MS / 1000
        delay = _LOCK_RETRY_INITIAL
        while True:
            if self._locks.acquire_lock(
                self._lock_resource, ttl_seconds=LOCK_STALE_MS // 1000
            ):
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            time.sleep(min(delay, remaining))
            delay = min(delay * 2, _LOCK_RETRY_MAX)

    def _release_lock(self) -> None:
        self._locks.release_lock(self._lock_resource)

    def _write_atomic(self, content: str) -> None:
        temp_path = self.cache_file.with_name(
            f"{self.cache_file.name}.tmp.{os.getpid()}.{secrets.token_hex(4)}"
        )
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.replace(temp_path, self.cache_file)
            except OSError as e:
                # Rename can fail on Windows while a reader holds the file
                logger.debug("Atomic rename failed (%s), writing directly", e)
                self.cache_file.write_text(content, encoding="utf-8")
        finally:
            temp_path.unlink(missing_ok=True)

    def save_cache_with_lock(
        self, status: ProjectStatus, fingerprint: str | None
    ) -> None:
        """
        Persist ``status`` under the advisory cache lock.

        Raises:
            OSError: If the cache directory or file cannot be written
        """
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        entry = CacheEntry(
            status=status,
            timestamp=_now_ms(),
            ttl=self.cache_ttl,
            git_fingerprint=fingerprint,
        )
        content = yaml.safe_dump(entry.to_document(), sort_keys=False)

        locked = self._acquire_lock()
        if not locked:
            logger.debug("Cache lock busy after %dms, writing unprotected", LOCK_TIMEOUT_MS)
        try:
            self._write_atomic(content)
        finally:
            if locked:
                self._release_lock()

    def save_cache(self, status: ProjectStatus) -> None:
        """Persist ``status`` with the current fingerprint; never raises OSError."""
        try:
            self.save_cache_with_lock(status, self.get_git_state_fingerprint())
        except OSError as e:
            logger.warning("Failed to save status cache %s: %s", self.cache_file, e)

    def clear_cache(self) -> bool:
        try:
            self.cache_file.unlink()
        except FileNotFoundError:
            return False
        return True

    # -------------------------------------------------------------------------
    # Status generation
    # -------------------------------------------------------------------------

    def get_non_git_status(self) -> ProjectStatus:
        return ProjectStatus(
            is_git_repo=False,
            branch=None,
            modified_files=[],
            modified_files_total_count=0,
            recent_commits=[],
            last_update=datetime.now(timezone.utc).isoformat(),
        )

    def get_worktrees_status(self) -> dict[str, WorktreeStatus] | None:
        worktrees = self.git.list_worktrees()
        if not worktrees:
            return None
        return {
            wt.story_id: WorktreeStatus(
                path=wt.path,
                branch=wt.branch,
                created_at=wt.created_at,
                uncommitted_changes=wt.uncommitted_changes,
                status=wt.status,
            )
            for wt in worktrees
        }

    def get_current_story_info(self) -> tuple[str | None, str | None]:
        return find_in_progress_story(self.stories_dir)

    def generate_status(self) -> ProjectStatus:
        """Query git and the stories directory; git queries run in parallel."""
        if not self.git.is_git_repository():
            return self.get_non_git_status()

        with ThreadPoolExecutor(max_workers=5) as pool:
            branch = pool.submit(self.git.get_branch)
            modified = pool.submit(self.git.get_modified_files, self.max_modified_files)
            commits = pool.submit(self.git.get_recent_commits, self.max_recent_commits)
            worktrees = pool.submit(self.get_worktrees_status)
            story = pool.submit(self.get_current_story_info)

            files, total = modified.result()
            current_story, current_epic = story.result()
            return ProjectStatus(
                is_git_repo=True,
                branch=branch.result(),
                modified_files=files,
                modified_files_total_count=total,
                recent_commits=commits.result(),
                current_story=current_story,
                current_epic=current_epic,
                worktrees=worktrees.result(),
                last_update=datetime.now(timezone.utc).isoformat(),
            )

    def load_project_status(self, use_cache: bool = True) -> ProjectStatus:
        """
        Return the project status, from cache when it is still valid.

        Cache I/O failures are logged and the freshly generated status is
        returned unpersisted.
        """
        fingerprint = self.get_git_state_fingerprint()
        if use_cache:
            try:
                cached = self.load_cache()
            except OSError as e:
                logger.warning("Cannot read status cache %s: %s", self.cache_file, e)
                cached = None
            if cached is not None and self.is_cache_valid(cached, fingerprint):
                logger.debug("Status cache hit (%s)", self.cache_file.name)
                return cached.status

        status = self.generate_status()
        try:
            self.save_cache_with_lock(status, fingerprint)
        except OSError as e:
            logger.warning("Status not cached: %s", e)
        return status

    # -------------------------------------------------------------------------
    # Display
    # -------------------------------------------------------------------------

    def format_status_display(self, status: ProjectStatus) -> str:
        return format_status_display(status)


def format_status_display(status: ProjectStatus) -> str:
    """Human-readable multi-line summary of a status snapshot."""
    if not status.is_git_repo:
        return "Not a git repository"

    lines = []
    if status.branch:
        lines.append(f"Branch: {status.branch}")

    if status.modified_files:
        line = f"Modified: {', '.join(status.modified_files)}"
        hidden = status.modified_files_total_count - len(status.modified_files)
        if hidden > 0:
            line += f" ...and {hidden} more"
        lines.append(line)

    if status.recent_commits:
        lines.append(f"Recent: {', '.join(status.recent_commits)}")

    if status.current_story:
        story = f"Story: {status.current_story}"
        if status.current_epic:
            story += f" ({status.current_epic})"
        lines.append(story)

    if status.worktrees:
        total = len(status.worktrees)
        active = sum(1 for wt in status.worktrees.values() if wt.status == "active")
        dirty = sum(1 for wt in status.worktrees.values() if wt.uncommitted_changes > 0)
        lines.append(f"Worktrees: {active}/{total} active, {dirty} with changes")

    if not status.modified_files and not status.recent_commits:
        lines.append("No recent activity")

    return "\n".join(lines)


def load_project_status(project_root: str | Path | None = None) -> ProjectStatus:
    """Convenience wrapper: build a loader for ``project_root`` and load once."""
    return ProjectStatusLoader(project_root).load_project_status()
