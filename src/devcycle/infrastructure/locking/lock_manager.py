"""
File-based mutual exclusion between independent processes.

One YAML lock file per resource under ``.devcycle/locks/``. The existence
of a lock file is authoritative: it is held unless it has outlived its TTL
or its recorded PID no longer belongs to a live process.

PID liveness is inherently racy (a dead holder's PID may be reused by an
unrelated process, which then keeps the lock alive until its TTL expires).
This is an accepted limitation.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import time
from pathlib import Path

import yaml
from pydantic import ValidationError

from devcycle.schemas import LockRecord, utc_timestamp

logger = logging.getLogger("devcycle.locking")

DEFAULT_TTL_SECONDS = 300
DEFAULT_OWNER = "devcycle"
LOCKS_DIR = Path(".devcycle") / "locks"
LOCK_SUFFIX = ".lock"

# A zero-byte lock may still be mid-write by its creator.
EMPTY_LOCK_GRACE_SECONDS = 1.0
_MAX_NAME_LENGTH = 80
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def sanitize_resource_name(resource: str) -> str:
    """Map a resource identifier to a filesystem-safe lock file stem.

    Runs of characters outside ``[A-Za-z0-9_-]`` become ``_``. When that
    changes the name (or it has to be shortened), a short hash of the raw
    identifier is appended so distinct identifiers never share a file.
    """
    safe = _UNSAFE_CHARS.sub("_", resource)
    if safe == resource and len(safe) <= _MAX_NAME_LENGTH:
        return safe
    digest = hashlib.sha256(resource.encode("utf-8")).hexdigest()[:8]
    return f"{safe[:_MAX_NAME_LENGTH]}-{digest}"


def is_process_alive(pid: int) -> bool:
    """Check a PID with signal 0.

    Only "no such process" means dead; permission errors imply the process
    exists. Windows has no signal-0 check, so processes are assumed alive
    there and only the TTL expires a lock.
    """
    if pid <= 0:
        return False
    if os.name == "nt":
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        logger.debug("PID liveness check for %d failed, assuming alive", pid, exc_info=True)
        return True
    return True


class LockManager:
    """
    Acquire, release and inspect resource locks for one project.

    All operations report expected conditions (held by someone else, no
    lock, stale lock) through their return value and never raise for them.
    """

    def __init__(
        self,
        project_root: str | Path,
        owner: str = DEFAULT_OWNER,
        locks_dir: str | Path | None = None,
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        self.project_root = Path(project_root)
        self.owner = owner
        self.default_ttl_seconds = default_ttl_seconds
        if locks_dir is None:
            self.locks_dir = self.project_root / LOCKS_DIR
        else:
            self.locks_dir = Path(locks_dir)

    def lock_path(self, resource: str) -> Path:
        return self.locks_dir / f"{sanitize_resource_name(resource)}{LOCK_SUFFIX}"

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def acquire_lock(
        self,
        resource: str,
        ttl_seconds: int | None = None,
        owner: str | None = None,
    ) -> bool:
        """
        Try to take the lock for ``resource`` without waiting.

        A stale, dead-owner or unreadable lock is removed and creation is
        retried once.

        Returns:
            True if this process now holds the lock, False otherwise
        """
        record = LockRecord(
            resource=resource,
            pid=os.getpid(),
            owner=owner or self.owner,
            created_at=utc_timestamp(),
            ttl_seconds=(
                self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
            ),
        )
        path = self.lock_path(resource)

        try:
            self.locks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Cannot create locks directory %s: %s", self.locks_dir, e)
            return False

        for attempt in range(2):
            try:
                self._create_exclusive(path, record)
            except FileExistsError:
                if attempt == 0 and self._remove_if_stale(path):
                    continue
                logger.debug("Lock %s is held", resource)
                return False
            except OSError as e:
                logger.warning("Failed to create lock %s: %s", path, e)
                return False
            else:
                logger.debug("Acquired lock %s (ttl=%ss)", resource, record.ttl_seconds)
                return True
        return False

    def release_lock(self, resource: str) -> bool:
        """
        Release a lock held by this process.

        Returns:
            True if the lock file was removed, False if there was no lock or
            it belongs to another process
        """
        path = self.lock_path(resource)
        record = self._read_lock(path)
        if record is None:
            return False
        if record.pid != os.getpid():
            logger.debug(
                "Not releasing lock %s: held by pid %d", resource, record.pid
            )
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.debug("Released lock %s", resource)
        return True

    def is_locked(self, resource: str) -> bool:
        """True iff a valid, unexpired lock held by a live process exists."""
        record = self._read_lock(self.lock_path(resource))
        if record is None:
            return False
        return not self._is_stale(record)

    def get_lock(self, resource: str) -> LockRecord | None:
        """The current lock record for ``resource``, stale or not."""
        return self._read_lock(self.lock_path(resource))

    def cleanup_stale_locks(self) -> int:
        """
        Remove every expired, dead-owner or unreadable lock.

        Returns:
            Number of lock files removed
        """
        if not self.locks_dir.is_dir():
            return 0
        removed = 0
        for path in sorted(self.locks_dir.glob(f"*{LOCK_SUFFIX}")):
            if self._remove_if_stale(path):
                removed += 1
        if removed:
            logger.info("Removed %d stale lock(s) from %s", removed, self.locks_dir)
        return removed

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _create_exclusive(self, path: Path, record: LockRecord) -> None:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(record.model_dump(), f, sort_keys=False)
            f.flush()
            os.fsync(f.fileno())

    def _read_lock(self, path: Path) -> LockRecord | None:
        """Parse a lock file; None if it is missing or not a valid record."""
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            data = yaml.safe_load(raw.decode("utf-8"))
            if not isinstance(data, dict):
                return None
            return LockRecord.model_validate(data)
        except (UnicodeDecodeError, yaml.YAMLError, ValidationError) as e:
            logger.debug("Unreadable lock file %s: %s", path, e)
            return None

    def _is_stale(self, record: LockRecord) -> bool:
        try:
            if record.is_expired():
                return True
        except ValueError:
            # Unparseable created_at
            return True
        return not is_process_alive(record.pid)

    def _remove_if_stale(self, path: Path) -> bool:
        """
        Delete the lock at ``path`` if it no longer protects anything.

        Returns:
            True if the path is now free (removed here or already gone)
        """
        if not path.exists():
            return True
        record = self._read_lock(path)
        if record is None:
            if self._is_fresh_empty_file(path):
                return False
            reason = "unreadable"
        elif self._is_stale(record):
            reason = f"stale (pid={record.pid}, owner={record.owner})"
        else:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return True
        logger.debug("Removed %s lock %s", reason, path.name)
        return True

    def _is_fresh_empty_file(self, path: Path) -> bool:
        try:
            st = path.stat()
        except FileNotFoundError:
            return False
        return st.st_size == 0 and time.time() - st.st_mtime < EMPTY_LOCK_GRACE_SECONDS
