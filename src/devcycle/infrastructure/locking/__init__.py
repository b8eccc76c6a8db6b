"""Cross-process file locks."""

from devcycle.infrastructure.locking.lock_manager import (
    DEFAULT_OWNER,
    DEFAULT_TTL_SECONDS,
    LockManager,
    is_process_alive,
    sanitize_resource_name,
)

__all__ = [
    "DEFAULT_OWNER",
    "DEFAULT_TTL_SECONDS",
    "LockManager",
    "is_process_alive",
    "sanitize_resource_name",
]
