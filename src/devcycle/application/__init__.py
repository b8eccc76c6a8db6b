"""
Application layer for the orchestration core.

Use cases that coordinate domain objects: context accumulation, workflow
execution, event emission and status payloads.
"""

from devcycle.application.context_accumulator import (
    CHARS_PER_TOKEN,
    COMPRESSION_FIELDS,
    HARD_CAP_PER_STORY,
    TOKEN_LIMIT,
    EpicContextAccumulator,
    build_file_index,
    create_epic_context_accumulator,
    estimate_tokens,
    format_story_entry,
    get_compression_level,
    has_file_overlap,
    truncate_to_tokens,
)
from devcycle.application.status_payload import build_status_payload
from devcycle.application.workflow_event_emitter import WorkflowEventEmitter
from devcycle.application.workflow_executor import (
    WorkflowExecutor,
    load_workflow_definition,
    parse_workflow_definition,
)

__all__ = [
    # Context accumulation
    "CHARS_PER_TOKEN",
    "COMPRESSION_FIELDS",
    "HARD_CAP_PER_STORY",
    "TOKEN_LIMIT",
    "EpicContextAccumulator",
    "build_file_index",
    "create_epic_context_accumulator",
    "estimate_tokens",
    "format_story_entry",
    "get_compression_level",
    "has_file_overlap",
    "truncate_to_tokens",
    # Workflow
    "WorkflowEventEmitter",
    "WorkflowExecutor",
    "build_status_payload",
    "load_workflow_definition",
    "parse_workflow_definition",
]
