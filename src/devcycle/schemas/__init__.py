"""devcycle document schemas and validation utilities.

Schemas:
    - workflow.schema.json: Workflow definition (phases and transitions)
    - documents.py: Lock file, cache entry and status document models

Usage:
    from devcycle.schemas import validate_workflow

    with open(".devcycle/workflows/development-cycle.yaml") as f:
        data = yaml.safe_load(f)
    validate_workflow(data)  # Raises jsonschema.ValidationError if invalid
"""

from __future__ import annotations

import json
from importlib.resources import files
from typing import Any

import jsonschema

from devcycle.schemas.documents import (
    CacheEntry,
    LockRecord,
    ProjectStatus,
    WorktreeStatus,
    parse_timestamp,
    utc_timestamp,
)


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema from the schemas package.

    Args:
        name: Schema filename (e.g., 'workflow.schema.json')

    Returns:
        Parsed JSON schema as a dictionary
    """
    schema_text = files("devcycle.schemas").joinpath(name).read_text()
    result: dict[str, Any] = json.loads(schema_text)
    return result


def get_workflow_schema() -> dict[str, Any]:
    """Get the workflow definition schema."""
    return _load_schema("workflow.schema.json")


def validate_workflow(data: Any) -> None:
    """Validate a workflow definition against the schema.

    Args:
        data: Parsed workflow document

    Raises:
        jsonschema.ValidationError: If validation fails
    """
    jsonschema.validate(data, get_workflow_schema())


__all__ = [
    "CacheEntry",
    "LockRecord",
    "ProjectStatus",
    "WorktreeStatus",
    "get_workflow_schema",
    "parse_timestamp",
    "utc_timestamp",
    "validate_workflow",
]
