"""Core configuration loaded from ``.devcycle/config.yaml``.

Example::

    projectStatus:
      maxModifiedFiles: 10
      maxRecentCommits: 3
      storiesLocation: docs/stories
    locks:
      default_ttl_seconds: 300
    workflow:
      agent_command: ["my-agent", "--agent", "{agent}", "--story", "{story}"]
      phase_timeout: 1800
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from devcycle.domain.exceptions import ConfigurationError

CONFIG_FILE = Path(".devcycle") / "config.yaml"
DEFAULT_WORKFLOW_FILE = Path(".devcycle") / "workflows" / "development-cycle.yaml"


class ProjectStatusSettings(BaseModel):
    """Settings for the project status cache."""

    model_config = ConfigDict(populate_by_name=True)

    max_modified_files: int = Field(default=5, ge=0, alias="maxModifiedFiles")
    max_recent_commits: int = Field(default=2, ge=0, alias="maxRecentCommits")
    stories_location: str = Field(default="docs/stories", alias="storiesLocation")
    git_timeout: float = Field(default=5.0, gt=0, alias="gitTimeout")


class LockSettings(BaseModel):
    """Defaults for resource locks."""

    default_ttl_seconds: int = Field(default=300, gt=0)
    owner: str = "devcycle"


class WorkflowSettings(BaseModel):
    """Workflow executor settings."""

    path: str = str(DEFAULT_WORKFLOW_FILE)
    agent_command: list[str] = Field(
        default_factory=list,
        description="Argument template for SubprocessAgentRunner",
    )
    phase_timeout: float | None = Field(default=None, gt=0)
    max_transitions: int = Field(default=50, gt=0)


class CoreConfig(BaseModel):
    """Top-level configuration document."""

    model_config = ConfigDict(populate_by_name=True)

    project_status: ProjectStatusSettings = Field(
        default_factory=ProjectStatusSettings, alias="projectStatus"
    )
    locks: LockSettings = Field(default_factory=LockSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)


def load_core_config(
    project_root: str | Path, path: str | Path | None = None
) -> CoreConfig:
    """
    Load core configuration for a project.

    Args:
        project_root: Project directory
        path: Explicit config file (default: .devcycle/config.yaml)

    Returns:
        CoreConfig; defaults when the file does not exist

    Raises:
        ConfigurationError: If the file exists but is invalid
    """
    config_path = Path(path) if path else Path(project_root) / CONFIG_FILE
    if not config_path.exists():
        return CoreConfig()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return CoreConfig()
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Expected mapping in {config_path}, got {type(data).__name__}"
        )

    try:
        return CoreConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e
