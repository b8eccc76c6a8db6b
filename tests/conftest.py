"""Shared pytest fixtures for devcycle tests."""

from pathlib import Path

import pytest

from devcycle.domain.models import EpicProgress, StoryRecord
from devcycle.infrastructure.status.git import GitClient, WorktreeInfo

WORKFLOW_YAML = """\
workflow:
  id: development-cycle
  phases:
    1_validation:
      agent: ${story.quality_gate}
      on_success: 2_development
    2_development:
      agent: ${story.executor}
      task: implement the story
      on_success: 4_quality_gate
      on_failure: 3_self_healing
    3_self_healing:
      agent: ${story.executor}
      on_success: 4_quality_gate
    4_quality_gate:
      agent: ${story.quality_gate}
      on_success: 5_push
      on_failure: 3_self_healing
    5_push:
      agent: "@devops"
"""


def make_story(**overrides) -> StoryRecord:
    """Build a fully populated StoryRecord, overriding selected fields."""
    fields = {
        "id": "story-1",
        "title": "Test Story",
        "executor": "@dev",
        "quality_gate": "@qa",
        "status": "completed",
        "acceptance_criteria": "AC1: Do something",
        "files_modified": ("src/index.py",),
        "dev_notes": "Implementation notes",
    }
    fields.update(overrides)
    return StoryRecord(**fields)


def make_progress(stories, **overrides) -> EpicProgress:
    fields = {
        "epic_id": "12",
        "epic_title": "Test Epic",
        "stories_done": tuple(stories),
    }
    fields.update(overrides)
    return EpicProgress(**fields)


class FakeGitClient(GitClient):
    """GitClient with canned answers instead of subprocess calls."""

    def __init__(
        self,
        cwd: Path,
        is_repo: bool = True,
        git_dir: Path | None = None,
        common_dir: Path | None = None,
        branch: str = "main",
        modified: list[str] | None = None,
        commits: list[str] | None = None,
        worktrees: list[WorktreeInfo] | None = None,
    ):
        super().__init__(cwd)
        self.is_repo = is_repo
        self.git_dir = git_dir
        self.common_dir = common_dir if common_dir is not None else git_dir
        self.branch = branch
        self.modified = modified or []
        self.commits = commits or []
        self.worktrees = worktrees or []
        self.calls: list[str] = []

    def is_git_repository(self) -> bool:
        self.calls.append("is_git_repository")
        return self.is_repo

    def resolve_git_dir(self) -> Path | None:
        return self.git_dir

    def resolve_git_common_dir(self) -> Path | None:
        return self.common_dir

    def get_branch(self) -> str:
        self.calls.append("get_branch")
        return self.branch

    def get_modified_files(self, limit: int) -> tuple[list[str], int]:
        self.calls.append("get_modified_files")
        return self.modified[:limit], len(self.modified)

    def get_recent_commits(self, limit: int) -> list[str]:
        self.calls.append("get_recent_commits")
        return self.commits[:limit]

    def list_worktrees(self) -> list[WorktreeInfo]:
        self.calls.append("list_worktrees")
        return self.worktrees


@pytest.fixture
def fake_git_dir(tmp_path: Path) -> Path:
    """A minimal .git directory with HEAD, a loose branch ref and an index."""
    git_dir = tmp_path / ".git"
    (git_dir / "refs" / "heads").mkdir(parents=True)
    (git_dir / "HEAD").write_text("ref: refs/heads/main\n")
    (git_dir / "refs" / "heads" / "main").write_text("0" * 40 + "\n")
    (git_dir / "index").write_bytes(b"DIRC")
    return git_dir


@pytest.fixture
def workflow_file(tmp_path: Path) -> Path:
    """The development-cycle workflow under .devcycle/workflows/."""
    path = tmp_path / ".devcycle" / "workflows" / "development-cycle.yaml"
    path.parent.mkdir(parents=True)
    path.write_text(WORKFLOW_YAML)
    return path


@pytest.fixture
def sample_story() -> StoryRecord:
    return make_story(id="story-12.3", files_modified=("src/app.py",))


@pytest.fixture
def story_factory():
    """Callable building StoryRecords: ``story_factory(id="s1", ...)``."""
    return make_story


@pytest.fixture
def progress_factory():
    """Callable building EpicProgress from a list of stories."""
    return make_progress


@pytest.fixture
def fake_git():
    """The FakeGitClient class, for tests that need canned git answers."""
    return FakeGitClient
