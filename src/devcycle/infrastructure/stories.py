"""
Story and epic-progress adapters.

Stories are markdown documents. Metadata comes from YAML front matter or a
fenced ```yaml block, plus bold ``**Field:** value`` lines such as
``**Story ID:**`` and ``**Status:**``. Epic progress is a YAML document
listing the stories done so far.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any

import yaml

from devcycle.domain.exceptions import StoryNotFoundError
from devcycle.domain.interfaces import StoryRepositoryInterface
from devcycle.domain.models import EpicProgress, StoryRecord

logger = logging.getLogger("devcycle.stories")

DEFAULT_STORIES_DIR = Path("docs") / "stories"
IN_PROGRESS_STATUSES = {"inprogress", "in progress", "in_progress", "in-progress"}

_FRONT_MATTER = re.compile(r"\A---\s*\n(.*?)\n---\s*\n", re.DOTALL)
_YAML_FENCE = re.compile(r"```ya?ml\s*\n(.*?)\n```", re.DOTALL)
_BOLD_FIELD = re.compile(r"^\s*\*\*(?P<key>[^*]+?):\*\*\s*(?P<value>.+?)\s*$", re.M)
_HEADING = re.compile(r"^#\s+(?P<title>.+?)\s*$", re.M)
_SECTION = re.compile(r"^##\s+(?P<name>.+?)\s*$", re.M)

_BOLD_KEYS = {
    "story id": "id",
    "id": "id",
    "title": "title",
    "status": "status",
    "epic": "epic",
    "executor": "executor",
    "quality gate": "quality_gate",
}
_SECTION_KEYS = {
    "acceptance criteria": "acceptance_criteria",
    "dev notes": "dev_notes",
    "file list": "files_modified",
    "files modified": "files_modified",
}


# =============================================================================
# Markdown parsing
# =============================================================================


def _safe_yaml(text: str, source: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning("Ignoring invalid YAML metadata in %s: %s", source, e)
        return {}
    return data if isinstance(data, dict) else {}


def _sections(text: str) -> dict[str, str]:
    """Map lower-cased ``## Heading`` names to their body text."""
    matches = list(_SECTION.finditer(text))
    sections = {}
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        sections[match.group("name").lower()] = text[match.end() : end].strip()
    return sections


def _bullet_items(body: str) -> tuple[str, ...]:
    items = []
    for line in body.splitlines():
        line = line.strip()
        if line.startswith(("- ", "* ")):
            items.append(line[2:].strip().strip("`"))
    return tuple(items)


def parse_story_metadata(text: str, source: str = "<story>") -> dict[str, Any]:
    """
    Extract story metadata from a markdown document.

    Precedence, lowest first: bold field lines, ``##`` sections, then YAML
    front matter and fenced yaml blocks.
    """
    meta: dict[str, Any] = {}

    for match in _BOLD_FIELD.finditer(text):
        key = _BOLD_KEYS.get(match.group("key").strip().lower())
        if key and key not in meta:
            meta[key] = match.group("value")

    heading = _HEADING.search(text)
    if heading and "title" not in meta:
        meta["title"] = heading.group("title")

    for name, body in _sections(text).items():
        key = _SECTION_KEYS.get(name)
        if key == "files_modified":
            meta[key] = _bullet_items(body)
        elif key and body:
            meta[key] = body

    front = _FRONT_MATTER.match(text)
    if front:
        meta.update(_safe_yaml(front.group(1), source))
    for block in _YAML_FENCE.findall(text):
        meta.update(_safe_yaml(block, source))
    return meta


def story_from_mapping(data: Mapping[str, Any]) -> StoryRecord:
    """Build a StoryRecord from loosely typed metadata."""
    files = data.get("files_modified")
    if files is not None:
        if isinstance(files, str):
            files = (files,)
        files = tuple(str(f) for f in files)
    return StoryRecord(
        id=str(data["id"]),
        title=_opt_str(data.get("title")),
        executor=_opt_str(data.get("executor")),
        quality_gate=_opt_str(data.get("quality_gate")),
        status=_opt_str(data.get("status")),
        acceptance_criteria=_opt_text(data.get("acceptance_criteria")),
        files_modified=files,
        dev_notes=_opt_text(data.get("dev_notes")),
    )


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _opt_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return "; ".join(str(v) for v in value)
    return str(value)


def _iter_markdown(stories_dir: Path) -> Iterator[Path]:
    if not stories_dir.is_dir():
        return
    yield from sorted(p for p in stories_dir.rglob("*.md") if p.is_file())


def find_in_progress_story(stories_dir: Path) -> tuple[str | None, str | None]:
    """
    Find the story currently in progress.

    Returns:
        (story id, epic) of the first markdown story whose status is
        InProgress, or (None, None)
    """
    for path in _iter_markdown(stories_dir):
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping unreadable story %s: %s", path, e)
            continue
        fields = {
            m.group("key").strip().lower(): m.group("value")
            for m in _BOLD_FIELD.finditer(text)
        }
        status = fields.get("status", "").strip().lower()
        if status in IN_PROGRESS_STATUSES:
            return fields.get("story id"), fields.get("epic")
    return None, None


# =============================================================================
# Repositories
# =============================================================================


class MarkdownStoryRepository(StoryRepositoryInterface):
    """Loads stories from markdown files under a stories directory.

    A story reference is either a path to a markdown file or a story id,
    matched against each file's ``**Story ID:**`` (or front matter ``id``)
    and then against file stems.
    """

    def __init__(self, stories_dir: str | Path):
        self.stories_dir = Path(stories_dir)

    def load(self, story_ref: str) -> StoryRecord:
        path = Path(story_ref)
        if path.suffix == ".md" and path.is_file():
            return self._load_file(path)

        by_stem = None
        for candidate in _iter_markdown(self.stories_dir):
            meta = self._read_meta(candidate)
            if str(meta.get("id", "")) == story_ref:
                return self._to_record(meta, candidate)
            if candidate.stem == story_ref and by_stem is None:
                by_stem = candidate
        if by_stem is not None:
            return self._load_file(by_stem)
        raise StoryNotFoundError(story_ref)

    def _read_meta(self, path: Path) -> dict[str, Any]:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping unreadable story %s: %s", path, e)
            return {}
        return parse_story_metadata(text, str(path))

    def _load_file(self, path: Path) -> StoryRecord:
        return self._to_record(self._read_meta(path), path)

    def _to_record(self, meta: dict[str, Any], path: Path) -> StoryRecord:
        meta.setdefault("id", path.stem)
        return story_from_mapping(meta)


class InMemoryStoryRepository(StoryRepositoryInterface):
    """Story repository backed by a dict, for tests and embedding."""

    def __init__(self, stories: Iterable[StoryRecord] = ()):
        self._stories = {s.id: s for s in stories}

    def add(self, story: StoryRecord) -> None:
        self._stories[story.id] = story

    def load(self, story_ref: str) -> StoryRecord:
        try:
            return self._stories[story_ref]
        except KeyError:
            raise StoryNotFoundError(story_ref) from None


# =============================================================================
# Epic progress
# =============================================================================


def epic_progress_from_mapping(data: Mapping[str, Any]) -> EpicProgress:
    """
    Build EpicProgress from a document of the form::

        epic: {id: "12", title: "Checkout"}
        stories_done:
          - {id: story-12.1, executor: "@dev", files_modified: [...]}
          - story-12.2            # bare id
        executor_distribution: {"@dev": 3, "@qa": 1}
    """
    epic = data.get("epic") or {}
    stories: list[StoryRecord | str] = []
    for entry in data.get("stories_done") or ():
        if isinstance(entry, Mapping) and "id" in entry:
            stories.append(story_from_mapping(entry))
        else:
            stories.append(str(entry))
    distribution = data.get("executor_distribution") or {}
    return EpicProgress(
        epic_id=str(epic.get("id", data.get("epic_id", ""))),
        epic_title=_opt_str(epic.get("title")),
        stories_done=tuple(stories),
        executor_distribution=tuple(
            (str(name), int(count)) for name, count in distribution.items()
        ),
    )


def load_epic_progress(path: str | Path) -> EpicProgress:
    """Load an epic progress YAML file."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping in {path}, got {type(data).__name__}")
    return epic_progress_from_mapping(data)
