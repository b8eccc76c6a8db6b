"""
EpicContextAccumulator: bounded summary of prior stories in an epic.

Every phase of a new story receives a textual digest of the stories already
done in the same epic. The digest is bounded by a global token budget and a
per-story cap; tokens are estimated as ``ceil(len(text) / 3.5)``.

Compression by distance ``d = story_n - story_index``:

    d = 1..3   full_detail           every field
    d = 4..6   metadata_plus_files   id, title, executor, status, files
    otherwise  metadata_only         id, executor, status

A metadata_only story is raised to metadata_plus_files (never further)
when it touched a file the upcoming phase will modify, or when it was run
by the same executor.

When the digest exceeds the budget, the cascade works from the oldest
entries forward and only touches the three most recent stories last:

    1. compress older entries one level at a time
    2. drop older entries, noting how many were omitted
    3. compress the recent entries to metadata_only
    4. hard-truncate the text, header first

Header lines (epic id, title, executor distribution) are capped at
HEADER_LINE_TOKENS each.
"""

import logging
import math
from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass

from devcycle.domain.models import CompressionLevel, EpicProgress, StoryRecord

logger = logging.getLogger("devcycle.context")

TOKEN_LIMIT = 8000
HARD_CAP_PER_STORY = 600
CHARS_PER_TOKEN = 3.5
RECENT_STORIES_PROTECTED = 3
HEADER_LINE_TOKENS = 150
ELLIPSIS = "..."

COMPRESSION_FIELDS: dict[CompressionLevel, tuple[str, ...]] = {
    CompressionLevel.FULL_DETAIL: (
        "id",
        "title",
        "executor",
        "quality_gate",
        "status",
        "acceptance_criteria",
        "files_modified",
        "dev_notes",
    ),
    CompressionLevel.METADATA_PLUS_FILES: (
        "id",
        "title",
        "executor",
        "status",
        "files_modified",
    ),
    CompressionLevel.METADATA_ONLY: ("id", "executor", "status"),
}

# Free-text fields, in the order they give up space under the hard cap
TRUNCATABLE_FIELDS = ("dev_notes", "acceptance_criteria", "title")

_DOWNGRADE = {
    CompressionLevel.FULL_DETAIL: CompressionLevel.METADATA_PLUS_FILES,
    CompressionLevel.METADATA_PLUS_FILES: CompressionLevel.METADATA_ONLY,
}

StoryEntry = StoryRecord | str
FileIndex = dict[str, set[str]]


# =============================================================================
# Pure helpers
# =============================================================================


def estimate_tokens(text: str | None) -> int:
    """Estimated token count; 0 for None or empty text."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def _max_chars(max_tokens: int) -> int:
    return math.floor(max_tokens * CHARS_PER_TOKEN)


def get_compression_level(story_index: int, story_n: int) -> CompressionLevel:
    """Compression level for the story at ``story_index`` when starting ``story_n``."""
    distance = story_n - story_index
    if 1 <= distance <= 3:
        return CompressionLevel.FULL_DETAIL
    if 4 <= distance <= 6:
        return CompressionLevel.METADATA_PLUS_FILES
    return CompressionLevel.METADATA_ONLY


def build_file_index(stories: Iterable[StoryEntry]) -> FileIndex:
    """Map each modified file to the ids of the stories that touched it."""
    index: FileIndex = {}
    for story in stories:
        if isinstance(story, str) or not story.files_modified:
            continue
        for path in story.files_modified:
            index.setdefault(path, set()).add(story.id)
    return index


def has_file_overlap(
    story_files: Iterable[str] | None,
    target: Collection[str] | Mapping[str, object] | None,
) -> bool:
    """True if any of ``story_files`` is in ``target``.

    ``target`` may be a set, a file index (mapping) or any sequence.
    """
    if not story_files or not target:
        return False
    if not isinstance(target, (set, frozenset, Mapping)):
        target = set(target)
    return any(path in target for path in story_files)


def truncate_to_tokens(text: str | None, max_tokens: int) -> str:
    """Cut ``text`` to roughly ``max_tokens`` tokens, marking the cut with '...'."""
    if not text:
        return ""
    max_chars = _max_chars(max_tokens)
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + ELLIPSIS


def _render_value(value: object) -> str:
    if isinstance(value, (tuple, list)):
        return "[" + ", ".join(str(v) for v in value) + "]"
    return str(value)


def _render(story: StoryRecord, level: CompressionLevel, overrides: dict[str, str]) -> str:
    parts = []
    for name in COMPRESSION_FIELDS[level]:
        value = overrides.get(name, getattr(story, name))
        if value is None:
            continue
        parts.append(f"{name}: {_render_value(value)}")
    return " | ".join(parts)


def format_story_entry(story: StoryEntry, level: CompressionLevel) -> str:
    """
    Render one story as ``name: value`` pairs joined by `` | ``.

    Absent fields are omitted and bare story ids render as themselves.
    An entry over HARD_CAP_PER_STORY tokens has its free-text fields cut
    (dev notes first, then acceptance criteria, then title).
    """
    if isinstance(story, str):
        return truncate_to_tokens(story, HARD_CAP_PER_STORY)

    entry = _render(story, level, {})
    max_chars = _max_chars(HARD_CAP_PER_STORY)
    overflow = len(entry) - max_chars
    if overflow <= 0:
        return entry

    fields = COMPRESSION_FIELDS[level]
    overrides: dict[str, str] = {}
    for name in TRUNCATABLE_FIELDS:
        if overflow <= 0:
            break
        value = getattr(story, name)
        if name not in fields or value is None or len(value) <= len(ELLIPSIS):
            continue
        keep = max(len(value) - overflow - len(ELLIPSIS), 0)
        overrides[name] = value[:keep] + ELLIPSIS
        overflow -= len(value) - len(overrides[name])

    entry = _render(story, level, overrides)
    if len(entry) > max_chars:
        # Structural fields alone exceed the cap (e.g. a huge file list)
        entry = entry[: max_chars - len(ELLIPSIS)] + ELLIPSIS
    return entry


# =============================================================================
# Accumulator
# =============================================================================


@dataclass
class _Entry:
    index: int
    story: StoryEntry
    level: CompressionLevel

    def render(self) -> str:
        return f"- {format_story_entry(self.story, self.level)}"


class EpicContextAccumulator:
    """Builds the accumulated-context digest for the next story of an epic.

    The file index is rebuilt on every call and kept for inspection through
    get_file_index().
    """

    def __init__(self, progress: EpicProgress | None):
        self.progress = progress
        self.file_index: FileIndex | None = None

    def get_file_index(self) -> FileIndex | None:
        return self.file_index

    def build_accumulated_context(
        self,
        epic_id: str,
        story_n: int,
        files_to_modify: Sequence[str] | None = None,
        executor: str | None = None,
    ) -> str:
        """
        Build the digest of stories done before story number ``story_n``.

        Args:
            epic_id: Epic shown in the header
            story_n: 0-based index of the story about to start
            files_to_modify: Files the upcoming phase intends to change
            executor: Executor of the upcoming phase

        Returns:
            The digest, or "" when there is no prior story
        """
        if self.progress is None or not self.progress.stories_done:
            return ""

        stories = self.progress.stories_done
        self.file_index = build_file_index(stories)
        targets = set(files_to_modify or ())

        entries = []
        for index, story in enumerate(stories):
            level = get_compression_level(index, story_n)
            if level == CompressionLevel.METADATA_ONLY and self._qualifies_for_upgrade(
                story, targets, executor
            ):
                level = CompressionLevel.METADATA_PLUS_FILES
            entries.append(_Entry(index, story, level))

        header = self._header(self.progress, epic_id)
        return self._fit_to_budget(header, entries)

    def _qualifies_for_upgrade(
        self, story: StoryEntry, targets: set[str], executor: str | None
    ) -> bool:
        if isinstance(story, str):
            return False
        if executor and story.executor == executor:
            return True
        index = self.file_index or {}
        return any(story.id in index.get(path, ()) for path in targets)

    def _header(self, progress: EpicProgress, epic_id: str) -> list[str]:
        completed = len(progress.stories_done)
        lines = [f"## Epic {epic_id} Context ({completed} stories completed)"]
        if progress.epic_title:
            lines.append(f"Epic: {progress.epic_title}")
        if progress.executor_distribution:
            distribution = ", ".join(
                f"{name}: {count}" for name, count in progress.executor_distribution
            )
            lines.append(f"Executors: {distribution}")
        return [truncate_to_tokens(line, HEADER_LINE_TOKENS) for line in lines]

    def _render(self, header: list[str], entries: list[_Entry], omitted: int) -> str:
        lines = list(header)
        if omitted:
            lines.append(f"- ... {omitted} earlier stories omitted")
        lines.extend(entry.render() for entry in entries)
        return "\n".join(lines)

    def _fit_to_budget(self, header: list[str], entries: list[_Entry]) -> str:
        omitted = 0

        def over_budget() -> bool:
            return estimate_tokens(self._render(header, entries, omitted)) > TOKEN_LIMIT

        if not over_budget():
            return self._render(header, entries, omitted)

        recent = entries[-RECENT_STORIES_PROTECTED:]
        older = entries[: len(entries) - len(recent)]

        # 1. Compress older entries, oldest first
        for entry in older:
            while entry.level in _DOWNGRADE and over_budget():
                entry.level = _DOWNGRADE[entry.level]
            if not over_budget():
                return self._render(header, entries, omitted)

        # 2. Drop older entries, oldest first
        while older and over_budget():
            entries.remove(older.pop(0))
            omitted += 1
        if not over_budget():
            logger.debug("Context budget: omitted %d older stories", omitted)
            return self._render(header, entries, omitted)

        # 3. Compress the most recent entries
        for entry in recent:
            entry.level = CompressionLevel.METADATA_ONLY
            if not over_budget():
                return self._render(header, entries, omitted)

        # 4. Hard truncation, header first so the recent ids survive
        logger.warning("Context still over budget after compression, truncating")
        body = self._render([], entries, omitted)
        room = _max_chars(TOKEN_LIMIT) - len(body) - 1
        if room > len(ELLIPSIS):
            head = "\n".join(header)
            return head[: room - len(ELLIPSIS)] + ELLIPSIS + "\n" + body
        text = self._render(header, entries, omitted)
        return text[: _max_chars(TOKEN_LIMIT) - len(ELLIPSIS)] + ELLIPSIS


def create_epic_context_accumulator(
    progress: EpicProgress | None,
) -> EpicContextAccumulator:
    """Factory for an accumulator over ``progress``."""
    return EpicContextAccumulator(progress)
