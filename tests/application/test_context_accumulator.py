"""Tests for EpicContextAccumulator and its helpers."""

import pytest

from devcycle.application.context_accumulator import (
    CHARS_PER_TOKEN,
    COMPRESSION_FIELDS,
    HARD_CAP_PER_STORY,
    HEADER_LINE_TOKENS,
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
from devcycle.domain.models import CompressionLevel, StoryRecord


def _line_with(text: str, needle: str) -> str:
    lines = [line for line in text.split("\n") if needle in line]
    assert lines, f"no line contains {needle!r}"
    return lines[0]


class TestConstants:
    """Budget constants."""

    def test_values(self):
        assert TOKEN_LIMIT == 8000
        assert HARD_CAP_PER_STORY == 600
        assert CHARS_PER_TOKEN == 3.5

    def test_compression_fields(self):
        full = COMPRESSION_FIELDS[CompressionLevel.FULL_DETAIL]
        assert "quality_gate" in full
        assert "acceptance_criteria" in full
        assert "dev_notes" in full
        assert COMPRESSION_FIELDS[CompressionLevel.METADATA_PLUS_FILES] == (
            "id",
            "title",
            "executor",
            "status",
            "files_modified",
        )
        assert COMPRESSION_FIELDS[CompressionLevel.METADATA_ONLY] == (
            "id",
            "executor",
            "status",
        )


class TestEstimateTokens:
    """Tests for estimate_tokens()."""

    def test_empty_and_none_are_zero(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens(None) == 0

    def test_rounds_up(self):
        assert estimate_tokens("a" * 7) == 2
        assert estimate_tokens("a" * 8) == 3
        assert estimate_tokens("a") == 1

    def test_exact_multiple(self):
        assert estimate_tokens("a" * 3500) == 1000


class TestGetCompressionLevel:
    """Compression level is a pure function of distance."""

    @pytest.mark.parametrize("index", [7, 8, 9])
    def test_recent_is_full_detail(self, index):
        assert get_compression_level(index, 10) == CompressionLevel.FULL_DETAIL

    @pytest.mark.parametrize("index", [4, 5, 6])
    def test_middle_is_metadata_plus_files(self, index):
        assert get_compression_level(index, 10) == CompressionLevel.METADATA_PLUS_FILES

    @pytest.mark.parametrize("index", [0, 3])
    def test_old_is_metadata_only(self, index):
        assert get_compression_level(index, 10) == CompressionLevel.METADATA_ONLY

    def test_distance_zero_is_metadata_only(self):
        assert get_compression_level(10, 10) == CompressionLevel.METADATA_ONLY

    def test_negative_distance_is_metadata_only(self):
        assert get_compression_level(12, 10) == CompressionLevel.METADATA_ONLY


class TestBuildFileIndex:
    """Tests for build_file_index()."""

    def test_maps_files_to_story_ids(self):
        index = build_file_index(
            [
                StoryRecord(id="s1", files_modified=("src/a.py", "src/b.py")),
                StoryRecord(id="s2", files_modified=("src/b.py", "src/c.py")),
            ]
        )

        assert index["src/a.py"] == {"s1"}
        assert index["src/b.py"] == {"s1", "s2"}
        assert index["src/c.py"] == {"s2"}

    def test_skips_stories_without_files_and_bare_ids(self):
        index = build_file_index(
            [
                StoryRecord(id="s1"),
                "s2",
                StoryRecord(id="s3", files_modified=("src/a.py",)),
            ]
        )

        assert index == {"src/a.py": {"s3"}}


class TestHasFileOverlap:
    """Tests for has_file_overlap()."""

    def test_set_target(self):
        assert has_file_overlap(("src/a.py",), {"src/a.py", "src/b.py"})

    def test_mapping_target(self):
        assert has_file_overlap(("src/b.py",), {"src/b.py": {"s1"}})

    def test_sequence_target(self):
        assert has_file_overlap(["src/x.py"], ["src/y.py", "src/x.py"])

    def test_no_overlap(self):
        assert not has_file_overlap(("src/a.py",), {"src/z.py"})

    def test_empty_or_none(self):
        assert not has_file_overlap(None, {"src/a.py"})
        assert not has_file_overlap(("src/a.py",), None)
        assert not has_file_overlap((), {"src/a.py"})
        assert not has_file_overlap(("src/a.py",), set())


class TestTruncateToTokens:
    """Tests for truncate_to_tokens()."""

    def test_truncates_with_ellipsis(self):
        result = truncate_to_tokens("a" * 100, 10)

        assert result == "a" * 35 + "..."

    def test_short_text_unchanged(self):
        assert truncate_to_tokens("short", 10) == "short"

    def test_none_is_empty(self):
        assert truncate_to_tokens(None, 10) == ""


class TestFormatStoryEntry:
    """Tests for format_story_entry()."""

    def test_full_detail(self, story_factory):
        entry = format_story_entry(story_factory(), CompressionLevel.FULL_DETAIL)

        assert "id: story-1" in entry
        assert "quality_gate: @qa" in entry
        assert "status: completed" in entry
        assert "acceptance_criteria: AC1: Do something" in entry
        assert "files_modified: [src/index.py]" in entry
        assert "dev_notes: Implementation notes" in entry

    def test_metadata_plus_files(self, story_factory):
        entry = format_story_entry(
            story_factory(), CompressionLevel.METADATA_PLUS_FILES
        )

        assert "title: Test Story" in entry
        assert "files_modified: [src/index.py]" in entry
        assert "quality_gate" not in entry
        assert "dev_notes" not in entry

    def test_metadata_only(self, story_factory):
        entry = format_story_entry(story_factory(), CompressionLevel.METADATA_ONLY)

        assert entry == "id: story-1 | executor: @dev | status: completed"

    def test_absent_fields_are_omitted(self):
        story = StoryRecord(id="s1", executor="@dev", status="done")

        entry = format_story_entry(story, CompressionLevel.FULL_DETAIL)

        assert entry == "id: s1 | executor: @dev | status: done"

    def test_files_render_as_bracketed_list(self):
        story = StoryRecord(id="s1", files_modified=("a", "b"))

        entry = format_story_entry(story, CompressionLevel.METADATA_PLUS_FILES)

        assert entry == "id: s1 | files_modified: [a, b]"

    def test_bare_id_renders_as_itself(self):
        assert format_story_entry("story-7", CompressionLevel.FULL_DETAIL) == "story-7"

    def test_hard_cap_truncates_text_fields(self, story_factory):
        story = story_factory(dev_notes="x" * 5000, acceptance_criteria="y" * 5000)

        entry = format_story_entry(story, CompressionLevel.FULL_DETAIL)

        assert estimate_tokens(entry) <= HARD_CAP_PER_STORY + 1
        assert "..." in entry
        # Structural fields survive
        assert "id: story-1" in entry
        assert "quality_gate: @qa" in entry
        assert "files_modified: [src/index.py]" in entry

    def test_hard_cap_with_huge_file_list(self):
        files = tuple(f"src/module/file_{i}.py" for i in range(500))
        story = StoryRecord(id="s1", files_modified=files)

        entry = format_story_entry(story, CompressionLevel.METADATA_PLUS_FILES)

        assert estimate_tokens(entry) <= HARD_CAP_PER_STORY
        assert entry.startswith("id: s1")
        assert entry.endswith("...")


class TestEpicContextAccumulator:
    """Tests for EpicContextAccumulator.build_accumulated_context()."""

    def test_no_progress_returns_empty(self):
        acc = EpicContextAccumulator(None)

        assert acc.build_accumulated_context("12", 5) == ""

    def test_no_stories_returns_empty(self, progress_factory):
        acc = EpicContextAccumulator(progress_factory([]))

        assert acc.build_accumulated_context("12", 0) == ""

    def test_single_story(self, story_factory, progress_factory):
        progress = progress_factory([story_factory(id="story-12.1")])
        acc = EpicContextAccumulator(progress)

        result = acc.build_accumulated_context("12", 1)

        assert "Epic 12 Context" in result
        assert "1 stories completed" in result
        assert "story-12.1" in result

    def test_executor_distribution_in_header(self, story_factory, progress_factory):
        progress = progress_factory(
            [story_factory()],
            executor_distribution=(("@dev", 3), ("@qa", 1)),
        )
        acc = EpicContextAccumulator(progress)

        result = acc.build_accumulated_context("12", 1)

        assert "@dev: 3" in result
        assert "@qa: 1" in result

    def test_each_story_on_its_own_line(self, story_factory, progress_factory):
        stories = [story_factory(id=f"story-{i}") for i in range(3)]
        acc = EpicContextAccumulator(progress_factory(stories))

        result = acc.build_accumulated_context("12", 3)

        for i in range(3):
            line = _line_with(result, f"story-{i}")
            assert line.count("id: ") == 1

    def test_levels_follow_distance(self, story_factory, progress_factory):
        stories = [
            story_factory(
                id=f"story-{i}", title=f"Story {i}", files_modified=(f"src/f{i}.py",)
            )
            for i in range(10)
        ]
        acc = EpicContextAccumulator(progress_factory(stories))

        result = acc.build_accumulated_context("12", 10)

        assert "quality_gate:" in _line_with(result, "story-9")
        assert "quality_gate:" in _line_with(result, "story-7")
        middle = _line_with(result, "story-5")
        assert "title:" in middle
        assert "files_modified:" in middle
        assert "dev_notes:" not in middle
        old = _line_with(result, "story-0")
        assert "title:" not in old
        assert "files_modified:" not in old

    def test_bare_ids_rendered(self, story_factory, progress_factory):
        acc = EpicContextAccumulator(
            progress_factory(["story-a", story_factory(id="story-b")])
        )

        result = acc.build_accumulated_context("12", 2)

        assert "- story-a" in result.split("\n")
        assert "story-b" in result

    def test_file_index_exposed_after_build(self, story_factory, progress_factory):
        acc = EpicContextAccumulator(
            progress_factory([story_factory(id="s1", files_modified=("src/x.py",))])
        )
        assert acc.get_file_index() is None

        acc.build_accumulated_context("12", 1)

        assert acc.get_file_index() == {"src/x.py": {"s1"}}

    def test_factory(self, progress_factory):
        progress = progress_factory([])

        acc = create_epic_context_accumulator(progress)

        assert isinstance(acc, EpicContextAccumulator)
        assert acc.progress is progress


class TestUpgradeExceptions:
    """metadata_only stories are raised one level on overlap or executor match."""

    def test_file_overlap_upgrades_to_metadata_plus_files(
        self, story_factory, progress_factory
    ):
        stories = [story_factory(id="old-story", files_modified=("src/shared.py",))]
        stories += [
            story_factory(id=f"story-{i}", files_modified=(f"src/f{i}.py",))
            for i in range(1, 10)
        ]
        acc = EpicContextAccumulator(progress_factory(stories))

        result = acc.build_accumulated_context(
            "12", 10, files_to_modify=["src/shared.py"]
        )

        line = _line_with(result, "old-story")
        assert "title:" in line
        assert "files_modified:" in line

    def test_file_overlap_never_reaches_full_detail(
        self, story_factory, progress_factory
    ):
        stories = [story_factory(id="old-story", files_modified=("src/shared.py",))]
        acc = EpicContextAccumulator(progress_factory(stories))

        result = acc.build_accumulated_context(
            "12", 10, files_to_modify=["src/shared.py"]
        )

        line = _line_with(result, "old-story")
        assert "title:" in line
        assert "quality_gate:" not in line

    def test_executor_match_upgrades(self, story_factory, progress_factory):
        acc = EpicContextAccumulator(
            progress_factory([story_factory(id="old-story", executor="@dev")])
        )

        result = acc.build_accumulated_context("12", 10, executor="@dev")

        assert "title:" in _line_with(result, "old-story")

    def test_executor_mismatch_does_not_upgrade(self, story_factory, progress_factory):
        acc = EpicContextAccumulator(
            progress_factory([story_factory(id="old-story", executor="@qa")])
        )

        result = acc.build_accumulated_context("12", 10, executor="@dev")

        assert "title:" not in _line_with(result, "old-story")

    def test_both_conditions_do_not_stack(self, story_factory, progress_factory):
        acc = EpicContextAccumulator(
            progress_factory(
                [
                    story_factory(
                        id="old-story", executor="@dev", files_modified=("src/a.py",)
                    )
                ]
            )
        )

        result = acc.build_accumulated_context(
            "12", 10, files_to_modify=["src/a.py"], executor="@dev"
        )

        line = _line_with(result, "old-story")
        assert "title:" in line
        assert "quality_gate:" not in line

    def test_full_detail_stories_unchanged(self, story_factory, progress_factory):
        stories = [story_factory(id=f"story-{i}", executor="@dev") for i in range(10)]
        acc = EpicContextAccumulator(progress_factory(stories))

        result = acc.build_accumulated_context("12", 10, executor="@dev")

        assert "quality_gate:" in _line_with(result, "story-9")


class TestCompressionCascade:
    """The digest always fits TOKEN_LIMIT and keeps the recent stories."""

    def test_fits_within_token_limit(self, story_factory, progress_factory):
        stories = [
            story_factory(
                id=f"story-{i}",
                title=f"Story {i} with long title padding {'x' * 50}",
                dev_notes=f"Notes for story {i} {'detail ' * 200}",
                acceptance_criteria=f"AC for story {i} {'criteria ' * 200}",
                files_modified=tuple(f"src/module{i}/file{j}.py" for j in range(10)),
            )
            for i in range(20)
        ]
        acc = EpicContextAccumulator(progress_factory(stories))

        result = acc.build_accumulated_context("12", 20)

        assert estimate_tokens(result) <= TOKEN_LIMIT

    def test_recent_stories_preserved(self, story_factory, progress_factory):
        stories = [
            story_factory(
                id=f"story-{i}",
                dev_notes="x" * 500,
                acceptance_criteria="y" * 500,
                files_modified=tuple(f"src/f{i}_{j}.py" for j in range(5)),
            )
            for i in range(20)
        ]
        acc = EpicContextAccumulator(progress_factory(stories))

        result = acc.build_accumulated_context("12", 20)

        assert estimate_tokens(result) <= TOKEN_LIMIT
        for story_id in ("story-19", "story-18", "story-17"):
            assert story_id in result

    def test_drops_oldest_when_compression_is_not_enough(
        self, story_factory, progress_factory
    ):
        # Every entry hits the per-story cap even at metadata_only
        stories = [
            story_factory(id=f"story-{i:02d}", status="s" * 3000) for i in range(20)
        ]
        acc = EpicContextAccumulator(progress_factory(stories))

        result = acc.build_accumulated_context("12", 20)

        assert estimate_tokens(result) <= TOKEN_LIMIT
        assert "earlier stories omitted" in result
        assert "story-00" not in result
        for story_id in ("story-19", "story-18", "story-17"):
            assert story_id in result

    def test_oversized_header_never_hides_recent_stories(
        self, story_factory, progress_factory
    ):
        stories = [story_factory(id=f"story-{i}") for i in range(5)]
        progress = progress_factory(
            stories,
            epic_title="T" * 40000,
            executor_distribution=tuple((f"@agent{i}", i) for i in range(5000)),
        )

        result = EpicContextAccumulator(progress).build_accumulated_context("12", 5)

        assert estimate_tokens(result) <= TOKEN_LIMIT
        for story_id in ("story-4", "story-3", "story-2"):
            assert story_id in result
        title_line = next(line for line in result.splitlines() if line.startswith("Epic:"))
        assert estimate_tokens(title_line) <= HEADER_LINE_TOKENS + 1
