"""Tests for text utilities and illustration prompt building."""

import pytest

from models.enums import ChapterFormat
from tools.text_utils import (
    FADE_OUT,
    THE_END,
    count_words,
    ensure_fade_out,
    ensure_the_end,
    excerpt_summary,
    format_chapter_heading,
    format_sequence_heading,
    get_chapter_ending,
    split_into_paragraphs,
    strip_leading_heading,
    trim_story_so_far,
)


class TestCountWords:
    def test_counts_whitespace_separated(self):
        assert count_words("The fog  rolled\nin.") == 4

    @pytest.mark.parametrize("text", ["", None, "   \n  "])
    def test_empty(self, text):
        assert count_words(text) == 0


class TestChapterHeading:
    @pytest.mark.parametrize("fmt, expected", [
        (ChapterFormat.NUMBERS, "Chapter 3"),
        (ChapterFormat.TITLES, "The Long Night"),
        (ChapterFormat.BOTH, "Chapter 3: The Long Night"),
        (ChapterFormat.POV, "Chapter 3: Mara"),
    ])
    def test_formats(self, fmt, expected):
        assert format_chapter_heading(fmt, 3, "The Long Night", "Mara") == expected

    def test_missing_title_falls_back_to_number(self):
        assert format_chapter_heading(ChapterFormat.TITLES, 2, "") == "Chapter 2"
        assert format_chapter_heading(ChapterFormat.BOTH, 2, "") == "Chapter 2"

    def test_missing_pov_falls_back_to_number(self):
        assert format_chapter_heading(ChapterFormat.POV, 5, "Title", None) == "Chapter 5"

    def test_sequence_heading(self):
        assert format_sequence_heading(4, "The Long Night") == "SEQUENCE 4: THE LONG NIGHT"
        assert format_sequence_heading(4) == "SEQUENCE 4"


class TestStripLeadingHeading:
    def test_strips_exact_heading(self):
        assert strip_leading_heading("Chapter 1: Dawn\n\nBody text.", "Chapter 1: Dawn") == "Body text."

    def test_strips_markdown_heading(self):
        assert strip_leading_heading("## **Chapter 1: Dawn**\nBody.", "Chapter 1: Dawn") == "Body."

    def test_strips_other_numbered_heading(self):
        assert strip_leading_heading("Chapter 1 - Sunrise\nBody.", "Chapter 1: Dawn") == "Body."

    def test_strips_sequence_heading(self):
        assert strip_leading_heading("SEQUENCE 2: DAWN\nINT. TENT - DAY", "SEQUENCE 2: DAWN") == "INT. TENT - DAY"

    def test_keeps_prose(self):
        text = "Mara woke before dawn.\nShe listened."
        assert strip_leading_heading(text, "Chapter 1: Dawn") == text


class TestEnsureTheEnd:
    def test_appends_to_last_chapter(self):
        assert ensure_the_end("They went home.", True) == f"They went home.\n\n{THE_END}"

    def test_no_duplicate_marker(self):
        result = ensure_the_end("They went home.\n\n**The End.**", True)
        assert result.count("The End") == 1
        assert result.endswith(THE_END)

    def test_removed_from_middle_chapters(self):
        assert ensure_the_end("They went home.\n\nThe End", False) == "They went home."

    def test_sentence_ending_in_the_end_kept(self):
        text = "She knew this was the end."
        assert ensure_the_end(text, False) == text


class TestEnsureFadeOut:
    def test_last_sequence_swaps_the_end_for_fade_out(self):
        assert ensure_fade_out("Mara walks off.\n\nThe End", True) == f"Mara walks off.\n\n{FADE_OUT}"

    def test_no_duplicate_fade_out(self):
        assert ensure_fade_out("Mara walks off.\n\nFADE OUT.", True).count(FADE_OUT) == 1

    def test_removed_from_middle_sequences(self):
        assert ensure_fade_out("Mara walks off.\n\nFADE OUT.", False) == "Mara walks off."


class TestParagraphsAndEndings:
    def test_split_into_paragraphs(self):
        assert split_into_paragraphs("One.\n\n\nTwo.\n  \nThree.") == ["One.", "Two.", "Three."]

    def test_chapter_ending_short_content(self):
        assert get_chapter_ending("short", 100) == "short"

    def test_chapter_ending_takes_tail(self):
        assert get_chapter_ending("a" * 50 + "b" * 10, 10) == "b" * 10

    def test_chapter_ending_empty(self):
        assert get_chapter_ending("") == ""


class TestExcerptSummary:
    def test_keeps_whole_sentences_within_limit(self):
        text = "One two three. Four five six. Seven eight nine."
        assert excerpt_summary(text, 6) == "One two three. Four five six."

    def test_long_first_sentence_truncated(self):
        summary = excerpt_summary(" ".join(["word"] * 50) + ".", 10)
        assert count_words(summary) == 10
        assert summary.endswith("...")


class TestTrimStorySoFar:
    def test_short_story_unchanged(self):
        assert trim_story_so_far("Chapter 1: ok", 100) == "Chapter 1: ok"

    def test_drops_oldest_entries(self):
        story = "Chapter 1: aaaa\n\nChapter 2: bbbb\n\nChapter 3: cccc"
        trimmed = trim_story_so_far(story, 35)
        assert trimmed == "Chapter 2: bbbb\n\nChapter 3: cccc"

    def test_single_long_entry_cut_from_front(self):
        trimmed = trim_story_so_far("x" * 20 + "END", 5)
        assert trimmed == "x" * 2 + "END"


class TestIllustrationPrompts:
    def _spec(self, summary="Mara fights a bandit with a knife in the dark."):
        from models.continuity import ChapterSpec
        return ChapterSpec(number=2, title="Ambush", summary=summary)

    def test_base_prompt(self):
        from tools.illustration_prompts import NO_TEXT_INSTRUCTION, build_illustration_prompt
        prompt = build_illustration_prompt(self._spec(), "The Salt Road", "watercolor")
        assert '"Ambush"' in prompt
        assert "Art style: watercolor." in prompt
        assert NO_TEXT_INSTRUCTION in prompt

    def test_level_one_replaces_words(self):
        from tools.illustration_prompts import sanitize_scene_for_retry
        result = sanitize_scene_for_retry("A knife in the Dark", 1)
        assert result == "A object in the dim"

    def test_level_zero_unchanged(self):
        from tools.illustration_prompts import sanitize_scene_for_retry
        assert sanitize_scene_for_retry("blood", 0) == "blood"

    def test_level_two_reframes(self):
        from tools.illustration_prompts import sanitize_scene_for_retry
        result = sanitize_scene_for_retry("blood on the sand", 2)
        assert result.startswith("A peaceful atmospheric scene: red liquid on the sand")

    def test_retry_prompt_appends_safety_override(self):
        from tools.illustration_prompts import SAFETY_OVERRIDE, build_retry_prompt
        prompt = build_retry_prompt("a knife", 1, "Ambush", "The Salt Road")
        assert prompt.endswith(SAFETY_OVERRIDE)
        assert "knife" not in prompt

    def test_retry_prompt_falls_back_to_setting_shot(self):
        from tools.illustration_prompts import FALLBACK_SCENE_LEVEL, build_retry_prompt
        prompt = build_retry_prompt("a knife", FALLBACK_SCENE_LEVEL, "Ambush", "The Salt Road",
                                    "salt flats at dusk")
        assert "salt flats at dusk" in prompt
        assert "No people or characters" in prompt
