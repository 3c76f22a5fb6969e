"""Text utilities: word counting, chapter headings, summary fallbacks."""

import re
from typing import Optional

from models.enums import ChapterFormat

THE_END = "The End"
FADE_OUT = "FADE OUT."

_WORD_RE = re.compile(r"\S+")
_THE_END_RE = re.compile(r"\n\s*(?:#+\s*)?\**\s*the\s+end\.?\s*\**\s*$", re.IGNORECASE)
_FADE_OUT_RE = re.compile(r"\n\s*\**\s*fade\s+out\.?\s*\**\s*$", re.IGNORECASE)
_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")
_NUMBERED_HEADING_RE = re.compile(r"^(?:chapter|sequence)\s+\d+\b[^\n]{0,80}$", re.IGNORECASE)


def count_words(text: Optional[str]) -> int:
    """Count whitespace-separated words."""
    if not text:
        return 0
    return len(_WORD_RE.findall(text))


def format_chapter_heading(
    chapter_format: ChapterFormat,
    number: int,
    title: str = "",
    pov: Optional[str] = None,
) -> str:
    """Heading line for a chapter, following the book's chapter format.

    Falls back to the numbered form when the format needs a title or POV
    the outline did not provide.
    """
    numbered = f"Chapter {number}"
    if chapter_format == ChapterFormat.NUMBERS:
        return numbered
    if chapter_format == ChapterFormat.TITLES:
        return title or numbered
    if chapter_format == ChapterFormat.POV:
        return f"{numbered}: {pov}" if pov else numbered
    return f"{numbered}: {title}" if title else numbered


def format_sequence_heading(number: int, title: str = "") -> str:
    """Heading line for a screenplay sequence, in upper case."""
    numbered = f"SEQUENCE {number}"
    return f"{numbered}: {title.upper()}" if title else numbered


def strip_leading_heading(content: str, heading: str) -> str:
    """Remove a heading the model echoed at the top of the chapter body."""
    lines = content.lstrip().splitlines()
    if not lines:
        return content
    first = lines[0].strip().lstrip("#").strip().strip("*").strip()
    if first.lower() == heading.lower() or _NUMBERED_HEADING_RE.match(first):
        return "\n".join(lines[1:]).lstrip()
    return content


def ensure_the_end(content: str, is_last: bool) -> str:
    """The final chapter ends with exactly one "The End"; others never do."""
    body = _THE_END_RE.sub("", content.rstrip()).rstrip()
    if is_last:
        return f"{body}\n\n{THE_END}"
    return body


def ensure_fade_out(content: str, is_last: bool) -> str:
    """Screenplay counterpart of ``ensure_the_end``: only the last sequence fades out."""
    body = _THE_END_RE.sub("", content.rstrip()).rstrip()
    body = _FADE_OUT_RE.sub("", body).rstrip()
    if is_last:
        return f"{body}\n\n{FADE_OUT}"
    return body


def split_into_paragraphs(text: str) -> list[str]:
    """Split text on blank lines."""
    paragraphs = re.split(r"\n\s*\n", text)
    return [p.strip() for p in paragraphs if p.strip()]


def get_chapter_ending(content: str, char_limit: int = 1200) -> str:
    """Last ``char_limit`` characters of a chapter, for hand-off into the next one."""
    if not content:
        return ""
    if len(content) <= char_limit:
        return content
    return content[-char_limit:]


def excerpt_summary(content: str, max_words: int = 150) -> str:
    """Cheap stand-in summary: the opening sentences up to ``max_words``.

    Used when the summariser call fails, so the story so far still gets an
    entry for the chapter.
    """
    sentences = _SENTENCE_END_RE.split(" ".join(content.split()))
    picked: list[str] = []
    words = 0
    for sentence in sentences:
        n = count_words(sentence)
        if picked and words + n > max_words:
            break
        picked.append(sentence)
        words += n
    summary = " ".join(picked)
    if count_words(summary) > max_words:
        summary = " ".join(summary.split()[:max_words]) + "..."
    return summary


def trim_story_so_far(story: str, max_chars: int) -> str:
    """Drop the oldest paragraphs until the story fits in ``max_chars``.

    The most recent paragraph is always kept, cut from the front if needed.
    """
    if len(story) <= max_chars:
        return story
    paragraphs = split_into_paragraphs(story)
    while len(paragraphs) > 1 and len("\n\n".join(paragraphs)) > max_chars:
        paragraphs.pop(0)
    trimmed = "\n\n".join(paragraphs)
    if len(trimmed) > max_chars:
        trimmed = trimmed[-max_chars:]
    return trimmed
