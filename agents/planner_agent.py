"""Planner Agent: turns the book request into a chapter-by-chapter outline."""

import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from agents.base_agent import BaseAgent
from config.exceptions import OutlineError
from config.settings import Settings
from models.book import Book
from models.continuity import ChapterSpec, Outline
from tools.agent_sdk_client import AgentSDKClient
from tools.llm_client import parse_json

logger = logging.getLogger(__name__)

# Rescale per-chapter targets when their sum drifts more than this from the book target
_WORD_TARGET_TOLERANCE = 0.10

_SYSTEM_PROMPT = """You are an experienced book planner. You design chapter outlines
that give every chapter a clear purpose, keep the story moving toward the
requested ending, and respect the author's premise and characters.

Respond with JSON only, no commentary."""

_USER_TEMPLATE = """Plan chapters {first}-{last} of a {total}-chapter {book_type} book.

Title: {title}
Genre: {genre}
Premise: {premise}
Characters:
{characters}
Beginning: {beginning}
Middle: {middle}
Ending: {ending}
Writing style: {writing_style}
Total length: about {target_words} words across {total} chapters.
{previous}
Return exactly {count} chapters in this JSON shape:
{{"chapters": [{{"number": {first}, "title": "...", "summary": "2-3 sentences of what happens",
  "pov": "point-of-view character or null", "targetWords": {per_chapter},
  "keyPoints": ["..."]}}]}}"""

_PREVIOUS_TEMPLATE = """
Chapters already planned (continue from these, do not repeat them):
{planned}
"""


class PlannerAgent(BaseAgent):
    """Generates a book outline, in chunks for long books."""

    def __init__(
        self,
        llm_client: Optional[AgentSDKClient] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(llm_client, settings)

    async def plan_outline(self, book: Book) -> Outline:
        """Plan ``book.target_chapters`` chapters.

        Books longer than ``outline_chunk_threshold`` chapters are planned
        ``outline_chunk_size`` chapters per call, each call seeing what was
        planned before it.

        Raises:
            OutlineError: If the model output cannot be turned into a full outline.
            LLMError: If a generation call fails.
        """
        total = book.target_chapters
        if total < 1:
            raise OutlineError("Book must have at least one chapter", {"book_id": book.id})

        if total > self.settings.outline_chunk_threshold:
            chunk = self.settings.outline_chunk_size
        else:
            chunk = total

        specs: list[ChapterSpec] = []
        for first in range(1, total + 1, chunk):
            last = min(first + chunk - 1, total)
            logger.info("Planning chapters %d-%d of %d for book %s", first, last, total, book.id)
            specs.extend(await self._plan_range(book, first, last, specs))

        outline = Outline(chapters=specs)
        _rescale_word_targets(outline, book.target_words)
        logger.info("Outline planned for book %s: %d chapters", book.id, len(outline))
        return outline

    async def _plan_range(
        self, book: Book, first: int, last: int, planned: list[ChapterSpec],
    ) -> list[ChapterSpec]:
        count = last - first + 1
        previous = ""
        if planned:
            previous = _PREVIOUS_TEMPLATE.format(
                planned="\n".join(f"{s.number}. {s.title}: {s.summary}" for s in planned),
            )
        user_prompt = _USER_TEMPLATE.format(
            first=first,
            last=last,
            total=book.target_chapters,
            count=count,
            book_type=book.book_type.value,
            title=book.title,
            genre=book.genre or "general",
            premise=book.premise or "(none)",
            characters=self._format_characters(book.characters),
            beginning=book.beginning or "(author's choice)",
            middle=book.middle or "(author's choice)",
            ending=book.ending or "(author's choice)",
            writing_style=book.writing_style or "clear, engaging prose",
            target_words=book.target_words,
            per_chapter=max(book.target_words // max(book.target_chapters, 1), 1),
            previous=previous,
        )

        raw_text = await self.llm.chat(
            system_prompt=_SYSTEM_PROMPT,
            user_prompt=user_prompt,
            model=self.settings.llm_model_planning,
            timeout=self.settings.chapter_timeout_seconds,
        )
        specs = parse_outline_chapters(raw_text)

        if len(specs) > count:
            logger.warning(
                "Planner returned %d chapters for %d-%d, keeping the first %d",
                len(specs), first, last, count,
            )
            specs = specs[:count]
        elif len(specs) < count:
            raise OutlineError(
                f"Planner returned {len(specs)} chapters, expected {count}",
                {"first": first, "last": last},
            )

        for offset, spec in enumerate(specs):
            spec.number = first + offset
        return specs


def parse_outline_chapters(raw_text: str) -> list[ChapterSpec]:
    """Parse planner output into chapter specs.

    Accepts ``{"chapters": [...]}`` or a bare array.

    Raises:
        OutlineError: If no chapter list can be read.
    """
    try:
        data: Any = parse_json(raw_text)
    except ValueError as e:
        raise OutlineError(
            "Planner response is not JSON",
            {"raw_response": raw_text[:200]},
        ) from e

    chapters = data.get("chapters") if isinstance(data, dict) else data
    if not isinstance(chapters, list):
        raise OutlineError("Planner response has no chapter list", {"raw_response": raw_text[:200]})

    specs = []
    for position, item in enumerate(chapters, start=1):
        if not isinstance(item, dict):
            raise OutlineError(f"Outline entry {position} is not an object")
        item = {"number": position, **item}
        try:
            specs.append(ChapterSpec.model_validate(item))
        except PydanticValidationError as e:
            raise OutlineError(f"Outline entry {position} is malformed: {e}") from e
    return specs


def _rescale_word_targets(outline: Outline, target_words: int) -> None:
    """Fill missing per-chapter targets and rescale so they sum to about ``target_words``."""
    if not outline.chapters or target_words <= 0:
        return
    share = max(target_words // len(outline.chapters), 1)
    for spec in outline.chapters:
        if spec.target_words <= 0:
            spec.target_words = share

    current = sum(s.target_words for s in outline.chapters)
    if abs(current - target_words) <= target_words * _WORD_TARGET_TOLERANCE:
        return
    factor = target_words / current
    logger.debug("Rescaling chapter word targets by %.2f (%d -> %d)", factor, current, target_words)
    for spec in outline.chapters:
        spec.target_words = max(int(round(spec.target_words * factor)), 1)
