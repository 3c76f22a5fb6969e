"""Writer Agent: writes one chapter from the outline and the continuity state."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMResponseParseError
from config.settings import Settings
from models.continuity import ChapterSpec, CharacterStates, Outline
from tools.agent_sdk_client import AgentSDKClient
from tools.text_utils import count_words, ensure_fade_out, ensure_the_end, strip_leading_heading

logger = logging.getLogger(__name__)

# A chapter shorter than this is treated as a failed generation
_MIN_CHAPTER_WORDS = 50


@dataclass
class ChapterRequest:
    """Everything the writer needs for one chapter, read from the continuity store."""
    book_title: str
    genre: str
    book_type: str
    writing_style: str
    characters: Optional[str]  # JSON array from the book request
    outline: Outline
    index: int  # 0-based
    heading: str
    story_so_far: str = ""
    character_states: CharacterStates = field(default_factory=CharacterStates)
    previous_ending: str = ""
    book_format: str = "text_only"

    @property
    def spec(self) -> ChapterSpec:
        return self.outline.spec_at(self.index)

    @property
    def number(self) -> int:
        return self.index + 1

    @property
    def total_chapters(self) -> int:
        return len(self.outline)

    @property
    def is_last(self) -> bool:
        return self.number >= self.total_chapters

    @property
    def is_screenplay(self) -> bool:
        return self.book_format == "screenplay"


_SYSTEM_PROMPT = """You are a skilled novelist writing one chapter of a longer book.
Stay consistent with everything that has already happened: facts, character
knowledge, injuries, relationships and locations in the story so far and the
character states are canon. Show, don't tell. Vary sentence length. Write
dialogue that sounds like people talking.

Output only the chapter prose. Do not add notes, summaries or markdown."""

_SCREENPLAY_SYSTEM_PROMPT = """You are a professional screenwriter writing one sequence of a
feature screenplay. Use standard screenplay format: scene headings
(INT./EXT. LOCATION - DAY/NIGHT), short present-tense action lines, character
names in capitals above their dialogue, parentheticals only where needed.
Everything in the story so far and the character states is canon. Plant
setups that later sequences can pay off, and pay off the ones already planted.

Output only the screenplay pages. Do not add notes, summaries or markdown."""

_USER_TEMPLATE = """{work}: {title} ({genre}, {book_type})
Writing style: {writing_style}

Characters:
{characters}

Full outline:
{outline}

Story so far:
{story_so_far}

Character states (JSON):
{character_states}

End of the previous {unit}:
{previous_ending}

Now write {unit} {number} of {total}: "{chapter_title}".
What happens: {summary}
{pov_line}{key_points}Length: about {target_words} words.
{closing}
Start the {unit} with the heading line "{heading}"."""


class WriterAgent(BaseAgent):
    """Generates chapter text, or screenplay sequences for screenplay books."""

    def __init__(
        self,
        llm_client: Optional[AgentSDKClient] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(llm_client, settings)

    async def write_chapter(
        self,
        request: ChapterRequest,
        on_text: Optional[Callable[[str], None]] = None,
        on_reset: Optional[Callable[[], None]] = None,
    ) -> str:
        """Write a single chapter.

        Args:
            request: Chapter request built from the book's continuity state.
            on_text: Optional callback fed each text block as it streams in.
            on_reset: Optional callback fired when a model attempt starts, so
                text streamed by an abandoned attempt can be discarded.

        Returns:
            The chapter text, starting with its heading. The last chapter ends
            with "The End", or "FADE OUT." for a screenplay.

        Raises:
            LLMResponseParseError: If the model returned (almost) nothing.
            LLMError: If the generation call fails.
        """
        spec = request.spec
        unit = "sequence" if request.is_screenplay else "chapter"
        logger.info("Writing %s %d/%d of '%s'", unit, request.number, request.total_chapters,
                    request.book_title)

        pov_line = f"Point of view: {spec.pov}\n" if spec.pov else ""
        key_points = ""
        if spec.key_points:
            key_points = "Key points:\n" + "\n".join(f"- {p}" for p in spec.key_points) + "\n"
        if request.is_screenplay:
            if request.is_last:
                closing = "This is the final sequence: resolve the story and end on \"FADE OUT.\""
            else:
                closing = "Do not end the film; cut out on a moment that pulls into the next sequence."
        elif request.is_last:
            closing = "This is the final chapter: resolve the story and end on the line \"The End\"."
        else:
            closing = "Do not end the book; leave the reader wanting the next chapter."

        user_prompt = _USER_TEMPLATE.format(
            work="Screenplay" if request.is_screenplay else "Book",
            unit=unit,
            title=request.book_title,
            genre=request.genre or "general",
            book_type=request.book_type,
            writing_style=request.writing_style or "clear, engaging prose",
            characters=self._format_characters(request.characters),
            outline="\n".join(
                f"{s.number}. {s.title}: {s.summary}" for s in request.outline.chapters
            ),
            story_so_far=request.story_so_far or f"(This is the first {unit}.)",
            character_states=self._dump(request.character_states.to_prompt_dict())
            if len(request.character_states) else "(none yet)",
            previous_ending=request.previous_ending or f"(This is the first {unit}.)",
            number=request.number,
            total=request.total_chapters,
            chapter_title=spec.title,
            summary=spec.summary,
            pov_line=pov_line,
            key_points=key_points,
            target_words=spec.target_words,
            closing=closing,
            heading=request.heading,
        )

        on_event = None
        if on_text or on_reset:
            def on_event(event: dict) -> None:
                if event.get("type") == "start" and on_reset:
                    on_reset()
                elif event.get("type") == "text" and on_text:
                    on_text(event["text"])

        raw_text = await self.llm.chat(
            system_prompt=_SCREENPLAY_SYSTEM_PROMPT if request.is_screenplay else _SYSTEM_PROMPT,
            user_prompt=user_prompt,
            model=self.settings.llm_model_writing,
            timeout=self.settings.chapter_timeout_seconds,
            on_event=on_event,
        )

        body = strip_leading_heading(raw_text.strip(), request.heading)
        word_count = count_words(body)
        if word_count < _MIN_CHAPTER_WORDS:
            raise LLMResponseParseError(
                f"Chapter {request.number} came back with only {word_count} words",
                raw_response=raw_text,
            )

        if request.is_screenplay:
            body = ensure_fade_out(body, request.is_last)
        else:
            body = ensure_the_end(body, request.is_last)
        content = f"{request.heading}\n\n{body}"
        logger.info("%s %d written: %d words", unit.capitalize(), request.number, count_words(content))
        return content
