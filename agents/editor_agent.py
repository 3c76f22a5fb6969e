"""Editor Agent: one polish pass over a finished chapter."""

import logging
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import LLMResponseParseError
from config.settings import Settings
from tools.agent_sdk_client import AgentSDKClient
from tools.text_utils import count_words

logger = logging.getLogger(__name__)

# Polished text must keep at least this share of the original's words
MIN_POLISH_RATIO = 0.5

_SYSTEM_PROMPT = """You are a line editor. You tighten prose, fix grammar, smooth
awkward transitions and remove repetition, while keeping the author's voice,
every plot event, every line of dialogue's meaning, and the chapter's length.

Return the full edited chapter text only, with its heading, and nothing else."""

_SCREENPLAY_SYSTEM_PROMPT = """You are a script editor. You tighten action lines, sharpen
dialogue and fix formatting so every scene heading, character cue and
parenthetical follows standard screenplay format. Keep every scene, every
setup and payoff, and the sequence's length.

Return the full edited sequence only, with its heading, and nothing else."""

_USER_TEMPLATE = """Genre: {genre}
Writing style to preserve: {writing_style}

Edit this chapter:

{content}"""


class EditorAgent(BaseAgent):
    """Polishes chapter prose."""

    def __init__(
        self,
        llm_client: Optional[AgentSDKClient] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(llm_client, settings)

    async def polish_chapter(
        self,
        content: str,
        genre: str = "",
        writing_style: str = "",
        book_format: str = "text_only",
    ) -> str:
        """Return a polished version of ``content``.

        Screenplay sequences get a script edit instead of a prose line edit.

        Raises:
            LLMResponseParseError: If the polished text lost more than half of
                the original's words (the model summarised instead of editing).
            LLMError: If the generation call fails.
        """
        original_words = count_words(content)
        logger.info("Polishing chapter (%d words)...", original_words)

        raw_text = await self.llm.chat(
            system_prompt=_SCREENPLAY_SYSTEM_PROMPT if book_format == "screenplay" else _SYSTEM_PROMPT,
            user_prompt=_USER_TEMPLATE.format(
                genre=genre or "general",
                writing_style=writing_style or "as written",
                content=content,
            ),
            model=self.settings.llm_model_editing,
            timeout=self.settings.chapter_timeout_seconds,
        )
        polished = raw_text.strip()
        polished_words = count_words(polished)

        if polished_words < original_words * MIN_POLISH_RATIO:
            raise LLMResponseParseError(
                f"Polished chapter too short: {polished_words} of {original_words} words",
                raw_response=raw_text,
            )

        logger.info("Chapter polished: %d -> %d words", original_words, polished_words)
        return polished
