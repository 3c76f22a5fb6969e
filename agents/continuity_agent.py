"""Continuity Agent: keeps the story-so-far and character states current."""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from agents.base_agent import BaseAgent
from config.exceptions import DraftBookError, LLMResponseParseError
from config.settings import Settings
from models.continuity import CharacterStates
from tools.agent_sdk_client import AgentSDKClient

logger = logging.getLogger(__name__)

# Character-state prompts see at most this much of the chapter
_STATE_CHAPTER_CHARS = 12000

_SUMMARY_SYSTEM_PROMPT = """You summarise book chapters for a writer who will continue
the story. Capture the events that matter later: decisions, revelations,
injuries, changed relationships, where everyone ends up. Plain prose, past
tense, no headings."""

_SCREENPLAY_SUMMARY_SYSTEM_PROMPT = """You summarise screenplay sequences for a screenwriter who will
write the next one. Capture what each scene changes, where every character
ends up, which setups were planted and which earlier setups paid off. Plain
prose, past tense, no headings."""

_SUMMARY_USER_TEMPLATE = """Summarise this chapter in about {words} words.

{content}"""

_STATES_SYSTEM_PROMPT = """You track the state of every character in a book so later
chapters stay consistent. Respond with JSON only."""

_STATES_USER_TEMPLATE = """Current character states (JSON):
{current}

Chapter {number} text:
{content}

Return the updated states for every character as a JSON object keyed by name:
{{"Name": {{"last_seen": <chapter number>, "status": "alive/injured/missing/...",
  "knows": ["facts this character now knows"], "goal": "what they want now"}}}}
Keep characters that did not appear, unchanged."""

_CONDENSE_SYSTEM_PROMPT = """You maintain the running "story so far" of a book. Condense
it without dropping facts a later chapter could contradict."""

_CONDENSE_USER_TEMPLATE = """Condense this story so far to under {max_chars} characters.
Keep it in chronological order, plain prose.

{story}"""


@dataclass
class CharacterStateUpdate:
    """Result of a character-state update.

    When ``fell_back`` is True, ``states`` is the unchanged input and the
    caller must keep its stored blob as it was.
    """
    states: CharacterStates
    fell_back: bool = False
    error: Optional[str] = None


class ContinuityAgent(BaseAgent):
    """Summaries, character states and story-so-far condensing."""

    def __init__(
        self,
        llm_client: Optional[AgentSDKClient] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(llm_client, settings)

    async def summarize_chapter(self, content: str, book_format: str = "text_only") -> str:
        """Summarise a chapter in about ``summary_target_words`` words.

        Screenplay sequences are summarised with their setups and payoffs.

        Raises:
            LLMResponseParseError: If the model returned nothing.
            LLMError: If the generation call fails.
        """
        text = await self.llm.chat(
            system_prompt=(
                _SCREENPLAY_SUMMARY_SYSTEM_PROMPT if book_format == "screenplay"
                else _SUMMARY_SYSTEM_PROMPT
            ),
            user_prompt=_SUMMARY_USER_TEMPLATE.format(
                words=self.settings.summary_target_words, content=content,
            ),
            model=self.settings.llm_model_memory,
        )
        summary = text.strip()
        if not summary:
            raise LLMResponseParseError("Empty chapter summary")
        return summary

    async def update_character_states(
        self, current: CharacterStates, content: str, index: int,
    ) -> CharacterStateUpdate:
        """Update character states from a chapter. Never raises.

        Any failure (call error, unparseable or off-schema JSON) returns the
        ``current`` object unchanged with ``fell_back=True``.
        """
        number = index + 1
        try:
            data = await self.llm.chat_json(
                system_prompt=_STATES_SYSTEM_PROMPT,
                user_prompt=_STATES_USER_TEMPLATE.format(
                    current=json.dumps(current.to_prompt_dict(), ensure_ascii=False, indent=2),
                    number=number,
                    content=content[:_STATE_CHAPTER_CHARS],
                ),
                model=self.settings.llm_model_memory,
            )
            states = CharacterStates.from_mapping(data)
        except DraftBookError as e:
            logger.warning(
                "Character state update failed for chapter %d, keeping previous states: %s",
                number, e,
            )
            return CharacterStateUpdate(states=current, fell_back=True, error=str(e))

        logger.debug("Character states updated after chapter %d: %d characters", number, len(states))
        return CharacterStateUpdate(states=states)

    async def condense_story_so_far(self, story: str, max_chars: int) -> str:
        """Shorten the story so far below ``max_chars``.

        Raises:
            LLMResponseParseError: If the condensed text is empty or still too long.
            LLMError: If the generation call fails.
        """
        text = await self.llm.chat(
            system_prompt=_CONDENSE_SYSTEM_PROMPT,
            user_prompt=_CONDENSE_USER_TEMPLATE.format(max_chars=max_chars, story=story),
            model=self.settings.llm_model_memory,
        )
        condensed = text.strip()
        if not condensed or len(condensed) > max_chars:
            raise LLMResponseParseError(
                f"Condensed story is {len(condensed)} chars, limit {max_chars}",
                raw_response=text,
            )
        return condensed
