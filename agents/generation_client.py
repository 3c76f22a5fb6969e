"""GenerationClient: the single entry point the pipeline uses for model calls.

Constructed explicitly and passed in; there is no module-level client. Tests
replace it wholesale with an AsyncMock.
"""

import logging
from typing import Callable, Optional

from agents.artist_agent import ArtistAgent
from agents.continuity_agent import CharacterStateUpdate, ContinuityAgent
from agents.editor_agent import EditorAgent
from agents.planner_agent import PlannerAgent
from agents.writer_agent import ChapterRequest, WriterAgent
from config.settings import Settings
from models.book import Book
from models.continuity import CharacterStates, Outline
from tools.agent_sdk_client import AgentSDKClient
from tools.image_client import ImageClient

logger = logging.getLogger(__name__)


class GenerationClient:
    """Facade over the agents. One instance per process is typical."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_client: Optional[AgentSDKClient] = None,
        image_client: Optional[ImageClient] = None,
    ):
        self.settings = settings or Settings()
        self.llm = llm_client or AgentSDKClient(self.settings)
        self.planner = PlannerAgent(self.llm, self.settings)
        self.writer = WriterAgent(self.llm, self.settings)
        self.continuity = ContinuityAgent(self.llm, self.settings)
        self.editor = EditorAgent(self.llm, self.settings)
        self.artist = ArtistAgent(self.llm, self.settings, image_client)

    async def generate_outline(self, book: Book) -> Outline:
        return await self.planner.plan_outline(book)

    async def generate_chapter_text(
        self,
        request: ChapterRequest,
        on_text: Optional[Callable[[str], None]] = None,
        on_reset: Optional[Callable[[], None]] = None,
    ) -> str:
        return await self.writer.write_chapter(request, on_text=on_text, on_reset=on_reset)

    async def summarize_chapter(self, content: str, book_format: str = "text_only") -> str:
        return await self.continuity.summarize_chapter(content, book_format)

    async def update_character_states(
        self, current: CharacterStates, content: str, index: int,
    ) -> CharacterStateUpdate:
        return await self.continuity.update_character_states(current, content, index)

    async def condense_story_so_far(self, story: str, max_chars: int) -> str:
        return await self.continuity.condense_story_so_far(story, max_chars)

    async def review_chapter(
        self,
        content: str,
        genre: str = "",
        writing_style: str = "",
        book_format: str = "text_only",
    ) -> str:
        return await self.editor.polish_chapter(content, genre, writing_style, book_format)

    async def generate_cover_prompt(self, book: Book) -> str:
        return await self.artist.generate_cover_prompt(book)

    async def generate_cover_art(self, prompt: str) -> bytes:
        return await self.artist.render(prompt, aspect_ratio="2:3")

    async def generate_illustration(self, prompt: str) -> bytes:
        return await self.artist.render(prompt, aspect_ratio="4:3")

    def get_usage_summary(self) -> dict:
        return {
            "llm_calls": self.llm.total_calls,
            "image_calls": self.artist.image_calls,
        }
