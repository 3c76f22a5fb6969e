"""Artist Agent: cover prompts and image renders."""

import logging
from typing import Optional

from agents.base_agent import BaseAgent
from config.settings import Settings
from models.book import Book
from tools.agent_sdk_client import AgentSDKClient
from tools.image_client import ImageClient

logger = logging.getLogger(__name__)

_COVER_SYSTEM_PROMPT = """You write prompts for an image model that paints book covers.
One paragraph, concrete visual details, no text or lettering in the image."""

_COVER_USER_TEMPLATE = """Write a cover art prompt for this book.

Title: {title}
Genre: {genre}
Premise: {premise}
Art style: {art_style}
Story summary: {story}"""


class ArtistAgent(BaseAgent):
    """Produces cover art and illustrations through the image client."""

    def __init__(
        self,
        llm_client: Optional[AgentSDKClient] = None,
        settings: Optional[Settings] = None,
        image_client: Optional[ImageClient] = None,
    ):
        super().__init__(llm_client, settings)
        self._images = image_client

    @property
    def images(self) -> ImageClient:
        if self._images is None:
            self._images = ImageClient(self.settings)
        return self._images

    @property
    def image_calls(self) -> int:
        """Images requested so far; zero before the image client is first used."""
        return self._images.total_calls if self._images is not None else 0

    async def generate_cover_prompt(self, book: Book) -> str:
        """Describe the cover for the image model."""
        text = await self.llm.chat(
            system_prompt=_COVER_SYSTEM_PROMPT,
            user_prompt=_COVER_USER_TEMPLATE.format(
                title=book.title,
                genre=book.genre or "general",
                premise=book.premise or "(none)",
                art_style=book.art_style or "painterly, cinematic lighting",
                story=(book.story_so_far or "")[:2000] or "(not available)",
            ),
            model=self.settings.llm_model_memory,
        )
        prompt = text.strip()
        if not prompt:
            prompt = f"Book cover for '{book.title}', a {book.genre or 'general'} story. No text."
        return prompt

    async def render(self, prompt: str, aspect_ratio: str = "1:1") -> bytes:
        logger.info("Rendering image (%s): %s", aspect_ratio, prompt[:80])
        return await self.images.generate(prompt, aspect_ratio=aspect_ratio)
