"""Replicate wrapper for cover art and illustrations."""

import asyncio
import logging
import os
from typing import Any, Optional

import httpx
import replicate

from config.exceptions import ImageGenerationError
from config.settings import Settings

logger = logging.getLogger(__name__)

_CONTENT_FILTER_MARKERS = ("nsfw", "safety", "content filter", "flagged", "blocked")


class ImageClient:
    """Renders one image per call through a Replicate model.

    Replicate returns either file objects (``FileOutput`` with ``.read()``) or
    URLs depending on the model and client version; both are reduced to raw
    image bytes here.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[replicate.Client] = None,
    ):
        self.settings = settings or Settings()
        api_token = self.settings.replicate_api_token or os.getenv("REPLICATE_API_TOKEN")
        self._client = client or replicate.Client(api_token=api_token)
        self.total_calls = 0

    async def generate(self, prompt: str, aspect_ratio: str = "1:1") -> bytes:
        """Render ``prompt`` and return the image bytes.

        Raises:
            ImageGenerationError: The model failed, refused the prompt, or
                returned nothing usable. ``details["blocked"]`` is True when the
                failure looks like a content-filter refusal.
        """
        self.total_calls += 1
        model = self.settings.image_model
        logger.debug("Replicate call: model=%s, prompt=%d chars", model, len(prompt))
        try:
            output = await asyncio.wait_for(
                asyncio.to_thread(
                    self._client.run,
                    model,
                    input={
                        "prompt": prompt,
                        "aspect_ratio": aspect_ratio,
                        "output_format": "png",
                    },
                ),
                timeout=self.settings.fast_task_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise ImageGenerationError("Image generation timed out", {"model": model}) from e
        except Exception as e:
            blocked = any(marker in str(e).lower() for marker in _CONTENT_FILTER_MARKERS)
            raise ImageGenerationError(
                f"Image generation failed: {e}", {"model": model, "blocked": blocked},
            ) from e

        return await self._read_output(output)

    async def _read_output(self, output: Any) -> bytes:
        item = output
        if isinstance(output, (list, tuple)):
            if not output:
                raise ImageGenerationError("Image model returned no output")
            item = output[0]

        if hasattr(item, "read"):
            data = await asyncio.to_thread(item.read)
        elif isinstance(item, str) and item.startswith(("http://", "https://")):
            data = await self._download(item)
        else:
            raise ImageGenerationError(
                "Unexpected image model output", {"type": type(item).__name__},
            )

        if not data:
            raise ImageGenerationError("Image model returned an empty image")
        return data

    async def _download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self.settings.fast_task_timeout_seconds) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise ImageGenerationError(f"Failed to download image: {e}", {"url": url}) from e
