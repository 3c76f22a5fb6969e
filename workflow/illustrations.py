"""Illustration sub-pipeline: one image per outline position.

Illustrations never touch the book's text state. Each position fails on its
own, and failed positions are retried in bulk with progressively safer
prompts up to ``max_illustration_retries`` attempts.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from agents.generation_client import GenerationClient
from config.exceptions import BookNotFoundError, DraftBookError
from config.settings import Settings
from models.book import Book
from models.continuity import Outline
from models.database import Database
from models.enums import IllustrationStatus
from models.illustration import Illustration
from tools.illustration_prompts import build_illustration_prompt, build_retry_prompt
from tools.media_store import MediaStore

logger = logging.getLogger(__name__)


@dataclass
class RetryTally:
    """Outcome of a bulk retry."""
    retried: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped_max_retries: int = 0


@dataclass
class FailedIllustrationReport:
    book_id: int
    total: int
    completed: int
    failed: list[Illustration] = field(default_factory=list)


class IllustrationPipeline:
    """Renders, retries and reports a book's illustrations."""

    def __init__(
        self,
        db: Database,
        generator: GenerationClient,
        settings: Optional[Settings] = None,
        media: Optional[MediaStore] = None,
    ):
        self.db = db
        self.generator = generator
        self.settings = settings or Settings()
        self.media = media or MediaStore(self.settings.media_dir)

    def _load(self, book_id: int) -> tuple[Book, Outline]:
        book = self.db.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book, Outline.from_json(book.outline)

    def ensure_slots(self, book_id: int) -> int:
        """Create a pending row for every outline position that lacks one."""
        book, outline = self._load(book_id)
        if not book.book_format.is_illustrated:
            return 0
        return self.db.create_illustrations(book_id, list(range(len(outline))))

    async def generate_pending(self, book_id: int) -> RetryTally:
        """Render every pending position concurrently (bounded)."""
        book, outline = self._load(book_id)
        pending = self.db.get_illustrations(book_id, IllustrationStatus.PENDING)
        semaphore = asyncio.Semaphore(self.settings.illustration_concurrency)

        async def _bounded(illustration: Illustration) -> bool:
            async with semaphore:
                return await self.generate_position(book, outline, illustration)

        logger.info("Rendering %d pending illustrations for book %d", len(pending), book_id)
        results = await asyncio.gather(*(_bounded(i) for i in pending))
        tally = RetryTally(retried=len(results), succeeded=sum(results))
        tally.failed = tally.retried - tally.succeeded
        return tally

    async def generate_position(
        self,
        book: Book,
        outline: Outline,
        illustration: Illustration,
        retry: bool = False,
    ) -> bool:
        """Render one position and record the result on its row.

        Returns:
            True if the image was rendered and saved.
        """
        spec = outline.spec_at(illustration.position)
        prompt = build_illustration_prompt(spec, book.title, book.art_style)
        if retry and illustration.retry_count > 0:
            prompt = build_retry_prompt(
                prompt,
                illustration.retry_count,
                spec.title or f"Chapter {spec.number}",
                book.title,
                spec.summary or None,
            )

        try:
            data = await self.generator.generate_illustration(prompt)
            path = self.media.save_illustration(book.id, illustration.position, data)
        except (DraftBookError, OSError) as e:
            retry_count = self.db.mark_illustration_failed(illustration.id, prompt, str(e))
            logger.warning(
                "Book %d illustration %d failed (attempt %d): %s",
                book.id, illustration.position, retry_count, e,
            )
            return False

        self.db.mark_illustration_completed(illustration.id, prompt, str(path))
        return True

    async def retry_failed(self, book_id: int) -> RetryTally:
        """Retry every failed position that still has attempts left, one at a time."""
        book, outline = self._load(book_id)
        limit = self.settings.max_illustration_retries
        tally = RetryTally()

        for illustration in self.db.get_illustrations(book_id, IllustrationStatus.FAILED):
            if illustration.retry_count >= limit:
                tally.skipped_max_retries += 1
                continue
            tally.retried += 1
            if await self.generate_position(book, outline, illustration, retry=True):
                tally.succeeded += 1
            else:
                tally.failed += 1

        logger.info(
            "Book %d illustration retry: %d retried, %d succeeded, %d failed, %d skipped",
            book_id, tally.retried, tally.succeeded, tally.failed, tally.skipped_max_retries,
        )
        return tally

    def failed_report(self, book_id: int) -> FailedIllustrationReport:
        if self.db.get_book(book_id) is None:
            raise BookNotFoundError(book_id)
        return FailedIllustrationReport(
            book_id=book_id,
            total=self.db.count_illustrations(book_id),
            completed=self.db.count_illustrations(book_id, IllustrationStatus.COMPLETED),
            failed=self.db.get_illustrations(book_id, IllustrationStatus.FAILED),
        )
