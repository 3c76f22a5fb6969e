"""BookPipeline: outline once, then one chapter per ``advance`` call.

Every trigger is stateless and idempotent by (book_id, current_chapter_index):
the pipeline holds no per-book state between calls besides the live preview
and the detached review tasks.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from agents.generation_client import GenerationClient
from config.exceptions import (
    BookNotFoundError,
    DraftBookError,
    OutlineError,
    PaymentRequiredError,
    WorkflowStateError,
)
from config.settings import Settings
from models.book import Book
from models.continuity import Outline
from models.database import Database
from models.enums import BookStatus
from tools.media_store import MediaStore
from tools.text_utils import count_words
from workflow import graph as step_graph
from workflow.graph import StepNodes, build_step_graph, run_step
from workflow.live_preview import LivePreview

logger = logging.getLogger(__name__)


class StepOutcome(str, Enum):
    GENERATED = step_graph.GENERATED
    RECOVERED = step_graph.RECOVERED
    ALREADY_DONE = step_graph.ALREADY_DONE
    COMPLETED = step_graph.COMPLETED
    RETRYABLE_ERROR = step_graph.RETRYABLE_ERROR
    FAILED = step_graph.FAILED
    NOT_READY = step_graph.NOT_READY


@dataclass
class StepResult:
    """What one ``advance`` call did."""
    book_id: int
    outcome: StepOutcome
    status: BookStatus
    current_chapter_index: int
    total_chapters: int
    error: Optional[str] = None


@dataclass
class BookSnapshot:
    """Status polling view of a book."""
    book_id: int
    status: BookStatus
    current_chapter_index: int
    total_chapters: int
    total_words: int
    chapter_count: int
    illustration_count: int
    step_attempts: int
    last_step_error: Optional[str]
    error_message: Optional[str]
    live_preview: str


class BookPipeline:
    """Drives a book from pending to completed."""

    def __init__(
        self,
        db: Database,
        generator: GenerationClient,
        settings: Optional[Settings] = None,
        live_preview: Optional[LivePreview] = None,
        media: Optional[MediaStore] = None,
        callback=None,
    ):
        self.db = db
        self.generator = generator
        self.settings = settings or Settings()
        self.live_preview = live_preview or LivePreview()
        self.media = media or MediaStore(self.settings.media_dir)
        self.callback = callback
        self._review_tasks: set[asyncio.Task] = set()
        self._app = build_step_graph(StepNodes(
            db=self.db,
            generator=self.generator,
            settings=self.settings,
            live_preview=self.live_preview,
            media=self.media,
            schedule_review=self.schedule_review,
            callback=self.callback,
        ))

    def _get_book(self, book_id: int) -> Book:
        book = self.db.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    # ---- Planning ----

    async def plan(self, book_id: int) -> Outline:
        """pending -> outlining -> generating.

        Runs once per book. A planning failure leaves the book ``failed`` with
        the error recorded and is not retried automatically.

        Raises:
            PaymentRequiredError: Book is neither paid nor claimed free.
            WorkflowStateError: Book is not pending (already planned or planning).
            OutlineError / LLMError: Planning failed (book is now failed).
        """
        book = self._get_book(book_id)
        if not book.is_paid:
            raise PaymentRequiredError(book_id, book.payment_status.value)
        if not self.db.begin_outlining(book_id):
            raise WorkflowStateError(
                f"Book {book_id} cannot be planned from status '{book.status.value}'",
                {"book_id": book_id},
            )

        logger.info("Planning outline for book %d (%d chapters)", book_id, book.target_chapters)
        try:
            outline = await self.generator.generate_outline(book)
            if len(outline) != book.target_chapters:
                raise OutlineError(
                    f"Outline has {len(outline)} chapters, expected {book.target_chapters}",
                    {"book_id": book_id},
                )
        except DraftBookError as e:
            self.db.set_status(book_id, BookStatus.FAILED, f"Outline generation failed: {e}")
            logger.error("Outline generation failed for book %d: %s", book_id, e)
            raise

        if not self.db.save_outline(book_id, outline.to_json(), len(outline)):
            raise WorkflowStateError(
                f"Book {book_id} left 'outlining' while its outline was generated",
                {"book_id": book_id},
            )
        if book.book_format.is_illustrated:
            created = self.db.create_illustrations(book_id, list(range(len(outline))))
            logger.info("Created %d illustration slots for book %d", created, book_id)
        logger.info("Book %d is generating: %d chapters planned", book_id, len(outline))
        return outline

    # ---- Chapter steps ----

    async def advance(self, book_id: int, expected_index: Optional[int] = None) -> StepResult:
        """Run one chapter step.

        Args:
            book_id: Book to advance.
            expected_index: The cursor value the trigger was issued for. When
                the cursor has already moved past it, the call is a no-op
                reporting ``already_done``.
        """
        self._get_book(book_id)
        final = await run_step(
            self._app,
            {"book_id": book_id, "expected_index": expected_index},
            self.callback,
        )
        book = self._get_book(book_id)
        outcome = StepOutcome(final.get("outcome") or StepOutcome.NOT_READY.value)
        return StepResult(
            book_id=book_id,
            outcome=outcome,
            status=book.status,
            current_chapter_index=book.current_chapter_index,
            total_chapters=book.total_chapters,
            error=final.get("error") or book.error_message,
        )

    async def run(self, book_id: int, max_steps: Optional[int] = None) -> StepResult:
        """Call ``advance`` until the book is completed or failed.

        This is the in-process scheduler: failed attempts are retried after a
        delay growing with the attempt count.
        """
        book = self._get_book(book_id)
        if max_steps is None:
            remaining = max(book.total_chapters - book.current_chapter_index, 0)
            max_steps = (remaining + 1) * (self.settings.max_step_attempts + 1)

        result = None
        for _ in range(max_steps):
            result = await self.advance(book_id)
            if result.status in (BookStatus.COMPLETED, BookStatus.FAILED):
                break
            if result.outcome == StepOutcome.NOT_READY:
                break
            if result.outcome == StepOutcome.RETRYABLE_ERROR:
                attempts = self.db.get_book(book_id).step_attempts
                delay = self.settings.step_retry_delay * max(attempts, 1)
                logger.info("Retrying book %d in %.1fs", book_id, delay)
                await asyncio.sleep(delay)
        return result

    # ---- Review pass ----

    def schedule_review(self, book: Book, chapter_id: int) -> asyncio.Task:
        """Start the polish pass for a chapter without waiting for it."""
        task = asyncio.create_task(self.review_chapter(book.id, chapter_id))
        self._review_tasks.add(task)
        task.add_done_callback(self._review_tasks.discard)
        return task

    async def review_chapter(self, book_id: int, chapter_id: int) -> bool:
        """Polish a chapter once.

        The chapter ends up reviewed whether or not the polish succeeded; a
        failed polish keeps the original content.

        Returns:
            True if the content was replaced.
        """
        chapter = self.db.get_chapter_by_id(chapter_id)
        if chapter is None or chapter.reviewed:
            return False
        book = self._get_book(book_id)

        try:
            polished = await self.generator.review_chapter(
                chapter.content, book.genre, book.writing_style, book.book_format.value,
            )
        except DraftBookError as e:
            logger.warning("Review of book %d chapter %d failed, keeping original: %s",
                           book_id, chapter.number, e)
            self.db.apply_chapter_review(chapter_id)
            return False

        replaced = self.db.apply_chapter_review(chapter_id, polished, count_words(polished))
        if replaced:
            total = self.db.refresh_total_words(book_id)
            logger.info("Book %d chapter %d polished, book now %d words",
                        book_id, chapter.number, total)
        return replaced

    async def drain_reviews(self) -> None:
        """Wait for every scheduled review to finish."""
        while self._review_tasks:
            pending = list(self._review_tasks)
            await asyncio.gather(*pending)
            self._review_tasks.difference_update(pending)

    # ---- Status ----

    def snapshot(self, book_id: int) -> BookSnapshot:
        book = self._get_book(book_id)
        return BookSnapshot(
            book_id=book_id,
            status=book.status,
            current_chapter_index=book.current_chapter_index,
            total_chapters=book.total_chapters,
            total_words=book.total_words,
            chapter_count=self.db.count_chapters(book_id),
            illustration_count=self.db.count_illustrations(book_id),
            step_attempts=book.step_attempts,
            last_step_error=book.last_step_error,
            error_message=book.error_message,
            live_preview=self.live_preview.get(book_id),
        )
