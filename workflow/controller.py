"""Resume, restart, cancel and payment triggers for a book."""

import logging
from dataclasses import dataclass
from typing import Optional

from config.exceptions import BookNotFoundError, PermissionDeniedError, WorkflowStateError
from models.book import Book
from models.continuity import Outline
from models.database import Database
from models.enums import BookStatus, PaymentStatus
from workflow.live_preview import LivePreview
from workflow.pipeline import BookPipeline

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Generation cancelled by user"


@dataclass
class RestartResult:
    book_id: int
    chapters_deleted: int
    illustrations_deleted: int


class BookController:
    """Recovery and lifecycle operations that sit outside the chapter steps."""

    def __init__(
        self,
        db: Database,
        pipeline: BookPipeline,
        live_preview: Optional[LivePreview] = None,
    ):
        self.db = db
        self.pipeline = pipeline
        self.live_preview = live_preview or pipeline.live_preview

    def _get_book(self, book_id: int) -> Book:
        book = self.db.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    async def confirm_payment(self, book_id: int, product: Optional[str] = None) -> Outline:
        """Payment went through: record it and start planning."""
        self._get_book(book_id)
        self.db.set_payment_status(book_id, PaymentStatus.COMPLETED)
        logger.info("Payment confirmed for book %d (product=%s)", book_id, product or "default")
        return await self.pipeline.plan(book_id)

    async def claim_free(self, book_id: int) -> Outline:
        """Free claim accepted: record it and start planning."""
        self._get_book(book_id)
        self.db.set_payment_status(book_id, PaymentStatus.FREE)
        logger.info("Free claim accepted for book %d", book_id)
        return await self.pipeline.plan(book_id)

    def resume(self, book_id: int) -> Book:
        """Put a failed or stalled book back to generating.

        The cursor, chapters and illustrations are left exactly as they are;
        only the error and the attempt counter are cleared.

        Raises:
            WorkflowStateError: The book has no outline, or is already completed.
        """
        book = self._get_book(book_id)
        if not book.outline:
            raise WorkflowStateError(
                "Cannot resume a book without an outline; restart it instead",
                {"book_id": book_id, "status": book.status.value},
            )
        if book.status == BookStatus.COMPLETED:
            raise WorkflowStateError("Book is already completed", {"book_id": book_id})

        self.db.resume_book(book_id)
        logger.info(
            "Book %d resumed at chapter %d/%d",
            book_id, book.current_chapter_index + 1, book.total_chapters,
        )
        return self._get_book(book_id)

    def restart(self, book_id: int, privileged: bool = False) -> RestartResult:
        """Purge all generated content and return the book to pending.

        Input fields and payment status survive.

        Raises:
            PermissionDeniedError: Caller is not privileged.
        """
        if not privileged:
            raise PermissionDeniedError("Restart requires admin privileges", {"book_id": book_id})
        self._get_book(book_id)

        chapters, illustrations = self.db.reset_book(book_id)
        self.live_preview.clear(book_id)
        logger.warning(
            "Book %d restarted: deleted %d chapters and %d illustrations",
            book_id, chapters, illustrations,
        )
        return RestartResult(book_id, chapters, illustrations)

    def cancel(self, book_id: int) -> bool:
        """Stop an in-progress book. Progress is kept, so it can be resumed.

        Returns:
            True if the book was outlining or generating.
        """
        self._get_book(book_id)
        cancelled = self.db.transition_status(
            book_id,
            (BookStatus.OUTLINING, BookStatus.GENERATING),
            BookStatus.FAILED,
            CANCELLED_MESSAGE,
        )
        if cancelled:
            self.live_preview.clear(book_id)
            logger.info("Book %d cancelled", book_id)
        return cancelled
