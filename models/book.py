"""Book data model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.enums import BookFormat, BookStatus, BookType, ChapterFormat, PaymentStatus


@dataclass
class Book:
    """A book request and its generation state.

    Input fields are written once at creation and survive a restart.
    Generation fields are owned by the pipeline.
    """
    id: Optional[int] = None

    # Input
    title: str = ""
    author_name: str = ""
    genre: str = ""
    book_type: BookType = BookType.FICTION
    premise: str = ""
    characters: Optional[str] = None  # JSON array of {name, description}
    beginning: str = ""
    middle: str = ""
    ending: str = ""
    writing_style: str = ""
    chapter_format: ChapterFormat = ChapterFormat.BOTH
    target_words: int = 30000
    target_chapters: int = 10
    book_format: BookFormat = BookFormat.TEXT_ONLY
    art_style: str = ""
    payment_status: PaymentStatus = PaymentStatus.PENDING

    # Generation state
    status: BookStatus = BookStatus.PENDING
    current_chapter_index: int = 0
    total_chapters: int = 0
    total_words: int = 0
    outline: Optional[str] = None  # JSON, see models.continuity.Outline
    story_so_far: str = ""
    character_states: Optional[str] = None  # JSON, see models.continuity.CharacterStates
    error_message: Optional[str] = None
    step_attempts: int = 0
    last_step_error: Optional[str] = None
    continuity_fallbacks: int = 0
    cover_prompt: Optional[str] = None
    cover_image_path: Optional[str] = None
    generation_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.FREE)

    @property
    def is_finished_writing(self) -> bool:
        return self.total_chapters > 0 and self.current_chapter_index >= self.total_chapters
