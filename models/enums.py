"""Enumerations for book generation status tracking."""

from enum import Enum


class BookStatus(str, Enum):
    PENDING = "pending"
    OUTLINING = "outlining"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FREE = "free"


class BookType(str, Enum):
    FICTION = "fiction"
    NON_FICTION = "non-fiction"


class BookFormat(str, Enum):
    TEXT_ONLY = "text_only"
    ILLUSTRATED = "illustrated"
    PICTURE_BOOK = "picture_book"
    COMIC = "comic"
    SCREENPLAY = "screenplay"

    @property
    def is_illustrated(self) -> bool:
        return self in (BookFormat.ILLUSTRATED, BookFormat.PICTURE_BOOK, BookFormat.COMIC)

    @property
    def is_text_heavy(self) -> bool:
        return self in (BookFormat.TEXT_ONLY, BookFormat.SCREENPLAY)


class ChapterFormat(str, Enum):
    NUMBERS = "numbers"   # "Chapter 3"
    TITLES = "titles"     # "The Long Night"
    BOTH = "both"         # "Chapter 3: The Long Night"
    POV = "pov"           # "Chapter 3: Mara"


class IllustrationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
