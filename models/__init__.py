"""Models package — database, dataclass models, continuity schemas, and enums."""

from models.database import Database
from models.book import Book
from models.chapter import Chapter
from models.illustration import Illustration
from models.continuity import (
    ChapterSpec,
    Outline,
    CharacterState,
    CharacterStates,
)
from models.enums import (
    BookStatus,
    PaymentStatus,
    BookType,
    BookFormat,
    ChapterFormat,
    IllustrationStatus,
)

__all__ = [
    "Database",
    "Book",
    "Chapter",
    "Illustration",
    "ChapterSpec",
    "Outline",
    "CharacterState",
    "CharacterStates",
    "BookStatus",
    "PaymentStatus",
    "BookType",
    "BookFormat",
    "ChapterFormat",
    "IllustrationStatus",
]
