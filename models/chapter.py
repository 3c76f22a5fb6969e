"""Chapter data model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class Chapter:
    """A generated chapter. ``index`` is 0-based and unique per book."""
    id: Optional[int] = None
    book_id: int = 0
    index: int = 0
    title: str = ""
    content: str = ""
    summary: Optional[str] = None
    word_count: int = 0
    reviewed: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def number(self) -> int:
        return self.index + 1
