"""Illustration data model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.enums import IllustrationStatus


@dataclass
class Illustration:
    """One illustration slot of a book, keyed by (book_id, position)."""
    id: Optional[int] = None
    book_id: int = 0
    position: int = 0  # 0-based outline position
    prompt: Optional[str] = None
    status: IllustrationStatus = IllustrationStatus.PENDING
    retry_count: int = 0
    error_message: Optional[str] = None
    image_path: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
