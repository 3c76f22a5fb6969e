"""LangGraph state for one chapter step."""

from typing import Optional, TypedDict

from models.book import Book
from models.continuity import Outline


class ChapterStepState(TypedDict, total=False):
    """State carried through a single ``advance`` call.

    Fields are grouped logically:
    - Trigger: book_id, expected_index
    - Loaded: book, outline, index, total_chapters, recovered
    - Chapter: chapter_content, chapter_title, chapter_id
    - Continuity: story_so_far, character_states, continuity_fallbacks
    - Control: outcome, error, attempts, last_node
    """

    # Trigger
    book_id: int
    expected_index: Optional[int]

    # Loaded from the continuity store
    book: Book
    outline: Outline
    index: int
    total_chapters: int
    recovered: bool  # chapter at the cursor was already persisted

    # Chapter
    chapter_content: str
    chapter_title: str
    chapter_id: int

    # Continuity update (written by the cursor CAS)
    story_so_far: str
    character_states: Optional[str]
    continuity_fallbacks: int

    # Control flow
    outcome: str
    error: str
    attempts: int
    last_node: str
