"""Shared pytest fixtures for the draftbook test suite."""

import pytest
from unittest.mock import MagicMock, AsyncMock


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite database path."""
    return tmp_path / "test_books.db"


@pytest.fixture
def db(tmp_db_path):
    """Return an initialized Database instance backed by a temp file."""
    from models.database import Database
    return Database(tmp_db_path)


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with all paths pointing to tmp_path."""
    from config.settings import Settings
    return Settings(
        _env_file=None,
        sqlite_db_path=tmp_path / "books.db",
        media_dir=tmp_path / "media",
        log_dir=tmp_path / "logs",
        step_retry_delay=0,
        llm_retry_backoff=0,
        review_enabled=False,
    )


# ---------------------------------------------------------------------------
# LLM Client mocks
# ---------------------------------------------------------------------------

def chapter_text(heading: str, words: int = 120, last: bool = False) -> str:
    """Deterministic chapter text starting with ``heading``."""
    body = " ".join(f"word{i}." if i % 12 == 11 else f"word{i}" for i in range(words))
    text = f"{heading}\n\n{body}"
    if last:
        text += "\n\nThe End"
    return text


@pytest.fixture
def mock_llm():
    """Return a MagicMock replacing AgentSDKClient."""
    llm = MagicMock()
    llm.chat = AsyncMock(return_value="This is a test sentence. " * 30)
    llm.chat_json = AsyncMock(return_value={})
    llm.total_calls = 0
    llm.get_usage_summary.return_value = {"total_calls": 1}
    return llm


@pytest.fixture
def mock_generator():
    """Return a GenerationClient stand-in whose calls all succeed.

    Chapter text follows the request's heading, character states record the
    chapter each call saw, and every image is a few PNG-ish bytes.
    """
    from agents.continuity_agent import CharacterStateUpdate
    from models.continuity import CharacterState, CharacterStates

    generator = MagicMock()

    async def _outline(book):
        return make_outline(book.target_chapters)

    async def _chapter(request, on_text=None, on_reset=None):
        if on_reset:
            on_reset()
        text = chapter_text(request.heading, last=request.is_last)
        if on_text:
            on_text(text[:40])
        return text

    async def _states(current, content, index):
        states = CharacterStates(characters={
            **current.characters,
            "Mara": CharacterState(last_seen_chapter=index + 1, status="alive"),
        })
        return CharacterStateUpdate(states=states)

    generator.generate_outline = AsyncMock(side_effect=_outline)
    generator.generate_chapter_text = AsyncMock(side_effect=_chapter)
    generator.summarize_chapter = AsyncMock(return_value="Things happened.")
    generator.update_character_states = AsyncMock(side_effect=_states)
    generator.condense_story_so_far = AsyncMock(return_value="Condensed story.")
    generator.review_chapter = AsyncMock(side_effect=lambda content, *a, **kw: content)
    generator.generate_cover_prompt = AsyncMock(return_value="A cover")
    generator.generate_cover_art = AsyncMock(return_value=b"\x89PNGcover")
    generator.generate_illustration = AsyncMock(return_value=b"\x89PNGart")
    generator.get_usage_summary.return_value = {"llm_calls": 0, "image_calls": 0}
    return generator


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

def make_outline(chapters: int):
    from models.continuity import ChapterSpec, Outline
    return Outline(chapters=[
        ChapterSpec(
            number=n,
            title=f"Part {n}",
            summary=f"Mara crosses river {n}.",
            target_words=500,
        )
        for n in range(1, chapters + 1)
    ])


@pytest.fixture
def make_book(db):
    """Factory inserting a pending book; keyword args override Book fields."""
    from models.book import Book

    def _make(**overrides):
        fields = dict(
            title="The Salt Road",
            genre="fantasy",
            premise="A smuggler carries a stolen map across the salt flats.",
            characters='[{"name": "Mara", "description": "a smuggler"}]',
            target_words=5000,
            target_chapters=3,
        )
        fields.update(overrides)
        book = Book(**fields)
        book.id = db.create_book(book)
        return db.get_book(book.id)

    return _make


@pytest.fixture
def generating_book(db, make_book):
    """Factory for a paid book whose outline is saved and cursor is at 0."""
    from models.enums import PaymentStatus

    def _make(chapters: int = 3, **overrides):
        book = make_book(target_chapters=chapters, **overrides)
        db.set_payment_status(book.id, PaymentStatus.COMPLETED)
        assert db.begin_outlining(book.id)
        assert db.save_outline(book.id, make_outline(chapters).to_json(), chapters)
        return db.get_book(book.id)

    return _make


@pytest.fixture
def pipeline(db, mock_generator, settings):
    from workflow.pipeline import BookPipeline
    return BookPipeline(db=db, generator=mock_generator, settings=settings)
