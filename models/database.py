"""SQLite database initialization and CRUD operations.

Every pipeline write that must not happen twice is guarded in SQL: chapters by
an INSERT that only lands while the book is generating at that index, backed
by the UNIQUE (book_id, chapter_index) index, and the continuity cursor by a
conditional UPDATE on its expected value.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from config.exceptions import DatabaseError
from models.book import Book
from models.chapter import Chapter
from models.illustration import Illustration
from models.enums import (
    BookFormat, BookStatus, BookType, ChapterFormat, IllustrationStatus, PaymentStatus,
)

logger = logging.getLogger(__name__)

# SQL for creating all tables
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    author_name TEXT DEFAULT '',
    genre TEXT DEFAULT '',
    book_type TEXT DEFAULT 'fiction',
    premise TEXT DEFAULT '',
    characters TEXT,
    beginning TEXT DEFAULT '',
    middle TEXT DEFAULT '',
    ending TEXT DEFAULT '',
    writing_style TEXT DEFAULT '',
    chapter_format TEXT DEFAULT 'both',
    target_words INTEGER DEFAULT 30000,
    target_chapters INTEGER DEFAULT 10,
    book_format TEXT DEFAULT 'text_only',
    art_style TEXT DEFAULT '',
    payment_status TEXT DEFAULT 'pending',
    status TEXT DEFAULT 'pending',
    current_chapter_index INTEGER DEFAULT 0,
    total_chapters INTEGER DEFAULT 0,
    total_words INTEGER DEFAULT 0,
    outline TEXT,
    story_so_far TEXT DEFAULT '',
    character_states TEXT,
    error_message TEXT,
    step_attempts INTEGER DEFAULT 0,
    last_step_error TEXT,
    continuity_fallbacks INTEGER DEFAULT 0,
    cover_prompt TEXT,
    cover_image_path TEXT,
    generation_started_at TIMESTAMP,
    completed_at TIMESTAMP,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS chapters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    chapter_index INTEGER NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    summary TEXT,
    word_count INTEGER DEFAULT 0,
    reviewed BOOLEAN DEFAULT FALSE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS illustrations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id INTEGER NOT NULL REFERENCES books(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    prompt TEXT,
    status TEXT DEFAULT 'pending',
    retry_count INTEGER DEFAULT 0,
    error_message TEXT,
    image_path TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

# Indexes and constraints added via migration (idempotent)
_MIGRATION_SQL = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_chapters_book_index ON chapters(book_id, chapter_index)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_illustrations_book_position ON illustrations(book_id, position)",
    "CREATE INDEX IF NOT EXISTS idx_illustrations_book_status ON illustrations(book_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_books_status ON books(status)",
]

_TOTAL_WORDS_SQL = "(SELECT COALESCE(SUM(word_count), 0) FROM chapters WHERE book_id = books.id)"


def _row_to_book(row: sqlite3.Row) -> Book:
    return Book(
        id=row["id"], title=row["title"], author_name=row["author_name"],
        genre=row["genre"], book_type=BookType(row["book_type"]),
        premise=row["premise"], characters=row["characters"],
        beginning=row["beginning"], middle=row["middle"], ending=row["ending"],
        writing_style=row["writing_style"],
        chapter_format=ChapterFormat(row["chapter_format"]),
        target_words=row["target_words"], target_chapters=row["target_chapters"],
        book_format=BookFormat(row["book_format"]), art_style=row["art_style"],
        payment_status=PaymentStatus(row["payment_status"]),
        status=BookStatus(row["status"]),
        current_chapter_index=row["current_chapter_index"],
        total_chapters=row["total_chapters"], total_words=row["total_words"],
        outline=row["outline"], story_so_far=row["story_so_far"] or "",
        character_states=row["character_states"],
        error_message=row["error_message"],
        step_attempts=row["step_attempts"], last_step_error=row["last_step_error"],
        continuity_fallbacks=row["continuity_fallbacks"],
        cover_prompt=row["cover_prompt"], cover_image_path=row["cover_image_path"],
        generation_started_at=row["generation_started_at"],
        completed_at=row["completed_at"],
        created_at=row["created_at"], updated_at=row["updated_at"],
    )


def _row_to_chapter(row: sqlite3.Row) -> Chapter:
    return Chapter(
        id=row["id"], book_id=row["book_id"], index=row["chapter_index"],
        title=row["title"], content=row["content"], summary=row["summary"],
        word_count=row["word_count"], reviewed=bool(row["reviewed"]),
        created_at=row["created_at"], updated_at=row["updated_at"],
    )


def _row_to_illustration(row: sqlite3.Row) -> Illustration:
    return Illustration(
        id=row["id"], book_id=row["book_id"], position=row["position"],
        prompt=row["prompt"], status=IllustrationStatus(row["status"]),
        retry_count=row["retry_count"], error_message=row["error_message"],
        image_path=row["image_path"],
        created_at=row["created_at"], updated_at=row["updated_at"],
    )


class Database:
    """SQLite database manager for book generation."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _init_db(self):
        with self._get_conn() as conn:
            conn.executescript(_CREATE_TABLES_SQL)
        self._migrate()

    def _migrate(self):
        """Apply idempotent schema migrations (indexes, constraints)."""
        with self._get_conn() as conn:
            for sql in _MIGRATION_SQL:
                try:
                    conn.execute(sql)
                except sqlite3.OperationalError as e:
                    logger.debug("Migration skipped (already applied): %s", e)

    # ---- Book CRUD ----

    def create_book(self, book: Book) -> int:
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO books (title, author_name, genre, book_type, premise, "
                "characters, beginning, middle, ending, writing_style, chapter_format, "
                "target_words, target_chapters, book_format, art_style, payment_status, status) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (book.title, book.author_name, book.genre, book.book_type.value,
                 book.premise, book.characters, book.beginning, book.middle,
                 book.ending, book.writing_style, book.chapter_format.value,
                 book.target_words, book.target_chapters, book.book_format.value,
                 book.art_style, book.payment_status.value, book.status.value),
            )
            return cursor.lastrowid

    def get_book(self, book_id: int) -> Optional[Book]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
            if not row:
                return None
            return _row_to_book(row)

    def list_books(self, status: Optional[BookStatus] = None) -> list[Book]:
        with self._get_conn() as conn:
            if status:
                rows = conn.execute(
                    "SELECT * FROM books WHERE status = ? ORDER BY id", (status.value,),
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM books ORDER BY id").fetchall()
            return [_row_to_book(r) for r in rows]

    def delete_book(self, book_id: int):
        """Delete a book; chapters and illustrations go with it."""
        with self._get_conn() as conn:
            conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
        logger.info("Book %d and all associated data deleted", book_id)

    def set_payment_status(self, book_id: int, payment_status: PaymentStatus):
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE books SET payment_status = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (payment_status.value, book_id),
            )

    def set_status(self, book_id: int, status: BookStatus, error_message: Optional[str] = None):
        """Set status unconditionally. ``error_message`` of None clears it."""
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE books SET status = ?, error_message = ?, "
                "updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (status.value, error_message, book_id),
            )

    def transition_status(
        self,
        book_id: int,
        from_statuses: tuple[BookStatus, ...],
        to_status: BookStatus,
        error_message: Optional[str] = None,
    ) -> bool:
        """Move to ``to_status`` only if the book is currently in one of ``from_statuses``.

        Returns:
            True if this call made the transition.
        """
        placeholders = ", ".join("?" for _ in from_statuses)
        with self._get_conn() as conn:
            cursor = conn.execute(
                f"UPDATE books SET status = ?, error_message = ?, "
                f"updated_at = CURRENT_TIMESTAMP "
                f"WHERE id = ? AND status IN ({placeholders})",
                (to_status.value, error_message, book_id, *(s.value for s in from_statuses)),
            )
            return cursor.rowcount == 1

    def begin_outlining(self, book_id: int) -> bool:
        """pending -> outlining. False if another caller already started."""
        with self._get_conn() as conn:
            cursor = conn.execute(
                "UPDATE books SET status = 'outlining', error_message = NULL, "
                "generation_started_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP "
                "WHERE id = ? AND status = 'pending'",
                (book_id,),
            )
            return cursor.rowcount == 1

    def save_outline(self, book_id: int, outline_json: str, total_chapters: int) -> bool:
        """Persist the outline and move outlining -> generating."""
        with self._get_conn() as conn:
            cursor = conn.execute(
                "UPDATE books SET outline = ?, total_chapters = ?, status = 'generating', "
                "current_chapter_index = 0, error_message = NULL, "
                "updated_at = CURRENT_TIMESTAMP "
                "WHERE id = ? AND status = 'outlining'",
                (outline_json, total_chapters, book_id),
            )
            return cursor.rowcount == 1

    def advance_cursor(
        self,
        book_id: int,
        expected_index: int,
        story_so_far: str,
        character_states: Optional[str],
        continuity_fallbacks: int,
    ) -> bool:
        """Write the continuity update for chapter ``expected_index`` and move past it.

        A single conditional UPDATE: it only applies while the cursor still
        equals ``expected_index`` and the book is generating. ``total_words``
        is recomputed from the persisted chapters.

        Returns:
            True if this call advanced the cursor, False if another step won.
        """
        with self._get_conn() as conn:
            cursor = conn.execute(
                "UPDATE books SET story_so_far = ?, character_states = ?, "
                "continuity_fallbacks = ?, "
                f"total_words = {_TOTAL_WORDS_SQL}, "
                "current_chapter_index = current_chapter_index + 1, "
                "step_attempts = 0, last_step_error = NULL, "
                "updated_at = CURRENT_TIMESTAMP "
                "WHERE id = ? AND current_chapter_index = ? AND status = 'generating'",
                (story_so_far, character_states, continuity_fallbacks, book_id, expected_index),
            )
            return cursor.rowcount == 1

    def record_step_failure(
        self, book_id: int, expected_index: int, error: str, max_attempts: int,
    ) -> int:
        """Count a failed attempt at ``expected_index``; fail the book once attempts run out.

        Returns:
            The attempt count after this failure, or 0 if the cursor had
            already moved on.
        """
        with self._get_conn() as conn:
            cursor = conn.execute(
                "UPDATE books SET step_attempts = step_attempts + 1, last_step_error = ?, "
                "updated_at = CURRENT_TIMESTAMP "
                "WHERE id = ? AND current_chapter_index = ? AND status = 'generating'",
                (error, book_id, expected_index),
            )
            if cursor.rowcount != 1:
                return 0
            attempts = conn.execute(
                "SELECT step_attempts FROM books WHERE id = ?", (book_id,),
            ).fetchone()["step_attempts"]
            if attempts >= max_attempts:
                conn.execute(
                    "UPDATE books SET status = 'failed', error_message = ?, "
                    "updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                    (f"Chapter {expected_index + 1} failed after {attempts} attempts: {error}",
                     book_id),
                )
            return attempts

    def mark_completed(self, book_id: int) -> bool:
        """generating -> completed, only once every chapter is in."""
        with self._get_conn() as conn:
            cursor = conn.execute(
                "UPDATE books SET status = 'completed', completed_at = CURRENT_TIMESTAMP, "
                f"total_words = {_TOTAL_WORDS_SQL}, "
                "error_message = NULL, updated_at = CURRENT_TIMESTAMP "
                "WHERE id = ? AND status = 'generating' "
                "AND total_chapters > 0 AND current_chapter_index >= total_chapters",
                (book_id,),
            )
            return cursor.rowcount == 1

    def set_cover(self, book_id: int, cover_prompt: str, cover_image_path: str):
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE books SET cover_prompt = ?, cover_image_path = ?, "
                "updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (cover_prompt, cover_image_path, book_id),
            )

    def refresh_total_words(self, book_id: int) -> int:
        with self._get_conn() as conn:
            conn.execute(
                f"UPDATE books SET total_words = {_TOTAL_WORDS_SQL}, "
                "updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (book_id,),
            )
            return conn.execute(
                "SELECT total_words FROM books WHERE id = ?", (book_id,),
            ).fetchone()["total_words"]

    def resume_book(self, book_id: int):
        """Back to generating; cursor, chapters and illustrations untouched."""
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE books SET status = 'generating', error_message = NULL, "
                "step_attempts = 0, last_step_error = NULL, "
                "updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (book_id,),
            )

    def reset_book(self, book_id: int) -> tuple[int, int]:
        """Purge generated content and return the book to pending.

        Input fields and payment status are preserved.

        Returns:
            (chapters_deleted, illustrations_deleted)
        """
        try:
            with self._get_conn() as conn:
                chapters = conn.execute(
                    "DELETE FROM chapters WHERE book_id = ?", (book_id,),
                ).rowcount
                illustrations = conn.execute(
                    "DELETE FROM illustrations WHERE book_id = ?", (book_id,),
                ).rowcount
                conn.execute(
                    "UPDATE books SET status = 'pending', current_chapter_index = 0, "
                    "total_chapters = 0, total_words = 0, outline = NULL, "
                    "story_so_far = '', character_states = NULL, error_message = NULL, "
                    "step_attempts = 0, last_step_error = NULL, continuity_fallbacks = 0, "
                    "cover_prompt = NULL, cover_image_path = NULL, "
                    "generation_started_at = NULL, completed_at = NULL, "
                    "updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                    (book_id,),
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to reset book {book_id}: {e}") from e
        return chapters, illustrations

    # ---- Chapter CRUD ----

    def create_chapter_if_absent(self, chapter: Chapter) -> Optional[int]:
        """Insert the chapter at the book's cursor unless the slot is taken.

        The insert only happens while the book is ``generating`` with its
        cursor at ``chapter.index``, checked in the same statement. A step
        that outlived a restart, cancel or cursor move writes nothing.

        Returns:
            The new row id, or None if nothing was inserted.
        """
        try:
            with self._get_conn() as conn:
                cursor = conn.execute(
                    "INSERT INTO chapters (book_id, chapter_index, title, content, "
                    "summary, word_count, reviewed) "
                    "SELECT ?, ?, ?, ?, ?, ?, ? WHERE EXISTS ("
                    "SELECT 1 FROM books WHERE id = ? AND status = 'generating' "
                    "AND current_chapter_index = ?)",
                    (chapter.book_id, chapter.index, chapter.title, chapter.content,
                     chapter.summary, chapter.word_count, chapter.reviewed,
                     chapter.book_id, chapter.index),
                )
                if cursor.rowcount == 0:
                    logger.info(
                        "Book %d is no longer generating chapter %d, skipping insert",
                        chapter.book_id, chapter.index + 1,
                    )
                    return None
                return cursor.lastrowid
        except sqlite3.IntegrityError:
            logger.info(
                "Chapter %d of book %d already exists, skipping insert",
                chapter.index, chapter.book_id,
            )
            return None

    def get_chapter(self, book_id: int, index: int) -> Optional[Chapter]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM chapters WHERE book_id = ? AND chapter_index = ?",
                (book_id, index),
            ).fetchone()
            if not row:
                return None
            return _row_to_chapter(row)

    def get_chapter_by_id(self, chapter_id: int) -> Optional[Chapter]:
        with self._get_conn() as conn:
            row = conn.execute("SELECT * FROM chapters WHERE id = ?", (chapter_id,)).fetchone()
            if not row:
                return None
            return _row_to_chapter(row)

    def get_chapters(self, book_id: int) -> list[Chapter]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM chapters WHERE book_id = ? ORDER BY chapter_index",
                (book_id,),
            ).fetchall()
            return [_row_to_chapter(r) for r in rows]

    def count_chapters(self, book_id: int) -> int:
        with self._get_conn() as conn:
            return conn.execute(
                "SELECT COUNT(*) AS n FROM chapters WHERE book_id = ?", (book_id,),
            ).fetchone()["n"]

    def sum_word_counts(self, book_id: int) -> int:
        with self._get_conn() as conn:
            return conn.execute(
                "SELECT COALESCE(SUM(word_count), 0) AS n FROM chapters WHERE book_id = ?",
                (book_id,),
            ).fetchone()["n"]

    def set_chapter_summary(self, chapter_id: int, summary: str):
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE chapters SET summary = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (summary, chapter_id),
            )

    def apply_chapter_review(
        self, chapter_id: int, content: Optional[str] = None, word_count: Optional[int] = None,
    ) -> bool:
        """Mark a chapter reviewed, optionally replacing its content.

        Content is only replaced while the chapter is still unreviewed, so a
        chapter is polished at most once.

        Returns:
            True if this call flipped the reviewed flag.
        """
        with self._get_conn() as conn:
            if content is not None:
                cursor = conn.execute(
                    "UPDATE chapters SET content = ?, word_count = ?, reviewed = TRUE, "
                    "updated_at = CURRENT_TIMESTAMP WHERE id = ? AND reviewed = FALSE",
                    (content, word_count, chapter_id),
                )
            else:
                cursor = conn.execute(
                    "UPDATE chapters SET reviewed = TRUE, updated_at = CURRENT_TIMESTAMP "
                    "WHERE id = ? AND reviewed = FALSE",
                    (chapter_id,),
                )
            return cursor.rowcount == 1

    # ---- Illustration CRUD ----

    def create_illustrations(self, book_id: int, positions: list[int]) -> int:
        """Create pending slots; existing positions are left alone."""
        with self._get_conn() as conn:
            created = 0
            for position in positions:
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO illustrations (book_id, position) VALUES (?, ?)",
                    (book_id, position),
                )
                created += cursor.rowcount
            return created

    def get_illustration(self, book_id: int, position: int) -> Optional[Illustration]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM illustrations WHERE book_id = ? AND position = ?",
                (book_id, position),
            ).fetchone()
            if not row:
                return None
            return _row_to_illustration(row)

    def get_illustrations(
        self, book_id: int, status: Optional[IllustrationStatus] = None,
    ) -> list[Illustration]:
        with self._get_conn() as conn:
            if status:
                rows = conn.execute(
                    "SELECT * FROM illustrations WHERE book_id = ? AND status = ? "
                    "ORDER BY position",
                    (book_id, status.value),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM illustrations WHERE book_id = ? ORDER BY position",
                    (book_id,),
                ).fetchall()
            return [_row_to_illustration(r) for r in rows]

    def count_illustrations(
        self, book_id: int, status: Optional[IllustrationStatus] = None,
    ) -> int:
        with self._get_conn() as conn:
            if status:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM illustrations WHERE book_id = ? AND status = ?",
                    (book_id, status.value),
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM illustrations WHERE book_id = ?", (book_id,),
                ).fetchone()
            return row["n"]

    def mark_illustration_completed(self, illustration_id: int, prompt: str, image_path: str):
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE illustrations SET status = 'completed', prompt = ?, image_path = ?, "
                "error_message = NULL, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (prompt, image_path, illustration_id),
            )

    def mark_illustration_failed(self, illustration_id: int, prompt: str, error: str) -> int:
        """Record a failed render. Returns the new retry_count."""
        with self._get_conn() as conn:
            conn.execute(
                "UPDATE illustrations SET status = 'failed', prompt = ?, error_message = ?, "
                "retry_count = retry_count + 1, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (prompt, error, illustration_id),
            )
            return conn.execute(
                "SELECT retry_count FROM illustrations WHERE id = ?", (illustration_id,),
            ).fetchone()["retry_count"]
