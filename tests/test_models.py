"""Tests for database CRUD operations and the stored JSON schemas."""

import json

import pytest

from models.book import Book
from models.chapter import Chapter
from models.enums import (
    BookFormat, BookStatus, BookType, ChapterFormat, IllustrationStatus, PaymentStatus,
)


class TestBookCRUD:
    def test_create_and_get_book(self, db):
        book = Book(
            title="The Salt Road",
            genre="fantasy",
            book_type=BookType.NON_FICTION,
            chapter_format=ChapterFormat.POV,
            book_format=BookFormat.PICTURE_BOOK,
            target_chapters=12,
        )
        book_id = db.create_book(book)
        assert book_id > 0

        retrieved = db.get_book(book_id)
        assert retrieved.title == "The Salt Road"
        assert retrieved.book_type == BookType.NON_FICTION
        assert retrieved.chapter_format == ChapterFormat.POV
        assert retrieved.book_format == BookFormat.PICTURE_BOOK
        assert retrieved.status == BookStatus.PENDING
        assert retrieved.payment_status == PaymentStatus.PENDING
        assert retrieved.current_chapter_index == 0

    def test_get_book_not_found_returns_none(self, db):
        assert db.get_book(9999) is None

    def test_list_books_filters_by_status(self, db, make_book, generating_book):
        make_book(title="Pending")
        generating_book(title="Writing")

        assert [b.title for b in db.list_books(BookStatus.GENERATING)] == ["Writing"]
        assert len(db.list_books()) == 2

    def test_is_paid(self, db, make_book):
        book = make_book()
        assert not book.is_paid
        db.set_payment_status(book.id, PaymentStatus.FREE)
        assert db.get_book(book.id).is_paid

    def test_delete_book_cascades(self, db, generating_book):
        book = generating_book()
        db.create_chapter_if_absent(Chapter(book_id=book.id, index=0, content="x"))
        db.create_illustrations(book.id, [0, 1])
        db.delete_book(book.id)
        assert db.get_book(book.id) is None
        assert db.count_chapters(book.id) == 0
        assert db.count_illustrations(book.id) == 0


class TestStatusTransitions:
    def test_begin_outlining_only_once(self, db, make_book):
        book = make_book()
        assert db.begin_outlining(book.id) is True
        assert db.begin_outlining(book.id) is False
        assert db.get_book(book.id).status == BookStatus.OUTLINING

    def test_save_outline_requires_outlining(self, db, make_book):
        book = make_book()
        assert db.save_outline(book.id, "{}", 3) is False
        assert db.get_book(book.id).status == BookStatus.PENDING

    def test_transition_status_guards_source(self, db, generating_book):
        book = generating_book()
        assert db.transition_status(book.id, (BookStatus.PENDING,), BookStatus.FAILED) is False
        assert db.transition_status(
            book.id, (BookStatus.GENERATING,), BookStatus.FAILED, "stopped",
        ) is True
        assert db.get_book(book.id).error_message == "stopped"

    def test_mark_completed_requires_all_chapters(self, db, generating_book):
        book = generating_book(chapters=1)
        assert db.mark_completed(book.id) is False
        db.create_chapter_if_absent(Chapter(book_id=book.id, index=0, content="a b c", word_count=3))
        assert db.advance_cursor(book.id, 0, "story", None, 0)
        assert db.mark_completed(book.id) is True
        done = db.get_book(book.id)
        assert done.status == BookStatus.COMPLETED
        assert done.total_words == 3
        assert done.completed_at is not None


class TestCursor:
    def test_advance_cursor_compare_and_set(self, db, generating_book):
        book = generating_book()
        assert db.advance_cursor(book.id, 0, "s1", '{"characters": {}}', 0) is True
        assert db.advance_cursor(book.id, 0, "s1-again", None, 0) is False

        after = db.get_book(book.id)
        assert after.current_chapter_index == 1
        assert after.story_so_far == "s1"

    def test_advance_cursor_refused_when_not_generating(self, db, generating_book):
        book = generating_book()
        db.set_status(book.id, BookStatus.FAILED, "cancelled")
        assert db.advance_cursor(book.id, 0, "s", None, 0) is False
        assert db.get_book(book.id).current_chapter_index == 0

    def test_advance_cursor_sets_total_words_and_clears_attempts(self, db, generating_book):
        book = generating_book()
        db.record_step_failure(book.id, 0, "timeout", 3)
        db.create_chapter_if_absent(Chapter(book_id=book.id, index=0, content="x", word_count=40))
        db.advance_cursor(book.id, 0, "s", None, 0)

        after = db.get_book(book.id)
        assert after.total_words == 40
        assert after.step_attempts == 0
        assert after.last_step_error is None

    def test_record_step_failure_counts_then_fails(self, db, generating_book):
        book = generating_book()
        assert db.record_step_failure(book.id, 0, "timeout", 2) == 1
        assert db.get_book(book.id).status == BookStatus.GENERATING
        assert db.record_step_failure(book.id, 0, "timeout", 2) == 2

        failed = db.get_book(book.id)
        assert failed.status == BookStatus.FAILED
        assert "Chapter 1 failed after 2 attempts" in failed.error_message

    def test_record_step_failure_ignored_after_cursor_moved(self, db, generating_book):
        book = generating_book()
        db.advance_cursor(book.id, 0, "s", None, 0)
        assert db.record_step_failure(book.id, 0, "late", 3) == 0
        assert db.get_book(book.id).step_attempts == 0


class TestChapterCRUD:
    def test_unique_index_per_book(self, db, generating_book):
        book = generating_book()
        first = db.create_chapter_if_absent(Chapter(book_id=book.id, index=0, content="one"))
        second = db.create_chapter_if_absent(Chapter(book_id=book.id, index=0, content="two"))
        assert first is not None
        assert second is None
        assert db.get_chapter(book.id, 0).content == "one"

    def test_same_index_in_different_books(self, db, generating_book):
        a = generating_book()
        b = generating_book()
        assert db.create_chapter_if_absent(Chapter(book_id=a.id, index=0))
        assert db.create_chapter_if_absent(Chapter(book_id=b.id, index=0))

    def test_get_chapters_ordered(self, db, generating_book):
        book = generating_book()
        for index in range(3):
            db.create_chapter_if_absent(Chapter(book_id=book.id, index=index))
            db.advance_cursor(book.id, index, "s", None, 0)
        assert [c.number for c in db.get_chapters(book.id)] == [1, 2, 3]

    def test_insert_refused_away_from_cursor(self, db, generating_book):
        book = generating_book()
        assert db.create_chapter_if_absent(Chapter(book_id=book.id, index=1)) is None
        assert db.count_chapters(book.id) == 0

    def test_insert_refused_when_not_generating(self, db, make_book, generating_book):
        assert db.create_chapter_if_absent(Chapter(book_id=make_book().id, index=0)) is None
        book = generating_book()
        db.set_status(book.id, BookStatus.FAILED, "stopped")
        assert db.create_chapter_if_absent(Chapter(book_id=book.id, index=0)) is None
        assert db.count_chapters(book.id) == 0

    def test_apply_review_replaces_once(self, db, generating_book):
        book = generating_book()
        chapter_id = db.create_chapter_if_absent(
            Chapter(book_id=book.id, index=0, content="draft", word_count=1),
        )
        assert db.apply_chapter_review(chapter_id, "polished text", 2) is True
        assert db.apply_chapter_review(chapter_id, "again", 1) is False

        chapter = db.get_chapter_by_id(chapter_id)
        assert chapter.content == "polished text"
        assert chapter.word_count == 2
        assert chapter.reviewed is True

    def test_set_chapter_summary(self, db, generating_book):
        book = generating_book()
        chapter_id = db.create_chapter_if_absent(Chapter(book_id=book.id, index=0))
        db.set_chapter_summary(chapter_id, "Mara escapes.")
        assert db.get_chapter(book.id, 0).summary == "Mara escapes."


class TestIllustrationCRUD:
    def test_create_illustrations_is_idempotent(self, db, generating_book):
        book = generating_book()
        assert db.create_illustrations(book.id, [0, 1, 2]) == 3
        assert db.create_illustrations(book.id, [0, 1, 2, 3]) == 1
        assert db.count_illustrations(book.id) == 4

    def test_mark_failed_increments_retry_count(self, db, generating_book):
        book = generating_book()
        db.create_illustrations(book.id, [0])
        illustration = db.get_illustration(book.id, 0)
        assert db.mark_illustration_failed(illustration.id, "p", "blocked") == 1
        assert db.mark_illustration_failed(illustration.id, "p", "blocked") == 2

        failed = db.get_illustrations(book.id, IllustrationStatus.FAILED)
        assert len(failed) == 1
        assert failed[0].error_message == "blocked"

    def test_mark_completed_clears_error(self, db, generating_book):
        book = generating_book()
        db.create_illustrations(book.id, [0])
        illustration = db.get_illustration(book.id, 0)
        db.mark_illustration_failed(illustration.id, "p", "blocked")
        db.mark_illustration_completed(illustration.id, "p2", "/tmp/x.png")

        done = db.get_illustration(book.id, 0)
        assert done.status == IllustrationStatus.COMPLETED
        assert done.error_message is None
        assert done.retry_count == 1


class TestResetBook:
    def test_reset_preserves_inputs_and_payment(self, db, generating_book):
        book = generating_book(chapters=3, writing_style="terse")
        db.create_chapter_if_absent(Chapter(book_id=book.id, index=0, word_count=10))
        db.advance_cursor(book.id, 0, "story", '{"characters": {}}', 1)
        db.create_illustrations(book.id, [0, 1])

        chapters, illustrations = db.reset_book(book.id)
        assert (chapters, illustrations) == (1, 2)

        reset = db.get_book(book.id)
        assert reset.status == BookStatus.PENDING
        assert reset.payment_status == PaymentStatus.COMPLETED
        assert reset.writing_style == "terse"
        assert reset.premise == book.premise
        assert reset.outline is None
        assert reset.story_so_far == ""
        assert reset.character_states is None
        assert reset.current_chapter_index == 0
        assert reset.total_words == 0
        assert reset.continuity_fallbacks == 0


class TestOutlineSchema:
    def test_round_trip(self):
        from models.continuity import ChapterSpec, Outline
        outline = Outline(chapters=[ChapterSpec(number=1, title="Start", targetWords=900)])
        loaded = Outline.from_json(outline.to_json())
        assert loaded.schema_version == 1
        assert loaded.spec_at(0).target_words == 900

    def test_legacy_bare_list_upgraded(self):
        from models.continuity import Outline
        raw = json.dumps([
            {"number": 1, "title": "A", "summary": "s", "targetWords": 800, "keyPoints": ["k"]},
            {"number": 2, "title": "B"},
        ])
        outline = Outline.from_json(raw)
        assert len(outline) == 2
        assert outline.spec_at(0).key_points == ["k"]
        assert outline.schema_version == 1

    def test_unversioned_object_upgraded(self):
        from models.continuity import Outline
        outline = Outline.from_json('{"chapters": [{"number": 1}]}')
        assert outline.schema_version == 1

    @pytest.mark.parametrize("raw", [None, "", "not json", '{"chapters": [{"title": "no number"}]}'])
    def test_bad_outline_raises(self, raw):
        from config.exceptions import ValidationError
        from models.continuity import Outline
        with pytest.raises(ValidationError):
            Outline.from_json(raw)


class TestCharacterStatesSchema:
    def test_empty_is_no_characters(self):
        from models.continuity import CharacterStates
        assert len(CharacterStates.from_json(None)) == 0
        assert len(CharacterStates.from_json("")) == 0

    def test_legacy_bare_map_upgraded(self):
        from models.continuity import CharacterStates
        states = CharacterStates.from_json(
            '{"Mara": {"last_seen": 3, "status": "injured", "knows": ["the map is fake"]}}'
        )
        assert states.schema_version == 1
        assert states.characters["Mara"].last_seen_chapter == 3
        assert states.characters["Mara"].knowledge == ["the map is fake"]

    def test_versioned_round_trip(self):
        from models.continuity import CharacterState, CharacterStates
        states = CharacterStates(characters={"Ilo": CharacterState(status="alive", goal="escape")})
        loaded = CharacterStates.from_json(states.to_json())
        assert loaded.characters["Ilo"].goal == "escape"

    def test_prompt_dict_uses_short_names(self):
        from models.continuity import CharacterState, CharacterStates
        states = CharacterStates(characters={"Ilo": CharacterState(last_seen_chapter=2)})
        assert states.to_prompt_dict()["Ilo"]["last_seen"] == 2

    @pytest.mark.parametrize("raw", ["[1, 2]", "{broken", '{"Mara": "dead"}'])
    def test_bad_states_raise(self, raw):
        from config.exceptions import ValidationError
        from models.continuity import CharacterStates
        with pytest.raises(ValidationError):
            CharacterStates.from_json(raw)
