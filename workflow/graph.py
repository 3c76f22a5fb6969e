"""LangGraph StateGraph for one chapter step.

One ``advance`` call runs this graph once::

    load_book -> generate_chapter -> persist_chapter -> update_continuity
              -> advance_cursor -> finalize_book

``load_book`` short-circuits duplicate or premature triggers, jumps straight
to ``update_continuity`` when the chapter at the cursor is already persisted
(a step that crashed before its cursor update), and to ``finalize_book`` when
every chapter is in. ``generate_chapter`` failures go to ``record_failure``
and leave the cursor and continuity untouched.
"""

import asyncio
import logging
from typing import Callable, Optional

from langgraph.graph import StateGraph, END

from agents.generation_client import GenerationClient
from agents.writer_agent import ChapterRequest
from config.exceptions import (
    BookNotFoundError,
    DraftBookError,
    ValidationError,
    WorkflowStateError,
)
from config.settings import Settings
from models.book import Book
from models.chapter import Chapter
from models.continuity import CharacterStates, Outline
from models.database import Database
from models.enums import BookFormat, BookStatus
from tools.media_store import MediaStore
from tools.text_utils import (
    count_words,
    excerpt_summary,
    format_chapter_heading,
    format_sequence_heading,
    get_chapter_ending,
    trim_story_so_far,
)
from workflow.conditions import (
    route_after_load,
    route_after_generate,
    route_after_persist,
    route_after_advance,
)
from workflow.live_preview import LivePreview
from workflow.state import ChapterStepState

logger = logging.getLogger(__name__)

# Outcome values written to ChapterStepState["outcome"]
GENERATED = "generated"
RECOVERED = "recovered"
ALREADY_DONE = "already_done"
COMPLETED = "completed"
RETRYABLE_ERROR = "retryable_error"
FAILED = "failed"
NOT_READY = "not_ready"


def load_character_states(book: Book) -> CharacterStates:
    """Parse the stored character states, treating a corrupt blob as empty."""
    try:
        return CharacterStates.from_json(book.character_states)
    except ValidationError as e:
        logger.warning("Book %s has unreadable character states, starting fresh: %s", book.id, e)
        return CharacterStates()


def merge_story_so_far(previous: str, number: int, summary: str) -> str:
    entry = f"Chapter {number}: {summary.strip()}"
    if not previous:
        return entry
    return f"{previous.rstrip()}\n\n{entry}"


class StepNodes:
    """Node functions for the chapter step graph, bound to their collaborators."""

    def __init__(
        self,
        db: Database,
        generator: GenerationClient,
        settings: Settings,
        live_preview: LivePreview,
        media: MediaStore,
        schedule_review: Optional[Callable[[Book, int], None]] = None,
        callback=None,
    ):
        self.db = db
        self.generator = generator
        self.settings = settings
        self.live_preview = live_preview
        self.media = media
        self.schedule_review = schedule_review
        self.callback = callback

    async def load_book(self, state: ChapterStepState) -> dict:
        """Read the continuity store and decide what this step has to do."""
        book_id = state["book_id"]
        expected = state.get("expected_index")
        book = self.db.get_book(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        base = {"last_node": "load_book", "book": book}

        if book.status == BookStatus.COMPLETED:
            return {**base, "outcome": ALREADY_DONE if expected is not None else COMPLETED}
        if book.status != BookStatus.GENERATING:
            logger.info("Book %d is %s, nothing to advance", book_id, book.status.value)
            return {**base, "outcome": NOT_READY}

        index = book.current_chapter_index
        if expected is not None and expected != index:
            outcome = ALREADY_DONE if index > expected else NOT_READY
            logger.info(
                "Step for book %d chapter %d ignored, cursor is at %d (%s)",
                book_id, expected + 1, index + 1, outcome,
            )
            return {**base, "outcome": outcome}

        try:
            outline = Outline.from_json(book.outline)
        except ValidationError as e:
            raise WorkflowStateError(
                f"Book {book_id} is generating without a usable outline", {"error": str(e)},
            ) from e

        updates = {
            **base,
            "outline": outline,
            "index": index,
            "total_chapters": book.total_chapters,
            "recovered": False,
        }
        if index >= book.total_chapters:
            return updates

        existing = self.db.get_chapter(book_id, index)
        if existing:
            logger.warning(
                "Book %d chapter %d already persisted but not applied, recovering continuity",
                book_id, index + 1,
            )
            updates.update({
                "recovered": True,
                "chapter_id": existing.id,
                "chapter_content": existing.content,
                "chapter_title": existing.title,
            })
        return updates

    async def generate_chapter(self, state: ChapterStepState) -> dict:
        """Call the writer. Failures are returned as ``error``, never raised."""
        book: Book = state["book"]
        outline: Outline = state["outline"]
        index = state["index"]
        spec = outline.spec_at(index)

        previous_ending = ""
        if index > 0:
            previous = self.db.get_chapter(book.id, index - 1)
            if previous:
                previous_ending = get_chapter_ending(previous.content)

        if book.book_format is BookFormat.SCREENPLAY:
            heading = format_sequence_heading(index + 1, spec.title)
        else:
            heading = format_chapter_heading(book.chapter_format, index + 1, spec.title, spec.pov)
        request = ChapterRequest(
            book_title=book.title,
            genre=book.genre,
            book_type=book.book_type.value,
            writing_style=book.writing_style,
            characters=book.characters,
            outline=outline,
            index=index,
            heading=heading,
            story_so_far=book.story_so_far,
            character_states=load_character_states(book),
            previous_ending=previous_ending,
            book_format=book.book_format.value,
        )

        self.live_preview.start(book.id)
        try:
            content = await self.generator.generate_chapter_text(
                request,
                on_text=lambda text: self.live_preview.append(book.id, text),
                on_reset=lambda: self.live_preview.start(book.id),
            )
        except DraftBookError as e:
            logger.error("Book %d chapter %d generation failed: %s", book.id, index + 1, e)
            self.live_preview.clear(book.id)
            return {"last_node": "generate_chapter", "error": str(e)}

        return {
            "last_node": "generate_chapter",
            "chapter_content": content,
            "chapter_title": spec.title or heading,
        }

    async def record_failure(self, state: ChapterStepState) -> dict:
        """Count the failed attempt; the book fails once attempts run out."""
        book_id = state["book_id"]
        index = state["index"]
        error = state.get("error", "unknown error")
        attempts = self.db.record_step_failure(
            book_id, index, error, self.settings.max_step_attempts,
        )
        if self.callback:
            self.callback.on_error(book_id, "generate_chapter", error)

        if attempts == 0:
            return {"last_node": "record_failure", "outcome": ALREADY_DONE}
        if attempts >= self.settings.max_step_attempts:
            logger.error(
                "Book %d failed: chapter %d exhausted %d attempts",
                book_id, index + 1, attempts,
            )
            return {"last_node": "record_failure", "outcome": FAILED, "attempts": attempts}
        logger.warning(
            "Book %d chapter %d attempt %d/%d failed, will retry",
            book_id, index + 1, attempts, self.settings.max_step_attempts,
        )
        return {"last_node": "record_failure", "outcome": RETRYABLE_ERROR, "attempts": attempts}

    async def persist_chapter(self, state: ChapterStepState) -> dict:
        """Create the chapter at the cursor index unless another step got there first."""
        book: Book = state["book"]
        index = state["index"]
        content = state["chapter_content"]
        chapter = Chapter(
            book_id=book.id,
            index=index,
            title=state.get("chapter_title", ""),
            content=content,
            word_count=count_words(content),
        )
        chapter_id = self.db.create_chapter_if_absent(chapter)
        self.live_preview.clear(book.id)
        if chapter_id is None:
            return {"last_node": "persist_chapter", "outcome": ALREADY_DONE}

        logger.info("Book %d chapter %d saved (%d words)", book.id, index + 1, chapter.word_count)
        self._schedule_review(book, chapter_id)
        return {"last_node": "persist_chapter", "chapter_id": chapter_id}

    def _schedule_review(self, book: Book, chapter_id: int) -> None:
        if (
            self.schedule_review
            and self.settings.review_enabled
            and book.book_format.is_text_heavy
        ):
            self.schedule_review(book, chapter_id)

    async def update_continuity(self, state: ChapterStepState) -> dict:
        """Fold the chapter into the story so far and character states.

        Summary and character states are derived concurrently. Neither can
        fail the step: a failed summary falls back to an excerpt, a failed
        character-state update keeps the stored blob exactly as it was.
        """
        book: Book = state["book"]
        index = state["index"]
        content = state["chapter_content"]
        if state.get("recovered") and state.get("chapter_id"):
            recovered = self.db.get_chapter_by_id(state["chapter_id"])
            if recovered is not None and not recovered.reviewed:
                self._schedule_review(book, recovered.id)
        current_states = load_character_states(book)

        summary, update = await asyncio.gather(
            self._summarize(book, index, content),
            self.generator.update_character_states(current_states, content, index),
        )
        if state.get("chapter_id"):
            self.db.set_chapter_summary(state["chapter_id"], summary)

        story = await self._bounded_story(book, merge_story_so_far(book.story_so_far, index + 1, summary))

        if update.fell_back:
            character_states = book.character_states
            fallbacks = book.continuity_fallbacks + 1
            if fallbacks >= self.settings.continuity_fallback_warn_threshold:
                logger.warning(
                    "Book %d: character states not updated for %d chapters in a row",
                    book.id, fallbacks,
                )
        else:
            character_states = update.states.to_json()
            fallbacks = 0

        return {
            "last_node": "update_continuity",
            "story_so_far": story,
            "character_states": character_states,
            "continuity_fallbacks": fallbacks,
        }

    async def _summarize(self, book: Book, index: int, content: str) -> str:
        try:
            return await self.generator.summarize_chapter(content, book.book_format.value)
        except DraftBookError as e:
            logger.warning(
                "Book %d chapter %d summary failed, using excerpt: %s", book.id, index + 1, e,
            )
            return excerpt_summary(content, self.settings.summary_target_words)

    async def _bounded_story(self, book: Book, story: str) -> str:
        limit = self.settings.story_so_far_max_chars
        if len(story) <= limit:
            return story
        try:
            return await self.generator.condense_story_so_far(story, limit)
        except DraftBookError as e:
            logger.warning("Book %d story condensing failed, dropping oldest entries: %s", book.id, e)
            return trim_story_so_far(story, limit)

    async def advance_cursor(self, state: ChapterStepState) -> dict:
        """Commit continuity and move the cursor in one conditional update."""
        book_id = state["book_id"]
        index = state["index"]
        advanced = self.db.advance_cursor(
            book_id,
            index,
            state["story_so_far"],
            state.get("character_states"),
            state.get("continuity_fallbacks", 0),
        )
        if not advanced:
            logger.info("Book %d chapter %d cursor already moved by another step", book_id, index + 1)
            return {"last_node": "advance_cursor", "outcome": ALREADY_DONE}

        outcome = RECOVERED if state.get("recovered") else GENERATED
        if self.callback:
            self.callback.on_chapter_complete(
                book_id, index + 1, state.get("total_chapters", 0),
                self.db.sum_word_counts(book_id),
            )
        return {"last_node": "advance_cursor", "outcome": outcome}

    async def finalize_book(self, state: ChapterStepState) -> dict:
        """Cover art if missing (best effort), then mark the book completed."""
        book_id = state["book_id"]
        book = self.db.get_book(book_id)
        if not book.cover_image_path:
            await self._generate_cover(book)

        if self.db.mark_completed(book_id):
            book = self.db.get_book(book_id)
            logger.info("Book %d completed: %d chapters, %d words",
                        book_id, book.total_chapters, book.total_words)
            if self.callback:
                self.callback.on_book_complete(book_id, book.total_words)
        return {"last_node": "finalize_book", "outcome": state.get("outcome") or COMPLETED}

    async def _generate_cover(self, book: Book) -> None:
        try:
            prompt = await self.generator.generate_cover_prompt(book)
            data = await self.generator.generate_cover_art(prompt)
            path = self.media.save_cover(book.id, data)
        except (DraftBookError, OSError) as e:
            logger.warning("Book %d cover generation failed, continuing without: %s", book.id, e)
            return
        self.db.set_cover(book.id, prompt, str(path))


def build_step_graph(nodes: StepNodes):
    """Build and return the compiled chapter step graph."""
    graph = StateGraph(ChapterStepState)

    graph.add_node("load_book", nodes.load_book)
    graph.add_node("generate_chapter", nodes.generate_chapter)
    graph.add_node("record_failure", nodes.record_failure)
    graph.add_node("persist_chapter", nodes.persist_chapter)
    graph.add_node("update_continuity", nodes.update_continuity)
    graph.add_node("advance_cursor", nodes.advance_cursor)
    graph.add_node("finalize_book", nodes.finalize_book)

    graph.set_entry_point("load_book")

    graph.add_conditional_edges(
        "load_book",
        route_after_load,
        {
            "generate_chapter": "generate_chapter",
            "update_continuity": "update_continuity",
            "finalize_book": "finalize_book",
            "__end__": END,
        },
    )
    graph.add_conditional_edges(
        "generate_chapter",
        route_after_generate,
        {
            "persist_chapter": "persist_chapter",
            "record_failure": "record_failure",
        },
    )
    graph.add_edge("record_failure", END)
    graph.add_conditional_edges(
        "persist_chapter",
        route_after_persist,
        {
            "update_continuity": "update_continuity",
            "__end__": END,
        },
    )
    graph.add_edge("update_continuity", "advance_cursor")
    graph.add_conditional_edges(
        "advance_cursor",
        route_after_advance,
        {
            "finalize_book": "finalize_book",
            "__end__": END,
        },
    )
    graph.add_edge("finalize_book", END)

    return graph.compile()


async def run_step(app, initial_state: ChapterStepState, callback=None) -> dict:
    """Run the step graph, emitting node callbacks when a callback is given.

    Returns:
        Accumulated final state dict.
    """
    if callback is None:
        return await app.ainvoke(initial_state)

    accumulated: dict = dict(initial_state)
    async for event in app.astream(initial_state):
        # Each event is {node_name: state_update_dict}
        for node_name, node_update in event.items():
            if isinstance(node_update, dict):
                accumulated.update(node_update)
            callback.on_node_exit(node_name, accumulated)
    return accumulated
