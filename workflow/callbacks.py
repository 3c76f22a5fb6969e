"""Pipeline progress callbacks for monitoring and real-time reporting."""

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class StepCallback(Protocol):
    """Protocol for chapter-step progress callbacks.

    Implement this protocol to hook into the pipeline execution lifecycle.
    """

    def on_node_exit(self, node: str, state: dict) -> None:
        """Called after a step graph node finishes, with the accumulated step state."""
        ...

    def on_chapter_complete(self, book_id: int, number: int, total: int, word_count: int) -> None:
        """Called when a chapter's continuity update has been committed."""
        ...

    def on_error(self, book_id: int, node: str, error: str) -> None:
        """Called when a step records a failure."""
        ...

    def on_book_complete(self, book_id: int, total_words: int) -> None:
        """Called when the book reaches ``completed``."""
        ...


class LoggingCallback:
    """Lightweight callback that logs progress to the standard logger."""

    def on_node_exit(self, node: str, state: dict) -> None:
        logger.debug("← node: %s", node)

    def on_chapter_complete(self, book_id: int, number: int, total: int, word_count: int) -> None:
        logger.info("Book %d: chapter %d/%d complete (%d words)", book_id, number, total, word_count)

    def on_error(self, book_id: int, node: str, error: str) -> None:
        logger.error("Book %d: error in '%s': %s", book_id, node, error)

    def on_book_complete(self, book_id: int, total_words: int) -> None:
        logger.info("Book %d complete: %d words", book_id, total_words)


class RichProgressCallback:
    """Progress callback that renders a Rich live progress display in the terminal."""

    # astream fires after a node completes, so show the step that comes next
    _ENTERING_LABEL: dict[str, str] = {
        "load_book": "Writing chapter",
        "generate_chapter": "Saving chapter",
        "persist_chapter": "Updating story so far and character states",
        "update_continuity": "Committing continuity",
        "advance_cursor": "Next step",
        "record_failure": "Recording failure",
        "finalize_book": "Finished",
    }

    def __init__(self, console=None, total_chapters: int = 0, completed: int = 0):
        """
        Args:
            console: Rich Console instance. Creates one if not provided.
            total_chapters: Total chapters (for progress bar max).
            completed: Chapters already written before this run.
        """
        self._console = console
        self._total = total_chapters
        self._completed = completed
        self._progress = None
        self._chapter_task_id = None
        self._node_task_id = None

    def start(self):
        """Start the progress display. Call before running the pipeline."""
        from rich.console import Console
        from rich.progress import (
            Progress, SpinnerColumn, TextColumn, TaskProgressColumn,
        )

        console = self._console or Console()
        self._progress = Progress(
            SpinnerColumn("dots"),
            TextColumn("[progress.description]{task.description}"),
            TaskProgressColumn(),
            console=console,
        )
        self._progress.start()
        self._chapter_task_id = self._progress.add_task(
            f"Chapters {self._completed}/{self._total or '?'}",
            total=self._total if self._total > 0 else None,
            completed=self._completed,
        )
        self._node_task_id = self._progress.add_task("[dim]Starting...[/]", total=None)

    def stop(self):
        """Stop the progress display."""
        if self._progress:
            self._progress.stop()
            self._progress = None

    def on_node_exit(self, node: str, state: dict) -> None:
        if not self._progress:
            return
        index = state.get("index")
        suffix = f" (chapter {index + 1})" if index is not None else ""
        label = self._ENTERING_LABEL.get(node, node)
        self._progress.update(self._node_task_id, description=f"[dim]{label}{suffix}[/]")

    def on_chapter_complete(self, book_id: int, number: int, total: int, word_count: int) -> None:
        if not self._progress:
            return
        self._progress.update(
            self._chapter_task_id,
            completed=number,
            description=f"[green]Chapters {number}/{total or '?'}[/] "
                        f"([cyan]{word_count:,}[/] words)",
        )

    def on_error(self, book_id: int, node: str, error: str) -> None:
        if not self._progress:
            return
        self._progress.update(
            self._node_task_id,
            description=f"[red]Error ({node}): {error[:80]}[/]",
        )

    def on_book_complete(self, book_id: int, total_words: int) -> None:
        if not self._progress:
            return
        self._progress.update(
            self._chapter_task_id,
            description=f"[bold green]Done! {total_words:,} words[/]",
        )
        self._progress.update(self._node_task_id, description="")
