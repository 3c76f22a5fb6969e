"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme

from models.book import Book
from models.enums import BookStatus

DRAFTBOOK_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "genre": "bold",
    "stat.label": "dim",
    "stat.value": "bold",
    "chapter.num": "blue",
})

_STATUS_STYLE = {
    BookStatus.PENDING: "muted",
    BookStatus.OUTLINING: "info",
    BookStatus.GENERATING: "accent",
    BookStatus.COMPLETED: "success",
    BookStatus.FAILED: "error",
}


def get_console() -> Console:
    """Return a Console instance with the DraftMyBook theme applied."""
    return Console(theme=DRAFTBOOK_THEME)


def app_header(title: str = "draftbook") -> Rule:
    return Rule(title=f"[bold]{title}[/]", style="dim")


def status_text(status: BookStatus) -> str:
    style = _STATUS_STYLE.get(status, "muted")
    return f"[{style}]{status.value}[/]"


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying command parameters.

    Args:
        title: Panel title (e.g. "New book").
        fields: Ordered dict of label -> value pairs.
    """
    lines = [f"  [stat.label]{label}:[/] [stat.value]{value}[/]" for label, value in fields.items()]
    return Panel("\n".join(lines), title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def book_summary_panel(book: Book, chapter_count: int, illustration_count: int) -> Panel:
    """Return a Panel with the book's progress stats."""
    premise = book.premise or ""
    if len(premise) > 150:
        premise = premise[:150] + "..."

    body = (
        f"  [stat.label]Genre:[/] [genre]{book.genre}[/]  "
        f"[muted]|[/]  [stat.label]Status:[/] {status_text(book.status)}  "
        f"[muted]|[/]  [stat.label]Format:[/] {book.book_format.value}\n"
        f"  [stat.label]Chapters:[/] [stat.value]{chapter_count}/{book.total_chapters or book.target_chapters}[/]  "
        f"[muted]|[/]  [stat.label]Words:[/] [stat.value]{book.total_words:,}[/]  "
        f"[muted]|[/]  [stat.label]Illustrations:[/] [stat.value]{illustration_count}[/]\n"
        f"  [stat.label]Premise:[/] {premise}"
    )
    if book.error_message:
        body += f"\n  [error]{book.error_message}[/]"
    elif book.last_step_error:
        body += (
            f"\n  [warning]Last step error (attempt {book.step_attempts}):[/] "
            f"{book.last_step_error}"
        )
    return Panel(
        body,
        title=f"[bold]{book.title or 'Untitled'}[/] [muted](ID: {book.id})[/]",
        box=box.ROUNDED,
        border_style="dim",
        padding=(0, 2),
    )


def books_table(books: list[Book]) -> Table:
    table = Table(box=box.ROUNDED, border_style="dim", show_header=True, padding=(0, 1))
    table.add_column("ID", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Genre", style="muted")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Words", justify="right")

    for book in books:
        total = book.total_chapters or book.target_chapters
        table.add_row(
            str(book.id),
            book.title or "-",
            book.genre,
            status_text(book.status),
            f"{book.current_chapter_index}/{total}",
            f"{book.total_words:,}",
        )
    return table
