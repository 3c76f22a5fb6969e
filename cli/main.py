"""CLI entry point — DraftMyBook chapter generation.

Usage:
  draftbook new -t "Title" -g fantasy -p "premise" -c 12
  draftbook pay -b 1            confirm payment and plan the outline
  draftbook run -b 1            write every remaining chapter
  draftbook status -b 1
  draftbook --help
"""

import asyncio
import json
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass

import click

from agents.generation_client import GenerationClient
from cli.theme import (
    app_header,
    book_summary_panel,
    books_table,
    command_panel,
    get_console,
    status_text,
    success_panel,
)
from config.exceptions import DraftBookError
from config.logging_config import setup_logging
from config.settings import Settings
from models.book import Book
from models.continuity import Outline
from models.database import Database
from models.enums import BookFormat, BookStatus, BookType, ChapterFormat
from tools.media_store import MediaStore
from workflow.callbacks import LoggingCallback, RichProgressCallback
from workflow.controller import BookController
from workflow.illustrations import IllustrationPipeline
from workflow.live_preview import LivePreview
from workflow.pipeline import BookPipeline

logger = logging.getLogger(__name__)

console = get_console()


def _init_logging(verbose: bool, settings: Settings):
    level = logging.DEBUG if verbose else logging.INFO
    setup_logging(level=level, log_dir=settings.log_dir, console_enabled=verbose)


def make_generator(settings: Settings) -> GenerationClient:
    """Build the model facade. Tests patch this to inject a fake."""
    return GenerationClient(settings)


@dataclass
class Services:
    settings: Settings
    db: Database
    pipeline: BookPipeline
    controller: BookController
    illustrations: IllustrationPipeline


def _services(ctx: click.Context, callback=None) -> Services:
    settings: Settings = ctx.obj["settings"]
    db = Database(settings.sqlite_db_path)
    generator = make_generator(settings)
    media = MediaStore(settings.media_dir)
    pipeline = BookPipeline(
        db=db,
        generator=generator,
        settings=settings,
        live_preview=LivePreview(),
        media=media,
        callback=callback,
    )
    return Services(
        settings=settings,
        db=db,
        pipeline=pipeline,
        controller=BookController(db, pipeline),
        illustrations=IllustrationPipeline(db, generator, settings, media),
    )


@contextmanager
def _handle_errors(action: str):
    """Print domain errors and exit non-zero instead of dumping a traceback."""
    try:
        yield
    except KeyboardInterrupt:
        console.print("\n[warning]Interrupted[/]")
        sys.exit(130)
    except DraftBookError as e:
        console.print(f"\n[error]{action} failed: {e.message}[/]")
        logger.debug("%s failed: %s %s", action, e.message, e.details)
        sys.exit(1)


def _parse_characters(values: tuple[str, ...]) -> str | None:
    """``"Mara: a smuggler"`` -> ``[{"name": "Mara", "description": "a smuggler"}]``."""
    if not values:
        return None
    characters = []
    for value in values:
        name, _, description = value.partition(":")
        characters.append({"name": name.strip(), "description": description.strip()})
    return json.dumps(characters, ensure_ascii=False)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, verbose):
    """DraftMyBook — outline a book once, then write it chapter by chapter.

    \b
    Typical flow:
      draftbook new -t "The Salt Road" -g fantasy -p "A smuggler..." -c 12
      draftbook pay -b 1
      draftbook run -b 1
    """
    settings = Settings()
    _init_logging(verbose, settings)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


# ---------------------------------------------------------------------------
# Book intake
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--title", "-t", required=True)
@click.option("--genre", "-g", required=True)
@click.option("--premise", "-p", required=True, help="Core idea of the book")
@click.option("--author", default="", help="Author name")
@click.option("--type", "book_type", default=BookType.FICTION.value,
              type=click.Choice([t.value for t in BookType]))
@click.option("--character", "characters", multiple=True,
              help='Repeatable, "Name: description"')
@click.option("--beginning", default="")
@click.option("--middle", default="")
@click.option("--ending", default="")
@click.option("--style", "writing_style", default="", help="Writing style guidance")
@click.option("--chapter-format", default=ChapterFormat.BOTH.value,
              type=click.Choice([f.value for f in ChapterFormat]))
@click.option("--words", "target_words", default=30000, type=click.IntRange(min=1000))
@click.option("--chapters", "-c", "target_chapters", default=10, type=click.IntRange(min=1))
@click.option("--format", "book_format", default=BookFormat.TEXT_ONLY.value,
              type=click.Choice([f.value for f in BookFormat]))
@click.option("--art-style", default="", help="Art style for illustrated formats")
@click.pass_context
def new(ctx, title, genre, premise, author, book_type, characters, beginning, middle,
        ending, writing_style, chapter_format, target_words, target_chapters,
        book_format, art_style):
    """Create a book request (status pending, awaiting payment)."""
    settings: Settings = ctx.obj["settings"]
    db = Database(settings.sqlite_db_path)
    book = Book(
        title=title,
        author_name=author,
        genre=genre,
        book_type=BookType(book_type),
        premise=premise,
        characters=_parse_characters(characters),
        beginning=beginning,
        middle=middle,
        ending=ending,
        writing_style=writing_style,
        chapter_format=ChapterFormat(chapter_format),
        target_words=target_words,
        target_chapters=target_chapters,
        book_format=BookFormat(book_format),
        art_style=art_style,
    )
    book_id = db.create_book(book)

    console.print(app_header())
    console.print(command_panel("New book", {
        "ID": str(book_id),
        "Title": title,
        "Genre": genre,
        "Plan": f"{target_chapters} chapters, ~{target_words:,} words",
        "Format": book_format,
    }))
    console.print(f"\nNext: [info]draftbook pay -b {book_id}[/] or [info]draftbook claim-free -b {book_id}[/]")


@cli.command(name="list")
@click.option("--status", "status_filter", default=None,
              type=click.Choice([s.value for s in BookStatus]))
@click.pass_context
def list_books(ctx, status_filter):
    """List books, optionally filtered by status."""
    settings: Settings = ctx.obj["settings"]
    db = Database(settings.sqlite_db_path)
    books = db.list_books(BookStatus(status_filter) if status_filter else None)
    if not books:
        console.print("[muted]No books yet. Create one with draftbook new[/]")
        return
    console.print(books_table(books))


@cli.command()
@click.option("--book-id", "-b", required=True, type=int)
@click.option("--preview", is_flag=True, help="Show the tail of the chapter being written")
@click.pass_context
def status(ctx, book_id, preview):
    """Show a book's progress."""
    services = _services(ctx)
    with _handle_errors("Status"):
        snapshot = services.pipeline.snapshot(book_id)
    book = services.db.get_book(book_id)

    console.print(book_summary_panel(book, snapshot.chapter_count, snapshot.illustration_count))
    if preview and snapshot.live_preview:
        console.print(f"\n[muted]{snapshot.live_preview[-800:]}[/]")


# ---------------------------------------------------------------------------
# Payment and planning
# ---------------------------------------------------------------------------

def _print_outline(outline: Outline, book_id: int):
    console.print(success_panel("Outline ready", "\n".join(
        f"  [chapter.num]{spec.number:>3}.[/] {spec.title} [muted]({spec.target_words} words)[/]"
        for spec in outline.chapters
    )))
    console.print(f"\nNext: [info]draftbook run -b {book_id}[/]")


@cli.command()
@click.option("--book-id", "-b", required=True, type=int)
@click.option("--product", default=None, help="Purchased product identifier")
@click.pass_context
def pay(ctx, book_id, product):
    """Confirm payment and generate the outline."""
    services = _services(ctx)
    with _handle_errors("Planning"):
        with console.status("Planning outline..."):
            outline = asyncio.run(services.controller.confirm_payment(book_id, product))
    _print_outline(outline, book_id)


@cli.command(name="claim-free")
@click.option("--book-id", "-b", required=True, type=int)
@click.pass_context
def claim_free(ctx, book_id):
    """Claim a free book and generate the outline."""
    services = _services(ctx)
    with _handle_errors("Planning"):
        with console.status("Planning outline..."):
            outline = asyncio.run(services.controller.claim_free(book_id))
    _print_outline(outline, book_id)


@cli.command()
@click.option("--book-id", "-b", required=True, type=int)
@click.pass_context
def plan(ctx, book_id):
    """Generate the outline for a book that is already paid."""
    services = _services(ctx)
    with _handle_errors("Planning"):
        with console.status("Planning outline..."):
            outline = asyncio.run(services.pipeline.plan(book_id))
    _print_outline(outline, book_id)


# ---------------------------------------------------------------------------
# Chapter steps
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", required=True, type=int)
@click.option("--expected-index", default=None, type=int,
              help="Cursor value this trigger was issued for")
@click.pass_context
def step(ctx, book_id, expected_index):
    """Run exactly one chapter step."""
    services = _services(ctx, callback=LoggingCallback())

    async def _step():
        result = await services.pipeline.advance(book_id, expected_index)
        await services.pipeline.drain_reviews()
        return result

    with _handle_errors("Step"):
        with console.status("Running chapter step..."):
            result = asyncio.run(_step())

    console.print(
        f"[stat.label]Outcome:[/] [stat.value]{result.outcome.value}[/]  "
        f"[stat.label]Status:[/] {status_text(result.status)}  "
        f"[stat.label]Cursor:[/] [stat.value]{result.current_chapter_index}/{result.total_chapters}[/]"
    )
    if result.error:
        console.print(f"[warning]{result.error}[/]")


@cli.command()
@click.option("--book-id", "-b", required=True, type=int)
@click.option("--max-steps", default=None, type=click.IntRange(min=1))
@click.option("--illustrate/--no-illustrate", default=True,
              help="Render illustrations after the text is finished")
@click.pass_context
def run(ctx, book_id, max_steps, illustrate):
    """Write every remaining chapter, retrying failed steps."""
    settings: Settings = ctx.obj["settings"]
    db = Database(settings.sqlite_db_path)
    book = db.get_book(book_id)
    if book is None:
        console.print(f"[error]Book {book_id} not found[/]")
        sys.exit(1)

    cb = RichProgressCallback(
        console=console,
        total_chapters=book.total_chapters or book.target_chapters,
        completed=book.current_chapter_index,
    )
    services = _services(ctx, callback=cb)

    async def _run():
        if book.status == BookStatus.PENDING:
            await services.pipeline.plan(book_id)
        result = await services.pipeline.run(book_id, max_steps)
        await services.pipeline.drain_reviews()
        tally = None
        if illustrate and result and result.status == BookStatus.COMPLETED \
                and book.book_format.is_illustrated:
            tally = await services.illustrations.generate_pending(book_id)
        return result, tally

    console.print(app_header())
    with _handle_errors("Generation"):
        cb.start()
        try:
            result, tally = asyncio.run(_run())
        finally:
            cb.stop()

    book = db.get_book(book_id)
    if book.status == BookStatus.COMPLETED:
        body = (
            f"  Chapters: [stat.value]{book.total_chapters}[/]\n"
            f"  Words: [stat.value]{book.total_words:,}[/]"
        )
        if tally is not None:
            body += f"\n  Illustrations: [stat.value]{tally.succeeded}/{tally.retried}[/]"
        console.print(success_panel("Book complete", body))
    else:
        console.print(book_summary_panel(
            book, db.count_chapters(book_id), db.count_illustrations(book_id),
        ))
        if book.status == BookStatus.FAILED:
            console.print(f"\nResume with: [info]draftbook resume -b {book_id}[/]")
            sys.exit(1)

    usage = services.pipeline.generator.get_usage_summary()
    console.print(f"[muted]Model calls: {usage.get('llm_calls', 0)} text, "
                  f"{usage.get('image_calls', 0)} image[/]")


# ---------------------------------------------------------------------------
# Recovery
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", required=True, type=int)
@click.pass_context
def resume(ctx, book_id):
    """Put a failed or stalled book back to generating, keeping its progress."""
    services = _services(ctx)
    with _handle_errors("Resume"):
        book = services.controller.resume(book_id)
    console.print(
        f"[success]Book {book_id} resumed at chapter "
        f"{book.current_chapter_index + 1}/{book.total_chapters}[/]"
    )


@cli.command()
@click.option("--book-id", "-b", required=True, type=int)
@click.option("--admin", is_flag=True, help="Confirm administrator privileges")
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
@click.pass_context
def restart(ctx, book_id, admin, yes):
    """Delete all generated content and return the book to pending."""
    services = _services(ctx)
    if admin and not yes:
        click.confirm(f"Delete every chapter and illustration of book {book_id}?", abort=True)
    with _handle_errors("Restart"):
        result = services.controller.restart(book_id, privileged=admin)
    console.print(success_panel("Book restarted", (
        f"  Chapters deleted: [stat.value]{result.chapters_deleted}[/]\n"
        f"  Illustrations deleted: [stat.value]{result.illustrations_deleted}[/]"
    )))


@cli.command()
@click.option("--book-id", "-b", required=True, type=int)
@click.pass_context
def cancel(ctx, book_id):
    """Stop an in-progress book."""
    services = _services(ctx)
    with _handle_errors("Cancel"):
        cancelled = services.controller.cancel(book_id)
    if cancelled:
        console.print(f"[warning]Book {book_id} cancelled[/]")
    else:
        console.print(f"[muted]Book {book_id} was not in progress[/]")


# ---------------------------------------------------------------------------
# Illustrations
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", required=True, type=int)
@click.pass_context
def illustrate(ctx, book_id):
    """Render every pending illustration."""
    services = _services(ctx)

    async def _illustrate():
        services.illustrations.ensure_slots(book_id)
        return await services.illustrations.generate_pending(book_id)

    with _handle_errors("Illustration"):
        with console.status("Rendering illustrations..."):
            tally = asyncio.run(_illustrate())
    console.print(
        f"Rendered [success]{tally.succeeded}[/], failed [error]{tally.failed}[/] "
        f"of {tally.retried} pending"
    )


@cli.command(name="retry-illustrations")
@click.option("--book-id", "-b", required=True, type=int)
@click.pass_context
def retry_illustrations(ctx, book_id):
    """Retry failed illustrations with safer prompts."""
    services = _services(ctx)
    with _handle_errors("Illustration retry"):
        with console.status("Retrying failed illustrations..."):
            tally = asyncio.run(services.illustrations.retry_failed(book_id))
        report = services.illustrations.failed_report(book_id)

    console.print(
        f"Retried [stat.value]{tally.retried}[/]: [success]{tally.succeeded} succeeded[/], "
        f"[error]{tally.failed} failed[/], [muted]{tally.skipped_max_retries} at max retries[/]"
    )
    console.print(f"Illustrations complete: {report.completed}/{report.total}")
    for illustration in report.failed:
        console.print(
            f"  [chapter.num]#{illustration.position + 1}[/] "
            f"[muted](attempts {illustration.retry_count})[/] {illustration.error_message or ''}"
        )


if __name__ == "__main__":
    cli()
