"""Tests for the click command line."""

import pytest
from click.testing import CliRunner

from models.enums import BookStatus, IllustrationStatus, PaymentStatus


@pytest.fixture
def cli_env(tmp_path, monkeypatch, mock_generator):
    """Point Settings at tmp_path and replace the model facade with the mock."""
    monkeypatch.setenv("SQLITE_DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("MEDIA_DIR", str(tmp_path / "media"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("STEP_RETRY_DELAY", "0")
    monkeypatch.setenv("REVIEW_ENABLED", "false")
    monkeypatch.setattr("cli.main.make_generator", lambda settings: mock_generator)
    from models.database import Database
    return Database(tmp_path / "cli.db")


@pytest.fixture
def runner():
    return CliRunner()


def _invoke(runner, *args, **kwargs):
    from cli.main import cli
    return runner.invoke(cli, list(args), catch_exceptions=False, **kwargs)


def _new_book(runner, *extra):
    return _invoke(
        runner, "new", "-t", "The Salt Road", "-g", "fantasy",
        "-p", "A smuggler crosses the salt flats.", "-c", "2", "--words", "2000",
        "--character", "Mara: a smuggler", *extra,
    )


class TestNew:
    def test_creates_pending_book(self, runner, cli_env):
        result = _new_book(runner)
        assert result.exit_code == 0
        assert "draftbook pay -b 1" in result.output

        book = cli_env.get_book(1)
        assert book.status == BookStatus.PENDING
        assert book.target_chapters == 2
        assert '"name": "Mara"' in book.characters

    def test_list_shows_books(self, runner, cli_env):
        _new_book(runner)
        result = _invoke(runner, "list")
        assert result.exit_code == 0
        assert "The Salt Road" in result.output

    def test_list_empty(self, runner, cli_env):
        result = _invoke(runner, "list")
        assert "No books yet" in result.output


class TestPaymentAndRun:
    def test_pay_plans_outline(self, runner, cli_env):
        _new_book(runner)
        result = _invoke(runner, "pay", "-b", "1", "--product", "ebook")
        assert result.exit_code == 0
        assert "Part 1" in result.output
        book = cli_env.get_book(1)
        assert book.payment_status == PaymentStatus.COMPLETED
        assert book.status == BookStatus.GENERATING

    def test_plan_unpaid_book_fails(self, runner, cli_env):
        _new_book(runner)
        result = _invoke(runner, "plan", "-b", "1")
        assert result.exit_code == 1
        assert "Planning failed" in result.output

    def test_run_writes_whole_book(self, runner, cli_env):
        _new_book(runner)
        _invoke(runner, "claim-free", "-b", "1")

        result = _invoke(runner, "run", "-b", "1")

        assert result.exit_code == 0
        assert "Book complete" in result.output
        assert cli_env.get_book(1).status == BookStatus.COMPLETED
        assert cli_env.count_chapters(1) == 2

    def test_run_renders_illustrations(self, runner, cli_env):
        _new_book(runner, "--format", "picture_book")
        _invoke(runner, "claim-free", "-b", "1")

        result = _invoke(runner, "run", "-b", "1")

        assert result.exit_code == 0
        assert cli_env.count_illustrations(1, IllustrationStatus.COMPLETED) == 2

    def test_run_failed_book_exits_nonzero(self, runner, cli_env, mock_generator):
        from config.exceptions import LLMError
        _new_book(runner)
        _invoke(runner, "pay", "-b", "1")
        mock_generator.generate_chapter_text.side_effect = LLMError("provider down")

        result = _invoke(runner, "run", "-b", "1")

        assert result.exit_code == 1
        assert "draftbook resume -b 1" in result.output
        assert cli_env.get_book(1).status == BookStatus.FAILED

    def test_step_reports_outcome(self, runner, cli_env):
        _new_book(runner)
        _invoke(runner, "pay", "-b", "1")

        first = _invoke(runner, "step", "-b", "1", "--expected-index", "0")
        again = _invoke(runner, "step", "-b", "1", "--expected-index", "0")

        assert "generated" in first.output
        assert "already_done" in again.output
        assert cli_env.count_chapters(1) == 1

    def test_status_unknown_book(self, runner, cli_env):
        result = _invoke(runner, "status", "-b", "99")
        assert result.exit_code == 1
        assert "not found" in result.output


class TestRecoveryCommands:
    def test_cancel_then_resume(self, runner, cli_env):
        _new_book(runner)
        _invoke(runner, "pay", "-b", "1")

        cancelled = _invoke(runner, "cancel", "-b", "1")
        assert "cancelled" in cancelled.output
        assert cli_env.get_book(1).status == BookStatus.FAILED

        resumed = _invoke(runner, "resume", "-b", "1")
        assert resumed.exit_code == 0
        assert "resumed at chapter 1/2" in resumed.output
        assert cli_env.get_book(1).status == BookStatus.GENERATING

    def test_restart_without_admin_refused(self, runner, cli_env):
        _new_book(runner)
        _invoke(runner, "pay", "-b", "1")
        result = _invoke(runner, "restart", "-b", "1")
        assert result.exit_code == 1
        assert cli_env.get_book(1).status == BookStatus.GENERATING

    def test_restart_with_admin(self, runner, cli_env):
        _new_book(runner)
        _invoke(runner, "pay", "-b", "1")
        _invoke(runner, "step", "-b", "1")

        result = _invoke(runner, "restart", "-b", "1", "--admin", input="y\n")

        assert result.exit_code == 0
        assert cli_env.get_book(1).status == BookStatus.PENDING
        assert cli_env.count_chapters(1) == 0


class TestIllustrationCommands:
    def test_retry_reports_failures(self, runner, cli_env, mock_generator):
        from config.exceptions import ImageGenerationError
        _new_book(runner, "--format", "illustrated")
        _invoke(runner, "pay", "-b", "1")
        mock_generator.generate_illustration.side_effect = ImageGenerationError("content filter")

        _invoke(runner, "illustrate", "-b", "1")
        result = _invoke(runner, "retry-illustrations", "-b", "1")

        assert result.exit_code == 0
        assert "Illustrations complete: 0/2" in result.output
        assert cli_env.get_illustration(1, 0).retry_count == 2
