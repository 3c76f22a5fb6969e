"""Tests for Settings validation."""

import pytest
from pydantic import ValidationError


class TestSettingsDefaults:
    def test_fixture_overrides(self, settings, tmp_path):
        assert settings.sqlite_db_path == tmp_path / "books.db"
        assert settings.step_retry_delay == 0
        assert settings.review_enabled is False

    def test_code_defaults(self, tmp_path):
        from config.settings import Settings
        # Use _env_file=None to test code defaults without .env overrides
        s = Settings(_env_file=None, sqlite_db_path=tmp_path / "b.db", log_dir=tmp_path / "logs")
        assert s.max_step_attempts == 3
        assert s.max_illustration_retries == 5
        assert s.outline_chunk_threshold == 16
        assert s.outline_chunk_size == 8
        assert s.image_model == "black-forest-labs/flux-schnell"
        assert s.review_enabled is True

    def test_parent_dirs_created(self, tmp_path):
        from config.settings import Settings
        Settings(_env_file=None, sqlite_db_path=tmp_path / "nested" / "b.db",
                 log_dir=tmp_path / "logs" / "app")
        assert (tmp_path / "nested").is_dir()
        assert (tmp_path / "logs").is_dir()

    def test_env_override(self, tmp_path, monkeypatch):
        from config.settings import Settings
        monkeypatch.setenv("MAX_STEP_ATTEMPTS", "7")
        s = Settings(_env_file=None, sqlite_db_path=tmp_path / "b.db", log_dir=tmp_path / "logs")
        assert s.max_step_attempts == 7


class TestSettingsValidation:
    def _make(self, tmp_path, **kwargs):
        from config.settings import Settings
        return Settings(
            _env_file=None,
            sqlite_db_path=tmp_path / "b.db",
            log_dir=tmp_path / "logs",
            **kwargs,
        )

    def test_zero_step_attempts_raises(self, tmp_path):
        with pytest.raises(ValidationError, match=">= 1"):
            self._make(tmp_path, max_step_attempts=0)

    def test_zero_illustration_concurrency_raises(self, tmp_path):
        with pytest.raises(ValidationError):
            self._make(tmp_path, illustration_concurrency=0)

    def test_non_positive_timeout_raises(self, tmp_path):
        with pytest.raises(ValidationError, match="timeout"):
            self._make(tmp_path, chapter_timeout_seconds=0)

    def test_negative_delay_raises(self, tmp_path):
        with pytest.raises(ValidationError, match="non-negative"):
            self._make(tmp_path, step_retry_delay=-1)

    def test_zero_delay_allowed(self, tmp_path):
        assert self._make(tmp_path, step_retry_delay=0).step_retry_delay == 0

    def test_chunk_size_above_threshold_raises(self, tmp_path):
        with pytest.raises(ValidationError, match="outline_chunk_size"):
            self._make(tmp_path, outline_chunk_threshold=4, outline_chunk_size=8)
