"""Configuration settings loaded from .env file."""

from pathlib import Path
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, loaded from .env file.

    Text generation goes through the Claude Agent SDK, which authenticates
    on its own. Image generation goes through Replicate and needs
    ``replicate_api_token`` (or the ``REPLICATE_API_TOKEN`` env var).
    """

    # LLM Models, one per role
    llm_model_writing: str = "claude-opus-4-6"    # WriterAgent
    llm_model_planning: str = "claude-opus-4-6"   # PlannerAgent
    llm_model_editing: str = "claude-sonnet-4-5"  # EditorAgent
    llm_model_memory: str = "claude-haiku-4-5"    # ContinuityAgent

    # Images
    image_model: str = "black-forest-labs/flux-schnell"
    replicate_api_token: Optional[str] = None

    # Storage
    sqlite_db_path: Path = Path("./data/books.db")
    media_dir: Path = Path("./data/media")

    # Generation client retries and timeouts
    llm_max_retries: int = 3
    llm_retry_backoff: float = 2.0
    chapter_timeout_seconds: float = 240.0
    fast_task_timeout_seconds: float = 60.0

    # Chapter steps
    max_step_attempts: int = 3
    step_retry_delay: float = 5.0
    review_enabled: bool = True

    # Illustrations
    max_illustration_retries: int = 5
    illustration_concurrency: int = 3

    # Outline
    outline_chunk_threshold: int = 16
    outline_chunk_size: int = 8

    # Continuity
    story_so_far_max_chars: int = 6000
    summary_target_words: int = 150
    continuity_fallback_warn_threshold: int = 3

    # Logging
    log_dir: Path = Path("./data/logs")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator(
        "llm_max_retries",
        "max_step_attempts",
        "max_illustration_retries",
        "illustration_concurrency",
        "outline_chunk_size",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    @field_validator("chapter_timeout_seconds", "fast_task_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("llm_retry_backoff", "step_retry_delay")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delay must be non-negative")
        return v

    @field_validator("sqlite_db_path", "log_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v

    @model_validator(mode="after")
    def validate_outline_chunking(self) -> "Settings":
        if self.outline_chunk_size > self.outline_chunk_threshold:
            raise ValueError(
                f"outline_chunk_size ({self.outline_chunk_size}) must not exceed "
                f"outline_chunk_threshold ({self.outline_chunk_threshold})"
            )
        return self


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
