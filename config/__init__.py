"""Configuration package — settings, logging, and exceptions."""

from config.exceptions import (
    DraftBookError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
    LLMResponseParseError,
    ImageGenerationError,
    DatabaseError,
    WorkflowError,
    WorkflowStateError,
    BookNotFoundError,
    OutlineError,
    PaymentRequiredError,
    PermissionDeniedError,
    ValidationError,
    InvalidConfigError,
)
from config.logging_config import setup_logging
from config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "DraftBookError",
    "LLMError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "LLMResponseParseError",
    "ImageGenerationError",
    "DatabaseError",
    "WorkflowError",
    "WorkflowStateError",
    "BookNotFoundError",
    "OutlineError",
    "PaymentRequiredError",
    "PermissionDeniedError",
    "ValidationError",
    "InvalidConfigError",
]
