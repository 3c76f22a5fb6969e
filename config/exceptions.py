"""Custom exception hierarchy for the book generation pipeline."""

from typing import Optional


class DraftBookError(Exception):
    """Base exception for all book generation errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# ---- LLM Errors ----

class LLMError(DraftBookError):
    """Base exception for LLM API errors."""


class LLMRateLimitError(LLMError):
    """LLM API rate limit or quota exceeded."""

    def __init__(self, message: str = "API rate limit exceeded", retry_after: Optional[float] = None):
        details = {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(message, details)
        self.retry_after = retry_after


class LLMTimeoutError(LLMError):
    """LLM API request timed out."""


class LLMResponseParseError(LLMError):
    """Failed to parse LLM response."""

    def __init__(self, message: str = "Failed to parse LLM response", raw_response: str = ""):
        details = {"raw_response": raw_response[:200]} if raw_response else {}
        super().__init__(message, details)
        self.raw_response = raw_response


# ---- Image Errors ----

class ImageGenerationError(DraftBookError):
    """Image model call failed or returned nothing usable."""


# ---- Database Errors ----

class DatabaseError(DraftBookError):
    """Database operation failed."""


# ---- Workflow Errors ----

class WorkflowError(DraftBookError):
    """Base exception for pipeline orchestration errors."""


class WorkflowStateError(WorkflowError):
    """Operation not allowed in the book's current state."""


class BookNotFoundError(WorkflowError):
    """No book with the given id."""

    def __init__(self, book_id: int):
        super().__init__(f"Book {book_id} not found", {"book_id": book_id})
        self.book_id = book_id


class OutlineError(WorkflowError):
    """Outline planning failed or produced an unusable outline."""


class PaymentRequiredError(WorkflowError):
    """Generation requested for a book that is neither paid nor claimed free."""

    def __init__(self, book_id: int, payment_status: str):
        super().__init__(
            f"Book {book_id} is not paid",
            {"book_id": book_id, "payment_status": payment_status},
        )


class PermissionDeniedError(WorkflowError):
    """Caller lacks the privilege required for a destructive operation."""


# ---- Validation Errors ----

class ValidationError(DraftBookError):
    """Input validation failed."""


class InvalidConfigError(ValidationError):
    """Configuration value is invalid."""
