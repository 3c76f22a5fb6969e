"""Tests for the custom exception hierarchy."""

import pytest
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


class TestExceptionHierarchy:
    def test_all_inherit_from_draftbook_error(self):
        leaf_classes = [
            LLMError, LLMRateLimitError, LLMTimeoutError, LLMResponseParseError,
            ImageGenerationError, DatabaseError,
            WorkflowError, WorkflowStateError, BookNotFoundError, OutlineError,
            PaymentRequiredError, PermissionDeniedError,
            ValidationError, InvalidConfigError,
        ]
        for cls in leaf_classes:
            assert issubclass(cls, DraftBookError), f"{cls.__name__} must inherit DraftBookError"

    def test_llm_subclasses(self):
        assert issubclass(LLMRateLimitError, LLMError)
        assert issubclass(LLMTimeoutError, LLMError)
        assert issubclass(LLMResponseParseError, LLMError)

    def test_workflow_subclasses(self):
        for cls in (WorkflowStateError, BookNotFoundError, OutlineError,
                    PaymentRequiredError, PermissionDeniedError):
            assert issubclass(cls, WorkflowError)

    def test_image_errors_are_not_llm_errors(self):
        assert not issubclass(ImageGenerationError, LLMError)

    def test_invalid_config_is_validation_error(self):
        assert issubclass(InvalidConfigError, ValidationError)


class TestExceptionMessages:
    def test_message_without_details(self):
        err = DraftBookError("boom")
        assert str(err) == "boom"
        assert err.details == {}

    def test_message_with_details(self):
        err = DraftBookError("boom", {"book_id": 3})
        assert str(err) == "boom (book_id=3)"
        assert err.message == "boom"

    def test_rate_limit_carries_retry_after(self):
        err = LLMRateLimitError(retry_after=12.5)
        assert err.retry_after == 12.5
        assert err.details["retry_after"] == 12.5

    def test_rate_limit_without_retry_after(self):
        err = LLMRateLimitError()
        assert err.retry_after is None
        assert "retry_after" not in err.details

    def test_parse_error_truncates_raw_response(self):
        err = LLMResponseParseError("bad", raw_response="x" * 500)
        assert err.raw_response == "x" * 500
        assert len(err.details["raw_response"]) == 200

    def test_book_not_found(self):
        err = BookNotFoundError(42)
        assert err.book_id == 42
        assert "42" in err.message

    def test_payment_required_details(self):
        err = PaymentRequiredError(7, "pending")
        assert err.details == {"book_id": 7, "payment_status": "pending"}

    def test_can_be_caught_as_base(self):
        with pytest.raises(DraftBookError):
            raise OutlineError("too few chapters")
