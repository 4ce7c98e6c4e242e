"""
Tests for user-facing import error formatting.
"""

from ledger_import.categorizer import AICategorizationError, AIErrorCode
from ledger_import.imports import format_import_error
from ledger_import.ledger_client import (
    LedgerConnectionError,
    LedgerObjectNotFoundError,
    LedgerRateLimitedError,
    LedgerValidationError,
)


def api_error(cls, code, status=400):
    return cls(status_code=status, code=code, message="detail")


class TestFormatImportError:
    """Exceptions map to message and suggestion."""

    def test_ai_errors(self):
        no_key = format_import_error(AICategorizationError("x", AIErrorCode.NO_API_KEY))
        credits = format_import_error(
            AICategorizationError("low", AIErrorCode.INSUFFICIENT_CREDITS)
        )
        api = format_import_error(AICategorizationError("down", AIErrorCode.API_ERROR))

        assert no_key.message == "AI categorization unavailable"
        assert no_key.suggestion == "Add CLAUDE_API_KEY to .env file"
        assert credits.message == "AI API credits exhausted"
        assert credits.details == "low"
        assert api.message == "AI categorization failed"

    def test_ledger_errors(self):
        assert (
            format_import_error(api_error(LedgerObjectNotFoundError, "object_not_found", 404)).message
            == "Notion database not found"
        )
        assert (
            format_import_error(api_error(LedgerValidationError, "validation_error")).message
            == "Notion API validation error"
        )
        assert (
            format_import_error(api_error(LedgerRateLimitedError, "rate_limited", 429)).message
            == "Notion API rate limit exceeded"
        )

    def test_connection_errors(self):
        assert format_import_error(LedgerConnectionError("refused")).message == "Connection refused"
        assert (
            format_import_error(LedgerConnectionError("Request to Notion timed out")).message
            == "Request timed out"
        )

    def test_generic_error(self):
        formatted = format_import_error(RuntimeError("boom"), transaction="COLES 1")
        assert formatted.message == "boom"
        assert formatted.suggestion is None
        assert formatted.details == "COLES 1"
        assert formatted.display() == "boom"
