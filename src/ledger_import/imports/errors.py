"""
User-facing error messages for import failures.

Converts exceptions from the ledger client, the AI categorizer and the
network layer into a short message plus an actionable suggestion.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..categorizer import AICategorizationError, AIErrorCode
from ..config import ConfigValidationError
from ..ledger_client import (
    LedgerConnectionError,
    LedgerObjectNotFoundError,
    LedgerRateLimitedError,
    LedgerUnauthorizedError,
    LedgerValidationError,
)


@dataclass(frozen=True)
class FormattedError:
    message: str
    suggestion: str | None = None
    details: str | None = None

    def display(self) -> str:
        """Message and suggestion joined for single-line display."""
        if self.suggestion:
            return f"{self.message} - {self.suggestion}"
        return self.message

    def to_dict(self) -> dict:
        data = {"message": self.message}
        if self.suggestion is not None:
            data["suggestion"] = self.suggestion
        if self.details is not None:
            data["details"] = self.details
        return data


def _format_ai_error(error: AICategorizationError) -> FormattedError:
    if error.code == AIErrorCode.NO_API_KEY:
        return FormattedError(
            message="AI categorization unavailable",
            suggestion="Add CLAUDE_API_KEY to .env file",
            details="AI categorization requires an Anthropic API key.",
        )
    if error.code == AIErrorCode.INSUFFICIENT_CREDITS:
        return FormattedError(
            message="AI API credits exhausted",
            suggestion="Add credits at console.anthropic.com/settings/plans",
            details=error.message,
        )
    return FormattedError(
        message="AI categorization failed",
        suggestion=(
            "This may be a temporary API issue. "
            "Try again or manually categorize the transaction."
        ),
        details=error.message,
    )


def format_import_error(error: BaseException, transaction: str | None = None) -> FormattedError:
    """
    Format an import error for display.

    Args:
        error: Any exception raised during processing or writing
        transaction: Description of the affected transaction, if any

    Returns:
        FormattedError with message, optional suggestion and details
    """
    if isinstance(error, AICategorizationError):
        return _format_ai_error(error)

    if isinstance(error, ConfigValidationError):
        return FormattedError(
            message="Configuration error",
            suggestion="Check NOTION_API_TOKEN and NOTION_BALANCE_SHEET_ID",
            details=str(error),
        )

    if isinstance(error, LedgerObjectNotFoundError):
        return FormattedError(
            message="Notion database not found",
            suggestion=(
                "Check NOTION_BALANCE_SHEET_ID in .env and verify database is shared "
                "with your integration"
            ),
            details=error.message,
        )

    if isinstance(error, LedgerUnauthorizedError):
        return FormattedError(
            message="Notion API authentication failed",
            suggestion="Check NOTION_API_TOKEN in .env and verify it hasn't expired",
            details=error.message,
        )

    if isinstance(error, LedgerValidationError):
        return FormattedError(
            message="Notion API validation error",
            suggestion="Check that all required properties exist in your Notion database",
            details=error.message,
        )

    if isinstance(error, LedgerRateLimitedError):
        return FormattedError(
            message="Notion API rate limit exceeded",
            suggestion=(
                "Wait a moment and try again. "
                "Large imports may need to be split into smaller batches."
            ),
            details=error.message,
        )

    if isinstance(error, LedgerConnectionError):
        text = str(error)
        if "timed out" in text.lower():
            return FormattedError(
                message="Request timed out",
                suggestion="Check your internet connection and try again",
                details=text,
            )
        return FormattedError(
            message="Connection refused",
            suggestion=(
                "Check that the Notion API is reachable and your internet connection is working"
            ),
            details=text,
        )

    return FormattedError(message=str(error) or "Unknown error occurred", details=transaction)
