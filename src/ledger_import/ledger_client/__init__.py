"""
Notion ledger API client.

Provides:
- Query a database with a filter (checksum deduplication)
- Create pages (transactions, entities)
- Database lookup by fixed id
- Page URL derivation

Translates Notion error responses into a closed, typed error hierarchy so
callers never inspect raw error codes or messages.
"""

from .client import (
    LedgerAPIError,
    LedgerClient,
    LedgerConnectionError,
    LedgerError,
    LedgerMissingPropertyError,
    LedgerObjectNotFoundError,
    LedgerRateLimitedError,
    LedgerUnauthorizedError,
    LedgerValidationError,
    page_url,
)

__all__ = [
    "LedgerClient",
    "LedgerError",
    "LedgerAPIError",
    "LedgerConnectionError",
    "LedgerMissingPropertyError",
    "LedgerObjectNotFoundError",
    "LedgerRateLimitedError",
    "LedgerUnauthorizedError",
    "LedgerValidationError",
    "page_url",
]
