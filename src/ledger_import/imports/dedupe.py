"""
Checksum deduplication against the ledger.

A failed lookup never fails the import: deduplication is disabled for the
run and a warning describing why is returned instead.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..ledger_client import (
    LedgerError,
    LedgerMissingPropertyError,
    LedgerObjectNotFoundError,
)
from ..schemas import (
    CHECKSUM_PROPERTY,
    ImportWarning,
    WarningType,
    build_checksum_filter,
    extract_checksum,
)

if TYPE_CHECKING:
    from ..ledger_client import LedgerClient

logger = logging.getLogger(__name__)

# Ledger limit on clauses in a compound filter
MAX_FILTER_CLAUSES = 100


@dataclass
class DeduplicationResult:
    """Checksums already present in the ledger, plus a warning on failure."""

    checksums: set[str] = field(default_factory=set)
    warning: ImportWarning | None = None


def _batches(items: list[str], size: int) -> Iterable[list[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def dedup_warning(error: LedgerError) -> ImportWarning:
    """Describe a failed checksum lookup as a degraded-mode warning."""
    if isinstance(error, LedgerObjectNotFoundError):
        return ImportWarning(
            type=WarningType.NOTION_DATABASE_NOT_FOUND,
            message=(
                "Database not found. Check that NOTION_BALANCE_SHEET_ID is correct "
                "and the database is shared with your integration."
            ),
            details=str(error),
        )
    if isinstance(error, LedgerMissingPropertyError) and error.property_name == CHECKSUM_PROPERTY:
        return ImportWarning(
            type=WarningType.DEDUPLICATION_DISABLED,
            message=(
                'Deduplication disabled: Notion database is missing the "Checksum" property. '
                "All transactions will be processed (duplicates may occur)."
            ),
            details=(
                'To enable deduplication, add a "Rich text" property named "Checksum" '
                "to your Balance Sheet database."
            ),
        )
    return ImportWarning(
        type=WarningType.NOTION_API_ERROR,
        message="Failed to query Notion for duplicates",
        details=str(error),
    )


def find_existing_checksums(
    client: LedgerClient,
    database_id: str,
    checksums: list[str],
    batch_size: int = MAX_FILTER_CLAUSES,
) -> DeduplicationResult:
    """
    Look up which checksums already exist in the ledger.

    Checksums are queried sequentially in batches of batch_size, one
    OR-of-equals filter per batch, following pagination inside each batch.

    Args:
        client: Ledger client
        database_id: Balance sheet database id
        checksums: Candidate checksums
        batch_size: Clauses per query (at most the ledger's filter limit)

    Returns:
        DeduplicationResult; on any ledger error the set is empty and a
        warning is attached
    """
    unique = list(dict.fromkeys(checksums))
    if not unique:
        return DeduplicationResult()

    batch_size = max(1, min(batch_size, MAX_FILTER_CLAUSES))
    found: set[str] = set()

    try:
        for batch in _batches(unique, batch_size):
            pages = client.query_all(database_id, filter=build_checksum_filter(batch))
            for page in pages:
                checksum = extract_checksum(page)
                if checksum:
                    found.add(checksum)
    except LedgerError as e:
        warning = dedup_warning(e)
        logger.warning("Deduplication disabled for this run: %s (%s)", warning.message, e)
        return DeduplicationResult(checksums=set(), warning=warning)

    logger.info("Found %d existing of %d checksums", len(found), len(unique))
    return DeduplicationResult(checksums=found)
